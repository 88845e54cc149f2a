"""Database persistence layer."""
from .database import SessionFactory, get_session, init_db, make_session_factory
from .models import (
    Base,
    EmailAccount,
    EmploymentType,
    JobRecord,
    LocationType,
    ResponseStatus,
    WageType,
)

__all__ = [
    "Base",
    "JobRecord",
    "EmailAccount",
    "LocationType",
    "EmploymentType",
    "WageType",
    "ResponseStatus",
    "SessionFactory",
    "init_db",
    "get_session",
    "make_session_factory",
]
