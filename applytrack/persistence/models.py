"""SQLAlchemy models for applytrack."""
import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid.uuid4())


class LocationType(str, Enum):
    """Where the work happens."""

    REMOTE = "Remote"
    ON_SITE = "On-site"
    HYBRID = "Hybrid"
    OTHER = "Other"


class EmploymentType(str, Enum):
    """Kind of employment contract."""

    FULL_TIME = "Full-time"
    PART_TIME = "Part-time"
    CONTRACT = "Contract"
    INTERNSHIP = "Internship"
    FREELANCE = "Freelance"
    OTHER = "Other"


class WageType(str, Enum):
    """Period a wage amount is quoted for."""

    HOURLY = "Hourly"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"
    YEARLY = "Yearly"
    PROJECT = "Project"
    OTHER = "Other"


class ResponseStatus(str, Enum):
    """Employer response, ordered by priority (see STATUS_PRIORITY)."""

    NO_RESPONSE = "No Response"
    REJECTED = "Rejected"
    PHONE_SCREEN = "Phone Screen"
    INTERVIEW = "Interview"
    OFFER = "Offer"
    HIRED = "Hired"
    OTHER = "Other"


def _variant_key(value: str) -> str:
    return re.sub(r"[^a-z]", "", value.lower())


_LOCATION_VARIANTS = {
    "remote": LocationType.REMOTE,
    "onsite": LocationType.ON_SITE,
    "inoffice": LocationType.ON_SITE,
    "office": LocationType.ON_SITE,
    "hybrid": LocationType.HYBRID,
}

_EMPLOYMENT_VARIANTS = {
    "fulltime": EmploymentType.FULL_TIME,
    "parttime": EmploymentType.PART_TIME,
    "contract": EmploymentType.CONTRACT,
    "contractor": EmploymentType.CONTRACT,
    "temporary": EmploymentType.CONTRACT,
    "internship": EmploymentType.INTERNSHIP,
    "intern": EmploymentType.INTERNSHIP,
    "freelance": EmploymentType.FREELANCE,
}

_WAGE_VARIANTS = {
    "hourly": WageType.HOURLY,
    "weekly": WageType.WEEKLY,
    "monthly": WageType.MONTHLY,
    "yearly": WageType.YEARLY,
    "annual": WageType.YEARLY,
    "salary": WageType.YEARLY,
    "project": WageType.PROJECT,
}


def normalize_location_type(value: Optional[str]) -> Optional[str]:
    """Map loose location-type text ("On-Site", "remote") to a canonical value."""
    if not value:
        return None
    return _LOCATION_VARIANTS.get(_variant_key(value), LocationType.OTHER).value


def normalize_employment_type(value: Optional[str]) -> Optional[str]:
    """Map loose employment-type text ("Full-Time", "full time") to a canonical value."""
    if not value:
        return None
    return _EMPLOYMENT_VARIANTS.get(_variant_key(value), EmploymentType.OTHER).value


def normalize_wage_type(value: Optional[str]) -> Optional[str]:
    """Map loose wage-type text ("Salary", "annual") to a canonical value."""
    if not value:
        return None
    return _WAGE_VARIANTS.get(_variant_key(value), WageType.OTHER).value


def normalize_response(value: Optional[str]) -> str:
    """Map response text to a ResponseStatus value; blank means No Response."""
    if not value:
        return ResponseStatus.NO_RESPONSE.value
    key = _variant_key(value)
    for status in ResponseStatus:
        if _variant_key(status.value) == key:
            return status.value
    return ResponseStatus.OTHER.value


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class JobRecord(Base):
    """A tracked job application."""

    __tablename__ = "job_records"

    id = Column(String, primary_key=True, default=generate_uuid)
    external_job_id = Column(String, index=True)  # e.g. LinkedIn posting id

    # Descriptive fields
    company = Column(String, nullable=False, index=True)
    job_title = Column(String, nullable=False)
    company_location = Column(String, default="")
    location_type = Column(String, default=LocationType.REMOTE.value)
    employment_type = Column(String, default=EmploymentType.FULL_TIME.value)
    description = Column(Text, default="")
    website = Column(String, default="")

    # Compensation
    wages_min = Column(Float)
    wages_max = Column(Float)
    wage_type = Column(String, default=WageType.YEARLY.value)

    # Lifecycle
    applied = Column(DateTime, default=utcnow)
    status_checks = Column(JSON, default=list)  # [{"date": iso, "note": str}], append-only
    responded = Column(DateTime, nullable=True)
    response = Column(String, default=ResponseStatus.NO_RESPONSE.value)
    notes = Column(Text, default="")

    # Source metadata
    source = Column(String, default="Email")
    application_through = Column(String)
    search_type = Column(String)

    # Timestamps
    enriched_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.status_checks is None:
            self.status_checks = []
        if self.response is None:
            self.response = ResponseStatus.NO_RESPONSE.value
        if self.notes is None:
            self.notes = ""
        if (
            self.wages_min is not None
            and self.wages_max is not None
            and self.wages_min > self.wages_max
        ):
            self.wages_min, self.wages_max = self.wages_max, self.wages_min

    def add_status_check(self, note: str, date: Optional[datetime] = None) -> None:
        """Append a status check entry, keeping earlier entries in order."""
        entry = {"date": (date or utcnow()).isoformat(), "note": note}
        # Reassign so SQLAlchemy sees the JSON change
        self.status_checks = [*(self.status_checks or []), entry]

    def append_note(self, text: str) -> None:
        """Append a line to the free-text notes."""
        self.notes = f"{self.notes}\n{text}" if self.notes else text

    def __repr__(self) -> str:
        return f"<JobRecord {self.company} - {self.job_title} ({self.response})>"


class EmailAccount(Base):
    """Mailbox credentials and search preferences for email import."""

    __tablename__ = "email_accounts"

    id = Column(String, primary_key=True, default=generate_uuid)
    email = Column(String, unique=True, nullable=False)
    password_ciphertext = Column(String, nullable=False)  # Decrypted via CredentialVault
    imap_host = Column(String, default="imap.gmail.com")
    imap_port = Column(Integer, default=993)
    use_tls = Column(Boolean, default=True)
    reject_unauthorized = Column(Boolean, default=True)

    auto_import = Column(Boolean, default=False)
    search_timeframe_days = Column(Integer, default=90)
    search_folders = Column(JSON, default=lambda: ["INBOX"])
    last_import = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<EmailAccount {self.email} ({self.imap_host})>"
