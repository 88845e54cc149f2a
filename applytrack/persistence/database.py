"""Database engine and transactional session scopes."""
import logging
from contextlib import contextmanager
from typing import Callable, ContextManager, Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config.settings import settings
from applytrack.persistence.models import Base

logger = logging.getLogger(__name__)

# Callable returning a transactional session scope (get_session or a test double)
SessionFactory = Callable[[], ContextManager[Session]]


def _build_engine(url: Optional[str] = None) -> Engine:
    """Engine for the given URL, or the configured database_url."""
    url = url or settings.database_url

    if url.startswith("sqlite"):
        # Background jobs and the scheduler may touch the file from other threads
        return create_engine(url, echo=False, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


engine = _build_engine()
SessionLocal = sessionmaker(autoflush=False, bind=engine)


def init_db(bind: Optional[Engine] = None) -> None:
    """Create the job_records and email_accounts tables when missing."""
    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info("Database ready at %s", target.url.render_as_string(hide_password=True))


def make_session_factory(session_maker: sessionmaker) -> SessionFactory:
    """
    Wrap a sessionmaker in a scope that commits on success.

    On an exception the session is rolled back and the error re-raised;
    the session is always closed.
    """

    @contextmanager
    def _scope() -> Generator[Session, None, None]:
        session = session_maker()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _scope


# Default scope used by the pipeline
get_session: SessionFactory = make_session_factory(SessionLocal)
