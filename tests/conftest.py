"""Pytest fixtures for applytrack tests."""
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from applytrack.mail.client import MailCredentials
from applytrack.persistence.database import make_session_factory
from applytrack.persistence.models import Base, EmailAccount, JobRecord
from tests.factories import (
    LINKEDIN_APPLICATION_HTML,
    LINKEDIN_REJECTION_HTML,
    FakeMailboxClient,
    build_email,
)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture(scope="function")
def test_db():
    """Create a fresh in-memory database for each test."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def db_engine():
    """In-memory engine shared by every session (one connection via StaticPool)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """get_session-style scope bound to the shared in-memory engine."""
    return make_session_factory(sessionmaker(bind=db_engine, autoflush=False))


@pytest.fixture
def sample_record(test_db):
    """Create a sample job record."""
    record = JobRecord(
        id="rec-1",
        company="Acme Corp",
        job_title="Senior Backend Engineer",
        website="https://www.linkedin.com/jobs/view/3912345678/",
        external_job_id="3912345678",
        applied=datetime(2026, 3, 3, tzinfo=timezone.utc),
        source="LinkedIn",
    )
    test_db.add(record)
    test_db.commit()
    return record


@pytest.fixture
def sample_account(session_factory):
    """Store an email account and return its id."""
    with session_factory() as session:
        session.add(EmailAccount(
            id="acct-1",
            email="me@example.com",
            password_ciphertext="app-password",
            imap_host="imap.example.com",
            search_folders=["INBOX"],
        ))
    return "acct-1"


# =============================================================================
# EMAIL FIXTURES
# =============================================================================


@pytest.fixture
def sample_credentials():
    return MailCredentials(username="me@example.com", password="app-password", host="imap.example.com")


@pytest.fixture
def linkedin_application_email():
    return build_email("Your application was sent to Acme Corp", html=LINKEDIN_APPLICATION_HTML)


@pytest.fixture
def linkedin_rejection_email():
    return build_email(
        "Your application to Acme Corp",
        html=LINKEDIN_REJECTION_HTML,
        date=datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc),
        message_id="2",
    )


@pytest.fixture
def fake_mailbox():
    """Factory building a FakeMailboxClient and a client_factory returning it."""

    def _build(folders: dict, connect_error: Optional[Exception] = None):
        client = FakeMailboxClient(folders, connect_error)
        return client, lambda credentials: client

    return _build
