"""Items extracted from job emails."""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from applytrack.persistence.models import ResponseStatus, utcnow


class EmailKind(Enum):
    """Terminal classification of a single email."""

    APPLICATION = "application"
    STATUS_UPDATE = "statusUpdate"
    RESPONSE = "response"
    IGNORED = "ignored"


@dataclass
class ApplicationItem:
    """A newly submitted job application."""

    company: str
    job_title: str
    applied: datetime = field(default_factory=utcnow)
    source: str = "Email"
    application_through: str = "Email"
    company_location: str = ""
    location_type: Optional[str] = None
    employment_type: Optional[str] = None
    wages_min: Optional[float] = None
    wages_max: Optional[float] = None
    wage_type: Optional[str] = None
    website: str = ""
    external_job_id: Optional[str] = None
    notes: str = ""
    message_id: Optional[str] = None

    # Set by the record matcher
    exists: bool = False
    existing_record_id: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class StatusUpdateItem:
    """An interim signal (viewed, in review, ...) on an existing application."""

    company: str
    status_type: str
    date: datetime = field(default_factory=utcnow)
    job_title: Optional[str] = None
    website: str = ""
    external_job_id: Optional[str] = None
    message_id: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ResponseItem:
    """An employer outcome (rejection, interview, offer)."""

    company: str
    response: str = ResponseStatus.NO_RESPONSE.value
    responded: datetime = field(default_factory=utcnow)
    job_title: Optional[str] = None
    website: str = ""
    external_job_id: Optional[str] = None
    notes: str = ""
    message_id: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ClassifiedEmail:
    """Outcome of classifying one email."""

    kind: EmailKind
    item: Optional[object] = None
    parser: Optional[str] = None


@dataclass
class SearchResults:
    """Items accumulated by a mailbox search."""

    applications: list[ApplicationItem] = field(default_factory=list)
    status_updates: list[StatusUpdateItem] = field(default_factory=list)
    responses: list[ResponseItem] = field(default_factory=list)
    messages_seen: int = 0
    ignored: int = 0
    failed_folders: list[str] = field(default_factory=list)

    def add(self, classified: ClassifiedEmail) -> None:
        if classified.kind == EmailKind.APPLICATION:
            self.applications.append(classified.item)
        elif classified.kind == EmailKind.STATUS_UPDATE:
            self.status_updates.append(classified.item)
        elif classified.kind == EmailKind.RESPONSE:
            self.responses.append(classified.item)
        else:
            self.ignored += 1

    def summary(self) -> str:
        return (
            f"Found {len(self.applications)} applications, "
            f"{len(self.status_updates)} status updates, and "
            f"{len(self.responses)} responses"
        )

    def to_dict(self) -> dict:
        return {
            "applications": [item.to_dict() for item in self.applications],
            "status_updates": [item.to_dict() for item in self.status_updates],
            "responses": [item.to_dict() for item in self.responses],
            "messages_seen": self.messages_seen,
            "ignored": self.ignored,
            "failed_folders": list(self.failed_folders),
        }
