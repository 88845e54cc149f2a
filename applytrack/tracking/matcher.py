"""Match extracted items against stored job records."""
import logging
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from applytrack.persistence.models import JobRecord, ResponseStatus, normalize_response

logger = logging.getLogger(__name__)

# Higher wins when deciding whether a response overwrites the stored one
STATUS_PRIORITY = {
    ResponseStatus.NO_RESPONSE.value: 0,
    ResponseStatus.REJECTED.value: 1,
    ResponseStatus.PHONE_SCREEN.value: 2,
    ResponseStatus.INTERVIEW.value: 3,
    ResponseStatus.OFFER.value: 4,
    ResponseStatus.HIRED.value: 5,
}


def status_priority(status: Optional[str]) -> int:
    """Priority of a response status; unknown values rank with No Response."""
    return STATUS_PRIORITY.get(normalize_response(status), 0)


def should_update_status(current: Optional[str], new: Optional[str]) -> bool:
    """A response overwrites when it ranks strictly higher or nothing was recorded yet."""
    if normalize_response(current) == ResponseStatus.NO_RESPONSE.value:
        return True
    return status_priority(new) > status_priority(current)


class RecordMatcher:
    """Finds the stored record an extracted item refers to."""

    def __init__(self, session: Session):
        """
        Initialize record matcher.

        Args:
            session: Database session
        """
        self.session = session

    def by_external_id(self, external_job_id: Optional[str]) -> Optional[JobRecord]:
        """Record with this external id, if any."""
        if not external_job_id:
            return None
        stmt = select(JobRecord).where(JobRecord.external_job_id == str(external_job_id)).limit(1)
        return self.session.execute(stmt).scalars().first()

    def by_company_and_title(self, company: Optional[str], job_title: Optional[str]) -> Optional[JobRecord]:
        """Record with this company and title, compared case-insensitively."""
        if not company or not job_title:
            return None
        stmt = (
            select(JobRecord)
            .where(func.lower(JobRecord.company) == company.strip().lower())
            .where(func.lower(JobRecord.job_title) == job_title.strip().lower())
            .limit(1)
        )
        return self.session.execute(stmt).scalars().first()

    def latest_for_company(self, company: Optional[str]) -> Optional[JobRecord]:
        """Most recently applied record for a company."""
        if not company:
            return None
        stmt = (
            select(JobRecord)
            .where(func.lower(JobRecord.company) == company.strip().lower())
            .order_by(JobRecord.applied.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalars().first()

    def find_for_application(self, item) -> Optional[JobRecord]:
        """
        Find the record an application item duplicates.

        Args:
            item: Anything with external_job_id, company and job_title

        Returns:
            Matching JobRecord, or None when the item is new
        """
        return self.by_external_id(getattr(item, "external_job_id", None)) or self.by_company_and_title(
            getattr(item, "company", None), getattr(item, "job_title", None)
        )

    def find_for_update(self, item) -> Optional[JobRecord]:
        """Find the record a status or response item refers to, falling back to company alone."""
        return self.find_for_application(item) or self.latest_for_company(getattr(item, "company", None))

    def check_existing(self, items: Iterable) -> list:
        """Tag application items with whether a matching record already exists."""
        tagged = []
        for item in items:
            record = self.find_for_application(item)
            item.exists = record is not None
            item.existing_record_id = record.id if record else None
            tagged.append(item)
        return tagged
