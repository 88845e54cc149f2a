"""Job record creation, status merging and enrichment merging."""
import logging
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session

from config.settings import settings
from applytrack.exceptions import NotFoundError
from applytrack.extraction.linkedin import ENRICHMENT_MARKER
from applytrack.extraction.urls import extract_job_id_from_url, is_linkedin_job_url
from applytrack.mail.items import ApplicationItem, ResponseItem, StatusUpdateItem
from applytrack.persistence.models import (
    JobRecord,
    ResponseStatus,
    normalize_employment_type,
    normalize_location_type,
    normalize_response,
    normalize_wage_type,
    utcnow,
)
from applytrack.tracking.matcher import RecordMatcher, should_update_status

logger = logging.getLogger(__name__)

UNKNOWN_COMPANY = "Unknown Company"

# enqueue(url, job_data, record_id) -> True when the item was queued
EnqueueCallback = Callable[[str, dict, str], bool]

FILL_IF_EMPTY_FIELDS = ["company_location", "location_type", "employment_type", "external_job_id"]


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def empty_import_stats() -> dict:
    """Counters returned by import_items."""
    return {
        "applications": {"added": 0, "existing": 0, "errors": 0},
        "status_updates": {"processed": 0, "unprocessed": 0, "errors": 0},
        "responses": {"processed": 0, "unprocessed": 0, "errors": 0},
        "enrichments": {"queued": 0},
    }


class JobRecordService:
    """Creates job records and merges updates into them."""

    def __init__(
        self,
        session: Session,
        replace_placeholder_title: Optional[bool] = None,
    ):
        """
        Initialize record service.

        Args:
            session: Database session
            replace_placeholder_title: Let enrichment replace a "Position at {company}"
                title; defaults to the configured setting
        """
        self.session = session
        self.matcher = RecordMatcher(session)
        if replace_placeholder_title is None:
            replace_placeholder_title = settings.enrichment_replace_placeholder_title
        self.replace_placeholder_title = replace_placeholder_title

    def get(self, record_id: str) -> Optional[JobRecord]:
        """Get a record by ID."""
        return self.session.get(JobRecord, record_id)

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def create_from_application(self, item: ApplicationItem) -> JobRecord:
        """
        Persist a new record for an application item.

        Location and employment type stay blank for items with a posting URL
        so enrichment can fill them; otherwise the configured defaults apply.

        Args:
            item: Application item with company and job title

        Returns:
            Created JobRecord (flushed, so its id is set)

        Raises:
            ValueError: If company or job title is missing
        """
        if _is_blank(item.company) or _is_blank(item.job_title):
            raise ValueError("company and job_title are required")

        # Stored as "" rather than None, which would pick up the column default
        will_enrich = bool(item.website)
        location_type = normalize_location_type(item.location_type) or ""
        employment_type = normalize_employment_type(item.employment_type) or ""
        if not will_enrich:
            location_type = location_type or settings.default_location_type
            employment_type = employment_type or settings.default_employment_type

        record = JobRecord(
            source=item.source or "Email",
            application_through=item.application_through or "Email",
            company=item.company.strip(),
            job_title=item.job_title.strip(),
            company_location=item.company_location or "",
            location_type=location_type,
            employment_type=employment_type,
            website=item.website or "",
            wages_min=item.wages_min,
            wages_max=item.wages_max,
            wage_type=normalize_wage_type(item.wage_type) or settings.default_wage_type,
            applied=item.applied or utcnow(),
            responded=None,
            response=ResponseStatus.NO_RESPONSE.value,
            external_job_id=item.external_job_id or None,
            notes=item.notes or f"Imported from email on {utcnow():%Y-%m-%d}",
        )
        self.session.add(record)
        self.session.flush()
        logger.info("Created record %s: %s at %s", record.id, record.job_title, record.company)
        return record

    # -------------------------------------------------------------------------
    # Status and response merging
    # -------------------------------------------------------------------------

    def apply_status_update(self, item: StatusUpdateItem) -> JobRecord:
        """
        Append a status check for an interim update.

        Raises:
            NotFoundError: If no record matches the item
        """
        record = self.matcher.find_for_update(item)
        if record is None:
            raise NotFoundError("job record", f"{item.company} / {item.job_title or '?'}")
        record.add_status_check(f"Your application was {item.status_type} by {item.company}", item.date)
        self.session.flush()
        return record

    def apply_response(self, item: ResponseItem) -> JobRecord:
        """
        Merge an employer response into the matching record.

        The stored response is overwritten only when the new one ranks higher
        or nothing was recorded yet; a status check is appended either way.

        Raises:
            NotFoundError: If no record matches the item
        """
        record = self.matcher.find_for_update(item)
        if record is None:
            raise NotFoundError("job record", f"{item.company} / {item.job_title or '?'}")

        response = normalize_response(item.response)
        if should_update_status(record.response, response):
            record.response = response
            record.responded = item.responded

        note = item.notes or f"Received a {response.lower()} from {item.company}"
        record.add_status_check(note, item.responded)
        self.session.flush()
        return record

    def import_items(
        self,
        applications: Iterable[ApplicationItem] = (),
        status_updates: Iterable[StatusUpdateItem] = (),
        responses: Iterable[ResponseItem] = (),
        enqueue: Optional[EnqueueCallback] = None,
    ) -> dict:
        """
        Persist new applications and merge status updates and responses.

        Each item is committed on its own, so one failure does not undo the
        others.

        Args:
            applications: Application items; ones already stored are counted as existing
            status_updates: Status update items
            responses: Response items
            enqueue: Called with each new record's posting URL for enrichment

        Returns:
            Stats dict with applications, status_updates, responses and enrichments counters
        """
        stats = empty_import_stats()

        for item in applications:
            if item.exists or self.matcher.find_for_application(item) is not None:
                stats["applications"]["existing"] += 1
                continue
            try:
                record = self.create_from_application(item)
                self.session.commit()
                stats["applications"]["added"] += 1
            except Exception as e:
                self.session.rollback()
                logger.error("Error importing application %s at %s: %s", item.job_title, item.company, e)
                stats["applications"]["errors"] += 1
                continue

            if enqueue and record.website:
                if enqueue(record.website, self.job_data(record), record.id):
                    stats["enrichments"]["queued"] += 1

        for kind, items, apply in (
            ("status_updates", status_updates, self.apply_status_update),
            ("responses", responses, self.apply_response),
        ):
            for item in items:
                try:
                    apply(item)
                    self.session.commit()
                    stats[kind]["processed"] += 1
                except NotFoundError as e:
                    logger.warning("Unresolved %s item: %s", kind, e)
                    stats[kind]["unprocessed"] += 1
                except Exception as e:
                    self.session.rollback()
                    logger.error("Error processing %s item for %s: %s", kind, item.company, e)
                    stats[kind]["errors"] += 1

        logger.info(
            "Import finished: %d added, %d existing, %d status updates, %d responses",
            stats["applications"]["added"],
            stats["applications"]["existing"],
            stats["status_updates"]["processed"],
            stats["responses"]["processed"],
        )
        return stats

    # -------------------------------------------------------------------------
    # Enrichment merging
    # -------------------------------------------------------------------------

    def _title_replaceable(self, record: JobRecord) -> bool:
        if _is_blank(record.job_title):
            return True
        return self.replace_placeholder_title and record.job_title == f"Position at {record.company}"

    def merge_enrichment(self, record_id: str, data: dict, marker: str = ENRICHMENT_MARKER) -> JobRecord:
        """
        Merge page-extracted fields into a stored record.

        A non-empty title is kept. Company, location, location type,
        employment type and external id are filled only when blank.
        Description and salary are refreshed whenever the page provides them.
        Recruiter details and the enrichment marker are appended to notes once.

        Args:
            record_id: Stored record id
            data: Extracted fields keyed by record attribute name
            marker: Note line recording that enrichment happened

        Returns:
            The updated JobRecord

        Raises:
            NotFoundError: If the record no longer exists
        """
        record = self.get(record_id)
        if record is None:
            raise NotFoundError("job record", record_id)

        updated = False

        if data.get("job_title") and self._title_replaceable(record):
            record.job_title = data["job_title"]
            updated = True

        if data.get("company") and (_is_blank(record.company) or record.company == UNKNOWN_COMPANY):
            record.company = data["company"]
            updated = True

        for field in FILL_IF_EMPTY_FIELDS:
            value = data.get(field)
            if _is_blank(value) or not _is_blank(getattr(record, field)):
                continue
            if field == "location_type":
                value = normalize_location_type(value)
            elif field == "employment_type":
                value = normalize_employment_type(value)
            setattr(record, field, value)
            updated = True

        if data.get("description"):
            record.description = data["description"]
            updated = True

        if data.get("wages_min") is not None:
            record.wages_min = data["wages_min"]
            record.wages_max = data.get("wages_max") or data["wages_min"]
            record.wage_type = normalize_wage_type(data.get("wage_type")) or settings.default_wage_type
            if record.wages_min > record.wages_max:
                record.wages_min, record.wages_max = record.wages_max, record.wages_min
            updated = True

        recruiter = data.get("recruiter_name")
        if recruiter and recruiter not in (record.notes or ""):
            title = data.get("recruiter_title")
            record.append_note(f"Recruiter: {recruiter}, {title}" if title else f"Recruiter: {recruiter}")
            updated = True

        if updated and marker not in (record.notes or ""):
            record.append_note(marker)

        record.enriched_at = utcnow()
        self.session.flush()
        logger.info("Merged enrichment into record %s (%s)", record.id, "updated" if updated else "no new data")
        return record

    # -------------------------------------------------------------------------
    # Bulk import
    # -------------------------------------------------------------------------

    def import_records(self, rows: Iterable[dict], enqueue: Optional[EnqueueCallback] = None) -> dict:
        """
        Insert spreadsheet rows, skipping duplicates.

        Args:
            rows: Record dicts as produced by spreadsheet.map_row
            enqueue: Called for saved rows with a LinkedIn posting URL

        Returns:
            Stats dict with added, duplicates, errors, total (and queued)
        """
        stats = {"added": 0, "duplicates": 0, "errors": 0, "total": 0, "queued": 0}

        for row in rows:
            stats["total"] += 1
            if _is_blank(row.get("company")) or _is_blank(row.get("job_title")):
                stats["errors"] += 1
                continue

            website = row.get("website") or ""
            if not row.get("external_job_id") and is_linkedin_job_url(website):
                row["external_job_id"] = extract_job_id_from_url(website)

            existing = self.matcher.by_external_id(row.get("external_job_id")) or self.matcher.by_company_and_title(
                row.get("company"), row.get("job_title")
            )
            if existing is not None:
                stats["duplicates"] += 1
                continue

            try:
                record = JobRecord(**row)
                self.session.add(record)
                self.session.commit()
                stats["added"] += 1
            except Exception as e:
                self.session.rollback()
                logger.error("Error saving row for %s: %s", row.get("company"), e)
                stats["errors"] += 1
                continue

            if enqueue and is_linkedin_job_url(record.website):
                if enqueue(record.website, self.job_data(record), record.id):
                    stats["queued"] += 1

        logger.info(
            "Bulk import: %d added, %d duplicates, %d errors of %d rows",
            stats["added"],
            stats["duplicates"],
            stats["errors"],
            stats["total"],
        )
        return stats

    @staticmethod
    def job_data(record: JobRecord) -> dict:
        """Basic job data carried with an enrichment queue item."""
        return {
            "id": record.id,
            "external_job_id": record.external_job_id,
            "company": record.company,
            "job_title": record.job_title,
            "website": record.website,
        }

