"""Pipeline facade: mailbox search, import, enrichment and job status.

Every long-running operation is submitted as a background job and the
caller gets a job id back immediately; failures show up in the job status.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Optional, Union
from urllib.parse import urlparse

import aiohttp
from sqlalchemy import select

from config.settings import Settings, settings as default_settings
from applytrack.enrichment.fetcher import fetch_page
from applytrack.enrichment.queue import EnrichmentQueue, QueueItem
from applytrack.enrichment.worker import BackoffPolicy, EnrichmentWorker
from applytrack.exceptions import AuthError, NotFoundError, PipelineError
from applytrack.extraction.linkedin import ENRICHMENT_MARKER, extract_linkedin_posting
from applytrack.extraction.page import extract_job_data
from applytrack.extraction.urls import extract_job_id_from_url, is_linkedin_job_url, linkedin_guest_url
from applytrack.jobs.runner import TaskRunner
from applytrack.jobs.tracker import JobStatus, JobTracker, JobType
from applytrack.mail.classifier import EmailClassifier
from applytrack.mail.client import MailboxClient, MailCredentials
from applytrack.mail.items import ApplicationItem, ResponseItem, SearchResults, StatusUpdateItem
from applytrack.mail.search import MailboxSearch, list_mailbox_folders, resolve_cutoff
from applytrack.persistence.database import SessionFactory, get_session
from applytrack.persistence.models import EmailAccount
from applytrack.tracking.matcher import RecordMatcher
from applytrack.tracking.record_service import JobRecordService
from applytrack.tracking.spreadsheet import load_spreadsheet, map_row
from applytrack.vault import CredentialVault, PlainTextVault

logger = logging.getLogger(__name__)


@dataclass
class SearchOptions:
    """Caller options for a mailbox search or sync."""

    ignore_previous_import: bool = False
    auto_process: bool = False
    folders: Optional[list[str]] = None
    timeframe_days: Optional[int] = None


@dataclass
class AccountContext:
    """Everything a search needs from a stored account, read in one session."""

    account_id: str
    email: str
    credentials: MailCredentials
    folders: list[str]
    timeframe_days: int
    last_import: Optional[datetime]


class EnrichmentPipeline:
    """Owns the queue, worker and job registry for one process."""

    def __init__(
        self,
        session_factory: SessionFactory = get_session,
        vault: Optional[CredentialVault] = None,
        tracker: Optional[JobTracker] = None,
        queue: Optional[EnrichmentQueue] = None,
        http_session_factory: Callable[[], aiohttp.ClientSession] = aiohttp.ClientSession,
        mailbox_client_factory: Callable[[MailCredentials], MailboxClient] = MailboxClient,
        classifier: Optional[EmailClassifier] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        config: Optional[Settings] = None,
    ):
        """
        Initialize pipeline.

        Args:
            session_factory: Transactional session scope (get_session by default)
            vault: Decrypts stored mailbox passwords
            tracker: Background job registry
            queue: Enrichment queue
            http_session_factory: Builds aiohttp sessions for page fetches
            mailbox_client_factory: Builds IMAP clients from credentials
            classifier: Email classifier
            sleep: Awaitable sleep used between enrichment requests
            config: Settings, the global settings by default
        """
        self.config = config or default_settings
        self.session_factory = session_factory
        self.vault = vault or PlainTextVault()
        self.tracker = tracker or JobTracker(
            retention_minutes=self.config.job_retention_minutes,
            cleanup_threshold=self.config.job_cleanup_threshold,
        )
        self.runner = TaskRunner(self.tracker)
        self._enrichment_job_id: Optional[str] = None
        self.queue = queue or EnrichmentQueue()
        self.worker = EnrichmentWorker(
            self.queue,
            self._enrich_item,
            policy=BackoffPolicy.from_settings(self.config),
            sleep=sleep,
        )
        self.http_session_factory = http_session_factory
        self.mailbox_client_factory = mailbox_client_factory
        self.search_driver = MailboxSearch(
            client_factory=mailbox_client_factory,
            classifier=classifier,
            batch_size=self.config.search_batch_size,
        )

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    def _load_account(self, account_id: str, options: Optional[SearchOptions] = None) -> AccountContext:
        """
        Read an account and decrypt its password.

        Raises:
            NotFoundError: If the account does not exist
            AuthError: If the password cannot be decrypted
        """
        options = options or SearchOptions()
        with self.session_factory() as session:
            account = session.get(EmailAccount, account_id)
            if account is None:
                raise NotFoundError("email account", account_id)

            password = self.vault.decrypt(account.password_ciphertext) if account.password_ciphertext else None
            if not password:
                raise AuthError(account.email, "stored password could not be decrypted")

            return AccountContext(
                account_id=account.id,
                email=account.email,
                credentials=MailCredentials(
                    username=account.email,
                    password=password,
                    host=account.imap_host or self.config.imap_host,
                    port=account.imap_port or self.config.imap_port,
                    use_tls=account.use_tls if account.use_tls is not None else self.config.imap_use_tls,
                    reject_unauthorized=account.reject_unauthorized is not False,
                ),
                folders=list(options.folders or account.search_folders or self.config.search_folders),
                timeframe_days=options.timeframe_days or account.search_timeframe_days or self.config.search_timeframe_days,
                last_import=account.last_import,
            )

    def _mark_imported(self, account_id: str, when: datetime) -> None:
        with self.session_factory() as session:
            account = session.get(EmailAccount, account_id)
            if account is not None:
                account.last_import = when

    async def list_folders(self, account_id: str) -> list[str]:
        """
        List selectable folders of an account's mailbox.

        Raises:
            NotFoundError: If the account does not exist
            AuthError: If the password cannot be decrypted or login fails
            TransportError: If the server cannot be reached
        """
        context = self._load_account(account_id)
        return await list_mailbox_folders(context.credentials, self.mailbox_client_factory)

    # =========================================================================
    # SEARCH
    # =========================================================================

    async def search_account(
        self,
        account_id: str,
        options: Optional[SearchOptions] = None,
        job_id: Optional[str] = None,
        progress_range: tuple[int, int] = (10, 50),
    ) -> SearchResults:
        """
        Search an account's mailbox and tag applications that already exist.

        Args:
            account_id: Stored email account
            options: Search options
            job_id: Job to report progress to
            progress_range: Job progress span covered by the search

        Returns:
            SearchResults
        """
        options = options or SearchOptions()
        context = self._load_account(account_id, options)
        since = resolve_cutoff(context.last_import, options.ignore_previous_import, context.timeframe_days)
        logger.info("Searching %s since %s in %s", context.email, since.date(), ", ".join(context.folders))

        low, high = progress_range

        def _progress(stats: dict) -> None:
            if job_id is None:
                return
            folders = max(stats["folders_total"], 1)
            pct = low + int((high - low) * stats["folders_processed"] / folders)
            self.tracker.update_job(
                job_id,
                progress=pct,
                message=(
                    f"Processed {stats['emails_processed']} of {stats['emails_total']} emails "
                    f"in {stats['folders_processed']}/{stats['folders_total']} folders"
                ),
            )

        if job_id:
            self.tracker.update_job(job_id, progress=low, message=f"Connecting to {context.credentials.host}")
        results = await self.search_driver.run(context.credentials, context.folders, since, progress=_progress)

        with self.session_factory() as session:
            RecordMatcher(session).check_existing(results.applications)
        return results

    def start_search(self, account_id: str, options: Optional[SearchOptions] = None) -> str:
        """
        Start a background mailbox search.

        With ``options.auto_process`` the new items are imported by a
        follow-up import job once the search finishes.

        Returns:
            Job id
        """
        options = options or SearchOptions()

        async def _run(job_id: str) -> dict:
            results = await self.search_account(account_id, options, job_id)
            payload = results.to_dict()
            self.tracker.update_job(job_id, progress=90, result=payload, message=results.summary())

            if options.auto_process:
                new_applications = [item for item in results.applications if not item.exists]
                payload["import_job_id"] = self.start_import(
                    new_applications, results.status_updates, results.responses, parent_job_id=job_id
                )
            return payload

        return self.runner.submit(JobType.SEARCH, _run, {"account_id": account_id, "options": vars(options)})

    def start_sync(self, account_id: str, options: Optional[SearchOptions] = None) -> str:
        """
        Start a background sync: search, import, enrich, record the import time.

        Returns:
            Job id
        """
        options = options or SearchOptions()

        async def _run(job_id: str) -> dict:
            started = datetime.now(timezone.utc)
            results = await self.search_account(account_id, options, job_id, progress_range=(20, 50))
            outcome = {"search": results.to_dict(), "processing": None}
            self.tracker.update_job(job_id, progress=50, result=outcome, message=results.summary())

            new_applications = [item for item in results.applications if not item.exists]
            stats = self._import(new_applications, results.status_updates, results.responses)
            outcome["processing"] = stats
            self.tracker.update_job(
                job_id,
                progress=60,
                result=outcome,
                message=f"Imported {stats['applications']['added']} new applications",
            )

            if stats["enrichments"]["queued"]:
                self.tracker.update_job(
                    job_id, progress=80, message=f"Enriching {stats['enrichments']['queued']} jobs"
                )
                outcome["enrichment"] = await self.worker.run_pass()

            self._mark_imported(account_id, started)
            return outcome

        return self.runner.submit(JobType.SYNC, _run, {"account_id": account_id, "options": vars(options)})

    # =========================================================================
    # IMPORT
    # =========================================================================

    def _enqueue(self, url: str, job_data: dict, record_id: str, force: bool = False) -> bool:
        return self.queue.enqueue(url, job_data=job_data, record_id=record_id, force=force)

    def _import(
        self,
        applications: Iterable[ApplicationItem],
        status_updates: Iterable[StatusUpdateItem],
        responses: Iterable[ResponseItem],
    ) -> dict:
        with self.session_factory() as session:
            service = JobRecordService(session, self.config.enrichment_replace_placeholder_title)
            return service.import_items(applications, status_updates, responses, enqueue=self._enqueue)

    def import_items(
        self,
        applications: Iterable[ApplicationItem] = (),
        status_updates: Iterable[StatusUpdateItem] = (),
        responses: Iterable[ResponseItem] = (),
    ) -> dict:
        """
        Persist applications and merge status updates and responses.

        Queued enrichments start in the background when an event loop is running.

        Returns:
            Import stats
        """
        stats = self._import(applications, status_updates, responses)
        if stats["enrichments"]["queued"]:
            self._kick_enrichment()
        return stats

    def start_import(
        self,
        applications: Iterable[ApplicationItem] = (),
        status_updates: Iterable[StatusUpdateItem] = (),
        responses: Iterable[ResponseItem] = (),
        parent_job_id: Optional[str] = None,
    ) -> str:
        """Run import_items as a background job and return its id."""
        applications, status_updates, responses = list(applications), list(status_updates), list(responses)
        data = {
            "applications": len(applications),
            "status_updates": len(status_updates),
            "responses": len(responses),
        }
        if parent_job_id:
            data["parent_job_id"] = parent_job_id

        async def _run(job_id: str) -> dict:
            self.tracker.update_job(job_id, progress=20, message="Importing items")
            return self.import_items(applications, status_updates, responses)

        return self.runner.submit(JobType.IMPORT, _run, data)

    def import_spreadsheet(self, path: Union[str, Path]) -> dict:
        """
        Import job records from an Excel or CSV file.

        Returns:
            Stats: added, duplicates, errors, total, queued

        Raises:
            ParseError: If the file cannot be read
        """
        rows = [map_row(row) for row in load_spreadsheet(path)]
        with self.session_factory() as session:
            stats = JobRecordService(session).import_records(rows, enqueue=self._enqueue)
        if stats["queued"]:
            self._kick_enrichment()
        return stats

    def start_spreadsheet_import(self, path: Union[str, Path]) -> str:
        """Run import_spreadsheet as a background job and return its id."""

        async def _run(job_id: str) -> dict:
            self.tracker.update_job(job_id, progress=20, message=f"Reading {Path(path).name}")
            return self.import_spreadsheet(path)

        return self.runner.submit(JobType.SPREADSHEET_IMPORT, _run, {"path": str(path)})

    # =========================================================================
    # ENRICHMENT
    # =========================================================================

    def get_enrichment_status(self) -> dict:
        return {"is_processing": self.worker.is_processing, "queue_size": len(self.queue)}

    def _kick_enrichment(self) -> Optional[str]:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; %d items stay queued", len(self.queue))
            return None
        return self.start_enrichment()

    def start_enrichment(self) -> Optional[str]:
        """
        Drain the queue in a background job.

        A pass that is queued or running already drains newly queued items,
        so its id is returned instead of submitting another job.

        Returns:
            Job id, or None when the queue is empty
        """
        if not self.queue:
            return None
        if self._enrichment_job_id:
            pending = self.tracker.get_job(self._enrichment_job_id)
            if pending and pending.status in (JobStatus.QUEUED, JobStatus.RUNNING):
                return self._enrichment_job_id
        if self.worker.is_processing:
            return None

        async def _run(job_id: str) -> dict:
            def _progress(counters: dict) -> None:
                done = counters["processed"] + counters["errors"]
                total = done + counters["remaining"]
                self.tracker.update_job(
                    job_id,
                    progress=10 + int(85 * done / max(total, 1)),
                    result=counters,
                    message=f"Enriched {counters['processed']} jobs, {counters['remaining']} remaining",
                )

            return await self.worker.run_pass(progress=_progress)

        self._enrichment_job_id = self.runner.submit(JobType.ENRICHMENT, _run, {"queue_size": len(self.queue)})
        return self._enrichment_job_id

    def re_enrich(self, record_ids: Iterable[str]) -> int:
        """
        Queue stored records for enrichment again.

        Records without a website are skipped; items already pending are not
        queued twice.

        Returns:
            Number of records queued
        """
        queued = 0
        with self.session_factory() as session:
            service = JobRecordService(session)
            for record_id in record_ids:
                record = service.get(record_id)
                if record is None or not record.website:
                    logger.info("Skipping re-enrichment of %s: no record or website", record_id)
                    continue
                if self._enqueue(record.website, service.job_data(record), record.id, force=True):
                    queued += 1
        if queued:
            self._kick_enrichment()
        return queued

    def _target_for(self, url: str) -> tuple[str, Callable[[str, str], dict], str]:
        """Fetch URL, extractor and enrichment marker for a posting URL."""
        if is_linkedin_job_url(url):
            return linkedin_guest_url(extract_job_id_from_url(url)), extract_linkedin_posting, ENRICHMENT_MARKER
        host = urlparse(url).hostname or url
        return url, extract_job_data, f"Enriched with data from {host}"

    async def _fetch_and_extract(self, url: str) -> tuple[dict, str]:
        fetch_url, extractor, marker = self._target_for(url)
        async with self.http_session_factory() as http:
            html = await fetch_page(
                http,
                fetch_url,
                timeout=self.config.enrichment_request_timeout_seconds,
                max_redirects=self.config.enrichment_max_redirects,
            )
        return extractor(html, url), marker

    async def _enrich_item(self, item: QueueItem) -> None:
        """Fetch one queued posting and merge it into its record."""
        record_id = item.record_id or item.job_data.get("id")
        if not record_id:
            raise NotFoundError("job record", item.url)

        data, marker = await self._fetch_and_extract(item.url)
        if not data:
            logger.info("No job data extracted from %s", item.url)
            return

        # Fresh session: the record is re-read so concurrent field updates survive
        with self.session_factory() as session:
            JobRecordService(session, self.config.enrichment_replace_placeholder_title).merge_enrichment(
                record_id, data, marker=marker
            )

    async def extract_from_url(self, url: str) -> Optional[dict]:
        """Fetch a posting page and return its extracted fields, or None on failure."""
        try:
            data, _ = await self._fetch_and_extract(url)
        except PipelineError as e:
            logger.warning("Could not extract job data from %s: %s", url, e)
            return None
        return data or None

    # =========================================================================
    # JOB STATUS
    # =========================================================================

    def get_job_status(self, job_id: str) -> Optional[dict]:
        job = self.tracker.get_job(job_id)
        return job.to_dict() if job else None

    def list_active_jobs(self) -> list[dict]:
        return [job.to_dict() for job in self.tracker.list_active()]

    def cleanup_jobs(self) -> int:
        return self.tracker.cleanup_old_jobs()

    def auto_import_account_ids(self) -> list[str]:
        """Ids of accounts flagged for scheduled syncs."""
        with self.session_factory() as session:
            stmt = select(EmailAccount.id).where(EmailAccount.auto_import.is_(True))
            return list(session.execute(stmt).scalars().all())
