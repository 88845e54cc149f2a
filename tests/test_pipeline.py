"""End-to-end tests for the pipeline facade."""
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from applytrack.exceptions import TransportError
from applytrack.extraction.linkedin import ENRICHMENT_MARKER
from applytrack.extraction.urls import linkedin_guest_url
from applytrack.mail.items import ApplicationItem
from applytrack.persistence.models import EmailAccount, JobRecord
from applytrack.pipeline import EnrichmentPipeline, SearchOptions
from tests.factories import (
    LINKEDIN_APPLICATION_HTML,
    LINKEDIN_POSTING,
    LINKEDIN_REJECTION_HTML,
    FakeHttpSession,
    build_raw_email,
)

GUEST_URL = linkedin_guest_url("3912345678")


def _inbox():
    return [
        build_raw_email("Your application was sent to Acme Corp", html=LINKEDIN_APPLICATION_HTML),
        build_raw_email(
            "Your application to Acme Corp",
            html=LINKEDIN_REJECTION_HTML,
            date=datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc),
        ),
        build_raw_email("Jobs you may be interested in", html="<p>Recommended for you</p>"),
    ]


@pytest.fixture
def build_pipeline(session_factory, fake_mailbox):
    """Pipeline wired to the in-memory database, a fake mailbox and fake HTTP."""

    def _build(folders=None, pages=None, connect_error=None):
        client, factory = fake_mailbox(folders if folders is not None else {"INBOX": _inbox()}, connect_error)
        http = FakeHttpSession(pages if pages is not None else {GUEST_URL: LINKEDIN_POSTING})
        pipeline = EnrichmentPipeline(
            session_factory=session_factory,
            http_session_factory=lambda: http,
            mailbox_client_factory=factory,
            sleep=AsyncMock(),
        )
        return pipeline, client, http

    return _build


def _add_record(session_factory, **fields):
    values = {
        "id": "rec-x",
        "company": "Initech",
        "job_title": "QA Engineer",
        "website": "https://www.linkedin.com/jobs/view/3912345678/",
        "external_job_id": "3912345678",
    }
    values.update(fields)
    with session_factory() as session:
        session.add(JobRecord(**values))
    return values["id"]


# =============================================================================
# Sync
# =============================================================================


class TestSync:
    """Tests for search + import + enrichment in one job."""

    @pytest.mark.asyncio
    async def test_sync_end_to_end(self, build_pipeline, session_factory, sample_account):
        """Application is stored, the rejection merged and the posting enriched."""
        pipeline, client, http = build_pipeline()

        job_id = pipeline.start_sync(sample_account)
        await pipeline.runner.join()

        status = pipeline.get_job_status(job_id)
        assert status["status"] == "completed"
        assert status["type"] == "sync"
        result = status["result"]
        assert len(result["search"]["applications"]) == 1
        assert result["processing"]["applications"]["added"] == 1
        assert result["processing"]["responses"]["processed"] == 1
        assert result["enrichment"]["processed"] == 1
        assert http.requested == [GUEST_URL]
        assert client.closed

        with session_factory() as session:
            record = session.execute(select(JobRecord)).scalar_one()
            assert record.company == "Acme Corp"
            assert record.job_title == "Senior Backend Engineer"
            assert record.external_job_id == "3912345678"
            assert record.response == "Rejected"
            assert len(record.status_checks) == 1
            assert record.employment_type == "Contract"
            assert record.wages_min == 180000
            assert "Recruiter: Jane Roe, Technical Recruiter" in record.notes
            assert ENRICHMENT_MARKER in record.notes
            assert record.enriched_at is not None

            account = session.get(EmailAccount, sample_account)
            assert account.last_import is not None

    @pytest.mark.asyncio
    async def test_second_sync_finds_existing(self, build_pipeline, session_factory, sample_account):
        """Re-running a sync does not duplicate records."""
        pipeline, _, _ = build_pipeline()

        pipeline.start_sync(sample_account)
        await pipeline.runner.join()
        job_id = pipeline.start_sync(sample_account, SearchOptions(ignore_previous_import=True))
        await pipeline.runner.join()

        result = pipeline.get_job_status(job_id)["result"]
        assert result["search"]["applications"][0]["exists"] is True
        assert result["processing"]["applications"]["added"] == 0
        with session_factory() as session:
            assert len(session.execute(select(JobRecord)).scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_enrichment_failure_does_not_fail_sync(self, build_pipeline, sample_account):
        """A posting that cannot be fetched is dropped; the sync still completes."""
        pipeline, _, _ = build_pipeline(pages={})

        job_id = pipeline.start_sync(sample_account)
        await pipeline.runner.join()

        status = pipeline.get_job_status(job_id)
        assert status["status"] == "completed"
        assert status["result"]["enrichment"]["errors"] == 1


# =============================================================================
# Search
# =============================================================================


class TestSearch:
    """Tests for background searches."""

    @pytest.mark.asyncio
    async def test_search_returns_items(self, build_pipeline, sample_account):
        """Search jobs report the classified items without importing them."""
        pipeline, client, _ = build_pipeline()

        job_id = pipeline.start_search(sample_account)
        await pipeline.runner.join()

        status = pipeline.get_job_status(job_id)
        assert status["status"] == "completed"
        assert status["data"]["account_id"] == sample_account
        result = status["result"]
        assert result["applications"][0]["company"] == "Acme Corp"
        assert result["applications"][0]["exists"] is False
        assert result["responses"][0]["response"] == "Rejected"
        assert "import_job_id" not in result
        assert client.opened == ["INBOX"]

    @pytest.mark.asyncio
    async def test_search_folder_option(self, build_pipeline, sample_account):
        """Folders passed in options override the account's list."""
        pipeline, client, _ = build_pipeline(folders={"INBOX": [], "Jobs": _inbox()})

        job_id = pipeline.start_search(sample_account, SearchOptions(folders=["Jobs"]))
        await pipeline.runner.join()

        assert client.opened == ["Jobs"]
        assert len(pipeline.get_job_status(job_id)["result"]["applications"]) == 1

    @pytest.mark.asyncio
    async def test_auto_process_starts_import(self, build_pipeline, session_factory, sample_account):
        """auto_process hands the results to a follow-up import job."""
        pipeline, _, _ = build_pipeline()

        job_id = pipeline.start_search(sample_account, SearchOptions(auto_process=True))
        await pipeline.runner.join()

        import_job_id = pipeline.get_job_status(job_id)["result"]["import_job_id"]
        import_status = pipeline.get_job_status(import_job_id)
        assert import_status["status"] == "completed"
        assert import_status["type"] == "import"
        assert import_status["data"]["parent_job_id"] == job_id
        assert import_status["result"]["applications"]["added"] == 1
        with session_factory() as session:
            assert session.execute(select(JobRecord)).scalar_one().response == "Rejected"

    @pytest.mark.asyncio
    async def test_undecryptable_password_fails_job(self, build_pipeline, session_factory):
        """A password the vault cannot decrypt surfaces as a failed job."""
        with session_factory() as session:
            session.add(EmailAccount(id="acct-2", email="other@example.com", password_ciphertext=""))
        pipeline, client, _ = build_pipeline()

        job_id = pipeline.start_search("acct-2")
        await pipeline.runner.join()

        status = pipeline.get_job_status(job_id)
        assert status["status"] == "failed"
        assert "Authentication failed for other@example.com" in status["error"]
        assert client.opened == []

    @pytest.mark.asyncio
    async def test_unknown_account_fails_job(self, build_pipeline):
        pipeline, _, _ = build_pipeline()

        job_id = pipeline.start_search("acct-missing")
        await pipeline.runner.join()

        status = pipeline.get_job_status(job_id)
        assert status["status"] == "failed"
        assert "acct-missing" in status["error"]

    @pytest.mark.asyncio
    async def test_connection_failure_fails_job(self, build_pipeline, sample_account):
        """Transport errors abort the search and fail the job."""
        pipeline, _, _ = build_pipeline(connect_error=TransportError("imap.example.com", "connection refused"))

        job_id = pipeline.start_sync(sample_account)
        await pipeline.runner.join()

        status = pipeline.get_job_status(job_id)
        assert status["status"] == "failed"
        assert "connection refused" in status["error"]

    @pytest.mark.asyncio
    async def test_dropped_connection_fails_job(self, build_pipeline, sample_account):
        pipeline, _, _ = build_pipeline(folders={"INBOX": ConnectionResetError("reset by peer")})

        job_id = pipeline.start_sync(sample_account)
        await pipeline.runner.join()

        status = pipeline.get_job_status(job_id)
        assert status["status"] == "failed"
        assert "connection lost" in status["error"]

    @pytest.mark.asyncio
    async def test_list_folders(self, build_pipeline, sample_account):
        pipeline, _, _ = build_pipeline(folders={"INBOX": [], "Jobs": []})
        assert await pipeline.list_folders(sample_account) == ["INBOX", "Jobs"]


# =============================================================================
# Import and enrichment
# =============================================================================


class TestImportAndEnrichment:
    """Tests for direct imports, re-enrichment and status queries."""

    def test_import_without_loop_leaves_items_queued(self, build_pipeline):
        """Outside an event loop nothing is started; items wait in the queue."""
        pipeline, _, _ = build_pipeline()
        item = ApplicationItem(
            company="Acme Corp",
            job_title="Senior Backend Engineer",
            website="https://www.linkedin.com/jobs/view/3912345678/",
            external_job_id="3912345678",
        )

        stats = pipeline.import_items([item])

        assert stats["applications"]["added"] == 1
        assert stats["enrichments"]["queued"] == 1
        assert pipeline.get_enrichment_status() == {"is_processing": False, "queue_size": 1}
        assert pipeline.list_active_jobs() == []

    def test_re_enrich(self, build_pipeline, session_factory):
        """Records with a website are queued again; pending ones are not doubled."""
        pipeline, _, _ = build_pipeline()
        record_id = _add_record(session_factory)
        _add_record(session_factory, id="rec-no-site", website="", external_job_id=None)

        assert pipeline.re_enrich([record_id, "rec-no-site", "rec-missing"]) == 1
        assert pipeline.re_enrich([record_id]) == 0

        pipeline.queue.pop()
        assert pipeline.re_enrich([record_id]) == 1

    @pytest.mark.asyncio
    async def test_re_enrich_runs_in_background(self, build_pipeline, session_factory):
        """With a running loop, re-enrichment starts an enrichment job."""
        pipeline, _, http = build_pipeline()
        record_id = _add_record(session_factory, company="Unknown Company")

        pipeline.re_enrich([record_id])
        await pipeline.runner.join()

        assert http.requested == [GUEST_URL]
        assert pipeline.get_enrichment_status() == {"is_processing": False, "queue_size": 0}
        with session_factory() as session:
            record = session.get(JobRecord, record_id)
            assert record.company == "Globex"
            assert record.job_title == "QA Engineer"

    def test_start_enrichment_with_empty_queue(self, build_pipeline):
        pipeline, _, _ = build_pipeline()
        assert pipeline.start_enrichment() is None

    @pytest.mark.asyncio
    async def test_enrichment_job_reports_progress(self, build_pipeline, session_factory):
        pipeline, _, _ = build_pipeline()
        record_id = _add_record(session_factory)
        pipeline.queue.enqueue("https://www.linkedin.com/jobs/view/3912345678/", record_id=record_id)

        job_id = pipeline.start_enrichment()
        await pipeline.runner.join()

        status = pipeline.get_job_status(job_id)
        assert status["status"] == "completed"
        assert status["result"]["processed"] == 1
        assert status["progress"] == 100

    @pytest.mark.asyncio
    async def test_start_enrichment_reuses_pending_job(self, build_pipeline, session_factory):
        """A second start before the pass runs returns the same job."""
        pipeline, _, _ = build_pipeline()
        record_id = _add_record(session_factory)
        pipeline.queue.enqueue("https://www.linkedin.com/jobs/view/3912345678/", record_id=record_id)

        first = pipeline.start_enrichment()
        second = pipeline.start_enrichment()
        await pipeline.runner.join()

        assert first == second
        assert len(pipeline.tracker) == 1
        assert pipeline.get_job_status(first)["result"]["processed"] == 1

    def test_spreadsheet_import(self, build_pipeline, session_factory, tmp_path):
        """Spreadsheet rows become records; LinkedIn rows are queued."""
        path = tmp_path / "applications.csv"
        path.write_text(
            "Company,Job Title,Website,Response\n"
            "Initech,QA Engineer,https://www.linkedin.com/jobs/view/123/,Interview\n"
            "Hooli,Designer,,\n"
        )
        pipeline, _, _ = build_pipeline()

        stats = pipeline.import_spreadsheet(path)

        assert stats["added"] == 2
        assert stats["queued"] == 1
        with session_factory() as session:
            record = session.execute(select(JobRecord).where(JobRecord.company == "Initech")).scalar_one()
            assert record.external_job_id == "123"
            assert record.response == "Interview"

    @pytest.mark.asyncio
    async def test_extract_from_url(self, build_pipeline):
        """LinkedIn URLs are fetched through the guest endpoint."""
        pipeline, _, http = build_pipeline()

        data = await pipeline.extract_from_url("https://www.linkedin.com/jobs/view/3912345678/")

        assert data["company"] == "Globex"
        assert http.requested == [GUEST_URL]

    @pytest.mark.asyncio
    async def test_extract_from_url_failure(self, build_pipeline):
        """Fetch failures give None."""
        pipeline, _, _ = build_pipeline(pages={})
        assert await pipeline.extract_from_url("https://jobs.acme.com/careers/123") is None


# =============================================================================
# Job status and accounts
# =============================================================================


class TestJobStatus:
    """Tests for status queries and scheduled-sync helpers."""

    def test_unknown_job(self, build_pipeline):
        pipeline, _, _ = build_pipeline()
        assert pipeline.get_job_status("job_missing") is None

    @pytest.mark.asyncio
    async def test_finished_jobs_are_not_active(self, build_pipeline, sample_account):
        pipeline, _, _ = build_pipeline()
        pipeline.start_search(sample_account)
        assert len(pipeline.list_active_jobs()) == 1

        await pipeline.runner.join()

        assert pipeline.list_active_jobs() == []
        assert pipeline.cleanup_jobs() == 0

    def test_auto_import_account_ids(self, build_pipeline, session_factory, sample_account):
        """Only accounts flagged for automatic import are returned."""
        with session_factory() as session:
            session.add(EmailAccount(
                id="acct-auto", email="auto@example.com", password_ciphertext="pw", auto_import=True
            ))
        pipeline, _, _ = build_pipeline()

        assert pipeline.auto_import_account_ids() == ["acct-auto"]
