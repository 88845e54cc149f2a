"""Mailbox search driver.

Connects once, walks the configured folders in order, searches each with a
sender/subject/date bounded query and streams fetched messages through the
classifier in fixed-size batches.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from applytrack.exceptions import ParseError, TransportError
from applytrack.mail.classifier import EmailClassifier
from applytrack.mail.client import MailboxClient, MailCredentials
from applytrack.mail.items import SearchResults
from applytrack.mail.message import parse_raw_message

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 25
DEFAULT_LOOKBACK_DAYS = 90

SENDER_PATTERNS = [
    "jobs-noreply@linkedin.com",
    "careers@",
    "talent@",
    "recruiting@",
    "hr@",
    "no-reply@hire.lever.co",
    "notification@",
    "@greenhouse.io",
    "do_not_reply@clearcompany.com",
    "donotreply@",
    "no-reply@",
    "noreply@",
    "applications@",
    "recruitment@",
    "talent-acquisition@",
]

# IMAP SEARCH is case-insensitive, so each keyword appears once
SUBJECT_KEYWORDS = [
    "application",
    "applied",
    "job",
    "position",
    "career",
    "thank you",
    "received",
    "viewed",
    "interview",
    "status",
    "update",
]

ProgressCallback = Callable[[dict], None]


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (as stored by SQLite) as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _or_chain(key: str, values: list[str]) -> str:
    """Fold values into nested IMAP ORs: OR (OR (KEY a) (KEY b)) (KEY c)."""
    expression = f"{key} {_quote(values[0])}"
    for value in values[1:]:
        expression = f"OR ({expression}) ({key} {_quote(value)})"
    return expression


def build_search_criteria(since: datetime) -> str:
    """
    Build the IMAP SEARCH expression for job-related mail.

    Messages match when they come from a known sender pattern or carry a
    job keyword in the subject, and were received on or after ``since``.
    """
    senders = _or_chain("FROM", SENDER_PATTERNS)
    subjects = _or_chain("SUBJECT", SUBJECT_KEYWORDS)
    return f"SINCE {since:%d-%b-%Y} OR ({senders}) ({subjects})"


def resolve_cutoff(
    last_import: Optional[datetime],
    ignore_previous_import: bool = False,
    timeframe_days: int = DEFAULT_LOOKBACK_DAYS,
    now: Optional[datetime] = None,
) -> datetime:
    """
    Pick the date a search starts from.

    Args:
        last_import: When the account was last imported, if ever
        ignore_previous_import: Search the full lookback window anyway
        timeframe_days: Lookback window used without a usable last import
        now: Reference time, defaults to the current UTC time

    Returns:
        Timezone-aware cutoff datetime
    """
    now = ensure_aware(now) or datetime.now(timezone.utc)
    if last_import is not None and not ignore_previous_import:
        return ensure_aware(last_import)
    return now - timedelta(days=timeframe_days)


class MailboxSearch:
    """Searches one mailbox and classifies what it finds."""

    def __init__(
        self,
        client_factory: Callable[[MailCredentials], MailboxClient] = MailboxClient,
        classifier: Optional[EmailClassifier] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        """
        Initialize search driver.

        Args:
            client_factory: Builds a mailbox client from credentials
            classifier: Email classifier, a fresh one by default
            batch_size: Messages fetched per round trip
        """
        self.client_factory = client_factory
        self.classifier = classifier or EmailClassifier()
        self.batch_size = max(1, batch_size)

    async def run(
        self,
        credentials: MailCredentials,
        folders: list[str],
        since: datetime,
        progress: Optional[ProgressCallback] = None,
    ) -> SearchResults:
        """
        Search folders in order and classify every matching message.

        Args:
            credentials: Mailbox connection settings
            folders: Folder names, processed strictly in this order
            since: Cutoff date for the search
            progress: Optional callback receiving folder and message counters

        Returns:
            SearchResults with the classified items

        Raises:
            AuthError: If the login is rejected
            TransportError: If the server cannot be reached or the connection
                drops mid-search; a single failing folder is only skipped
        """
        results = SearchResults()
        stats = {"folders_total": len(folders), "folders_processed": 0, "emails_total": 0, "emails_processed": 0}
        criteria = build_search_criteria(since)

        client = self.client_factory(credentials)
        await client.connect()
        try:
            for index, folder in enumerate(folders):
                stats["folders_processed"] = index
                self._report(progress, stats)
                try:
                    await self._search_folder(client, folder, criteria, results, stats, progress)
                except TransportError as e:
                    if not client.connected:
                        raise
                    logger.error("Skipping folder %s: %s", folder, e)
                    results.failed_folders.append(folder)
            stats["folders_processed"] = len(folders)
            self._report(progress, stats)
        finally:
            await client.close()

        logger.info(
            "Search of %s finished: %s (%d messages, %d ignored)",
            credentials.username,
            results.summary(),
            results.messages_seen,
            results.ignored,
        )
        return results

    async def _search_folder(self, client, folder, criteria, results, stats, progress) -> None:
        logger.info("Processing folder: %s", folder)
        await client.open_folder(folder, readonly=True)
        uids = await client.search(criteria)
        if not uids:
            return

        logger.info("Found %d matching emails in %s", len(uids), folder)
        stats["emails_total"] += len(uids)

        for start in range(0, len(uids), self.batch_size):
            batch = uids[start:start + self.batch_size]
            try:
                messages = await client.fetch(batch)
            except TransportError as e:
                if not client.connected:
                    raise
                logger.error("Error fetching batch %d in %s: %s", start // self.batch_size + 1, folder, e)
                stats["emails_processed"] += len(batch)
                continue

            for uid, raw in messages:
                self._process_message(uid, raw, folder, results)
                results.messages_seen += 1
            stats["emails_processed"] += len(batch)
            self._report(progress, stats)

    def _process_message(self, uid: str, raw: bytes, folder: str, results: SearchResults) -> None:
        try:
            email = parse_raw_message(raw, uid, folder)
            results.add(self.classifier.classify(email))
        except ParseError as e:
            logger.warning("Dropping message %s in %s: %s", uid, folder, e)
        except Exception as e:
            logger.error("Error processing message %s in %s: %s", uid, folder, e)

    def _report(self, progress: Optional[ProgressCallback], stats: dict) -> None:
        if progress is None:
            return
        try:
            progress(dict(stats))
        except Exception as e:
            logger.warning("Progress callback failed: %s", e)


async def list_mailbox_folders(
    credentials: MailCredentials,
    client_factory: Callable[[MailCredentials], MailboxClient] = MailboxClient,
) -> list[str]:
    """Connect, list selectable folders and disconnect."""
    async with client_factory(credentials) as client:
        return await client.list_folders()
