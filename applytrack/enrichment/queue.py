"""In-memory enrichment queue."""
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from applytrack.extraction.fields import synthesize_job_id
from applytrack.extraction.urls import extract_job_id_from_url
from applytrack.persistence.models import utcnow

logger = logging.getLogger(__name__)


@dataclass
class QueueItem:
    """A posting URL waiting to be fetched and merged into a record."""

    url: str
    record_id: Optional[str] = None
    job_data: dict = field(default_factory=dict)
    queued_at: datetime = field(default_factory=utcnow)

    @property
    def dedup_key(self) -> str:
        """External id when known, else one derived from the URL."""
        return (
            self.job_data.get("external_job_id")
            or extract_job_id_from_url(self.url)
            or synthesize_job_id(self.url)
        )


class EnrichmentQueue:
    """FIFO queue of enrichment items, de-duplicated by external id.

    Not persisted: pending items are lost on restart.
    """

    def __init__(self):
        self._items: deque[QueueItem] = deque()
        self._seen: set[str] = set()

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def enqueue(
        self,
        url: str,
        job_data: Optional[dict] = None,
        record_id: Optional[str] = None,
        force: bool = False,
    ) -> bool:
        """
        Add a URL to the back of the queue.

        Args:
            url: Posting URL to fetch
            job_data: Basic job data carried with the item
            record_id: Stored record to merge into
            force: Queue even when the id was seen before (re-enrichment);
                an item already pending is never queued twice

        Returns:
            True if the item was queued
        """
        if not url:
            return False
        item = QueueItem(url=url, record_id=record_id, job_data=dict(job_data or {}))
        key = item.dedup_key
        if key in self._seen and not force:
            logger.debug("Skipping already queued posting %s", key)
            return False
        if any(pending.dedup_key == key for pending in self._items):
            logger.debug("Posting %s is already pending", key)
            return False
        self._seen.add(key)
        self._items.append(item)
        logger.info("Queued %s for enrichment (%d pending)", url, len(self._items))
        return True

    def pop(self) -> Optional[QueueItem]:
        """Remove and return the front item."""
        return self._items.popleft() if self._items else None

    def push_front(self, item: QueueItem) -> None:
        """Return an item to the front after a retryable failure."""
        self._items.appendleft(item)

    def pending(self) -> list[QueueItem]:
        """Snapshot of the queued items in order."""
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()
        self._seen.clear()
