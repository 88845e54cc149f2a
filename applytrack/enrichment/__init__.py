"""Background enrichment of job records from posting pages."""
from .fetcher import fetch_page
from .queue import EnrichmentQueue, QueueItem
from .worker import BackoffPolicy, EnrichmentWorker

__all__ = [
    "fetch_page",
    "EnrichmentQueue",
    "QueueItem",
    "BackoffPolicy",
    "EnrichmentWorker",
]
