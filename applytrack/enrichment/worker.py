"""Single background worker draining the enrichment queue."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional
from urllib.parse import urlparse

from config.settings import Settings, settings as default_settings
from applytrack.enrichment.queue import EnrichmentQueue, QueueItem
from applytrack.exceptions import RateLimitError

logger = logging.getLogger(__name__)

ProcessItem = Callable[[QueueItem], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class BackoffPolicy:
    """Inter-request delay and rate-limit backoff settings."""

    standard_delay: float = 0.7
    backoff_base: float = 60.0
    max_consecutive_failures: int = 3
    # Host suffix -> standard delay override
    site_delays: dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "BackoffPolicy":
        config = config or default_settings
        return cls(
            standard_delay=config.enrichment_standard_delay_seconds,
            backoff_base=config.enrichment_backoff_delay_seconds,
            max_consecutive_failures=config.enrichment_max_consecutive_failures,
            site_delays={"linkedin.com": config.linkedin_standard_delay_seconds},
        )

    def standard_delay_for(self, url: str) -> float:
        host = (urlparse(url).hostname or "").lower()
        for suffix, delay in self.site_delays.items():
            if host == suffix or host.endswith("." + suffix):
                return delay
        return self.standard_delay

    def delay_for(self, url: str, consecutive_failures: int) -> float:
        """Standard delay after a success, base * 2**failures after rate limits."""
        if consecutive_failures <= 0:
            return self.standard_delay_for(url)
        return self.backoff_base * (2 ** consecutive_failures)


class EnrichmentWorker:
    """Drains the queue one item at a time.

    At most one pass runs at once; a second call while a pass is active
    returns immediately.
    """

    def __init__(
        self,
        queue: EnrichmentQueue,
        process_item: ProcessItem,
        policy: Optional[BackoffPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """
        Initialize worker.

        Args:
            queue: Queue to drain
            process_item: Fetches, extracts and merges one item; raises
                RateLimitError for retryable rate limits
            policy: Delay and backoff settings
            sleep: Awaitable sleep, replaceable in tests
        """
        self.queue = queue
        self.process_item = process_item
        self.policy = policy or BackoffPolicy.from_settings()
        self._sleep = sleep
        self._processing = False
        self.consecutive_failures = 0

    @property
    def is_processing(self) -> bool:
        return self._processing

    async def run_pass(self, progress: Optional[Callable[[dict], None]] = None) -> dict:
        """
        Process queued items until the queue is empty or rate limits persist.

        Args:
            progress: Optional callback receiving the running counters

        Returns:
            Counters: processed, errors, requeued (and busy=True when another
            pass was already running)
        """
        result = {"processed": 0, "errors": 0, "requeued": 0}
        if self._processing:
            logger.debug("Enrichment pass already running")
            result["busy"] = True
            return result

        self._processing = True
        self.consecutive_failures = 0
        logger.info("Enrichment pass started with %d queued items", len(self.queue))
        try:
            while True:
                item = self.queue.pop()
                if item is None:
                    break

                await self._sleep(self.policy.delay_for(item.url, self.consecutive_failures))

                try:
                    await self.process_item(item)
                except RateLimitError as e:
                    self.consecutive_failures += 1
                    self.queue.push_front(item)
                    result["requeued"] += 1
                    logger.warning(
                        "Rate limited on %s (HTTP %s), failure %d/%d",
                        item.url, e.status, self.consecutive_failures, self.policy.max_consecutive_failures,
                    )
                    if self.consecutive_failures >= self.policy.max_consecutive_failures:
                        logger.error(
                            "Stopping enrichment after %d consecutive rate limits; %d items left queued",
                            self.consecutive_failures, len(self.queue),
                        )
                        break
                    continue
                except Exception as e:
                    result["errors"] += 1
                    logger.error("Dropping enrichment of %s: %s", item.url, e)
                    continue
                else:
                    self.consecutive_failures = 0
                    result["processed"] += 1
                finally:
                    if progress is not None:
                        progress(dict(result, remaining=len(self.queue)))
        finally:
            self._processing = False

        logger.info(
            "Enrichment pass finished: %d processed, %d errors, %d requeued",
            result["processed"], result["errors"], result["requeued"],
        )
        return result
