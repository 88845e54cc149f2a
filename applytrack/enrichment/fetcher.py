"""HTTP fetching of job posting pages."""
import asyncio
import logging
import random

import aiohttp

from applytrack.exceptions import RateLimitError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

RATE_LIMIT_STATUSES = (429, 403)


async def fetch_page(
    session: aiohttp.ClientSession,
    url: str,
    *,
    timeout: float = 15.0,
    max_redirects: int = 5,
    retries: int = 2,
    headers: dict | None = None,
) -> str:
    """GET a page and return its body text.

    Retries 5xx responses, timeouts and connection errors with exponential
    backoff + jitter. Rate-limit answers are not retried here; the
    enrichment worker owns that backoff.

    Raises:
        RateLimitError: On HTTP 429 or 403
        TransportError: On any other non-200 answer or when all retries fail
    """
    last_error: Exception | None = None
    for attempt in range(retries):
        try:
            async with session.get(
                url,
                headers=headers or DEFAULT_HEADERS,
                timeout=aiohttp.ClientTimeout(total=timeout),
                max_redirects=max_redirects,
            ) as resp:
                if resp.status in RATE_LIMIT_STATUSES:
                    raise RateLimitError(url, resp.status)
                if resp.status >= 500:
                    last_error = TransportError(url, "server error", status=resp.status)
                elif resp.status != 200:
                    raise TransportError(url, "unexpected response", status=resp.status)
                else:
                    return await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            last_error = e

        if attempt < retries - 1:
            wait = (2 ** attempt) + random.uniform(0, 1)
            logger.warning(
                "Request to %s failed: %s, retrying in %.1fs (attempt %d/%d)",
                url, last_error, wait, attempt + 1, retries,
            )
            await asyncio.sleep(wait)

    if isinstance(last_error, TransportError):
        raise last_error
    raise TransportError(url, str(last_error) or type(last_error).__name__)
