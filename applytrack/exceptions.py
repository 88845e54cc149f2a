"""Error taxonomy for the ingestion and enrichment pipeline."""
from typing import Optional


class PipelineError(Exception):
    """Base exception for pipeline errors."""

    pass


class TransportError(PipelineError):
    """Raised when a mail server or HTTP endpoint cannot be reached.

    Aborts the current operation and surfaces as a background job failure.
    """

    def __init__(self, target: str, reason: str, status: Optional[int] = None):
        self.target = target
        self.reason = reason
        self.status = status
        if status is not None:
            super().__init__(f"Transport error for {target} (HTTP {status}): {reason}")
        else:
            super().__init__(f"Transport error for {target}: {reason}")


class RateLimitError(TransportError):
    """Raised when an enrichment target answers HTTP 429 or 403."""

    def __init__(self, url: str, status: int):
        self.url = url
        super().__init__(url, "rate limited", status=status)


class AuthError(PipelineError):
    """Raised for bad credentials or a password that cannot be decrypted."""

    def __init__(self, account: str, reason: str):
        self.account = account
        self.reason = reason
        super().__init__(f"Authentication failed for {account}: {reason}")


class ParseError(PipelineError):
    """Raised when a single message or page cannot be classified or extracted."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Could not parse {source}: {reason}")


class NotFoundError(PipelineError):
    """Raised when no stored record matches a status or response item."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"No {kind} found for {key}")
