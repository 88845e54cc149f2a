"""Email message model and RFC 822 parsing."""
import email
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email import policy
from email.utils import parseaddr, parsedate_to_datetime
from typing import Optional

from applytrack.exceptions import ParseError

logger = logging.getLogger(__name__)


@dataclass
class EmailMessage:
    """Parsed email message."""

    id: str
    subject: str
    from_address: str
    from_name: str
    date: datetime
    body_text: str = ""
    body_html: Optional[str] = None
    to_address: str = ""
    folder: str = "INBOX"

    @property
    def sender(self) -> str:
        """Display form of the sender, e.g. 'Acme Careers <jobs@acme.com>'."""
        if self.from_name:
            return f"{self.from_name} <{self.from_address}>"
        return self.from_address

    @property
    def sender_domain(self) -> str:
        """Domain part of the sender address, lowercased."""
        if "@" not in self.from_address:
            return ""
        return self.from_address.rsplit("@", 1)[1].strip(">").lower()


def html_to_text(html: str) -> str:
    """Rough HTML to text conversion for bodies without a plain part."""
    text = re.sub(r"<(script|style)[^>]*>.*?</\1>", " ", html, flags=re.DOTALL | re.IGNORECASE)
    text = re.sub(r"<[^>]+>", " ", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def _extract_body(message) -> tuple[str, Optional[str]]:
    """Extract text and HTML body from a MIME message."""
    body_text = ""
    body_html = None

    for part in message.walk():
        if part.is_multipart() or part.get_content_disposition() == "attachment":
            continue
        content_type = part.get_content_type()
        if content_type not in ("text/plain", "text/html"):
            continue
        try:
            content = part.get_content()
        except (LookupError, UnicodeDecodeError):
            payload = part.get_payload(decode=True) or b""
            content = payload.decode("utf-8", errors="ignore")

        if content_type == "text/plain" and not body_text:
            body_text = content
        elif content_type == "text/html" and body_html is None:
            body_html = content

    if not body_text and body_html:
        body_text = html_to_text(body_html)

    return body_text, body_html


def parse_raw_message(raw: bytes, message_id: str, folder: str = "INBOX") -> EmailMessage:
    """Parse raw RFC 822 bytes into an EmailMessage.

    Args:
        raw: Message bytes as returned by IMAP FETCH (RFC822)
        message_id: Server-side UID of the message
        folder: Folder the message was fetched from

    Returns:
        EmailMessage

    Raises:
        ParseError: If the bytes cannot be parsed as a message
    """
    try:
        message = email.message_from_bytes(raw, policy=policy.default)
    except Exception as e:
        raise ParseError(f"message {message_id}", str(e)) from e

    from_name, from_address = parseaddr(str(message.get("From", "")))

    date_header = message.get("Date")
    try:
        date = parsedate_to_datetime(str(date_header)) if date_header else None
    except (TypeError, ValueError):
        date = None
    if date is None:
        date = datetime.now(timezone.utc)
    elif date.tzinfo is None:
        date = date.replace(tzinfo=timezone.utc)

    body_text, body_html = _extract_body(message)

    return EmailMessage(
        id=message_id,
        subject=str(message.get("Subject", "") or "").strip(),
        from_address=from_address,
        from_name=from_name.strip().strip('"'),
        to_address=str(message.get("To", "") or ""),
        date=date,
        body_text=body_text,
        body_html=body_html,
        folder=folder,
    )
