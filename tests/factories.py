"""Builders and fakes shared by the test modules."""
from datetime import datetime, timezone
from email.message import EmailMessage as MimeMessage
from email.utils import format_datetime
from typing import Optional

from applytrack.exceptions import TransportError
from applytrack.mail.message import EmailMessage


def build_email(
    subject: str,
    sender: str = "jobs-noreply@linkedin.com",
    sender_name: str = "LinkedIn",
    html: Optional[str] = None,
    text: str = "",
    date: Optional[datetime] = None,
    message_id: str = "1",
) -> EmailMessage:
    """Parsed email as the search driver would produce it."""
    return EmailMessage(
        id=message_id,
        subject=subject,
        from_address=sender,
        from_name=sender_name,
        date=date or datetime(2026, 3, 3, 12, 0, tzinfo=timezone.utc),
        body_text=text,
        body_html=html,
    )


def build_raw_email(
    subject: str,
    sender: str = "LinkedIn <jobs-noreply@linkedin.com>",
    html: Optional[str] = None,
    text: str = "See the HTML version.",
    date: Optional[datetime] = None,
) -> bytes:
    """RFC 822 bytes as returned by an IMAP FETCH."""
    message = MimeMessage()
    message["Subject"] = subject
    message["From"] = sender
    message["To"] = "me@example.com"
    message["Date"] = format_datetime(date or datetime(2026, 3, 3, 12, 0, tzinfo=timezone.utc))
    message.set_content(text)
    if html:
        message.add_alternative(html, subtype="html")
    return message.as_bytes()


LINKEDIN_APPLICATION_HTML = """
<html><body>
  <h2>Your application was sent to Acme Corp</h2>
  <a href="https://www.linkedin.com/comm/jobs/view/3912345678/?trackingId=abc">Senior Backend Engineer</a>
  <p>Acme Corp · San Francisco, CA (Hybrid)</p>
  <p>Applied on March 3, 2026</p>
</body></html>
"""

LINKEDIN_REJECTION_HTML = """
<html><body>
  <p>Thank you for your interest in the Senior Backend Engineer role at Acme Corp.</p>
  <p>Unfortunately, we will not be moving forward with your application.</p>
</body></html>
"""

LINKEDIN_POSTING = """
<html><body>
<section class="top-card-layout">
  <h1 class="top-card-layout__title">Staff Data Scientist</h1>
  <a class="topcard__org-name-link" href="https://www.linkedin.com/company/globex">Globex</a>
  <span class="topcard__flavor topcard__flavor--bullet">New York, NY (Remote)</span>
</section>
<div class="show-more-less-html__markup">We are hiring. Compensation $180,000/yr - $220,000/yr.</div>
<ul class="description__job-criteria-list">
  <li class="description__job-criteria-item">
    <h3 class="description__job-criteria-subheader">Employment type</h3>
    <span class="description__job-criteria-text">Contract</span>
  </li>
</ul>
<div class="message-the-recruiter">
  <h3 class="base-main-card__title">Jane Roe</h3>
  <h4 class="base-main-card__subtitle">Technical Recruiter</h4>
</div>
</body></html>
"""


class FakeMailboxClient:
    """In-memory stand-in for MailboxClient.

    ``folders`` maps folder name to a list of raw messages; a folder mapped
    to an exception raises it on open, a missing folder fails like SELECT NO.
    An OSError drops the connection the way a reset socket does.
    """

    def __init__(self, folders: dict, connect_error: Optional[Exception] = None):
        self.folders = folders
        self.connect_error = connect_error
        self.selected = None
        self.opened = []
        self.fetch_batches = []
        self.closed = False
        self.last_criteria = None
        self.connected = False

    async def connect(self):
        if self.connect_error:
            raise self.connect_error
        self.connected = True

    async def list_folders(self):
        return ["INBOX", *[name for name in self.folders if name != "INBOX"]]

    async def open_folder(self, name, readonly=True):
        self.opened.append(name)
        if not self.connected:
            raise TransportError("imap.example.com", "not connected")
        content = self.folders.get(name)
        if isinstance(content, OSError):
            self.connected = False
            raise TransportError("imap.example.com", f"SELECT {name} failed, connection lost: {content}") from content
        if isinstance(content, Exception):
            raise content
        if content is None:
            raise TransportError("imap.example.com", f"SELECT {name} returned NO")
        self.selected = name
        return len(content)

    async def search(self, criteria):
        self.last_criteria = criteria
        return [str(index + 1) for index in range(len(self.folders[self.selected]))]

    async def fetch(self, uids):
        self.fetch_batches.append(list(uids))
        messages = self.folders[self.selected]
        return [(uid, messages[int(uid) - 1]) for uid in uids]

    async def close(self):
        self.connected = False
        self.closed = True

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, *exc_info):
        await self.close()


class FakeResponse:
    """aiohttp response stand-in."""

    def __init__(self, status: int = 200, body: str = ""):
        self.status = status
        self.body = body

    async def text(self):
        return self.body


class _async_context:
    """Helper to create an async context manager from a mock response."""

    def __init__(self, resp):
        self.resp = resp

    async def __aenter__(self):
        return self.resp

    async def __aexit__(self, *args):
        pass


class FakeHttpSession:
    """aiohttp.ClientSession stand-in serving pages by URL."""

    def __init__(self, pages: dict):
        self.pages = pages
        self.requested = []

    def get(self, url, **kwargs):
        self.requested.append(url)
        page = self.pages.get(url)
        if page is None:
            return _async_context(FakeResponse(404))
        if isinstance(page, FakeResponse):
            return _async_context(page)
        return _async_context(FakeResponse(200, page))

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass
