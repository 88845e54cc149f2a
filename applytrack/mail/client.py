"""IMAP mailbox client.

imaplib is blocking, so every server round trip runs in a worker thread via
``asyncio.to_thread``; callers see an async interface and the event loop
stays free while the server answers.
"""
import asyncio
import imaplib
import logging
import re
import ssl
from dataclasses import dataclass, field
from typing import Optional

from applytrack.exceptions import AuthError, TransportError

logger = logging.getLogger(__name__)

LIST_RESPONSE = re.compile(r'\((?P<flags>[^)]*)\)\s+(?P<delimiter>"[^"]*"|NIL)\s+(?P<name>.+)')
FETCH_UID = re.compile(rb"UID\s+(\d+)")


@dataclass
class MailCredentials:
    """Connection settings for one mailbox."""

    username: str
    password: str = field(repr=False)
    host: str = "imap.gmail.com"
    port: int = 993
    use_tls: bool = True
    reject_unauthorized: bool = True


class MailboxClient:
    """Async wrapper around an IMAP4 connection."""

    def __init__(self, credentials: MailCredentials, timeout: float = 30.0):
        """
        Initialize mailbox client.

        Args:
            credentials: Host, port, TLS flags and login
            timeout: Socket timeout in seconds
        """
        self.credentials = credentials
        self.timeout = timeout
        self._imap: Optional[imaplib.IMAP4] = None

    @property
    def connected(self) -> bool:
        return self._imap is not None

    def _ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if not self.credentials.reject_unauthorized:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def _open(self) -> imaplib.IMAP4:
        creds = self.credentials
        if creds.use_tls:
            imap = imaplib.IMAP4_SSL(
                creds.host, creds.port, ssl_context=self._ssl_context(), timeout=self.timeout
            )
        else:
            imap = imaplib.IMAP4(creds.host, creds.port, timeout=self.timeout)
        try:
            imap.login(creds.username, creds.password)
        except imaplib.IMAP4.error as e:
            imap.shutdown()
            raise AuthError(creds.username, str(e)) from e
        return imap

    async def connect(self) -> None:
        """Open the connection and log in.

        Raises:
            AuthError: If the server rejects the login
            TransportError: If the server cannot be reached
        """
        if self._imap is not None:
            return
        try:
            self._imap = await asyncio.to_thread(self._open)
        except AuthError:
            raise
        except (OSError, imaplib.IMAP4.error) as e:
            raise TransportError(f"{self.credentials.host}:{self.credentials.port}", str(e)) from e
        logger.info("Connected to %s as %s", self.credentials.host, self.credentials.username)

    def _require(self) -> imaplib.IMAP4:
        if self._imap is None:
            raise TransportError(self.credentials.host, "not connected")
        return self._imap

    async def _call(self, description: str, func, *args):
        imap = self._require()
        try:
            status, data = await asyncio.to_thread(func, imap, *args)
        except (OSError, imaplib.IMAP4.abort) as e:
            # Socket is gone; later calls fail fast and connected turns False
            self._imap = None
            raise TransportError(self.credentials.host, f"{description} failed, connection lost: {e}") from e
        except imaplib.IMAP4.error as e:
            raise TransportError(self.credentials.host, f"{description} failed: {e}") from e
        if status != "OK":
            raise TransportError(self.credentials.host, f"{description} returned {status}: {data!r}")
        return data

    async def list_folders(self) -> list[str]:
        """List selectable folder names, always including INBOX."""
        data = await self._call("LIST", lambda imap: imap.list())
        folders = []
        for line in data or []:
            if not line:
                continue
            decoded = line.decode("utf-8", errors="ignore") if isinstance(line, bytes) else str(line)
            match = LIST_RESPONSE.match(decoded)
            if not match or "\\Noselect" in match.group("flags"):
                continue
            name = match.group("name").strip().strip('"')
            if name not in folders:
                folders.append(name)
        if "INBOX" not in folders:
            folders.insert(0, "INBOX")
        return folders

    async def open_folder(self, name: str, readonly: bool = True) -> int:
        """Select a folder and return its message count."""
        quoted = f'"{name}"' if " " in name and not name.startswith('"') else name
        data = await self._call(f"SELECT {name}", lambda imap: imap.select(quoted, readonly=readonly))
        try:
            return int(data[0])
        except (TypeError, ValueError, IndexError):
            return 0

    async def search(self, criteria: str) -> list[str]:
        """Run a UID SEARCH in the selected folder."""
        data = await self._call("SEARCH", lambda imap: imap.uid("SEARCH", None, criteria))
        if not data or not data[0]:
            return []
        return data[0].decode().split()

    async def fetch(self, uids: list[str]) -> list[tuple[str, bytes]]:
        """Fetch full RFC 822 bodies for a batch of UIDs, in server order."""
        if not uids:
            return []
        data = await self._call(
            f"FETCH {len(uids)} messages",
            lambda imap: imap.uid("FETCH", ",".join(uids), "(UID RFC822)"),
        )
        messages = []
        for part in data or []:
            if not isinstance(part, tuple) or len(part) < 2:
                continue
            match = FETCH_UID.search(part[0])
            uid = match.group(1).decode() if match else ""
            messages.append((uid, part[1]))
        return messages

    async def close(self) -> None:
        """Log out and drop the connection; errors here are only logged."""
        if self._imap is None:
            return
        imap, self._imap = self._imap, None
        try:
            await asyncio.to_thread(imap.logout)
        except (OSError, imaplib.IMAP4.error) as e:
            logger.warning("IMAP logout failed: %s", e)

    async def __aenter__(self) -> "MailboxClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
