"""Async IMAP session wrapping stdlib imaplib with asyncio.to_thread."""

from __future__ import annotations

import asyncio
import imaplib
import threading
from collections.abc import Callable, Sequence
from typing import Any, Final, TypeVar

import structlog

from .config import ImapConfig
from .envelope import extract_envelope
from .errors import AuthError, ConnectError, FetchError, SearchError, SelectError
from .models import MailboxInfo, MailMessage, SearchCriteria

logger = structlog.get_logger()

T = TypeVar("T")

END_OF_MESSAGES: Final = None
"""Put on the queue by :meth:`ImapSession.fetch` once no more messages follow."""


class ImapSession:
    """Async-friendly IMAP session.

    All blocking ``imaplib`` operations are wrapped with
    ``asyncio.to_thread()`` so fetching overlaps with message processing
    on the event loop.

    ``imaplib`` connections are not thread-safe, so every command holds
    ``_lock``; a worker thread left running by a cancelled fetch finishes
    its command before :meth:`logout` can start.
    """

    def __init__(self, config: ImapConfig) -> None:
        self._config = config
        self._conn: imaplib.IMAP4_SSL | imaplib.IMAP4 | None = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection and log in."""
        await asyncio.to_thread(self._locked, self._connect_sync)
        host, port = self._config.address
        logger.info("imap_connected", host=host, port=port)

    def _connect_sync(self) -> None:
        host, port = self._config.address
        try:
            if self._config.use_ssl:
                conn = imaplib.IMAP4_SSL(host, port)
            else:
                conn = imaplib.IMAP4(host, port)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise ConnectError(f"cannot connect to {host}:{port}: {exc}") from exc

        try:
            conn.login(self._config.username, self._config.password.get_secret_value())
        except imaplib.IMAP4.error as exc:
            _quiet_logout(conn)
            raise AuthError(f"login failed for {self._config.username}: {exc}") from exc
        except OSError as exc:
            raise ConnectError(f"connection lost during login: {exc}") from exc

        self._conn = conn

    async def select_folder(self, name: str, read_only: bool) -> MailboxInfo:
        """Select *name*; an empty folder is a normal result, not an error."""
        info = await asyncio.to_thread(self._locked, self._select_sync, name, read_only)
        logger.debug("imap_folder_selected", folder=info.name, messages=info.message_count)
        return info

    def _select_sync(self, name: str, read_only: bool) -> MailboxInfo:
        conn = self._require_conn()
        try:
            status, data = conn.select(_quote(name), readonly=read_only)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise SelectError(f"failed to select mailbox {name!r}: {exc}") from exc
        if status != "OK":
            raise SelectError(f"failed to select mailbox {name!r}: {_text(data)}")
        try:
            count = int(data[0]) if data and data[0] else 0
        except ValueError as exc:
            raise SelectError(f"unexpected SELECT response {data!r}") from exc
        return MailboxInfo(name=name, message_count=count)

    async def logout(self) -> None:
        """Log out; errors are ignored."""
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await asyncio.to_thread(self._locked, _quiet_logout, conn)
            logger.debug("imap_logged_out")

    # ------------------------------------------------------------------
    # Message retrieval
    # ------------------------------------------------------------------

    async def search(self, criteria: SearchCriteria) -> list[str]:
        """Return the UIDs matching *criteria* in ascending order."""
        return await asyncio.to_thread(self._locked, self._search_sync, criteria)

    def _search_sync(self, criteria: SearchCriteria) -> list[str]:
        conn = self._require_conn()
        terms = build_search_terms(criteria)
        try:
            status, data = conn.uid("SEARCH", None, *terms)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise SearchError(f"search failed: {exc}") from exc
        if status != "OK":
            raise SearchError(f"search failed: {_text(data)}")
        if not data or not data[0]:
            return []
        uids = [uid.decode() for uid in data[0].split()]
        logger.debug("imap_search_complete", terms=" ".join(terms), matched=len(uids))
        return uids

    async def fetch(self, uids: Sequence[str], queue: asyncio.Queue[MailMessage | None]) -> None:
        """Stream the messages for *uids* into *queue*.

        The queue is closed with :data:`END_OF_MESSAGES` whether the fetch
        completes or fails, so a consumer draining it always terminates.
        A bounded queue makes this coroutine wait while the consumer is
        behind.  Failures are raised as :class:`FetchError` after closing.
        """
        try:
            for uid in uids:
                message = await asyncio.to_thread(self._locked, self._fetch_sync, uid)
                if message is None:
                    continue
                await queue.put(message)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise FetchError(f"fetch failed: {exc}") from exc
        finally:
            task = asyncio.current_task()
            if task is None or not task.cancelling():
                await queue.put(END_OF_MESSAGES)

    def _fetch_sync(self, uid: str) -> MailMessage | None:
        conn = self._require_conn()
        status, data = conn.uid("FETCH", uid, "(RFC822)")
        if status != "OK":
            raise imaplib.IMAP4.error(f"FETCH {uid} returned {status}: {_text(data)}")

        raw_bytes = next(
            (item[1] for item in data or [] if isinstance(item, tuple) and len(item) > 1),
            None,
        )
        if raw_bytes is None:
            # Expunged between SEARCH and FETCH
            logger.warning("imap_message_vanished", uid=uid)
            return None

        logger.debug("imap_message_fetched", uid=uid, size=len(raw_bytes))
        return MailMessage(uid=uid, envelope=extract_envelope(raw_bytes), body=raw_bytes)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _locked(self, func: Callable[..., T], *args: Any) -> T:
        with self._lock:
            return func(*args)

    def _require_conn(self) -> imaplib.IMAP4:
        if self._conn is None:
            raise ConnectError("not connected")
        return self._conn


def build_search_terms(criteria: SearchCriteria) -> list[str]:
    """Translate *criteria* into IMAP SEARCH keys; IMAP ANDs them."""
    terms: list[str] = []
    if criteria.unseen_only:
        terms.append("UNSEEN")
    if criteria.subject_contains:
        terms.extend(["SUBJECT", _quote(criteria.subject_contains, always=True)])
    if criteria.sender_contains:
        terms.extend(["FROM", _quote(criteria.sender_contains, always=True)])
    return terms or ["ALL"]


def _quote(value: str, *, always: bool = False) -> str:
    """Render *value* as an IMAP quoted string when needed."""
    if value.startswith('"') and value.endswith('"') and len(value) > 1:
        return value
    if not always and value and not any(ch in value for ch in ' "\\(){%*'):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _text(data: object) -> str:
    if isinstance(data, list) and data and isinstance(data[0], bytes):
        return data[0].decode(errors="replace")
    return str(data)


def _quiet_logout(conn: imaplib.IMAP4) -> None:
    try:
        conn.logout()
    except (imaplib.IMAP4.error, OSError):
        pass
