"""Data models for messages, MIME parts and pipeline results."""

from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from pathlib import Path
from typing import BinaryIO

from .errors import ContentTypeError


@dataclass(frozen=True)
class Envelope:
    """Message metadata independent of the body."""

    subject: str
    date: datetime | None
    sender: str


@dataclass(frozen=True)
class MailMessage:
    """A message fetched from the mailbox, consumed once by the pipeline."""

    uid: str
    envelope: Envelope
    body: bytes


@dataclass(frozen=True)
class MailboxInfo:
    """Result of selecting a folder."""

    name: str
    message_count: int


@dataclass(frozen=True)
class SearchCriteria:
    """Optional search filters, combined with AND when present."""

    unseen_only: bool = True
    subject_contains: str = ""
    sender_contains: str = ""


class MimePart:
    """A leaf node of a message's MIME tree."""

    def __init__(self, entity: EmailMessage) -> None:
        self._entity = entity

    def __repr__(self) -> str:
        return f"MimePart({self._entity.get('Content-Type', '')!r})"

    @property
    def content_type(self) -> str:
        """The lower-cased ``maintype/subtype``.

        Raises :class:`ContentTypeError` when a Content-Type header is
        present but does not hold a ``maintype/subtype`` pair.  A part
        without the header gets the RFC 2045 default.
        """
        raw = self._entity.get("Content-Type")
        if raw is not None:
            value = str(raw).split(";", 1)[0].strip()
            if value.count("/") != 1 or value.startswith("/") or value.endswith("/"):
                raise ContentTypeError(f"malformed content type {str(raw)!r}")
        return self._entity.get_content_type()

    @property
    def content_type_params(self) -> dict[str, str]:
        return _header_params(self._entity.get("Content-Type"))

    @property
    def disposition_params(self) -> dict[str, str]:
        return _header_params(self._entity.get("Content-Disposition"))

    def open_body(self) -> BinaryIO:
        """Return a stream over the transfer-decoded body."""
        payload = self._entity.get_payload(decode=True)
        if payload is None and self._entity.is_multipart():
            # message/rfc822 and friends hold the embedded message as a subpart
            payload = b"".join(sub.as_bytes() for sub in self._entity.get_payload())
        return io.BytesIO(payload or b"")


@dataclass(frozen=True)
class AttachmentCandidate:
    """An allow-listed part with a resolved, sanitised destination."""

    part: MimePart
    content_type: str
    filename: str
    path: Path


@dataclass(frozen=True)
class SavedAttachment:
    """An attachment written to disk."""

    path: Path
    original_timestamp: datetime | None


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one post-processing command."""

    exit_status: int
    output: bytes = b""

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


def _header_params(header: object) -> dict[str, str]:
    params = getattr(header, "params", None)
    if not params:
        return {}
    return {key: str(value) for key, value in params.items()}
