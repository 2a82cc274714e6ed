"""Lazy MIME traversal: one fetched message → its leaf parts."""

from __future__ import annotations

import email.parser
import email.policy
from collections.abc import Iterator
from email import errors as email_errors
from email.message import EmailMessage
from typing import Final

import structlog

from .errors import MessageParseError, PartParseError
from .models import MailMessage, MimePart

logger = structlog.get_logger()

END_OF_PARTS: Final = None

# Defects after which the stdlib parser has given up on a multipart body
# and kept it as an opaque string payload.
_BROKEN_MULTIPART = (
    email_errors.NoBoundaryInMultipartDefect,
    email_errors.StartBoundaryNotFoundDefect,
    email_errors.MultipartInvariantViolationDefect,
)


class AttachmentExtractor:
    """Yield the leaf MIME parts of a message, top to bottom."""

    def __init__(self) -> None:
        self._parser = email.parser.BytesParser(policy=email.policy.default)

    def extract(self, message: MailMessage) -> Iterator[MimePart]:
        """Lazily yield every leaf part of *message*.

        The sequence is single-pass.  A corrupted multipart section is
        logged and skipped without affecting its siblings.  Raises
        :class:`MessageParseError` when the message itself cannot be read.
        """
        entity = self._parse(message)

        if entity.get_content_maintype() != "multipart":
            yield MimePart(entity)
            return

        reader = _PartReader(entity)
        while True:
            try:
                part = reader.next_part()
            except PartParseError as exc:
                logger.error("multipart_section_unreadable", uid=message.uid, error=str(exc))
                continue
            if part is END_OF_PARTS:
                return
            yield part

    def _parse(self, message: MailMessage) -> EmailMessage:
        try:
            entity = self._parser.parsebytes(message.body)
        except (email_errors.MessageError, ValueError) as exc:
            raise MessageParseError(f"failed to read message {message.uid}: {exc}") from exc

        broken = _broken_multipart_defect(entity)
        if broken is not None:
            raise MessageParseError(
                f"failed to read message {message.uid}: {broken.__class__.__name__}"
            )
        return entity


class _PartReader:
    """Depth-first cursor over the leaves of a multipart entity.

    :meth:`next_part` returns the next leaf, :data:`END_OF_PARTS` once
    the tree is exhausted, or raises :class:`PartParseError` for a
    section that cannot be read.  Reading may continue after an error.
    """

    def __init__(self, root: EmailMessage) -> None:
        self._stack: list[Iterator[EmailMessage]] = [root.iter_parts()]
        self._position = 0

    def next_part(self) -> MimePart | None:
        while self._stack:
            entity = next(self._stack[-1], None)
            if entity is None:
                self._stack.pop()
                continue

            self._position += 1
            broken = _broken_multipart_defect(entity)
            if broken is not None:
                raise PartParseError(
                    f"section {self._position} ({entity.get_content_type()}): "
                    f"{broken.__class__.__name__}"
                )

            if entity.get_content_maintype() == "multipart":
                self._stack.append(entity.iter_parts())
                continue
            return MimePart(entity)

        return END_OF_PARTS


def _broken_multipart_defect(entity: EmailMessage) -> email_errors.MessageDefect | None:
    for defect in entity.defects:
        if isinstance(defect, _BROKEN_MULTIPART):
            return defect
    if entity.get_content_maintype() == "multipart" and not entity.is_multipart():
        return email_errors.MultipartInvariantViolationDefect()
    return None
