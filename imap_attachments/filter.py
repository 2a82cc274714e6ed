"""Decide which MIME parts are attachments worth saving."""

from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import Path

import structlog

from .errors import UnnamedAttachmentError
from .models import AttachmentCandidate, MimePart

logger = structlog.get_logger()

# Anything outside word characters, space, dot and hyphen, including
# control and shell metacharacters.
_UNSAFE_CHARS = re.compile(r"[^\w .\-]")


class AttachmentFilter:
    """Accept parts whose content type is allow-listed and that carry a name."""

    def __init__(self, allowed_types: Iterable[str], output_dir: Path) -> None:
        self._allowed = frozenset(t.lower() for t in allowed_types)
        self._output_dir = output_dir

    def accept(self, part: MimePart) -> AttachmentCandidate | None:
        """Return a candidate for *part*, or ``None`` if its type is not wanted.

        Raises :class:`~imap_attachments.errors.ContentTypeError` for a
        malformed Content-Type and :class:`UnnamedAttachmentError` when no
        usable filename can be resolved.
        """
        content_type = part.content_type
        if content_type not in self._allowed:
            logger.debug(
                "part_skipped",
                content_type=content_type,
                expected=sorted(self._allowed),
            )
            return None

        raw_name = resolve_filename(part)
        if raw_name is None:
            raise UnnamedAttachmentError(f"{content_type} part has no name or filename")

        filename = sanitize_filename(raw_name)
        if filename is None:
            raise UnnamedAttachmentError(f"{content_type} part name {raw_name!r} is unusable")

        return AttachmentCandidate(
            part=part,
            content_type=content_type,
            filename=filename,
            path=self._destination(filename),
        )

    def _destination(self, filename: str) -> Path:
        path = self._output_dir / filename
        if path.resolve().parent != self._output_dir.resolve():
            raise UnnamedAttachmentError(f"name {filename!r} escapes the output directory")
        return path


def resolve_filename(part: MimePart) -> str | None:
    """Content-Type ``name`` first, then Content-Disposition ``filename``."""
    for value in (part.content_type_params.get("name"), part.disposition_params.get("filename")):
        if value and value.strip():
            return value
    return None


def sanitize_filename(name: str) -> str | None:
    """Reduce *name* to a bare, shell-inert file name.

    Returns ``None`` if nothing usable remains.
    """
    base = name.replace("\\", "/").rsplit("/", 1)[-1].strip()
    base = _UNSAFE_CHARS.sub("_", base)
    if base in ("", ".", ".."):
        return None
    return base
