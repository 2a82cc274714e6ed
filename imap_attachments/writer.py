"""Persist accepted attachments to the output directory."""

from __future__ import annotations

import os
import shutil
from datetime import datetime
from pathlib import Path

import structlog

from .errors import WriteError
from .models import AttachmentCandidate, SavedAttachment

logger = structlog.get_logger()


class AttachmentWriter:
    """Write decoded attachment bodies to disk.

    An existing file at the destination is replaced.  A file left
    incomplete by a failed copy is removed before the error is raised.
    """

    def write(self, candidate: AttachmentCandidate, timestamp: datetime | None) -> SavedAttachment:
        path = candidate.path
        try:
            out = open(path, "wb")
        except OSError as exc:
            raise WriteError(f"failed to create file {path}: {exc}") from exc

        try:
            with out, candidate.part.open_body() as body:
                shutil.copyfileobj(body, out)
        except OSError as exc:
            _remove_partial(path)
            raise WriteError(f"error writing file {path}: {exc}") from exc

        if timestamp is not None:
            _set_times(path, timestamp)

        logger.info("attachment_saved", name=candidate.filename, path=str(path))
        return SavedAttachment(path=path, original_timestamp=timestamp)


def _set_times(path: Path, timestamp: datetime) -> None:
    seconds = timestamp.timestamp()
    try:
        os.utime(path, (seconds, seconds))
    except OSError as exc:
        logger.warning("attachment_timestamp_not_set", path=str(path), error=str(exc))


def _remove_partial(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("partial_file_not_removed", path=str(path), error=str(exc))
