"""Envelope extraction from raw RFC 822 bytes.

Uses ``email.parser.BytesParser`` in headers-only mode, so the body of
a large message is not walked just to read its subject and date.
"""

from __future__ import annotations

import email.parser
import email.policy
import email.utils
from datetime import UTC, datetime

from .models import Envelope


def extract_envelope(raw_bytes: bytes) -> Envelope:
    """Return subject, date and sender from the message headers.

    An absent or unparseable ``Date`` header yields ``date=None``.
    """
    parser = email.parser.BytesParser(policy=email.policy.default)
    headers = parser.parsebytes(raw_bytes, headersonly=True)

    return Envelope(
        subject=str(headers.get("Subject", "")),
        date=_parse_date(headers.get("Date")),
        sender=str(headers.get("From", "")),
    )


def _parse_date(header_value: object) -> datetime | None:
    if header_value is None:
        return None
    try:
        parsed = email.utils.parsedate_to_datetime(str(header_value))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        # RFC 5322 "-0000" means UTC with unknown local zone
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
