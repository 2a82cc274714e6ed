"""Shared test fixtures for the attachment downloader test suite."""

from __future__ import annotations

from datetime import UTC, datetime
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path

import pytest

from imap_attachments.config import ImapConfig, SearchConfig, Settings
from imap_attachments.envelope import extract_envelope
from imap_attachments.models import MailMessage

MESSAGE_DATE = datetime(2025, 6, 2, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def imap_config() -> ImapConfig:
    return ImapConfig(
        server="imap.test.com",
        port=993,
        use_ssl=True,
        username="testuser",
        password="testpass",
        folder="INBOX",
        read_only=True,
    )


@pytest.fixture
def search_config() -> SearchConfig:
    return SearchConfig(unseen_only=True, subject_filter="", sender_filter="")


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    path = tmp_path / "output"
    path.mkdir()
    return path


@pytest.fixture
def settings(imap_config: ImapConfig, search_config: SearchConfig, output_dir: Path) -> Settings:
    return Settings(
        output_dir=output_dir,
        attachment_types="application/pdf",
        command="",
        log_level="INFO",
        imap=imap_config,
        search=search_config,
    )


# ------------------------------------------------------------------
# Sample EML builders
# ------------------------------------------------------------------


def _build_plain_email(
    *,
    subject: str = "Test Subject",
    from_addr: str = "sender@example.com",
    body: str = "Hello, World!",
    date: str | None = "Mon, 02 Jun 2025 12:00:00 +0000",
) -> bytes:
    """Build a simple plain-text email as raw bytes."""
    msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = "recipient@example.com"
    if date is not None:
        msg["Date"] = date
    return msg.as_bytes()


def _build_attachment(
    filename: str | None,
    content_type: str,
    payload: bytes,
    *,
    name_in: str = "disposition",
) -> MIMEBase:
    """Build a base64 attachment part.

    *name_in* selects where the file name goes: ``"disposition"``
    (``filename=``), ``"content-type"`` (``name=``) or ``"both"``.
    """
    maintype, subtype = content_type.split("/", 1)
    params = {}
    if filename is not None and name_in in ("content-type", "both"):
        params["name"] = filename
    part = MIMEBase(maintype, subtype, **params)
    part.set_payload(payload)
    encoders.encode_base64(part)
    if filename is not None and name_in in ("disposition", "both"):
        part.add_header("Content-Disposition", "attachment", filename=filename)
    else:
        part.add_header("Content-Disposition", "attachment")
    return part


def _build_multipart_email(
    *,
    body_text: str = "Plain body",
    attachments: list[tuple[str | None, str, bytes]] | None = None,
    name_in: str = "disposition",
    subject: str = "Multipart Email",
) -> bytes:
    """Build a multipart/mixed email with a text body and optional attachments."""
    msg = MIMEMultipart("mixed")
    msg["Subject"] = subject
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    msg["Date"] = "Mon, 02 Jun 2025 12:00:00 +0000"
    msg.attach(MIMEText(body_text, "plain"))

    for filename, content_type, payload in attachments or []:
        msg.attach(_build_attachment(filename, content_type, payload, name_in=name_in))

    return msg.as_bytes()


def _make_message(raw: bytes, uid: str = "1") -> MailMessage:
    return MailMessage(uid=uid, envelope=extract_envelope(raw), body=raw)


# Nested multipart/alternative whose boundary never appears, followed by a
# readable PDF sibling.
CORRUPTED_SECTION_EML = (
    b"From: sender@example.com\r\n"
    b"Subject: Broken section\r\n"
    b"Date: Mon, 02 Jun 2025 12:00:00 +0000\r\n"
    b"MIME-Version: 1.0\r\n"
    b'Content-Type: multipart/mixed; boundary="outer"\r\n'
    b"\r\n"
    b"--outer\r\n"
    b'Content-Type: multipart/alternative; boundary="inner"\r\n'
    b"\r\n"
    b"the inner boundary is missing\r\n"
    b"--outer\r\n"
    b'Content-Type: application/pdf; name="after.pdf"\r\n'
    b"Content-Transfer-Encoding: base64\r\n"
    b"\r\n"
    b"JVBERi0xLjQ=\r\n"
    b"--outer--\r\n"
)

# Top-level multipart without a boundary parameter: the message is unreadable.
UNREADABLE_EML = (
    b"From: sender@example.com\r\n"
    b"Subject: No boundary\r\n"
    b"Date: Mon, 02 Jun 2025 12:00:00 +0000\r\n"
    b"MIME-Version: 1.0\r\n"
    b"Content-Type: multipart/mixed\r\n"
    b"\r\n"
    b"--whatever\r\n"
    b"Content-Type: application/pdf\r\n"
    b"\r\n"
    b"data\r\n"
)


@pytest.fixture
def plain_eml_bytes() -> bytes:
    return _build_plain_email()


@pytest.fixture
def pdf_and_png_eml_bytes() -> bytes:
    return _build_multipart_email(
        attachments=[
            ("a.pdf", "application/pdf", b"%PDF-1.4 fake pdf content"),
            ("b.png", "image/png", b"\x89PNG fake png content"),
        ],
        name_in="content-type",
    )
