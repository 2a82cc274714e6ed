"""Typed failures raised by the mailbox session and the attachment pipeline.

The pipeline driver decides per type whether a failure ends the run,
aborts a single message, or only skips the current MIME part.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import CommandResult


class ImapAttachmentsError(Exception):
    """Base class for every error raised by this package."""


# ----------------------------------------------------------------------
# Mailbox (fatal for the run)
# ----------------------------------------------------------------------


class MailboxError(ImapAttachmentsError):
    """The IMAP session could not complete an operation."""


class ConnectError(MailboxError):
    """The server could not be reached or the TLS handshake failed."""


class AuthError(MailboxError):
    """The server rejected the credentials."""


class SelectError(MailboxError):
    """The configured folder could not be selected."""


class SearchError(MailboxError):
    """The SEARCH command failed."""


class FetchError(MailboxError):
    """Streaming message bodies from the server failed."""


# ----------------------------------------------------------------------
# Message level (aborts one message, or the run when configured to)
# ----------------------------------------------------------------------


class MessageParseError(ImapAttachmentsError):
    """The message body is not a readable MIME entity."""


# ----------------------------------------------------------------------
# Part level (logged, processing moves on to the next part)
# ----------------------------------------------------------------------


class PartError(ImapAttachmentsError):
    """Processing of a single MIME part failed."""


class PartParseError(PartError):
    """A multipart section could not be read."""


class ContentTypeError(PartError):
    """The part carries a malformed Content-Type header."""


class UnnamedAttachmentError(PartError):
    """Neither a ``name`` nor a ``filename`` parameter yields a usable name."""


class WriteError(PartError):
    """The attachment could not be written to the output directory."""


class CommandError(PartError):
    """The post-processing command failed.

    ``result`` is set when the command ran and exited non-zero; it is
    ``None`` when the command could not be started or its output could not
    be written.
    """

    def __init__(self, message: str, result: CommandResult | None = None) -> None:
        super().__init__(message)
        self.result = result
