"""IMAP attachment downloader: save allow-listed attachments and post-process them."""

from .config import ImapConfig, SearchConfig, Settings
from .extractor import AttachmentExtractor
from .filter import AttachmentFilter
from .mailbox import ImapSession
from .models import (
    AttachmentCandidate,
    CommandResult,
    Envelope,
    MailboxInfo,
    MailMessage,
    MimePart,
    SavedAttachment,
    SearchCriteria,
)
from .pipeline import PipelineDriver, PipelineState
from .postprocess import PostProcessor
from .writer import AttachmentWriter

__all__ = [
    "AttachmentCandidate",
    "AttachmentExtractor",
    "AttachmentFilter",
    "AttachmentWriter",
    "CommandResult",
    "Envelope",
    "ImapConfig",
    "ImapSession",
    "MailMessage",
    "MailboxInfo",
    "MimePart",
    "PipelineDriver",
    "PipelineState",
    "PostProcessor",
    "SavedAttachment",
    "SearchConfig",
    "SearchCriteria",
    "Settings",
]
