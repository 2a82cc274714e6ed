"""Drive one run: fetch matching messages and save their attachments.

One producer task streams fetched messages into a bounded queue while
the driver consumes them one at a time::

    ImapSession.fetch ──queue──▶ extract ▶ filter ▶ write ▶ post-process

Failures are isolated per part and per message; only mailbox failures
(and, when configured, unreadable messages) end the run.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum

import structlog
from rich.console import Console

from .config import Settings
from .errors import (
    CommandError,
    ContentTypeError,
    MailboxError,
    MessageParseError,
    UnnamedAttachmentError,
    WriteError,
)
from .extractor import AttachmentExtractor
from .filter import AttachmentFilter
from .mailbox import END_OF_MESSAGES, ImapSession
from .models import MailMessage, MimePart
from .postprocess import PostProcessor
from .progress import MessageProgress
from .writer import AttachmentWriter

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_FAILURE = 1


class PipelineState(str, Enum):
    """Where the driver is in its run."""

    IDLE = "idle"
    CONNECTED = "connected"
    FILTERING = "filtering"
    STREAMING = "streaming"
    DRAINING = "draining"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class RunStats:
    messages: int = 0
    saved: int = 0
    skipped: int = 0
    failed: int = 0


class PipelineDriver:
    """Run the whole pipeline once and report an exit status.

    Call ``asyncio.run(driver.run())``; the return value is the process
    exit code.
    """

    def __init__(
        self,
        settings: Settings,
        session: ImapSession | None = None,
        *,
        console: Console | None = None,
    ) -> None:
        self._settings = settings
        self._session = session or ImapSession(settings.imap)
        self._console = console or Console()
        self._extractor = AttachmentExtractor()
        self._filter = AttachmentFilter(settings.allowed_types, settings.output_dir)
        self._writer = AttachmentWriter()
        self._post_processor: PostProcessor | None = None
        if settings.command:
            self._post_processor = PostProcessor(
                settings.command,
                capture=settings.capture_output,
            )
        self.state = PipelineState.IDLE
        self.stats = RunStats()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self) -> int:
        try:
            ok = await self._run()
        finally:
            await self._session.logout()

        self.state = PipelineState.SUCCEEDED if ok else PipelineState.FAILED
        logger.info(
            "run_complete",
            status=self.state.value,
            messages=self.stats.messages,
            saved=self.stats.saved,
            skipped=self.stats.skipped,
            failed=self.stats.failed,
        )
        return EXIT_OK if ok else EXIT_FAILURE

    async def _run(self) -> bool:
        imap = self._settings.imap
        try:
            await self._session.connect()
            info = await self._session.select_folder(imap.folder, imap.read_only)
        except MailboxError as exc:
            logger.error("imap_session_failed", error=str(exc))
            return False

        self.state = PipelineState.CONNECTED
        if info.message_count == 0:
            logger.info("no_messages_in_mailbox", folder=info.name)
            return True

        self.state = PipelineState.FILTERING
        try:
            uids = await self._session.search(self._settings.search.criteria())
        except MailboxError as exc:
            logger.error("imap_search_failed", error=str(exc))
            return False

        if not uids:
            logger.info("no_matching_messages", folder=info.name)
            return True

        logger.debug("processing_filtered_messages", count=len(uids))
        self.state = PipelineState.STREAMING
        return await self._stream(uids)

    # ------------------------------------------------------------------
    # Producer / consumer
    # ------------------------------------------------------------------

    async def _stream(self, uids: list[str]) -> bool:
        queue: asyncio.Queue[MailMessage | None] = asyncio.Queue(
            maxsize=self._settings.queue_size,
        )
        producer = asyncio.create_task(self._session.fetch(uids, queue))

        consumer_ok = True
        drained = False
        progress = MessageProgress(
            len(uids),
            enabled=self._settings.log_level != "DEBUG",
            console=self._console,
        )
        try:
            with progress:
                seq = 0
                while (message := await queue.get()) is not END_OF_MESSAGES:
                    seq += 1
                    if not await self._consume(seq, message):
                        consumer_ok = False
                        break
                    progress.advance()
                else:
                    drained = True
        finally:
            if not drained and not producer.done():
                producer.cancel()
                await asyncio.wait([producer])
            progress.complete()

        self.state = PipelineState.DRAINING
        if producer.cancelled():
            return False
        try:
            await producer
        except MailboxError as exc:
            logger.error("imap_fetch_failed", error=str(exc))
            return False
        return consumer_ok

    async def _consume(self, seq: int, message: MailMessage) -> bool:
        """Process one message; ``False`` means the run must stop."""
        envelope = message.envelope
        logger.debug(
            "processing_message",
            seq=seq,
            uid=message.uid,
            subject=envelope.subject,
            date=envelope.date.isoformat() if envelope.date else None,
        )
        self.stats.messages += 1
        try:
            for part in self._extractor.extract(message):
                await self._process_part(message, part)
        except MessageParseError as exc:
            self.stats.failed += 1
            logger.error("message_unreadable", uid=message.uid, error=str(exc))
            return self._settings.on_message_error == "continue"
        return True

    # ------------------------------------------------------------------
    # Per part
    # ------------------------------------------------------------------

    async def _process_part(self, message: MailMessage, part: MimePart) -> None:
        try:
            candidate = self._filter.accept(part)
        except ContentTypeError as exc:
            self.stats.failed += 1
            logger.error("attachment_content_type_invalid", uid=message.uid, error=str(exc))
            return
        except UnnamedAttachmentError as exc:
            self.stats.skipped += 1
            if self._settings.strict_names:
                logger.warning("attachment_unnamed", uid=message.uid, error=str(exc))
            else:
                logger.debug("attachment_unnamed", uid=message.uid, error=str(exc))
            return

        if candidate is None:
            self.stats.skipped += 1
            return

        try:
            saved = await asyncio.to_thread(
                self._writer.write, candidate, message.envelope.date
            )
        except WriteError as exc:
            self.stats.failed += 1
            logger.error("attachment_write_failed", uid=message.uid, error=str(exc))
            return
        self.stats.saved += 1

        if self._post_processor is None:
            return
        try:
            await self._post_processor.run(saved.path)
        except CommandError as exc:
            self.stats.failed += 1
            logger.error(
                "command_failed",
                path=str(saved.path),
                exit_status=exc.result.exit_status if exc.result else None,
                error=str(exc),
            )
