"""Run the configured shell command against each saved attachment."""

from __future__ import annotations

import asyncio
import re
import shlex
from pathlib import Path

import structlog

from .errors import CommandError
from .models import CommandResult

logger = structlog.get_logger()

PLACEHOLDER = "%s"
_DIRECTIVE = re.compile(r"%[%s]")
_DOUBLE_QUOTE_SPECIALS = re.compile(r'([\\"$`])')


def split_template(template: str) -> tuple[str, str]:
    """Split *template* around its single ``%s``, turning ``%%`` into ``%``.

    Raises :class:`ValueError` unless exactly one placeholder is present.
    """
    pieces: list[str] = []
    current: list[str] = []
    pos = 0
    for match in _DIRECTIVE.finditer(template):
        current.append(template[pos : match.start()])
        if match.group() == "%%":
            current.append("%")
        else:
            pieces.append("".join(current))
            current = []
        pos = match.end()
    current.append(template[pos:])
    pieces.append("".join(current))

    if len(pieces) != 2:
        raise ValueError(
            f"command template {template!r} must contain exactly one {PLACEHOLDER} placeholder"
        )
    return pieces[0], pieces[1]


def _quote_state(text: str) -> str | None:
    """Return ``"'"`` or ``'"'`` if *text* ends inside that quote, else ``None``."""
    state: str | None = None
    escaped = False
    for ch in text:
        if escaped:
            escaped = False
        elif state == "'":
            if ch == "'":
                state = None
        elif ch == "\\":
            escaped = True
        elif state == '"':
            if ch == '"':
                state = None
        elif ch in "'\"":
            state = ch
    return state


def render_command(template: str, path: str) -> str:
    """Substitute *path* into *template*, escaped for its quoting context.

    The template is run by ``/bin/sh``, so pipes and redirects in it keep
    working; the file name (taken from message headers) never does.  The
    context is the shell quoting state at the placeholder: unquoted, or
    anywhere inside a single- or double-quoted string.
    """
    head, tail = split_template(template)

    state = _quote_state(head)
    if state == "'":
        value = path.replace("'", "'\\''")
    elif state == '"':
        value = _DOUBLE_QUOTE_SPECIALS.sub(r"\\\1", path)
    else:
        value = shlex.quote(path)
    return f"{head}{value}{tail}"


class PostProcessor:
    """Execute a command template per saved file.

    With ``capture=False`` the command inherits our standard streams.
    With ``capture=True`` its combined stdout and stderr are written to
    ``<file>.out`` whatever the exit status.  A non-zero exit raises
    :class:`CommandError` in both modes.  Commands are never retried.
    """

    def __init__(self, template: str, *, capture: bool) -> None:
        self._template = template
        self._capture = capture

    async def run(self, saved_path: Path) -> CommandResult:
        command = render_command(self._template, str(saved_path))
        logger.debug("command_starting", command=command)
        if self._capture:
            return await self._run_captured(command, saved_path)
        return await self._run_inherited(command)

    async def _run_inherited(self, command: str) -> CommandResult:
        try:
            proc = await asyncio.create_subprocess_shell(command)
        except OSError as exc:
            raise CommandError(f"failed to start command: {exc}") from exc
        result = CommandResult(exit_status=await proc.wait())
        if not result.ok:
            raise CommandError(f"command exited with status {result.exit_status}", result)
        logger.info("command_succeeded")
        return result

    async def _run_captured(self, command: str, saved_path: Path) -> CommandResult:
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            raise CommandError(f"failed to start command: {exc}") from exc
        output, _ = await proc.communicate()
        result = CommandResult(exit_status=proc.returncode or 0, output=output)

        sidecar = sidecar_path(saved_path)
        try:
            sidecar.write_bytes(output)
        except OSError as exc:
            raise CommandError(f"failed to write command output to {sidecar}: {exc}") from exc

        if not result.ok:
            raise CommandError(
                f"command exited with status {result.exit_status}, output in {sidecar}",
                result,
            )
        logger.debug("command_succeeded", output=str(sidecar))
        return result


def sidecar_path(saved_path: Path) -> Path:
    return saved_path.with_name(saved_path.name + ".out")
