"""Terminal progress display for the message loop."""

from __future__ import annotations

from types import TracebackType

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TaskProgressColumn, TextColumn


class MessageProgress:
    """Progress bar over the matched messages.

    When disabled (DEBUG verbosity, where every message is logged
    anyway) all methods are no-ops apart from :meth:`complete`.
    """

    def __init__(self, total: int, *, enabled: bool, console: Console | None = None) -> None:
        self._total = total
        self._enabled = enabled
        self._console = console or Console()
        self._progress: Progress | None = None
        self._task_id = None

    def __enter__(self) -> MessageProgress:
        if self._enabled:
            self._progress = Progress(
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                MofNCompleteColumn(),
                console=self._console,
            )
            self._progress.start()
            self._task_id = self._progress.add_task("Processing", total=self._total)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None

    def advance(self) -> None:
        if self._progress is not None and self._task_id is not None:
            self._progress.update(self._task_id, advance=1)

    def complete(self) -> None:
        """Print the final human-readable completion line."""
        self._console.print("Processing complete")
