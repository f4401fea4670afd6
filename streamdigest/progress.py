"""
Progress rendering — one transient rich bar per file, on stderr.

    progress = ProgressTracker(action="verify")
    progress.start()
    with progress.file("layer.tar", size) as fp:   # size None: compressed input
        fp.advance(len(chunk))
    progress.stop()

NullProgress has the same surface and draws nothing (--quiet).
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)


class FileProgress:

    def __init__(self, progress: Progress, task_id: TaskID) -> None:
        self._progress = progress
        self._task_id = task_id

    def advance(self, n: int) -> None:
        self._progress.advance(self._task_id, n)


class ProgressTracker:
    """Byte counts, speed and ETA for each file being hashed."""

    def __init__(self, action: str) -> None:
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn(f"[bold cyan]{action}[/]"),
            BarColumn(bar_width=None),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            TextColumn("[dim]{task.description}"),
            console=Console(stderr=True),
            transient=True,
            expand=True,
        )

    def start(self) -> None:
        self._progress.start()

    def stop(self) -> None:
        self._progress.stop()

    @contextmanager
    def file(self, filename: str, size: int | None) -> Generator[FileProgress, None, None]:
        task_id = self._progress.add_task(filename, total=size)
        try:
            yield FileProgress(self._progress, task_id)
        finally:
            self._progress.remove_task(task_id)


class _NullFileProgress:
    def advance(self, n: int) -> None: ...


class NullProgress:

    def start(self) -> None: ...
    def stop(self) -> None: ...

    @contextmanager
    def file(self, filename: str, size: int | None) -> Generator[_NullFileProgress, None, None]:
        yield _NullFileProgress()
