from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..models.import_session import ImportSession, SessionStatus

"""Progress publication and display.

- SnapshotChannel: observers subscribe to ImportSession snapshots published
  by the orchestrator (the orchestrator never knows how they are rendered).
- compute_progress: overall percentage from completed files plus the
  intra-file batch fraction.
- ProgressTracker: a snapshot listener rendering a single tqdm bar (TTY only,
  disabled in CI to avoid ANSI control sequence spam).
"""

__all__ = [
    "Listener",
    "SnapshotChannel",
    "compute_progress",
    "is_tty_enabled",
    "ProgressTracker",
    "MAX_PROGRESS_BEFORE_COMPLETION",
]

logger = logging.getLogger(__name__)

Listener = Callable[[ImportSession], None]

# 100 is reserved for the completed state
MAX_PROGRESS_BEFORE_COMPLETION = 99.0


def compute_progress(completed_files: int, batch_fraction: float, total_files: int) -> float:
    """Overall progress percentage while a session is processing.

    Args:
        completed_files: Files that reached a terminal state
        batch_fraction: Completed share (0..1) of the current file's batches
        total_files: Files in the session

    Returns:
        Percentage in [0, 99]
    """
    if total_files <= 0:
        return 0.0
    fraction = min(max(batch_fraction, 0.0), 1.0)
    raw = (completed_files + fraction) / total_files * 100.0
    return min(raw, MAX_PROGRESS_BEFORE_COMPLETION)


class SnapshotChannel:
    """Fan-out of session snapshots to subscribed listeners."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, snapshot: ImportSession) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                # A broken observer must not abort the import
                logger.exception("snapshot listener %r failed", listener)

    def __len__(self) -> int:
        return len(self._listeners)


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    """tqdm progress bar driven by session snapshots.

    The bar counts files reaching a terminal state; the description shows
    the file currently being processed and the postfix carries running
    totals. In non-TTY environments the tracker only keeps counters.
    """

    def __init__(self, total_files: int, *, description: str = "Importing files") -> None:
        self.total_files = total_files
        self.description = description
        self.finished_files = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_files,
                desc=description,
                unit="file",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def __call__(self, snapshot: ImportSession) -> None:
        self.update(snapshot)

    def update(self, snapshot: ImportSession) -> None:
        finished = sum(1 for f in snapshot.files if f.status.is_terminal)
        delta = finished - self.finished_files
        self.finished_files = finished

        if not self.enabled or self.pbar is None:
            return
        if delta > 0:
            self.pbar.update(delta)
        current = snapshot.current_file
        if snapshot.status == SessionStatus.PROCESSING and current:
            self.pbar.set_description(f"{self.description} ({current})")
        else:
            self.pbar.set_description(self.description)
        self.pbar.set_postfix(
            completed=snapshot.completed_files,
            failed=snapshot.failed_files,
            rows=snapshot.total_processed_rows,
        )

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
