from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from registry_import.models.file_status import FileState, FileStatus
from registry_import.models.import_session import ImportSession, SessionStatus
from registry_import.services.progress import (
    MAX_PROGRESS_BEFORE_COMPLETION,
    ProgressTracker,
    SnapshotChannel,
    compute_progress,
)


def _snapshot(states: list[FileState], current: int = 0, status=SessionStatus.PROCESSING) -> ImportSession:
    files = tuple(FileStatus(name=f"f{i}.xml", status=s) for i, s in enumerate(states, start=1))
    return ImportSession(session_id="s", year=2024, files=files, status=status, current_file_index=current)


@pytest.mark.parametrize(
    "completed, fraction, total, expected",
    [
        (0, 0.0, 4, 0.0),
        (1, 0.0, 4, 25.0),
        (1, 0.5, 4, 37.5),
        (2, 0.0, 0, 0.0),
        (0, 2.0, 4, 25.0),
        (0, -1.0, 4, 0.0),
    ],
)
def test_compute_progress(completed, fraction, total, expected) -> None:
    assert compute_progress(completed, fraction, total) == pytest.approx(expected)


def test_compute_progress_never_reports_completion() -> None:
    assert compute_progress(3, 0.0, 3) == MAX_PROGRESS_BEFORE_COMPLETION
    assert compute_progress(2, 1.0, 3) == MAX_PROGRESS_BEFORE_COMPLETION


def test_channel_publishes_to_subscribers_until_unsubscribed() -> None:
    channel = SnapshotChannel()
    seen: list[ImportSession] = []
    unsubscribe = channel.subscribe(seen.append)
    first = ImportSession.idle()

    channel.publish(first)
    unsubscribe()
    channel.publish(ImportSession(session_id="later"))

    assert seen == [first]
    assert len(channel) == 0
    # second unsubscribe is harmless
    unsubscribe()


def test_channel_isolates_failing_listener() -> None:
    channel = SnapshotChannel()
    seen: list[ImportSession] = []
    channel.subscribe(MagicMock(side_effect=RuntimeError("boom")))
    channel.subscribe(seen.append)

    channel.publish(ImportSession.idle())

    assert len(seen) == 1


def test_tracker_counts_without_tty() -> None:
    with patch("registry_import.services.progress.is_tty_enabled", return_value=False):
        tracker = ProgressTracker(total_files=3)

    tracker(_snapshot([FileState.COMPLETED, FileState.PROCESSING, FileState.PENDING], current=2))
    tracker(_snapshot([FileState.COMPLETED, FileState.ERROR, FileState.PROCESSING], current=3))

    assert tracker.enabled is False
    assert tracker.pbar is None
    assert tracker.finished_files == 2
    tracker.close()


def test_tracker_drives_tqdm_bar_on_tty() -> None:
    bar = MagicMock()
    with patch("registry_import.services.progress.is_tty_enabled", return_value=True), patch(
        "registry_import.services.progress.tqdm", return_value=bar
    ) as tqdm_cls:
        with ProgressTracker(total_files=2) as tracker:
            tracker(_snapshot([FileState.PROCESSING, FileState.PENDING], current=1))
            tracker(_snapshot([FileState.COMPLETED, FileState.PROCESSING], current=2))
            tracker(_snapshot([FileState.COMPLETED, FileState.COMPLETED], status=SessionStatus.COMPLETED))

    tqdm_cls.assert_called_once()
    assert tqdm_cls.call_args.kwargs["total"] == 2
    assert [c.args[0] for c in bar.update.call_args_list] == [1, 1]
    bar.set_description.assert_any_call("Importing files (f2.xml)")
    assert bar.set_description.call_args.args[0] == "Importing files"
    bar.set_postfix.assert_called_with(completed=2, failed=0, rows=0)
    bar.close.assert_called_once()
