"""Progress log and cancellation token."""

import pytest

from notewright.core.cancellation import CancellationToken
from notewright.core.errors import RunCancelledError
from notewright.core.progress import (
    ProgressTracker,
    StepStatus,
)


def test_steps_start_in_progress_and_notify_listeners() -> None:
    tracker = ProgressTracker()
    seen = []
    tracker.add_listener(lambda entry: seen.append((entry.index, entry.status, entry.caption)))

    step = tracker.append_step("Upload", "Checking", "upload")
    step.update_caption("Uploading")
    step.update_state(StepStatus.COMPLETE)

    assert seen == [
        (0, StepStatus.IN_PROGRESS, "Checking"),
        (0, StepStatus.IN_PROGRESS, "Uploading"),
        (0, StepStatus.COMPLETE, "Uploading"),
    ]
    assert tracker.steps[0].icon == "upload"


def test_cancellation_keeps_the_first_reason() -> None:
    token = CancellationToken()
    token.raise_if_cancelled("start")

    token.cancel("user pressed stop")
    token.cancel("second request")

    assert token.cancelled
    assert token.reason == "user pressed stop"
    with pytest.raises(RunCancelledError, match=r"user pressed stop \(turn 2\)"):
        token.raise_if_cancelled("turn 2")
