"""
Append-only progress log the agent core reports into.

The UI collaborator (terminal runner, HTTP API) reads the entries or subscribes to
updates; the core never reads them back.
"""

import logging
from enum import Enum
from typing import (
    Callable,
    List,
)

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class StepStatus(str, Enum):
    """Lifecycle of a progress step."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETE = "complete"
    ERROR = "error"


class StepEntry(BaseModel):
    """One row in the progress log.  Mutated in place through its :class:`StepHandle`."""

    index: int
    label: str
    icon: str = ""
    status: StepStatus = StepStatus.PENDING
    caption: str = "Pending"


StepListener = Callable[[StepEntry], None]


class StepHandle:
    """Mutation handle returned by :meth:`ProgressTracker.append_step`."""

    def __init__(self, tracker: "ProgressTracker", entry: StepEntry) -> None:
        self._tracker = tracker
        self.entry = entry

    def update_state(self, status: StepStatus, message: str | None = None) -> None:
        """Move the step to *status*, optionally replacing its caption."""
        self.entry.status = status
        if message is not None:
            self.entry.caption = message
        self._tracker._notify(self.entry)

    def update_caption(self, message: str) -> None:
        self.entry.caption = message
        self._tracker._notify(self.entry)


class ProgressTracker:
    """
    Per-run step log.

    Created when a run starts and dropped when it ends; passed explicitly into the loop and
    into every tool through the run context.
    """

    def __init__(self) -> None:
        self.steps: List[StepEntry] = []
        self.messages: List[str] = []
        self._listeners: List[StepListener] = []

    def add_listener(self, listener: StepListener) -> None:
        """Register *listener* to be called with the entry on every append or update."""
        self._listeners.append(listener)

    def append_step(self, label: str, message: str, icon: str = "") -> StepHandle:
        """Append a new step, already *in-progress* with *message* as caption."""
        entry = StepEntry(index=len(self.steps), label=label, icon=icon)
        self.steps.append(entry)
        handle = StepHandle(self, entry)
        handle.update_state(StepStatus.IN_PROGRESS, message)
        return handle

    def write_message(self, text: str) -> None:
        """Record free text produced during the run (model prose, tool notes)."""
        self.messages.append(text)

    def _notify(self, entry: StepEntry) -> None:
        logger.debug(
            "Step %d [%s] %s: %s", entry.index, entry.status.value, entry.label, entry.caption
        )
        for listener in self._listeners:
            listener(entry)
