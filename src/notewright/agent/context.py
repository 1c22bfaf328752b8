"""Per-run context passed explicitly into the turn loop and every tool."""

from __future__ import annotations

from dataclasses import (
    dataclass,
    field,
)
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Sequence,
)

from pydantic import BaseModel

from notewright.config import settings
from notewright.core.cancellation import CancellationToken
from notewright.core.progress import ProgressTracker
from notewright.store.vault import DocumentStore

if TYPE_CHECKING:
    from notewright.agent.provider_interface import BaseProvider


class PlanDecision(BaseModel):
    """The caller's answer to a proposed plan."""

    accepted: bool
    feedback: str = ""


PlanReviewer = Callable[[str], Awaitable[PlanDecision]]


@dataclass
class RunContext:
    """
    Everything one agent run needs besides the conversation itself.

    Created at run start and discarded at run end; never shared between runs.
    """

    store: DocumentStore
    provider: "BaseProvider"
    tracker: ProgressTracker = field(default_factory=ProgressTracker)
    token: CancellationToken = field(default_factory=CancellationToken)
    protected_markers: Sequence[str] = (".lim",)
    tree_depth: int = 3
    tree_detail_lines: int = 23
    ask_files_max_tokens: int = 131072
    upload_concurrency: int = 4
    plan_reviewer: PlanReviewer | None = None

    @classmethod
    def from_settings(
        cls, store: DocumentStore, provider: "BaseProvider", **overrides: Any
    ) -> "RunContext":
        """Build a context whose knobs come from :data:`notewright.config.settings`."""
        values: dict[str, Any] = {
            "protected_markers": tuple(settings.PROTECTED_MARKERS),
            "tree_depth": settings.TREE_DEPTH,
            "tree_detail_lines": settings.TREE_DETAIL_LINES,
            "ask_files_max_tokens": settings.ASK_FILES_MAX_TOKENS,
            "upload_concurrency": settings.UPLOAD_CONCURRENCY,
        }
        values.update(overrides)
        return cls(store=store, provider=provider, **values)

    def checkpoint(self, where: str = "") -> None:
        """Raise :class:`RunCancelledError` if the run has been cancelled."""
        self.token.raise_if_cancelled(where)

    def is_protected(self, path: str) -> bool:
        """True if *path* names a reserved instruction file."""
        lowered = path.lower()
        return any(marker.lower() in lowered for marker in self.protected_markers)
