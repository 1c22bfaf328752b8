"""Cooperative cancellation token threaded through every await in a run."""

import logging

from notewright.core.errors import RunCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    A checked, not preemptive, stop signal.

    The caller flips the token with :meth:`cancel`; the run notices at its next checkpoint
    (:meth:`raise_if_cancelled`) and aborts with :class:`RunCancelledError`.  Once set it
    stays set.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        """True once :meth:`cancel` has been called."""
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled by user") -> None:
        """Flip the token.  Calling it again keeps the first reason."""
        if not self._cancelled:
            logger.info("Cancellation requested: %s", reason)
            self._cancelled = True
            self._reason = reason

    def raise_if_cancelled(self, where: str = "") -> None:
        """Checkpoint: raise :class:`RunCancelledError` if the token has been flipped."""
        if self._cancelled:
            suffix = f" ({where})" if where else ""
            raise RunCancelledError(f"Run cancelled: {self._reason}{suffix}")
