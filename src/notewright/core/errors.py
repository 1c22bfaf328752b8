"""
Error taxonomy shared by the agent core.

Only :class:`ModelCallError` and :class:`RunCancelledError` are allowed to escape a turn-loop
run.  Everything else raised while a tool runs is absorbed into the conversation as an
error-shaped tool result.
"""


class NotewrightError(Exception):
    """Base class for every error raised by this package."""


class ModelProviderError(NotewrightError):
    """A single model call failed (rate limit, timeout, network or provider error)."""


class ModelCallError(NotewrightError):
    """The model call kept failing after every retry; the run cannot continue."""


class RunCancelledError(NotewrightError):
    """The run's cancellation token was flipped and a checkpoint observed it."""


class DocumentStoreError(NotewrightError):
    """The document store rejected an operation."""


class UploadError(NotewrightError):
    """An attachment could not be uploaded to the provider."""
