"""Exception hierarchy for the tool-execution engine."""


class OrchestraError(Exception):
    """Base class for all engine errors."""


class ToolError(OrchestraError):
    """A tool-level failure.

    Raised by tool handlers for bad parameters, rejected paths and upstream
    failures. The tools registry turns it into an ``is_error`` tool result,
    so it never escapes a tool round.
    """


class OperationCancelled(OrchestraError):
    """Raised at a suspension point once the run's cancellation token fires."""


class ModelResolutionError(OrchestraError):
    """A ``provider/model-id`` key is malformed or not in the model catalog."""


class ProviderError(OrchestraError):
    """Unrecoverable provider condition (e.g. the client cannot be created)."""
