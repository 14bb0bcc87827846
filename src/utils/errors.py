"""Error types shared across the pipeline.

Insufficient data is never an exception: agents and optimizers report it
through `success=False` results. These types cover the two remaining cases.
"""


class RoomArbError(Exception):
    """Base class for pipeline errors."""


class InvalidConstraintError(RoomArbError, ValueError):
    """Caller-supplied filters, budgets or windows are inconsistent."""


class UpstreamUnavailableError(RoomArbError):
    """A collaborator (live prices, signal store) failed or timed out."""

    def __init__(self, source: str, detail: str = "") -> None:
        self.source = source
        self.detail = detail
        message = f"{source} unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
