"""
MATKA - Error Taxonomy

Configuration and commit errors stop a run. Validation errors are raised
before any query runs. Per-market and per-wager problems never raise; they
are counted in the run summary instead.
"""

from typing import Optional


class MatkaError(Exception):
    """Base class for settlement service errors."""


class RateConfigurationError(MatkaError):
    """Rate table for a market family is empty or unresolvable."""

    def __init__(self, family: str, message: Optional[str] = None):
        self.family = family
        super().__init__(message or f"Game rates are not configured for family '{family}'")


class InvalidRequestError(MatkaError, ValueError):
    """Caller supplied missing or malformed input."""


class ResultSourceError(MatkaError):
    """External result chart could not be fetched or parsed."""


class BatchCommitError(MatkaError):
    """
    A chunked atomic commit failed.

    Chunks before the failing one are already durable, so the caller is told
    whether the run left partial changes behind.
    """

    def __init__(
        self,
        operation: str,
        committed_chunks: int,
        total_chunks: int,
        cause: Optional[BaseException] = None,
    ):
        self.operation = operation
        self.committed_chunks = committed_chunks
        self.total_chunks = total_chunks
        self.cause = cause
        if self.partial:
            state = (
                f"changes may be partial: {committed_chunks} of {total_chunks} "
                f"chunks were committed before the failure"
            )
        else:
            state = "no changes were made"
        detail = f" ({cause})" if cause else ""
        super().__init__(f"{operation} commit failed{detail}; {state}")

    @property
    def partial(self) -> bool:
        return self.committed_chunks > 0
