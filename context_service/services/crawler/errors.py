from __future__ import annotations

from typing import Optional


class ContextServiceError(Exception):
    """Base exception for the context service."""


class ValidationError(ContextServiceError):
    """Raised when request input is missing or malformed."""


class UpstreamSearchError(ContextServiceError):
    """Raised when the search index is unreachable or returns an error."""


class FetchError(ContextServiceError):
    def __init__(
        self,
        message: str,
        *,
        retryable: bool = False,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.status = status


class TimeoutExceeded(FetchError):
    def __init__(self, message: str = "request timed out") -> None:
        super().__init__(message, retryable=True)


class InternalError(ContextServiceError):
    """Raised for unexpected faults that should surface as a server error."""
