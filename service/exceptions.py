"""Custom exceptions used by the reconciliation dashboard."""

from typing import Optional


class DashboardError(Exception):
    """Base class for every failure the dashboard converts into error state."""


class BackendError(DashboardError):
    """Raised when the upstream dashboard endpoint cannot serve a request."""


class BackendRequestError(BackendError):
    """Raised for a non-success HTTP status or a transport failure.

    ``status_code`` is ``None`` when the request never produced a response
    (connection refused, timeout, DNS failure).
    """

    def __init__(self, status_code: Optional[int], body: str = "", message: Optional[str] = None) -> None:
        if message is None:
            message = f"HTTP error! status: {status_code}" if status_code is not None else f"Request failed: {body}"
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class BackendResponseError(BackendError):
    """Raised when a successful response does not hold the expected document."""


class RequestValidationError(DashboardError):
    """Raised when caller-supplied input fails local validation before dispatch."""


class TreeDocumentError(DashboardError):
    """Raised when a manually supplied tree document lacks required top-level fields."""
