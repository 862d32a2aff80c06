"""Route decorators and JSON error helpers shared by the Flask handlers."""

from functools import wraps
from typing import Any, Callable, Optional

from flask import jsonify, request, session

from config import logger
from exceptions import BackendRequestError, DashboardError, RequestValidationError, TreeDocumentError

DASHBOARD_SESSION_KEY = "dashboard_session_id"


def route_handler_logging(function: Callable[..., Any]) -> Callable[..., Any]:
    """Log entry into route handlers.
    This writes an audit-style entry to the structured logger.

    Args:
        function: Route handler to wrap.

    Returns:
        Wrapped route handler with entry logging.
    """

    @wraps(function)
    def decorator(*args: Any, **kwargs: Any) -> Any:
        dashboard_session_id = session.get(DASHBOARD_SESSION_KEY)
        logger.info("Entering route", route=request.path, event_type="USER_TRAIL", path=request.path, method=request.method, dashboard_session_id=dashboard_session_id)

        return function(*args, **kwargs)

    return decorator


def json_body() -> dict[str, Any]:
    """Return the request's JSON object body, or raise when it is not an object."""
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise RequestValidationError("Request body must be a JSON object")
    return payload


def error_response(message: str, details: Any = "", status: int = 500, **extra: Any) -> tuple[Any, int]:
    body: dict[str, Any] = {"error": message, "details": details}
    body.update(extra)
    return jsonify(body), status


def status_for_error(exc: DashboardError, fallback: int = 502) -> int:
    """Map a failure to the HTTP status the endpoint answers with."""
    if isinstance(exc, (RequestValidationError, TreeDocumentError)):
        return 400
    if isinstance(exc, BackendRequestError) and exc.status_code is not None:
        return exc.status_code
    return fallback


def error_state_response(state: Optional[dict[str, Any]], status: int) -> tuple[Any, int]:
    state = state or {"error": "Unknown error", "details": ""}
    return jsonify(state), status
