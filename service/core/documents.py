"""Parsing and validation for tree documents supplied by hand or by the backend."""

import json
from typing import Any

from pydantic import ValidationError

from config import logger
from core.models import DashboardDocument
from exceptions import RequestValidationError, TreeDocumentError

_REQUIRED_CODES = ("AreaCode", "OutletCode")


def parse_request_json(text: str) -> Any:
    """Parse free text as JSON without side effects.

    Args:
        text: Raw text typed or pasted by the user.

    Returns:
        The decoded JSON value.

    Raises:
        RequestValidationError: Text is empty or not valid JSON.
    """
    if text is None or not str(text).strip():
        raise RequestValidationError("Request JSON is empty")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise RequestValidationError(f"Invalid JSON format: {exc.msg} (line {exc.lineno}, column {exc.colno})") from exc


def parse_dashboard_document(payload: Any) -> DashboardDocument:
    """Validate a manually supplied tree document before it is adopted.

    Args:
        payload: Decoded JSON object.

    Returns:
        The validated document.

    Raises:
        TreeDocumentError: Required top-level fields are missing or malformed.
    """
    if not isinstance(payload, dict):
        raise TreeDocumentError("Invalid data structure: a JSON object is required")

    if not isinstance(payload.get("ChildNodes"), list):
        raise TreeDocumentError("Invalid data structure: ChildNodes array is required")

    if any(not payload.get(field) for field in _REQUIRED_CODES):
        raise TreeDocumentError("Invalid data structure: AreaCode and OutletCode are required")

    try:
        return DashboardDocument.model_validate(payload)
    except ValidationError as exc:
        logger.warning("Tree document failed validation", error_count=exc.error_count())
        raise TreeDocumentError(f"Invalid data structure: {exc.errors()[0].get('msg', 'invalid node')} at {_error_location(exc)}") from exc


def parse_dashboard_text(text: str) -> DashboardDocument:
    """Parse and validate a pasted tree document."""
    return parse_dashboard_document(parse_request_json(text))


def _error_location(exc: ValidationError) -> str:
    loc = exc.errors()[0].get("loc", ())
    return ".".join(str(part) for part in loc) or "document"
