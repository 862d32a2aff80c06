"""Client for the upstream dashboard RPC endpoint.

Every backend operation goes through one POST whose body is a parameter list:
``SP`` names the operation and ``RequestJson`` carries the JSON-encoded
payload. The API key travels in the ``x-api-key`` header.
"""

import json
from collections.abc import Mapping, Sequence
from typing import Any, Optional

import requests
from pydantic import ValidationError

from config import DASHBOARD_TREE_OPERATION, logger
from core.documents import parse_request_json
from core.drilldown import TransactionQuery
from core.models import DashboardDocument, FiltersDocument, TransactionPage
from exceptions import BackendRequestError, BackendResponseError

__all__ = ["DashboardBackendClient", "build_parameters", "parse_request_json"]

GET_TRANSACTIONS = "GetTransactions"
GET_FILTERS = "GetFilters"
GET_TENANT_HIERARCHY = "GetTenantHierarchy"


def build_parameters(operation: str, payload: Any) -> list[dict[str, str]]:
    """Wrap an operation name and payload in the backend's parameter envelope."""
    return [
        {"key": "SP", "value": operation},
        {"key": "RequestJson", "value": json.dumps(payload)},
    ]


class DashboardBackendClient:
    """Blocking client; callers run it on a worker thread when they need to stay responsive."""

    def __init__(self, base_url: str, api_key: str, timeout: float = 30, session: Optional[requests.Session] = None) -> None:
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self._session = session or requests.Session()

    def call(self, operation: str, payload: Any) -> Any:
        """Invoke one backend operation.

        Args:
            operation: Operation name sent as ``SP``.
            payload: JSON-serializable request body sent as ``RequestJson``.

        Returns:
            The decoded response document.

        Raises:
            BackendRequestError: Transport failure or non-success status.
            BackendResponseError: The body is not JSON.
        """
        logger.info("Calling dashboard backend", operation=operation)
        return self.call_raw(build_parameters(operation, payload))

    def call_raw(self, parameters: Sequence[Mapping[str, Any]]) -> Any:
        """Post a caller-built parameter list unchanged."""
        body = {"parameters": [dict(p) for p in parameters]}
        headers = {"x-api-key": self.api_key, "Content-Type": "application/json"}
        try:
            response = self._session.post(self.base_url, json=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.exception("Dashboard backend request failed", url=self.base_url, error=str(exc))
            raise BackendRequestError(None, str(exc)) from exc

        if not response.ok:
            logger.error("Dashboard backend returned an error", status_code=response.status_code, body=response.text)
            raise BackendRequestError(response.status_code, response.text)

        try:
            return response.json()
        except ValueError as exc:
            logger.error("Dashboard backend returned a non-JSON body", status_code=response.status_code)
            raise BackendResponseError("Backend response is not valid JSON") from exc

    def get_transactions(self, query: TransactionQuery) -> TransactionPage:
        data = self.call(GET_TRANSACTIONS, query.to_payload())
        return _validate(TransactionPage, data, GET_TRANSACTIONS)

    def get_filters(self, area_id: Optional[str] = None, outlet_id: Optional[str] = None, language_code: str = "en") -> FiltersDocument:
        payload = {"AreaId": area_id or None, "OutletId": outlet_id or None, "LanguageCode": language_code}
        data = self.call(GET_FILTERS, payload)
        return _validate(FiltersDocument, data, GET_FILTERS)

    def get_tenant_hierarchy(self, area_id: Optional[str] = None, outlet_id: Optional[str] = None, language_code: str = "en") -> Any:
        payload = {"AreaId": area_id or None, "OutletId": outlet_id or None, "LanguageCode": language_code}
        return self.call(GET_TENANT_HIERARCHY, payload)

    def get_dashboard(self, request: Mapping[str, Any]) -> DashboardDocument:
        """Fetch the reconciliation tree for a dashboard request payload."""
        data = self.call(DASHBOARD_TREE_OPERATION, dict(request))
        return _validate(DashboardDocument, data, DASHBOARD_TREE_OPERATION)


def _validate(model: Any, data: Any, operation: str) -> Any:
    if not isinstance(data, dict):
        raise BackendResponseError(f"{operation} returned {type(data).__name__}, expected an object")
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        logger.error("Backend document failed validation", operation=operation, error_count=exc.error_count())
        raise BackendResponseError(f"{operation} returned an unexpected document: {exc.errors()[0].get('msg', 'invalid')}") from exc
