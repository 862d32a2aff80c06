"""
Shared pytest setup for unit tests.

Environment defaults are set before any service module is imported so ``config``
never points at a real backend. Fixtures provide a small reconciliation tree,
a controllable clock for debounce tests, an executor that runs submitted work
only when the test says so, and a stub backend that records every call.
"""

import os
from collections.abc import Callable
from typing import Any, Optional

import pytest

os.environ.setdefault("STAGE", "test")
os.environ.setdefault("DASHBOARD_API_URL", "http://dashboard.invalid/dashboard")
os.environ.setdefault("DASHBOARD_API_KEY", "test-key")
os.environ.setdefault("POWERTOOLS_LOG_LEVEL", "WARNING")
os.environ.setdefault("FLASK_SECRET_KEY", "test-secret")

from concurrent.futures import Future  # noqa: E402

from core.models import DashboardDocument, FiltersDocument, TransactionPage, TreeNode  # noqa: E402


def node(node_id: str, tag: str, label: str, children: tuple[dict[str, Any], ...] = (), **figures: Any) -> dict[str, Any]:
    """Build a backend-shaped node payload (PascalCase keys)."""
    return {
        "Id": node_id,
        "NodeTag": tag,
        "NodeLabel": label,
        "RecordsVerification": {
            "Recorded": figures.get("recorded", 0),
            "Verified": figures.get("verified", 0),
            "CurrentDayVariances": {"Outstanding": figures.get("outstanding", 0), "Exceptions": figures.get("exceptions", 0)},
            "CumulativeVariances": {"Outstanding": 0, "Exceptions": 0},
        },
        "SettlementVerification": {"Claimed": figures.get("claimed", 0), "Settled": 0},
        "ChildNodes": list(children),
    }


# Tree used across tests:
#   t1 TOPIC "POS Cards"
#     b1 BRAND "Alpha"
#       d1 DRIVER "Sami"
#       d2 DRIVER "Omar"
#     b2 BRAND "Beta"
#       d3 DRIVER "Sami"
#   t2 TOPIC "Cash"
#     b3 BRAND "Alpha"
#       r1 ROUTE "R-101"
SAMPLE_DOCUMENT: dict[str, Any] = {
    "AreaId": 1245,
    "AreaCode": "RUH",
    "AreaName": "Riyadh Central",
    "OutletId": 9865,
    "OutletCode": "C01",
    "OutletName": "Main Cashier",
    "BusinessDay": "2025-08-27",
    "ChildNodes": [
        node(
            "t1",
            "TOPIC",
            "POS Cards",
            (
                node("b1", "BRAND", "Alpha", (node("d1", "DRIVER", "Sami", recorded=1200, exceptions=3), node("d2", "DRIVER", "Omar", recorded=800))),
                node("b2", "BRAND", "Beta", (node("d3", "DRIVER", "Sami", recorded=50),)),
            ),
            recorded=2050,
            verified=2000,
            claimed=1500,
        ),
        node("t2", "TOPIC", "Cash", (node("b3", "BRAND", "Alpha", (node("r1", "ROUTE", "R-101"),)),)),
    ],
}

SAMPLE_FILTERS: dict[str, Any] = {
    "Filters": [
        {"Tag": "BRAND", "Label": "Brand", "Values": [{"Code": "Alpha", "Label": "Alpha"}, {"Code": "Beta", "Label": "Beta"}]},
        {"Tag": "DRIVER", "Label": "Driver", "Values": [{"Code": "Sami", "Label": "Sami"}, {"Code": "Omar", "Label": "Omar"}]},
        {"Tag": "ROUTE", "Label": "Route", "Values": [{"Code": "R-101", "Label": "R-101"}]},
        {"Tag": "TERMINAL", "Label": "Terminal", "Values": []},
    ],
    "Topics": [
        {"Tag": "POSCARDS", "Label": "POS Cards", "AvailableFilterTags": ["BRAND", "DRIVER", "TERMINAL"], "DefaultFilterHierarchy": ["BRAND", "DRIVER"]},
        {"Tag": "CASH", "Label": "Cash", "AvailableFilterTags": ["BRAND", "ROUTE"], "DefaultFilterHierarchy": ["ROUTE", "BRAND"]},
    ],
}


def transaction(reference: str, **fields: Any) -> dict[str, Any]:
    payload = {"TransactionReference": reference, "TransactionAmount": 10.5, "PaymentMethodName": "mada"}
    payload.update(fields)
    return payload


def page(*references: str, columns: tuple[dict[str, Any], ...] = ()) -> TransactionPage:
    return TransactionPage.model_validate({"Transactions": [transaction(r) for r in references], "ColumnProperties": list(columns)})


class ManualExecutor:
    """Executor that queues work until the test runs it, so completion order is under test control."""

    def __init__(self) -> None:
        self.pending: list[tuple[Future, Callable[..., Any], tuple[Any, ...], dict[str, Any]]] = []

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        future: Future = Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run(self, index: int = 0) -> Any:
        future, fn, args, kwargs = self.pending.pop(index)
        try:
            result = fn(*args, **kwargs)
        except Exception as exc:
            future.set_exception(exc)
            return None
        future.set_result(result)
        return result

    def run_all(self) -> None:
        while self.pending:
            self.run(0)

    def shutdown(self, wait: bool = True) -> None:
        self.pending.clear()


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubBackend:
    """Stands in for ``DashboardBackendClient``; responses are queued per operation."""

    def __init__(self) -> None:
        self.transaction_pages: dict[int, Any] = {}
        self.dashboard: Any = DashboardDocument.model_validate(SAMPLE_DOCUMENT)
        self.filters: Any = FiltersDocument.model_validate(SAMPLE_FILTERS)
        self.calls: list[tuple[str, Any]] = []
        self.during_dashboard: Optional[Callable[[], None]] = None

    def _answer(self, response: Any) -> Any:
        if isinstance(response, Exception):
            raise response
        return response

    def get_transactions(self, query: Any) -> TransactionPage:
        self.calls.append(("GetTransactions", query))
        response = self.transaction_pages.get(query.pagination.page_index, TransactionPage())
        return self._answer(response)

    def get_filters(self, area_id: Any = None, outlet_id: Any = None, language_code: str = "en") -> FiltersDocument:
        self.calls.append(("GetFilters", (area_id, outlet_id, language_code)))
        return self._answer(self.filters)

    def get_dashboard(self, request: Any) -> DashboardDocument:
        self.calls.append(("GetDashboard", request))
        if self.during_dashboard is not None:
            self.during_dashboard()
        return self._answer(self.dashboard)


@pytest.fixture
def sample_document() -> DashboardDocument:
    return DashboardDocument.model_validate(SAMPLE_DOCUMENT)


@pytest.fixture
def sample_roots(sample_document: DashboardDocument) -> tuple[TreeNode, ...]:
    return sample_document.child_nodes


@pytest.fixture
def manual_executor() -> ManualExecutor:
    return ManualExecutor()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stub_backend() -> StubBackend:
    return StubBackend()
