"""Server-side state of one dashboard browser session.

A ``DashboardSession`` ties the core components together: the loaded tree and
its index, the filter state and its pickers, expansion, the row window, the
topic hierarchies and the drill-down pager. The Flask session only carries the
id used to look the object up in ``DashboardSessionRegistry``.

Invalidation rules:
- adopting a tree resets expansion, the row window and the drill-down;
- a filter change resets expansion and the row window;
- a tenant/area/outlet/business day/topic change closes the drill-down.
"""

import threading
import time
import uuid
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import Executor, Future
from datetime import date
from typing import Any, Optional

from pydantic import ValidationError

import cache_provider
from config import logger
from core.dashboard_request import DashboardRequest, build_dashboard_request
from core.documents import parse_dashboard_text
from core.drilldown import DEFAULT_PAGE_SIZE, PagerSnapshot, TransactionPager, build_transaction_query
from core.expansion import ExpansionStore
from core.filter_engine import FilterState, filter_tree, filters_from_tree, prune_filter_state, relevant_filters
from core.models import CashPositionItem, DashboardDocument, Filter, FiltersDocument, TransactionPage, TreeNode
from core.multi_select import MultiSelect, MultiSelectOption
from core.row_materializer import DEFAULT_INITIAL_WINDOW, DEFAULT_WINDOW_INCREMENT, MaterializedRows, RowWindow, materialize
from core.tenants import TenantDirectory
from core.topic_hierarchy import TopicHierarchies, shift_business_day
from core.tree_index import TreeIndex
from exceptions import BackendError, BackendRequestError, DashboardError, RequestValidationError
from utils.cash_position import CashPositionReport

DEFAULT_TOPICS = ("POSCARDS",)
TREE_SELECTION_REQUIRED = "Select a tenant, area, outlet, business day and at least one topic"
TREE_LOAD_SUPERSEDED = "The selection changed while the tree was loading"
DEFAULT_SESSION_TTL_SECONDS = 3600


def error_state(exc: DashboardError) -> dict[str, Any]:
    """Convert a failure into the JSON error state kept on the session."""
    state: dict[str, Any] = {"error": str(exc), "details": "", "kind": type(exc).__name__}
    if isinstance(exc, BackendRequestError):
        state["status_code"] = exc.status_code
        state["details"] = exc.body
    return state


class DashboardSession:
    def __init__(
        self,
        backend: Any,
        executor: Executor,
        tenants: TenantDirectory,
        *,
        language_code: str = "en",
        page_size: int = DEFAULT_PAGE_SIZE,
        initial_window: int = DEFAULT_INITIAL_WINDOW,
        window_increment: int = DEFAULT_WINDOW_INCREMENT,
        cash_position_items: Sequence[CashPositionItem] = (),
        picker_factory: Callable[..., MultiSelect] = MultiSelect,
        session_id: Optional[str] = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self._backend = backend
        self._tenants = tenants
        self._lock = threading.RLock()
        self._picker_factory = picker_factory
        self.language_code = language_code
        self.page_size = page_size

        self.tenant_id = ""
        self.area_id = ""
        self.outlet_id = ""
        self.business_day = date.today().isoformat()
        self.topics: list[str] = list(DEFAULT_TOPICS)

        self.filters_document: Optional[FiltersDocument] = None
        self.filters_error: Optional[dict[str, Any]] = None
        self.filter_state: FilterState = {}
        self._pickers: dict[str, MultiSelect] = {}
        self.hierarchies = TopicHierarchies()

        self.document: Optional[DashboardDocument] = None
        self.index = TreeIndex(())
        self.tree_error: Optional[dict[str, Any]] = None
        self._tree_generation = 0
        self._filtered: Optional[list[TreeNode]] = None
        self.expansion = ExpansionStore(self.index)
        self.window = RowWindow(initial_window, window_increment)

        self.pager = TransactionPager(self._fetch_transactions, executor)
        self.selected_node_id: Optional[str] = None
        self.cash_position = CashPositionReport(tuple(cash_position_items))

    # region Selection
    def set_selection(
        self,
        *,
        tenant_id: Optional[str] = None,
        area_id: Optional[str] = None,
        outlet_id: Optional[str] = None,
        business_day: Optional[str] = None,
        topics: Optional[Sequence[str]] = None,
    ) -> bool:
        """Apply the changed parts of the tenant/area/outlet/day/topic selection.

        Returns:
            True when anything changed (the drill-down is then closed).
        """
        day = self.business_day
        if business_day is not None:
            try:
                day = date.fromisoformat(business_day).isoformat()
            except ValueError as exc:
                raise RequestValidationError(f"Invalid business day: {business_day}") from exc

        with self._lock:
            before = (self.tenant_id, self.area_id, self.outlet_id, self.business_day, tuple(self.topics))
            tenant = self.tenant_id if tenant_id is None else str(tenant_id)
            area = self.area_id if area_id is None else str(area_id)
            outlet = self.outlet_id if outlet_id is None else str(outlet_id)
            self.tenant_id, self.area_id, self.outlet_id = self._tenants.reconcile_selection(tenant, area, outlet)

            self.business_day = day
            if topics is not None:
                self.topics = list(dict.fromkeys(str(t) for t in topics))
                if not self.topics:
                    self.filter_state = {}
                self._refresh_filters()

            after = (self.tenant_id, self.area_id, self.outlet_id, self.business_day, tuple(self.topics))
            if after == before:
                return False
            if after[1:3] != before[1:3]:
                self._discard_filters_document()
            self._tree_generation += 1
            logger.info("Dashboard selection changed", session_id=self.session_id, tenant_id=self.tenant_id, area_id=self.area_id, outlet_id=self.outlet_id, business_day=self.business_day, topics=self.topics)
            self.close_drilldown()
            return True

    def shift_business_day(self, days: int) -> str:
        try:
            shifted = shift_business_day(self.business_day, days)
        except OverflowError as exc:
            raise RequestValidationError(f"Business day shift out of range: {days}") from exc
        self.set_selection(business_day=shifted)
        return self.business_day

    def selection(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "tenant_code": self._tenants.tenant_code(self.tenant_id),
            "area_id": self.area_id,
            "outlet_id": self.outlet_id,
            "business_day": self.business_day,
            "topics": list(self.topics),
            "can_load": self.can_load(),
        }

    def can_load(self) -> bool:
        return bool(self.tenant_id and self.area_id and self.outlet_id and self.business_day and self.topics)

    # endregion

    # region Filters
    @property
    def topic_tags(self) -> dict[str, str]:
        """Topic label -> topic tag, from the metadata document."""
        if self.filters_document is None:
            return {}
        return {topic.label: topic.tag for topic in self.filters_document.topics}

    def load_filters(self) -> bool:
        """Fetch (or reuse the cached) filter and topic metadata."""
        area_id, outlet_id = self.area_id or None, self.outlet_id or None
        cached = cache_provider.get_filters_document(area_id, outlet_id, self.language_code)
        try:
            if cached is not None:
                document = FiltersDocument.model_validate(cached)
            else:
                document = self._backend.get_filters(area_id, outlet_id, self.language_code)
                cache_provider.set_filters_document(area_id, outlet_id, self.language_code, document.model_dump(by_alias=True))
        except BackendError as exc:
            logger.warning("Failed to load filters", session_id=self.session_id, error=str(exc))
            with self._lock:
                self.filters_error = error_state(exc)
            return False
        except ValidationError:
            logger.exception("Cached filters document is invalid", session_id=self.session_id)
            return False

        with self._lock:
            if (self.area_id or None, self.outlet_id or None) != (area_id, outlet_id):
                logger.info("Discarded filters for a previous outlet", session_id=self.session_id, area_id=area_id, outlet_id=outlet_id)
                return False
            self.filters_document = document
            self.filters_error = None
            for topic in document.topics:
                self.hierarchies.register(topic.tag, topic.default_filter_hierarchy)
            self._refresh_filters()
        logger.info("Loaded filters", session_id=self.session_id, filters=len(document.filters), topics=len(document.topics))
        return True

    def _discard_filters_document(self) -> None:
        self.filters_document = None
        self.filters_error = None
        self._pickers = {}

    def available_filters(self) -> list[Filter]:
        """Filters offered for the current topics; derived from the tree when no metadata is loaded."""
        if self.filters_document is not None and self.filters_document.filters:
            return relevant_filters(self.filters_document.filters, self.filters_document.topics, self.topics)
        return filters_from_tree(self.index.roots)

    def _available_tags(self) -> Optional[set[str]]:
        if self.filters_document is not None and self.filters_document.filters:
            selected = set(self.topics)
            return {tag for topic in self.filters_document.topics if topic.tag in selected for tag in topic.available_filter_tags}
        if self.document is not None:
            return {f.tag for f in filters_from_tree(self.index.roots)}
        return None

    def _refresh_filters(self) -> None:
        tags = self._available_tags()
        if tags is not None:
            pruned = prune_filter_state(self.filter_state, tags)
            if pruned != self.filter_state:
                self.filter_state = pruned
                self._on_filter_change()
        self._pickers = {}

    def set_filter_values(self, tag: str, values: Sequence[str]) -> FilterState:
        """Replace the selected labels of one tag; an empty selection drops the tag."""
        with self._lock:
            values = list(dict.fromkeys(values))
            if values == self.filter_state.get(tag, []):
                return dict(self.filter_state)
            if values:
                self.filter_state[tag] = values
            else:
                self.filter_state.pop(tag, None)
            picker = self._pickers.get(tag)
            if picker is not None:
                picker.set_selected(values)
            self._on_filter_change()
            return dict(self.filter_state)

    def set_filter_state(self, filter_state: Mapping[str, Sequence[str]]) -> FilterState:
        with self._lock:
            self.filter_state = {tag: list(values) for tag, values in filter_state.items() if values}
            for tag, picker in self._pickers.items():
                picker.set_selected(self.filter_state.get(tag, []))
            self._on_filter_change()
            return dict(self.filter_state)

    def _on_filter_change(self) -> None:
        self._filtered = None
        self.expansion.reset()
        self.window.reset()

    def picker(self, tag: str) -> MultiSelect:
        """Return the (cached) picker for one filter tag.

        Raises:
            KeyError: The tag is not among the available filters.
        """
        with self._lock:
            picker = self._pickers.get(tag)
            if picker is not None:
                return picker
            offered = next((f for f in self.available_filters() if f.tag == tag), None)
            if offered is None:
                raise KeyError(tag)
            options = [MultiSelectOption(value=v.code, label=v.label or v.code) for v in offered.values]
            picker = self._picker_factory(options, self.filter_state.get(tag, []), on_change=lambda values: self.set_filter_values(tag, values))
            self._pickers[tag] = picker
            return picker

    # endregion

    # region Tree
    def dashboard_request(self) -> DashboardRequest:
        topic = self.topics[0] if self.topics else ""
        return build_dashboard_request(
            tenant_code=self._tenants.tenant_code(self.tenant_id),
            area_id=self.area_id,
            outlet_id=self.outlet_id,
            business_day=self.business_day,
            topics=self.topics,
            filter_state=self.filter_state,
            hierarchy=self.hierarchies.get(topic),
            language_code=self.language_code,
        )

    def load_tree(self) -> bool:
        """Fetch the tree for the current selection; failures keep the previous tree.

        A response that arrives after the selection changed (or after another
        tree was adopted) is dropped. ``tree_error`` stays ``None`` in that case.
        """
        with self._lock:
            if not self.can_load():
                self.tree_error = {"error": TREE_SELECTION_REQUIRED, "details": "", "kind": "RequestValidationError"}
                return False
            request = self.dashboard_request()
            generation = self._tree_generation
            self.tree_error = None
        try:
            document = self._backend.get_dashboard(request.to_payload())
        except BackendError as exc:
            logger.warning("Failed to load dashboard tree", session_id=self.session_id, error=str(exc))
            with self._lock:
                if generation == self._tree_generation:
                    self.tree_error = error_state(exc)
            return False
        with self._lock:
            if generation != self._tree_generation:
                logger.info("Dropped superseded dashboard tree", session_id=self.session_id, generation=generation, current_generation=self._tree_generation)
                return False
            self.adopt_document(document)
        return True

    def import_tree(self, text: str) -> bool:
        """Adopt a pasted tree document after validating it."""
        try:
            document = parse_dashboard_text(text)
        except DashboardError as exc:
            logger.info("Rejected imported tree", session_id=self.session_id, error=str(exc))
            with self._lock:
                self.tree_error = error_state(exc)
            return False
        self.adopt_document(document)
        return True

    def adopt_document(self, document: DashboardDocument) -> None:
        with self._lock:
            self._tree_generation += 1
            self.document = document
            self.index = TreeIndex(document.child_nodes)
            self.tree_error = None
            self.expansion.bind(self.index)
            self._filtered = None
            self.window.reset()
            self.close_drilldown()
            self._refresh_filters()
        logger.info("Adopted dashboard tree", session_id=self.session_id, roots=len(document.child_nodes), nodes=len(self.index))

    def filtered_roots(self) -> list[TreeNode]:
        with self._lock:
            if self._filtered is None:
                self._filtered = filter_tree(self.index.roots, self.filter_state)
            return self._filtered

    def rows(self) -> MaterializedRows:
        with self._lock:
            return materialize(self.filtered_roots(), self.expansion, self.window.visible_count)

    def load_more_rows(self) -> MaterializedRows:
        with self._lock:
            self.window.grow(self.rows().total_available)
            return self.rows()

    def toggle_node(self, node_id: str, interaction_id: Optional[str] = None) -> bool:
        with self._lock:
            return self.expansion.toggle(node_id, interaction_id)
    # endregion

    # region Drill-down
    def _fetch_transactions(self, query: Any) -> TransactionPage:
        return self._backend.get_transactions(query)

    def open_drilldown(self, node_id: str) -> Future:
        """Start loading the transactions behind a row.

        Raises:
            KeyError: ``node_id`` is not part of the loaded tree.
        """
        with self._lock:
            query = build_transaction_query(
                node_id,
                self.index,
                self.topic_tags,
                tenant_code=self._tenants.tenant_code(self.tenant_id),
                area_ids=[self.area_id] if self.area_id else [],
                outlet_ids=[self.outlet_id] if self.outlet_id else [],
                business_day=self.business_day,
                page_size=self.page_size,
            )
            self.selected_node_id = node_id
        return self.pager.start(query)

    def load_more_transactions(self) -> Optional[Future]:
        return self.pager.load_more()

    def close_drilldown(self) -> None:
        self.selected_node_id = None
        self.pager.reset()

    def transactions(self) -> PagerSnapshot:
        return self.pager.snapshot()

    # endregion


class DashboardSessionRegistry:
    """In-memory store of dashboard sessions keyed by the id kept in the browser session.

    Sessions idle for longer than ``ttl_seconds`` are evicted on the next lookup
    or creation; an evicted id simply gets a fresh session.
    """

    def __init__(self, factory: Callable[[], DashboardSession], ttl_seconds: float = DEFAULT_SESSION_TTL_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self._factory = factory
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, DashboardSession] = {}
        self._last_seen: dict[str, float] = {}
        self._lock = threading.Lock()

    def _evict_idle(self, now: float) -> list[DashboardSession]:
        expired = [session_id for session_id, seen in self._last_seen.items() if now - seen > self._ttl_seconds]
        evicted = []
        for session_id in expired:
            del self._last_seen[session_id]
            evicted.append(self._sessions.pop(session_id))
        return evicted

    def _close(self, evicted: Sequence[DashboardSession]) -> None:
        for dashboard in evicted:
            dashboard.close_drilldown()
        if evicted:
            logger.info("Evicted idle dashboard sessions", count=len(evicted), remaining=len(self))

    def get(self, session_id: Optional[str]) -> Optional[DashboardSession]:
        if not session_id:
            return None
        with self._lock:
            now = self._clock()
            evicted = self._evict_idle(now)
            dashboard = self._sessions.get(session_id)
            if dashboard is not None:
                self._last_seen[session_id] = now
        self._close(evicted)
        return dashboard

    def create(self) -> DashboardSession:
        dashboard = self._factory()
        with self._lock:
            now = self._clock()
            evicted = self._evict_idle(now)
            self._sessions[dashboard.session_id] = dashboard
            self._last_seen[dashboard.session_id] = now
        self._close(evicted)
        logger.info("Created dashboard session", session_id=dashboard.session_id)
        return dashboard

    def get_or_create(self, session_id: Optional[str]) -> DashboardSession:
        return self.get(session_id) or self.create()

    def discard(self, session_id: Optional[str]) -> None:
        if not session_id:
            return
        with self._lock:
            dashboard = self._sessions.pop(session_id, None)
            self._last_seen.pop(session_id, None)
        if dashboard is not None:
            dashboard.close_drilldown()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
