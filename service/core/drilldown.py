"""Transaction drill-down: criteria construction and incremental page loading.

Selecting a tree row turns its ancestor chain into a backend query. Pages are
fetched one at a time on a background executor and merged client-side with
de-duplication by transaction reference.

Every session (``start``) bumps a generation counter. Each fetch carries the
generation it was launched under; a completion whose generation no longer
matches is discarded, so a late page from a superseded selection can never
touch the current list.
"""

import threading
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from config import logger
from core.models import ColumnProperty, Transaction, TransactionPage
from core.tree_index import TreeIndex
from exceptions import BackendError, BackendRequestError, BackendResponseError

DEFAULT_PAGE_SIZE = 50
TOPIC_NODE_TAG = "TOPIC"


class _QueryModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class Criterion(_QueryModel):
    tag: str = Field(alias="Tag")
    value: str = Field(alias="Value")


class Pagination(_QueryModel):
    page_index: int = Field(default=0, alias="PageIndex")
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, alias="PageSize")


class TransactionQuery(_QueryModel):
    """Payload of the ``GetTransactions`` operation."""

    tenant_code: str = Field(default="", alias="TenantCode")
    area_ids: tuple[str, ...] = Field(default=(), alias="AreaIds")
    outlet_ids: tuple[str, ...] = Field(default=(), alias="OutletIds")
    business_day: str = Field(default="", alias="BusinessDay")
    filter: tuple[Criterion, ...] = Field(default=(), alias="Filter")
    topic: Optional[str] = Field(default=None, alias="Topic")
    pagination: Pagination = Field(default_factory=Pagination, alias="Pagination")

    def for_page(self, page_index: int) -> "TransactionQuery":
        return self.model_copy(update={"pagination": Pagination(page_index=page_index, page_size=self.pagination.page_size)})

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


def build_criteria(node_id: str, index: TreeIndex, topic_tags: Mapping[str, str], topic_node_tag: str = TOPIC_NODE_TAG) -> tuple[Optional[str], list[Criterion]]:
    """Turn a selected node and its ancestors into a topic plus filter criteria.

    Walks up from the selected node collecting ``(tag, label)`` criteria until the
    first topic node, which supplies the query's topic instead (its label
    resolved through ``topic_tags``, falling back to the label itself). The walk
    also ends when a node has no parent.

    Args:
        node_id: Id of the selected node.
        index: Index of the unfiltered tree the node belongs to.
        topic_tags: Topic label -> topic tag lookup.
        topic_node_tag: Node tag that marks the top-level grouping.

    Returns:
        Tuple of (topic, criteria) with criteria ordered topmost first.

    Raises:
        KeyError: ``node_id`` is not part of the index.
    """
    node = index.node(node_id)
    if node is None:
        raise KeyError(node_id)

    topic: Optional[str] = None
    criteria: list[Criterion] = []
    seen: set[str] = set()
    current = node
    while current is not None and current.id not in seen:
        seen.add(current.id)
        if current.tag == topic_node_tag:
            topic = topic_tags.get(current.label, current.label)
            break
        criteria.append(Criterion(tag=current.tag, value=current.label))
        current = index.parent(current.id)

    criteria.reverse()
    return topic, criteria


def build_transaction_query(
    node_id: str,
    index: TreeIndex,
    topic_tags: Mapping[str, str],
    *,
    tenant_code: str,
    area_ids: Sequence[str],
    outlet_ids: Sequence[str],
    business_day: str,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> TransactionQuery:
    """Build the page-0 query for a selected node."""
    topic, criteria = build_criteria(node_id, index, topic_tags)
    return TransactionQuery(
        tenant_code=tenant_code,
        area_ids=tuple(str(a) for a in area_ids),
        outlet_ids=tuple(str(o) for o in outlet_ids),
        business_day=business_day,
        filter=tuple(criteria),
        topic=topic,
        pagination=Pagination(page_index=0, page_size=page_size),
    )


@dataclass(frozen=True)
class PageLoadError:
    message: str
    status_code: Optional[int] = None
    details: str = ""
    page_index: int = 0


@dataclass(frozen=True)
class PagerSnapshot:
    """Point-in-time copy of the pager state for rendering."""

    transactions: list[Transaction]
    column_properties: list[ColumnProperty]
    has_more: bool
    in_flight: bool
    next_page_index: int
    error: Optional[PageLoadError]
    query: Optional[TransactionQuery] = None
    generation: int = 0
    pages_loaded: int = field(default=0)


class TransactionPager:
    """Accumulates de-duplicated transaction pages for one drill-down selection.

    ``fetch_page`` performs the blocking backend call; ``executor`` runs it off
    the caller's thread. At most one fetch is outstanding per pager: the
    in-flight flag is set under the lock before submission, so rapid repeated
    ``load_more`` triggers are no-ops until the page lands.
    """

    def __init__(self, fetch_page: Callable[[TransactionQuery], TransactionPage], executor: Executor) -> None:
        self._fetch_page = fetch_page
        self._executor = executor
        self._lock = threading.Lock()
        self._generation = 0
        self._clear()

    def _clear(self) -> None:
        self._query: Optional[TransactionQuery] = None
        self._transactions: list[Transaction] = []
        self._references: set[str] = set()
        self._column_properties: list[ColumnProperty] = []
        self._next_page_index = 0
        self._pages_loaded = 0
        self._has_more = False
        self._in_flight = False
        self._error: Optional[PageLoadError] = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def query(self) -> Optional[TransactionQuery]:
        return self._query

    def start(self, query: TransactionQuery) -> Future:
        """Discard everything accumulated and fetch page 0 of ``query``."""
        with self._lock:
            self._generation += 1
            self._clear()
            self._query = query.for_page(0)
            self._has_more = True
            self._in_flight = True
            generation = self._generation
            page_query = self._query
        logger.info("Starting drill-down", generation=generation, topic=query.topic, criteria=len(query.filter))
        return self._executor.submit(self._load_page, generation, page_query)

    def load_more(self) -> Optional[Future]:
        """Fetch the next page, unless one is in flight or the data is exhausted."""
        with self._lock:
            if self._query is None or self._in_flight or not self._has_more:
                return None
            self._in_flight = True
            generation = self._generation
            page_query = self._query.for_page(self._next_page_index)
        return self._executor.submit(self._load_page, generation, page_query)

    def reset(self) -> None:
        """Close the drill-down; any outstanding page becomes stale."""
        with self._lock:
            self._generation += 1
            self._clear()

    def snapshot(self) -> PagerSnapshot:
        with self._lock:
            return PagerSnapshot(
                transactions=list(self._transactions),
                column_properties=list(self._column_properties),
                has_more=self._has_more,
                in_flight=self._in_flight,
                next_page_index=self._next_page_index,
                error=self._error,
                query=self._query,
                generation=self._generation,
                pages_loaded=self._pages_loaded,
            )

    def _load_page(self, generation: int, page_query: TransactionQuery) -> bool:
        page_index = page_query.pagination.page_index
        try:
            page = self._fetch_page(page_query)
        except BackendError as exc:
            self._fail(generation, page_index, exc)
            return False
        except Exception as exc:
            logger.exception("Unexpected error fetching transaction page", generation=generation, page_index=page_index, error=str(exc))
            self._fail(generation, page_index, BackendResponseError(f"Failed to fetch transactions: {exc}"))
            return False
        return self._merge(generation, page_index, page_query.pagination.page_size, page)

    def _fail(self, generation: int, page_index: int, exc: BackendError) -> None:
        with self._lock:
            if generation != self._generation:
                logger.info("Discarding stale page failure", generation=generation, current_generation=self._generation, page_index=page_index)
                return
            status_code = exc.status_code if isinstance(exc, BackendRequestError) else None
            details = exc.body if isinstance(exc, BackendRequestError) else ""
            self._error = PageLoadError(message=str(exc), status_code=status_code, details=details, page_index=page_index)
            self._in_flight = False
        logger.warning("Transaction page fetch failed", generation=generation, page_index=page_index, status_code=status_code, error=str(exc))

    def _merge(self, generation: int, page_index: int, page_size: int, page: TransactionPage) -> bool:
        with self._lock:
            if generation != self._generation:
                logger.info("Discarding stale page", generation=generation, current_generation=self._generation, page_index=page_index)
                return False

            added = 0
            for transaction in page.transactions:
                if transaction.reference in self._references:
                    continue
                self._references.add(transaction.reference)
                self._transactions.append(transaction)
                added += 1

            if page.column_properties or not self._column_properties:
                self._column_properties = list(page.column_properties)

            received = len(page.transactions)
            self._has_more = received >= page_size
            self._next_page_index = page_index + 1
            self._pages_loaded += 1
            self._error = None
            self._in_flight = False
            total = len(self._transactions)

        logger.info("Merged transaction page", generation=generation, page_index=page_index, received=received, added=added, total=total)
        return True
