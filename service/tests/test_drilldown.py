"""
Unit tests for the transaction drill-down.

Covers criteria construction from the ancestor chain and the page loader:
de-duplication across pages, end-of-data detection, the single in-flight
fetch guard, stale completions after a restart and retry after a failure.
"""

import pytest
from conftest import ManualExecutor, StubBackend, page

from core.drilldown import DEFAULT_PAGE_SIZE, Criterion, TransactionPager, TransactionQuery, build_criteria, build_transaction_query
from core.models import TreeNode
from core.tree_index import TreeIndex
from exceptions import BackendRequestError


def _refs(prefix: str, count: int, start: int = 0) -> list[str]:
    return [f"{prefix}{i}" for i in range(start, start + count)]


@pytest.fixture
def cards_index() -> TreeIndex:
    terminal = TreeNode(id="n3", tag="TERMINAL", label="T1")
    brand = TreeNode(id="n2", tag="BRAND", label="Visa", children=(terminal,))
    topic = TreeNode(id="n1", tag="TOPIC", label="Cards", children=(brand,))
    return TreeIndex((topic,))


# region Criteria
def test_criteria_walk_resolves_topic_and_orders_topmost_first(cards_index: TreeIndex) -> None:
    """Verify the topic ancestor becomes the query topic and the rest become criteria.

    Args:
        None.

    Returns:
        None.
    """
    topic, criteria = build_criteria("n3", cards_index, {"Cards": "CARDS_TAG"})

    assert topic == "CARDS_TAG"
    assert criteria == [Criterion(tag="BRAND", value="Visa"), Criterion(tag="TERMINAL", value="T1")]


def test_unresolved_topic_label_falls_back_to_the_label(cards_index: TreeIndex) -> None:
    topic, criteria = build_criteria("n2", cards_index, {})
    assert topic == "Cards"
    assert criteria == [Criterion(tag="BRAND", value="Visa")]


def test_selecting_the_topic_row_gives_no_criteria(cards_index: TreeIndex) -> None:
    assert build_criteria("n1", cards_index, {"Cards": "CARDS_TAG"}) == ("CARDS_TAG", [])


def test_walk_stops_at_a_root_without_topic() -> None:
    """Verify the walk terminates when no topic ancestor exists.

    Args:
        None.

    Returns:
        None.
    """
    leaf = TreeNode(id="c", tag="DRIVER", label="Sami")
    index = TreeIndex((TreeNode(id="r", tag="BRAND", label="Alpha", children=(leaf,)),))

    topic, criteria = build_criteria("c", index, {})

    assert topic is None
    assert [(c.tag, c.value) for c in criteria] == [("BRAND", "Alpha"), ("DRIVER", "Sami")]


def test_unknown_node_raises_key_error(cards_index: TreeIndex) -> None:
    with pytest.raises(KeyError):
        build_criteria("missing", cards_index, {})


def test_query_payload_uses_backend_field_names(cards_index: TreeIndex) -> None:
    """Verify the GetTransactions payload shape.

    Args:
        None.

    Returns:
        None.
    """
    query = build_transaction_query(
        "n3",
        cards_index,
        {"Cards": "CARDS_TAG"},
        tenant_code="ABP",
        area_ids=[1245],
        outlet_ids=["9865"],
        business_day="2025-08-27",
    )

    assert query.to_payload() == {
        "TenantCode": "ABP",
        "AreaIds": ["1245"],
        "OutletIds": ["9865"],
        "BusinessDay": "2025-08-27",
        "Filter": [{"Tag": "BRAND", "Value": "Visa"}, {"Tag": "TERMINAL", "Value": "T1"}],
        "Topic": "CARDS_TAG",
        "Pagination": {"PageIndex": 0, "PageSize": DEFAULT_PAGE_SIZE},
    }
    assert query.for_page(3).pagination.page_index == 3
    assert query.for_page(3).filter == query.filter


# endregion


# region TransactionPager
def _pager(stub_backend: StubBackend, manual_executor: ManualExecutor) -> TransactionPager:
    return TransactionPager(stub_backend.get_transactions, manual_executor)


def test_pages_merge_with_dedup_and_signal_end_of_data(stub_backend: StubBackend, manual_executor: ManualExecutor) -> None:
    """Verify 50 + 30 records with 5 duplicates merge to 75 and end the data.

    Args:
        None.

    Returns:
        None.
    """
    first = _refs("TX", 50)
    second = _refs("TX", 5, start=45) + _refs("TX", 25, start=50)
    stub_backend.transaction_pages = {0: page(*first), 1: page(*second)}
    pager = _pager(stub_backend, manual_executor)

    pager.start(TransactionQuery(tenant_code="ABP"))
    manual_executor.run()
    assert pager.snapshot().has_more

    assert pager.load_more() is not None
    manual_executor.run()

    snapshot = pager.snapshot()
    references = [t.reference for t in snapshot.transactions]
    assert len(references) == 75
    assert len(set(references)) == 75
    assert references[:50] == first
    assert not snapshot.has_more
    assert snapshot.pages_loaded == 2
    assert pager.load_more() is None
    assert manual_executor.pending == []


def test_only_one_fetch_is_in_flight(stub_backend: StubBackend, manual_executor: ManualExecutor) -> None:
    """Verify repeated load-more triggers while a page is outstanding are no-ops.

    Args:
        None.

    Returns:
        None.
    """
    stub_backend.transaction_pages = {0: page(*_refs("A", 50)), 1: page(*_refs("B", 50))}
    pager = _pager(stub_backend, manual_executor)

    pager.start(TransactionQuery())
    assert pager.load_more() is None
    manual_executor.run()

    assert pager.load_more() is not None
    assert pager.load_more() is None
    assert pager.load_more() is None
    assert len(manual_executor.pending) == 1
    assert pager.snapshot().in_flight

    manual_executor.run()
    assert [q.pagination.page_index for op, q in stub_backend.calls] == [0, 1]
    assert pager.snapshot().next_page_index == 2


def test_restart_discards_stale_pages(manual_executor: ManualExecutor) -> None:
    """Verify a page from a superseded selection never reaches the new list.

    Args:
        None.

    Returns:
        None.
    """
    answers = {"OLD": page("OLD-1", "OLD-2"), "NEW": page("NEW-1")}
    pager = TransactionPager(lambda q: answers[q.topic], manual_executor)

    old_future = pager.start(TransactionQuery(topic="OLD"))
    pager.start(TransactionQuery(topic="NEW"))

    manual_executor.run(1)
    manual_executor.run(0)

    snapshot = pager.snapshot()
    assert [t.reference for t in snapshot.transactions] == ["NEW-1"]
    assert snapshot.query.topic == "NEW"
    assert snapshot.pages_loaded == 1
    assert old_future.result() is False


def test_reset_closes_the_session(stub_backend: StubBackend, manual_executor: ManualExecutor) -> None:
    stub_backend.transaction_pages = {0: page("X1")}
    pager = _pager(stub_backend, manual_executor)
    pager.start(TransactionQuery())
    generation = pager.generation

    pager.reset()
    manual_executor.run()

    snapshot = pager.snapshot()
    assert snapshot.transactions == []
    assert snapshot.query is None
    assert snapshot.generation == generation + 1
    assert pager.load_more() is None


def test_failed_load_more_keeps_data_and_allows_retry(stub_backend: StubBackend, manual_executor: ManualExecutor) -> None:
    """Verify a failed page surfaces an error, keeps the list and can be retried.

    Args:
        None.

    Returns:
        None.
    """
    stub_backend.transaction_pages = {0: page(*_refs("P", 50)), 1: BackendRequestError(503, "unavailable")}
    pager = _pager(stub_backend, manual_executor)
    pager.start(TransactionQuery())
    manual_executor.run()

    pager.load_more()
    manual_executor.run()

    failed = pager.snapshot()
    assert len(failed.transactions) == 50
    assert failed.error is not None
    assert failed.error.status_code == 503
    assert failed.error.details == "unavailable"
    assert failed.error.page_index == 1
    assert failed.next_page_index == 1
    assert not failed.in_flight

    stub_backend.transaction_pages[1] = page(*_refs("Q", 10))
    assert pager.load_more() is not None
    manual_executor.run()

    recovered = pager.snapshot()
    assert recovered.error is None
    assert len(recovered.transactions) == 60
    assert not recovered.has_more


def test_unexpected_fetch_error_becomes_error_state(manual_executor: ManualExecutor) -> None:
    def explode(query: TransactionQuery):
        raise RuntimeError("socket closed")

    pager = TransactionPager(explode, manual_executor)
    pager.start(TransactionQuery())
    manual_executor.run()

    snapshot = pager.snapshot()
    assert snapshot.error is not None
    assert "socket closed" in snapshot.error.message
    assert snapshot.error.status_code is None
    assert snapshot.transactions == []


def test_column_properties_come_from_the_latest_page(stub_backend: StubBackend, manual_executor: ManualExecutor) -> None:
    columns = ({"ColumnAccessor": "Brand", "ColumnLabel": "Brand", "ColumnOrder": 2},)
    stub_backend.transaction_pages = {0: page("R1", columns=columns)}
    pager = _pager(stub_backend, manual_executor)
    pager.start(TransactionQuery())
    manual_executor.run()

    assert [c.accessor for c in pager.snapshot().column_properties] == ["Brand"]


# endregion
