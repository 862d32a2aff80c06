"""Unit tests for formatting helpers and the table view models."""

from pathlib import Path

import pytest

from config import CASH_POSITION_PATH
from core.expansion import ExpansionStore
from core.models import ColumnProperty, Transaction, TreeNode
from core.row_materializer import materialize
from core.tree_index import TreeIndex
from utils.cash_position import CashPositionReport, load_cash_position
from utils.formatting import fmt_datetime, format_count, format_money, format_plain_amount
from utils.reconciliation_view import VALUE_COLUMNS, build_row_views, header_rows, row_class_for_depth
from utils.transaction_view import build_transaction_table, status_tone


# region Formatting
@pytest.mark.parametrize(
    ("value", "expected"),
    [(0, "-"), (1200, "1,200"), ("1,234,567", "1,234,567"), (1500.5, "1,501"), (-42, "-42"), (None, ""), ("n/a", "n/a")],
)
def test_format_count(value, expected: str) -> None:
    assert format_count(value) == expected


def test_format_money_rounds_half_up() -> None:
    """Verify money values keep two decimals and round half up.

    Args:
        None.

    Returns:
        None.
    """
    assert format_money(2.675) == "2.68"
    assert format_money(1234.5) == "1,234.50"
    assert format_money(0) == "0.00"
    assert format_money(-0.001) == "0.00"
    assert format_money("") == ""


def test_format_plain_amount_drops_trailing_zeros() -> None:
    assert format_plain_amount(1250000.0) == "1,250,000"
    assert format_plain_amount(915400.5) == "915,400.5"
    assert format_plain_amount(12450.25) == "12,450.25"
    assert format_plain_amount(None) == ""


def test_fmt_datetime_handles_dates_datetimes_and_garbage() -> None:
    assert fmt_datetime("2025-08-27T14:05:00Z") == "08/27/2025, 02:05 PM"
    assert fmt_datetime("2025-08-27") == "08/27/2025, 12:00 AM"
    assert fmt_datetime("yesterday") == "yesterday"
    assert fmt_datetime(None) == ""


# endregion


# region Reconciliation table
def test_header_rows_span_blocks_and_groups() -> None:
    """Verify the three header rows line up with the value columns.

    Args:
        None.

    Returns:
        None.
    """
    top, middle, bottom = header_rows()

    assert [(c["label"], c["colspan"], c["rowspan"]) for c in top] == [
        ("Topic", 1, 3),
        ("Records Verification", 6, 1),
        ("Settlement Verification", 6, 1),
    ]
    assert [(c["label"], c["colspan"], c["rowspan"]) for c in middle][:4] == [
        ("Recorded", 1, 2),
        ("Verified", 1, 2),
        ("Current Day Variances", 2, 1),
        ("Cumulative Variances", 2, 1),
    ]
    assert len(bottom) == 8
    leaf_keys = [c["key"] for c in middle if "key" in c] + [c["key"] for c in bottom]
    assert sorted(leaf_keys) == sorted(column.key for column in VALUE_COLUMNS)


def test_row_views_carry_indent_icon_tone_and_expansion(sample_roots) -> None:
    """Verify row view models for a partly expanded tree.

    Args:
        None.

    Returns:
        None.
    """
    store = ExpansionStore(TreeIndex(sample_roots))
    store.toggle("t1")
    store.toggle("b1")
    rows = build_row_views(materialize(sample_roots, store, 50).rows, store)

    topic, brand, driver = rows[0], rows[1], rows[2]
    assert (topic["key"], topic["expanded"], topic["has_children"], topic["indent_px"]) == ("t1", True, True, 0)
    assert brand["icon"] == "list"
    assert brand["indent_px"] == 8
    assert driver["icon"] == "car"
    assert driver["has_children"] is False
    assert driver["expanded"] is False
    assert driver["row_class"] == row_class_for_depth(2)

    cells = {cell["key"]: cell for cell in driver["cells"]}
    assert cells["recorded"]["display"] == "1,200"
    assert cells["exceptions"]["display"] == "3"
    assert cells["exceptions"]["tone"] == "negative"
    assert cells["verified"]["display"] == "-"
    assert cells["claimed"]["tone"] == "info"
    assert rows[-1]["key"] == "t2"
    assert rows[-1]["expanded"] is False


def test_row_class_for_deep_rows_is_shared() -> None:
    assert row_class_for_depth(4) == row_class_for_depth(9)
    assert row_class_for_depth(0) != row_class_for_depth(1)


def test_arabic_labels_use_arabic_font() -> None:
    node = TreeNode(id="x", tag="BRAND", label="الفا")
    row_view = build_row_views(materialize((node,), ExpansionStore(), 5).rows, ExpansionStore())[0]
    assert row_view["font_class"] == "font-arabic"


# endregion


# region Transaction table
@pytest.mark.parametrize(
    ("tags", "tone"),
    [
        (("RECONCILED", "EXCEPTION"), "negative"),
        (("INTRANSIT", "RECONCILED"), "info"),
        (("RECONCILED", ""), "positive"),
        (("", "PENDING"), "neutral"),
    ],
)
def test_status_tone_priority(tags, tone: str) -> None:
    assert status_tone(*tags) == tone


def test_transaction_table_orders_columns_and_renders_rows() -> None:
    """Verify dynamic columns sit between fixed ones and list values are rendered.

    Args:
        None.

    Returns:
        None.
    """
    columns = (
        ColumnProperty.model_validate({"ColumnAccessor": "Attributes", "ColumnLabel": "Attributes", "ColumnOrder": 5, "IsList": True}),
        ColumnProperty.model_validate({"ColumnAccessor": "TerminalSerial", "ColumnLabel": "Terminal", "ColumnOrder": 1, "ColumnInfo": "Serial number"}),
    )
    transaction = Transaction.model_validate(
        {
            "TransactionReference": "TX1",
            "TransactionDate": "2025-08-27T09:30:00",
            "TransactionAmount": 1500,
            "PaymentMethodName": "mada",
            "TerminalSerial": "S-9",
            "Attributes": [{"Key": "Batch", "Value": "77"}, {"Key": "Note", "Value": None}],
            "ReconciliationStatusTag": "RECONCILED",
            "SettlementStatusTag": "INTRANSIT",
            "BlendedSettlementStatusName": "In Transit",
            "IsInTransitOverdue": True,
            "Charges": {"ChargesReconciliationStatusTag": "EXCEPTION", "BlendedChargesStatusTag": "MISMATCH", "AppliedFeesAmount": 12.3},
        }
    )

    table = build_transaction_table([transaction], columns)

    keys = [c["key"] for c in table["columns"]]
    assert keys[:7] == ["reference", "transaction_date", "business_day", "payment_method", "amount", "in_transit_due_date", "settlement_status"]
    assert keys[7:] == ["TerminalSerial", "Attributes", "charges"]
    assert table["columns"][7]["info"] == "Serial number"

    row = table["rows"][0]
    assert row["key"] == "TX1"
    assert row["cells"]["amount"] == "1,500.00"
    assert row["cells"]["transaction_date"] == "08/27/2025, 09:30 AM"
    assert row["cells"]["TerminalSerial"] == "S-9"
    assert row["cells"]["Attributes"] == ["Batch: 77", "Note: "]
    assert row["cells"]["settlement_status"] == "In Transit"
    assert row["cells"]["charges"] == "MISMATCH"
    assert row["settlement_tone"] == "info"
    assert row["charges_tone"] == "negative"
    assert row["in_transit_overdue"] is True
    assert row["charges_detail"]["applied_fees"] == "12.30"


# endregion


# region Cash position
def test_cash_position_report_expands_categories() -> None:
    """Verify the bundled report loads and expands like the reconciliation tree.

    Args:
        None.

    Returns:
        None.
    """
    report = CashPositionReport(load_cash_position(CASH_POSITION_PATH))

    collapsed = report.rows()
    assert [row["key"] for row in collapsed] == ["opening", "cash", "cards", "payments"]
    assert collapsed[0]["cells"]["inflows"] == ""
    assert collapsed[0]["cells"]["bank_verification"] == "1,250,000"
    assert collapsed[2]["cells"]["inflows"] == "915,400.5"
    assert not collapsed[0]["expandable"]
    assert not collapsed[3]["expandable"]

    assert report.toggle("cash") is True
    assert report.toggle("opening") is False
    expanded = report.rows()
    assert [row["key"] for row in expanded][:4] == ["opening", "cash", "cash-drivers", "cash-counter"]
    assert expanded[1]["expanded"] is True
    assert expanded[2]["level"] == 1


def test_missing_cash_position_file_gives_empty_report(tmp_path: Path) -> None:
    assert load_cash_position(str(tmp_path / "missing.json")) == ()

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    assert load_cash_position(str(broken)) == ()


# endregion
