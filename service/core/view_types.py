"""Typed payload shapes returned by the dashboard JSON endpoints.

These aliases make route/helper contracts explicit without changing runtime behavior.
View models stay plain dictionaries so Flask can ``jsonify`` them directly.
"""

from typing import Any, Literal, NotRequired, TypedDict

type CellTone = Literal["positive", "info", "negative", "neutral"]


class CellViewModel(TypedDict):
    """One numeric cell of a reconciliation row."""

    key: str
    value: float
    display: str
    tone: CellTone
    css_class: str


class ReconciliationRowViewModel(TypedDict):
    """Represents one rendered row in the reconciliation table."""

    key: str
    id: str
    label: str
    tag: str
    depth: int
    indent_px: int
    has_children: bool
    expanded: bool
    icon: str | None
    row_class: str
    font_class: str
    cells: list[CellViewModel]


class HeaderCell(TypedDict):
    label: str
    colspan: int
    rowspan: int
    key: NotRequired[str]


class OptionViewModel(TypedDict):
    value: str
    label: str
    selected: bool
    font_class: str


class PickerWindowViewModel(TypedDict):
    """Virtualized slice of a picker's options."""

    tag: str
    label: str
    search_term: str
    selected: list[str]
    display_text: str
    all_selected: bool
    partially_selected: bool
    can_clear: bool
    scroll_offset: int
    start: int
    end: int
    total: int
    offset_top: int
    offset_bottom: int
    options: list[OptionViewModel]


class TransactionColumnViewModel(TypedDict):
    key: str
    label: str
    info: str | None
    dynamic: bool


class TransactionRowViewModel(TypedDict):
    """Represents one rendered row in the drill-down transaction table."""

    key: str
    cells: dict[str, Any]
    settlement_tone: CellTone
    charges_tone: CellTone
    in_transit_overdue: bool
    settlement_detail: dict[str, Any]
    charges_detail: dict[str, Any]


class CashPositionRowViewModel(TypedDict):
    key: str
    category: str
    level: int
    expandable: bool
    expanded: bool
    row_class: str
    cells: dict[str, str]
