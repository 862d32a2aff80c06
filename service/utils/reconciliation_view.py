"""View model for the hierarchical reconciliation table.

Turns materialized rows into JSON-ready dictionaries: indentation, tag icon,
per-depth text style, font family and a tone for every numeric cell. Column
definitions live here once so header rows and cells cannot drift apart.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from itertools import groupby
from typing import Final

from core.models import TreeNode
from core.row_materializer import ExpansionLookup, Row
from core.text_normalization import font_class
from core.view_types import CellTone, CellViewModel, HeaderCell, ReconciliationRowViewModel
from utils.formatting import format_count

INDENT_PX_PER_DEPTH: Final[int] = 8

TAG_ICONS: Final[dict[str, str]] = {
    "BRAND": "list",
    "DRIVER": "car",
    "ROUTE": "route",
    "CUSTOMER": "user",
}

_DEPTH_ROW_CLASSES: Final[tuple[str, ...]] = (
    "text-primary text-base",
    "text-sm font-semibold text-slate-800",
    "text-sm font-semibold text-slate-700",
    "text-xs font-semibold text-slate-600",
)
_DEEP_ROW_CLASS: Final[str] = "text-xs bg-white text-slate-500"

TONE_CLASSES: Final[dict[str, str]] = {
    "negative": "text-red-600 font-medium",
    "info": "text-blue-400 font-medium",
    "positive": "text-green-600 font-medium",
    "neutral": "text-gray-600",
}


@dataclass(frozen=True)
class ValueColumn:
    key: str
    label: str
    block: str
    group: str | None
    tone: CellTone
    read: Callable[[TreeNode], float]


VALUE_COLUMNS: Final[tuple[ValueColumn, ...]] = (
    ValueColumn("recorded", "Recorded", "Records Verification", None, "positive", lambda n: n.records_verification.recorded),
    ValueColumn("verified", "Verified", "Records Verification", None, "positive", lambda n: n.records_verification.verified),
    ValueColumn("outstanding", "Outstanding", "Records Verification", "Current Day Variances", "positive", lambda n: n.records_verification.current_day_variances.outstanding),
    ValueColumn("exceptions", "Exceptions", "Records Verification", "Current Day Variances", "negative", lambda n: n.records_verification.current_day_variances.exceptions),
    ValueColumn("cumOutstanding", "Outstanding", "Records Verification", "Cumulative Variances", "positive", lambda n: n.records_verification.cumulative_variances.outstanding),
    ValueColumn("cumExceptions", "Exceptions", "Records Verification", "Cumulative Variances", "negative", lambda n: n.records_verification.cumulative_variances.exceptions),
    ValueColumn("claimed", "Claimed", "Settlement Verification", None, "info", lambda n: n.settlement_verification.claimed),
    ValueColumn("settled", "Settled", "Settlement Verification", None, "info", lambda n: n.settlement_verification.settled),
    ValueColumn("awaitingSettlement", "Awaiting Settlement", "Settlement Verification", "Current Day Variances", "info", lambda n: n.settlement_verification.current_day_variances.awaiting_settlement),
    ValueColumn("settlementExceptions", "Exceptions", "Settlement Verification", "Current Day Variances", "negative", lambda n: n.settlement_verification.current_day_variances.exceptions),
    ValueColumn("settlementCumAwaiting", "Awaiting Settlement", "Settlement Verification", "Cumulative Variances", "info", lambda n: n.settlement_verification.cumulative_variances.awaiting_settlement),
    ValueColumn("settlementCumExceptions", "Exceptions", "Settlement Verification", "Cumulative Variances", "negative", lambda n: n.settlement_verification.cumulative_variances.exceptions),
)


def row_class_for_depth(depth: int) -> str:
    if 0 <= depth < len(_DEPTH_ROW_CLASSES):
        return _DEPTH_ROW_CLASSES[depth]
    return _DEEP_ROW_CLASS


def header_rows(columns: Sequence[ValueColumn] = VALUE_COLUMNS) -> list[list[HeaderCell]]:
    """Build the three header rows (block, group, leaf) with their spans.

    A column without a group spans the group and leaf rows; the Topic column
    spans all three.
    """
    top: list[HeaderCell] = [{"label": "Topic", "colspan": 1, "rowspan": 3, "key": "topic"}]
    middle: list[HeaderCell] = []
    bottom: list[HeaderCell] = []

    for block, block_columns in groupby(columns, key=lambda c: c.block):
        block_columns = list(block_columns)
        top.append({"label": block, "colspan": len(block_columns), "rowspan": 1})
        for group, group_columns in groupby(block_columns, key=lambda c: c.group):
            group_columns = list(group_columns)
            if group is None:
                middle.extend({"label": c.label, "colspan": 1, "rowspan": 2, "key": c.key} for c in group_columns)
                continue
            middle.append({"label": group, "colspan": len(group_columns), "rowspan": 1})
            bottom.extend({"label": c.label, "colspan": 1, "rowspan": 1, "key": c.key} for c in group_columns)

    return [top, middle, bottom]


def build_cells(node: TreeNode, columns: Sequence[ValueColumn] = VALUE_COLUMNS) -> list[CellViewModel]:
    cells: list[CellViewModel] = []
    for column in columns:
        value = column.read(node)
        cells.append({"key": column.key, "value": value, "display": format_count(value), "tone": column.tone, "css_class": TONE_CLASSES[column.tone]})
    return cells


def build_row_view(row: Row, expansion: ExpansionLookup) -> ReconciliationRowViewModel:
    """Render one materialized row."""
    node: TreeNode = row.node
    return {
        "key": row.key,
        "id": node.id,
        "label": node.label,
        "tag": node.tag,
        "depth": row.depth,
        "indent_px": row.depth * INDENT_PX_PER_DEPTH,
        "has_children": node.has_children,
        "expanded": node.has_children and expansion.is_expanded(node.id),
        "icon": TAG_ICONS.get(node.tag),
        "row_class": row_class_for_depth(row.depth),
        "font_class": font_class(node.label),
        "cells": build_cells(node),
    }


def build_row_views(rows: Sequence[Row], expansion: ExpansionLookup) -> list[ReconciliationRowViewModel]:
    return [build_row_view(row, expansion) for row in rows]
