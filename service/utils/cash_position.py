"""Cash position report: static category tree with expandable rows."""

import json
from pathlib import Path
from typing import Final

from pydantic import ValidationError

from config import logger
from core.expansion import ExpansionStore
from core.models import CashPositionItem
from core.row_materializer import iter_rows
from core.tree_index import TreeIndex
from core.view_types import CashPositionRowViewModel
from utils.formatting import format_plain_amount

CASH_POSITION_COLUMNS: Final[tuple[tuple[str, str], ...]] = (
    ("inflows", "Inflows"),
    ("outflows", "Outflows"),
    ("book_variance", "Book Variance"),
    ("bank_deposit", "Bank Deposit"),
    ("bank_verification", "Bank Verification"),
    ("bank_variance", "Bank Variance"),
)

_LEVEL_ROW_CLASSES: Final[tuple[str, ...]] = ("bg-gray-50 font-medium", "bg-white")
_DEEP_ROW_CLASS: Final[str] = "bg-gray-25"


def load_cash_position(path: str) -> tuple[CashPositionItem, ...]:
    """Read the report file; an unreadable file yields an empty report."""
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.warning("Cash position data not found", path=path)
        return ()
    except json.JSONDecodeError:
        logger.exception("Failed to parse cash position data", path=path)
        return ()

    items = payload.get("cashPositionData", []) if isinstance(payload, dict) else []
    try:
        return tuple(CashPositionItem.model_validate(item) for item in items or [])
    except ValidationError:
        logger.exception("Cash position data failed validation", path=path)
        return ()


class CashPositionReport:
    def __init__(self, items: tuple[CashPositionItem, ...]) -> None:
        self.items = items
        self.expansion = ExpansionStore(TreeIndex(items))

    def toggle(self, item_id: str) -> bool:
        return self.expansion.toggle(item_id)

    def rows(self) -> list[CashPositionRowViewModel]:
        result: list[CashPositionRowViewModel] = []
        for row in iter_rows(self.items, self.expansion):
            item: CashPositionItem = row.node
            expandable = bool(item.children)
            result.append(
                {
                    "key": row.key,
                    "category": item.category,
                    "level": row.depth,
                    "expandable": expandable,
                    "expanded": expandable and self.expansion.is_expanded(item.id),
                    "row_class": _LEVEL_ROW_CLASSES[row.depth] if row.depth < len(_LEVEL_ROW_CLASSES) else _DEEP_ROW_CLASS,
                    "cells": {key: format_plain_amount(getattr(item, key)) for key, _ in CASH_POSITION_COLUMNS},
                }
            )
        return result
