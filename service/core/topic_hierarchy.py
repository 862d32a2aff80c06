"""Per-topic drill hierarchy (level order) and business day navigation."""

from collections.abc import Mapping, Sequence
from datetime import date, timedelta
from typing import Final, Optional

from config import logger

DEFAULT_HIERARCHIES: Final[dict[str, tuple[str, ...]]] = {
    "CASH": ("DRIVER", "ROUTE", "CUSTOMER", "BRAND", "CUMULATIVE_FROM_DATE"),
    "CHECKS": ("TERMINAL", "DRIVER", "PAYMENT_METHOD", "ROUTE", "CUSTOMER", "BRAND"),
    "CREDIT": ("CUSTOMER", "BRAND", "CUMULATIVE_FROM_DATE"),
    "POSCARDS": ("TERMINAL", "DRIVER", "PAYMENT_METHOD", "ROUTE", "CUSTOMER", "BRAND", "CUMULATIVE_FROM_DATE"),
}

HIERARCHY_SEPARATOR = "|"


class TopicHierarchies:
    """Editable level order for each topic, starting from the defaults."""

    def __init__(self, defaults: Optional[Mapping[str, Sequence[str]]] = None) -> None:
        self._defaults: dict[str, tuple[str, ...]] = {k: tuple(v) for k, v in (defaults or DEFAULT_HIERARCHIES).items()}
        self._current: dict[str, list[str]] = {k: list(v) for k, v in self._defaults.items()}

    def register(self, topic: str, default_levels: Sequence[str]) -> None:
        """Add a topic offered by the backend metadata that has no built-in default."""
        if topic in self._defaults or not default_levels:
            return
        self._defaults[topic] = tuple(default_levels)
        self._current[topic] = list(default_levels)

    def get(self, topic: str) -> list[str]:
        return list(self._current.get(topic, ()))

    def as_dict(self) -> dict[str, list[str]]:
        return {topic: list(levels) for topic, levels in self._current.items()}

    def set(self, topic: str, levels: Sequence[str]) -> list[str]:
        """Replace a topic's order; it must be a permutation of the current levels."""
        current = self._current.get(topic, [])
        if sorted(levels) != sorted(current):
            raise ValueError(f"Hierarchy for {topic} must reorder the existing levels {current}")
        self._current[topic] = list(levels)
        return self.get(topic)

    def move(self, topic: str, source_index: int, target_index: int) -> list[str]:
        """Move one level within a topic (drag and drop reorder)."""
        levels = self._current.get(topic)
        if levels is None:
            raise KeyError(topic)
        if not (0 <= source_index < len(levels) and 0 <= target_index < len(levels)):
            raise IndexError(f"Level index out of range for {topic}")
        if source_index == target_index:
            return self.get(topic)
        moved = levels.pop(source_index)
        levels.insert(target_index, moved)
        logger.info("Reordered topic hierarchy", topic=topic, source_index=source_index, target_index=target_index)
        return self.get(topic)

    def reset(self, topic: str) -> list[str]:
        if topic not in self._defaults:
            raise KeyError(topic)
        self._current[topic] = list(self._defaults[topic])
        return self.get(topic)

    def has_changed(self, topic: str) -> bool:
        return tuple(self._current.get(topic, ())) != self._defaults.get(topic, ())

    def as_parameter(self, topic: str) -> str:
        return HIERARCHY_SEPARATOR.join(self._current.get(topic, ()))


def shift_business_day(day: str, days: int) -> str:
    """Move an ISO business day by ``days`` calendar days (negative for earlier).

    Raises:
        OverflowError: The result falls outside the supported date range.
    """
    return (date.fromisoformat(day) + timedelta(days=days)).isoformat()
