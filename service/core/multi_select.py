"""Searchable, windowed multi-value picker bound to a caller-owned selection.

The picker drives filter state (and single-value pickers such as tenant, area
and outlet via ``max_selections=1``). Rendering is virtualized: only options
inside the scrolled viewport plus an overscan buffer are materialized.
"""

import math
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Optional

from core.text_normalization import normalize_search_text

DEFAULT_SEARCH_DELAY_SECONDS = 0.15
DEFAULT_ITEM_HEIGHT = 32
DEFAULT_VIEWPORT_HEIGHT = 240
DEFAULT_OVERSCAN = 5


@dataclass(frozen=True)
class MultiSelectOption:
    value: str
    label: str


@dataclass(frozen=True)
class OptionWindow:
    """Slice of the filtered options to render, plus spacer sizes for the scroll area."""

    options: list[MultiSelectOption]
    start: int
    end: int
    total: int
    offset_top: int
    offset_bottom: int


class MultiSelect:
    """Selection engine behind the searchable checkbox dropdown.

    ``min_selections`` is a floor: a deselection that would go below it
    re-selects the first option (original order). ``max_selections`` is a cap
    (0 = unlimited); a cap of exactly 1 turns the picker into single-select
    where a new choice replaces the old one.
    """

    def __init__(
        self,
        options: Sequence[MultiSelectOption],
        selected: Optional[Sequence[str]] = None,
        *,
        min_selections: int = 0,
        max_selections: int = 0,
        on_change: Optional[Callable[[list[str]], None]] = None,
        search_delay: float = DEFAULT_SEARCH_DELAY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        item_height: int = DEFAULT_ITEM_HEIGHT,
        viewport_height: int = DEFAULT_VIEWPORT_HEIGHT,
        overscan: int = DEFAULT_OVERSCAN,
    ) -> None:
        if item_height <= 0:
            raise ValueError("item_height must be positive")
        self.options: list[MultiSelectOption] = list(options)
        self._selected: list[str] = list(selected or [])
        self.min_selections = max(0, min_selections)
        self.max_selections = max(0, max_selections)
        self._on_change = on_change
        self._search_delay = search_delay
        self._clock = clock
        self.item_height = item_height
        self.viewport_height = viewport_height
        self.overscan = max(0, overscan)

        self._pending_term = ""
        self._pending_since = 0.0
        self._search_term = ""
        self._scroll_offset = 0

    # region Selection
    @property
    def selected(self) -> list[str]:
        return list(self._selected)

    def set_selected(self, values: Sequence[str]) -> None:
        """Adopt a selection changed by the owner (no change callback)."""
        self._selected = list(values)

    def _commit(self, values: list[str]) -> list[str]:
        self._selected = values
        if self._on_change is not None:
            self._on_change(list(values))
        return list(values)

    def _apply_floor(self, values: list[str]) -> list[str]:
        if len(values) < self.min_selections and self.options:
            first = self.options[0].value
            if first not in values:
                values.append(first)
        return values

    def toggle_option(self, value: str, checked: bool) -> list[str]:
        """Check or uncheck one option and return the new selection."""
        if checked:
            if value in self._selected:
                return self.selected
            if self.max_selections == 1:
                return self._commit([value])
            if self.max_selections and len(self._selected) >= self.max_selections:
                return self.selected
            return self._commit(self._selected + [value])

        remaining = [v for v in self._selected if v != value]
        return self._commit(self._apply_floor(remaining))

    def toggle_select_all(self) -> list[str]:
        """Select or deselect the currently filtered options as a group."""
        filtered_values = [option.value for option in self.filtered_options()]
        if self.is_all_selected:
            drop = set(filtered_values)
            remaining = [v for v in self._selected if v not in drop]
            return self._commit(self._apply_floor(remaining))

        merged = list(dict.fromkeys(self._selected + filtered_values))
        if self.max_selections and len(merged) > self.max_selections:
            merged = merged[: self.max_selections]
        return self._commit(merged)

    def clear_all(self) -> list[str]:
        if self.min_selections > 0 and self.options:
            return self._commit([self.options[0].value])
        return self._commit([])

    @property
    def can_clear(self) -> bool:
        return len(self._selected) > self.min_selections

    @property
    def is_all_selected(self) -> bool:
        filtered = self.filtered_options()
        chosen = set(self._selected)
        return bool(filtered) and all(option.value in chosen for option in filtered)

    @property
    def is_partially_selected(self) -> bool:
        chosen = set(self._selected)
        return any(option.value in chosen for option in self.filtered_options()) and not self.is_all_selected

    def display_text(self, formatter: Optional[Callable[[list[str]], str]] = None, placeholder: str = "Select options") -> str:
        if not self._selected:
            return placeholder
        if formatter is None:
            return f"{len(self._selected)} selected"
        return formatter(list(self._selected))

    # endregion

    # region Search
    def set_search_term(self, term: str) -> None:
        """Record a keystroke; the term takes effect once the debounce delay passes."""
        self._pending_term = term or ""
        self._pending_since = self._clock()

    def clear_search(self) -> None:
        self._pending_term = ""
        self._apply_search_term("")

    @property
    def search_term(self) -> str:
        """Effective (debounced) search term."""
        if self._pending_term != self._search_term and self._clock() - self._pending_since >= self._search_delay:
            self._apply_search_term(self._pending_term)
        return self._search_term

    @property
    def search_pending(self) -> bool:
        """True while a typed term is still waiting out the debounce delay."""
        return self.search_term != self._pending_term

    def _apply_search_term(self, term: str) -> None:
        if term != self._search_term:
            self._search_term = term
            self._scroll_offset = 0

    def filtered_options(self) -> list[MultiSelectOption]:
        term = normalize_search_text(self.search_term.strip())
        if not term:
            return list(self.options)
        return [o for o in self.options if term in normalize_search_text(o.label) or term in normalize_search_text(o.value)]

    # endregion

    # region Virtualization
    @property
    def scroll_offset(self) -> int:
        self.search_term  # a newly effective term resets the scroll position
        return self._scroll_offset

    def scroll_to(self, offset: int) -> None:
        self.search_term
        max_offset = max(0, len(self.filtered_options()) * self.item_height - self.viewport_height)
        self._scroll_offset = min(max(0, int(offset)), max_offset)

    def visible_window(self) -> OptionWindow:
        """Return the options inside the viewport plus the overscan buffer."""
        filtered = self.filtered_options()
        total = len(filtered)
        offset = self.scroll_offset
        first_visible = offset // self.item_height
        last_visible = math.ceil((offset + self.viewport_height) / self.item_height)
        start = max(0, first_visible - self.overscan)
        end = min(total, last_visible + self.overscan)
        if start > end:
            start = end
        return OptionWindow(
            options=filtered[start:end],
            start=start,
            end=end,
            total=total,
            offset_top=start * self.item_height,
            offset_bottom=(total - end) * self.item_height,
        )

    # endregion
