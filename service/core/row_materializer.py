"""Flattening of an expansion-aware tree into a windowed row sequence.

Filtering happens before materialization; this module only decides which rows
are visible given the expanded ids and the current "load more" window.
"""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

DEFAULT_INITIAL_WINDOW = 50
DEFAULT_WINDOW_INCREMENT = 50


class ExpansionLookup(Protocol):
    def is_expanded(self, node_id: str) -> bool: ...


@dataclass(frozen=True)
class Row:
    """One rendered row; ``key`` (the node id) identifies it across re-renders."""

    node: Any
    depth: int

    @property
    def key(self) -> str:
        return self.node.id


@dataclass(frozen=True)
class MaterializedRows:
    rows: list[Row]
    total_available: int

    @property
    def has_more(self) -> bool:
        return len(self.rows) < self.total_available


def iter_rows(nodes: Sequence[Any], expansion: ExpansionLookup) -> Iterator[Row]:
    """Yield rows in depth-first pre-order, entering only expanded nodes."""
    stack: list[tuple[Any, int]] = [(node, 0) for node in reversed(nodes)]
    while stack:
        node, depth = stack.pop()
        yield Row(node=node, depth=depth)
        if node.children and expansion.is_expanded(node.id):
            stack.extend((child, depth + 1) for child in reversed(node.children))


def materialize(nodes: Sequence[Any], expansion: ExpansionLookup, visible_count: int) -> MaterializedRows:
    """Return the first ``visible_count`` rows and the full sequence length.

    Args:
        nodes: Filtered root sequence.
        expansion: Anything answering ``is_expanded(node_id)``.
        visible_count: Size of the rendered prefix.

    Returns:
        Visible prefix plus the total number of rows available.
    """
    limit = max(0, visible_count)
    rows: list[Row] = []
    total = 0
    for row in iter_rows(nodes, expansion):
        if total < limit:
            rows.append(row)
        total += 1
    return MaterializedRows(rows=rows, total_available=total)


class RowWindow:
    """Monotonic "load more" window over a materialized row sequence."""

    def __init__(self, initial: int = DEFAULT_INITIAL_WINDOW, increment: int = DEFAULT_WINDOW_INCREMENT) -> None:
        if initial <= 0 or increment <= 0:
            raise ValueError("initial and increment must be positive")
        self.initial = initial
        self.increment = increment
        self.visible_count = initial

    def has_more(self, total_available: int) -> bool:
        return self.visible_count < total_available

    def grow(self, total_available: int) -> int:
        """Extend the window by one increment, never past the available rows."""
        if self.has_more(total_available):
            self.visible_count = min(self.visible_count + self.increment, total_available)
        return self.visible_count

    def reset(self) -> None:
        self.visible_count = self.initial
