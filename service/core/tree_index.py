"""Upward navigation over a child-owning tree.

Nodes only own their children. ``TreeIndex`` is built once per loaded tree and
keeps id -> node and id -> parent id maps so "parent of X" is a dict lookup
instead of a walk from the roots.
"""

from collections.abc import Iterator, Sequence
from typing import Any, Optional

from config import logger


class TreeIndex:
    """Arena-style lookup tables for one immutable tree snapshot.

    Works for any node type exposing ``id`` and ``children``.
    """

    def __init__(self, roots: Sequence[Any]) -> None:
        self._roots = tuple(roots)
        self._nodes: dict[str, Any] = {}
        self._parents: dict[str, Optional[str]] = {}

        stack: list[tuple[Any, Optional[str]]] = [(node, None) for node in reversed(self._roots)]
        while stack:
            node, parent_id = stack.pop()
            if node.id in self._nodes:
                # Ids are unique within a snapshot; keep the first occurrence if the backend repeats one.
                logger.warning("Duplicate node id in tree", node_id=node.id, parent_id=parent_id)
                continue
            self._nodes[node.id] = node
            self._parents[node.id] = parent_id
            for child in reversed(node.children or ()):
                stack.append((child, node.id))

    @property
    def roots(self) -> tuple[Any, ...]:
        return self._roots

    def __len__(self) -> int:
        return len(self._nodes)

    def contains(self, node_id: str) -> bool:
        return node_id in self._nodes

    def node(self, node_id: str) -> Optional[Any]:
        return self._nodes.get(node_id)

    def parent(self, node_id: str) -> Optional[Any]:
        """Return the parent node, or None for roots and unknown ids."""
        parent_id = self._parents.get(node_id)
        if parent_id is None:
            return None
        return self._nodes.get(parent_id)

    def ancestors(self, node_id: str) -> Iterator[Any]:
        """Yield the ancestors of ``node_id`` from the nearest parent upward."""
        seen: set[str] = {node_id}
        current = self.parent(node_id)
        while current is not None and current.id not in seen:
            seen.add(current.id)
            yield current
            current = self.parent(current.id)

    def depth(self, node_id: str) -> int:
        return sum(1 for _ in self.ancestors(node_id))

    def has_children(self, node_id: str) -> bool:
        node = self._nodes.get(node_id)
        return node is not None and bool(node.children)
