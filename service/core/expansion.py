"""Expansion state for hierarchical tables, keyed by stable node id."""

from typing import Optional

from config import logger
from core.tree_index import TreeIndex


class ExpansionStore:
    """Set of expanded node ids for one tree snapshot.

    Only nodes with children can be toggled. A toggle may carry an
    ``interaction_id`` (one per user gesture); a second toggle of the same node
    with the same id is a duplicate dispatch and is ignored, so one logical
    toggle flips exactly once.
    """

    def __init__(self, index: Optional[TreeIndex] = None) -> None:
        self._index = index
        self._expanded: set[str] = set()
        self._handled: set[tuple[str, str]] = set()

    @property
    def index(self) -> Optional[TreeIndex]:
        return self._index

    @property
    def expanded_ids(self) -> frozenset[str]:
        return frozenset(self._expanded)

    def bind(self, index: Optional[TreeIndex]) -> None:
        """Attach the store to a tree; a different tree resets all state."""
        if index is self._index:
            return
        self._index = index
        self.reset()

    def reset(self) -> None:
        self._expanded.clear()
        self._handled.clear()

    def is_expanded(self, node_id: str) -> bool:
        return node_id in self._expanded

    def can_toggle(self, node_id: str) -> bool:
        return self._index is not None and self._index.has_children(node_id)

    def toggle(self, node_id: str, interaction_id: Optional[str] = None) -> bool:
        """Flip one node.

        Args:
            node_id: Id of the node to flip.
            interaction_id: Identifier of the user gesture that caused the toggle.

        Returns:
            True if the node was flipped, False for leaves, unknown ids and duplicates.
        """
        if not self.can_toggle(node_id):
            return False

        if interaction_id is not None:
            key = (node_id, interaction_id)
            if key in self._handled:
                logger.debug("Ignoring duplicate toggle", node_id=node_id, interaction_id=interaction_id)
                return False
            self._handled.add(key)

        if node_id in self._expanded:
            self._expanded.discard(node_id)
        else:
            self._expanded.add(node_id)
        return True
