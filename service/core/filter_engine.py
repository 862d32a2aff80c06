"""Tag/label filtering over the reconciliation tree.

A pass keeps a node when its own tag/label matches, or when any descendant
matches; kept nodes carry their full original subtree. Passes for distinct
tags run one after another over the previous result (AND), while the selected
labels of one tag are alternatives (OR). A tag that matches nothing anywhere
empties the result.
"""

from collections.abc import Iterable, Mapping, Sequence

from core.models import Filter, FilterValue, Topic, TreeNode

type FilterState = dict[str, list[str]]

TOPIC_TAG = "TOPIC"


def active_filters(filter_state: Mapping[str, Sequence[str]]) -> list[tuple[str, list[str]]]:
    """Return the (tag, labels) pairs that actually filter, in insertion order."""
    return [(tag, list(values)) for tag, values in (filter_state or {}).items() if values]


def _subtree_matches(node: TreeNode, tag: str, labels: frozenset[str]) -> bool:
    stack = [node]
    while stack:
        current = stack.pop()
        if current.tag == tag and current.label in labels:
            return True
        stack.extend(current.children)
    return False


def filter_by_tag(nodes: Sequence[TreeNode], tag: str, labels: Iterable[str]) -> list[TreeNode]:
    """Run one filter pass.

    Args:
        nodes: Current result sequence.
        tag: Node tag the pass targets.
        labels: Accepted labels for that tag.

    Returns:
        The nodes that match or have a matching descendant, unchanged.
    """
    accepted = frozenset(labels)
    return [node for node in nodes if _subtree_matches(node, tag, accepted)]


def filter_tree(nodes: Sequence[TreeNode], filter_state: Mapping[str, Sequence[str]]) -> list[TreeNode]:
    """Apply every active filter pass in turn.

    Args:
        nodes: Root sequence of the loaded tree.
        filter_state: Mapping of tag -> selected labels. Empty lists are ignored.

    Returns:
        New root sequence; the input is never modified.
    """
    result = list(nodes)
    for tag, labels in active_filters(filter_state):
        result = filter_by_tag(result, tag, labels)
        if not result:
            break
    return result


def prune_filter_state(filter_state: Mapping[str, Sequence[str]], available_tags: Iterable[str]) -> FilterState:
    """Drop entries for tags that are no longer offered."""
    allowed = set(available_tags)
    return {tag: list(values) for tag, values in (filter_state or {}).items() if tag in allowed}


def relevant_filters(filters: Sequence[Filter], topics: Sequence[Topic], selected_topics: Sequence[str]) -> list[Filter]:
    """Return the filters offered by the selected topics.

    Args:
        filters: Filter metadata from the backend.
        topics: Topic metadata from the backend.
        selected_topics: Tags of the currently selected topics.

    Returns:
        Filters whose tag appears in any selected topic's available filter tags
        and that have at least one value.
    """
    selected = set(selected_topics)
    available_tags: set[str] = set()
    for topic in topics:
        if topic.tag in selected:
            available_tags.update(topic.available_filter_tags)
    return [f for f in filters if f.tag in available_tags and f.values]


def filters_from_tree(nodes: Sequence[TreeNode]) -> list[Filter]:
    """Derive filters from the loaded tree when no metadata is available.

    Every non-topic tag becomes a filter whose values are the distinct labels
    found under that tag, in first-seen pre-order.
    """
    labels_by_tag: dict[str, dict[str, None]] = {}
    stack = list(reversed(nodes))
    while stack:
        node = stack.pop()
        if node.tag and node.tag != TOPIC_TAG:
            labels_by_tag.setdefault(node.tag, {})[node.label] = None
        stack.extend(reversed(node.children))

    return [
        Filter(tag=tag, label=tag[:1] + tag[1:].lower().replace("_", " "), values=tuple(FilterValue(code=label, label=label) for label in labels))
        for tag, labels in labels_by_tag.items()
    ]
