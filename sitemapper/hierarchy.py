"""Tree queries over flat parent-pointer node records.

Nodes reference their parent by integer id only; the tree shape is resolved
through an id index every time it is needed, so reparenting a node is just a
``parent_id`` rewrite on the record.

All functions accept any iterable of :class:`~sitemapper.models.SitemapNode`
and never mutate their inputs.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import replace
from typing import Iterable, Iterator, Optional

from sitemapper.config import settings
from sitemapper.errors import HierarchyError
from sitemapper.models import SitemapNode

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _sibling_key(node: SitemapNode) -> tuple[int, int]:
    return (node.position, node.id)


def _index(nodes: Iterable[SitemapNode]) -> dict[int, SitemapNode]:
    return {n.id: n for n in nodes}


def _children_index(nodes: Iterable[SitemapNode]) -> dict[Optional[int], list[SitemapNode]]:
    by_id = _index(nodes)
    groups: dict[Optional[int], list[SitemapNode]] = defaultdict(list)
    for node in by_id.values():
        parent = node.parent_id if node.parent_id in by_id and node.parent_id != node.id else None
        groups[parent].append(node)
    for group in groups.values():
        group.sort(key=_sibling_key)
    return groups


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_tree(nodes: Iterable[SitemapNode]) -> list[SitemapNode]:
    """Turn flat records into an ordered forest.

    Every node is copied and its ``children`` list populated, grouped by
    ``parent_id`` and sorted by sibling ``position`` (ties broken by id).
    A node whose parent is missing from the input becomes an extra root
    instead of being dropped.  The ``is_root`` node, when present, is always
    the first entry of the returned list.

    Records that only reach each other through a parent cycle are detached
    at their lowest id and also returned as roots.
    """
    copies = {n.id: replace(n, children=[]) for n in nodes}
    roots: list[SitemapNode] = []
    for node in copies.values():
        parent = copies.get(node.parent_id) if node.parent_id is not None else None
        if parent is None or parent is node:
            roots.append(node)
        else:
            parent.children.append(node)

    unreachable = set(copies) - {n.id for n in walk(roots)}
    while unreachable:
        breaker = copies[min(unreachable)]
        logger.warning("Parent cycle detected at node %s; treating it as a root", breaker.id)
        parent = copies[breaker.parent_id]  # type: ignore[index]
        parent.children = [c for c in parent.children if c.id != breaker.id]
        roots.append(breaker)
        unreachable -= {n.id for n in walk([breaker])}

    for node in copies.values():
        node.children.sort(key=_sibling_key)
    roots.sort(key=lambda n: (not n.is_root, n.position, n.id))
    return roots


def walk(roots: Iterable[SitemapNode]) -> Iterator[SitemapNode]:
    """Yield every node of a built forest in pre-order."""
    stack = list(reversed(list(roots)))
    seen: set[int] = set()
    while stack:
        node = stack.pop()
        if node.id in seen:
            continue
        seen.add(node.id)
        yield node
        stack.extend(reversed(node.children))


def descendants(nodes: Iterable[SitemapNode], node_id: int) -> list[int]:
    """Return *node_id* followed by the ids of its whole subtree.

    Returns an empty list when *node_id* is not among *nodes*.
    """
    node_list = list(nodes)
    if node_id not in _index(node_list):
        return []
    groups = _children_index(node_list)

    result: list[int] = []
    seen: set[int] = set()

    def _visit(current: int) -> None:
        if current in seen:
            return
        seen.add(current)
        result.append(current)
        for child in groups.get(current, []):
            _visit(child.id)

    _visit(node_id)
    return result


def ancestors(nodes: Iterable[SitemapNode], node_id: int) -> list[int]:
    """Return the parent chain of *node_id*, nearest parent first.

    The walk is bounded by the number of records.  A chain that stops at a
    missing parent simply ends there.

    Raises:
        HierarchyError: If the chain loops back on itself.
    """
    by_id = _index(nodes)
    chain: list[int] = []
    current = by_id.get(node_id)
    steps = 0
    while current is not None and current.parent_id is not None:
        steps += 1
        if steps > len(by_id) or current.parent_id == node_id or current.parent_id in chain:
            raise HierarchyError(f"Parent cycle detected above node {node_id}")
        if current.parent_id not in by_id:
            break
        chain.append(current.parent_id)
        current = by_id[current.parent_id]
    return chain


def top_most(nodes: Iterable[SitemapNode], selected_ids: Iterable[int]) -> list[int]:
    """Keep only selected ids that have no selected ancestor.

    Input order is preserved; unknown ids are dropped.
    """
    node_list = list(nodes)
    by_id = _index(node_list)
    selected = [i for i in dict.fromkeys(selected_ids) if i in by_id]
    selected_set = set(selected)
    result = []
    for node_id in selected:
        if selected_set.isdisjoint(ancestors(node_list, node_id)):
            result.append(node_id)
    return result


def find_root(nodes: Iterable[SitemapNode]) -> SitemapNode:
    """Return the single ``is_root`` node.

    Raises:
        HierarchyError: If there is no root or more than one.
    """
    roots = [n for n in nodes if n.is_root]
    if len(roots) != 1:
        raise HierarchyError(f"Expected exactly one root node, found {len(roots)}")
    return roots[0]


def validate_tree(nodes: Iterable[SitemapNode]) -> SitemapNode:
    """Check the strict tree invariants and return the root.

    * exactly one node has ``is_root`` and it has no parent;
    * every other node's ancestor chain ends at that root.

    Raises:
        HierarchyError: On the first violation found.
    """
    node_list = list(nodes)
    root = find_root(node_list)
    if root.parent_id is not None:
        raise HierarchyError(f"Root node {root.id} must not have a parent")
    for node in node_list:
        if node.id == root.id:
            continue
        chain = ancestors(node_list, node.id)
        if not chain or chain[-1] != root.id:
            raise HierarchyError(f"Node {node.id} is not connected to root {root.id}")
    return root


def is_in_subtree(nodes: Iterable[SitemapNode], subtree_root: int, node_id: int) -> bool:
    """``True`` when *node_id* is *subtree_root* or one of its descendants."""
    return node_id in descendants(nodes, subtree_root)


def node_paths(nodes: Iterable[SitemapNode]) -> dict[int, str]:
    """Map node id → slash-joined slug path.

    The sitemap root maps to ``/``.  Orphan subtrees start their own path
    from their top-most record.
    """
    paths: dict[int, str] = {}

    def _visit(node: SitemapNode, prefix: str) -> None:
        if node.is_root:
            path = "/"
        else:
            path = f"{prefix.rstrip('/')}/{node.slug.strip('/')}"
        paths[node.id] = path
        for child in node.children:
            _visit(child, path)

    for top in build_tree(nodes):
        _visit(top, "")
    return paths


def layout_tree(nodes: Iterable[SitemapNode]) -> dict[int, tuple[float, float]]:
    """Compute a layered left-to-right layout for the whole forest.

    Depth picks the column, leaves are stacked top to bottom in sibling
    order, and every parent is centred on the span of its children.  The
    returned coordinates are the top-left corner of each node box.
    """
    column = settings.layout_node_width + settings.layout_rank_sep
    row = settings.layout_node_height + settings.layout_node_sep
    positions: dict[int, tuple[float, float]] = {}
    next_row = 0

    def _place(node: SitemapNode, depth: int) -> float:
        nonlocal next_row
        if not node.children:
            y = next_row * row
            next_row += 1
        else:
            ys = [_place(child, depth + 1) for child in node.children]
            y = (ys[0] + ys[-1]) / 2
        positions[node.id] = (depth * column, y)
        return y

    for top in build_tree(nodes):
        _place(top, 0)
    return positions
