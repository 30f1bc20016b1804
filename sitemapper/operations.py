"""Node operations controller.

Every mutation follows the same request-then-reconcile sequence:

1. validate against the current local records (root and cycle checks
   happen here, before anything goes over the wire);
2. call the remote :class:`~sitemapper.services.base.NodeService`;
3. on success record the matching history action;
4. reload the whole node list from the service.

Nothing local changes if the remote call fails.  Canvas positions are the
one exception: :meth:`NodeOperations.set_position` only touches local state
until :meth:`NodeOperations.save_positions` commits every pending position
in one batch.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional

from sitemapper.errors import HierarchyError, RootDeletionError
from sitemapper.hierarchy import build_tree, is_in_subtree, layout_tree, top_most
from sitemapper.history import (
    CreateNodeAction,
    DeleteNodeAction,
    HistoryAction,
    HistoryEngine,
    MoveNodeAction,
    MovePositionAction,
    UpdateNodeAction,
)
from sitemapper.models import EDITABLE_FIELDS, NodeInput, SitemapNode
from sitemapper.services.base import NodeService

logger = logging.getLogger(__name__)


class ServiceHandlers:
    """History replay callbacks that talk straight to the node service."""

    def __init__(self, service: NodeService) -> None:
        self.service = service

    async def recreate_node(self, snapshot: SitemapNode) -> int:
        data = NodeInput.from_node(snapshot)
        if snapshot.has_position:
            node = await self.service.create_node_at(data, snapshot.position_x, snapshot.position_y)  # type: ignore[arg-type]
        else:
            node = await self.service.create_node(data)
        return node.id

    async def delete_node(self, node_id: int) -> None:
        await self.service.delete_node(node_id)

    async def update_node(self, node_id: int, fields: dict) -> None:
        await self.service.update_node(node_id, fields)

    async def move_node(self, node_id: int, parent_id: Optional[int]) -> None:
        await self.service.move_node(node_id, parent_id)

    async def update_position(self, node_id: int, x: float, y: float) -> None:
        await self.service.update_position(node_id, x, y)


class NodeOperations:
    """Create / delete / reparent / update nodes of one sitemap.

    Owns the authoritative local copy of the node records (``nodes``) and
    the ordered forest built from them (``tree``), both replaced wholesale
    on every :meth:`reload`.
    """

    def __init__(
        self,
        service: NodeService,
        sitemap_id: int,
        history_size: Optional[int] = None,
        on_reload: Optional[Callable[[list[SitemapNode]], None]] = None,
    ) -> None:
        self.service = service
        self.sitemap_id = sitemap_id
        self.on_reload = on_reload
        self.nodes: list[SitemapNode] = []
        self.tree: list[SitemapNode] = []
        self.history = HistoryEngine(ServiceHandlers(service), reload=self.reload, max_size=history_size)
        # node id -> committed position before the first unsaved drag
        self._position_origin: dict[int, tuple[float, float]] = {}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    async def reload(self) -> list[SitemapNode]:
        """Replace local records with the service's current ones.

        Unsaved canvas positions survive the reload for nodes that still
        exist.
        """
        fresh = await self.service.list_nodes(self.sitemap_id)
        fresh_ids = {n.id for n in fresh}
        pending = {n.id: (n.position_x, n.position_y) for n in self.nodes if n.id in self._position_origin}
        self._position_origin = {k: v for k, v in self._position_origin.items() if k in fresh_ids}
        for node in fresh:
            if node.id in self._position_origin:
                node.position_x, node.position_y = pending[node.id]
        self.nodes = fresh
        self.tree = build_tree(fresh)
        if self.on_reload:
            self.on_reload(fresh)
        return fresh

    def get(self, node_id: int) -> Optional[SitemapNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def require(self, node_id: int) -> SitemapNode:
        node = self.get(node_id)
        if node is None:
            raise ValueError(f"Node not found: {node_id!r}")
        return node

    @property
    def root(self) -> Optional[SitemapNode]:
        return next((n for n in self.nodes if n.is_root), None)

    def children_of(self, node_id: int) -> list[SitemapNode]:
        return sorted(
            (n for n in self.nodes if n.parent_id == node_id),
            key=lambda n: (n.position, n.id),
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------
    async def create_node(self, data: NodeInput) -> SitemapNode:
        node = await self.service.create_node(data)
        return await self._created(node)

    async def create_node_at(self, data: NodeInput, x: float, y: float) -> SitemapNode:
        node = await self.service.create_node_at(data, x, y)
        return await self._created(node)

    async def _created(self, node: SitemapNode) -> SitemapNode:
        logger.info("Created node %s (%r)", node.id, node.title)
        self._record(CreateNodeAction(node=node.snapshot()))
        await self.reload()
        return node

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------
    async def delete_node(self, node_id: int) -> None:
        """Delete one non-root node, keeping its children.

        The service deletes whole subtrees, so the children are first moved
        up to the node's parent.

        Raises:
            RootDeletionError: If *node_id* is the sitemap root.
            ValueError: If the node is unknown.
        """
        node = self.require(node_id)
        if node.is_root:
            raise RootDeletionError("The root node cannot be deleted")
        removed, lifted = self._split_subtree(node_id, {node_id})
        await self._delete(removed, lifted)
        await self.reload()

    async def delete_nodes(self, node_ids: Iterable[int]) -> list[int]:
        """Delete a selection, issuing one call per top-most selected node.

        The root and unknown ids are skipped silently.  Each delete call
        removes the target's whole subtree on the service, so a selected
        descendant never gets a call of its own.  Children that are not
        selected are moved up to the target's parent beforehand; selected
        nodes below such a child survive that move and are deleted with a
        later call.  Calls are made one after another so history records
        them in a fixed order.  A reload happens once at the end, even if a
        call fails half way.

        Returns:
            The ids a delete call was issued for.
        """
        by_id = {n.id: n for n in self.nodes}
        candidates = list(dict.fromkeys(i for i in node_ids if i in by_id and not by_id[i].is_root))
        selected = set(candidates)
        groups: list[tuple[list[int], list[tuple[int, Optional[int]]]]] = []
        pending = candidates
        while pending:
            removed_now: set[int] = set()
            for target in top_most(self.nodes, pending):
                removed, lifted = self._split_subtree(target, selected)
                groups.append((removed, lifted))
                removed_now.update(removed)
            pending = [i for i in pending if i not in removed_now]

        deleted: list[int] = []
        if not groups:
            return deleted
        try:
            for removed, lifted in groups:
                await self._delete(removed, lifted)
                deleted.append(removed[0])
        finally:
            await self.reload()
        return deleted

    def _split_subtree(
        self, top_id: int, selected: set[int]
    ) -> tuple[list[int], list[tuple[int, Optional[int]]]]:
        """Walk the subtree of *top_id* and split it at unselected children.

        Returns the ids the delete call removes, parent-first, and the
        ``(child_id, parent_id)`` pairs that must be moved out beforehand.
        """
        removed: list[int] = []
        lifted: list[tuple[int, Optional[int]]] = []
        stack = [top_id]
        while stack:
            current = stack.pop()
            removed.append(current)
            below = []
            for child in self.children_of(current):
                if child.id in selected:
                    below.append(child.id)
                else:
                    lifted.append((child.id, current))
            stack.extend(reversed(below))
        return removed, lifted

    async def _delete(self, removed: list[int], lifted: list[tuple[int, Optional[int]]]) -> None:
        snapshots = []
        for node_id in removed:
            snapshot = self.require(node_id).snapshot()
            if node_id in self._position_origin:
                snapshot.position_x, snapshot.position_y = self._position_origin[node_id]
            snapshots.append(snapshot)
        node = snapshots[0]

        moved: list[tuple[int, Optional[int]]] = []
        try:
            for child_id, parent_id in lifted:
                await self.service.move_node(child_id, node.parent_id)
                moved.append((child_id, parent_id))
            await self.service.delete_node(node.id)
        except Exception:
            for child_id, parent_id in moved:
                self._record(
                    MoveNodeAction(node_id=child_id, old_parent_id=parent_id, new_parent_id=node.parent_id)
                )
            raise

        logger.info("Deleted node %s (%r) with %d below it", node.id, node.title, len(removed) - 1)
        for node_id in removed:
            self._position_origin.pop(node_id, None)
        self._record(DeleteNodeAction(node=node, descendants=snapshots[1:], lifted=lifted))

    # ------------------------------------------------------------------
    # Reparent / update
    # ------------------------------------------------------------------
    async def move_node(self, node_id: int, new_parent_id: Optional[int]) -> None:
        """Reparent *node_id* under *new_parent_id* (``None`` = top level).

        Raises:
            HierarchyError: When moving the root, or when the new parent is
                the node itself or one of its descendants.
        """
        node = self.require(node_id)
        if node.is_root:
            raise HierarchyError("The root node cannot be moved")
        if new_parent_id is not None:
            self.require(new_parent_id)
            if is_in_subtree(self.nodes, node_id, new_parent_id):
                raise HierarchyError(
                    f"Cannot move node {node_id} under its own subtree ({new_parent_id})"
                )
        if node.parent_id == new_parent_id:
            return

        await self.service.move_node(node_id, new_parent_id)
        self._record(MoveNodeAction(node_id=node_id, old_parent_id=node.parent_id, new_parent_id=new_parent_id))
        await self.reload()

    async def update_node(self, node_id: int, **fields: Any) -> None:
        """Update editable fields of a node.

        Allowed keyword arguments: ``title``, ``slug``, ``description``,
        ``content_type``, ``keywords``.

        Raises:
            ValueError: If the node is unknown, a field is not editable, or
                no field is given.
        """
        node = self.require(node_id)
        for key in fields:
            if key not in EDITABLE_FIELDS:
                raise ValueError(f"Cannot update field {key!r}")
        if not fields:
            raise ValueError("No valid fields provided to update_node()")

        before = {key: _copy(getattr(node, key)) for key in fields}
        after = {key: _copy(value) for key, value in fields.items()}
        if before == after:
            return

        await self.service.update_node(node_id, after)
        self._record(UpdateNodeAction(node_id=node_id, before=before, after=after))
        await self.reload()

    # ------------------------------------------------------------------
    # Canvas positions
    # ------------------------------------------------------------------
    def set_position(self, node_id: int, x: float, y: float) -> None:
        """Move a node on the canvas locally; nothing is sent until saved."""
        node = self.require(node_id)
        if node_id not in self._position_origin:
            self._position_origin[node_id] = (node.position_x or 0.0, node.position_y or 0.0)
        node.position_x, node.position_y = x, y

    @property
    def unsaved_positions(self) -> dict[int, tuple[float, float]]:
        out = {}
        for node_id in self._position_origin:
            node = self.get(node_id)
            if node is not None:
                out[node_id] = (node.position_x or 0.0, node.position_y or 0.0)
        return out

    @property
    def has_unsaved_positions(self) -> bool:
        return any(self._position_origin[i] != p for i, p in self.unsaved_positions.items())

    async def save_positions(self) -> list[int]:
        """Commit every changed position in one batch call.

        Each moved node gets its own ``move_position`` history entry.

        Returns:
            The ids whose positions were committed.
        """
        changed = {i: p for i, p in self.unsaved_positions.items() if self._position_origin[i] != p}
        if not changed:
            self._position_origin.clear()
            return []
        await self.service.update_positions(changed)
        for node_id, new in changed.items():
            self._record(
                MovePositionAction(node_id=node_id, old_position=self._position_origin[node_id], new_position=new)
            )
        self._position_origin.clear()
        await self.reload()
        return list(changed)

    def discard_positions(self) -> None:
        """Drop unsaved canvas moves and restore the committed positions."""
        for node_id, (x, y) in self._position_origin.items():
            node = self.get(node_id)
            if node is not None:
                node.position_x, node.position_y = x, y
        self._position_origin.clear()

    def auto_layout(self) -> dict[int, tuple[float, float]]:
        """Lay the whole tree out again; the result is unsaved until committed."""
        positions = layout_tree(self.nodes)
        for node_id, (x, y) in positions.items():
            self.set_position(node_id, x, y)
        return positions

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    async def undo(self) -> Optional[HistoryAction]:
        return await self.history.undo()

    async def redo(self) -> Optional[HistoryAction]:
        return await self.history.redo()

    def _record(self, action: HistoryAction) -> None:
        self.history.record(action)


def _copy(value: Any) -> Any:
    return list(value) if isinstance(value, list) else value
