"""Canvas interaction controller.

Turns pointer gestures on the sitemap canvas into calls on
:class:`~sitemapper.operations.NodeOperations` and keeps the transient
selection set.  Nothing here draws anything; the presentation layer asks
which commands apply and what is selected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from sitemapper.hierarchy import descendants
from sitemapper.operations import NodeOperations

logger = logging.getLogger(__name__)


class CanvasCommand(str, Enum):
    EDIT = "edit"
    ADD_CHILD = "add_child"
    DELETE = "delete"
    ADD_TO_ROOT = "add_to_root"
    ADD_STANDALONE = "add_standalone"


@dataclass(frozen=True)
class CreateChildRequest:
    """A connection dragged from *parent_id* onto empty canvas.

    The presentation layer opens its create form with this parent preset.
    """

    parent_id: int


class CanvasController:
    def __init__(self, operations: NodeOperations) -> None:
        self.operations = operations
        self.selected: set[int] = set()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------
    def click(self, node_id: int) -> set[int]:
        """Plain click: *node_id* becomes the whole selection."""
        self.operations.require(node_id)
        self.selected = {node_id}
        return self.selected

    def shift_click(self, node_id: int) -> set[int]:
        """Toggle *node_id* and its whole subtree as one block.

        If every id of the subtree is already selected they are all
        deselected; otherwise they are all selected.  Other selected nodes
        are left alone.
        """
        subtree = set(descendants(self.operations.nodes, node_id))
        if not subtree:
            raise ValueError(f"Node not found: {node_id!r}")
        if subtree <= self.selected:
            self.selected -= subtree
        else:
            self.selected |= subtree
        return self.selected

    def ctrl_click(self, node_id: int) -> set[int]:
        self.operations.require(node_id)
        self.selected ^= {node_id}
        return self.selected

    def select(self, node_ids: Iterable[int]) -> set[int]:
        """Replace the selection, e.g. from a sidebar multi-select."""
        known = {n.id for n in self.operations.nodes}
        self.selected = {i for i in node_ids if i in known}
        return self.selected

    def select_all(self) -> set[int]:
        self.selected = {n.id for n in self.operations.nodes}
        return self.selected

    def clear(self) -> None:
        self.selected = set()

    def prune(self) -> None:
        """Drop selected ids that no longer exist after a reload."""
        known = {n.id for n in self.operations.nodes}
        self.selected &= known

    # ------------------------------------------------------------------
    # Gestures
    # ------------------------------------------------------------------
    async def drag_connect(self, source_id: int, target_id: Optional[int]) -> Optional[CreateChildRequest]:
        """Finish a connection drag that started on *source_id*.

        Dropped on another node, that node is reparented under
        *source_id*.  Dropped on empty canvas (``target_id`` is ``None``),
        a :class:`CreateChildRequest` is returned instead.
        """
        self.operations.require(source_id)
        if target_id is None:
            return CreateChildRequest(parent_id=source_id)
        if target_id == source_id:
            return None
        await self.operations.move_node(target_id, source_id)
        return None

    async def delete_edge(self, child_id: int) -> None:
        """Remove a hierarchy edge; the child becomes a top-level node."""
        await self.operations.move_node(child_id, None)

    def drag_position(self, node_id: int, x: float, y: float) -> None:
        self.operations.set_position(node_id, x, y)

    async def delete_selection(self) -> list[int]:
        """Delete the selected nodes; the root is never deleted."""
        if not self.selected:
            return []
        deleted = await self.operations.delete_nodes(sorted(self.selected))
        logger.info("Deleted %d selected node(s)", len(deleted))
        self.prune()
        return deleted

    def context_menu(self, node_id: Optional[int] = None) -> list[CanvasCommand]:
        """Commands offered for a right-click on *node_id* or on empty canvas."""
        if node_id is None:
            return [CanvasCommand.ADD_TO_ROOT, CanvasCommand.ADD_STANDALONE]
        node = self.operations.require(node_id)
        commands = [CanvasCommand.EDIT, CanvasCommand.ADD_CHILD]
        if not node.is_root:
            commands.append(CanvasCommand.DELETE)
        return commands
