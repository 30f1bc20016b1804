"""Invertible mutation records kept by the history engine.

Every action carries enough data to be both undone and redone.  Actions are
immutable once recorded with one exception: node identities.  The remote
service assigns a fresh id whenever a deleted node is recreated, so the
engine calls :meth:`HistoryAction.remap` on every stored action to replace
the stale id with the latest known one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional

from sitemapper.models import SitemapNode


class ActionType(str, Enum):
    CREATE_NODE = "create_node"
    DELETE_NODE = "delete_node"
    UPDATE_NODE = "update_node"
    MOVE_NODE = "move_node"
    MOVE_POSITION = "move_position"


def _swap(value: Optional[int], old_id: int, new_id: int) -> Optional[int]:
    return new_id if value == old_id else value


@dataclass
class HistoryAction:
    """Base class; concrete actions set ``action_type``."""

    action_type: ClassVar[ActionType]

    @property
    def description(self) -> str:
        return self.action_type.value.replace("_", " ")

    def remap(self, old_id: int, new_id: int) -> None:
        """Rewrite every reference to *old_id* with *new_id* in place."""


@dataclass
class CreateNodeAction(HistoryAction):
    """A node was created.  ``node.id`` tracks the latest identity."""

    action_type: ClassVar[ActionType] = ActionType.CREATE_NODE
    node: SitemapNode

    @property
    def node_id(self) -> int:
        return self.node.id

    @property
    def description(self) -> str:
        return f"Create node '{self.node.title}'"

    def remap(self, old_id: int, new_id: int) -> None:
        self.node.id = _swap(self.node.id, old_id, new_id)  # type: ignore[assignment]
        self.node.parent_id = _swap(self.node.parent_id, old_id, new_id)


@dataclass
class DeleteNodeAction(HistoryAction):
    """A node was deleted together with its selected descendants.

    The service deletes a node's whole subtree.  Children that were not
    part of the deletion are moved to ``node.parent_id`` first and listed
    in ``lifted`` as ``(child_id, old_parent_id)`` pairs.  ``descendants``
    holds snapshots of the removed nodes below ``node`` in parent-first
    order, so undo can recreate them top-down and hang the lifted children
    back where they were.
    """

    action_type: ClassVar[ActionType] = ActionType.DELETE_NODE
    node: SitemapNode
    descendants: list[SitemapNode] = field(default_factory=list)
    lifted: list[tuple[int, Optional[int]]] = field(default_factory=list)

    @property
    def node_id(self) -> int:
        return self.node.id

    @property
    def snapshots(self) -> list[SitemapNode]:
        return [self.node, *self.descendants]

    @property
    def description(self) -> str:
        if self.descendants:
            return f"Delete node '{self.node.title}' and {len(self.descendants)} below it"
        return f"Delete node '{self.node.title}'"

    def remap(self, old_id: int, new_id: int) -> None:
        for snapshot in self.snapshots:
            snapshot.id = _swap(snapshot.id, old_id, new_id)  # type: ignore[assignment]
            snapshot.parent_id = _swap(snapshot.parent_id, old_id, new_id)
        self.lifted = [
            (_swap(child, old_id, new_id), _swap(parent, old_id, new_id))  # type: ignore[misc]
            for child, parent in self.lifted
        ]


@dataclass
class UpdateNodeAction(HistoryAction):
    action_type: ClassVar[ActionType] = ActionType.UPDATE_NODE
    node_id: int
    before: dict[str, Any]
    after: dict[str, Any]

    @property
    def description(self) -> str:
        return f"Edit {', '.join(sorted(self.after))}"

    def remap(self, old_id: int, new_id: int) -> None:
        self.node_id = _swap(self.node_id, old_id, new_id)  # type: ignore[assignment]


@dataclass
class MoveNodeAction(HistoryAction):
    """A parent change; ``None`` means the node was (or becomes) top-level."""

    action_type: ClassVar[ActionType] = ActionType.MOVE_NODE
    node_id: int
    old_parent_id: Optional[int]
    new_parent_id: Optional[int]

    @property
    def description(self) -> str:
        return "Move node"

    def remap(self, old_id: int, new_id: int) -> None:
        self.node_id = _swap(self.node_id, old_id, new_id)  # type: ignore[assignment]
        self.old_parent_id = _swap(self.old_parent_id, old_id, new_id)
        self.new_parent_id = _swap(self.new_parent_id, old_id, new_id)


@dataclass
class MovePositionAction(HistoryAction):
    action_type: ClassVar[ActionType] = ActionType.MOVE_POSITION
    node_id: int
    old_position: tuple[float, float]
    new_position: tuple[float, float]

    @property
    def description(self) -> str:
        return "Move node on canvas"

    def remap(self, old_id: int, new_id: int) -> None:
        self.node_id = _swap(self.node_id, old_id, new_id)  # type: ignore[assignment]
