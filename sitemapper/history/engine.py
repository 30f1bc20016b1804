"""Undo/redo engine for sitemap node mutations.

The engine keeps two stacks of :mod:`~sitemapper.history.actions` and
replays them through a host-supplied :class:`HistoryHandlers` object.  It
never touches the remote service itself, and it never trusts local state
after a replay: every undo/redo ends with a full reload through the
``reload`` coroutine supplied by the host.

While a replay is running ``is_applying`` is set and :meth:`record` ignores
everything, so mutations issued by the replay are not recorded again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol

from sitemapper.config import settings
from sitemapper.errors import HistoryReplayError
from sitemapper.history.actions import (
    CreateNodeAction,
    DeleteNodeAction,
    HistoryAction,
    MoveNodeAction,
    MovePositionAction,
    UpdateNodeAction,
)
from sitemapper.models import SitemapNode

logger = logging.getLogger(__name__)


class HistoryHandlers(Protocol):
    """Side effects the engine needs from its host.

    Implementations must not record history themselves.
    """

    async def recreate_node(self, snapshot: SitemapNode) -> int:
        """Create a node from *snapshot* at its canvas position, return the new id."""

    async def delete_node(self, node_id: int) -> None: ...

    async def update_node(self, node_id: int, fields: dict) -> None: ...

    async def move_node(self, node_id: int, parent_id: Optional[int]) -> None: ...

    async def update_position(self, node_id: int, x: float, y: float) -> None: ...


@dataclass
class HistoryState:
    can_undo: bool = False
    can_redo: bool = False
    undo_count: int = 0
    redo_count: int = 0
    last_action: Optional[str] = None


class HistoryEngine:
    """Bounded undo/redo stacks with identity-tracking replays.

    Args:
        handlers: Host callbacks that perform the actual mutations.
        reload: Coroutine that re-reads the tree from the source of truth.
        max_size: Capacity of the undo stack; the oldest entries are dropped
            first.  Defaults to ``settings.history_max_size``.
    """

    def __init__(
        self,
        handlers: HistoryHandlers,
        reload: Optional[Callable[[], Awaitable[None]]] = None,
        max_size: Optional[int] = None,
    ) -> None:
        self.handlers = handlers
        self.reload = reload
        self.max_size = max_size if max_size and max_size > 0 else settings.history_max_size
        self.is_applying = False
        self.last_error: Optional[BaseException] = None
        self.on_change: Optional[Callable[[HistoryState], None]] = None
        self._past: list[HistoryAction] = []
        self._future: list[HistoryAction] = []

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def can_undo(self) -> bool:
        return bool(self._past) and not self.is_applying

    @property
    def can_redo(self) -> bool:
        return bool(self._future) and not self.is_applying

    @property
    def past(self) -> list[HistoryAction]:
        return list(self._past)

    @property
    def future(self) -> list[HistoryAction]:
        return list(self._future)

    def state(self) -> HistoryState:
        return HistoryState(
            can_undo=self.can_undo,
            can_redo=self.can_redo,
            undo_count=len(self._past),
            redo_count=len(self._future),
            last_action=self._past[-1].description if self._past else None,
        )

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------
    def record(self, action: HistoryAction) -> None:
        """Push a committed mutation and invalidate the redo stack."""
        if self.is_applying:
            return
        self._past.append(action)
        while len(self._past) > self.max_size:
            self._past.pop(0)
        self._future.clear()
        self._notify()

    def clear(self) -> None:
        self._past.clear()
        self._future.clear()
        self.last_error = None
        self._notify()

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------
    async def undo(self) -> Optional[HistoryAction]:
        """Revert the newest recorded action.

        Returns the action, or ``None`` when there was nothing to undo or a
        replay is already running.

        Raises:
            HistoryReplayError: If a handler failed.  The action is dropped
                from history (it is in neither stack afterwards).
        """
        if not self._past or self.is_applying:
            return None
        action = self._past.pop()
        await self._replay(action, forward=False)
        return action

    async def redo(self) -> Optional[HistoryAction]:
        """Re-apply the most recently undone action.  Mirrors :meth:`undo`."""
        if not self._future or self.is_applying:
            return None
        action = self._future.pop()
        await self._replay(action, forward=True)
        return action

    async def _replay(self, action: HistoryAction, forward: bool) -> None:
        verb = "redo" if forward else "undo"
        self.is_applying = True
        try:
            try:
                await self._dispatch(action, forward)
            except Exception as exc:
                self.last_error = exc
                logger.error("Failed to %s %r: %s", verb, action.description, exc)
                await self._reload_quietly()
                raise HistoryReplayError(f"Failed to {verb} {action.description!r}") from exc

            self.last_error = None
            if forward:
                self._past.append(action)
                while len(self._past) > self.max_size:
                    self._past.pop(0)
            else:
                self._future.append(action)

            if self.reload is not None:
                await self.reload()
        finally:
            self.is_applying = False
            self._notify()

    async def _reload_quietly(self) -> None:
        if self.reload is None:
            return
        try:
            await self.reload()
        except Exception as exc:  # the replay error is the one reported
            logger.error("Reload after failed replay also failed: %s", exc)

    async def _dispatch(self, action: HistoryAction, forward: bool) -> None:
        h = self.handlers
        if isinstance(action, CreateNodeAction):
            if forward:
                await self._recreate(action, action.node)
            else:
                await h.delete_node(action.node.id)
        elif isinstance(action, DeleteNodeAction):
            if forward:
                for child_id, _ in action.lifted:
                    await h.move_node(child_id, action.node.parent_id)
                await h.delete_node(action.node.id)
            else:
                # parent-first, so each snapshot's parent_id is already remapped
                for snapshot in action.snapshots:
                    await self._recreate(action, snapshot)
                for child_id, parent_id in action.lifted:
                    await h.move_node(child_id, parent_id)
        elif isinstance(action, UpdateNodeAction):
            await h.update_node(action.node_id, dict(action.after if forward else action.before))
        elif isinstance(action, MoveNodeAction):
            await h.move_node(action.node_id, action.new_parent_id if forward else action.old_parent_id)
        elif isinstance(action, MovePositionAction):
            x, y = action.new_position if forward else action.old_position
            await h.update_position(action.node_id, x, y)
        else:
            raise TypeError(f"Unsupported history action: {type(action).__name__}")

    async def _recreate(self, action: HistoryAction, node: SitemapNode) -> int:
        old_id = node.id
        new_id = await self.handlers.recreate_node(node.snapshot())
        if new_id != old_id:
            self._rewrite_identity(action, old_id, new_id)
        return new_id

    def _rewrite_identity(self, current: HistoryAction, old_id: int, new_id: int) -> None:
        # The action being replayed is in neither stack while it runs.
        logger.debug("Node %s recreated as %s; rewriting history", old_id, new_id)
        for action in (current, *self._past, *self._future):
            action.remap(old_id, new_id)

    def _notify(self) -> None:
        if self.on_change:
            self.on_change(self.state())
