"""Undo/redo history for sitemap node mutations.

Public API::

    from sitemapper.history import HistoryEngine, CreateNodeAction
    engine = HistoryEngine(handlers, reload=editor.reload)
"""

from sitemapper.history.actions import (
    ActionType,
    CreateNodeAction,
    DeleteNodeAction,
    HistoryAction,
    MoveNodeAction,
    MovePositionAction,
    UpdateNodeAction,
)
from sitemapper.history.engine import HistoryEngine, HistoryHandlers, HistoryState

__all__ = [
    "ActionType",
    "CreateNodeAction",
    "DeleteNodeAction",
    "HistoryAction",
    "HistoryEngine",
    "HistoryHandlers",
    "HistoryState",
    "MoveNodeAction",
    "MovePositionAction",
    "UpdateNodeAction",
]
