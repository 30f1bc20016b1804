"""Typed view of the page-generation event stream.

The backend publishes events named ``pagegeneration.task.*`` and
``pagegeneration.node.*`` with PascalCase payload keys, for example::

    pagegeneration.node.completed
    {"TaskID": "t-1", "NodeID": 7, "Title": "Pricing", "ArticleID": 12,
     "WPPageID": 340, "WPPageURL": "https://example.com/pricing/"}

:func:`parse_event` maps them onto :class:`GenerationEvent`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from sitemapper.models import NodeGenerationStatus, TaskStatus

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    TASK_STARTED = "pagegeneration.task.started"
    TASK_PROGRESS = "pagegeneration.task.progress"
    TASK_PAUSED = "pagegeneration.task.paused"
    TASK_RESUMED = "pagegeneration.task.resumed"
    TASK_COMPLETED = "pagegeneration.task.completed"
    TASK_FAILED = "pagegeneration.task.failed"
    TASK_CANCELLED = "pagegeneration.task.cancelled"
    NODE_GENERATING = "pagegeneration.node.generating"
    NODE_PUBLISHING = "pagegeneration.node.publishing"
    NODE_COMPLETED = "pagegeneration.node.completed"
    NODE_FAILED = "pagegeneration.node.failed"
    NODE_SKIPPED = "pagegeneration.node.skipped"

    @property
    def is_node_event(self) -> bool:
        return self.value.startswith("pagegeneration.node.")


# Task status an event moves the task into, where it moves it at all.
TASK_STATUS_FOR: dict[EventType, TaskStatus] = {
    EventType.TASK_PAUSED: TaskStatus.PAUSED,
    EventType.TASK_RESUMED: TaskStatus.RUNNING,
    EventType.TASK_COMPLETED: TaskStatus.COMPLETED,
    EventType.TASK_FAILED: TaskStatus.FAILED,
    EventType.TASK_CANCELLED: TaskStatus.CANCELLED,
}

NODE_STATUS_FOR: dict[EventType, NodeGenerationStatus] = {
    EventType.NODE_GENERATING: NodeGenerationStatus.GENERATING,
    EventType.NODE_PUBLISHING: NodeGenerationStatus.PUBLISHING,
    EventType.NODE_COMPLETED: NodeGenerationStatus.COMPLETED,
    EventType.NODE_FAILED: NodeGenerationStatus.FAILED,
    EventType.NODE_SKIPPED: NodeGenerationStatus.SKIPPED,
}


@dataclass
class GenerationEvent:
    type: EventType
    task_id: str
    sitemap_id: Optional[int] = None
    node_id: Optional[int] = None
    title: Optional[str] = None
    path: Optional[str] = None
    error: Optional[str] = None
    article_id: Optional[int] = None
    page_id: Optional[int] = None
    page_url: Optional[str] = None
    total_nodes: Optional[int] = None
    processed_nodes: Optional[int] = None
    failed_nodes: Optional[int] = None
    skipped_nodes: Optional[int] = None

    @property
    def task_status(self) -> Optional[TaskStatus]:
        return TASK_STATUS_FOR.get(self.type)

    @property
    def node_status(self) -> Optional[NodeGenerationStatus]:
        return NODE_STATUS_FOR.get(self.type)


def _int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_event(name: str, payload: dict[str, Any]) -> Optional[GenerationEvent]:
    """Decode one wire event; ``None`` for names outside the generation family
    or payloads without a task id."""
    try:
        event_type = EventType(name)
    except ValueError:
        return None

    task_id = payload.get("TaskID")
    if not task_id:
        logger.warning("Ignoring %s without TaskID", name)
        return None

    current = payload.get("CurrentNode") or {}
    return GenerationEvent(
        type=event_type,
        task_id=str(task_id),
        sitemap_id=_int(payload.get("SitemapID")),
        node_id=_int(payload.get("NodeID", current.get("NodeID"))),
        title=payload.get("Title", current.get("Title")),
        path=payload.get("Path", current.get("Path")),
        error=payload.get("Error") or None,
        article_id=_int(payload.get("ArticleID")),
        page_id=_int(payload.get("WPPageID")),
        page_url=payload.get("WPPageURL") or None,
        total_nodes=_int(payload.get("TotalNodes")),
        processed_nodes=_int(payload.get("ProcessedNodes")),
        failed_nodes=_int(payload.get("FailedNodes")),
        skipped_nodes=_int(payload.get("SkippedNodes")),
    )
