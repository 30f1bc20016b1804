"""Dataclass models for sitemap nodes, planned links and generation tasks.

These are plain Python objects – not ORM models.  The service layer
serialises / deserialises to and from these types; every controller in the
core reads and writes them.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class ContentType(str, Enum):
    PAGE = "page"
    POST = "post"
    NONE = "none"


class ContentStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    PUBLISHED = "published"
    UNKNOWN = "unknown"


class LinkStatus(str, Enum):
    PLANNED = "planned"
    APPROVED = "approved"
    REJECTED = "rejected"
    APPLYING = "applying"
    APPLIED = "applied"
    FAILED = "failed"


class LinkSource(str, Enum):
    MANUAL = "manual"
    AI = "ai"


class PlanStatus(str, Enum):
    DRAFT = "draft"
    SUGGESTING = "suggesting"
    READY = "ready"
    APPLYING = "applying"
    APPLIED = "applied"
    FAILED = "failed"


class TaskStatus(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED)


class NodeGenerationStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    PUBLISHING = "publishing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


# ---------------------------------------------------------------------------
# Sitemap nodes
# ---------------------------------------------------------------------------

@dataclass
class SitemapNode:
    id: int
    sitemap_id: int = 0
    parent_id: Optional[int] = None
    title: str = ""
    slug: str = ""
    description: Optional[str] = None
    content_type: ContentType = ContentType.PAGE
    keywords: list[str] = field(default_factory=list)
    position_x: Optional[float] = None
    position_y: Optional[float] = None
    position: int = 0
    is_root: bool = False
    content_status: ContentStatus = ContentStatus.UNKNOWN
    path: str = ""
    children: list[SitemapNode] = field(default_factory=list)

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------
    def snapshot(self) -> SitemapNode:
        """Detached copy without children, safe to keep in history."""
        return replace(self, keywords=list(self.keywords), children=[])

    @property
    def has_position(self) -> bool:
        return self.position_x is not None and self.position_y is not None


@dataclass
class NodeInput:
    """Fields required to create a node through the node service."""

    sitemap_id: int
    title: str
    slug: str
    parent_id: Optional[int] = None
    description: Optional[str] = None
    content_type: ContentType = ContentType.PAGE
    keywords: list[str] = field(default_factory=list)
    position: int = 0
    content_status: ContentStatus = ContentStatus.DRAFT

    @classmethod
    def from_node(cls, node: SitemapNode) -> NodeInput:
        """Rebuild the creation input for a previously existing node."""
        return cls(
            sitemap_id=node.sitemap_id,
            title=node.title,
            slug=node.slug,
            parent_id=node.parent_id,
            description=node.description,
            content_type=node.content_type,
            keywords=list(node.keywords),
            position=node.position,
            content_status=node.content_status,
        )


# Fields that ``update_node`` is allowed to touch.
EDITABLE_FIELDS = frozenset({"title", "slug", "description", "content_type", "keywords"})


# ---------------------------------------------------------------------------
# Linking
# ---------------------------------------------------------------------------

@dataclass
class LinkPlan:
    id: int
    sitemap_id: int
    site_id: int
    name: str = ""
    status: PlanStatus = PlanStatus.DRAFT
    provider_id: Optional[int] = None
    error: Optional[str] = None


@dataclass
class PlannedLink:
    id: int
    plan_id: int
    source_node_id: int
    target_node_id: int
    anchor_text: Optional[str] = None
    anchor_context: Optional[str] = None
    confidence: Optional[float] = None
    source: LinkSource = LinkSource.MANUAL
    status: LinkStatus = LinkStatus.PLANNED
    error: Optional[str] = None


@dataclass
class GraphNode:
    node_id: int
    outgoing_link_count: int = 0
    incoming_link_count: int = 0


@dataclass
class GraphEdge:
    id: int
    source_node_id: int
    target_node_id: int
    status: LinkStatus
    source: LinkSource
    anchor_text: Optional[str] = None
    confidence: Optional[float] = None


@dataclass
class LinkGraph:
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)

    def counts(self) -> dict[int, GraphNode]:
        return {n.node_id: n for n in self.nodes}


@dataclass
class ApplyLinksResult:
    applied: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    total: int = 0


# ---------------------------------------------------------------------------
# Content generation
# ---------------------------------------------------------------------------

@dataclass
class GenerationNodeInfo:
    node_id: int
    status: NodeGenerationStatus = NodeGenerationStatus.PENDING
    title: str = ""
    path: str = ""
    error: Optional[str] = None
    article_id: Optional[int] = None
    page_id: Optional[int] = None
    page_url: Optional[str] = None


@dataclass
class GenerationTask:
    id: str
    sitemap_id: int
    status: TaskStatus = TaskStatus.RUNNING
    total_nodes: int = 0
    processed_nodes: int = 0
    failed_nodes: int = 0
    skipped_nodes: int = 0
    started_at: str = ""
    error: Optional[str] = None
    nodes: list[GenerationNodeInfo] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def node(self, node_id: int) -> Optional[GenerationNodeInfo]:
        for info in self.nodes:
            if info.node_id == node_id:
                return info
        return None

    def node_statuses(self) -> dict[int, NodeGenerationStatus]:
        return {info.node_id: info.status for info in self.nodes}

    def progress(self) -> float:
        """Fraction of processed nodes in ``[0, 1]``."""
        if self.total_nodes <= 0:
            return 0.0
        return min(1.0, self.processed_nodes / self.total_nodes)


def as_dict(obj: Any) -> dict[str, Any]:
    """Shallow ``dict`` view of a model with enums flattened to their values."""
    out: dict[str, Any] = {}
    for key, value in vars(obj).items():
        if key == "children":
            continue
        out[key] = value.value if isinstance(value, Enum) else value
    return out
