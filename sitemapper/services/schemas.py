"""Pydantic wire schemas for the REST content service.

The service speaks camelCase JSON.  Each response schema validates the
payload and converts it into the matching :mod:`sitemapper.models`
dataclass via ``to_model()``.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from sitemapper.models import (
    ApplyLinksResult,
    ContentStatus,
    ContentType,
    GenerationNodeInfo,
    GenerationTask,
    GraphEdge,
    GraphNode,
    LinkGraph,
    LinkPlan,
    LinkSource,
    LinkStatus,
    NodeGenerationStatus,
    NodeInput,
    PlannedLink,
    PlanStatus,
    SitemapNode,
    TaskStatus,
)


class _Wire(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------

class NodeSchema(_Wire):
    id: int
    sitemap_id: int = 0
    parent_id: Optional[int] = None
    title: str = ""
    slug: str = ""
    description: Optional[str] = None
    content_type: ContentType = ContentType.PAGE
    keywords: list[str] = Field(default_factory=list)
    position_x: Optional[float] = None
    position_y: Optional[float] = None
    position: int = 0
    is_root: bool = False
    content_status: ContentStatus = ContentStatus.UNKNOWN
    path: str = ""

    def to_model(self) -> SitemapNode:
        return SitemapNode(**self.model_dump())


class NodeCreate(_Wire):
    sitemap_id: int
    parent_id: Optional[int] = None
    title: str
    slug: str
    description: Optional[str] = None
    content_type: ContentType = ContentType.PAGE
    keywords: list[str] = Field(default_factory=list)
    position: int = 0
    content_status: ContentStatus = ContentStatus.DRAFT
    position_x: Optional[float] = None
    position_y: Optional[float] = None

    @classmethod
    def from_input(cls, data: NodeInput, x: Optional[float] = None, y: Optional[float] = None) -> NodeCreate:
        return cls(
            sitemap_id=data.sitemap_id,
            parent_id=data.parent_id,
            title=data.title,
            slug=data.slug,
            description=data.description,
            content_type=data.content_type,
            keywords=list(data.keywords),
            position=data.position,
            content_status=data.content_status,
            position_x=x,
            position_y=y,
        )


class NodeUpdate(_Wire):
    title: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    content_type: Optional[ContentType] = None
    keywords: Optional[list[str]] = None


# ---------------------------------------------------------------------------
# Linking
# ---------------------------------------------------------------------------

class LinkPlanSchema(_Wire):
    id: int
    sitemap_id: int
    site_id: int
    name: str = ""
    status: PlanStatus = PlanStatus.DRAFT
    provider_id: Optional[int] = None
    error: Optional[str] = None

    def to_model(self) -> LinkPlan:
        return LinkPlan(**self.model_dump())


class PlannedLinkSchema(_Wire):
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

    def to_model(self) -> PlannedLink:
        return PlannedLink(**self.model_dump())


class GraphNodeSchema(_Wire):
    node_id: int
    outgoing_link_count: int = 0
    incoming_link_count: int = 0


class GraphEdgeSchema(_Wire):
    id: int
    source_node_id: int
    target_node_id: int
    status: LinkStatus
    source: LinkSource = LinkSource.MANUAL
    anchor_text: Optional[str] = None
    confidence: Optional[float] = None


class LinkGraphSchema(_Wire):
    nodes: list[GraphNodeSchema] = Field(default_factory=list)
    edges: list[GraphEdgeSchema] = Field(default_factory=list)

    def to_model(self) -> LinkGraph:
        return LinkGraph(
            nodes=[GraphNode(**n.model_dump()) for n in self.nodes],
            edges=[GraphEdge(**e.model_dump()) for e in self.edges],
        )


class ApplyLinksResultSchema(_Wire):
    applied: list[int] = Field(default_factory=list)
    failed: list[int] = Field(default_factory=list)
    total: int = 0

    def to_model(self) -> ApplyLinksResult:
        return ApplyLinksResult(**self.model_dump())


# ---------------------------------------------------------------------------
# Generation tasks
# ---------------------------------------------------------------------------

class GenerationNodeSchema(_Wire):
    node_id: int
    status: NodeGenerationStatus = NodeGenerationStatus.PENDING
    title: str = ""
    path: str = ""
    error: Optional[str] = None
    article_id: Optional[int] = None
    page_id: Optional[int] = None
    page_url: Optional[str] = None


class GenerationTaskSchema(_Wire):
    id: str
    sitemap_id: int
    status: TaskStatus = TaskStatus.RUNNING
    total_nodes: int = 0
    processed_nodes: int = 0
    failed_nodes: int = 0
    skipped_nodes: int = 0
    started_at: str = ""
    error: Optional[str] = None
    nodes: list[GenerationNodeSchema] = Field(default_factory=list)

    def to_model(self) -> GenerationTask:
        data = self.model_dump(exclude={"nodes"})
        return GenerationTask(
            **data,
            nodes=[GenerationNodeInfo(**n.model_dump()) for n in self.nodes],
        )
