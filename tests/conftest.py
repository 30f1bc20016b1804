"""Shared fixtures: in-memory fakes of the three remote services.

The fakes behave like the real backend where the core depends on it:
ids are assigned by the service, deleting a node removes its whole
subtree, and every read returns fresh copies so local state is never
aliased with the "remote" one.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, AsyncIterator, Optional

import pytest

from sitemapper.errors import ServiceError
from sitemapper.models import (
    ApplyLinksResult,
    GenerationNodeInfo,
    GenerationTask,
    LinkGraph,
    LinkPlan,
    LinkSource,
    LinkStatus,
    NodeInput,
    PlannedLink,
    SitemapNode,
    TaskStatus,
)


class _Recorder:
    """Call log plus per-method failure injection."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.fail: set[str] = set()

    def _call(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name in self.fail:
            raise ServiceError(f"{name} failed", status_code=500)

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------

class FakeNodeService(_Recorder):
    def __init__(self, nodes: Optional[list[SitemapNode]] = None, next_id: int = 100) -> None:
        super().__init__()
        self.nodes: dict[int, SitemapNode] = {n.id: n.snapshot() for n in nodes or []}
        self.next_id = next_id

    def _get(self, node_id: int) -> SitemapNode:
        if node_id not in self.nodes:
            raise ServiceError(f"node {node_id} not found", status_code=404)
        return self.nodes[node_id]

    async def list_nodes(self, sitemap_id: int) -> list[SitemapNode]:
        self._call("list_nodes", sitemap_id)
        return [n.snapshot() for n in sorted(self.nodes.values(), key=lambda n: n.id) if n.sitemap_id == sitemap_id]

    async def create_node(self, data: NodeInput) -> SitemapNode:
        self._call("create_node", data)
        return self._create(data, None, None)

    async def create_node_at(self, data: NodeInput, x: float, y: float) -> SitemapNode:
        self._call("create_node_at", data, x, y)
        return self._create(data, x, y)

    def _create(self, data: NodeInput, x: Optional[float], y: Optional[float]) -> SitemapNode:
        node = SitemapNode(
            id=self.next_id,
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
        self.next_id += 1
        self.nodes[node.id] = node
        return node.snapshot()

    async def delete_node(self, node_id: int) -> None:
        self._call("delete_node", node_id)
        self._get(node_id)
        stack = [node_id]
        while stack:
            current = stack.pop()
            stack.extend(n.id for n in self.nodes.values() if n.parent_id == current)
            del self.nodes[current]

    async def update_node(self, node_id: int, fields: dict[str, Any]) -> None:
        self._call("update_node", node_id, dict(fields))
        node = self._get(node_id)
        for key, value in fields.items():
            setattr(node, key, list(value) if isinstance(value, list) else value)

    async def move_node(self, node_id: int, new_parent_id: Optional[int]) -> None:
        self._call("move_node", node_id, new_parent_id)
        self._get(node_id).parent_id = new_parent_id

    async def update_position(self, node_id: int, x: float, y: float) -> None:
        self._call("update_position", node_id, x, y)
        node = self._get(node_id)
        node.position_x, node.position_y = x, y

    async def update_positions(self, positions: dict[int, tuple[float, float]]) -> None:
        self._call("update_positions", dict(positions))
        for node_id, (x, y) in positions.items():
            node = self._get(node_id)
            node.position_x, node.position_y = x, y


def make_sitemap() -> list[SitemapNode]:
    """Home ─┬─ About ─┬─ Team
             │         └─ Careers
             └─ Blog ──── First post
    """
    return [
        SitemapNode(id=1, sitemap_id=1, title="Home", slug="", is_root=True, position_x=0, position_y=0),
        SitemapNode(id=2, sitemap_id=1, parent_id=1, title="About", slug="about", position=0, position_x=300, position_y=0),
        SitemapNode(id=3, sitemap_id=1, parent_id=2, title="Team", slug="team", position=0, position_x=600, position_y=0),
        SitemapNode(id=4, sitemap_id=1, parent_id=2, title="Careers", slug="careers", position=1, position_x=600, position_y=100),
        SitemapNode(id=5, sitemap_id=1, parent_id=1, title="Blog", slug="blog", position=1, position_x=300, position_y=200),
        SitemapNode(id=6, sitemap_id=1, parent_id=5, title="First post", slug="first-post", position=0, position_x=600, position_y=200),
    ]


def shape(nodes: list[SitemapNode]) -> set[tuple[str, Optional[str]]]:
    """Id-free structure of a node list: ``(title, parent title)`` pairs."""
    titles = {n.id: n.title for n in nodes}
    return {(n.title, titles.get(n.parent_id) if n.parent_id is not None else None) for n in nodes}


# ---------------------------------------------------------------------------
# Linking
# ---------------------------------------------------------------------------

class FakeLinkService(_Recorder):
    def __init__(self, links: Optional[list[PlannedLink]] = None, plan_id: int = 1) -> None:
        super().__init__()
        self.plan = LinkPlan(id=plan_id, sitemap_id=1, site_id=1, name="Active plan")
        self.links: dict[int, PlannedLink] = {l.id: replace(l) for l in links or []}
        self.next_id = max(self.links, default=0) + 1
        self.apply_result: Optional[ApplyLinksResult] = None
        self.suggestions: list[tuple[int, int]] = []

    def _get(self, link_id: int) -> PlannedLink:
        if link_id not in self.links:
            raise ServiceError(f"link {link_id} not found", status_code=404)
        return self.links[link_id]

    async def get_or_create_active_plan(self, sitemap_id: int, site_id: int) -> LinkPlan:
        self._call("get_or_create_active_plan", sitemap_id, site_id)
        return replace(self.plan)

    async def get_links(self, plan_id: int) -> list[PlannedLink]:
        self._call("get_links", plan_id)
        return [replace(l) for l in self.links.values()]

    async def add_link(self, plan_id: int, source_node_id: int, target_node_id: int) -> PlannedLink:
        self._call("add_link", plan_id, source_node_id, target_node_id)
        link = PlannedLink(
            id=self.next_id, plan_id=plan_id,
            source_node_id=source_node_id, target_node_id=target_node_id,
        )
        self.next_id += 1
        self.links[link.id] = link
        return replace(link)

    async def remove_link(self, link_id: int) -> None:
        self._call("remove_link", link_id)
        self._get(link_id)
        del self.links[link_id]

    async def approve_link(self, link_id: int) -> None:
        self._call("approve_link", link_id)
        self._get(link_id).status = LinkStatus.APPROVED

    async def reject_link(self, link_id: int) -> None:
        self._call("reject_link", link_id)
        self._get(link_id).status = LinkStatus.REJECTED

    async def update_link(self, link_id, anchor_text=None, anchor_context=None) -> PlannedLink:
        self._call("update_link", link_id, anchor_text, anchor_context)
        link = self._get(link_id)
        if anchor_text is not None:
            link.anchor_text = anchor_text
        if anchor_context is not None:
            link.anchor_context = anchor_context
        return replace(link)

    async def apply_links(self, plan_id: int, link_ids: list[int], provider_id: int) -> ApplyLinksResult:
        self._call("apply_links", plan_id, list(link_ids), provider_id)
        result = self.apply_result or ApplyLinksResult(applied=list(link_ids), total=len(link_ids))
        for link_id in link_ids:
            self._get(link_id).status = LinkStatus.APPLIED if link_id in result.applied else LinkStatus.FAILED
        return result

    async def suggest_links(self, plan_id: int, provider_id: int, node_ids=None) -> None:
        self._call("suggest_links", plan_id, provider_id, node_ids)
        for source, target in self.suggestions:
            link = PlannedLink(
                id=self.next_id, plan_id=plan_id, source_node_id=source, target_node_id=target,
                source=LinkSource.AI, confidence=0.8, anchor_text=f"see {target}",
            )
            self.next_id += 1
            self.links[link.id] = link

    async def get_link_graph(self, plan_id: int) -> LinkGraph:
        self._call("get_link_graph", plan_id)
        return LinkGraph()


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

class FakeGenerationService(_Recorder):
    def __init__(self, tasks: Optional[list[GenerationTask]] = None) -> None:
        super().__init__()
        self.tasks: dict[str, GenerationTask] = {t.id: t for t in tasks or []}
        self.stream: list[tuple[str, dict[str, Any]]] = []

    async def list_active_tasks(self, sitemap_id: int) -> list[GenerationTask]:
        self._call("list_active_tasks", sitemap_id)
        return [
            replace(t, nodes=[replace(n) for n in t.nodes])
            for t in self.tasks.values()
            if t.sitemap_id == sitemap_id and not t.is_terminal
        ]

    async def get_task(self, task_id: str) -> GenerationTask:
        self._call("get_task", task_id)
        if task_id not in self.tasks:
            raise ServiceError(f"task {task_id} not found", status_code=404)
        task = self.tasks[task_id]
        return replace(task, nodes=[replace(n) for n in task.nodes])

    async def pause_task(self, task_id: str) -> None:
        self._call("pause_task", task_id)

    async def resume_task(self, task_id: str) -> None:
        self._call("resume_task", task_id)

    async def cancel_task(self, task_id: str) -> None:
        self._call("cancel_task", task_id)

    async def events(self) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        self._call("events")
        for name, payload in self.stream:
            yield name, payload


def make_task(task_id: str = "t-1", sitemap_id: int = 1, node_ids=range(1, 11), **kwargs: Any) -> GenerationTask:
    nodes = [GenerationNodeInfo(node_id=i, title=f"Page {i}") for i in node_ids]
    kwargs.setdefault("status", TaskStatus.RUNNING)
    return GenerationTask(id=task_id, sitemap_id=sitemap_id, total_nodes=len(nodes), nodes=nodes, **kwargs)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def node_service() -> FakeNodeService:
    return FakeNodeService(make_sitemap())


@pytest.fixture
def link_service() -> FakeLinkService:
    return FakeLinkService([
        PlannedLink(id=1, plan_id=1, source_node_id=2, target_node_id=5, status=LinkStatus.PLANNED),
        PlannedLink(id=2, plan_id=1, source_node_id=3, target_node_id=6, status=LinkStatus.APPROVED),
    ])


@pytest.fixture
def generation_service() -> FakeGenerationService:
    return FakeGenerationService()
