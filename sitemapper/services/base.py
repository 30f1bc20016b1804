"""Collaborator contracts consumed by the core controllers.

The core is backend-agnostic: every remote call goes through one of these
protocols.  :mod:`sitemapper.services.http` provides REST implementations;
tests use in-memory fakes.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Optional, Protocol

from sitemapper.models import (
    ApplyLinksResult,
    GenerationTask,
    LinkGraph,
    LinkPlan,
    NodeInput,
    PlannedLink,
    SitemapNode,
)


class NodeService(Protocol):
    async def list_nodes(self, sitemap_id: int) -> list[SitemapNode]: ...

    async def create_node(self, data: NodeInput) -> SitemapNode: ...

    async def create_node_at(self, data: NodeInput, x: float, y: float) -> SitemapNode: ...

    async def delete_node(self, node_id: int) -> None:
        """Delete one node; its children are lifted to the deleted node's parent."""

    async def update_node(self, node_id: int, fields: dict[str, Any]) -> None: ...

    async def move_node(self, node_id: int, new_parent_id: Optional[int]) -> None: ...

    async def update_position(self, node_id: int, x: float, y: float) -> None: ...

    async def update_positions(self, positions: dict[int, tuple[float, float]]) -> None: ...


class LinkService(Protocol):
    async def get_or_create_active_plan(self, sitemap_id: int, site_id: int) -> LinkPlan: ...

    async def get_links(self, plan_id: int) -> list[PlannedLink]: ...

    async def add_link(self, plan_id: int, source_node_id: int, target_node_id: int) -> PlannedLink: ...

    async def remove_link(self, link_id: int) -> None: ...

    async def approve_link(self, link_id: int) -> None: ...

    async def reject_link(self, link_id: int) -> None: ...

    async def update_link(
        self,
        link_id: int,
        anchor_text: Optional[str] = None,
        anchor_context: Optional[str] = None,
    ) -> PlannedLink: ...

    async def apply_links(self, plan_id: int, link_ids: list[int], provider_id: int) -> ApplyLinksResult: ...

    async def suggest_links(
        self,
        plan_id: int,
        provider_id: int,
        node_ids: Optional[list[int]] = None,
    ) -> None: ...

    async def get_link_graph(self, plan_id: int) -> LinkGraph: ...


class GenerationService(Protocol):
    async def list_active_tasks(self, sitemap_id: int) -> list[GenerationTask]: ...

    async def get_task(self, task_id: str) -> GenerationTask: ...

    async def pause_task(self, task_id: str) -> None: ...

    async def resume_task(self, task_id: str) -> None: ...

    async def cancel_task(self, task_id: str) -> None: ...

    def events(self) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        """Inbound progress channel yielding ``(event_name, payload)`` pairs."""
