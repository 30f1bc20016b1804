"""REST implementations of the collaborator contracts, built on ``httpx``.

All three services share one :class:`httpx.AsyncClient`.  Pass your own
client (e.g. one wired to a ``respx`` mock in tests); otherwise one is
created from ``settings`` and closed by :meth:`ApiClient.aclose`.

Routes
------
GET    /sitemaps/{id}/nodes             list nodes
POST   /nodes                           create (optionally at x/y)
PATCH  /nodes/{id}                      update editable fields
DELETE /nodes/{id}                      delete one node
POST   /nodes/{id}/move                 reparent
PUT    /nodes/{id}/position             set canvas position
PUT    /nodes/positions                 batch canvas positions
POST   /linking/plans/active            get or create the active plan
GET    /linking/plans/{id}/links        list planned links
POST   /linking/plans/{id}/links        add a link
PATCH  /linking/links/{id}              edit anchor text/context
DELETE /linking/links/{id}              remove a link
POST   /linking/links/{id}/approve      approve
POST   /linking/links/{id}/reject       reject
POST   /linking/plans/{id}/apply        apply links to the site
POST   /linking/plans/{id}/suggest      AI link suggestions
GET    /linking/plans/{id}/graph        link graph projection
GET    /generation/tasks?sitemapId=     active generation tasks
GET    /generation/tasks/{id}           one task
POST   /generation/tasks/{id}/{verb}    pause | resume | cancel
GET    /events                          Server-Sent Events stream
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Optional

import httpx

from sitemapper.config import settings
from sitemapper.errors import ServiceError
from sitemapper.models import (
    ApplyLinksResult,
    GenerationTask,
    LinkGraph,
    LinkPlan,
    NodeInput,
    PlannedLink,
    SitemapNode,
)
from sitemapper.services.schemas import (
    ApplyLinksResultSchema,
    GenerationTaskSchema,
    LinkGraphSchema,
    LinkPlanSchema,
    NodeCreate,
    NodeSchema,
    NodeUpdate,
    PlannedLinkSchema,
)
from sitemapper.services.stream import iter_sse

logger = logging.getLogger(__name__)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)


class ApiClient:
    """Thin JSON wrapper that turns transport and HTTP errors into ``ServiceError``."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=settings.api_base_url,
            headers={"Accept": "application/json", **settings.auth_headers},
            timeout=settings.request_timeout,
        )

    async def request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, url, exc)
            raise ServiceError(f"{method} {url} failed: {exc}") from exc

        if response.is_error:
            detail = _error_detail(response)
            logger.error("%s %s -> %s: %s", method, url, response.status_code, detail)
            raise ServiceError(detail, status_code=response.status_code)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------

class HttpNodeService:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def list_nodes(self, sitemap_id: int) -> list[SitemapNode]:
        data = await self.api.request("GET", f"/sitemaps/{sitemap_id}/nodes")
        return [NodeSchema.model_validate(item).to_model() for item in data or []]

    async def create_node(self, data: NodeInput) -> SitemapNode:
        return await self._create(NodeCreate.from_input(data))

    async def create_node_at(self, data: NodeInput, x: float, y: float) -> SitemapNode:
        return await self._create(NodeCreate.from_input(data, x, y))

    async def _create(self, payload: NodeCreate) -> SitemapNode:
        body = payload.model_dump(by_alias=True, mode="json", exclude_none=True)
        data = await self.api.request("POST", "/nodes", json=body)
        return NodeSchema.model_validate(data).to_model()

    async def delete_node(self, node_id: int) -> None:
        await self.api.request("DELETE", f"/nodes/{node_id}")

    async def update_node(self, node_id: int, fields: dict[str, Any]) -> None:
        body = NodeUpdate(**fields).model_dump(by_alias=True, mode="json", exclude_unset=True)
        await self.api.request("PATCH", f"/nodes/{node_id}", json=body)

    async def move_node(self, node_id: int, new_parent_id: Optional[int]) -> None:
        await self.api.request("POST", f"/nodes/{node_id}/move", json={"newParentId": new_parent_id})

    async def update_position(self, node_id: int, x: float, y: float) -> None:
        await self.api.request("PUT", f"/nodes/{node_id}/position", json={"x": x, "y": y})

    async def update_positions(self, positions: dict[int, tuple[float, float]]) -> None:
        body = {
            "positions": [
                {"nodeId": node_id, "x": x, "y": y} for node_id, (x, y) in positions.items()
            ]
        }
        await self.api.request("PUT", "/nodes/positions", json=body)


# ---------------------------------------------------------------------------
# Linking
# ---------------------------------------------------------------------------

class HttpLinkService:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def get_or_create_active_plan(self, sitemap_id: int, site_id: int) -> LinkPlan:
        data = await self.api.request(
            "POST", "/linking/plans/active", json={"sitemapId": sitemap_id, "siteId": site_id}
        )
        return LinkPlanSchema.model_validate(data).to_model()

    async def get_links(self, plan_id: int) -> list[PlannedLink]:
        data = await self.api.request("GET", f"/linking/plans/{plan_id}/links")
        return [PlannedLinkSchema.model_validate(item).to_model() for item in data or []]

    async def add_link(self, plan_id: int, source_node_id: int, target_node_id: int) -> PlannedLink:
        data = await self.api.request(
            "POST",
            f"/linking/plans/{plan_id}/links",
            json={"sourceNodeId": source_node_id, "targetNodeId": target_node_id},
        )
        return PlannedLinkSchema.model_validate(data).to_model()

    async def remove_link(self, link_id: int) -> None:
        await self.api.request("DELETE", f"/linking/links/{link_id}")

    async def approve_link(self, link_id: int) -> None:
        await self.api.request("POST", f"/linking/links/{link_id}/approve")

    async def reject_link(self, link_id: int) -> None:
        await self.api.request("POST", f"/linking/links/{link_id}/reject")

    async def update_link(
        self,
        link_id: int,
        anchor_text: Optional[str] = None,
        anchor_context: Optional[str] = None,
    ) -> PlannedLink:
        body = {"anchorText": anchor_text, "anchorContext": anchor_context}
        data = await self.api.request(
            "PATCH",
            f"/linking/links/{link_id}",
            json={k: v for k, v in body.items() if v is not None},
        )
        return PlannedLinkSchema.model_validate(data).to_model()

    async def apply_links(self, plan_id: int, link_ids: list[int], provider_id: int) -> ApplyLinksResult:
        data = await self.api.request(
            "POST",
            f"/linking/plans/{plan_id}/apply",
            json={"linkIds": link_ids, "providerId": provider_id},
        )
        return ApplyLinksResultSchema.model_validate(data or {}).to_model()

    async def suggest_links(
        self,
        plan_id: int,
        provider_id: int,
        node_ids: Optional[list[int]] = None,
    ) -> None:
        body: dict[str, Any] = {"providerId": provider_id}
        if node_ids:
            body["nodeIds"] = node_ids
        await self.api.request("POST", f"/linking/plans/{plan_id}/suggest", json=body)

    async def get_link_graph(self, plan_id: int) -> LinkGraph:
        data = await self.api.request("GET", f"/linking/plans/{plan_id}/graph")
        return LinkGraphSchema.model_validate(data or {}).to_model()


# ---------------------------------------------------------------------------
# Generation tasks
# ---------------------------------------------------------------------------

class HttpGenerationService:
    def __init__(self, api: ApiClient, events_path: str = "/events") -> None:
        self.api = api
        self.events_path = events_path

    async def list_active_tasks(self, sitemap_id: int) -> list[GenerationTask]:
        data = await self.api.request(
            "GET", "/generation/tasks", params={"sitemapId": sitemap_id, "active": "true"}
        )
        return [GenerationTaskSchema.model_validate(item).to_model() for item in data or []]

    async def get_task(self, task_id: str) -> GenerationTask:
        data = await self.api.request("GET", f"/generation/tasks/{task_id}")
        return GenerationTaskSchema.model_validate(data).to_model()

    async def pause_task(self, task_id: str) -> None:
        await self.api.request("POST", f"/generation/tasks/{task_id}/pause")

    async def resume_task(self, task_id: str) -> None:
        await self.api.request("POST", f"/generation/tasks/{task_id}/resume")

    async def cancel_task(self, task_id: str) -> None:
        await self.api.request("POST", f"/generation/tasks/{task_id}/cancel")

    async def events(self) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        """Yield ``(event_name, payload)`` pairs from the SSE endpoint until it closes."""
        try:
            async with self.api.client.stream(
                "GET", self.events_path, headers={"Accept": "text/event-stream"}, timeout=None
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise ServiceError(_error_detail(response), status_code=response.status_code)
                async for event in iter_sse(response.aiter_lines()):
                    yield event
        except httpx.HTTPError as exc:
            logger.error("Event stream failed: %s", exc)
            raise ServiceError(f"Event stream failed: {exc}") from exc
