"""One editing session over a single sitemap.

Wires the node operations (with their history), the link plan, the
generation tracker and the canvas controller around shared node records::

    async with ApiClient() as api:
        editor = SitemapEditor(
            HttpNodeService(api), HttpLinkService(api), HttpGenerationService(api),
            sitemap_id=3, site_id=1,
        )
        await editor.open()
        await editor.operations.move_node(12, 4)
        await editor.undo()
"""

from __future__ import annotations

import logging
from typing import Optional

from sitemapper.canvas import CanvasController
from sitemapper.generation import GenerationTracker
from sitemapper.history import HistoryAction
from sitemapper.linking import LinkPlanMachine
from sitemapper.models import SitemapNode
from sitemapper.operations import NodeOperations
from sitemapper.services.base import GenerationService, LinkService, NodeService

logger = logging.getLogger(__name__)


class SitemapEditor:
    def __init__(
        self,
        nodes: NodeService,
        links: Optional[LinkService] = None,
        generation: Optional[GenerationService] = None,
        *,
        sitemap_id: int,
        site_id: Optional[int] = None,
        history_size: Optional[int] = None,
        refresh_debounce: Optional[float] = None,
    ) -> None:
        self.sitemap_id = sitemap_id
        self.operations = NodeOperations(
            nodes, sitemap_id, history_size=history_size, on_reload=self._on_reload
        )
        self.canvas = CanvasController(self.operations)
        self.linking: Optional[LinkPlanMachine] = None
        if links is not None and site_id is not None:
            self.linking = LinkPlanMachine(links, sitemap_id, site_id)
        self.tracker: Optional[GenerationTracker] = None
        if generation is not None:
            self.tracker = GenerationTracker(
                generation, sitemap_id, refresh=self.reload, debounce=refresh_debounce
            )

    @property
    def nodes(self) -> list[SitemapNode]:
        return self.operations.nodes

    @property
    def tree(self) -> list[SitemapNode]:
        return self.operations.tree

    @property
    def history(self):
        return self.operations.history

    async def open(self) -> None:
        """Load nodes, the active link plan and any running generation task."""
        await self.reload()
        if self.linking is not None:
            await self.linking.load()
        if self.tracker is not None:
            await self.tracker.probe()
        logger.info("Opened sitemap %s with %d node(s)", self.sitemap_id, len(self.nodes))

    async def close(self) -> None:
        if self.tracker is not None:
            await self.tracker.aclose()

    async def reload(self) -> list[SitemapNode]:
        return await self.operations.reload()

    def _on_reload(self, nodes: list[SitemapNode]) -> None:
        self.canvas.prune()

    async def undo(self) -> Optional[HistoryAction]:
        return await self.operations.undo()

    async def redo(self) -> Optional[HistoryAction]:
        return await self.operations.redo()
