"""Link plan state machine.

A plan holds the cross-links planned between pages of one sitemap.  Each
link moves through a closed set of statuses::

    planned ──► approved ──► applying ──► applied
       │                         │
       └──► rejected             └──► failed

``rejected``, ``applied`` and ``failed`` are terminal for the approval
workflow; terminal links can still be removed.  Every request outside the
table raises :class:`~sitemapper.errors.IllegalTransitionError` before the
remote service is called.

The link graph (per-node incoming/outgoing counts plus one edge per link)
is rebuilt from scratch after every change to the link set.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from sitemapper.errors import IllegalTransitionError
from sitemapper.models import (
    ApplyLinksResult,
    GraphEdge,
    GraphNode,
    LinkGraph,
    LinkPlan,
    LinkStatus,
    PlannedLink,
)
from sitemapper.services.base import LinkService

logger = logging.getLogger(__name__)


TRANSITIONS: dict[LinkStatus, frozenset[LinkStatus]] = {
    LinkStatus.PLANNED: frozenset({LinkStatus.APPROVED, LinkStatus.REJECTED}),
    LinkStatus.APPROVED: frozenset({LinkStatus.APPLYING}),
    LinkStatus.APPLYING: frozenset({LinkStatus.APPLIED, LinkStatus.FAILED}),
    LinkStatus.REJECTED: frozenset(),
    LinkStatus.APPLIED: frozenset(),
    LinkStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)


def can_transition(current: LinkStatus, target: LinkStatus) -> bool:
    return target in TRANSITIONS[current]


def build_link_graph(links: Iterable[PlannedLink], node_ids: Iterable[int] = ()) -> LinkGraph:
    """Project links into per-node counts and edges in a single pass.

    *node_ids* seeds zero-count entries for nodes without any link.
    """
    counts: dict[int, GraphNode] = {i: GraphNode(node_id=i) for i in node_ids}
    edges: list[GraphEdge] = []
    for link in links:
        source = counts.setdefault(link.source_node_id, GraphNode(node_id=link.source_node_id))
        target = counts.setdefault(link.target_node_id, GraphNode(node_id=link.target_node_id))
        source.outgoing_link_count += 1
        target.incoming_link_count += 1
        edges.append(
            GraphEdge(
                id=link.id,
                source_node_id=link.source_node_id,
                target_node_id=link.target_node_id,
                status=link.status,
                source=link.source,
                anchor_text=link.anchor_text,
                confidence=link.confidence,
            )
        )
    return LinkGraph(nodes=list(counts.values()), edges=edges)


class LinkPlanMachine:
    """The active link plan of one sitemap and its planned links."""

    def __init__(self, service: LinkService, sitemap_id: int, site_id: int) -> None:
        self.service = service
        self.sitemap_id = sitemap_id
        self.site_id = site_id
        self.plan: Optional[LinkPlan] = None
        self._links: dict[int, PlannedLink] = {}
        self._graph = LinkGraph()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def links(self) -> list[PlannedLink]:
        return list(self._links.values())

    @property
    def graph(self) -> LinkGraph:
        return self._graph

    def get(self, link_id: int) -> PlannedLink:
        try:
            return self._links[link_id]
        except KeyError:
            raise ValueError(f"Link not found: {link_id!r}") from None

    def counts_for(self, node_id: int) -> tuple[int, int]:
        """``(outgoing, incoming)`` link counts of *node_id*."""
        entry = self._graph.counts().get(node_id)
        if entry is None:
            return (0, 0)
        return (entry.outgoing_link_count, entry.incoming_link_count)

    def links_for(self, node_id: int) -> list[PlannedLink]:
        return [
            link for link in self._links.values()
            if node_id in (link.source_node_id, link.target_node_id)
        ]

    def by_status(self, status: LinkStatus) -> list[PlannedLink]:
        return [link for link in self._links.values() if link.status == status]

    def _require_plan(self) -> LinkPlan:
        if self.plan is None:
            raise RuntimeError("No link plan loaded; call load() first")
        return self.plan

    def _set_links(self, links: Iterable[PlannedLink]) -> None:
        self._links = {link.id: link for link in links}
        self._recompute()

    def _recompute(self) -> None:
        self._graph = build_link_graph(self._links.values())

    def _transition(self, link: PlannedLink, target: LinkStatus) -> None:
        if not can_transition(link.status, target):
            raise IllegalTransitionError("link", link.id, link.status.value, target.value)
        link.status = target

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    async def load(self) -> LinkPlan:
        """Fetch (or create) the active plan and all of its links."""
        self.plan = await self.service.get_or_create_active_plan(self.sitemap_id, self.site_id)
        self._set_links(await self.service.get_links(self.plan.id))
        return self.plan

    async def reload(self) -> None:
        plan = self._require_plan()
        self._set_links(await self.service.get_links(plan.id))

    # ------------------------------------------------------------------
    # Link set
    # ------------------------------------------------------------------
    async def add_link(self, source_node_id: int, target_node_id: int) -> PlannedLink:
        """Plan a new manual link from *source_node_id* to *target_node_id*.

        Raises:
            ValueError: For a self-link, or when a live link between the same
                two nodes already exists.
        """
        if source_node_id == target_node_id:
            raise ValueError("A page cannot link to itself")
        for link in self._links.values():
            if (
                link.source_node_id == source_node_id
                and link.target_node_id == target_node_id
                and link.status not in TERMINAL_STATUSES
            ):
                raise ValueError(
                    f"Link {source_node_id} -> {target_node_id} already planned (id={link.id})"
                )
        plan = self._require_plan()
        link = await self.service.add_link(plan.id, source_node_id, target_node_id)
        link.status = LinkStatus.PLANNED
        self._links[link.id] = link
        self._recompute()
        logger.info("Planned link %s: %s -> %s", link.id, source_node_id, target_node_id)
        return link

    async def remove_link(self, link_id: int) -> None:
        """Remove a link whatever its status."""
        self.get(link_id)
        await self.service.remove_link(link_id)
        del self._links[link_id]
        self._recompute()

    async def update_anchor(
        self,
        link_id: int,
        anchor_text: Optional[str] = None,
        anchor_context: Optional[str] = None,
    ) -> PlannedLink:
        link = self.get(link_id)
        if link.status in TERMINAL_STATUSES or link.status == LinkStatus.APPLYING:
            raise IllegalTransitionError("link", link_id, link.status.value, "edited")
        updated = await self.service.update_link(link_id, anchor_text, anchor_context)
        link.anchor_text = updated.anchor_text
        link.anchor_context = updated.anchor_context
        self._recompute()
        return link

    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------
    async def approve(self, link_id: int) -> PlannedLink:
        return await self._review(link_id, LinkStatus.APPROVED)

    async def reject(self, link_id: int) -> PlannedLink:
        return await self._review(link_id, LinkStatus.REJECTED)

    async def _review(self, link_id: int, target: LinkStatus) -> PlannedLink:
        link = self.get(link_id)
        if not can_transition(link.status, target):
            raise IllegalTransitionError("link", link_id, link.status.value, target.value)
        if target == LinkStatus.APPROVED:
            await self.service.approve_link(link_id)
        else:
            await self.service.reject_link(link_id)
        self._transition(link, target)
        self._recompute()
        return link

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------
    async def apply(self, link_ids: Iterable[int], provider_id: int) -> ApplyLinksResult:
        """Apply approved links to the remote site.

        Every target must be ``approved``; each is moved to ``applying``
        before the remote call and then to ``applied`` or ``failed`` per the
        remote result.  Links the result does not mention count as failed.
        If the remote call raises, all targeted links become ``failed`` and
        the error propagates.  The link set is reloaded afterwards either way.

        Raises:
            IllegalTransitionError: If a target is not ``approved``.  Raised
                before any status changes.
        """
        plan = self._require_plan()
        targets = [self.get(i) for i in dict.fromkeys(link_ids)]
        for link in targets:
            if not can_transition(link.status, LinkStatus.APPLYING):
                raise IllegalTransitionError("link", link.id, link.status.value, LinkStatus.APPLYING.value)
        if not targets:
            return ApplyLinksResult()

        for link in targets:
            self._transition(link, LinkStatus.APPLYING)
        self._recompute()

        ids = [link.id for link in targets]
        try:
            result = await self.service.apply_links(plan.id, ids, provider_id)
        except Exception as exc:
            logger.error("Applying %d link(s) failed: %s", len(ids), exc)
            for link in targets:
                self._transition(link, LinkStatus.FAILED)
                link.error = str(exc)
            self._recompute()
            raise

        applied = set(result.applied)
        for link in targets:
            if link.id in applied:
                self._transition(link, LinkStatus.APPLIED)
            else:
                self._transition(link, LinkStatus.FAILED)
        self._recompute()
        logger.info("Applied %d of %d link(s)", len(applied & set(ids)), len(ids))

        await self._reconcile()
        return result

    async def apply_approved(self, provider_id: int) -> ApplyLinksResult:
        return await self.apply([link.id for link in self.by_status(LinkStatus.APPROVED)], provider_id)

    async def suggest(self, provider_id: int, node_ids: Optional[list[int]] = None) -> list[PlannedLink]:
        """Ask the service for AI link suggestions and return the new links."""
        plan = self._require_plan()
        before = set(self._links)
        await self.service.suggest_links(plan.id, provider_id, node_ids)
        await self.reload()
        return [link for link_id, link in self._links.items() if link_id not in before]

    async def _reconcile(self) -> None:
        # Remote statuses win over the local redistribution.
        try:
            await self.reload()
        except Exception as exc:
            logger.warning("Reload after apply failed; keeping local statuses: %s", exc)
