"""Live state of the page-generation task running over one sitemap.

Events flow through a single channel::

    service.events() ──consume()──► asyncio.Queue ──run()──► handle() ──► apply()

:meth:`GenerationTracker.apply` is the only code that changes task state in
response to an event.  Delivery order across a concurrent multi-node run is
not guaranteed, so per-node statuses are upserted rather than validated, and
the task counters are taken verbatim from the events.

Node events also ask the editor to reload its nodes.  Those requests are
coalesced: each one restarts a short timer and only the last one fires.
Terminal task events reload at once.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from sitemapper.config import settings
from sitemapper.errors import IllegalTransitionError
from sitemapper.generation.events import EventType, GenerationEvent, parse_event
from sitemapper.models import (
    GenerationNodeInfo,
    GenerationTask,
    NodeGenerationStatus,
    TaskStatus,
)
from sitemapper.services.base import GenerationService

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[], Awaitable[Any]]

# Node events that change what the canvas shows for a node.
_REFRESHING_NODE_EVENTS = frozenset({
    EventType.NODE_GENERATING,
    EventType.NODE_PUBLISHING,
    EventType.NODE_COMPLETED,
    EventType.NODE_FAILED,
})

_ACTIVE_NODE_STATUSES = frozenset({NodeGenerationStatus.GENERATING, NodeGenerationStatus.PUBLISHING})


class GenerationTracker:
    """Follow the generation task of *sitemap_id* and control it.

    Args:
        service:   Remote generation service.
        sitemap_id: Sitemap whose task is tracked; events for other
                   sitemaps or tasks are ignored.
        refresh:   Coroutine function that reloads the editor's nodes.
        debounce:  Seconds to coalesce node-event refreshes
                   (default ``settings.refresh_debounce``).
    """

    def __init__(
        self,
        service: GenerationService,
        sitemap_id: int,
        refresh: Optional[RefreshCallback] = None,
        debounce: Optional[float] = None,
    ) -> None:
        self.service = service
        self.sitemap_id = sitemap_id
        self.refresh = refresh
        self.debounce = settings.refresh_debounce if debounce is None else debounce
        self.task: Optional[GenerationTask] = None
        # True once the service itself reported the task finished
        self.settled = False
        self.on_change: Optional[Callable[[Optional[GenerationTask]], None]] = None
        self.queue: asyncio.Queue[Optional[GenerationEvent]] = asyncio.Queue()
        self._timer: Optional[asyncio.Task] = None

    @property
    def is_active(self) -> bool:
        return self.task is not None and not self.task.is_terminal

    @property
    def is_finished(self) -> bool:
        """The service reported a terminal status for the tracked task."""
        return self.task is not None and self.task.is_terminal and self.settled

    def _changed(self) -> None:
        if self.on_change:
            self.on_change(self.task)

    # ------------------------------------------------------------------
    # Reducer
    # ------------------------------------------------------------------
    def apply(self, event: GenerationEvent, fetched: Optional[GenerationTask] = None) -> bool:
        """Fold *event* into the tracked task.

        *fetched* is the full task record for a ``task.started`` event when
        it could be loaded; otherwise a minimal running task is built from
        the event itself.

        Returns:
            ``True`` if the event concerned the tracked task and was applied.
        """
        if event.type == EventType.TASK_STARTED:
            if event.sitemap_id != self.sitemap_id:
                return False
            self.settled = fetched is not None and fetched.is_terminal
            self.task = fetched or GenerationTask(
                id=event.task_id,
                sitemap_id=self.sitemap_id,
                status=TaskStatus.RUNNING,
                total_nodes=event.total_nodes or 0,
                started_at=datetime.now(timezone.utc).isoformat(),
            )
            self._changed()
            return True

        task = self.task
        if task is None or task.id != event.task_id:
            return False
        if event.sitemap_id is not None and event.sitemap_id != self.sitemap_id:
            return False
        if self.settled:
            logger.debug("Ignoring %s for finished task %s", event.type.value, task.id)
            return False

        status = event.task_status
        if status is not None:
            task.status = status
            self.settled = status.is_terminal
            if event.type == EventType.TASK_FAILED:
                task.error = event.error

        if event.type == EventType.TASK_PROGRESS or status is not None:
            for name in ("total_nodes", "processed_nodes", "failed_nodes", "skipped_nodes"):
                value = getattr(event, name)
                if value is not None:
                    setattr(task, name, value)

        if event.type.is_node_event and event.node_id is not None:
            self._upsert_node(task, event)

        self._changed()
        return True

    @staticmethod
    def _upsert_node(task: GenerationTask, event: GenerationEvent) -> None:
        info = task.node(event.node_id)  # type: ignore[arg-type]
        if info is None:
            info = GenerationNodeInfo(node_id=event.node_id)  # type: ignore[arg-type]
            task.nodes.append(info)
        info.status = event.node_status  # type: ignore[assignment]
        if event.title:
            info.title = event.title
        if event.path:
            info.path = event.path
        if event.type == EventType.NODE_FAILED:
            info.error = event.error
        elif event.type == EventType.NODE_COMPLETED:
            info.error = None
            info.article_id = event.article_id
            info.page_id = event.page_id
            info.page_url = event.page_url

    # ------------------------------------------------------------------
    # Event channel
    # ------------------------------------------------------------------
    async def handle(self, event: GenerationEvent) -> bool:
        """Apply one event and trigger the follow-up it calls for."""
        fetched = None
        if event.type == EventType.TASK_STARTED and event.sitemap_id == self.sitemap_id:
            try:
                fetched = await self.service.get_task(event.task_id)
            except Exception as exc:
                logger.warning("Could not load task %s, using event data: %s", event.task_id, exc)

        applied = self.apply(event, fetched)
        if not applied:
            return False
        if event.task_status is not None and event.task_status.is_terminal:
            logger.info("Generation task %s %s", event.task_id, event.task_status.value)
            await self.refresh_now()
        elif event.type in _REFRESHING_NODE_EVENTS:
            self.schedule_refresh()
        return True

    def publish(self, event: GenerationEvent) -> None:
        self.queue.put_nowait(event)

    async def run(self) -> None:
        """Drain the queue until a ``None`` sentinel arrives."""
        while True:
            event = await self.queue.get()
            try:
                if event is None:
                    return
                await self.handle(event)
            finally:
                self.queue.task_done()

    async def consume(
        self,
        stream: Optional[AsyncIterator[tuple[str, dict[str, Any]]]] = None,
        until_finished: bool = False,
    ) -> None:
        """Feed ``(name, payload)`` pairs into the queue and process them.

        Reads ``service.events()`` when *stream* is not given and returns
        once the stream ends and every queued event has been handled.  With
        *until_finished* it also returns as soon as the tracked task reaches
        a terminal status.
        """
        source = stream if stream is not None else self.service.events()
        runner = asyncio.create_task(self.run())
        try:
            async for name, payload in source:
                event = parse_event(name, payload)
                if event is None:
                    continue
                self.publish(event)
                if until_finished:
                    await self.queue.join()
                    if self.is_finished:
                        break
        finally:
            self.queue.put_nowait(None)
            await runner

    # ------------------------------------------------------------------
    # Canvas refresh
    # ------------------------------------------------------------------
    def schedule_refresh(self) -> None:
        """Request a node reload; requests within ``debounce`` seconds merge."""
        if self.refresh is None:
            return
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._delayed_refresh())

    async def _delayed_refresh(self) -> None:
        await asyncio.sleep(self.debounce)
        self._timer = None
        await self._refresh()

    async def refresh_now(self) -> None:
        self._cancel_timer()
        await self._refresh()

    async def _refresh(self) -> None:
        if self.refresh is None:
            return
        try:
            await self.refresh()
        except Exception as exc:
            logger.warning("Node reload after generation event failed: %s", exc)

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def aclose(self) -> None:
        self._cancel_timer()

    # ------------------------------------------------------------------
    # Lookup and control
    # ------------------------------------------------------------------
    async def probe(self) -> Optional[GenerationTask]:
        """Pick up a task that was already running before we subscribed.

        Best effort: a failing lookup leaves the tracker empty.
        """
        try:
            tasks = await self.service.list_active_tasks(self.sitemap_id)
        except Exception as exc:
            logger.debug("Active task lookup failed: %s", exc)
            return None
        task = next(
            (t for t in tasks if t.sitemap_id == self.sitemap_id and not t.is_terminal),
            None,
        )
        if task is not None:
            self.task = task
            self.settled = False
            self._changed()
        return task

    async def pause(self) -> GenerationTask:
        task = self._require(TaskStatus.RUNNING, TaskStatus.PAUSED)
        return await self._request(task, TaskStatus.PAUSED, self.service.pause_task)

    async def resume(self) -> GenerationTask:
        task = self._require(TaskStatus.PAUSED, TaskStatus.RUNNING)
        return await self._request(task, TaskStatus.RUNNING, self.service.resume_task)

    async def cancel(self) -> GenerationTask:
        task = self.task
        if task is None:
            raise ValueError("No generation task is being tracked")
        if task.is_terminal:
            raise IllegalTransitionError("task", task.id, task.status.value, TaskStatus.CANCELLED.value)
        return await self._request(task, TaskStatus.CANCELLED, self.service.cancel_task)

    def dismiss(self) -> None:
        """Forget a finished task.

        Raises:
            IllegalTransitionError: If the task is still running or paused.
        """
        if self.task is None:
            return
        if not self.task.is_terminal:
            raise IllegalTransitionError("task", self.task.id, self.task.status.value, "dismissed")
        self.task = None
        self.settled = False
        self._changed()

    def _require(self, current: TaskStatus, target: TaskStatus) -> GenerationTask:
        task = self.task
        if task is None:
            raise ValueError("No generation task is being tracked")
        if task.status != current:
            raise IllegalTransitionError("task", task.id, task.status.value, target.value)
        return task

    async def _request(
        self,
        task: GenerationTask,
        status: TaskStatus,
        send: Callable[[str], Awaitable[None]],
    ) -> GenerationTask:
        """Show *status* at once, then ask the service for it.

        The status stays local until an event confirms or overrides it.  A
        failed request puts the previous status back.
        """
        previous = task.status
        self._set_status(task, status)
        try:
            await send(task.id)
        except Exception:
            self._set_status(task, previous)
            raise
        return task

    def _set_status(self, task: GenerationTask, status: TaskStatus) -> GenerationTask:
        task.status = status
        self._changed()
        return task

    # ------------------------------------------------------------------
    # Presentation helpers
    # ------------------------------------------------------------------
    def visible_nodes(self, pending_limit: Optional[int] = None) -> list[GenerationNodeInfo]:
        """Nodes worth showing in a progress panel.

        Every node being generated or published, the next few pending ones
        and every failed one, in that order.
        """
        if self.task is None:
            return []
        limit = settings.visible_pending_nodes if pending_limit is None else pending_limit
        nodes = self.task.nodes
        active = [n for n in nodes if n.status in _ACTIVE_NODE_STATUSES]
        pending = [n for n in nodes if n.status == NodeGenerationStatus.PENDING][:limit]
        failed = [n for n in nodes if n.status == NodeGenerationStatus.FAILED]
        return active + pending + failed
