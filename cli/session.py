"""Glue between the synchronous Typer commands and the async editor core."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable

import typer

from sitemapper.editor import SitemapEditor
from sitemapper.errors import SitemapError
from sitemapper.services import (
    ApiClient,
    GenerationService,
    HttpGenerationService,
    HttpLinkService,
    HttpNodeService,
    LinkService,
    NodeService,
)

from cli.context import load_context


@dataclass
class Services:
    nodes: NodeService
    links: LinkService
    generation: GenerationService


def make_services(api: ApiClient) -> Services:
    return Services(
        nodes=HttpNodeService(api),
        links=HttpLinkService(api),
        generation=HttpGenerationService(api),
    )


@asynccontextmanager
async def open_editor(*, links: bool = False, tasks: bool = False) -> AsyncIterator[SitemapEditor]:
    """Open the active sitemap; node records are always loaded.

    ``links=True`` also loads the active link plan, ``tasks=True`` looks up
    the running generation task.
    """
    ctx = load_context()
    async with ApiClient() as api:
        services = make_services(api)
        editor = SitemapEditor(
            services.nodes,
            services.links if links else None,
            services.generation if tasks else None,
            sitemap_id=ctx.active_sitemap_id,  # type: ignore[arg-type]
            site_id=ctx.active_site_id,
        )
        await editor.open()
        try:
            yield editor
        finally:
            await editor.close()


def run(coro: Awaitable[Any]) -> Any:
    """Run *coro*; library errors become a one-line message and exit code 1."""
    try:
        return asyncio.run(coro)  # type: ignore[arg-type]
    except (SitemapError, ValueError) as exc:
        typer.echo(f"❌ Error: {exc}")
        raise typer.Exit(code=1)


def require_linking(editor: SitemapEditor):
    if editor.linking is None:
        typer.echo("❌ No site selected for the active sitemap.")
        typer.echo("Run 'sitemapper use <sitemap-id> --site <site-id>' first.")
        raise typer.Exit(code=1)
    return editor.linking


def require_tracker(editor: SitemapEditor, task_required: bool = True):
    tracker = editor.tracker
    if tracker is None or (task_required and tracker.task is None):
        typer.echo("No active generation task for this sitemap.")
        raise typer.Exit(code=1)
    return tracker
