"""Commands for reviewing and applying the active link plan."""

from __future__ import annotations

from typing import List, Optional

import typer

from sitemapper.models import LinkStatus

from cli.context import require_context
from cli.rendering import render_links
from cli.session import open_editor, require_linking, run

links_app = typer.Typer(help="Review and apply planned internal links.", no_args_is_help=True)


@links_app.command("list")
@require_context
def links_list(
    status: Optional[LinkStatus] = typer.Option(None, "--status", help="Only links with this status."),
) -> None:
    """List the links of the active plan."""

    async def _list() -> None:
        async with open_editor(links=True) as editor:
            linking = require_linking(editor)
            links = linking.by_status(status) if status else linking.links
            if not links:
                typer.echo("No planned links.")
                return
            titles = {n.id: n.title for n in editor.nodes}
            typer.echo(f"Plan {linking.plan.id}: {len(links)} link(s)")  # type: ignore[union-attr]
            typer.echo(render_links(links, titles))

    run(_list())


@links_app.command("add")
@require_context
def links_add(
    source_id: int = typer.Argument(..., help="Page the link is placed on."),
    target_id: int = typer.Argument(..., help="Page the link points to."),
) -> None:
    """Plan a manual link between two pages."""

    async def _add() -> None:
        async with open_editor(links=True) as editor:
            link = await require_linking(editor).add_link(source_id, target_id)
            typer.echo(f"✅ Planned link {link.id}: {source_id} → {target_id}")

    run(_add())


@links_app.command("approve")
@require_context
def links_approve(link_ids: List[int] = typer.Argument(..., help="Links to approve.")) -> None:
    """Approve planned links."""

    async def _approve() -> None:
        async with open_editor(links=True) as editor:
            linking = require_linking(editor)
            for link_id in link_ids:
                await linking.approve(link_id)
                typer.echo(f"✅ Approved link {link_id}")

    run(_approve())


@links_app.command("reject")
@require_context
def links_reject(link_ids: List[int] = typer.Argument(..., help="Links to reject.")) -> None:
    """Reject planned links."""

    async def _reject() -> None:
        async with open_editor(links=True) as editor:
            linking = require_linking(editor)
            for link_id in link_ids:
                await linking.reject(link_id)
                typer.echo(f"🚫 Rejected link {link_id}")

    run(_reject())


@links_app.command("apply")
@require_context
def links_apply(
    provider: int = typer.Option(..., "--provider", help="AI provider used to place anchors."),
    link_ids: Optional[List[int]] = typer.Argument(None, help="Links to apply; default: every approved link."),
) -> None:
    """Insert approved links into the published pages."""

    async def _apply() -> None:
        async with open_editor(links=True) as editor:
            linking = require_linking(editor)
            if link_ids:
                result = await linking.apply(link_ids, provider)
            else:
                result = await linking.apply_approved(provider)
            typer.echo(f"✅ Applied {len(result.applied)} link(s), {len(result.failed)} failed.")
            for link in linking.by_status(LinkStatus.FAILED):
                if link.id in result.failed and link.error:
                    typer.echo(f"  ❌ {link.id}: {link.error}")

    run(_apply())


@links_app.command("suggest")
@require_context
def links_suggest(
    provider: int = typer.Option(..., "--provider", help="AI provider that proposes links."),
    node_ids: Optional[List[int]] = typer.Argument(None, help="Limit suggestions to these pages."),
) -> None:
    """Ask the AI provider to propose links for review."""

    async def _suggest() -> None:
        async with open_editor(links=True) as editor:
            new = await require_linking(editor).suggest(provider, node_ids or None)
            typer.echo(f"✅ {len(new)} new suggestion(s).")
            if new:
                typer.echo(render_links(new, {n.id: n.title for n in editor.nodes}))

    run(_suggest())
