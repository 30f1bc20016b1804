"""Commands for viewing and reshaping the active sitemap's page tree."""

from __future__ import annotations

import json
from typing import List, Optional

import typer

from sitemapper.hierarchy import node_paths
from sitemapper.models import as_dict

from cli.context import require_context
from cli.rendering import render_tree
from cli.session import open_editor, run

tree_app = typer.Typer(help="View and reshape the page tree.", no_args_is_help=True)


@tree_app.command("show")
@require_context
def tree_show(
    format: str = typer.Option("tree", "--format", help="Output format: tree | list | json"),
    links: bool = typer.Option(False, "--links", help="Show planned link counts per page."),
) -> None:
    """Display the sitemap as an ASCII tree, a flat path list or JSON."""
    if format not in ("tree", "list", "json"):
        typer.echo(f"Unknown format {format!r}. Use: tree | list | json")
        raise typer.Exit(code=1)

    async def _show() -> None:
        async with open_editor(links=links) as editor:
            if not editor.nodes:
                typer.echo("Sitemap has no pages.")
                return
            if format == "json":
                typer.echo(json.dumps([as_dict(n) for n in editor.nodes], indent=2))
                return
            if format == "list":
                paths = node_paths(editor.nodes)
                for node_id, path in sorted(paths.items(), key=lambda item: item[1]):
                    typer.echo(f"  {node_id:>5}  {path}")
                return
            counts = None
            if editor.linking is not None:
                counts = {n.id: editor.linking.counts_for(n.id) for n in editor.nodes}
            typer.echo(render_tree(editor.tree, link_counts=counts))

    run(_show())


@tree_app.command("move")
@require_context
def tree_move(
    node_id: int = typer.Argument(..., help="Page to move."),
    parent: Optional[int] = typer.Option(None, "--parent", help="New parent page id; omit to detach."),
) -> None:
    """Reparent a page (and its whole subtree)."""

    async def _move() -> None:
        async with open_editor() as editor:
            await editor.operations.move_node(node_id, parent)
            target = f"under {parent}" if parent is not None else "to the top level"
            typer.echo(f"✅ Moved {editor.operations.require(node_id).title!r} {target}")

    run(_move())


@tree_app.command("delete")
@require_context
def tree_delete(
    node_ids: List[int] = typer.Argument(..., help="Pages to delete."),
) -> None:
    """Delete pages; sub-pages that are not listed move up a level."""

    async def _delete() -> None:
        async with open_editor() as editor:
            before = {n.id for n in editor.nodes}
            await editor.operations.delete_nodes(node_ids)
            removed = sorted(before - {n.id for n in editor.nodes})
            skipped = sorted(set(node_ids) - set(removed))
            typer.echo(f"✅ Deleted {len(removed)} page(s): {', '.join(map(str, removed)) or '-'}")
            if skipped:
                typer.echo(f"Skipped: {', '.join(map(str, skipped))}")

    run(_delete())


@tree_app.command("layout")
@require_context
def tree_layout() -> None:
    """Re-run the automatic layout and save the new canvas positions."""

    async def _layout() -> None:
        async with open_editor() as editor:
            editor.operations.auto_layout()
            saved = await editor.operations.save_positions()
            typer.echo(f"✅ Laid out {len(saved)} page(s).")

    run(_layout())
