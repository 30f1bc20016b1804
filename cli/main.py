"""sitemapper CLI: entry-point for working with a remote sitemap.

Usage:
    sitemapper --help
    python cli/main.py --help

Sub-command groups:
    tree   → page hierarchy (show, move, delete, layout)
    links  → internal link plan (list, add, approve, reject, apply, suggest)
    tasks  → page generation (list, watch, pause, resume, cancel)
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from sitemapper.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import logging
from typing import Optional

import typer

from sitemapper.config import settings

from cli.commands.links import links_app
from cli.commands.tasks import tasks_app
from cli.commands.tree import tree_app
from cli.context import load_context, save_context

app = typer.Typer(
    name="sitemapper",
    help="Sitemap editor CLI.",
    no_args_is_help=True,
)
app.add_typer(tree_app, name="tree")
app.add_typer(links_app, name="links")
app.add_typer(tasks_app, name="tasks")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    """Configure logging for every command."""
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@app.command("use")
def use(
    sitemap_id: int = typer.Argument(..., help="Sitemap to work on."),
    site: Optional[int] = typer.Option(None, "--site", help="Site the sitemap publishes to."),
) -> None:
    """Select the active sitemap for later commands."""
    ctx = load_context()
    if site is not None:
        ctx.active_site_id = site
    elif ctx.active_sitemap_id != sitemap_id:
        ctx.active_site_id = None
    ctx.active_sitemap_id = sitemap_id
    save_context(ctx)
    suffix = f" (site {ctx.active_site_id})" if ctx.active_site_id is not None else ""
    typer.echo(f"📂 Active sitemap: {sitemap_id}{suffix}")


@app.command("status")
def status() -> None:
    """Show the active sitemap and the configured service."""
    ctx = load_context()
    typer.echo(f"Service : {settings.api_base_url}")
    typer.echo(f"Sitemap : {ctx.active_sitemap_id if ctx.active_sitemap_id is not None else '(none)'}")
    typer.echo(f"Site    : {ctx.active_site_id if ctx.active_site_id is not None else '(none)'}")


if __name__ == "__main__":
    app()
