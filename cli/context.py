"""Persistent state for the sitemapper CLI.

Tracks the "active sitemap" (and the site it publishes to) so commands do
not need ``--sitemap`` every time.  Stored in
``~/.sitemapper_cli/context.json``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from functools import wraps
from pathlib import Path
from typing import Callable, Optional

import typer

from sitemapper.config import settings

logger = logging.getLogger(__name__)


@dataclass
class CliContext:
    active_sitemap_id: Optional[int] = None
    active_site_id: Optional[int] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2)

    @classmethod
    def from_json(cls, data: str) -> CliContext:
        try:
            raw = json.loads(data)
            return cls(**raw)
        except (json.JSONDecodeError, TypeError):
            return cls()


def _get_context_path() -> Path:
    return settings.cli_config_dir / "context.json"


def load_context() -> CliContext:
    """Load the CLI context from disk. Returns defaults if missing/corrupt."""
    path = _get_context_path()
    if not path.exists():
        return CliContext()
    try:
        return CliContext.from_json(path.read_text(encoding="utf-8"))
    except OSError as exc:
        logger.warning("Could not read %s: %s", path, exc)
        return CliContext()


def save_context(ctx: CliContext) -> None:
    settings.cli_config_dir.mkdir(parents=True, exist_ok=True)
    _get_context_path().write_text(ctx.to_json(), encoding="utf-8")


def require_context(func: Callable) -> Callable:
    """Decorator for commands that need an active sitemap."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        ctx = load_context()
        if ctx.active_sitemap_id is None:
            typer.echo("❌ No active sitemap selected.")
            typer.echo("Run 'sitemapper use <sitemap-id>' first.")
            raise typer.Exit(code=1)
        return func(*args, **kwargs)

    return wrapper
