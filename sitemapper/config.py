"""Centralised settings for the sitemap editor core.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (one level up from this package)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Remote content service
    # ------------------------------------------------------------------
    api_base_url: str = field(
        default_factory=lambda: os.environ.get(
            "SITEMAPPER_API_URL", "http://localhost:8080/api"
        )
    )
    api_token: str = field(
        default_factory=lambda: os.environ.get("SITEMAPPER_API_TOKEN", "")
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "30.0"))
    )

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    history_max_size: int = field(
        default_factory=lambda: int(os.environ.get("HISTORY_MAX_SIZE", "25"))
    )

    # ------------------------------------------------------------------
    # Generation progress
    # ------------------------------------------------------------------
    refresh_debounce: float = field(
        default_factory=lambda: float(os.environ.get("REFRESH_DEBOUNCE", "0.5"))
    )
    visible_pending_nodes: int = field(
        default_factory=lambda: int(os.environ.get("VISIBLE_PENDING_NODES", "4"))
    )

    # ------------------------------------------------------------------
    # Tree layout (left-to-right, layered)
    # ------------------------------------------------------------------
    layout_node_width: float = field(
        default_factory=lambda: float(os.environ.get("LAYOUT_NODE_WIDTH", "200"))
    )
    layout_node_height: float = field(
        default_factory=lambda: float(os.environ.get("LAYOUT_NODE_HEIGHT", "60"))
    )
    layout_node_sep: float = field(
        default_factory=lambda: float(os.environ.get("LAYOUT_NODE_SEP", "40"))
    )
    layout_rank_sep: float = field(
        default_factory=lambda: float(os.environ.get("LAYOUT_RANK_SEP", "100"))
    )

    # ------------------------------------------------------------------
    # Logging / CLI
    # ------------------------------------------------------------------
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "WARNING")
    )
    cli_config_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("SITEMAPPER_CLI_DIR", Path.home() / ".sitemapper_cli")
        )
    )

    @property
    def auth_headers(self) -> dict[str, str]:
        """Bearer header for the remote service, empty when no token is set."""
        if not self.api_token:
            return {}
        return {"Authorization": f"Bearer {self.api_token}"}


# Module-level singleton; import this everywhere:
#   from sitemapper.config import settings
settings = Settings()
