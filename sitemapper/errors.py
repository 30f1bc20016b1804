"""Exception types raised by the sitemap editor core.

Validation failures are ``ValueError`` subclasses and are raised before any
remote call is made.  Failures of the remote service and of history replays
are ``RuntimeError`` subclasses and carry the original exception as
``__cause__``.
"""

from __future__ import annotations


class SitemapError(Exception):
    """Base class for every error raised by :mod:`sitemapper`."""


class IllegalTransitionError(SitemapError, ValueError):
    """A link or task was asked to move to a status its current one forbids."""

    def __init__(self, entity: str, entity_id: object, current: str, requested: str) -> None:
        super().__init__(
            f"Cannot move {entity} {entity_id!r} from {current!r} to {requested!r}"
        )
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.requested = requested


class RootDeletionError(SitemapError, ValueError):
    """The root node of a sitemap can never be deleted."""


class HierarchyError(SitemapError, ValueError):
    """The parent-pointer records do not form a valid tree."""


class ServiceError(SitemapError, RuntimeError):
    """The remote content service rejected or failed a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class HistoryReplayError(SitemapError, RuntimeError):
    """An undo or redo could not be applied through the node service."""
