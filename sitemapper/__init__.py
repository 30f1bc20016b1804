"""Sitemap editor core.

Public API::

    from sitemapper import SitemapEditor
    from sitemapper.services import ApiClient, HttpNodeService

    editor = SitemapEditor(HttpNodeService(ApiClient()), sitemap_id=3)
    await editor.open()
"""

from sitemapper.editor import SitemapEditor

__all__ = ["SitemapEditor"]
