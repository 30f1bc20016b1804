"""Remote collaborator contracts and their REST implementations.

Public API::

    from sitemapper.services import ApiClient, HttpNodeService
    api = ApiClient()
    nodes = await HttpNodeService(api).list_nodes(sitemap_id=1)
"""

from sitemapper.services.base import GenerationService, LinkService, NodeService
from sitemapper.services.http import (
    ApiClient,
    HttpGenerationService,
    HttpLinkService,
    HttpNodeService,
)

__all__ = [
    "ApiClient",
    "GenerationService",
    "HttpGenerationService",
    "HttpLinkService",
    "HttpNodeService",
    "LinkService",
    "NodeService",
]
