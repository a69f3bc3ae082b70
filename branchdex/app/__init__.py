"""Application layer for branchdex.

Query-side services orchestrate manifest fetching, module loading and the
live fallback. Network and subprocess I/O is delegated to adapters via port
interfaces.
"""

__all__ = [
    "FallbackController",
    "IndexCache",
    "IndexModuleLoader",
    "LiveSearchFallback",
    "ManifestClient",
    "RepoSearchService",
    "SearchIndexService",
]

from branchdex.app.cache import IndexCache
from branchdex.app.fallback import FallbackController
from branchdex.app.live_search import LiveSearchFallback
from branchdex.app.manifest_client import ManifestClient
from branchdex.app.module_loader import IndexModuleLoader
from branchdex.app.search_service import RepoSearchService, SearchIndexService
