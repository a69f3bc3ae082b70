"""Concrete adapters wiring application ports to built-in implementations."""

from __future__ import annotations

from .docfind import DocfindIndexer, IndexerArtifacts
from .github_trees import GitHubTreeClient
from .node_bridge import NodeQueryHandler, NodeQueryModuleLoader

__all__ = [
    "DocfindIndexer",
    "GitHubTreeClient",
    "IndexerArtifacts",
    "NodeQueryHandler",
    "NodeQueryModuleLoader",
]
