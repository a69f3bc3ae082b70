"""branchdex - Multi-branch static search indexes for Git repositories.

Builds per-branch docfind artifacts plus a manifest, and queries them with a
live GitHub tree-search fallback.
"""

__version__ = "0.1.0"
__author__ = "branchdex Contributors"

from branchdex.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
