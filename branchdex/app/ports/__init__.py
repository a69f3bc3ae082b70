"""Port interfaces for the branchdex application layer.

These protocol interfaces define contracts for adapters.
Query logic depends on these ports, never on concrete implementations.
"""

__all__ = [
    "ArtifactLocation",
    "QueryHandler",
    "QueryModuleLoader",
    "TreeListingPort",
]

from branchdex.app.ports.query import ArtifactLocation, QueryHandler, QueryModuleLoader
from branchdex.app.ports.tree import TreeListingPort
