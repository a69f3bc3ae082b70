"""Remote tree-listing port interface."""

from __future__ import annotations

from typing import Any, Protocol


class TreeListingPort(Protocol):
    """Lists every file of one branch from the hosting service.

    Adapter: GitHub Git Trees API.

    Side effects: Network requests (online).
    """

    def list_tree(self, branch: str) -> list[dict[str, Any]]:
        """Return tree entries (``path``, ``type``, ``size``) for ``branch``."""
        ...
