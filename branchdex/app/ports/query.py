"""Query module port interfaces."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class ArtifactLocation:
    """Where a branch's query module and payload live."""

    branch: str
    module: str
    payload: str
    hash: str

    @property
    def is_remote(self) -> bool:
        return self.module.startswith(("http://", "https://"))


@runtime_checkable
class QueryHandler(Protocol):
    """A loaded per-branch index.

    Side effects: none beyond running the underlying query engine.
    """

    def search(self, keyword: str, limit: int) -> list[dict[str, Any]]:
        """Run ``keyword`` against the index.

        Args:
            keyword: Search keyword
            limit: Maximum hits

        Returns:
            Raw hits; each has at least ``href`` or ``path`` and may carry
            ``title``, ``body`` and ``scoreBoost``
        """
        ...


class QueryModuleLoader(Protocol):
    """Plugin boundary turning an artifact into a :class:`QueryHandler`.

    Adapter: Node.js subprocess bridge.

    Side effects: May download and stage artifact files.
    """

    def load(self, location: ArtifactLocation) -> QueryHandler:
        """Materialize the query module at ``location``.

        Raises:
            FileNotFoundError: If the module or payload does not exist
        """
        ...
