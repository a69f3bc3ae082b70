"""Error taxonomy shared by the index builder and the query client."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class SearchIndexErrorCode(str, Enum):
    """Stable error codes callers branch on."""

    DISABLED = "SEARCH_INDEX_DISABLED"
    MANIFEST_NOT_FOUND = "MANIFEST_NOT_FOUND"
    MANIFEST_INVALID = "MANIFEST_INVALID"
    INDEX_FILE_NOT_FOUND = "INDEX_FILE_NOT_FOUND"
    INDEX_LOAD_FAILED = "INDEX_LOAD_FAILED"
    INDEX_BRANCH_NOT_INDEXED = "INDEX_BRANCH_NOT_INDEXED"
    CANCELLED = "CANCELLED"
    LIVE_SEARCH_FAILED = "LIVE_SEARCH_FAILED"


@dataclass(frozen=True, slots=True)
class ErrorDetails:
    """Diagnostic context attached to a :class:`SearchIndexError`."""

    status: int | None = None
    branch: str | None = None
    path: str | None = None
    cause: BaseException | None = None


class SearchIndexError(Exception):
    """Base class for query-time search index failures."""

    code: SearchIndexErrorCode = SearchIndexErrorCode.INDEX_LOAD_FAILED

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        branch: str | None = None,
        path: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.details = ErrorDetails(status=status, branch=branch, path=path, cause=cause)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": str(self),
            "status": self.details.status,
            "branch": self.details.branch,
            "path": self.details.path,
        }


class SearchIndexDisabled(SearchIndexError):
    """Raised when the search index feature flag is off."""

    code = SearchIndexErrorCode.DISABLED


class ManifestNotFound(SearchIndexError):
    """Raised when no manifest exists at the configured location."""

    code = SearchIndexErrorCode.MANIFEST_NOT_FOUND


class ManifestInvalid(SearchIndexError):
    """Raised when the manifest exists but fails schema validation."""

    code = SearchIndexErrorCode.MANIFEST_INVALID


class IndexFileNotFound(SearchIndexError):
    """Raised when a manifest entry points at an artifact that does not exist."""

    code = SearchIndexErrorCode.INDEX_FILE_NOT_FOUND


class IndexLoadError(SearchIndexError):
    """Raised when a query module cannot be loaded or has the wrong shape."""

    code = SearchIndexErrorCode.INDEX_LOAD_FAILED


class BranchNotIndexed(SearchIndexError):
    """Raised when none of the requested branches appear in the manifest."""

    code = SearchIndexErrorCode.INDEX_BRANCH_NOT_INDEXED


class SearchCancelled(SearchIndexError):
    """Raised when a caller cancels an in-progress operation."""

    code = SearchIndexErrorCode.CANCELLED


class LiveSearchError(SearchIndexError):
    """Raised when the live tree-search fallback fails for every branch."""

    code = SearchIndexErrorCode.LIVE_SEARCH_FAILED

    def __init__(self, message: str, *, filters: Any = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.filters = filters


# Build-time failures. These are isolated per branch by the build loop.


class SnapshotError(RuntimeError):
    """Raised when a branch working tree cannot be prepared."""


class IndexerError(RuntimeError):
    """Raised when the external indexer cannot be resolved or fails."""
