"""Search index data contracts, ranking, and build orchestration."""

from branchdex.index.errors import SearchIndexError, SearchIndexErrorCode
from branchdex.index.models import (
    BranchEntry,
    Document,
    IndexStatus,
    Manifest,
    SearchExecution,
    SearchFilters,
    SearchResultItem,
)

__all__ = [
    "BranchEntry",
    "Document",
    "IndexStatus",
    "Manifest",
    "SearchExecution",
    "SearchFilters",
    "SearchIndexError",
    "SearchIndexErrorCode",
    "SearchResultItem",
]
