"""Data contracts shared by the index builder and the query client."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from branchdex.utils.paths import normalize_extensions

MANIFEST_SCHEMA_VERSION = "docfind-1"

SearchMode = Literal["search-index", "github-api"]
FallbackReason = Literal[
    "index-disabled",
    "index-not-ready",
    "index-error",
    "branch-not-indexed",
]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _WireModel(BaseModel):
    """Base for JSON documents exchanged between builder and client."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class BranchEntry(_WireModel):
    """One branch's searchable snapshot."""

    artifact_path: str = Field(
        ..., alias="artifactPath", min_length=1, description="Locator of the query module"
    )
    hash: str = Field(
        ..., min_length=1, description="SHA-256 of the binary payload; cache key"
    )
    document_count: int = Field(
        ..., alias="documentCount", ge=0, description="Documents fed to the indexer"
    )
    generated_at: datetime = Field(
        ..., alias="generatedAt", description="When this branch artifact was built"
    )


class Manifest(_WireModel):
    """Versioned catalog of per-branch artifacts."""

    schema_version: Literal["docfind-1"] = Field(
        MANIFEST_SCHEMA_VERSION, alias="schemaVersion", description="Manifest format tag"
    )
    generated_at: datetime = Field(
        default_factory=utc_now, alias="generatedAt", description="Build run timestamp"
    )
    branches: dict[str, BranchEntry] = Field(
        default_factory=dict, description="Branch name to artifact descriptor"
    )


class Document(BaseModel):
    """Intermediate record handed to the external indexer, one per tracked file."""

    title: str
    category: str
    href: str
    path: str
    branch: str
    extension: str
    body: str


class SearchFilters(BaseModel):
    """Query-time input."""

    keyword: str = Field("", description="Search keyword; blank short-circuits to no results")
    branches: list[str] = Field(default_factory=list, description="Branches to search")
    path_prefix: str = Field("", description="Case-insensitive path prefix filter")
    extensions: list[str] = Field(default_factory=list, description="Extension filter")
    limit: int = Field(100, ge=1, description="Maximum results")

    @field_validator("keyword", "path_prefix", mode="before")
    @classmethod
    def _strip(cls, value: str | None) -> str:
        return (value or "").strip()

    @field_validator("branches", mode="before")
    @classmethod
    def _dedupe_branches(cls, value: list[str] | None) -> list[str]:
        seen: dict[str, None] = {}
        for branch in value or []:
            branch = branch.strip()
            if branch:
                seen.setdefault(branch, None)
        return list(seen)

    @field_validator("extensions", mode="before")
    @classmethod
    def _sanitize_extensions(cls, value: list[str] | None) -> list[str]:
        return normalize_extensions(value)

    @property
    def normalized_prefix(self) -> str:
        return self.path_prefix.lower()

    def matches_path(self, path: str, extension: str) -> bool:
        """Apply the path-prefix and extension filters to one candidate."""
        if self.path_prefix and not path.lower().startswith(self.normalized_prefix):
            return False
        if self.extensions and extension not in self.extensions:
            return False
        return True


class SearchResultItem(BaseModel):
    """Single search result."""

    branch: str = Field(..., description="Branch the file was found on")
    path: str = Field(..., description="Repository-relative path")
    name: str = Field(..., description="File name")
    extension: str | None = Field(None, description="Lower-cased extension")
    size: int | None = Field(None, description="File size in bytes when known")
    binary: bool | None = Field(None, description="Whether content was detected as binary")
    html_url: str | None = Field(None, description="Link to the file on GitHub")
    download_url: str | None = Field(None, description="Raw download link")
    score: float = Field(..., description="Relevance score")
    snippet: str | None = Field(None, description="Content excerpt around the match")
    source: SearchMode = Field("search-index", description="Path that produced the result")


class IndexStatus(BaseModel):
    """Client-side view of the index, refreshed by the manifest fetch cycle."""

    enabled: bool = False
    ready: bool = False
    loading: bool = False
    error: str | None = None
    error_code: str | None = None
    indexed_branches: list[str] = Field(default_factory=list)
    last_updated_at: datetime | None = None


class SearchExecution(BaseModel):
    """Outcome of one search request, including which path served it and why."""

    mode: SearchMode
    items: list[SearchResultItem] = Field(default_factory=list)
    took: float = Field(0, description="Elapsed milliseconds")
    filters: SearchFilters
    completed_at: datetime = Field(default_factory=utc_now)
    fallback_reason: FallbackReason | None = None
