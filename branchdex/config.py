"""Configuration management with Pydantic and XDG base directory support."""

import os
from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, PrivateAttr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from branchdex.utils.paths import get_cache_dir, normalize_extensions, split_list

GenerationMode = Literal["build", "action", "off"]

DEFAULT_EXTENSIONS: tuple[str, ...] = (
    "md", "markdown", "mdx", "txt",
    "js", "jsx", "ts", "tsx", "json", "jsonc",
    "css", "scss", "less", "html", "htm", "xml",
    "yaml", "yml", "toml", "ini", "cfg", "conf", "properties",
    "sql", "sh", "bash", "zsh", "ps1",
    "py", "go", "java", "kt", "kts", "cs", "c", "h", "cpp", "hpp",
    "rs", "rb", "php", "swift", "m", "mm", "scala", "lua",
)  # fmt: skip

DEFAULT_MAX_FILE_SIZE = 512 * 1024
DOCFIND_RELEASE_URL = "https://github.com/microsoft/docfind/releases/latest/download"


def _env_names(field: str, *legacy: str) -> AliasChoices:
    return AliasChoices(f"BRANCHDEX_{field.upper()}", field, *legacy)


class Settings(BaseSettings):
    """branchdex configuration settings.

    Precedence: CLI flag > environment variable > .env file > defaults.
    Variable names used by the original web app (``ENABLED_SEARCH_INDEX``,
    ``GITHUB_REPO_OWNER`` and friends) are accepted as aliases.
    """

    model_config = SettingsConfigDict(
        env_prefix="BRANCHDEX_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Feature flag
    search_index_enabled: bool = Field(
        default=False,
        validation_alias=_env_names(
            "search_index_enabled", "ENABLED_SEARCH_INDEX", "VITE_ENABLED_SEARCH_INDEX"
        ),
        description="Enable building and querying the static search index",
    )

    # Repository coordinates
    repo_owner: str = Field(
        default="",
        validation_alias=_env_names("repo_owner", "GITHUB_REPO_OWNER", "VITE_GITHUB_REPO_OWNER"),
        description="GitHub repository owner",
    )

    repo_name: str = Field(
        default="",
        validation_alias=_env_names("repo_name", "GITHUB_REPO_NAME", "VITE_GITHUB_REPO_NAME"),
        description="GitHub repository name",
    )

    default_branch: str = Field(
        default="main",
        validation_alias=_env_names(
            "default_branch", "GITHUB_REPO_BRANCH", "VITE_GITHUB_REPO_BRANCH"
        ),
        description="Branch searched when a request names no branch",
    )

    # Build inputs
    index_branches: str = Field(
        default="",
        validation_alias=_env_names("index_branches", "SEARCH_INDEX_BRANCHES"),
        description="Comma or whitespace separated branches to index (defaults to default_branch)",
    )

    extensions: str = Field(
        default="",
        validation_alias=_env_names("extensions", "SEARCH_INDEX_EXTENSIONS"),
        description="Override of the content-indexing extension allow-list",
    )

    max_file_size: int = Field(
        default=DEFAULT_MAX_FILE_SIZE,
        ge=0,
        validation_alias=_env_names("max_file_size", "SEARCH_INDEX_MAX_FILE_SIZE"),
        description="Largest file (bytes) whose content is embedded in the index",
    )

    generation_mode: GenerationMode = Field(
        default="build",
        validation_alias=_env_names("generation_mode", "SEARCH_INDEX_GENERATION_MODE"),
        description="Where index generation runs: build, action (CI) or off",
    )

    repo_path: Path | None = Field(
        default=None,
        validation_alias=_env_names("repo_path", "DOCFIND_REPO_PATH"),
        description="Existing local checkout to snapshot instead of fetching from GitHub",
    )

    indexer_bin: str | None = Field(
        default=None,
        validation_alias=_env_names("indexer_bin", "DOCFIND_BIN"),
        description="Path to a docfind executable (downloaded when unset)",
    )

    indexer_release_url: str = Field(
        default=DOCFIND_RELEASE_URL,
        description="Base URL of docfind release assets",
    )

    # Output layout
    output_dir: Path = Field(
        default=Path("public/search-index"),
        description="Directory receiving per-branch artifacts and manifest.json",
    )

    artifact_base_path: str = Field(
        default="/search-index",
        description="Public path prefix under which artifacts are served",
    )

    work_dir: Path = Field(
        default=Path(".docfind"),
        description="Scratch directory for payloads, binaries and temporary clones",
    )

    # Query client
    manifest_location: str | None = Field(
        default=None,
        validation_alias=_env_names("manifest_location", "SEARCH_INDEX_MANIFEST_URL"),
        description="Manifest URL or file path (defaults to output_dir/manifest.json)",
    )

    refresh_interval_ms: int = Field(
        default=300_000,
        ge=1_000,
        description="How long a fetched manifest is reused before refetching",
    )

    github_api_base: str = Field(
        default="https://api.github.com",
        description="GitHub REST API base URL used by the live search fallback",
    )

    request_timeout: float = Field(
        default=15.0,
        gt=0,
        description="HTTP timeout in seconds",
    )

    git_timeout: float = Field(
        default=600.0,
        gt=0,
        description="Timeout in seconds for a single git command",
    )

    node_bin: str = Field(
        default="node",
        description="Node.js executable used to run docfind query modules",
    )

    cache_dir: Path | None = Field(
        default=None,
        description="Override cache directory (defaults to XDG_CACHE_HOME/branchdex)",
    )

    _resolved_cache_dir: Path | None = PrivateAttr(default=None)

    @field_validator("generation_mode", mode="before")
    @classmethod
    def _normalize_generation_mode(cls, value: Any) -> str:
        normalized = str(value or "").strip().lower()
        if normalized in {"build", "action", "off"}:
            return normalized
        return "build"

    def get_index_branches(self) -> list[str]:
        """Branches to build, falling back to the default branch."""
        branches = split_list(self.index_branches)
        return branches or [self.default_branch]

    def get_extensions(self) -> frozenset[str]:
        """Content-indexing extension allow-list."""
        override = normalize_extensions(split_list(self.extensions))
        return frozenset(override or DEFAULT_EXTENSIONS)

    def get_manifest_location(self) -> str:
        """Manifest URL or path read by the query client."""
        if self.manifest_location:
            return self.manifest_location
        return str(self.output_dir / "manifest.json")

    def get_cache_dir(self) -> Path:
        """Get the cache directory, creating if necessary."""
        if self._resolved_cache_dir is not None:
            return self._resolved_cache_dir

        if self.cache_dir:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self._resolved_cache_dir = self.cache_dir
        else:
            self._resolved_cache_dir = get_cache_dir()
        return self._resolved_cache_dir

    def get_module_cache_dir(self) -> Path:
        """Directory where fetched query modules are staged."""
        path = self.get_cache_dir() / "modules"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def get_tokens(self) -> list[str]:
        """Access tokens discovered in the environment, in rotation order."""
        from branchdex.ingest.credentials import collect_tokens

        return collect_tokens(os.environ)

    def has_repository(self) -> bool:
        return bool(self.repo_owner.strip() and self.repo_name.strip())


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings) -> None:
    """Set the global settings instance (useful for testing)."""
    global _settings
    _settings = settings
