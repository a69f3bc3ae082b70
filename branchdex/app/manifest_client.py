"""Manifest fetching with time-based caching."""

from __future__ import annotations

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import unquote, urljoin, urlparse

import requests

from branchdex.app.adapters.docfind import PAYLOAD_FILENAME
from branchdex.app.cache import IndexCache
from branchdex.app.ports.query import ArtifactLocation
from branchdex.index.errors import ManifestNotFound, SearchIndexDisabled
from branchdex.index.manifest import parse_manifest, read_manifest
from branchdex.index.models import BranchEntry, Manifest
from branchdex.utils.cancellation import CancelToken

if TYPE_CHECKING:  # pragma: no cover
    from branchdex.config import Settings

logger = logging.getLogger(__name__)


def is_http(location: str) -> bool:
    return location.startswith(("http://", "https://"))


def _local_path(location: str) -> Path:
    if location.startswith("file://"):
        return Path(unquote(urlparse(location).path))
    return Path(location)


class ManifestClient:
    """Single source of truth for which branches are searchable.

    Fetches happen on a worker thread so a :class:`CancelToken` can abandon
    the wait immediately; an abandoned fetch never touches the cache.
    """

    def __init__(
        self,
        *,
        location: str,
        cache: IndexCache,
        enabled: bool = True,
        refresh_interval_ms: int = 300_000,
        artifact_base_path: str = "/search-index",
        session: requests.Session | None = None,
        timeout: float = 15.0,
        executor: Executor | None = None,
    ) -> None:
        self.location = location
        self.cache = cache
        self.enabled = enabled
        self.refresh_interval_ms = refresh_interval_ms
        self.artifact_base_path = artifact_base_path
        self.session = session or requests.Session()
        self.timeout = timeout
        self._executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="branchdex-manifest"
        )

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        cache: IndexCache,
        *,
        session: requests.Session | None = None,
    ) -> "ManifestClient":
        return cls(
            location=settings.get_manifest_location(),
            cache=cache,
            enabled=settings.search_index_enabled,
            refresh_interval_ms=settings.refresh_interval_ms,
            artifact_base_path=settings.artifact_base_path,
            session=session,
            timeout=settings.request_timeout,
        )

    def fetch_manifest(self, cancel: CancelToken | None = None, *, force: bool = False) -> Manifest:
        """Return the manifest, from cache when fresh.

        Raises:
            SearchIndexDisabled: If the feature flag is off (no I/O is attempted)
            ManifestNotFound: If nothing exists at the manifest location
            ManifestInvalid: If the manifest fails schema validation
            SearchCancelled: If ``cancel`` fires before the fetch completes
        """
        if not self.enabled:
            raise SearchIndexDisabled("Search index feature is disabled")

        if cancel is not None:
            cancel.raise_if_cancelled()

        if not force:
            cached = self.cache.get_manifest(self.location, self.refresh_interval_ms)
            if cached is not None:
                logger.debug("Manifest cache hit for %s", self.location)
                return cached

        if cancel is None:
            manifest = self._load()
        else:
            manifest = cancel.wait_for(self._executor.submit(self._load))

        self.cache.store_manifest(self.location, manifest)
        return manifest

    def invalidate(self) -> None:
        """Clear the manifest and all dependent module caches."""
        self.cache.invalidate()

    def _load(self) -> Manifest:
        if is_http(self.location):
            return self._load_http(self.location)
        return read_manifest(_local_path(self.location))

    def _load_http(self, url: str) -> Manifest:
        try:
            response = self.session.get(
                url,
                timeout=self.timeout,
                headers={"Accept": "application/json", "Cache-Control": "no-cache"},
            )
        except requests.RequestException as exc:
            raise ManifestNotFound(
                f"Failed to fetch manifest {url}: {exc}", path=url, cause=exc
            ) from exc

        if response.status_code == 404:
            raise ManifestNotFound(f"Manifest not found: {url}", status=404, path=url)
        if response.status_code >= 400:
            raise ManifestNotFound(
                f"Manifest request failed with status {response.status_code}",
                status=response.status_code,
                path=url,
            )
        return parse_manifest(response.content, source=url)

    def resolve_artifact(self, branch: str, entry: BranchEntry) -> ArtifactLocation:
        """Turn a manifest entry into concrete module and payload locations.

        HTTP locations get a ``?v=<hash>`` suffix for cache-busting. Local
        manifests map ``artifactPath`` under the manifest's directory after
        removing the public artifact base path.
        """
        artifact = entry.artifact_path

        if is_http(artifact) or is_http(self.location):
            module = urljoin(self.location, artifact) if not is_http(artifact) else artifact
            payload = urljoin(module, PAYLOAD_FILENAME)
            return ArtifactLocation(
                branch=branch,
                module=f"{module}?v={entry.hash}",
                payload=f"{payload}?v={entry.hash}",
                hash=entry.hash,
            )

        relative = artifact
        base = "/" + self.artifact_base_path.strip("/")
        if base != "/" and (relative == base or relative.startswith(base + "/")):
            relative = relative[len(base) :]
        module_path = _local_path(self.location).parent.joinpath(
            *[unquote(part) for part in relative.split("/") if part]
        )
        return ArtifactLocation(
            branch=branch,
            module=str(module_path),
            payload=str(module_path.with_name(PAYLOAD_FILENAME)),
            hash=entry.hash,
        )
