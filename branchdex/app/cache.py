"""Injectable cache for the manifest and loaded query modules."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from branchdex.app.ports.query import QueryHandler
from branchdex.index.models import Manifest


@dataclass(frozen=True, slots=True)
class CachedManifest:
    manifest: Manifest
    location: str
    fetched_at: float


@dataclass(frozen=True, slots=True)
class CachedModule:
    hash: str
    handler: QueryHandler


class IndexCache:
    """Process-wide cache shared by the manifest client and module loader.

    Only those two components write to it; callers may invalidate.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._manifest: CachedManifest | None = None
        self._modules: dict[str, CachedModule] = {}

    def now(self) -> float:
        return self._clock()

    def get_manifest(self, location: str, max_age_ms: int) -> Manifest | None:
        """Cached manifest for ``location`` if younger than ``max_age_ms``."""
        with self._lock:
            cached = self._manifest
            if cached is None or cached.location != location:
                return None
            if (self._clock() - cached.fetched_at) * 1000 > max_age_ms:
                return None
            return cached.manifest

    def peek_manifest(self) -> CachedManifest | None:
        with self._lock:
            return self._manifest

    def store_manifest(self, location: str, manifest: Manifest) -> None:
        """Store a freshly fetched manifest, dropping modules whose hash moved."""
        with self._lock:
            self._manifest = CachedManifest(manifest, location, self._clock())
            for branch in list(self._modules):
                entry = manifest.branches.get(branch)
                if entry is None or entry.hash != self._modules[branch].hash:
                    del self._modules[branch]

    def get_module(self, branch: str, hash: str) -> QueryHandler | None:
        """Cached handler for ``branch`` only if it was loaded for ``hash``."""
        with self._lock:
            cached = self._modules.get(branch)
            if cached is None or cached.hash != hash:
                return None
            return cached.handler

    def store_module(self, branch: str, hash: str, handler: QueryHandler) -> None:
        with self._lock:
            self._modules[branch] = CachedModule(hash, handler)

    def invalidate(self) -> None:
        """Drop the manifest and every loaded module."""
        with self._lock:
            self._manifest = None
            self._modules.clear()

    def stats(self) -> dict[str, object]:
        with self._lock:
            return {
                "manifest_cached": self._manifest is not None,
                "manifest_age_ms": (
                    None
                    if self._manifest is None
                    else round((self._clock() - self._manifest.fetched_at) * 1000)
                ),
                "modules": {branch: cached.hash for branch, cached in self._modules.items()},
            }
