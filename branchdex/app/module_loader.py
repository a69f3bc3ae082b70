"""Lazy, hash-keyed loading of per-branch query modules."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor

from branchdex.app.cache import IndexCache
from branchdex.app.ports.query import ArtifactLocation, QueryHandler, QueryModuleLoader
from branchdex.index.errors import IndexFileNotFound, IndexLoadError, SearchIndexError
from branchdex.index.models import BranchEntry
from branchdex.utils.cancellation import CancelToken

logger = logging.getLogger(__name__)

ArtifactResolver = Callable[[str, BranchEntry], ArtifactLocation]


class IndexModuleLoader:
    """Loads query handlers through a :class:`QueryModuleLoader` plugin.

    A cached handler is reused only while its hash matches the manifest
    entry. Concurrent requests for the same ``(branch, hash)`` share a single
    in-flight load. Failures are never cached.
    """

    def __init__(
        self,
        *,
        plugin: QueryModuleLoader,
        cache: IndexCache,
        resolver: ArtifactResolver,
        executor: Executor | None = None,
        max_workers: int = 4,
    ) -> None:
        self.plugin = plugin
        self.cache = cache
        self.resolver = resolver
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="branchdex-loader"
        )
        self._lock = threading.RLock()
        self._inflight: dict[tuple[str, str], Future[QueryHandler]] = {}

    def load(
        self, branch: str, entry: BranchEntry, cancel: CancelToken | None = None
    ) -> QueryHandler:
        """Return the query handler for ``branch`` at ``entry.hash``.

        Raises:
            IndexFileNotFound: If the artifact referenced by ``entry`` is missing
            IndexLoadError: If the plugin fails or returns an unusable handler
            SearchCancelled: If ``cancel`` fires first (the cache is not touched)
        """
        if cancel is not None:
            cancel.raise_if_cancelled()

        cached = self.cache.get_module(branch, entry.hash)
        if cached is not None:
            logger.debug("Module cache hit for %s@%s", branch, entry.hash[:12])
            return cached

        key = (branch, entry.hash)
        with self._lock:
            cached = self.cache.get_module(branch, entry.hash)
            if cached is not None:
                return cached
            self._prune_superseded(key)
            future = self._inflight.get(key)
            if future is None:
                location = self.resolver(branch, entry)
                future = self._executor.submit(self._load_plugin, location)
                self._inflight[key] = future
                future.add_done_callback(lambda done, key=key: self._forget_failed(key, done))
            else:
                logger.debug("Joining in-flight load for %s@%s", branch, entry.hash[:12])

        handler = future.result() if cancel is None else cancel.wait_for(future)
        with self._lock:
            self.cache.store_module(branch, entry.hash, handler)
            if self._inflight.get(key) is future:
                del self._inflight[key]
        return handler

    def is_loading(self, branch: str) -> bool:
        with self._lock:
            return any(
                key[0] == branch and not future.done() for key, future in self._inflight.items()
            )

    def in_flight(self) -> list[tuple[str, str]]:
        """``(branch, hash)`` keys with a registered load, finished or not."""
        with self._lock:
            return list(self._inflight)

    def _prune_superseded(self, key: tuple[str, str]) -> None:
        # A finished load nobody cached is dead once the branch moves to another hash.
        branch = key[0]
        for other, future in list(self._inflight.items()):
            if other[0] == branch and other != key and future.done():
                del self._inflight[other]

    def _forget_failed(self, key: tuple[str, str], future: Future[QueryHandler]) -> None:
        # Successful loads stay registered until a waiter caches them.
        if future.cancelled() or future.exception() is not None:
            with self._lock:
                if self._inflight.get(key) is future:
                    del self._inflight[key]

    def _load_plugin(self, location: ArtifactLocation) -> QueryHandler:
        try:
            handler = self.plugin.load(location)
        except FileNotFoundError as exc:
            raise IndexFileNotFound(
                f"Index artifact missing for branch {location.branch}",
                branch=location.branch,
                path=location.module,
                cause=exc,
            ) from exc
        except SearchIndexError:
            raise
        except Exception as exc:
            raise IndexLoadError(
                f"Failed to load index for branch {location.branch}: {exc}",
                branch=location.branch,
                path=location.module,
                cause=exc,
            ) from exc

        if not isinstance(handler, QueryHandler):
            raise IndexLoadError(
                f"Index module for branch {location.branch} does not expose search()",
                branch=location.branch,
                path=location.module,
            )
        return handler
