"""Query client: index-backed search with automatic live fallback."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Executor, ThreadPoolExecutor

from branchdex.app.fallback import FallbackController
from branchdex.app.live_search import LiveSearchFallback
from branchdex.app.manifest_client import ManifestClient
from branchdex.app.module_loader import IndexModuleLoader
from branchdex.index.errors import (
    BranchNotIndexed,
    IndexLoadError,
    SearchCancelled,
    SearchIndexDisabled,
    SearchIndexError,
)
from branchdex.index.models import (
    IndexStatus,
    Manifest,
    SearchExecution,
    SearchFilters,
    SearchMode,
    SearchResultItem,
    utc_now,
)
from branchdex.index.ranking import rank_hits, sort_results
from branchdex.utils.cancellation import CancelToken

logger = logging.getLogger(__name__)


class SearchIndexService:
    """Public operations over the static per-branch indexes."""

    def __init__(
        self,
        *,
        manifest_client: ManifestClient,
        module_loader: IndexModuleLoader,
        default_branch: str = "main",
        owner: str = "",
        repo: str = "",
        executor: Executor | None = None,
        max_workers: int = 4,
    ) -> None:
        self.manifest_client = manifest_client
        self.module_loader = module_loader
        self.default_branch = default_branch
        self.owner = owner
        self.repo = repo
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="branchdex-query"
        )

    def is_enabled(self) -> bool:
        return self.manifest_client.enabled

    def ensure_ready(self, cancel: CancelToken | None = None) -> Manifest:
        """Make sure a valid manifest is available.

        Raises:
            SearchIndexDisabled: If the feature is off
            ManifestNotFound: If no manifest has been published
            ManifestInvalid: If the manifest fails validation
        """
        return self.manifest_client.fetch_manifest(cancel)

    def get_indexed_branches(self, cancel: CancelToken | None = None) -> list[str]:
        return sorted(self.ensure_ready(cancel).branches)

    def search(
        self, filters: SearchFilters, cancel: CancelToken | None = None
    ) -> list[SearchResultItem]:
        """Search the indexed subset of the requested branches.

        Requested branches default to the default branch. A blank keyword
        returns ``[]`` without any I/O.

        Raises:
            SearchIndexDisabled: If the feature is off
            BranchNotIndexed: If none of the requested branches are indexed
            IndexFileNotFound: If a manifest entry's artifact is missing
            IndexLoadError: If a query module cannot be loaded or queried
            SearchCancelled: If ``cancel`` fires
        """
        if not self.is_enabled():
            raise SearchIndexDisabled("Search index feature is disabled")
        if not filters.keyword:
            return []

        manifest = self.ensure_ready(cancel)
        candidates = filters.branches or [self.default_branch]
        indexed = [branch for branch in candidates if branch in manifest.branches]
        if not indexed:
            raise BranchNotIndexed(
                "No indexed branches found for search request", branch=", ".join(candidates)
            )

        results: list[SearchResultItem] = []
        for branch in indexed:
            handler = self.module_loader.load(branch, manifest.branches[branch], cancel)
            future = self._executor.submit(handler.search, filters.keyword, filters.limit)
            try:
                hits = future.result() if cancel is None else cancel.wait_for(future)
            except SearchIndexError:
                raise
            except Exception as exc:
                raise IndexLoadError(
                    f"Query failed for branch {branch}: {exc}", branch=branch, cause=exc
                ) from exc
            results.extend(rank_hits(branch, hits, filters, owner=self.owner, repo=self.repo))

        return sort_results(results, filters.limit)

    def prefetch_branch(self, branch: str, cancel: CancelToken | None = None) -> bool:
        """Warm the module cache for ``branch``; False when it cannot be loaded.

        Raises:
            SearchCancelled: If ``cancel`` fires
        """
        try:
            manifest = self.ensure_ready(cancel)
            entry = manifest.branches.get(branch)
            if entry is None:
                logger.debug("Not prefetching %s: branch is not indexed", branch)
                return False
            self.module_loader.load(branch, entry, cancel)
            return True
        except SearchCancelled:
            raise
        except SearchIndexError as exc:
            logger.warning("Prefetch of %s failed: %s", branch, exc)
            return False

    def prefetch_branches(
        self, branches: list[str], cancel: CancelToken | None = None
    ) -> dict[str, bool]:
        """Prefetch several branches concurrently; one failure never blocks the rest."""
        futures = {
            branch: self._executor.submit(self.prefetch_branch, branch, cancel)
            for branch in dict.fromkeys(branches)
        }
        outcome: dict[str, bool] = {}
        for branch, future in futures.items():
            try:
                outcome[branch] = future.result()
            except SearchCancelled:
                outcome[branch] = False
        if cancel is not None:
            cancel.raise_if_cancelled()
        return outcome

    def invalidate_cache(self) -> None:
        self.manifest_client.invalidate()

    def refresh(self, cancel: CancelToken | None = None) -> Manifest:
        """Drop caches and fetch the manifest again."""
        self.invalidate_cache()
        return self.manifest_client.fetch_manifest(cancel, force=True)


class RepoSearchService:
    """Routes each search to the index or the live fallback and reports why.

    ``status`` changes only through :meth:`initialize` and :meth:`refresh`;
    searches read it but never modify it.
    """

    def __init__(
        self,
        *,
        index: SearchIndexService,
        live: LiveSearchFallback,
        controller: FallbackController | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.index = index
        self.live = live
        self.controller = controller or FallbackController()
        self._clock = clock
        self._lock = threading.Lock()
        self._status = IndexStatus(enabled=index.is_enabled())

    @property
    def status(self) -> IndexStatus:
        with self._lock:
            return self._status.model_copy(deep=True)

    def _set_status(self, status: IndexStatus) -> IndexStatus:
        with self._lock:
            self._status = status
            return status.model_copy(deep=True)

    def initialize(self, cancel: CancelToken | None = None) -> IndexStatus:
        """Run the manifest fetch cycle and publish the resulting status."""
        if not self.index.is_enabled():
            return self._set_status(IndexStatus(enabled=False))

        with self._lock:
            self._status = self._status.model_copy(update={"enabled": True, "loading": True})

        try:
            branches = self.index.get_indexed_branches(cancel)
        except SearchCancelled:
            with self._lock:
                self._status = self._status.model_copy(update={"loading": False})
            raise
        except SearchIndexError as exc:
            logger.warning("Search index unavailable: %s", exc)
            return self._set_status(
                IndexStatus(
                    enabled=True,
                    error=str(exc),
                    error_code=exc.code.value,
                    last_updated_at=utc_now(),
                )
            )

        return self._set_status(
            IndexStatus(
                enabled=True,
                ready=True,
                indexed_branches=branches,
                last_updated_at=utc_now(),
            )
        )

    def refresh(self, cancel: CancelToken | None = None) -> IndexStatus:
        self.index.invalidate_cache()
        return self.initialize(cancel)

    def search(
        self,
        filters: SearchFilters,
        cancel: CancelToken | None = None,
        *,
        preferred_mode: SearchMode = "search-index",
    ) -> SearchExecution:
        """Search via the index when it can serve the request, otherwise live.

        Raises:
            LiveSearchError: If the live fallback fails for every branch
            SearchCancelled: If ``cancel`` fires
        """
        if not filters.keyword:
            return SearchExecution(mode=preferred_mode, items=[], took=0, filters=filters)

        started = self._clock()
        branches = filters.branches or [self.index.default_branch]
        decision = self.controller.decide(
            enabled=self.index.is_enabled(),
            status=self.status,
            requested_branches=branches,
            preferred_mode=preferred_mode,
        )

        if decision.mode == "search-index":
            scoped = filters.model_copy(update={"branches": list(decision.branches)})
            try:
                items = self.index.search(scoped, cancel)
            except SearchCancelled:
                raise
            except BranchNotIndexed:
                decision = self.controller.downgrade("branch-not-indexed")
            except SearchIndexError as exc:
                logger.warning("Index search failed, falling back to live search: %s", exc)
                decision = self.controller.downgrade("index-error")
            else:
                return self._execution("search-index", items, filters, started, None)

        if decision.fallback_reason is not None:
            logger.info("Using live search (%s)", decision.fallback_reason)
        items = self.live.search(filters, branches, cancel)
        return self._execution("github-api", items, filters, started, decision.fallback_reason)

    def _execution(
        self,
        mode: SearchMode,
        items: list[SearchResultItem],
        filters: SearchFilters,
        started: float,
        reason: str | None,
    ) -> SearchExecution:
        took = round((self._clock() - started) * 1000, 2)
        return SearchExecution(
            mode=mode,
            items=items,
            took=took,
            filters=filters,
            fallback_reason=reason,  # type: ignore[arg-type]
        )
