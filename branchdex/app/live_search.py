"""Live keyword search against the hosting service's tree listing."""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor

import requests

from branchdex.app.ports.tree import TreeListingPort
from branchdex.index.errors import LiveSearchError, SearchCancelled, SearchIndexError
from branchdex.index.models import SearchFilters, SearchResultItem
from branchdex.index.ranking import rank_hits, sort_results
from branchdex.utils.cancellation import CancelToken
from branchdex.utils.paths import file_name

logger = logging.getLogger(__name__)


class LiveSearchFallback:
    """Searches file names branch by branch when no index can serve a request.

    Branches are listed concurrently. A branch that fails contributes nothing
    and is logged; only when every branch fails is the search an error.
    """

    def __init__(
        self,
        *,
        trees: TreeListingPort,
        owner: str,
        repo: str,
        executor: Executor | None = None,
        max_workers: int = 4,
    ) -> None:
        self.trees = trees
        self.owner = owner
        self.repo = repo
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="branchdex-live"
        )

    def search(
        self,
        filters: SearchFilters,
        branches: list[str],
        cancel: CancelToken | None = None,
    ) -> list[SearchResultItem]:
        """Run ``filters`` against each branch's tree.

        Raises:
            LiveSearchError: If every branch fails; carries ``filters``
            SearchCancelled: If ``cancel`` fires first
        """
        if not filters.keyword or not branches:
            return []

        if cancel is not None:
            cancel.raise_if_cancelled()

        futures: dict[str, Future[list[SearchResultItem]]] = {
            branch: self._executor.submit(self._search_branch, branch, filters)
            for branch in branches
        }

        results: list[SearchResultItem] = []
        failures: dict[str, Exception] = {}
        for branch, future in futures.items():
            try:
                items = future.result() if cancel is None else cancel.wait_for(future)
            except SearchCancelled:
                raise
            except (requests.RequestException, ValueError, SearchIndexError) as exc:
                logger.warning("Live search failed for branch %s: %s", branch, exc)
                failures[branch] = exc
                continue
            results.extend(items)

        if failures and len(failures) == len(futures):
            last = next(reversed(failures.values()))
            raise LiveSearchError(
                f"Live search failed for all branches: {', '.join(failures)}",
                filters=filters,
                branch=", ".join(failures),
                cause=last,
            )

        return sort_results(results, filters.limit)

    def _search_branch(self, branch: str, filters: SearchFilters) -> list[SearchResultItem]:
        needle = filters.keyword.lower()
        hits = [
            {"path": entry["path"], "size": entry.get("size")}
            for entry in self.trees.list_tree(branch)
            if isinstance(entry.get("path"), str) and needle in file_name(entry["path"]).lower()
        ]
        return rank_hits(
            branch,
            hits,
            filters,
            owner=self.owner,
            repo=self.repo,
            source="github-api",
        )
