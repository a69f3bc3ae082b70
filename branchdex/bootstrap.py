"""Application bootstrap wiring ports, adapters, and services."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import requests

from branchdex.app.adapters.docfind import DocfindIndexer
from branchdex.app.adapters.github_trees import GitHubTreeClient
from branchdex.app.adapters.node_bridge import NodeQueryModuleLoader
from branchdex.app.cache import IndexCache
from branchdex.app.fallback import FallbackController
from branchdex.app.live_search import LiveSearchFallback
from branchdex.app.manifest_client import ManifestClient
from branchdex.app.module_loader import IndexModuleLoader
from branchdex.app.ports import QueryModuleLoader, TreeListingPort
from branchdex.app.search_service import RepoSearchService, SearchIndexService
from branchdex.config import Settings, get_settings
from branchdex.index.build import Indexer, IndexBuilder
from branchdex.ingest.credentials import CredentialResolver
from branchdex.ingest.snapshot import BranchSnapshotter
from branchdex.utils.gating import GenerationGate


@dataclass(slots=True)
class ApplicationContainer:
    """Aggregates wired services and adapters for the CLI layer."""

    settings: Settings
    session: requests.Session
    generation_gate: GenerationGate
    cache: IndexCache
    manifest_client: ManifestClient
    module_loader: IndexModuleLoader
    live_search: LiveSearchFallback
    index_service: SearchIndexService
    search_service: RepoSearchService
    indexer: Indexer | None = None

    def create_builder(
        self,
        *,
        output_dir: Path | None = None,
        repo_path: Path | None = None,
    ) -> IndexBuilder:
        """Build an :class:`IndexBuilder` for one run, honouring CLI overrides."""
        settings = self.settings
        credentials = CredentialResolver.from_environ(
            settings.repo_owner, settings.repo_name, os.environ
        )
        local_repo = repo_path or settings.repo_path
        snapshotter = BranchSnapshotter(
            work_dir=settings.work_dir,
            remote_urls=credentials.remote_urls() if settings.has_repository() else [],
            repo_path=local_repo,
            git_timeout=settings.git_timeout,
        )
        indexer = self.indexer or DocfindIndexer.from_settings(settings, session=self.session)
        return IndexBuilder(
            snapshotter=snapshotter,
            indexer=indexer,
            output_dir=output_dir or settings.output_dir,
            work_dir=settings.work_dir,
            artifact_base_path=settings.artifact_base_path,
            extensions=settings.get_extensions(),
            max_file_size=settings.max_file_size,
        )


def bootstrap_application(
    settings: Settings | None = None,
    *,
    session: requests.Session | None = None,
    plugin: QueryModuleLoader | None = None,
    trees: TreeListingPort | None = None,
    indexer: Indexer | None = None,
) -> ApplicationContainer:
    """Instantiate adapters and services for CLI consumption.

    ``plugin``, ``trees`` and ``indexer`` replace the Node.js bridge, the
    GitHub tree client and the docfind binary respectively.
    """

    active_settings = settings or get_settings()
    http = session or requests.Session()

    cache = IndexCache()
    manifest_client = ManifestClient.from_settings(active_settings, cache, session=http)

    query_plugin = plugin or NodeQueryModuleLoader(
        cache_dir=active_settings.get_module_cache_dir(),
        node_bin=active_settings.node_bin,
        session=http,
        timeout=active_settings.request_timeout,
    )
    module_loader = IndexModuleLoader(
        plugin=query_plugin,
        cache=cache,
        resolver=manifest_client.resolve_artifact,
    )

    tree_client = trees or GitHubTreeClient.from_settings(active_settings, session=http)
    live_search = LiveSearchFallback(
        trees=tree_client,
        owner=active_settings.repo_owner,
        repo=active_settings.repo_name,
    )

    index_service = SearchIndexService(
        manifest_client=manifest_client,
        module_loader=module_loader,
        default_branch=active_settings.default_branch,
        owner=active_settings.repo_owner,
        repo=active_settings.repo_name,
    )
    search_service = RepoSearchService(
        index=index_service,
        live=live_search,
        controller=FallbackController(),
    )

    return ApplicationContainer(
        settings=active_settings,
        session=http,
        generation_gate=GenerationGate.from_settings(active_settings),
        cache=cache,
        manifest_client=manifest_client,
        module_loader=module_loader,
        live_search=live_search,
        index_service=index_service,
        search_service=search_service,
        indexer=indexer,
    )
