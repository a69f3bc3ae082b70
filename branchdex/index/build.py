"""Build per-branch docfind artifacts and the manifest that catalogs them."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from branchdex.app.adapters.docfind import IndexerArtifacts
from branchdex.index.errors import IndexerError, SnapshotError
from branchdex.index.manifest import (
    MANIFEST_FILENAME,
    branch_output_dir,
    build_branch_entry,
    reset_directory,
    write_manifest,
)
from branchdex.index.models import BranchEntry, Manifest, utc_now
from branchdex.ingest.extract import ExtractionStats, write_documents
from branchdex.ingest.snapshot import BranchSnapshotter
from branchdex.utils.paths import branch_slug

logger = logging.getLogger(__name__)


class Indexer(Protocol):
    def run(self, documents_path: Path, output_dir: Path) -> IndexerArtifacts: ...


@dataclass
class BuildReport:
    """Outcome of one build run."""

    manifest: Manifest
    manifest_path: Path
    indexed: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    extraction: dict[str, ExtractionStats] = field(default_factory=dict)
    elapsed_seconds: float = 0.0


class IndexBuilder:
    """Snapshot, extract, index and catalog branches one after another.

    A failure on one branch is logged and that branch is left out of the
    manifest; the run continues and the manifest is always rewritten.
    """

    def __init__(
        self,
        *,
        snapshotter: BranchSnapshotter,
        indexer: Indexer,
        output_dir: Path,
        work_dir: Path,
        artifact_base_path: str,
        extensions: frozenset[str],
        max_file_size: int,
    ) -> None:
        self.snapshotter = snapshotter
        self.indexer = indexer
        self.output_dir = output_dir
        self.work_dir = work_dir
        self.artifact_base_path = artifact_base_path
        self.extensions = extensions
        self.max_file_size = max_file_size

    @property
    def manifest_path(self) -> Path:
        return self.output_dir / MANIFEST_FILENAME

    def build(self, branches: list[str], *, show_progress: bool = False) -> BuildReport:
        """Build every branch in ``branches`` and write the manifest.

        Args:
            branches: Branch names, processed in order
            show_progress: Print per-branch progress to stdout

        Returns:
            BuildReport listing indexed and failed branches
        """
        start = time.time()
        report = BuildReport(manifest=Manifest(), manifest_path=self.manifest_path)
        entries: dict[str, BranchEntry] = {}

        with self.snapshotter:
            for branch in branches:
                if show_progress:
                    print(f"Indexing branch {branch}...")
                try:
                    entry, stats = self._build_branch(branch)
                except (SnapshotError, IndexerError, OSError, ValueError) as exc:
                    logger.warning("Skipping branch %s: %s", branch, exc)
                    report.failed[branch] = str(exc)
                    if show_progress:
                        print(f"  Warning: {branch} skipped ({exc})")
                    continue

                report.extraction[branch] = stats
                if entry is None:
                    report.failed[branch] = "no documents"
                    if show_progress:
                        print(f"  Warning: {branch} has no tracked files; skipped")
                    continue

                entries[branch] = entry
                report.indexed.append(branch)
                if show_progress:
                    print(f"  {stats.document_count} documents, hash {entry.hash[:12]}")

        report.manifest = Manifest(generated_at=utc_now(), branches=entries)
        write_manifest(self.manifest_path, report.manifest)
        report.elapsed_seconds = time.time() - start

        if show_progress:
            print("\nBuild complete:")
            print(f"  - Indexed: {len(report.indexed)} branches")
            print(f"  - Skipped: {len(report.failed)} branches")
            print(f"  - Time: {report.elapsed_seconds:.1f} seconds")

        return report

    def _build_branch(self, branch: str) -> tuple[BranchEntry | None, ExtractionStats]:
        ref = self.snapshotter.resolve(branch)
        if ref is None:
            raise SnapshotError(f"branch {branch} could not be resolved")

        root = self.snapshotter.checkout(ref)
        logger.info("Checked out %s at %s", branch, self.snapshotter.head_commit() or ref)

        payload = self.work_dir / "payloads" / f"{branch_slug(branch)}.json"
        stats = write_documents(
            root,
            self.snapshotter.tracked_files(),
            branch,
            payload,
            extensions=self.extensions,
            max_file_size=self.max_file_size,
        )
        if stats.document_count == 0:
            return None, stats

        branch_dir = reset_directory(branch_output_dir(self.output_dir, branch))
        artifacts = self.indexer.run(payload, branch_dir)
        entry = build_branch_entry(
            branch,
            artifacts.payload_path,
            artifact_base_path=self.artifact_base_path,
            module_filename=artifacts.module_path.name,
            document_count=stats.document_count,
        )
        return entry, stats
