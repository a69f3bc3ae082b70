"""End-to-end index builds against a local repository."""

import json
import os
import subprocess
from pathlib import Path

import pytest

from branchdex.app.adapters.docfind import DocfindIndexer, IndexerArtifacts
from branchdex.config import DEFAULT_EXTENSIONS
from branchdex.index.build import IndexBuilder
from branchdex.index.errors import IndexerError
from branchdex.index.manifest import read_manifest
from branchdex.ingest.snapshot import BranchSnapshotter
from branchdex.utils.hashing import compute_sha256_file


class _FlakyIndexer:
    """Delegates to a real indexer except for one branch directory."""

    def __init__(
        self, inner: DocfindIndexer, failing_dir: str, error: Exception | None = None
    ) -> None:
        self.inner = inner
        self.failing_dir = failing_dir
        self.error = error or IndexerError("indexer crashed")

    def run(self, documents_path: Path, output_dir: Path) -> IndexerArtifacts:
        if output_dir.name == self.failing_dir:
            raise self.error
        return self.inner.run(documents_path, output_dir)


@pytest.fixture
def builder_factory(temp_dir: Path, git_repo: Path, fake_indexer_command):
    output_dir = temp_dir / "public" / "search-index"
    work_dir = temp_dir / ".docfind"

    def factory(indexer=None) -> IndexBuilder:
        return IndexBuilder(
            snapshotter=BranchSnapshotter(work_dir=work_dir, repo_path=git_repo),
            indexer=indexer or DocfindIndexer(fake_indexer_command, work_dir=work_dir),
            output_dir=output_dir,
            work_dir=work_dir,
            artifact_base_path="/search-index",
            extensions=frozenset(DEFAULT_EXTENSIONS),
            max_file_size=512 * 1024,
        )

    return factory


def test_build_indexes_each_branch_and_skips_missing(builder_factory, capsys):
    builder = builder_factory()

    report = builder.build(["main", "feature/search", "ghost"], show_progress=True)

    assert report.indexed == ["main", "feature/search"]
    assert set(report.failed) == {"ghost"}
    assert report.extraction["main"].document_count == 4
    assert report.extraction["main"].content_indexed == 3
    assert report.extraction["feature/search"].document_count == 5

    manifest = read_manifest(report.manifest_path)
    assert sorted(manifest.branches) == ["feature/search", "main"]
    feature = manifest.branches["feature/search"]
    assert feature.artifact_path == "/search-index/feature/search/docfind.js"
    assert feature.document_count == 5

    payload = builder.output_dir / "feature" / "search" / "docfind_bg.wasm"
    assert feature.hash == compute_sha256_file(payload)
    assert "function U(e){return y(e)}" in (payload.parent / "docfind.js").read_text()

    output = capsys.readouterr().out
    assert "Indexing branch ghost..." in output
    assert "Build complete:" in output


def test_payload_documents_describe_files(builder_factory):
    builder = builder_factory()
    builder.build(["main"])

    payload = builder.output_dir / "main" / "docfind_bg.wasm"
    documents = {doc["path"]: doc for doc in json.loads(payload.read_text(encoding="utf-8"))}

    assert documents["README.md"]["body"].startswith("README.md\n# Widgets")
    assert documents["assets/logo.png"]["body"] == "assets/logo.png"
    assert documents["src/app.py"]["title"] == "app.py"
    assert documents["src/app.py"]["branch"] == "main"


def test_unchanged_branch_rebuilds_with_identical_hash(builder_factory):
    first = builder_factory().build(["main"]).manifest.branches["main"]
    second = builder_factory().build(["main"]).manifest.branches["main"]

    assert first.hash == second.hash
    assert first.artifact_path == second.artifact_path


def test_indexer_failure_is_isolated_per_branch(builder_factory, fake_indexer_command, temp_dir):
    inner = DocfindIndexer(fake_indexer_command, work_dir=temp_dir / ".docfind")
    builder = builder_factory(_FlakyIndexer(inner, failing_dir="main"))

    report = builder.build(["main", "feature/search"])

    assert report.indexed == ["feature/search"]
    assert report.failed == {"main": "indexer crashed"}
    assert list(read_manifest(report.manifest_path).branches) == ["feature/search"]


def test_stale_artifacts_are_removed(builder_factory):
    builder = builder_factory()
    stale = builder.output_dir / "main" / "old-chunk.js"
    stale.parent.mkdir(parents=True)
    stale.write_text("stale")

    builder.build(["main"])

    assert not stale.exists()
    assert (builder.output_dir / "main" / "docfind.js").is_file()


def test_manifest_is_written_when_every_branch_fails(builder_factory):
    builder = builder_factory()

    report = builder.build(["ghost", "phantom"])

    assert report.indexed == []
    assert read_manifest(report.manifest_path).branches == {}


def test_unexpected_branch_error_is_recorded(builder_factory, fake_indexer_command, temp_dir):
    inner = DocfindIndexer(fake_indexer_command, work_dir=temp_dir / ".docfind")
    flaky = _FlakyIndexer(inner, failing_dir="main", error=ValueError("bad payload"))

    report = builder_factory(flaky).build(["main", "feature/search"])

    assert report.indexed == ["feature/search"]
    assert report.failed == {"main": "bad payload"}


def test_non_utf8_file_name_is_indexed(builder_factory, git_repo: Path):
    name = os.fsdecode(b"caf\xe9.md")
    git = ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com"]
    subprocess.run([*git, "checkout", "--quiet", "-b", "latin1"], cwd=git_repo, check=True)
    try:
        (git_repo / name).write_text("Menu of the day\n", encoding="utf-8")
    except (OSError, UnicodeError):
        pytest.skip("filesystem rejects non-UTF-8 file names")
    subprocess.run([*git, "add", "--all"], cwd=git_repo, check=True)
    subprocess.run([*git, "commit", "--quiet", "-m", "latin1"], cwd=git_repo, check=True)
    subprocess.run([*git, "checkout", "--quiet", "main"], cwd=git_repo, check=True)
    builder = builder_factory()

    report = builder.build(["latin1", "main"])

    assert report.indexed == ["latin1", "main"]
    assert report.failed == {}
    assert sorted(read_manifest(report.manifest_path).branches) == ["latin1", "main"]
    payload = builder.output_dir / "latin1" / "docfind_bg.wasm"
    documents = {doc["path"]: doc for doc in json.loads(payload.read_text(encoding="utf-8"))}
    assert documents["caf\ufffd.md"]["title"] == "caf\ufffd.md"
    assert documents["caf\ufffd.md"]["body"] == "caf\ufffd.md\nMenu of the day\n"
