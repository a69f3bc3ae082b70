"""Pytest configuration and fixtures."""

import gc
import json
import shutil
import subprocess
import sys
import tempfile
import time
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from branchdex.app.ports.query import ArtifactLocation
from branchdex.config import Settings

FAKE_INDEXER_SOURCE = '''\
import json
import shutil
import sys
from pathlib import Path

documents, output = Path(sys.argv[1]), Path(sys.argv[2])
json.loads(documents.read_text(encoding="utf-8"))
output.mkdir(parents=True, exist_ok=True)
(output / "docfind.js").write_text(
    "function U(){return y()}\\nexport default function search(){return []}\\n",
    encoding="utf-8",
)
shutil.copyfile(documents, output / "docfind_bg.wasm")
'''


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmpdir = tempfile.mkdtemp()
    try:
        yield Path(tmpdir)
    finally:
        gc.collect()
        time.sleep(0.05)
        shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def override_settings(temp_dir: Path) -> Generator[Settings, None, None]:
    """Provide isolated branchdex settings scoped to tests."""

    import branchdex.config as config_module

    original_settings = getattr(config_module, "_settings", None)

    settings = config_module.Settings(
        _env_file=None,
        search_index_enabled=True,
        repo_owner="acme",
        repo_name="widgets",
        default_branch="main",
        generation_mode="build",
        output_dir=temp_dir / "public" / "search-index",
        work_dir=temp_dir / ".docfind",
        cache_dir=temp_dir / "cache",
        manifest_location=None,
    )

    config_module._settings = settings

    try:
        yield settings
    finally:
        config_module._settings = original_settings


def _git(cwd: Path, *args: str) -> None:
    subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
    )


@pytest.fixture
def git_repo(temp_dir: Path) -> Path:
    """Local repository with ``main`` and ``feature/search`` branches."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    repo = temp_dir / "repo"
    repo.mkdir()
    _git(repo, "init", "--quiet")
    _git(repo, "symbolic-ref", "HEAD", "refs/heads/main")

    (repo / "README.md").write_text("# Widgets\n\nHow to configure the widget search.\n")
    (repo / "src").mkdir()
    (repo / "src" / "app.py").write_text("def render_widget():\n    return 'widget'\n")
    (repo / "docs").mkdir()
    (repo / "docs" / "guide.md").write_text("Deployment guide for operators.\n")
    (repo / "assets").mkdir()
    (repo / "assets" / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00binary")
    _git(repo, "add", ".")
    _git(repo, "commit", "--quiet", "-m", "initial")

    _git(repo, "checkout", "--quiet", "-b", "feature/search")
    (repo / "src" / "search.ts").write_text("export const searchWidgets = () => [];\n")
    _git(repo, "add", ".")
    _git(repo, "commit", "--quiet", "-m", "search")
    _git(repo, "checkout", "--quiet", "main")
    return repo


@pytest.fixture
def fake_indexer_command(temp_dir: Path) -> list[str]:
    """Command line of a stand-in indexer emitting docfind-shaped output.

    The payload it writes is a copy of the documents JSON, so tests can
    answer queries from it without a real query engine.
    """
    script = temp_dir / "fake_docfind.py"
    script.write_text(FAKE_INDEXER_SOURCE, encoding="utf-8")
    return [sys.executable, str(script)]


class PayloadQueryHandler:
    """Answers queries by substring match over a documents-JSON payload."""

    def __init__(self, payload: Path) -> None:
        self.documents = json.loads(payload.read_text(encoding="utf-8"))
        self.calls: list[tuple[str, int]] = []

    def search(self, keyword: str, limit: int) -> list[dict[str, Any]]:
        self.calls.append((keyword, limit))
        needle = keyword.lower()
        hits = [doc for doc in self.documents if needle in doc["body"].lower()]
        return hits[:limit]


class PayloadModuleLoader:
    """Query plugin reading local artifacts produced by the stand-in indexer."""

    def __init__(self) -> None:
        self.loaded: list[ArtifactLocation] = []

    def load(self, location: ArtifactLocation) -> PayloadQueryHandler:
        self.loaded.append(location)
        module = Path(location.module)
        payload = Path(location.payload)
        if not module.is_file() or not payload.is_file():
            raise FileNotFoundError(location.module)
        return PayloadQueryHandler(payload)


@pytest.fixture
def payload_loader() -> PayloadModuleLoader:
    return PayloadModuleLoader()
