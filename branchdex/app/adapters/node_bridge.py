"""Node.js subprocess bridge for docfind query modules."""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any

import requests

from branchdex.app.ports.query import ArtifactLocation, QueryHandler
from branchdex.index.errors import IndexLoadError
from branchdex.utils.paths import branch_slug

logger = logging.getLogger(__name__)

BRIDGE_SCRIPT = Path(__file__).parent / "javascript" / "query_bridge.mjs"


def get_bridge_script() -> Path:
    """Path of the bundled bridge script."""
    if not BRIDGE_SCRIPT.exists():
        raise FileNotFoundError(f"Query bridge not found at {BRIDGE_SCRIPT}")
    return BRIDGE_SCRIPT


class NodeQueryHandler:
    """Answers queries by running the bridge script under ``node``."""

    def __init__(
        self,
        *,
        node_bin: str,
        module_path: Path,
        payload_path: Path,
        timeout: float = 15.0,
    ) -> None:
        self.node_bin = node_bin
        self.module_path = module_path
        self.payload_path = payload_path
        self.timeout = timeout

    def search(self, keyword: str, limit: int) -> list[dict[str, Any]]:
        command = [
            self.node_bin,
            str(get_bridge_script()),
            str(self.module_path),
            str(self.payload_path),
            keyword,
            str(limit),
        ]
        try:
            result = subprocess.run(command, capture_output=True, text=True, timeout=self.timeout)
        except (subprocess.SubprocessError, OSError) as exc:
            raise IndexLoadError(
                f"Query bridge failed to run: {exc}", path=str(self.module_path), cause=exc
            ) from exc

        if result.returncode != 0:
            raise IndexLoadError(
                f"Query bridge exited with {result.returncode}: {result.stderr.strip()}",
                path=str(self.module_path),
            )

        try:
            hits = json.loads(result.stdout or "[]")
        except json.JSONDecodeError as exc:
            raise IndexLoadError(
                "Query bridge returned invalid JSON", path=str(self.module_path), cause=exc
            ) from exc

        return [hit for hit in hits if isinstance(hit, dict)]


class NodeQueryModuleLoader:
    """Stages artifacts locally and hands out :class:`NodeQueryHandler`s.

    Remote artifacts are downloaded once into ``cache_dir/<branch>/<hash>/``;
    the directory is immutable for a given hash.
    """

    def __init__(
        self,
        *,
        cache_dir: Path,
        node_bin: str = "node",
        session: requests.Session | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.cache_dir = cache_dir
        self.node_bin = node_bin
        self.session = session or requests.Session()
        self.timeout = timeout

    def load(self, location: ArtifactLocation) -> QueryHandler:
        if shutil.which(self.node_bin) is None:
            raise IndexLoadError(
                f"Node.js executable '{self.node_bin}' not found", branch=location.branch
            )

        if location.is_remote:
            stage = self.cache_dir / branch_slug(location.branch) / location.hash
            module_path = self._download(location.module, stage / "docfind.js")
            payload_path = self._download(location.payload, stage / "docfind_bg.wasm")
        else:
            module_path = Path(location.module)
            payload_path = Path(location.payload)
            for path in (module_path, payload_path):
                if not path.is_file():
                    raise FileNotFoundError(path)

        logger.debug("Loaded query module for %s from %s", location.branch, module_path)
        return NodeQueryHandler(
            node_bin=self.node_bin,
            module_path=module_path,
            payload_path=payload_path,
            timeout=self.timeout,
        )

    def _download(self, url: str, destination: Path) -> Path:
        if destination.is_file():
            return destination

        response = self.session.get(url, timeout=self.timeout)
        if response.status_code == 404:
            raise FileNotFoundError(url)
        response.raise_for_status()

        destination.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(destination.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(response.content)
            os.replace(tmp_path, destination)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise
        return destination
