"""docfind indexer adapter: binary resolution, invocation and module patching."""

from __future__ import annotations

import logging
import os
import platform
import shutil
import subprocess
import tarfile
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import requests

from branchdex.index.errors import IndexerError

if TYPE_CHECKING:  # pragma: no cover
    from branchdex.config import Settings

logger = logging.getLogger(__name__)

MODULE_FILENAME = "docfind.js"
PAYLOAD_FILENAME = "docfind_bg.wasm"

# docfind's generated loader hard-codes the payload location; this rewrite lets
# callers pass it in. Best-effort: absent on other docfind builds.
PATCH_SIGNATURE = "function U(){return y()}"
PATCH_REPLACEMENT = "function U(e){return y(e)}"

_ARCHES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "aarch64": "aarch64",
}


def resolve_asset_name(system: str | None = None, machine: str | None = None) -> str:
    """Release asset for an OS/architecture pair.

    Raises:
        IndexerError: If the platform has no published docfind build
    """
    system = (system or platform.system()).lower()
    arch = _ARCHES.get((machine or platform.machine()).lower())
    if arch is None:
        raise IndexerError(f"Unsupported architecture for docfind: {machine or platform.machine()}")

    if system == "windows":
        return f"docfind-{arch}-pc-windows-msvc.zip"
    if system == "darwin":
        return f"docfind-{arch}-apple-darwin.tar.gz"
    if system == "linux":
        return f"docfind-{arch}-unknown-linux-musl.tar.gz"
    raise IndexerError(f"Unsupported platform for docfind: {system}")


def binary_filename(system: str | None = None) -> str:
    return "docfind.exe" if (system or platform.system()).lower() == "windows" else "docfind"


def find_executable(root: Path, *, windows: bool = False) -> Path | None:
    """Locate the docfind executable inside an extracted release archive."""
    for candidate in sorted(root.rglob("*")):
        if not candidate.is_file():
            continue
        name = candidate.name.lower()
        if windows:
            if name.startswith("docfind") and name.endswith(".exe"):
                return candidate
        elif name == "docfind" or (name.startswith("docfind-") and "." not in name):
            return candidate
    return None


def _extract_archive(archive: Path, destination: Path) -> None:
    if archive.name.endswith(".zip"):
        with zipfile.ZipFile(archive) as bundle:
            bundle.extractall(destination)
        return

    with tarfile.open(archive, "r:*") as bundle:
        if hasattr(tarfile, "data_filter"):
            bundle.extractall(destination, filter="data")
        else:  # pragma: no cover - interpreters without extraction filters
            bundle.extractall(destination)


def patch_query_module(module_path: Path) -> bool:
    """Rewrite the payload loader so it accepts a location argument.

    Returns:
        True when the signature was found and replaced; False (with a
        warning) when docfind's output no longer contains it.
    """
    source = module_path.read_text(encoding="utf-8")
    patched = source.replace(PATCH_SIGNATURE, PATCH_REPLACEMENT)
    if patched == source:
        logger.warning(
            "docfind module %s has no loader signature to patch; leaving it unchanged",
            module_path,
        )
        return False

    module_path.write_text(patched, encoding="utf-8")
    return True


@dataclass(frozen=True, slots=True)
class IndexerArtifacts:
    """Files emitted by one indexer run."""

    module_path: Path
    payload_path: Path
    patched: bool


class DocfindIndexer:
    """Runs ``<docfind> <documents.json> <output_dir>`` for one branch at a time.

    The executable is taken from ``command`` when given, otherwise from the
    per-project cache under ``work_dir/bin``, downloading the platform's
    release archive on first use.
    """

    def __init__(
        self,
        command: list[str] | None = None,
        *,
        work_dir: Path = Path(".docfind"),
        release_url: str = "https://github.com/microsoft/docfind/releases/latest/download",
        session: requests.Session | None = None,
        timeout: float = 60.0,
        run_timeout: float | None = None,
        system: str | None = None,
        machine: str | None = None,
    ) -> None:
        self._command = list(command) if command else None
        self.work_dir = work_dir
        self.release_url = release_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.run_timeout = run_timeout
        self.system = (system or platform.system()).lower()
        self.machine = machine

    @classmethod
    def from_settings(
        cls, settings: "Settings", *, session: requests.Session | None = None
    ) -> "DocfindIndexer":
        command = [settings.indexer_bin] if settings.indexer_bin else None
        return cls(
            command,
            work_dir=settings.work_dir,
            release_url=settings.indexer_release_url,
            session=session,
            timeout=settings.request_timeout,
            run_timeout=settings.git_timeout,
        )

    @property
    def cached_binary(self) -> Path:
        return self.work_dir / "bin" / binary_filename(self.system)

    def ensure_command(self) -> list[str]:
        """Resolve the indexer command line prefix, downloading docfind if needed."""
        if self._command is not None:
            return self._command

        binary = self.cached_binary
        if not binary.is_file():
            binary = self.download_binary()
        self._command = [str(binary)]
        return self._command

    def download_binary(self) -> Path:
        """Fetch and unpack the release archive, returning the installed binary.

        Raises:
            IndexerError: On download failure or when no executable is found
        """
        asset = resolve_asset_name(self.system, self.machine)
        url = f"{self.release_url}/{asset}"
        bin_dir = self.work_dir / "bin"
        bin_dir.mkdir(parents=True, exist_ok=True)

        logger.info("Downloading docfind from %s", url)
        with tempfile.TemporaryDirectory(dir=bin_dir, prefix="download-") as tmp:
            archive = Path(tmp) / asset
            try:
                with self.session.get(url, stream=True, timeout=self.timeout) as response:
                    response.raise_for_status()
                    with open(archive, "wb") as handle:
                        for chunk in response.iter_content(chunk_size=65536):
                            if chunk:
                                handle.write(chunk)
            except requests.RequestException as exc:
                raise IndexerError(f"Failed to download docfind from {url}: {exc}") from exc

            extract_dir = Path(tmp) / "extract"
            try:
                _extract_archive(archive, extract_dir)
            except (tarfile.TarError, zipfile.BadZipFile, OSError) as exc:
                raise IndexerError(f"Failed to unpack {asset}: {exc}") from exc

            found = find_executable(extract_dir, windows=self.system == "windows")
            if found is None:
                raise IndexerError(f"No docfind executable found in {asset}")

            target = self.cached_binary
            shutil.copyfile(found, target)
            os.chmod(target, 0o755)

        logger.info("Installed docfind at %s", self.cached_binary)
        return self.cached_binary

    def run(self, documents_path: Path, output_dir: Path) -> IndexerArtifacts:
        """Index ``documents_path`` into ``output_dir``.

        Raises:
            IndexerError: On non-zero exit or missing output files
        """
        command = [*self.ensure_command(), str(documents_path), str(output_dir)]
        logger.debug("Running indexer: %s", " ".join(command))
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.run_timeout,
            )
        except (subprocess.SubprocessError, OSError) as exc:
            raise IndexerError(f"docfind failed to run: {exc}") from exc

        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip()
            raise IndexerError(f"docfind exited with {result.returncode}: {detail}")

        module_path = output_dir / MODULE_FILENAME
        payload_path = output_dir / PAYLOAD_FILENAME
        missing = [p.name for p in (module_path, payload_path) if not p.is_file()]
        if missing:
            raise IndexerError(f"docfind produced no {', '.join(missing)} in {output_dir}")

        patched = patch_query_module(module_path)
        return IndexerArtifacts(module_path=module_path, payload_path=payload_path, patched=patched)
