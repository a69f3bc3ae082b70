"""Artifact hashing and manifest assembly."""

from __future__ import annotations

import json
import logging
import shutil
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from branchdex.index.errors import ManifestInvalid, ManifestNotFound
from branchdex.index.models import BranchEntry, Manifest, utc_now
from branchdex.utils.atomic import atomic_write_json
from branchdex.utils.hashing import compute_sha256_file
from branchdex.utils.paths import branch_segments, branch_url_path

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.json"


def branch_output_dir(output_dir: Path, branch: str) -> Path:
    """Per-branch artifact directory (``feature/x`` -> ``output_dir/feature/x``)."""
    return output_dir.joinpath(*branch_segments(branch))


def reset_directory(path: Path) -> Path:
    """Remove ``path`` and recreate it empty."""
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def artifact_path_for(branch: str, artifact_base_path: str, module_filename: str) -> str:
    """Public locator of a branch's query module."""
    base = "/" + artifact_base_path.strip("/") if artifact_base_path.strip("/") else ""
    return f"{base}/{branch_url_path(branch)}/{module_filename}"


def build_branch_entry(
    branch: str,
    payload_path: Path,
    *,
    artifact_base_path: str,
    module_filename: str,
    document_count: int,
    generated_at: datetime | None = None,
) -> BranchEntry:
    """Describe one built branch; the hash covers the payload bytes only."""
    return BranchEntry(
        artifact_path=artifact_path_for(branch, artifact_base_path, module_filename),
        hash=compute_sha256_file(payload_path),
        document_count=document_count,
        generated_at=generated_at or utc_now(),
    )


def write_manifest(path: Path, manifest: Manifest) -> Path:
    """Replace the manifest at ``path`` in one atomic step."""
    atomic_write_json(path, manifest.to_wire())
    logger.info("Wrote manifest with %d branches to %s", len(manifest.branches), path)
    return path


def parse_manifest(raw: str | bytes, *, source: str = "manifest") -> Manifest:
    """Decode and validate a manifest document.

    Raises:
        ManifestInvalid: If the payload is not JSON or fails schema validation
            (including a ``schemaVersion`` other than ``docfind-1``)
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ManifestInvalid(f"{source} is not valid JSON", path=source, cause=exc) from exc

    try:
        return Manifest.model_validate(data)
    except ValidationError as exc:
        raise ManifestInvalid(
            f"{source} failed schema validation: {exc.error_count()} error(s)",
            path=source,
            cause=exc,
        ) from exc


def read_manifest(path: Path) -> Manifest:
    """Load a manifest from disk.

    Raises:
        ManifestNotFound: If ``path`` does not exist or cannot be read
        ManifestInvalid: If it cannot be parsed
    """
    try:
        raw = path.read_bytes()
    except FileNotFoundError as exc:
        raise ManifestNotFound(
            f"Manifest not found: {path}", status=404, path=str(path), cause=exc
        ) from exc
    except OSError as exc:
        raise ManifestNotFound(
            f"Failed to read manifest {path}: {exc}", path=str(path), cause=exc
        ) from exc
    return parse_manifest(raw, source=str(path))
