"""Document extraction from a checked-out branch."""

from __future__ import annotations

import json
import logging
import stat
from collections.abc import Iterable
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from branchdex.index.models import Document
from branchdex.utils.atomic import atomic_open
from branchdex.utils.paths import display_path, file_extension, file_name, to_posix

logger = logging.getLogger(__name__)

BINARY_PROBE_BYTES = 8000

BodyKind = Literal["content", "path", "binary", "read-error"]


class ExtractionStats(BaseModel):
    """Counters for one branch extraction."""

    document_count: int = Field(0, description="Documents written")
    skipped: int = Field(0, description="Tracked paths that could not be stat'ed or are not files")
    content_indexed: int = Field(0, description="Documents whose body includes file content")
    binary: int = Field(0, description="Documents degraded to path-only because content is binary")
    read_errors: int = Field(0, description="Documents degraded to path-only on read failure")


def is_binary(data: bytes, probe: int = BINARY_PROBE_BYTES) -> bool:
    """NUL-byte probe over the first ``probe`` bytes."""
    return b"\0" in data[:probe]


def extract_document(
    root: Path,
    relative_path: str,
    branch: str,
    *,
    extensions: frozenset[str],
    max_file_size: int,
) -> tuple[Document, BodyKind] | None:
    """Build the indexer document for one tracked file.

    The path is always indexed. Content is appended only for allow-listed
    extensions within the size ceiling that are not binary; any read failure
    degrades to a path-only body.

    Args:
        root: Working tree root
        relative_path: Filesystem path as reported by ``git ls-files``
        branch: Branch name recorded on the document
        extensions: Extensions whose content may be embedded
        max_file_size: Largest file size (bytes) whose content is embedded

    Returns:
        ``(document, body_kind)``, or None if the path cannot be stat'ed or is
        not a regular file
    """
    path = to_posix(display_path(relative_path))
    extension = file_extension(path)

    try:
        info = (root / relative_path).stat()
    except OSError as exc:
        logger.debug("Skipping %s: %s", path, exc)
        return None

    if not stat.S_ISREG(info.st_mode):
        return None

    body = path
    kind: BodyKind = "path"

    if extension in extensions and info.st_size <= max_file_size:
        try:
            data = (root / relative_path).read_bytes()
        except OSError as exc:
            logger.warning("Could not read %s, indexing path only: %s", path, exc)
            kind = "read-error"
        else:
            if is_binary(data):
                kind = "binary"
            else:
                body = f"{path}\n{data.decode('utf-8', errors='replace')}"
                kind = "content"

    document = Document(
        title=file_name(path),
        category=extension,
        href=path,
        path=path,
        branch=branch,
        extension=extension,
        body=body,
    )
    return document, kind


def write_documents(
    root: Path,
    paths: Iterable[str],
    branch: str,
    destination: Path,
    *,
    extensions: frozenset[str],
    max_file_size: int,
) -> ExtractionStats:
    """Stream one JSON document per tracked file into ``destination``.

    The output is always a valid JSON array, including ``[]`` for an empty
    branch. Only one file's content is held in memory at a time.
    """
    stats = ExtractionStats()

    with atomic_open(destination) as handle:
        handle.write("[\n")
        for relative_path in paths:
            extracted = extract_document(
                root,
                relative_path,
                branch,
                extensions=extensions,
                max_file_size=max_file_size,
            )
            if extracted is None:
                stats.skipped += 1
                continue

            document, kind = extracted
            if stats.document_count:
                handle.write(",\n")
            handle.write(json.dumps(document.model_dump(), ensure_ascii=False))
            stats.document_count += 1

            if kind == "content":
                stats.content_indexed += 1
            elif kind == "binary":
                stats.binary += 1
            elif kind == "read-error":
                stats.read_errors += 1
        handle.write("\n]\n")

    logger.info(
        "Extracted %d documents for %s (%d with content, %d skipped)",
        stats.document_count,
        branch,
        stats.content_indexed,
        stats.skipped,
    )
    return stats
