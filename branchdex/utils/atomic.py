"""Atomic file writing helpers with durability guarantees."""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any


@contextmanager
def atomic_open(path: Path) -> Iterator[IO[str]]:
    """Open a text handle whose contents replace ``path`` only on success.

    The data goes to a temporary file in the destination directory, is flushed
    and fsynced, then moved over ``path`` with ``os.replace``. Readers see
    either the old file or the complete new one. If the body raises, the
    temporary file is removed and ``path`` is left untouched.
    """
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)

    fd: int | None = None
    tmp_path: str | None = None

    try:
        fd, tmp_path = tempfile.mkstemp(
            dir=str(destination.parent),
            prefix=destination.name,
            suffix=".tmp",
            text=True,
        )

        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            fd = None  # Ownership transferred to file object
            yield handle
            handle.flush()
            os.fsync(handle.fileno())

        os.replace(tmp_path, destination)
        tmp_path = None
    finally:
        if fd is not None:
            os.close(fd)
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass


def atomic_write_json(path: Path, payload: Any, *, indent: int | None = 2) -> None:
    """Serialize ``payload`` to ``path`` atomically."""
    with atomic_open(path) as handle:
        json.dump(payload, handle, indent=indent, ensure_ascii=False)
        handle.write("\n")
