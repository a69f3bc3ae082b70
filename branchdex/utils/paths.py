"""Path, branch-name and extension normalization helpers."""

from __future__ import annotations

import os
import re
from collections.abc import Iterable
from pathlib import Path
from urllib.parse import quote

_LIST_SPLIT = re.compile(r"[\s,]+")


def ensure_dir(path: Path) -> Path:
    """Ensure directory exists, creating if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir(app_name: str = "branchdex") -> Path:
    """Get XDG cache directory for application."""
    xdg_cache = os.getenv("XDG_CACHE_HOME")
    if xdg_cache:
        base = Path(xdg_cache)
    else:
        base = Path.home() / ".cache"

    return ensure_dir(base / app_name)


def split_list(value: str | None) -> list[str]:
    """Split a comma/whitespace separated list, dropping blanks and duplicates."""
    if not value:
        return []

    seen: dict[str, None] = {}
    for item in _LIST_SPLIT.split(value):
        item = item.strip()
        if item:
            seen.setdefault(item, None)
    return list(seen)


def normalize_extension(value: str) -> str:
    """Lower-case an extension and strip a leading dot."""
    return value.strip().lower().lstrip(".")


def normalize_extensions(values: Iterable[str] | None) -> list[str]:
    """Sanitize an extension filter: trim, lower-case, strip dot, dedupe."""
    if not values:
        return []

    seen: dict[str, None] = {}
    for value in values:
        ext = normalize_extension(value)
        if ext:
            seen.setdefault(ext, None)
    return list(seen)


def to_posix(path: str) -> str:
    """Normalize a repository-relative path to forward slashes."""
    return path.replace("\\", "/")


def file_name(path: str) -> str:
    """Return the last segment of a POSIX path."""
    return path.rsplit("/", 1)[-1]


def file_extension(path: str) -> str:
    """Return the lower-cased extension of ``path`` without the dot ('' if none)."""
    name = file_name(path)
    dot = name.rfind(".")
    if dot <= 0 or dot == len(name) - 1:
        return ""
    return name[dot + 1 :].lower()


def branch_segments(branch: str) -> list[str]:
    """Split a branch name into path segments (``feature/x`` -> ``[feature, x]``)."""
    return [segment for segment in branch.split("/") if segment]


def branch_slug(branch: str) -> str:
    """Flatten a branch name into a single file-name safe token."""
    return "-".join(branch_segments(branch)) or "branch"


def branch_url_path(branch: str) -> str:
    """URL-encode each branch segment and join with '/'."""
    return "/".join(quote(segment, safe="") for segment in branch_segments(branch))


def display_path(path: str) -> str:
    """Text form of a filesystem path; undecodable bytes become U+FFFD."""
    return os.fsencode(path).decode("utf-8", errors="replace")
