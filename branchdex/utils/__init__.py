"""Utility modules for common operations."""

from branchdex.utils.atomic import atomic_open, atomic_write_json
from branchdex.utils.hashing import compute_sha256_file
from branchdex.utils.paths import ensure_dir, get_cache_dir

__all__ = [
    "atomic_open",
    "atomic_write_json",
    "compute_sha256_file",
    "ensure_dir",
    "get_cache_dir",
]
