"""Result scoring, snippet extraction and ordering.

Both the index path and the live fallback shape their hits here, so results
from either source rank the same way:

- filename contains the keyword: +5
- path contains the keyword: +3
- a path token equals the keyword: +2
- content contains the keyword: +1 (and yields a snippet)
- ``scoreBoost`` supplied with the hit is added as-is

Hits scoring zero are dropped.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any
from urllib.parse import quote

from branchdex.index.models import SearchFilters, SearchMode, SearchResultItem
from branchdex.utils.paths import file_extension, file_name, to_posix

logger = logging.getLogger(__name__)

NAME_WEIGHT = 5.0
PATH_WEIGHT = 3.0
TOKEN_WEIGHT = 2.0
CONTENT_WEIGHT = 1.0

_TOKEN_SPLIT = re.compile(r"[^0-9a-z\u4e00-\u9fa5]+")


def extract_snippet(
    text: str,
    keyword: str,
    max_length: int = 200,
    context_chars: int = 80,
) -> str:
    """Extract a snippet from text showing the keyword in context.

    Args:
        text: Full document text
        keyword: Search keyword (may contain several whitespace separated terms)
        max_length: Maximum snippet length in characters (default: 200)
        context_chars: Characters to show before/after match (default: 80)

    Returns:
        Snippet with the earliest term hit in context, or start of text if no match

    Examples:
        >>> extract_snippet("This is a long document about contracts.", "contract")
        'This is a long document about contracts.'
        >>> extract_snippet("Short text", "missing")
        'Short text'
    """
    if not text or not keyword:
        return ""

    text = " ".join(text.split())
    terms = [term for term in keyword.split() if term]

    best_match_pos = None
    best_term = None
    lowered = text.lower()
    for term in terms:
        pos = lowered.find(term.lower())
        if pos != -1 and (best_match_pos is None or pos < best_match_pos):
            best_match_pos = pos
            best_term = term

    if best_match_pos is None:
        if len(text) <= max_length:
            return text
        return text[:max_length] + "..."

    start = max(0, best_match_pos - context_chars)
    end = min(len(text), best_match_pos + len(best_term or "") + context_chars)

    if end - start > max_length:
        end = start + max_length

    snippet = text[start:end]

    if start > 0:
        snippet = "..." + snippet
    if end < len(text):
        snippet = snippet + "..."

    return snippet.strip()


def tokenize_path(path: str) -> set[str]:
    """Lower-cased alphanumeric tokens of a path (``src/Foo-bar.ts`` -> src, foo, bar, ts)."""
    return {token for token in _TOKEN_SPLIT.split(path.lower()) if token}


def score_entry(
    path: str,
    keyword: str,
    *,
    content: str | None = None,
    score_boost: float | None = None,
) -> tuple[float, str | None]:
    """Score one candidate path against ``keyword``.

    Returns:
        ``(score, snippet)``; a score of 0 means the candidate did not match.
    """
    needle = keyword.strip().lower()
    if not needle:
        return 0.0, None

    score = 0.0
    snippet: str | None = None

    if needle in file_name(path).lower():
        score += NAME_WEIGHT
    if needle in path.lower():
        score += PATH_WEIGHT
    if needle in tokenize_path(path):
        score += TOKEN_WEIGHT
    if content and needle in content.lower():
        score += CONTENT_WEIGHT
        snippet = extract_snippet(content, keyword)
    if score_boost:
        score += float(score_boost)

    return score, snippet


def build_file_urls(owner: str, repo: str, ref: str, path: str) -> tuple[str | None, str | None]:
    """Return ``(html_url, download_url)`` for a file, or Nones without a repository."""
    if not owner.strip() or not repo.strip():
        return None, None

    safe_owner = quote(owner, safe="")
    safe_repo = quote(repo, safe="")
    safe_ref = quote(ref, safe="/")
    safe_path = quote(path.lstrip("/"), safe="/")
    return (
        f"https://github.com/{safe_owner}/{safe_repo}/blob/{safe_ref}/{safe_path}",
        f"https://raw.githubusercontent.com/{safe_owner}/{safe_repo}/{safe_ref}/{safe_path}",
    )


def _hit_content(path: str, body: str | None) -> str | None:
    if not body:
        return None
    prefix = f"{path}\n"
    if body.startswith(prefix):
        return body[len(prefix) :]
    if body == path:
        return None
    return body


def rank_hits(
    branch: str,
    hits: Iterable[Mapping[str, Any]],
    filters: SearchFilters,
    *,
    owner: str = "",
    repo: str = "",
    source: SearchMode = "search-index",
) -> list[SearchResultItem]:
    """Filter and score raw hits for one branch.

    A hit is a mapping with ``path`` (or ``href``) and optionally ``body``,
    ``size``, ``binary`` and ``scoreBoost``. Duplicated paths keep the first hit.
    """
    results: list[SearchResultItem] = []
    seen: set[str] = set()

    for hit in hits:
        raw_path = hit.get("path") or hit.get("href")
        if not isinstance(raw_path, str) or not raw_path:
            logger.debug("Ignoring hit without a path on branch %s: %r", branch, hit)
            continue

        path = to_posix(raw_path).lstrip("/")
        if path in seen:
            continue

        extension = file_extension(path)
        if not filters.matches_path(path, extension):
            continue

        boost = hit.get("scoreBoost")
        score, snippet = score_entry(
            path,
            filters.keyword,
            content=_hit_content(raw_path, hit.get("body")),
            score_boost=boost if isinstance(boost, (int, float)) else None,
        )
        if score <= 0:
            continue

        seen.add(path)
        html_url, download_url = build_file_urls(owner, repo, branch, path)
        size = hit.get("size")
        binary = hit.get("binary")
        results.append(
            SearchResultItem(
                branch=branch,
                path=path,
                name=file_name(path),
                extension=extension or None,
                size=size if isinstance(size, int) else None,
                binary=binary if isinstance(binary, bool) else None,
                html_url=html_url,
                download_url=download_url,
                score=score,
                snippet=snippet,
                source=source,
            )
        )

    return results


def sort_results(
    items: Iterable[SearchResultItem], limit: int | None = None
) -> list[SearchResultItem]:
    """Order by score descending, then path and branch ascending."""
    ordered = sorted(items, key=lambda item: (-item.score, item.path, item.branch))
    if limit is not None:
        return ordered[:limit]
    return ordered
