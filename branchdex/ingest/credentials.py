"""Access-token discovery and authenticated remote construction."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import quote

TOKEN_ENV_PREFIXES: tuple[str, ...] = ("GITHUB_PAT", "VITE_GITHUB_PAT", "GITHUB_TOKEN")

_CREDENTIAL_IN_URL = re.compile(r"(https?://)[^/@\s]+@")


def collect_tokens(environ: Mapping[str, str]) -> list[str]:
    """Gather tokens from ``GITHUB_PAT*``/``VITE_GITHUB_PAT*``/``GITHUB_TOKEN*``.

    Variables are visited in name order so ``GITHUB_PAT1`` is tried before
    ``GITHUB_PAT2``. Blank values and duplicates are dropped.
    """
    tokens: list[str] = []
    for key in sorted(environ):
        if not key.startswith(TOKEN_ENV_PREFIXES):
            continue
        value = (environ.get(key) or "").strip()
        if value and value not in tokens:
            tokens.append(value)
    return tokens


def redact_url(url: str) -> str:
    """Hide any userinfo in ``url`` before it reaches a log line."""
    return _CREDENTIAL_IN_URL.sub(r"\1***@", url)


@dataclass(slots=True)
class CredentialResolver:
    """Supplies tokens in rotation order for one repository."""

    owner: str
    repo: str
    tokens: list[str] = field(default_factory=list)
    host: str = "github.com"

    @classmethod
    def from_environ(cls, owner: str, repo: str, environ: Mapping[str, str]) -> CredentialResolver:
        return cls(owner=owner, repo=repo, tokens=collect_tokens(environ))

    def _remote(self, token: str | None) -> str:
        owner = quote(self.owner, safe="")
        repo = quote(self.repo, safe="")
        if token is None:
            return f"https://{self.host}/{owner}/{repo}.git"
        return f"https://x-access-token:{quote(token, safe='')}@{self.host}/{owner}/{repo}.git"

    def remote_urls(self) -> list[str]:
        """Token-bearing remotes first, unauthenticated remote last."""
        return [self._remote(token) for token in self.tokens] + [self._remote(None)]

    def auth_headers(self) -> list[dict[str, str]]:
        """API auth header sets in the same order, ending with no auth."""
        return [{"Authorization": f"token {token}"} for token in self.tokens] + [{}]
