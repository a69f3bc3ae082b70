"""GitHub Git Trees API adapter implementing TreeListingPort."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import requests

from branchdex.ingest.credentials import CredentialResolver

if TYPE_CHECKING:  # pragma: no cover
    from branchdex.config import Settings

logger = logging.getLogger(__name__)


class GitHubTreeClient:
    """Lists a branch's files with one recursive tree request.

    Auth header sets are tried in order; a 401/403 moves on to the next one,
    ending with an unauthenticated request.
    """

    def __init__(
        self,
        *,
        owner: str,
        repo: str,
        api_base: str = "https://api.github.com",
        auth_headers: list[dict[str, str]] | None = None,
        session: requests.Session | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.owner = owner
        self.repo = repo
        self.api_base = api_base.rstrip("/")
        self.auth_headers = auth_headers or [{}]
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(
        cls, settings: "Settings", *, session: requests.Session | None = None
    ) -> "GitHubTreeClient":
        resolver = CredentialResolver(
            owner=settings.repo_owner, repo=settings.repo_name, tokens=settings.get_tokens()
        )
        return cls(
            owner=settings.repo_owner,
            repo=settings.repo_name,
            api_base=settings.github_api_base,
            auth_headers=resolver.auth_headers(),
            session=session,
            timeout=settings.request_timeout,
        )

    def tree_url(self, branch: str) -> str:
        owner = quote(self.owner, safe="")
        repo = quote(self.repo, safe="")
        return f"{self.api_base}/repos/{owner}/{repo}/git/trees/{quote(branch, safe='')}"

    def list_tree(self, branch: str) -> list[dict[str, Any]]:
        """Return blob entries of ``branch``.

        Raises:
            requests.RequestException: On transport errors or a non-auth HTTP error
            ValueError: If the response is not a tree document
        """
        url = self.tree_url(branch)
        response: requests.Response | None = None

        for attempt, headers in enumerate(self.auth_headers, start=1):
            response = self.session.get(
                url,
                params={"recursive": "1"},
                headers={"Accept": "application/vnd.github+json", **headers},
                timeout=self.timeout,
            )
            if response.status_code in (401, 403) and attempt < len(self.auth_headers):
                logger.warning(
                    "Tree request for %s rejected with %s; trying next credential",
                    branch,
                    response.status_code,
                )
                continue
            break

        if response is None:
            raise ValueError("No credentials configured for tree request")
        response.raise_for_status()

        data = response.json()
        if not isinstance(data, dict) or not isinstance(data.get("tree"), list):
            raise ValueError(f"Unexpected tree response for branch {branch}")
        if data.get("truncated"):
            logger.warning("Tree listing for %s was truncated by the API", branch)

        return [
            entry
            for entry in data["tree"]
            if isinstance(entry, dict) and entry.get("type") == "blob"
        ]
