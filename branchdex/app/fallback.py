"""Search mode selection between the static index and the live fallback.

States:
- index-disabled: feature flag off
- index-error: the last manifest fetch failed
- index-not-ready: no manifest has been loaded yet
- branch-not-indexed: none of the requested branches are in the manifest
- no-fallback-needed: the index can serve the request

Only ``no-fallback-needed`` selects the index; every other state selects the
live fallback and is reported as the fallback reason.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal, cast

from branchdex.index.models import FallbackReason, IndexStatus, SearchMode

logger = logging.getLogger(__name__)

IndexState = Literal[
    "index-disabled",
    "index-not-ready",
    "index-error",
    "branch-not-indexed",
    "no-fallback-needed",
]


@dataclass(frozen=True, slots=True)
class ModeDecision:
    """Outcome of one mode evaluation."""

    state: IndexState
    mode: SearchMode
    branches: tuple[str, ...] = ()
    """Requested branches the index can serve (empty unless usable)"""

    @property
    def fallback_reason(self) -> FallbackReason | None:
        if self.state == "no-fallback-needed":
            return None
        return cast(FallbackReason, self.state)


def evaluate_state(
    *, enabled: bool, status: IndexStatus, requested_branches: Sequence[str]
) -> tuple[IndexState, tuple[str, ...]]:
    """Apply the transition rule in priority order."""
    if not enabled:
        return "index-disabled", ()
    if status.error is not None:
        return "index-error", ()
    if not status.ready:
        return "index-not-ready", ()

    indexed = set(status.indexed_branches)
    usable = tuple(branch for branch in requested_branches if branch in indexed)
    if not usable:
        return "branch-not-indexed", ()
    return "no-fallback-needed", usable


@dataclass
class FallbackController:
    """Tracks the current mode and logs transitions between states."""

    state: IndexState | None = field(default=None, init=False)
    """Most recent state, None before the first decision"""

    transitions: int = field(default=0, init=False)
    """Number of state changes observed"""

    def decide(
        self,
        *,
        enabled: bool,
        status: IndexStatus,
        requested_branches: Sequence[str],
        preferred_mode: SearchMode = "search-index",
    ) -> ModeDecision:
        """Choose the search path for one request.

        Args:
            enabled: Feature flag
            status: Current index status from the manifest fetch cycle
            requested_branches: Normalized branches the caller wants searched
            preferred_mode: ``github-api`` skips the index without a fallback reason

        Returns:
            ModeDecision with the effective mode and the state that produced it
        """
        if preferred_mode == "github-api":
            return ModeDecision(state="no-fallback-needed", mode="github-api")

        state, usable = evaluate_state(
            enabled=enabled, status=status, requested_branches=requested_branches
        )
        self._record(state)
        mode: SearchMode = "search-index" if state == "no-fallback-needed" else "github-api"
        return ModeDecision(state=state, mode=mode, branches=usable)

    def downgrade(self, reason: FallbackReason) -> ModeDecision:
        """Force the live fallback after the index path failed mid-request."""
        self._record(reason)
        return ModeDecision(state=reason, mode="github-api")

    def _record(self, state: IndexState) -> None:
        if state != self.state:
            logger.info("Search mode state %s -> %s", self.state or "initial", state)
            self.state = state
            self.transitions += 1

    def get_state(self) -> dict[str, str | int | None]:
        """Current controller state for status output."""
        return {"state": self.state, "transitions": self.transitions}
