"""Index generation gating utilities."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:  # pragma: no cover
    from branchdex.config import Settings

GenerationContext = Literal["build", "action"]


def detect_generation_context() -> GenerationContext:
    """Return ``"action"`` inside GitHub Actions, ``"build"`` otherwise."""

    return "action" if os.getenv("GITHUB_ACTIONS", "").strip().lower() == "true" else "build"


@dataclass(slots=True)
class GenerationGate:
    """Decides whether this process is the one that should build indexes."""

    enabled: bool
    mode: str
    context: GenerationContext

    @classmethod
    def from_settings(
        cls, settings: "Settings", *, context: GenerationContext | None = None
    ) -> "GenerationGate":
        """Construct gate using configuration and the detected run context."""

        return cls(
            enabled=settings.search_index_enabled,
            mode=settings.generation_mode,
            context=context or detect_generation_context(),
        )

    def should_generate(self) -> bool:
        """Return True when generation is enabled for the current context."""

        return self.enabled and self.mode != "off" and self.mode == self.context

    def skip_reason(self) -> str | None:
        """Human-readable reason generation is skipped, or None when it runs."""

        if not self.enabled:
            return "search index is disabled (set ENABLED_SEARCH_INDEX=true)"
        if self.mode == "off":
            return "generation mode is 'off'"
        if self.mode != self.context:
            return (
                f"generation mode is '{self.mode}' but running in '{self.context}' context"
            )
        return None
