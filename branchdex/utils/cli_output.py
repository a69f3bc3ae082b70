"""CLI JSON output wrapper.

Every ``--json`` command emits one object stamped with ``schema_id``,
``schema_version``, ``producer`` and ``produced_at`` so downstream scripts can
detect format changes.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any


def json_response(
    schema_id: str,
    schema_version: int,
    **data: Any,
) -> str:
    """Create schema-wrapped JSON response for CLI output.

    Args:
        schema_id: Identifier for the output type (e.g., "search_results").
        schema_version: Integer version for backward compatibility.
        **data: Payload data to include in the response.

    Returns:
        JSON string with schema metadata and payload.

    Example:
        >>> json_response("search_results", 1, keyword="readme", items=[])
        {
          "schema_id": "search_results",
          "schema_version": 1,
          "producer": "branchdex-0.1.0",
          "produced_at": "2026-01-12T10:30:00+00:00",
          "keyword": "readme",
          "items": []
        }
    """
    from branchdex import __version__

    wrapped = {
        "schema_id": schema_id,
        "schema_version": schema_version,
        "producer": f"branchdex-{__version__}",
        "produced_at": datetime.now(timezone.utc).isoformat(),
        **data,
    }
    return json.dumps(wrapped, indent=2, default=str)
