"""
Thinking Monitor - Bounded Serialization
=========================================

Turns opaque tool payloads into bounded text before they are stored.
Nothing in here raises: a payload that cannot be represented as JSON
becomes a fixed sentinel so one bad event never blocks the next.
"""

import json
from typing import Any, Optional

from thinking_monitor.core.config import settings


TRUNCATION_MARKER = "... [truncated]"
UNSTRINGIFIABLE = "[unstringifiable object]"


def truncate_payload(content: Optional[str], max_size: Optional[int] = None) -> Optional[str]:
    """
    Truncate a string to the maximum payload size.

    Content at or below the limit is returned unmodified; longer content
    keeps its first ``max_size`` characters followed by the marker.
    """
    if not content:
        return content

    limit = settings.MAX_PAYLOAD_SIZE if max_size is None else max_size
    if len(content) > limit:
        return content[:limit] + TRUNCATION_MARKER
    return content


def safe_stringify(obj: Any, max_length: Optional[int] = None) -> str:
    """
    Serialize any value to compact JSON, bounded to ``max_length``.

    Cyclic or otherwise unserialisable values yield ``UNSTRINGIFIABLE``.
    """
    try:
        text = json.dumps(obj, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError, RecursionError):
        return UNSTRINGIFIABLE

    return truncate_payload(text, max_length)  # type: ignore[return-value]


def bounded_text(value: Any, max_length: Optional[int] = None) -> Optional[str]:
    """Strings are truncated as-is; anything else goes through safe_stringify."""
    if value is None:
        return None
    if isinstance(value, str):
        return truncate_payload(value, max_length)
    return safe_stringify(value, max_length)
