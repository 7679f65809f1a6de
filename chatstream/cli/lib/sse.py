"""Server-sent event line parsing."""

import json
from typing import Any, Dict, Optional


def parse_sse_line(line: str) -> Optional[Dict[str, Any]]:
    """
    Parse a single SSE line.

    Args:
        line: Raw SSE line (e.g., "data: {...}")

    Returns:
        Parsed event dict or None if not a JSON object data line
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")

    if not line.strip():
        return None

    if not line.startswith("data:"):
        return None

    json_str = line[5:].strip()
    # Normalize potential surrogate chars from terminal/stream decoding.
    json_str = json_str.encode("utf-8", errors="replace").decode("utf-8", errors="replace")

    try:
        event = json.loads(json_str)
    except (json.JSONDecodeError, UnicodeEncodeError, ValueError):
        return None

    return event if isinstance(event, dict) else None
