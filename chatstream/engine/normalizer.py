"""
Event normalizer and content classifier.

Turns one raw progress event into:
  - the transport error it carries, if any
  - its parsed ``info`` sideband (tolerant: bad payloads become ``{}``)
  - a ``toolMessage`` for the tool-call tracker
  - the delta text to append, tagged ephemeral or persistent
  - whether the remote job reported completion
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from chatstream.core.errors import ParseError
from chatstream.schemas.stream import ProgressEvent

logger = logging.getLogger("chatstream.normalizer")


@dataclass
class NormalizedEvent:
    error: str | None = None
    info: dict[str, Any] | None = None
    tool_message: dict[str, Any] | None = None
    delta: str | None = None
    ephemeral: bool = False
    is_complete: bool = False


def _report_parse_error(what: str, raw: Any, exc: Exception | None = None) -> None:
    err = ParseError(f"Malformed {what} payload: {exc or type(raw).__name__}")
    logger.warning("%s (raw=%.120r)", err.message, raw)


def parse_info(raw: Any) -> dict[str, Any]:
    """Parse an ``info`` sideband. Anything but a JSON object degrades to {}."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, ValueError) as exc:
            _report_parse_error("info", raw, exc)
            return {}
        if isinstance(parsed, dict):
            return parsed
    _report_parse_error("info", raw)
    return {}


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def merge_info(accumulated: dict[str, Any], new: dict[str, Any]) -> dict[str, Any]:
    """
    Shallow-merge ``new`` over ``accumulated``. Citations are concatenated in
    arrival order and never deduplicated.
    """
    merged = {**accumulated, **new}
    merged["citations"] = _as_list(accumulated.get("citations")) + _as_list(new.get("citations"))
    return merged


def _pick_text(parsed: Any) -> str | None:
    if isinstance(parsed, str):
        return parsed
    if not isinstance(parsed, dict):
        return None

    choices = parsed.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        delta = choices[0].get("delta")
        if isinstance(delta, dict):
            content = delta.get("content")
            return content if isinstance(content, str) else ""

    for key in ("content", "message"):
        value = parsed.get(key)
        if isinstance(value, str):
            return value
    return None


def extract_delta(result: Any) -> str:
    """
    Extract the delta text carried by a ``result`` value.

    Priority: a JSON string value, then ``choices[0].delta.content``, then
    ``content``, then ``message``. Unparsable or unmatched payloads are used
    verbatim.
    """
    if result is None:
        return ""
    if isinstance(result, str):
        raw = result
        try:
            parsed = json.loads(result)
        except (json.JSONDecodeError, ValueError):
            return raw
    else:
        parsed = result
        raw = json.dumps(result, ensure_ascii=False)

    text = _pick_text(parsed)
    return raw if text is None else text


def normalize_event(event: ProgressEvent, current_ephemeral: bool = False) -> NormalizedEvent:
    """
    Normalize one event. ``current_ephemeral`` is the flag accumulated so far;
    it only changes when an event's ``info`` carries an ``ephemeral`` key.
    """
    if event.error:
        return NormalizedEvent(error=event.error)

    normalized = NormalizedEvent(ephemeral=current_ephemeral, is_complete=event.is_complete)

    if event.info is not None:
        info = parse_info(event.info)
        normalized.info = info
        normalized.ephemeral = bool(info.get("ephemeral", current_ephemeral))
        tool_message = info.get("toolMessage")
        if isinstance(tool_message, dict):
            normalized.tool_message = tool_message
        elif tool_message is not None:
            _report_parse_error("toolMessage", tool_message)

    if event.result is not None and event.result != "":
        normalized.delta = extract_delta(event.result)

    return normalized
