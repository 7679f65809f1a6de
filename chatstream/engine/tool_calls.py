from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from chatstream.schemas.stream import ToolCallRecord, ToolMessage

logger = logging.getLogger("chatstream.tool_calls")

DEFAULT_ICON = "🛠️"
DEFAULT_USER_MESSAGE = "Running tool..."


class ToolCallTracker:
    """Lifecycle of in-flight tool invocations, keyed by call id."""

    def __init__(self) -> None:
        self._calls: dict[str, ToolCallRecord] = {}

    def __len__(self) -> int:
        return len(self._calls)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._calls

    def get(self, call_id: str) -> ToolCallRecord | None:
        return self._calls.get(call_id)

    def start(self, call_id: str, icon: str | None = None, user_message: str | None = None) -> ToolCallRecord:
        record = ToolCallRecord(
            icon=icon or DEFAULT_ICON,
            user_message=user_message or DEFAULT_USER_MESSAGE,
            status="thinking",
        )
        self._calls[call_id] = record
        return record

    def finish(self, call_id: str, success: bool, error: str | None = None) -> ToolCallRecord | None:
        existing = self._calls.get(call_id)
        if existing is None:
            logger.debug("Ignoring finish for unknown tool call %s", call_id)
            return None
        record = existing.model_copy(
            update={"status": "completed" if success else "failed", "error": error or None}
        )
        self._calls[call_id] = record
        return record

    def apply(self, message: ToolMessage | dict[str, Any]) -> bool:
        """
        Apply one ``toolMessage``. Returns True when it was a start, which the
        caller treats as the beginning of a thinking period.
        """
        if isinstance(message, dict):
            try:
                message = ToolMessage.model_validate(message)
            except ValidationError as exc:
                logger.warning("Ignoring malformed toolMessage: %s", exc.errors()[:1])
                return False

        if not message.call_id:
            return False

        if message.type == "start":
            self.start(message.call_id, message.icon, message.user_message)
            return True

        self.finish(message.call_id, bool(message.success), message.error)
        return False

    def as_list(self) -> list[ToolCallRecord]:
        return list(self._calls.values())

    def clear(self) -> None:
        self._calls.clear()
