from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Protocol

from chatstream.engine.session import StreamSession
from chatstream.schemas.stream import FinalMessage


class MessagePersister(Protocol):
    """Saves a finished message into the chat's history."""

    async def save_final_message(self, chat_id: str, message: FinalMessage, is_chat_loading: bool) -> Any:
        ...

    async def clear_loading(self, chat_id: str) -> Any:
        """Turn the chat's loading indicator off when nothing will be saved."""
        ...


def _now_utc() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def serialize_info(accumulated_info: dict[str, Any]) -> str:
    info = dict(accumulated_info)
    info["citations"] = list(info.get("citations") or [])
    return json.dumps(info, ensure_ascii=False, default=str)


def keeps_chat_loading(session: StreamSession) -> bool:
    """A pending code request keeps the chat's loading indicator on after save."""
    return bool(session.accumulated_info.get("codeRequestId"))


def build_final_message(
    session: StreamSession,
    sender: str = "assistant",
    entity_id: str = "",
    sent_time: str | None = None,
) -> FinalMessage | None:
    """
    Compose the record to persist for a drained session, or None when the
    session produced nothing worth saving.
    """
    tool_calls = session.tool_calls.as_list()
    if not (session.persistent_text or session.ephemeral_text or tool_calls):
        return None

    payload = session.persistent_text if session.has_persistent else session.ephemeral_text
    has_ephemeral = bool(session.ephemeral_text) or bool(tool_calls)

    return FinalMessage(
        payload=payload,
        tool=serialize_info(session.accumulated_info),
        ephemeral_content=session.ephemeral_text if has_ephemeral else None,
        tool_calls=tool_calls or None,
        thinking_duration=session.thinking.final_seconds(),
        is_streaming=False,
        sent_time=sent_time or _now_utc(),
        sender=sender,
        direction="incoming",
        position="single",
        entity_id=entity_id,
    )
