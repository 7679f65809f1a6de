from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from chatstream.schemas.stream import FinalMessage, ProgressEvent


class ChatMessageCreateRequest(BaseModel):
    message: dict[str, Any]
    is_streaming: bool | None = None


class FinalMessageSaveRequest(BaseModel):
    message: FinalMessage
    is_chat_loading: bool = False


class ChatMessagesResponse(BaseModel):
    chat_id: str
    is_chat_loading: bool = False
    messages: list[dict[str, Any]] = Field(default_factory=list)


class ScriptedEvent(ProgressEvent):
    """A progress event replayed by the relay after ``delay_ms``."""

    delay_ms: int = Field(default=0, ge=0)


class RelayJobCreateRequest(BaseModel):
    request_id: str | None = None
    events: list[ScriptedEvent] = Field(default_factory=list)
    interval_ms: int = Field(default=0, ge=0)


RelayJobStatus = Literal["pending", "running", "completed", "cancelled"]


class RelayJobResponse(BaseModel):
    request_id: str
    status: RelayJobStatus
    event_count: int
    created_at: str
