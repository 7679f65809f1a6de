from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProgressEvent(BaseModel):
    """One partial-progress push event for a request id."""

    progress: float | None = None
    result: Any = Field(
        default=None,
        validation_alias=AliasChoices("data", "result"),
        serialization_alias="data",
    )
    info: Any = None
    error: str | None = None

    @field_validator("error", mode="before")
    @classmethod
    def _stringify_error(cls, value: Any) -> str | None:
        if value is None or value == "":
            return None
        if isinstance(value, dict):
            return str(value.get("message") or value)
        return str(value)

    @property
    def is_complete(self) -> bool:
        return self.progress == 1


class ToolMessage(_CamelModel):
    type: Literal["start", "finish"]
    call_id: str
    icon: str | None = None
    user_message: str | None = None
    success: bool | None = None
    error: str | None = None


ToolCallStatus = Literal["thinking", "completed", "failed"]


class ToolCallRecord(_CamelModel):
    icon: str
    user_message: str
    status: ToolCallStatus = "thinking"
    error: str | None = None


class FinalMessage(_CamelModel):
    """The record persisted into chat history once a response is complete."""

    payload: str
    tool: str
    ephemeral_content: str | None = None
    tool_calls: list[ToolCallRecord] | None = None
    thinking_duration: int = 0
    is_streaming: bool = False
    sent_time: str
    sender: str = "assistant"
    direction: Literal["incoming", "outgoing"] = "incoming"
    position: str = "single"
    entity_id: str = ""

    def to_record(self) -> dict[str, Any]:
        """Wire form: camelCase keys, unset ephemeral content omitted."""
        record = self.model_dump(by_alias=True, mode="json")
        if self.ephemeral_content is None:
            record.pop("ephemeralContent", None)
        return record


class StreamSnapshot(BaseModel):
    """Live readouts exposed to the hosting UI."""

    request_id: str | None = None
    status: str = "idle"
    initial_label: str = ""
    is_streaming: bool = False
    is_thinking: bool = False
    is_chat_loading: bool = False
    streaming_content: str = ""
    ephemeral_content: str = ""
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)
    thinking_duration: int = 0
    citations: list[Any] = Field(default_factory=list)
