from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from chatstream.core.errors import IllegalTransitionError
from chatstream.engine.scheduler import Chunk
from chatstream.engine.thinking import ThinkingClock
from chatstream.engine.tool_calls import ToolCallTracker


class SessionStatus(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.IDLE: frozenset({SessionStatus.STREAMING}),
    SessionStatus.STREAMING: frozenset({SessionStatus.FINALIZING, SessionStatus.FAILED, SessionStatus.IDLE}),
    SessionStatus.FINALIZING: frozenset({SessionStatus.DONE}),
    SessionStatus.DONE: frozenset({SessionStatus.STREAMING}),
    SessionStatus.FAILED: frozenset({SessionStatus.STREAMING}),
}


@dataclass
class StreamSession:
    """Mutable state of one response stream, owned by a single engine."""

    request_id: str | None = None
    chat_id: str = ""
    initial_label: str = ""
    status: SessionStatus = SessionStatus.IDLE
    persistent_text: str = ""
    ephemeral_text: str = ""
    has_persistent: bool = False
    result_observed: bool = False
    is_chat_loading: bool = False
    accumulated_info: dict[str, Any] = field(default_factory=lambda: {"citations": []})
    tool_calls: ToolCallTracker = field(default_factory=ToolCallTracker)
    thinking: ThinkingClock = field(default_factory=ThinkingClock)
    chunk_queue: deque[Chunk] = field(default_factory=deque)

    @classmethod
    def begin(
        cls,
        request_id: str,
        chat_id: str = "",
        initial_label: str = "",
        clock: Callable[[], float] = time.monotonic,
    ) -> "StreamSession":
        session = cls(
            request_id=request_id,
            chat_id=chat_id,
            initial_label=initial_label,
            thinking=ThinkingClock(clock),
            is_chat_loading=True,
        )
        session.transition(SessionStatus.STREAMING)
        return session

    @property
    def is_active(self) -> bool:
        return self.status in (SessionStatus.STREAMING, SessionStatus.FINALIZING)

    @property
    def is_completing(self) -> bool:
        return self.status in (SessionStatus.FINALIZING, SessionStatus.DONE)

    @property
    def is_thinking(self) -> bool:
        return self.thinking.is_thinking

    @property
    def citations(self) -> list[Any]:
        return self.accumulated_info.get("citations") or []

    def has_content(self) -> bool:
        return bool(
            self.persistent_text
            or self.ephemeral_text
            or self.chunk_queue
            or len(self.tool_calls) > 0
        )

    def can_transition(self, target: SessionStatus) -> bool:
        return target in _TRANSITIONS[self.status]

    def transition(self, target: SessionStatus) -> None:
        if not self.can_transition(target):
            raise IllegalTransitionError(
                f"Cannot move session from {self.status.value} to {target.value}",
                request_id=self.request_id,
            )
        self.status = target

    def try_transition(self, target: SessionStatus) -> bool:
        if not self.can_transition(target):
            return False
        self.status = target
        return True

    def clear_buffers(self) -> None:
        """Drop all accumulated content; status is left to the caller."""
        self.persistent_text = ""
        self.ephemeral_text = ""
        self.has_persistent = False
        self.result_observed = False
        self.accumulated_info = {"citations": []}
        self.tool_calls.clear()
        self.thinking.reset()
        self.chunk_queue.clear()
