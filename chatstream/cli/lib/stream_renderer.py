"""Terminal renderer for live stream snapshots.

Prints only what changed since the previous snapshot, so it can be driven
straight from the engine's update listener.
"""

from __future__ import annotations

import json

from chatstream.core.errors import StreamError
from chatstream.schemas.stream import FinalMessage, StreamSnapshot, ToolCallRecord
from chatstream.cli.lib.safe_output import emoji, safe_print, safe_print_err


class StreamRenderer:
    """Render stream snapshots incrementally with stable block structure."""

    _STATUS_MARK = {
        "thinking": emoji("⏳", "[RUNNING]"),
        "completed": emoji("✅", "[DONE]"),
        "failed": emoji("❌", "[FAILED]"),
    }

    def __init__(self, show_thinking: bool = True) -> None:
        self.show_thinking = show_thinking
        self._persistent_len = 0
        self._ephemeral_len = 0
        self._tool_states: dict[int, str] = {}
        self._block: str | None = None

    def _enter_block(self, block: str) -> None:
        if self._block == block:
            return
        if self._block is not None:
            safe_print("")
        if block == "thinking":
            safe_print(f"{emoji('💭', '[THINKING]')} ", end="", flush=True)
        self._block = block

    def render_label(self, label: str) -> None:
        if label:
            safe_print(f"{emoji('🔄', '[LOADING]')} {label}")

    def render_tool_call(self, record: ToolCallRecord) -> None:
        mark = self._STATUS_MARK.get(record.status, "")
        line = f"{record.icon} {record.user_message} {mark}".rstrip()
        if record.error:
            line += f" ({record.error})"
        self._enter_block("tools")
        safe_print(line)

    def render(self, snapshot: StreamSnapshot) -> None:
        for index, record in enumerate(snapshot.tool_calls):
            if self._tool_states.get(index) != record.status:
                self._tool_states[index] = record.status
                self.render_tool_call(record)

        if self.show_thinking and len(snapshot.ephemeral_content) > self._ephemeral_len:
            self._enter_block("thinking")
            safe_print(snapshot.ephemeral_content[self._ephemeral_len :], end="", flush=True)
            self._ephemeral_len = len(snapshot.ephemeral_content)

        if len(snapshot.streaming_content) > self._persistent_len:
            self._enter_block("answer")
            safe_print(snapshot.streaming_content[self._persistent_len :], end="", flush=True)
            self._persistent_len = len(snapshot.streaming_content)

    def render_final(self, message: FinalMessage, as_json: bool = False) -> None:
        if as_json:
            safe_print(json.dumps(message.to_record(), ensure_ascii=False, indent=2))
            return

        safe_print("\n" + "-" * 60)
        if message.thinking_duration:
            safe_print(f"{emoji('💭', '[THINKING]')} Thought for {message.thinking_duration}s")
        citations = json.loads(message.tool).get("citations") or []
        if citations:
            safe_print("\n[Citations]")
            for citation in citations[:10]:
                if isinstance(citation, dict):
                    title = citation.get("title") or citation.get("url") or ""
                    url = citation.get("url", "")
                    safe_print(f"  - {title}")
                    if url and url != title:
                        safe_print(f"    {url}")
                else:
                    safe_print(f"  - {citation}")
        safe_print("-" * 60)

    def render_cancelled(self) -> None:
        safe_print(f"\n{emoji('⏹️', '[STOPPED]')} Stopped")

    def render_error(self, error: StreamError) -> None:
        safe_print_err(f"\n{error.user_friendly_message()}")
