"""End-to-end tests of the CLI commands against the relay app served in-process."""

import asyncio
import json
import threading

import httpx
import pytest
import typer
from typer.testing import CliRunner

from chatstream.cli.client import AsyncAPIClient
from chatstream.cli.commands import messages as messages_cmd
from chatstream.cli.commands.messages import format_message_line
from chatstream.cli.commands.watch import _ask_stop, _load_script, run_watch
from chatstream.cli.config import CLIConfig
from chatstream.cli.main import app as cli_app
from chatstream.core.config import EngineConfig
from chatstream.main import app as relay_app
from chatstream.schemas.chat import ScriptedEvent
from chatstream.services import message_store
from chatstream.services.request_relay import relay

FAST = EngineConfig(idle_timeout=5, min_dispatch_interval=0, thinking_tick=0.05)

runner = CliRunner()


def _asgi_client() -> AsyncAPIClient:
    return AsyncAPIClient(base_url="http://relay.test", transport=httpx.ASGITransport(app=relay_app))


def _watch(request_id: str, chat_id: str) -> int:
    async def scenario() -> int:
        client = _asgi_client()
        try:
            return await run_watch(CLIConfig(), FAST, request_id, chat_id, label="Thinking", client=client)
        finally:
            await client.close()

    return asyncio.run(scenario())


class TestWatch:
    def test_watch_saves_answer_over_placeholder(self, capsys) -> None:
        relay.register(
            [
                ScriptedEvent.model_validate({"data": "Let me think", "info": {"ephemeral": True}}),
                ScriptedEvent.model_validate({"data": "The answer is 42.", "info": {"ephemeral": False, "citations": ["ref"]}}),
                ScriptedEvent.model_validate({"progress": 1}),
            ],
            request_id="req_w",
        )
        message_store.append_message("chat_w", {"payload": "question", "direction": "outgoing"})
        message_store.append_message("chat_w", {"payload": ""}, is_streaming=True)

        assert _watch("req_w", "chat_w") == 0

        saved = message_store.list_messages("chat_w")
        assert len(saved) == 2
        assert saved[1]["payload"] == "The answer is 42."
        assert saved[1]["ephemeralContent"] == "Let me think"
        assert saved[1]["isStreaming"] is False
        assert json.loads(saved[1]["tool"])["citations"] == ["ref"]
        assert message_store.get_chat("chat_w")["is_chat_loading"] is False

        out = capsys.readouterr().out
        assert "Thinking" in out
        assert "The answer is 42." in out

    def test_watch_reports_stream_error(self, capsys) -> None:
        relay.register(
            [
                ScriptedEvent.model_validate({"data": "partial"}),
                ScriptedEvent.model_validate({"error": "model overloaded"}),
            ],
            request_id="req_e",
        )
        message_store.append_message("chat_e", {"payload": ""}, is_streaming=True)

        assert _watch("req_e", "chat_e") == 1
        saved = message_store.list_messages("chat_e")
        assert [m["isStreaming"] for m in saved] == [True]
        assert message_store.get_chat("chat_e")["is_chat_loading"] is False
        assert "model overloaded" in capsys.readouterr().err

    def test_watch_unknown_request_fails(self) -> None:
        assert _watch("req_missing", "chat_m") == 1
        assert message_store.list_messages("chat_m") == []


class TestReplayScript:
    def test_list_script(self, tmp_path) -> None:
        path = tmp_path / "script.json"
        path.write_text(json.dumps([{"data": "hi"}, {"progress": 1}]), encoding="utf-8")
        assert _load_script(path) == {"events": [{"data": "hi"}, {"progress": 1}]}

    def test_object_script(self, tmp_path) -> None:
        path = tmp_path / "script.json"
        path.write_text(json.dumps({"events": [], "interval_ms": 50}), encoding="utf-8")
        assert _load_script(path)["interval_ms"] == 50

    def test_invalid_script(self, tmp_path) -> None:
        path = tmp_path / "script.json"
        path.write_text(json.dumps({"nope": 1}), encoding="utf-8")
        with pytest.raises(ValueError):
            _load_script(path)

    def test_replay_rejects_invalid_script(self, tmp_path) -> None:
        path = tmp_path / "script.json"
        path.write_text("{not json", encoding="utf-8")
        result = runner.invoke(cli_app, ["replay", str(path), "--chat-id", "c1"])
        assert result.exit_code == 2


class _FakeAPIClient:
    body: dict = {}

    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return None

    def get(self, path: str, **kwargs) -> dict:
        return self.body


class TestMessagesCommand:
    def test_text_listing(self, monkeypatch) -> None:
        _FakeAPIClient.body = {
            "chat_id": "chat_1",
            "is_chat_loading": True,
            "messages": [
                {"payload": "hi", "direction": "outgoing", "sentTime": "2026-01-01T10:00:00Z"},
                {"payload": "", "sender": "assistant", "isStreaming": True},
            ],
        }
        monkeypatch.setattr(messages_cmd, "APIClient", _FakeAPIClient)

        result = runner.invoke(cli_app, ["messages", "chat_1"])

        assert result.exit_code == 0
        assert "outgoing: hi" in result.output
        assert "still being generated" in result.output

    def test_json_listing(self, monkeypatch) -> None:
        _FakeAPIClient.body = {"chat_id": "chat_1", "is_chat_loading": False, "messages": []}
        monkeypatch.setattr(messages_cmd, "APIClient", _FakeAPIClient)

        result = runner.invoke(cli_app, ["--json", "messages", "chat_1"])

        assert result.exit_code == 0
        assert json.loads(result.output)["chat_id"] == "chat_1"

    def test_format_message_line(self) -> None:
        line = format_message_line(
            {
                "payload": "The answer\nis 42",
                "sender": "assistant",
                "sentTime": "2026-01-01T10:00:00Z",
                "thinkingDuration": 3,
                "toolCalls": [{"status": "completed"}],
            }
        )
        assert line.startswith("[2026-01-01 10:00] assistant: The answer is 42")
        assert "thought 3s" in line
        assert "1 tool call(s)" in line


class TestStopPrompt:
    def test_prompt_does_not_block_the_event_loop(self, monkeypatch) -> None:
        answered = threading.Event()
        seen = {}

        def fake_confirm(text: str, default: bool = False) -> bool:
            seen["thread"] = threading.current_thread()
            answered.wait(timeout=2)
            return True

        monkeypatch.setattr(typer, "confirm", fake_confirm)

        async def scenario():
            prompt = asyncio.ensure_future(_ask_stop())
            ticks = 0
            for _ in range(5):
                await asyncio.sleep(0.01)
                ticks += 1
            answered.set()
            return ticks, await prompt

        ticks, answer = asyncio.run(scenario())
        assert ticks == 5
        assert answer is True
        assert seen["thread"] is not threading.main_thread()
