from chatstream.engine.tool_calls import DEFAULT_ICON, DEFAULT_USER_MESSAGE, ToolCallTracker
from chatstream.schemas.stream import ToolMessage


def test_start_then_finish_success() -> None:
    tracker = ToolCallTracker()

    started = tracker.apply({"type": "start", "callId": "c1", "icon": "🔎", "userMessage": "Searching"})
    assert started is True
    assert tracker.get("c1").status == "thinking"

    assert tracker.apply({"type": "finish", "callId": "c1", "success": True}) is False
    record = tracker.get("c1")
    assert record.status == "completed"
    assert record.icon == "🔎"
    assert record.user_message == "Searching"


def test_finish_failure_records_error() -> None:
    tracker = ToolCallTracker()
    tracker.start("c1")
    tracker.finish("c1", success=False, error="quota exceeded")

    record = tracker.get("c1")
    assert record.status == "failed"
    assert record.error == "quota exceeded"


def test_start_uses_defaults() -> None:
    tracker = ToolCallTracker()
    tracker.apply(ToolMessage(type="start", call_id="c1"))

    record = tracker.get("c1")
    assert record.icon == DEFAULT_ICON
    assert record.user_message == DEFAULT_USER_MESSAGE


def test_finish_for_unknown_call_is_ignored() -> None:
    tracker = ToolCallTracker()
    assert tracker.finish("missing", success=True) is None
    assert tracker.apply({"type": "finish", "callId": "missing", "success": True}) is False
    assert len(tracker) == 0


def test_malformed_messages_are_ignored() -> None:
    tracker = ToolCallTracker()
    assert tracker.apply({"type": "explode", "callId": "c1"}) is False
    assert tracker.apply({"type": "start", "callId": ""}) is False
    assert len(tracker) == 0


def test_insertion_order_and_clear() -> None:
    tracker = ToolCallTracker()
    tracker.start("a", user_message="first")
    tracker.start("b", user_message="second")
    tracker.finish("a", success=True)

    assert [r.user_message for r in tracker.as_list()] == ["first", "second"]
    assert "a" in tracker

    tracker.clear()
    assert tracker.as_list() == []
