import json

from chatstream.engine.normalizer import extract_delta, merge_info, normalize_event, parse_info
from chatstream.schemas.stream import ProgressEvent


class TestExtractDelta:
    def test_openai_style_choice_delta(self) -> None:
        result = json.dumps({"choices": [{"delta": {"content": "Hel"}}], "content": "ignored"})
        assert extract_delta(result) == "Hel"

    def test_choice_delta_without_content_is_empty(self) -> None:
        assert extract_delta(json.dumps({"choices": [{"delta": {"role": "assistant"}}]})) == ""

    def test_content_before_message(self) -> None:
        assert extract_delta(json.dumps({"content": "a", "message": "b"})) == "a"
        assert extract_delta(json.dumps({"message": "b"})) == "b"

    def test_json_string_value(self) -> None:
        assert extract_delta(json.dumps("quoted text")) == "quoted text"

    def test_unparsable_text_used_verbatim(self) -> None:
        assert extract_delta("plain words {not json") == "plain words {not json"

    def test_unmatched_object_used_verbatim(self) -> None:
        raw = json.dumps({"other": 1})
        assert extract_delta(raw) == raw

    def test_dict_result(self) -> None:
        assert extract_delta({"content": "direct"}) == "direct"

    def test_none_is_empty(self) -> None:
        assert extract_delta(None) == ""


class TestInfo:
    def test_parse_info_accepts_json_string_and_dict(self) -> None:
        assert parse_info('{"ephemeral": true}') == {"ephemeral": True}
        assert parse_info({"a": 1}) == {"a": 1}

    def test_parse_info_degrades_to_empty(self) -> None:
        assert parse_info("{broken") == {}
        assert parse_info("[1, 2]") == {}
        assert parse_info(42) == {}
        assert parse_info("") == {}

    def test_citations_concatenate_without_dedup(self) -> None:
        merged = merge_info({"citations": ["a"]}, {"citations": ["b", "a"]})
        assert merged["citations"] == ["a", "b", "a"]

    def test_merge_is_shallow_and_keeps_old_keys(self) -> None:
        merged = merge_info({"citations": [], "model": "x", "codeRequestId": "r1"}, {"model": "y"})
        assert merged == {"citations": [], "model": "y", "codeRequestId": "r1"}

    def test_scalar_citation_is_wrapped(self) -> None:
        assert merge_info({"citations": []}, {"citations": "only"})["citations"] == ["only"]


class TestNormalizeEvent:
    def test_error_short_circuits(self) -> None:
        normalized = normalize_event(ProgressEvent(error="upstream exploded", result="text"))
        assert normalized.error == "upstream exploded"
        assert normalized.delta is None

    def test_error_object_is_stringified(self) -> None:
        event = ProgressEvent.model_validate({"error": {"message": "bad gateway"}})
        assert normalize_event(event).error == "bad gateway"

    def test_info_sets_ephemeral_flag(self) -> None:
        event = ProgressEvent.model_validate({"data": "thinking", "info": '{"ephemeral": true}'})
        normalized = normalize_event(event, current_ephemeral=False)
        assert normalized.ephemeral is True
        assert normalized.delta == "thinking"

    def test_info_without_flag_keeps_ephemeral(self) -> None:
        event = ProgressEvent.model_validate({"data": "still thinking", "info": {"model": "m"}})
        assert normalize_event(event, current_ephemeral=True).ephemeral is True
        assert normalize_event(event, current_ephemeral=False).ephemeral is False

    def test_explicit_flag_overrides_carried_flag(self) -> None:
        event = ProgressEvent.model_validate({"data": "answer", "info": {"ephemeral": False}})
        assert normalize_event(event, current_ephemeral=True).ephemeral is False

    def test_missing_info_carries_previous_flag(self) -> None:
        event = ProgressEvent.model_validate({"data": "more thinking"})
        assert normalize_event(event, current_ephemeral=True).ephemeral is True

    def test_tool_message_extracted(self) -> None:
        info = {"toolMessage": {"type": "start", "callId": "c1"}}
        normalized = normalize_event(ProgressEvent(info=info))
        assert normalized.tool_message == {"type": "start", "callId": "c1"}
        assert normalized.delta is None

    def test_completion_flag(self) -> None:
        assert normalize_event(ProgressEvent(progress=1)).is_complete is True
        assert normalize_event(ProgressEvent(progress=0.5)).is_complete is False

    def test_result_alias_accepted(self) -> None:
        event = ProgressEvent.model_validate({"result": '{"content": "hi"}'})
        assert normalize_event(event).delta == "hi"
