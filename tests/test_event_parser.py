"""Tests for wire event classification."""

from __future__ import annotations

from kiro_stream.llm.event_parser import RULES, classify, parse_events
from kiro_stream.types import (
    ContentEvent,
    ContextUsageEvent,
    FollowupPromptEvent,
    ToolUseEvent,
    ToolUseInputEvent,
    ToolUseStopEvent,
    UsageEvent,
)


# ---------------------------------------------------------------------------
# classify()
# ---------------------------------------------------------------------------

class TestClassify:
    def test_content(self):
        assert classify({"content": "hi"}) == ContentEvent("hi")

    def test_tool_use_with_string_input(self):
        event = classify({"name": "bash", "toolUseId": "tc1", "input": '{"cmd":"ls"}', "stop": True})
        assert event == ToolUseEvent(name="bash", tool_use_id="tc1", input='{"cmd":"ls"}', stop=True)

    def test_tool_use_empty_object_input_becomes_empty_string(self):
        event = classify({"name": "write", "toolUseId": "tc1", "input": {}})
        assert isinstance(event, ToolUseEvent)
        assert event.input == ""

    def test_tool_use_object_input_serialized(self):
        event = classify({"name": "write", "toolUseId": "tc1", "input": {"path": "a"}})
        assert isinstance(event, ToolUseEvent)
        assert event.input == '{"path":"a"}'

    def test_tool_use_list_input_serialized(self):
        event = classify({"name": "batch", "toolUseId": "tc1", "input": [1, "a"]})
        assert isinstance(event, ToolUseEvent)
        assert event.input == '[1,"a"]'

    def test_tool_use_empty_list_input_becomes_empty_string(self):
        event = classify({"name": "batch", "toolUseId": "tc1", "input": []})
        assert isinstance(event, ToolUseEvent)
        assert event.input == ""

    def test_tool_use_without_input(self):
        event = classify({"name": "write", "toolUseId": "tc1"})
        assert event == ToolUseEvent(name="write", tool_use_id="tc1", input="", stop=None)

    def test_tool_use_input_fragment(self):
        assert classify({"input": '{"pa'}) == ToolUseInputEvent('{"pa')

    def test_tool_use_input_object_serialized(self):
        assert classify({"input": {"a": 1}}) == ToolUseInputEvent('{"a":1}')

    def test_tool_use_id_with_stop_but_no_name_is_stop(self):
        assert classify({"toolUseId": "tc1", "stop": True}) == ToolUseStopEvent(True)

    def test_stop_with_context_usage_is_context_usage(self):
        event = classify({"stop": True, "contextUsagePercentage": 12.5})
        assert event == ContextUsageEvent(12.5)

    def test_context_usage(self):
        assert classify({"contextUsagePercentage": 10}) == ContextUsageEvent(10.0)

    def test_followup_prompt(self):
        assert classify({"followupPrompt": "more?"}) == FollowupPromptEvent("more?")

    def test_usage(self):
        event = classify({"usage": {"inputTokens": 5, "outputTokens": 7}})
        assert event == UsageEvent(input_tokens=5, output_tokens=7)

    def test_usage_partial(self):
        assert classify({"usage": {"outputTokens": 7}}) == UsageEvent(output_tokens=7)

    def test_unknown_shape(self):
        assert classify({"unit": "credit", "usage": 0.1}) is None
        assert classify({}) is None

    def test_rule_order(self):
        names = [name for name, _, _ in RULES]
        assert names == [
            "content", "toolUse", "toolUseInput", "toolUseStop",
            "contextUsage", "followupPrompt", "usage",
        ]


# ---------------------------------------------------------------------------
# parse_events()
# ---------------------------------------------------------------------------

class TestParseEvents:
    def test_events_in_order(self):
        buf = '{"content":"a"}\x00{"contextUsagePercentage":3}'
        events, remaining = parse_events(buf)
        assert events == [ContentEvent("a"), ContextUsageEvent(3.0)]
        assert remaining == ""

    def test_key_not_first_is_ignored(self):
        events, _ = parse_events('{"timestamp":123,"content":"hello"}')
        assert events == []

    def test_balanced_but_invalid_json_skipped(self):
        events, _ = parse_events('{"content":nope}{"content":"ok"}')
        assert events == [ContentEvent("ok")]

    def test_metering_records_dropped(self):
        events, _ = parse_events('{"unit":"credit","unitPlural":"credits","usage":0.02}')
        assert events == []

    def test_incomplete_event_kept_for_later(self):
        events, remaining = parse_events('{"content":"a"}{"name":"x","toolUseId":"t')
        assert events == [ContentEvent("a")]
        assert remaining == '{"name":"x","toolUseId":"t'
