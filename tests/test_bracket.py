"""Tests for the bracket-style tool call fallback."""

from __future__ import annotations

from kiro_stream.llm.bracket import parse_bracket_tool_calls


class TestParseBracketToolCalls:
    def test_single_call(self):
        text = 'Let me look. [Called read_file with args: {"path": "a.py"}] Done.'
        result = parse_bracket_tool_calls(text)
        assert len(result.tool_calls) == 1
        call = result.tool_calls[0]
        assert call.name == "read_file"
        assert call.arguments == {"path": "a.py"}
        assert call.tool_use_id
        assert result.cleaned_text == "Let me look.  Done."

    def test_multiple_calls_removed_back_to_front(self):
        text = (
            "A [Called one with args: {\"x\": 1}] B "
            "[Called two-step with args: {\"y\": {\"z\": \"]\"}}] C"
        )
        result = parse_bracket_tool_calls(text)
        assert [c.name for c in result.tool_calls] == ["one", "two-step"]
        assert result.tool_calls[1].arguments == {"y": {"z": "]"}}
        assert result.cleaned_text == "A  B  C"

    def test_unique_ids(self):
        text = "[Called a with args: {}][Called a with args: {}]"
        result = parse_bracket_tool_calls(text)
        ids = {c.tool_use_id for c in result.tool_calls}
        assert len(ids) == 2

    def test_whitespace_before_closing_bracket(self):
        result = parse_bracket_tool_calls('[Called f with args: {"a": 1}  \n]')
        assert len(result.tool_calls) == 1
        assert result.cleaned_text == ""

    def test_rejects_text_between_brace_and_bracket(self):
        text = '[Called f with args: {"a": 1} extra]'
        result = parse_bracket_tool_calls(text)
        assert result.tool_calls == []
        assert result.cleaned_text == text

    def test_rejects_non_brace_after_anchor(self):
        text = '[Called f with args: "a"]'
        result = parse_bracket_tool_calls(text)
        assert result.tool_calls == []
        assert result.cleaned_text == text

    def test_rejects_malformed_json(self):
        text = "[Called f with args: {a: 1}]"
        result = parse_bracket_tool_calls(text)
        assert result.tool_calls == []
        assert result.cleaned_text == text

    def test_rejects_unclosed_object(self):
        text = '[Called f with args: {"a": 1'
        assert parse_bracket_tool_calls(text).tool_calls == []

    def test_rejected_match_does_not_block_later_ones(self):
        text = '[Called bad with args: {x}] then [Called good with args: {"ok": true}]'
        result = parse_bracket_tool_calls(text)
        assert [c.name for c in result.tool_calls] == ["good"]
        assert result.cleaned_text == "[Called bad with args: {x}] then "

    def test_no_calls(self):
        result = parse_bracket_tool_calls("Just text")
        assert result.tool_calls == []
        assert result.cleaned_text == "Just text"
