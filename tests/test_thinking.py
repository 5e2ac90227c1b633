"""Tests for the thinking tag parser."""

from __future__ import annotations

import pytest

from kiro_stream.llm.thinking import Phase, ThinkingTagParser
from kiro_stream.types import EventType, TextContent, ThinkingContent


def _thinking(recorder) -> str:
    return "".join(recorder.deltas(EventType.THINKING_DELTA))


def _text(recorder) -> str:
    return "".join(recorder.deltas(EventType.TEXT_DELTA))


class TestThinkingTagParser:
    def test_thinking_then_answer(self, writer, recorder):
        parser = ThinkingTagParser(writer)
        parser.feed("<thinking>Let me think</thinking>\n\nAnswer")
        parser.finalize()
        assert _thinking(recorder) == "Let me think"
        assert _text(recorder) == "Answer"
        assert recorder.types == [
            "thinking_start", "thinking_delta", "thinking_end",
            "text_start", "text_delta",
        ]

    def test_open_tag_split_across_chunks(self, writer, recorder):
        parser = ThinkingTagParser(writer)
        parser.feed("<thin")
        parser.feed("king>x</thinking>")
        parser.finalize()
        assert _thinking(recorder) == "x"
        assert _text(recorder) == ""

    def test_close_tag_split_across_chunks(self, writer, recorder):
        parser = ThinkingTagParser(writer)
        for chunk in ["<think>abc</th", "ink>", "done"]:
            parser.feed(chunk)
        parser.finalize()
        assert _thinking(recorder) == "abc"
        assert _text(recorder) == "done"

    def test_text_before_open_tag(self, writer, recorder, message):
        parser = ThinkingTagParser(writer)
        parser.feed("Intro <reasoning>why</reasoning>rest")
        parser.finalize()
        assert isinstance(message.content[0], TextContent)
        assert message.content[0].text == "Intro rest"
        assert isinstance(message.content[1], ThinkingContent)
        assert message.content[1].thinking == "why"

    @pytest.mark.parametrize("tag", ["thinking", "think", "reasoning", "thought"])
    def test_all_variants(self, writer, recorder, tag):
        parser = ThinkingTagParser(writer)
        parser.feed(f"<{tag}>t</{tag}>\n\na")
        parser.finalize()
        assert _thinking(recorder) == "t"
        assert _text(recorder) == "a"

    def test_earliest_variant_binds_close_tag(self, writer, recorder):
        parser = ThinkingTagParser(writer)
        parser.feed("<think>uses </thinking> literally</think>ok")
        parser.finalize()
        assert _thinking(recorder) == "uses </thinking> literally"
        assert _text(recorder) == "ok"

    def test_never_reopens(self, writer, recorder):
        parser = ThinkingTagParser(writer)
        parser.feed("<thinking>a</thinking>")
        parser.feed("b <thinking>c</thinking>")
        parser.finalize()
        assert parser.phase is Phase.EXTRACTED
        assert _thinking(recorder) == "a"
        assert _text(recorder) == "b <thinking>c</thinking>"
        assert recorder.types.count("thinking_start") == 1

    def test_only_exact_separator_consumed(self, writer, recorder):
        parser = ThinkingTagParser(writer)
        parser.feed("<thinking>a</thinking>\nb")
        parser.finalize()
        assert _text(recorder) == "\nb"

    def test_plain_text_held_back_until_finalize(self, writer, recorder):
        parser = ThinkingTagParser(writer)
        parser.feed("Hi")
        assert recorder.events == []
        parser.finalize()
        assert _text(recorder) == "Hi"

    def test_long_plain_text_streams_with_holdback(self, writer, recorder):
        parser = ThinkingTagParser(writer)
        parser.feed("This is a long answer without tags")
        emitted = _text(recorder)
        assert emitted and "This is a long answer without tags".startswith(emitted)
        parser.finalize()
        assert _text(recorder) == "This is a long answer without tags"

    def test_unterminated_thinking_closed_at_finalize(self, writer, recorder, message):
        parser = ThinkingTagParser(writer)
        parser.feed("<thinking>cut off mid thou")
        parser.finalize()
        assert _thinking(recorder) == "cut off mid thou"
        assert recorder.types[-1] == "thinking_end"
        assert recorder.events[-1].content == "cut off mid thou"
        assert message.thinking == "cut off mid thou"

    def test_thinking_end_emitted_once(self, writer, recorder):
        parser = ThinkingTagParser(writer)
        parser.feed("<thinking>a</thinking>b")
        parser.finalize()
        writer.close_open_slots()
        assert recorder.types.count("thinking_end") == 1

    def test_slot_indices_in_emission_order(self, writer, recorder):
        parser = ThinkingTagParser(writer)
        parser.feed("<thinking>a</thinking>b")
        parser.finalize()
        assert writer.thinking_index == 0
        assert parser.text_block_index == 1
