"""Streaming pipeline: frame scanning, classification, assembly, retries."""

from kiro_stream.llm.bracket import parse_bracket_tool_calls
from kiro_stream.llm.event_parser import classify, parse_events
from kiro_stream.llm.frames import find_json_end, scan, split_fragments
from kiro_stream.llm.orchestrator import StreamOrchestrator, stream_response
from kiro_stream.llm.request import StreamRequest, was_previous_response_truncated
from kiro_stream.llm.retry import decide_retry, exponential_backoff
from kiro_stream.llm.stream import AssistantEventStream, ContentWriter
from kiro_stream.llm.thinking import ThinkingTagParser
from kiro_stream.llm.tool_calls import ToolCallAssembler
from kiro_stream.llm.transport import HttpxTransport, Transport

__all__ = [
    "AssistantEventStream",
    "ContentWriter",
    "HttpxTransport",
    "StreamOrchestrator",
    "StreamRequest",
    "ThinkingTagParser",
    "ToolCallAssembler",
    "Transport",
    "classify",
    "decide_retry",
    "exponential_backoff",
    "find_json_end",
    "parse_bracket_tool_calls",
    "parse_events",
    "scan",
    "split_fragments",
    "stream_response",
    "was_previous_response_truncated",
]
