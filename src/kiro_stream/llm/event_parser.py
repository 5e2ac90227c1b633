"""Classify upstream JSON objects into typed wire events.

Fields overlap between event kinds, so classification is an ordered rule
table: the first rule whose predicate matches builds the event.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

from kiro_stream.types import (
    ContentEvent,
    ContextUsageEvent,
    FollowupPromptEvent,
    ToolUseEvent,
    ToolUseInputEvent,
    ToolUseStopEvent,
    UsageEvent,
    WireEvent,
)

from .frames import split_fragments

_logger = logging.getLogger(__name__)

Predicate = Callable[[dict[str, Any]], bool]
Builder = Callable[[dict[str, Any]], WireEvent]


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return _dumps(value)


def _tool_use_input(value: Any) -> str:
    # An empty placeholder must become "" so later raw fragments
    # concatenate into valid JSON.
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)) and value:
        return _dumps(value)
    return ""


def _build_tool_use(obj: dict[str, Any]) -> ToolUseEvent:
    stop = obj.get("stop")
    return ToolUseEvent(
        name=str(obj["name"]),
        tool_use_id=str(obj["toolUseId"]),
        input=_tool_use_input(obj.get("input")),
        stop=bool(stop) if stop is not None else None,
    )


def _build_usage(obj: dict[str, Any]) -> UsageEvent:
    usage = obj["usage"]
    return UsageEvent(
        input_tokens=usage.get("inputTokens"),
        output_tokens=usage.get("outputTokens"),
    )


# Order is load-bearing: {"toolUseId": ..., "stop": true} without a name
# must fall through to the stop rule.
RULES: list[tuple[str, Predicate, Builder]] = [
    (
        "content",
        lambda o: "content" in o,
        lambda o: ContentEvent(_as_text(o["content"])),
    ),
    (
        "toolUse",
        lambda o: bool(o.get("name")) and bool(o.get("toolUseId")),
        _build_tool_use,
    ),
    (
        "toolUseInput",
        lambda o: "input" in o and not o.get("name"),
        lambda o: ToolUseInputEvent(_as_text(o["input"])),
    ),
    (
        "toolUseStop",
        lambda o: "stop" in o and "contextUsagePercentage" not in o,
        lambda o: ToolUseStopEvent(bool(o["stop"])),
    ),
    (
        "contextUsage",
        lambda o: "contextUsagePercentage" in o,
        lambda o: ContextUsageEvent(float(o["contextUsagePercentage"])),
    ),
    (
        "followupPrompt",
        lambda o: "followupPrompt" in o,
        lambda o: FollowupPromptEvent(o["followupPrompt"]),
    ),
    (
        "usage",
        lambda o: isinstance(o.get("usage"), dict),
        _build_usage,
    ),
]


def classify(obj: dict[str, Any]) -> WireEvent | None:
    """Map a parsed JSON object to a wire event, or ``None`` to drop it."""
    for _name, predicate, build in RULES:
        if predicate(obj):
            return build(obj)
    return None


def parse_events(buffer: str) -> tuple[list[WireEvent], str]:
    """Extract all complete events from *buffer*.

    Returns ``(events, remaining)`` where *remaining* must be carried over
    to the next call.
    """
    fragments, remaining = split_fragments(buffer)
    events: list[WireEvent] = []
    for fragment in fragments:
        try:
            obj = json.loads(fragment)
        except json.JSONDecodeError:
            _logger.debug("Skipping non-JSON fragment: %.80s", fragment)
            continue
        if not isinstance(obj, dict):
            continue
        try:
            event = classify(obj)
        except (TypeError, ValueError, AttributeError):
            _logger.debug("Skipping malformed event: %.80s", fragment)
            continue
        if event is not None:
            events.append(event)
    return events, remaining
