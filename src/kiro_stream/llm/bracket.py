"""Fallback extraction of ``[Called name with args: {...}]`` tool calls.

Some responses describe tool calls inline instead of emitting tool-use
events.  Used only when no native tool call was assembled.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from dataclasses import dataclass, field

from .frames import find_json_end

_logger = logging.getLogger(__name__)

BRACKET_PATTERN = re.compile(r"\[Called\s+([A-Za-z0-9_-]+)\s+with\s+args:\s*")


@dataclass
class BracketToolCall:
    tool_use_id: str
    name: str
    arguments: dict


@dataclass
class BracketParseResult:
    tool_calls: list[BracketToolCall] = field(default_factory=list)
    cleaned_text: str = ""


def _match_at(text: str, match: re.Match[str]) -> tuple[BracketToolCall, int] | None:
    """Validate one anchor match; return the call and the end offset."""
    brace = match.end()
    if brace >= len(text) or text[brace] != "{":
        return None
    json_end = find_json_end(text, brace)
    if json_end < 0:
        return None
    close = json_end + 1
    while close < len(text) and text[close].isspace():
        close += 1
    if close >= len(text) or text[close] != "]":
        return None
    try:
        args = json.loads(text[brace : json_end + 1])
    except json.JSONDecodeError:
        return None
    if not isinstance(args, dict):
        return None
    call = BracketToolCall(
        tool_use_id=str(uuid.uuid4()), name=match.group(1), arguments=args,
    )
    return call, close + 1


def parse_bracket_tool_calls(text: str) -> BracketParseResult:
    """Extract bracket-style tool calls and return the text without them.

    Rejected matches leave the source text untouched.
    """
    calls: list[BracketToolCall] = []
    removals: list[tuple[int, int]] = []

    pos = 0
    while True:
        match = BRACKET_PATTERN.search(text, pos)
        if match is None:
            break
        found = _match_at(text, match)
        if found is None:
            pos = match.end()
            continue
        call, end = found
        calls.append(call)
        removals.append((match.start(), end))
        _logger.debug("Recovered bracket tool call %s", call.name)
        pos = end

    cleaned = text
    for start, end in reversed(removals):
        cleaned = cleaned[:start] + cleaned[end:]
    return BracketParseResult(tool_calls=calls, cleaned_text=cleaned)
