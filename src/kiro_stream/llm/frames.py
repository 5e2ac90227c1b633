"""Extract JSON fragments from a buffer contaminated with framing bytes.

The upstream wraps every JSON payload in binary event-stream framing, which
can contain stray ``{`` bytes.  Fragments are therefore only recognised when
they start with one of a fixed set of key prefixes; everything between the
previous fragment and the next anchor is discarded.
"""

from __future__ import annotations

from dataclasses import dataclass

# Known JSON key prefixes that start an upstream event object
EVENT_ANCHORS = (
    '{"content":',
    '{"name":',
    '{"input":',
    '{"stop":',
    '{"contextUsagePercentage":',
    '{"followupPrompt":',
    '{"usage":',
    '{"toolUseId":',
    '{"unit":',
)

MAX_ANCHOR_LEN = max(len(a) for a in EVENT_ANCHORS)


@dataclass(frozen=True)
class Fragment:
    """A brace-balanced fragment; ``end`` is exclusive."""

    text: str
    start: int
    end: int


@dataclass(frozen=True)
class NeedMore:
    """An anchor was found at ``start`` but its object is not closed yet."""

    start: int


def find_json_end(text: str, start: int) -> int:
    """Return the index of the ``}`` that balances the ``{`` at *start*.

    Braces inside quoted strings (including escaped quotes) are ignored.
    Returns -1 if the object is not closed before the end of *text*.
    """
    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if escape:
            escape = False
            continue
        if ch == "\\":
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return -1


def find_next_anchor(buffer: str, pos: int = 0) -> int:
    """Earliest offset >= *pos* at which any anchor occurs, or -1."""
    earliest = -1
    for anchor in EVENT_ANCHORS:
        idx = buffer.find(anchor, pos)
        if idx >= 0 and (earliest < 0 or idx < earliest):
            earliest = idx
    return earliest


def scan(buffer: str, pos: int = 0) -> Fragment | NeedMore | None:
    """Find the next anchored fragment at or after *pos*.

    Returns ``None`` when no anchor remains in the buffer.
    """
    start = find_next_anchor(buffer, pos)
    if start < 0:
        return None
    end = find_json_end(buffer, start)
    if end < 0:
        return NeedMore(start)
    return Fragment(buffer[start : end + 1], start, end + 1)


def _partial_anchor_tail(buffer: str, pos: int) -> str:
    """Longest suffix of *buffer* (from *pos*) that could still become an anchor."""
    for start in range(max(pos, len(buffer) - MAX_ANCHOR_LEN + 1), len(buffer)):
        tail = buffer[start:]
        if any(anchor.startswith(tail) for anchor in EVENT_ANCHORS):
            return tail
    return ""


def split_fragments(buffer: str) -> tuple[list[str], str]:
    """Drain *buffer* into complete fragments plus an unconsumed remainder.

    The remainder is the suffix starting at an anchor whose object is still
    open; it must be prepended to the next chunk.  Garbage before it is
    dropped for good.
    """
    fragments: list[str] = []
    pos = 0
    while pos < len(buffer):
        result = scan(buffer, pos)
        if result is None:
            return fragments, _partial_anchor_tail(buffer, pos)
        if isinstance(result, NeedMore):
            return fragments, buffer[result.start :]
        fragments.append(result.text)
        pos = result.end
    return fragments, ""
