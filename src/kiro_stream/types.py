"""Shared data types for kiro-stream."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Union


# ---------------------------------------------------------------------------
# Wire events (one per upstream JSON fragment)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ContentEvent:
    """A piece of assistant text."""

    text: str


@dataclass(frozen=True)
class ToolUseEvent:
    """Start (or continuation) of a tool invocation."""

    name: str
    tool_use_id: str
    input: str = ""
    stop: bool | None = None


@dataclass(frozen=True)
class ToolUseInputEvent:
    """A raw JSON text fragment appended to the current tool call."""

    fragment: str


@dataclass(frozen=True)
class ToolUseStopEvent:
    stop: bool


@dataclass(frozen=True)
class ContextUsageEvent:
    percentage: float


@dataclass(frozen=True)
class FollowupPromptEvent:
    text: Any


@dataclass(frozen=True)
class UsageEvent:
    input_tokens: int | None = None
    output_tokens: int | None = None


WireEvent = Union[
    ContentEvent,
    ToolUseEvent,
    ToolUseInputEvent,
    ToolUseStopEvent,
    ContextUsageEvent,
    FollowupPromptEvent,
    UsageEvent,
]


# ---------------------------------------------------------------------------
# Output message
# ---------------------------------------------------------------------------

class StopReason(str, enum.Enum):
    """Why a response ended."""

    STOP = "stop"
    TOOL_USE = "toolUse"
    LENGTH = "length"
    ABORTED = "aborted"
    ERROR = "error"


@dataclass
class TextContent:
    text: str = ""
    type: str = "text"


@dataclass
class ThinkingContent:
    thinking: str = ""
    type: str = "thinking"


@dataclass
class ToolCallContent:
    """A completed tool call with parsed arguments."""

    id: str
    name: str
    arguments: dict[str, Any]
    type: str = "toolCall"


ContentBlock = Union[TextContent, ThinkingContent, ToolCallContent]


@dataclass
class Usage:
    input: int = 0
    output: int = 0
    total_tokens: int = 0

    def recompute(self) -> None:
        """Recompute the total from input and output."""
        self.total_tokens = self.input + self.output


@dataclass
class AssistantMessage:
    """The assistant message built up over one streaming call."""

    model: str = ""
    content: list[ContentBlock] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    stop_reason: StopReason = StopReason.STOP
    error_message: str = ""
    timestamp: float = field(default_factory=time.time)

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.content if isinstance(b, TextContent))

    @property
    def thinking(self) -> str:
        return "".join(
            b.thinking for b in self.content if isinstance(b, ThinkingContent)
        )

    @property
    def tool_calls(self) -> list[ToolCallContent]:
        return [b for b in self.content if isinstance(b, ToolCallContent)]


# ---------------------------------------------------------------------------
# Produced events
# ---------------------------------------------------------------------------

class EventType(enum.Enum):
    """Event types emitted on an AssistantEventStream."""

    START = "start"

    TEXT_START = "text_start"
    TEXT_DELTA = "text_delta"
    TEXT_END = "text_end"

    THINKING_START = "thinking_start"
    THINKING_DELTA = "thinking_delta"
    THINKING_END = "thinking_end"

    TOOLCALL_START = "toolcall_start"
    TOOLCALL_DELTA = "toolcall_delta"
    TOOLCALL_END = "toolcall_end"

    DONE = "done"
    ERROR = "error"


@dataclass
class AssistantEvent:
    """One event of the produced sequence.

    ``partial`` references the message being built; ``message`` is only set
    on the terminal ``done`` / ``error`` events.
    """

    type: EventType
    content_index: int | None = None
    delta: str = ""
    content: str | None = None
    tool_call: ToolCallContent | None = None
    reason: StopReason | None = None
    message: AssistantMessage | None = None
    partial: AssistantMessage | None = None

    @property
    def is_terminal(self) -> bool:
        return self.type in (EventType.DONE, EventType.ERROR)


# ---------------------------------------------------------------------------
# Retry records
# ---------------------------------------------------------------------------

class RetryStrategy(str, enum.Enum):
    REDUCE = "reduce"
    BACKOFF = "backoff"
    NONE = "none"


@dataclass(frozen=True)
class RetryDecision:
    should_retry: bool
    delay_ms: int
    strategy: RetryStrategy


@dataclass
class RetryState:
    """Attempt counter and size reduction for one logical request."""

    attempt: int = 0
    reduction_factor: float = 1.0
