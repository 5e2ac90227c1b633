"""Request-building collaborator interface and continuation helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol

from kiro_stream.config import RequestLimits
from kiro_stream.types import AssistantMessage, StopReason

TRUNCATION_NOTICE = (
    "[NOTE: Your previous response was cut off due to length limits. "
    "Please continue from where you left off.]"
)


class RequestBuilder(Protocol):
    """Builds the outbound payload for one attempt.

    Called again on every retry with bounds scaled by the current
    reduction factor.
    """

    def __call__(self, limits: RequestLimits) -> Any: ...


@dataclass
class StreamRequest:
    """Everything the orchestrator needs for one logical call."""

    model: str
    builder: RequestBuilder
    context_window: int | None = None
    thinking: bool = False


def _stop_reason(message: Any) -> str | None:
    if isinstance(message, AssistantMessage):
        return message.stop_reason.value
    if isinstance(message, Mapping):
        reason = message.get("stop_reason", message.get("stopReason"))
        return reason.value if isinstance(reason, StopReason) else reason
    return None


def _is_assistant(message: Any) -> bool:
    if isinstance(message, AssistantMessage):
        return True
    return isinstance(message, Mapping) and message.get("role") == "assistant"


def was_previous_response_truncated(messages: Iterable[Any]) -> bool:
    """True if the most recent assistant message stopped for ``length``."""
    for message in reversed(list(messages)):
        if _is_assistant(message):
            return _stop_reason(message) == StopReason.LENGTH.value
    return False


def continuation_prefix(messages: Iterable[Any], content: str) -> str:
    """Prepend the truncation notice to *content* when needed."""
    if was_previous_response_truncated(messages):
        return f"{TRUNCATION_NOTICE}\n\n{content}"
    return content
