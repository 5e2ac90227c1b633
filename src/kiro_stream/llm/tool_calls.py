"""Reassemble tool calls from fragmented tool-use events."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from kiro_stream.types import (
    ToolCallContent,
    ToolUseEvent,
    ToolUseInputEvent,
    ToolUseStopEvent,
    WireEvent,
)

_logger = logging.getLogger(__name__)

_RAW_PREVIEW_CHARS = 200


@dataclass
class ToolCallState:
    """A tool call whose input is still raw JSON text."""

    id: str
    name: str
    input: str = ""
    open: bool = True


class ToolCallAssembler:
    """Reduce tool-use events into completed tool calls.

    Exactly one call is "current" at a time.  Name/id events open it,
    input fragments append to it, stop signals (or a new id) archive it.
    """

    def __init__(self) -> None:
        self.current: ToolCallState | None = None
        self.completed: list[ToolCallState] = []

    def feed(self, event: WireEvent) -> None:
        if isinstance(event, ToolUseEvent):
            if self.current is not None and self.current.id == event.tool_use_id:
                self.current.input += event.input
            else:
                self._archive()
                self.current = ToolCallState(
                    id=event.tool_use_id, name=event.name, input=event.input,
                )
            if event.stop:
                self._archive()
        elif isinstance(event, ToolUseInputEvent):
            if self.current is not None:
                self.current.input += event.fragment
        elif isinstance(event, ToolUseStopEvent):
            if event.stop:
                self._archive()

    def close(self) -> None:
        """Archive a still-open call at end of stream."""
        self._archive()

    def add_completed(self, state: ToolCallState) -> None:
        state.open = False
        self.completed.append(state)

    def build(self) -> list[tuple[ToolCallState, ToolCallContent]]:
        """Parse archived calls, dropping empty or unparseable input.

        Returns ``(state, parsed)`` pairs in archive order.
        """
        result: list[tuple[ToolCallState, ToolCallContent]] = []
        for state in self.completed:
            if not state.input.strip():
                _logger.warning(
                    'Skipping tool call "%s" (toolUseId: %s): empty input; '
                    "stream likely truncated",
                    state.name, state.id,
                )
                continue
            try:
                args = json.loads(state.input)
            except json.JSONDecodeError as e:
                _logger.warning(
                    'Failed to parse tool input for "%s" (toolUseId: %s): %s. '
                    "Raw input (%d chars): %s",
                    state.name, state.id, e, len(state.input),
                    state.input[:_RAW_PREVIEW_CHARS],
                )
                continue
            if not isinstance(args, dict):
                _logger.warning(
                    'Tool input for "%s" (toolUseId: %s) is not an object: %s',
                    state.name, state.id, state.input[:_RAW_PREVIEW_CHARS],
                )
                continue
            result.append(
                (state, ToolCallContent(id=state.id, name=state.name, arguments=args))
            )
        return result

    def _archive(self) -> None:
        if self.current is None:
            return
        self.current.open = False
        self.completed.append(self.current)
        self.current = None
