"""Produced event sequence and content-slot bookkeeping."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from kiro_stream.types import (
    AssistantEvent,
    AssistantMessage,
    EventType,
    StopReason,
    TextContent,
    ThinkingContent,
)

_logger = logging.getLogger(__name__)


class AssistantEventStream:
    """Pull-based async sequence of :class:`AssistantEvent`.

    A single producer pushes; the consumer iterates.  The sequence ends
    after exactly one terminal (``done`` or ``error``) event; anything
    pushed afterwards is ignored.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[AssistantEvent] = asyncio.Queue()
        self._terminal: AssistantEvent | None = None
        self._finished = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    def push(self, event: AssistantEvent) -> None:
        if self._terminal is not None:
            _logger.debug("Ignoring %s after terminal event", event.type.value)
            return
        if event.is_terminal:
            self._terminal = event
            self._finished.set()
        self._queue.put_nowait(event)

    @property
    def finished(self) -> bool:
        return self._terminal is not None

    def attach(self, task: asyncio.Task[None]) -> None:
        """Keep a reference to the producer task."""
        self._task = task

    async def __aiter__(self) -> AsyncIterator[AssistantEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if event.is_terminal:
                return

    async def result(self) -> AssistantMessage:
        """Wait for the terminal event and return the final message."""
        await self._finished.wait()
        assert self._terminal is not None
        assert self._terminal.message is not None
        return self._terminal.message

    async def aclose(self) -> None:
        """Cancel the producer; it still emits a terminal ``aborted`` event."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        if self._terminal is None:
            # Cancelled before the producer ever ran
            message = AssistantMessage(
                stop_reason=StopReason.ABORTED, error_message="Request was cancelled",
            )
            self.push(AssistantEvent(
                type=EventType.ERROR, reason=StopReason.ABORTED, message=message,
            ))


class ContentWriter:
    """Allocates output slots lazily and pushes their boundary events.

    One writer serves one attempt: it owns at most one text slot and one
    thinking slot, each opened on its first delta and closed at most once.
    """

    def __init__(self, output: AssistantMessage, stream: AssistantEventStream) -> None:
        self.output = output
        self.stream = stream
        self.text_index: int | None = None
        self.thinking_index: int | None = None
        self._closed: set[int] = set()

    def _push(self, type_: EventType, index: int, **kwargs) -> None:
        self.stream.push(
            AssistantEvent(type=type_, content_index=index, partial=self.output, **kwargs)
        )

    # -- text -----------------------------------------------------------

    def write_text(self, delta: str) -> None:
        if not delta:
            return
        if self.text_index is None:
            self.text_index = len(self.output.content)
            self.output.content.append(TextContent())
            self._push(EventType.TEXT_START, self.text_index)
        block = self.output.content[self.text_index]
        assert isinstance(block, TextContent)
        block.text += delta
        self._push(EventType.TEXT_DELTA, self.text_index, delta=delta)

    @property
    def text_block(self) -> TextContent | None:
        if self.text_index is None:
            return None
        block = self.output.content[self.text_index]
        assert isinstance(block, TextContent)
        return block

    def end_text(self) -> None:
        block = self.text_block
        if block is None or self.text_index in self._closed:
            return
        self._closed.add(self.text_index)
        self._push(EventType.TEXT_END, self.text_index, content=block.text)

    # -- thinking -------------------------------------------------------

    def write_thinking(self, delta: str) -> None:
        if not delta:
            return
        if self.thinking_index is None:
            self.thinking_index = len(self.output.content)
            self.output.content.append(ThinkingContent())
            self._push(EventType.THINKING_START, self.thinking_index)
        block = self.output.content[self.thinking_index]
        assert isinstance(block, ThinkingContent)
        block.thinking += delta
        self._push(EventType.THINKING_DELTA, self.thinking_index, delta=delta)

    def end_thinking(self) -> None:
        if self.thinking_index is None or self.thinking_index in self._closed:
            return
        block = self.output.content[self.thinking_index]
        assert isinstance(block, ThinkingContent)
        self._closed.add(self.thinking_index)
        self._push(EventType.THINKING_END, self.thinking_index, content=block.thinking)

    def close_open_slots(self) -> None:
        """Close every slot this writer opened (abandoned attempt)."""
        self.end_thinking()
        self.end_text()
