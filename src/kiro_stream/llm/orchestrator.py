"""Drive one streaming call from request to terminal event.

Per attempt:
  1. build the payload with size bounds scaled by the reduction factor
  2. send it; a failed status goes through :func:`decide_retry`
  3. race each chunk read against the first-chunk / idle deadline
  4. scan, classify and route events into output slots
  5. finalize: flush thinking, bracket fallback, tool calls, usage, stop reason

The whole call runs as one producer task; failures are always delivered
through the event stream's ``error`` event.
"""

from __future__ import annotations

import asyncio
import codecs
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Union

from kiro_stream.config import StreamConfig
from kiro_stream.errors import ApiError, StreamAbortedError, StreamTimeoutError
from kiro_stream.types import (
    AssistantEvent,
    AssistantMessage,
    ContentEvent,
    ContextUsageEvent,
    EventType,
    FollowupPromptEvent,
    RetryState,
    RetryStrategy,
    StopReason,
    ToolUseEvent,
    ToolUseInputEvent,
    ToolUseStopEvent,
    Usage,
    UsageEvent,
    WireEvent,
)

from .bracket import parse_bracket_tool_calls
from .event_parser import parse_events
from .request import StreamRequest
from .retry import decide_retry, decide_timeout_retry
from .stream import AssistantEventStream, ContentWriter
from .thinking import ThinkingTagParser
from .tokenizer import count_tokens
from .tool_calls import ToolCallAssembler, ToolCallState
from .transport import Transport, TransportResponse

_logger = logging.getLogger(__name__)

FIRST_CHUNK = "first chunk"
IDLE = "idle"

TokenCounter = Callable[[str], int]


# ---------------------------------------------------------------------------
# Read race results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChunkRead:
    data: bytes | str


@dataclass(frozen=True)
class EndOfStream:
    pass


@dataclass(frozen=True)
class TimedOut:
    kind: str


ReadResult = Union[ChunkRead, EndOfStream, TimedOut]


# ---------------------------------------------------------------------------
# Per-attempt accumulator
# ---------------------------------------------------------------------------

class _ResponseAccumulator:
    """Decodes chunks and routes wire events for one attempt."""

    def __init__(
        self,
        output: AssistantMessage,
        stream: AssistantEventStream,
        context_window: int,
        thinking: bool,
    ) -> None:
        self.output = output
        self.writer = ContentWriter(output, stream)
        self.parser = ThinkingTagParser(self.writer) if thinking else None
        self.assembler = ToolCallAssembler()
        self.context_window = context_window
        self.content_parts: list[str] = []
        self.usage_event: UsageEvent | None = None
        self.saw_context_usage = False
        self._last_content = ""
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed_chunk(self, data: bytes | str) -> None:
        text = data if isinstance(data, str) else self._decoder.decode(data)
        self._feed_text(text)

    def flush(self) -> None:
        self._feed_text(self._decoder.decode(b"", final=True))

    def _feed_text(self, text: str) -> None:
        if not text:
            return
        self._buffer += text
        events, self._buffer = parse_events(self._buffer)
        for event in events:
            self.handle(event)

    def handle(self, event: WireEvent) -> None:
        if isinstance(event, ContextUsageEvent):
            # Keep reading: tool input fragments may still follow.
            self.output.usage.input = math.floor(
                event.percentage / 100 * self.context_window + 0.5
            )
            self.saw_context_usage = True
        elif isinstance(event, ContentEvent):
            if event.text == self._last_content:
                return
            self._last_content = event.text
            self.content_parts.append(event.text)
            if self.parser is not None:
                self.parser.feed(event.text)
            else:
                self.writer.write_text(event.text)
        elif isinstance(event, (ToolUseEvent, ToolUseInputEvent, ToolUseStopEvent)):
            self.assembler.feed(event)
        elif isinstance(event, UsageEvent):
            self.usage_event = event
        elif isinstance(event, FollowupPromptEvent):
            _logger.debug("Ignoring follow-up prompt")

    def abandon(self) -> None:
        """Flush held-back text and close the slots of a timed-out attempt."""
        if self.parser is not None:
            self.parser.finalize()
        self.writer.close_open_slots()

    @property
    def total_content(self) -> str:
        return "".join(self.content_parts)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class StreamOrchestrator:
    """Runs streaming calls against a :class:`Transport`.

    Parameters
    ----------
    transport:
        Sends payloads and yields raw body chunks.
    config:
        Retry budget, deadlines and size bounds.  ``config.timing`` is read
        on every attempt, so it can be adjusted between calls.
    token_counter:
        ``count(text) -> int`` used for output tokens when the upstream
        reports no usage.  Defaults to the tiktoken counter.
    """

    def __init__(
        self,
        transport: Transport,
        config: StreamConfig | None = None,
        token_counter: TokenCounter | None = None,
    ) -> None:
        self.transport = transport
        self.config = config or StreamConfig()
        self.count_tokens = token_counter or count_tokens

    def stream(
        self,
        request: StreamRequest,
        abort: asyncio.Event | None = None,
    ) -> AssistantEventStream:
        """Start a call and return its event stream.

        Must be called from within a running event loop.
        """
        stream = AssistantEventStream()
        task = asyncio.get_running_loop().create_task(
            self._run(request, stream, abort),
        )
        stream.attach(task)
        return stream

    # ------------------------------------------------------------------
    # Producer
    # ------------------------------------------------------------------

    async def _run(
        self,
        request: StreamRequest,
        stream: AssistantEventStream,
        abort: asyncio.Event | None,
    ) -> None:
        output = AssistantMessage(model=request.model)
        try:
            await self._attempts(request, output, stream, abort)
        except asyncio.CancelledError:
            self._fail(output, stream, StopReason.ABORTED, "Request was cancelled")
            raise
        except Exception as e:
            aborted = isinstance(e, StreamAbortedError) or (
                abort is not None and abort.is_set()
            )
            reason = StopReason.ABORTED if aborted else StopReason.ERROR
            _logger.info("Stream ended with %s: %s", reason.value, e)
            self._fail(output, stream, reason, str(e))

    async def _attempts(
        self,
        request: StreamRequest,
        output: AssistantMessage,
        stream: AssistantEventStream,
        abort: asyncio.Event | None,
    ) -> None:
        state = RetryState()
        max_retries = self.config.max_retries
        context_window = request.context_window or self.config.context_window
        started = False

        while True:
            if abort is not None and abort.is_set():
                raise StreamAbortedError()

            limits = self.config.limits.scaled(state.reduction_factor)
            payload = request.builder(limits)
            response: TransportResponse = await self._until_aborted(
                self.transport.send(payload), abort,
            )

            if not response.ok:
                try:
                    body = await self._until_aborted(response.read_text(), abort)
                finally:
                    await response.aclose()
                decision = decide_retry(response.status, body, state.attempt, max_retries)
                if not decision.should_retry:
                    raise ApiError(response.status, response.reason, body)
                _logger.warning(
                    "Kiro API returned %d (attempt %d/%d), retrying with %s",
                    response.status, state.attempt + 1, max_retries + 1,
                    decision.strategy.value,
                )
                state.attempt += 1
                if decision.strategy is RetryStrategy.REDUCE:
                    state.reduction_factor *= self.config.reduction_step
                else:
                    await self._sleep(decision.delay_ms, abort)
                continue

            if not started:
                stream.push(AssistantEvent(type=EventType.START, partial=output))
                started = True

            output.usage = Usage()
            acc = _ResponseAccumulator(output, stream, context_window, request.thinking)
            try:
                timed_out = await self._drain(response, acc, abort)
            finally:
                await response.aclose()

            if timed_out is not None:
                acc.abandon()
                decision = decide_timeout_retry(state.attempt, max_retries)
                if not decision.should_retry:
                    raise StreamTimeoutError(timed_out.kind)
                _logger.warning(
                    "Kiro API %s timeout (attempt %d/%d), retrying",
                    timed_out.kind, state.attempt + 1, max_retries + 1,
                )
                state.attempt += 1
                await self._sleep(decision.delay_ms, abort)
                continue

            self._finalize(acc, output, stream)
            return

    async def _drain(
        self,
        response: TransportResponse,
        acc: _ResponseAccumulator,
        abort: asyncio.Event | None,
    ) -> TimedOut | None:
        """Read until end of stream; return the timeout if a deadline won."""
        chunks = response.iter_chunks()
        timeout, kind = self.config.timing.first_chunk_timeout, FIRST_CHUNK
        while True:
            result = await self._read(chunks, timeout, kind, abort)
            if isinstance(result, TimedOut):
                return result
            if isinstance(result, EndOfStream):
                acc.flush()
                return None
            acc.feed_chunk(result.data)
            timeout, kind = self.config.timing.idle_timeout, IDLE

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def _finalize(
        self,
        acc: _ResponseAccumulator,
        output: AssistantMessage,
        stream: AssistantEventStream,
    ) -> None:
        acc.assembler.close()
        if acc.parser is not None:
            acc.parser.finalize()

        text_block = acc.writer.text_block
        if not acc.assembler.completed and text_block is not None:
            result = parse_bracket_tool_calls(text_block.text)
            if result.tool_calls:
                text_block.text = result.cleaned_text
                for call in result.tool_calls:
                    acc.assembler.add_completed(
                        ToolCallState(
                            id=call.tool_use_id,
                            name=call.name,
                            input=json.dumps(call.arguments, ensure_ascii=False),
                        )
                    )

        acc.writer.close_open_slots()

        calls = acc.assembler.build()
        for state, call in calls:
            index = len(output.content)
            output.content.append(call)
            stream.push(AssistantEvent(
                type=EventType.TOOLCALL_START, content_index=index, partial=output,
            ))
            stream.push(AssistantEvent(
                type=EventType.TOOLCALL_DELTA, content_index=index,
                delta=state.input, partial=output,
            ))
            stream.push(AssistantEvent(
                type=EventType.TOOLCALL_END, content_index=index,
                tool_call=call, partial=output,
            ))

        usage = output.usage
        reported = acc.usage_event
        if reported is not None and reported.input_tokens is not None:
            usage.input = reported.input_tokens
        if reported is not None and reported.output_tokens is not None:
            usage.output = reported.output_tokens
        else:
            usage.output = self.count_tokens(acc.total_content)
        usage.recompute()

        if calls:
            output.stop_reason = StopReason.TOOL_USE
        elif not acc.saw_context_usage:
            # No context-usage signal: assume the upstream cut us off.
            output.stop_reason = StopReason.LENGTH
        else:
            output.stop_reason = StopReason.STOP

        stream.push(AssistantEvent(
            type=EventType.DONE, reason=output.stop_reason,
            message=output, partial=output,
        ))

    @staticmethod
    def _fail(
        output: AssistantMessage,
        stream: AssistantEventStream,
        reason: StopReason,
        message: str,
    ) -> None:
        output.stop_reason = reason
        output.error_message = message
        output.usage.recompute()
        stream.push(AssistantEvent(
            type=EventType.ERROR, reason=reason, message=output, partial=output,
        ))

    # ------------------------------------------------------------------
    # Races
    # ------------------------------------------------------------------

    async def _read(
        self,
        chunks: AsyncIterator[Any],
        timeout: float,
        kind: str,
        abort: asyncio.Event | None,
    ) -> ReadResult:
        read = asyncio.ensure_future(chunks.__anext__())
        if not await self._first_of(read, timeout, abort):
            _logger.warning("No data within %.1fs (%s deadline)", timeout, kind)
            return TimedOut(kind)
        try:
            return ChunkRead(read.result())
        except StopAsyncIteration:
            return EndOfStream()

    async def _until_aborted(self, awaitable: Awaitable[Any], abort: asyncio.Event | None) -> Any:
        if abort is None:
            return await awaitable
        task = asyncio.ensure_future(awaitable)
        try:
            await self._first_of(task, None, abort)
        except StreamAbortedError:
            # The awaitable may have finished in the same turn as the abort
            if task.done() and not task.cancelled() and task.exception() is None:
                result = task.result()
                if hasattr(result, "aclose"):
                    await result.aclose()
            raise
        return task.result()

    @staticmethod
    async def _first_of(
        task: asyncio.Future[Any],
        timeout: float | None,
        abort: asyncio.Event | None,
    ) -> bool:
        """Wait for *task*, a deadline or the abort signal; cancel the losers.

        Returns True if *task* finished, False if the deadline won, and
        raises :class:`StreamAbortedError` if the abort signal fired.
        """
        waiters: set[asyncio.Future[Any]] = {task}
        aborted: asyncio.Future[Any] | None = None
        if abort is not None:
            aborted = asyncio.ensure_future(abort.wait())
            waiters.add(aborted)
        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            losers = [w for w in waiters if not w.done()]
            for w in losers:
                w.cancel()
            if losers:
                await asyncio.gather(*losers, return_exceptions=True)
        if aborted is not None and aborted in done:
            if task.done() and not task.cancelled():
                task.exception()  # mark retrieved; the abort takes precedence
            raise StreamAbortedError()
        return task in done

    @staticmethod
    async def _sleep(delay_ms: int, abort: asyncio.Event | None) -> None:
        """Back off for *delay_ms*, waking early if the call is aborted."""
        if delay_ms <= 0:
            return
        if abort is None:
            await asyncio.sleep(delay_ms / 1000)
            return
        try:
            await asyncio.wait_for(abort.wait(), timeout=delay_ms / 1000)
        except asyncio.TimeoutError:
            return
        raise StreamAbortedError()


def stream_response(
    transport: Transport,
    request: StreamRequest,
    config: StreamConfig | None = None,
    abort: asyncio.Event | None = None,
    token_counter: TokenCounter | None = None,
) -> AssistantEventStream:
    """Convenience wrapper: one orchestrator, one call."""
    return StreamOrchestrator(transport, config, token_counter).stream(request, abort)
