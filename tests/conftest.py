"""Shared fixtures for kiro-stream tests."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from kiro_stream.llm.stream import ContentWriter
from kiro_stream.types import AssistantEvent, AssistantMessage, EventType


class RecordingStream:
    """Stand-in for AssistantEventStream that just records pushes."""

    def __init__(self) -> None:
        self.events: list[AssistantEvent] = []

    def push(self, event: AssistantEvent) -> None:
        self.events.append(event)

    @property
    def types(self) -> list[str]:
        return [e.type.value for e in self.events]

    def deltas(self, type_: EventType) -> list[str]:
        return [e.delta for e in self.events if e.type is type_]


class FakeResponse:
    """Scripted TransportResponse."""

    def __init__(
        self,
        chunks: list[str | bytes] | None = None,
        status: int = 200,
        reason: str = "OK",
        body: str = "",
        hang: bool = False,
        error: Exception | None = None,
        hang_body: bool = False,
    ) -> None:
        self.chunks = list(chunks or [])
        self.status = status
        self.reason = reason
        self.body = body
        self.hang = hang
        self.error = error
        self.hang_body = hang_body
        self.closed = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    async def read_text(self) -> str:
        if self.hang_body:
            await asyncio.Event().wait()
        return self.body

    async def _generate(self):
        for chunk in self.chunks:
            yield chunk.encode("utf-8") if isinstance(chunk, str) else chunk
        if self.error is not None:
            raise self.error
        if self.hang:
            await asyncio.Event().wait()

    def iter_chunks(self):
        return self._generate()

    async def aclose(self) -> None:
        self.closed = True


class FakeTransport:
    """Returns scripted responses in order and records payloads."""

    def __init__(self, *responses: FakeResponse) -> None:
        self.responses = list(responses)
        self.payloads: list[Any] = []

    async def send(self, payload: Any) -> FakeResponse:
        self.payloads.append(payload)
        return self.responses.pop(0)


@pytest.fixture
def recorder() -> RecordingStream:
    return RecordingStream()


@pytest.fixture
def message() -> AssistantMessage:
    return AssistantMessage(model="claude-sonnet-4-5")


@pytest.fixture
def writer(message: AssistantMessage, recorder: RecordingStream) -> ContentWriter:
    return ContentWriter(message, recorder)  # type: ignore[arg-type]
