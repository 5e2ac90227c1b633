"""Chunk sources for the orchestrator.

The orchestrator only depends on the :class:`Transport` protocol.
:class:`HttpxTransport` is the production implementation; it sends the
payload and hands back the raw body stream without applying any read
deadline of its own.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, AsyncIterator, Protocol

import httpx

from kiro_stream.config import DEFAULT_ENDPOINT
from kiro_stream.errors import MissingCredentialsError

_logger = logging.getLogger(__name__)


class TransportResponse(Protocol):
    status: int
    reason: str

    @property
    def ok(self) -> bool: ...

    async def read_text(self) -> str: ...

    def iter_chunks(self) -> AsyncIterator[bytes | str]: ...

    async def aclose(self) -> None: ...


class Transport(Protocol):
    async def send(self, payload: Any) -> TransportResponse: ...


class HttpxResponse:
    """Adapts a streaming ``httpx.Response``."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self.status = response.status_code
        self.reason = response.reason_phrase

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    async def read_text(self) -> str:
        try:
            body = await self._response.aread()
        except httpx.HTTPError as e:
            _logger.debug("Failed to read error body: %s", e)
            return ""
        return body.decode("utf-8", errors="replace")

    def iter_chunks(self) -> AsyncIterator[bytes]:
        return self._response.aiter_bytes()

    async def aclose(self) -> None:
        await self._response.aclose()


class HttpxTransport:
    """POSTs JSON payloads to the assistant endpoint via ``httpx``."""

    def __init__(
        self,
        access_token: str | None,
        endpoint: str = DEFAULT_ENDPOINT,
        client: httpx.AsyncClient | None = None,
        connect_timeout: float = 30,
    ) -> None:
        self._access_token = access_token
        self.endpoint = endpoint
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(None, connect=connect_timeout),
        )

    def _headers(self) -> dict[str, str]:
        ua = (
            "aws-sdk-js/1.0.0 ua/2.1 os/python lang/python "
            f"api/codewhispererruntime#1.0.0 m/E KiroIDE-{uuid.uuid4().hex}"
        )
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {self._access_token}",
            "amz-sdk-invocation-id": str(uuid.uuid4()),
            "amz-sdk-request": "attempt=1; max=1",
            "x-amzn-kiro-agent-mode": "vibe",
            "x-amz-user-agent": ua,
            "User-Agent": ua,
        }

    async def send(self, payload: Any) -> HttpxResponse:
        if not self._access_token:
            raise MissingCredentialsError()
        request = self._client.build_request(
            "POST", self.endpoint, json=payload, headers=self._headers(),
        )
        response = await self._client.send(request, stream=True)
        return HttpxResponse(response)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
