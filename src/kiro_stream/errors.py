"""Exception types raised inside the streaming pipeline."""

from __future__ import annotations


class StreamError(Exception):
    """Base class for kiro-stream errors."""


class ApiError(StreamError):
    """Non-retryable upstream status, or retry budget exhausted."""

    def __init__(self, status: int, status_text: str = "", body: str = "") -> None:
        self.status = status
        self.status_text = status_text
        self.body = body
        super().__init__(f"Kiro API error: {status} {status_text} {body}".rstrip())


class StreamTimeoutError(StreamError):
    """No data arrived before the first-chunk or idle deadline."""

    def __init__(self, kind: str) -> None:
        self.kind = kind  # "first chunk" | "idle"
        super().__init__(f"Kiro API error: {kind} timeout after max retries")


class StreamAbortedError(StreamError):
    """The external cancellation signal fired."""

    def __init__(self, message: str = "Request was aborted") -> None:
        super().__init__(message)


class MissingCredentialsError(StreamError):
    def __init__(self) -> None:
        super().__init__("Kiro credentials not set. Provide an access token.")
