"""Stateful splitter for thinking tags in streamed content.

Content chunks arrive with arbitrary boundaries, so a tag may be split
across chunks.  The parser holds back just enough of the buffer to never
emit a partial tag as ordinary text.

States:
  before     - no open tag seen yet; text goes to the answer
  inside     - after an open tag; text goes to the thinking block
  extracted  - after the close tag; everything else is answer text
"""

from __future__ import annotations

import enum
import logging

from .stream import ContentWriter

_logger = logging.getLogger(__name__)

# Recognised (open, close) tag pairs.  Variants are never mixed.
THINKING_TAG_VARIANTS: tuple[tuple[str, str], ...] = (
    ("<thinking>", "</thinking>"),
    ("<think>", "</think>"),
    ("<reasoning>", "</reasoning>"),
    ("<thought>", "</thought>"),
)

MAX_OPEN_TAG_LEN = max(len(open_) for open_, _ in THINKING_TAG_VARIANTS)
MAX_CLOSE_TAG_LEN = max(len(close) for _, close in THINKING_TAG_VARIANTS)

_SEPARATOR = "\n\n"


class Phase(enum.Enum):
    BEFORE = "before"
    INSIDE = "inside"
    EXTRACTED = "extracted"


class ThinkingTagParser:
    """Routes content chunks to thinking and text slots of a writer."""

    def __init__(self, writer: ContentWriter) -> None:
        self._writer = writer
        self._buffer = ""
        self._close_tag = THINKING_TAG_VARIANTS[0][1]
        self.phase = Phase.BEFORE

    @property
    def text_block_index(self) -> int | None:
        return self._writer.text_index

    def feed(self, chunk: str) -> None:
        self._buffer += chunk
        while self._buffer:
            size, phase = len(self._buffer), self.phase
            if self.phase is Phase.BEFORE:
                self._before_thinking()
            elif self.phase is Phase.INSIDE:
                self._inside_thinking()
            else:
                self._writer.write_text(self._buffer)
                self._buffer = ""
            if len(self._buffer) == size and self.phase is phase:
                break

    def finalize(self) -> None:
        """Flush held-back text at end of input.

        An unterminated thinking block is closed anyway (truncated stream).
        """
        if self.phase is Phase.INSIDE:
            self._writer.write_thinking(self._buffer)
            self._writer.end_thinking()
        else:
            self._writer.write_text(self._buffer)
        self._buffer = ""

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _before_thinking(self) -> None:
        best_pos = -1
        best: tuple[str, str] | None = None
        for variant in THINKING_TAG_VARIANTS:
            pos = self._buffer.find(variant[0])
            if pos != -1 and (best_pos == -1 or pos < best_pos):
                best_pos, best = pos, variant
        if best is not None:
            open_tag, close_tag = best
            self._writer.write_text(self._buffer[:best_pos])
            self._buffer = self._buffer[best_pos + len(open_tag) :]
            self._close_tag = close_tag
            self.phase = Phase.INSIDE
            _logger.debug("Thinking block opened with %s", open_tag)
            return
        safe = len(self._buffer) - (MAX_OPEN_TAG_LEN - 1)
        if safe > 0:
            self._writer.write_text(self._buffer[:safe])
            self._buffer = self._buffer[safe:]

    def _inside_thinking(self) -> None:
        end = self._buffer.find(self._close_tag)
        if end != -1:
            self._writer.write_thinking(self._buffer[:end])
            self._writer.end_thinking()
            self._buffer = self._buffer[end + len(self._close_tag) :]
            if self._buffer.startswith(_SEPARATOR):
                self._buffer = self._buffer[len(_SEPARATOR) :]
            self.phase = Phase.EXTRACTED
            return
        safe = len(self._buffer) - (MAX_CLOSE_TAG_LEN - 1)
        if safe > 0:
            self._writer.write_thinking(self._buffer[:safe])
            self._buffer = self._buffer[safe:]
