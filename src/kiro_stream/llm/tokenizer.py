"""Token counting with a lazily loaded tiktoken encoding."""

from __future__ import annotations

import functools
import logging

import tiktoken

_logger = logging.getLogger(__name__)

# GPT-4 family encoding
ENCODING_NAME = "cl100k_base"


@functools.lru_cache(maxsize=1)
def get_encoding() -> tiktoken.Encoding:
    """Load the shared encoding once; it is read-only afterwards."""
    _logger.debug("Loading tiktoken encoding %s", ENCODING_NAME)
    return tiktoken.get_encoding(ENCODING_NAME)


def count_tokens(text: str) -> int:
    if not text:
        return 0
    return len(get_encoding().encode(text, disallowed_special=()))
