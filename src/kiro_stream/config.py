"""Configuration for kiro-stream.

Config discovery (first match wins):
  1. explicit ``path`` argument
  2. ``./kiro_stream.yaml``
  3. ``~/.config/kiro-stream/config.yaml``
  4. Built-in defaults
"""

from __future__ import annotations

import dataclasses
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

_logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://q.us-east-1.amazonaws.com/generateAssistantResponse"


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

@dataclass
class RetryTiming:
    """Read deadlines in seconds.

    Mutable so callers (and tests) can shorten the first-chunk wait.
    """

    first_chunk_timeout: float = 15.0
    idle_timeout: float = 30.0


@dataclass
class RequestLimits:
    """Size bounds handed to the request builder.

    The orchestrator scales these by the reduction factor after a
    size-related rejection; the builder is responsible for honouring them.
    """

    history_chars: int = 600_000
    tool_result_chars: int = 50_000
    system_prompt_chars: int = 5_000
    min_tools: int = 3
    reduction_factor: float = 1.0

    def scaled(self, factor: float) -> RequestLimits:
        """Return a copy with each size bound multiplied by *factor*."""
        return RequestLimits(
            history_chars=math.floor(self.history_chars * factor),
            tool_result_chars=math.floor(self.tool_result_chars * factor),
            system_prompt_chars=math.floor(self.system_prompt_chars * factor),
            min_tools=self.min_tools,
            reduction_factor=self.reduction_factor * factor,
        )

    def max_tools(self, available: int) -> int:
        """Number of tool specs to send out of *available*."""
        if self.reduction_factor >= 1.0:
            return available
        return max(self.min_tools, math.floor(available * self.reduction_factor))


@dataclass
class StreamConfig:
    """Top-level config for one orchestrator."""

    endpoint: str = DEFAULT_ENDPOINT

    # Retry budget: max_retries retries => max_retries + 1 attempts
    max_retries: int = 3
    reduction_step: float = 0.7

    # Used to turn a context-usage percentage into input tokens
    context_window: int = 200_000

    timing: RetryTiming = field(default_factory=RetryTiming)
    limits: RequestLimits = field(default_factory=RequestLimits)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./kiro_stream.yaml"),
    Path.home() / ".config" / "kiro-stream" / "config.yaml",
]


def _parse_section(cls: type, raw: dict[str, Any] | None) -> Any:
    if not raw:
        return cls()
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        _logger.warning("Ignoring unknown %s keys: %s", cls.__name__, ", ".join(unknown))
    return cls(**{k: v for k, v in raw.items() if k in known and v is not None})


def load_config(path: str | Path | None = None) -> StreamConfig:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Returns
    -------
    StreamConfig
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s, using defaults", path)
            return StreamConfig()
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found, using defaults")
        return StreamConfig()

    _logger.info("Loading config from %s", config_path)
    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    defaults = StreamConfig()
    return StreamConfig(
        endpoint=raw.get("endpoint", defaults.endpoint),
        max_retries=raw.get("max_retries", defaults.max_retries),
        reduction_step=raw.get("reduction_step", defaults.reduction_step),
        context_window=raw.get("context_window", defaults.context_window),
        timing=_parse_section(RetryTiming, raw.get("timing")),
        limits=_parse_section(RequestLimits, raw.get("limits")),
    )
