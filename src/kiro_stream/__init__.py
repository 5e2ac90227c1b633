"""kiro-stream: decode the Kiro assistant event stream into ordered events."""

__version__ = "0.1.0"
