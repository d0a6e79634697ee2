"""handlerkit: file-based command, event and validation handlers for chat bots."""

__version__ = "1.0.0"
