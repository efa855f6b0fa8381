"""Live coaching assistant: dialogue buffering, streamed replies and question suggestions."""

__version__ = "0.1.0"
