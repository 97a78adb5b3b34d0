"""Streaming Gemini chat relay with session history and speech synthesis."""

__version__ = "0.1.0"
