"""Utility helpers for the chat relay."""

from .identifiers import generate_session_id, resolve_session_id

__all__ = ["generate_session_id", "resolve_session_id"]
