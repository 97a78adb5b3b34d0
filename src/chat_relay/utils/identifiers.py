"""Session identifier helpers."""

from __future__ import annotations

import secrets
import string
import time

_ALPHABET = string.digits + string.ascii_lowercase


def generate_session_id(*, now_ms: int | None = None) -> str:
    """Mint a ``session_<epoch-ms>_<random>`` token like the browser client does."""

    stamp = int(time.time() * 1000) if now_ms is None else now_ms
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(9))
    return f"session_{stamp}_{suffix}"


def resolve_session_id(candidate: str | None) -> str:
    """Accept a caller-supplied token as-is, or mint a new one."""

    if candidate and candidate.strip():
        return candidate
    return generate_session_id()


__all__ = ["generate_session_id", "resolve_session_id"]
