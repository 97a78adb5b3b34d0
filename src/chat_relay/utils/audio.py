"""Helpers for wrapping raw PCM speech output into a playable container."""

from __future__ import annotations

import io
import re
import wave

DEFAULT_SAMPLE_RATE = 24000

_RATE_PATTERN = re.compile(r"rate=(\d+)")


def is_raw_pcm(mime_type: str) -> bool:
    normalized = mime_type.strip().lower()
    return normalized.startswith("audio/l16") or normalized.startswith("audio/pcm")


def parse_pcm_rate(mime_type: str, default: int = DEFAULT_SAMPLE_RATE) -> int:
    """Read the sample rate from a mime type such as ``audio/L16;rate=24000``."""

    match = _RATE_PATTERN.search(mime_type)
    if not match:
        return default
    rate = int(match.group(1))
    return rate if rate > 0 else default


def pcm_to_wav(
    pcm: bytes,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
    *,
    channels: int = 1,
    sample_width: int = 2,
) -> bytes:
    """Wrap 16-bit little-endian PCM in a WAV header."""

    # Keep frames aligned to the sample width.
    remainder = len(pcm) % (sample_width * channels)
    if remainder:
        pcm = pcm[:-remainder]

    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(sample_width)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buffer.getvalue()


__all__ = ["DEFAULT_SAMPLE_RATE", "is_raw_pcm", "parse_pcm_rate", "pcm_to_wav"]
