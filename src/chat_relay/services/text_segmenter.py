"""Text sanitization and segmentation for the speech synthesis pipeline."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

SENTENCE_DELIMITERS = [".", "!", "?"]

_CODE_BLOCK = re.compile(r"```.*?```", re.DOTALL)
_FENCE_MARKER = re.compile(r"```[\w+-]*[ \t]*(?=\n|$)|```")
_INLINE_CODE = re.compile(r"`([^`]*)`")
_HEADING = re.compile(r"^\s{0,3}#{1,6}\s*", re.MULTILINE)
_IMAGE = re.compile(r"!\[([^\]]*)\]\([^)]*\)")
_LINK = re.compile(r"\[([^\]]+)\]\([^)]*\)")
_BOLD_STAR = re.compile(r"(?<!\w)\*\*(?!\s)(.+?)(?<!\s)\*\*(?!\w)", re.DOTALL)
# A lone identifier between double underscores is a dunder name, not bold.
_BOLD_UNDERSCORE = re.compile(
    r"(?<!\w)__(?!\w+__(?!\w))(?!\s)(.+?)(?<!\s)__(?!\w)", re.DOTALL
)
_ITALIC_STAR = re.compile(r"(?<!\w)\*(?![\s*])(.+?)(?<![\s*])\*(?!\w)", re.DOTALL)
_ITALIC_UNDERSCORE = re.compile(r"(?<!\w)_(?![\s_])(.+?)(?<![\s_])_(?!\w)", re.DOTALL)
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class TextUnit:
    """A bounded slice of sanitized prose destined for one synthesis call."""

    index: int
    total: int
    text: str

    @property
    def is_last(self) -> bool:
        return self.index == self.total - 1


def compile_boundary_pattern(delimiters: list[str]) -> Optional[re.Pattern]:
    """
    Compile a regex matching the whitespace that follows any delimiter.

    Only single-character delimiters are supported so the lookbehind stays
    fixed-width.
    """
    if not delimiters:
        return None
    escaped = "".join(re.escape(delim) for delim in delimiters if len(delim) == 1)
    if not escaped:
        return None
    return re.compile(rf"(?<=[{escaped}])\s+")


_SENTENCE_BOUNDARY = compile_boundary_pattern(SENTENCE_DELIMITERS)


def sanitize(text: str | None) -> str:
    """Strip markdown syntax and collapse whitespace so prose reads naturally."""

    if not text:
        return ""

    cleaned = _CODE_BLOCK.sub(" ", text)
    cleaned = _FENCE_MARKER.sub(" ", cleaned)
    cleaned = _INLINE_CODE.sub(r"\1", cleaned)
    cleaned = _HEADING.sub("", cleaned)
    cleaned = _IMAGE.sub(r"\1", cleaned)
    cleaned = _LINK.sub(r"\1", cleaned)
    cleaned = _BOLD_STAR.sub(r"\1", cleaned)
    cleaned = _BOLD_UNDERSCORE.sub(r"\1", cleaned)
    cleaned = _ITALIC_STAR.sub(r"\1", cleaned)
    cleaned = _ITALIC_UNDERSCORE.sub(r"\1", cleaned)
    return _WHITESPACE.sub(" ", cleaned).strip()


def _pack(pieces: list[str], max_length: int) -> list[str]:
    """Greedily join pieces with single spaces without exceeding ``max_length``."""

    units: list[str] = []
    current = ""
    for piece in pieces:
        if not piece:
            continue
        if not current:
            current = piece
        elif len(current) + 1 + len(piece) <= max_length:
            current = f"{current} {piece}"
        else:
            units.append(current)
            current = piece
    if current:
        units.append(current)
    return units


def segment(plain_text: str, max_length: int) -> list[str]:
    """
    Split sanitized text into units no longer than ``max_length``.

    Sentences are packed first. Any unit still over the limit is re-packed on
    word boundaries. A single word longer than the limit becomes its own unit
    so no content is ever dropped.
    """
    if max_length < 1:
        raise ValueError("max_length must be positive")
    if not plain_text:
        return []
    if len(plain_text) <= max_length:
        return [plain_text]

    if _SENTENCE_BOUNDARY is not None:
        sentences = _SENTENCE_BOUNDARY.split(plain_text)
    else:  # pragma: no cover - delimiters are a module constant
        sentences = [plain_text]

    units: list[str] = []
    for unit in _pack(sentences, max_length):
        if len(unit) <= max_length:
            units.append(unit)
            continue
        logger.debug("Splitting oversized unit (%d chars) on words", len(unit))
        units.extend(_pack(unit.split(" "), max_length))
    return units


def build_units(text: str, max_length: int) -> tuple[str, list[TextUnit]]:
    """Sanitize ``text`` and return it alongside its indexed units."""

    plain = sanitize(text)
    pieces = segment(plain, max_length)
    total = len(pieces)
    return plain, [
        TextUnit(index=index, total=total, text=piece)
        for index, piece in enumerate(pieces)
    ]


__all__ = [
    "SENTENCE_DELIMITERS",
    "TextUnit",
    "build_units",
    "compile_boundary_pattern",
    "sanitize",
    "segment",
]
