"""
Common utility functions for Short Forge.

Usage:
    from short_forge.utils import clamp, word_count, strip_markdown_json
"""

import shutil
from pathlib import Path
from typing import Union

from .logger import logger


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """
    Clamp a value between low and high bounds.

    Example:
        >>> clamp(1.5, 0.0, 1.0)
        1.0
        >>> clamp(-0.5, 0.0, 1.0)
        0.0
    """
    if value < low:
        return low
    if value > high:
        return high
    return value


def word_count(text: str) -> int:
    """Number of whitespace-separated words in text."""
    return len((text or "").split())


def estimated_speech_seconds(text: str, words_per_minute: float = 150.0) -> float:
    """Spoken duration of text at a fixed speaking rate."""
    return word_count(text) / words_per_minute * 60.0


def strip_markdown_json(text: str) -> str:
    """
    Strip markdown code fences (```json ... ```) from a string.

    Handles both inline and fenced JSON blocks. Returns a trimmed string.
    """
    if not text:
        return ""

    cleaned = text.strip()
    if "```json" in cleaned:
        cleaned = cleaned.split("```json", 1)[1]
        cleaned = cleaned.split("```", 1)[0]
        return cleaned.strip()

    if "```" in cleaned:
        cleaned = cleaned.split("```", 1)[1]
        cleaned = cleaned.split("```", 1)[0]
        return cleaned.strip()

    return cleaned


def remove_quietly(path: Union[str, Path]) -> bool:
    """
    Best-effort removal of a file or directory tree.

    Cleanup never fails a job: errors are logged and reported through the
    return value only.

    Returns:
        True if the path is gone afterwards
    """
    path = Path(path)
    try:
        if path.is_dir():
            shutil.rmtree(path)
        elif path.exists():
            path.unlink()
        return True
    except OSError as e:
        logger.warning(f"Cleanup failed for {path}: {e}")
        return False


__all__ = [
    "clamp",
    "word_count",
    "estimated_speech_seconds",
    "strip_markdown_json",
    "remove_quietly",
]
