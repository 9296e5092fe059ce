"""
Source Resolver - Extracts a video identifier from a user-supplied URL.

Recognized shapes, tried in order:
    https://www.youtube.com/watch?v=ID
    https://youtu.be/ID
    https://www.youtube.com/embed/ID
    https://www.youtube.com/shorts/ID
"""

import re
from typing import List, Pattern

from .exceptions import InvalidInputError

ID_CHARS = r"([^&\n?#]+)"

URL_PATTERNS: List[Pattern] = [
    re.compile(r"(?:youtube\.com/watch\?(?:[^#\n]*&)?v=)" + ID_CHARS),
    re.compile(r"(?:youtu\.be/)" + ID_CHARS),
    re.compile(r"(?:youtube\.com/embed/)" + ID_CHARS),
    re.compile(r"(?:youtube\.com/shorts/)" + ID_CHARS),
]


def extract_video_id(url: str) -> str:
    """
    Return the first identifier matched by URL_PATTERNS.

    Raises:
        InvalidInputError: no recognized shape matched
    """
    text = (url or "").strip()
    for pattern in URL_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    raise InvalidInputError(f"Unrecognized video URL: {url!r}")


def canonical_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"
