"""
Subtitle Parser - Normalizes SRT and WebVTT caption documents.

Both containers are handled by one block-oriented parser: documents are
split on blank lines, each block's range line is located by its `-->`
delimiter, and both endpoints go through a single timestamp parser that
accepts either `H:MM:SS.fff` or `MM:SS.fff` with a comma or dot before the
fraction. Blocks that cannot be parsed are dropped, never fatal.

Usage:
    from short_forge.subtitle_parser import parse_captions, parse_caption_file

    subtitles = parse_caption_file(Path("video.en.vtt"))
    for sub in subtitles:
        print(sub.start, sub.end, sub.text)
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .exceptions import NoCaptionsError
from .logger import logger


@dataclass(frozen=True)
class Subtitle:
    """A single caption cue on the source timeline."""
    start: float  # seconds
    end: float    # seconds
    text: str

    @property
    def duration(self) -> float:
        return self.end - self.start


# =============================================================================
# Timestamps
# =============================================================================

TIMESTAMP_RE = re.compile(
    r"^(?:(?P<h>\d+):)?(?P<m>\d{1,2}):(?P<s>\d{1,2})(?:[.,](?P<frac>\d{1,3}))?$"
)
RANGE_DELIMITER = "-->"
MARKUP_RE = re.compile(r"<[^>]*>|\{\\[^}]*\}")
BLOCK_SPLIT_RE = re.compile(r"\n\s*\n")


def parse_timestamp(value: str) -> float:
    """
    Parse `H:MM:SS[.,]fff` or `MM:SS[.,]fff` into seconds.

    >>> parse_timestamp("00:01:02,500")
    62.5
    >>> parse_timestamp("01:02.500")
    62.5

    Raises:
        ValueError: the text is not a timestamp
    """
    match = TIMESTAMP_RE.match(value.strip())
    if not match:
        raise ValueError(f"Not a timestamp: {value!r}")
    hours = int(match.group("h") or 0)
    minutes = int(match.group("m"))
    seconds = int(match.group("s"))
    frac = match.group("frac") or "0"
    # "5" means 500ms, "05" means 50ms
    millis = int(frac.ljust(3, "0"))
    return hours * 3600 + minutes * 60 + seconds + millis / 1000.0


def format_srt_timestamp(seconds: float) -> str:
    """Format seconds as `HH:MM:SS,mmm`."""
    total_ms = max(0, int(round(seconds * 1000)))
    hh = total_ms // 3_600_000
    mm = (total_ms % 3_600_000) // 60_000
    ss = (total_ms % 60_000) // 1_000
    ms = total_ms % 1_000
    return f"{hh:02d}:{mm:02d}:{ss:02d},{ms:03d}"


# =============================================================================
# Documents
# =============================================================================

def _parse_range(line: str) -> Optional[tuple]:
    left, _, right = line.partition(RANGE_DELIMITER)
    # WebVTT cue settings follow the end timestamp ("00:01.000 align:start")
    right_parts = right.strip().split()
    if not right_parts:
        return None
    try:
        return parse_timestamp(left), parse_timestamp(right_parts[0])
    except ValueError:
        return None


def _parse_block(block: str) -> Optional[Subtitle]:
    lines = [line.strip() for line in block.splitlines()]
    range_idx = next((i for i, line in enumerate(lines) if RANGE_DELIMITER in line), None)
    if range_idx is None:
        return None

    parsed = _parse_range(lines[range_idx])
    if parsed is None:
        return None
    start, end = parsed
    if start >= end:
        return None

    text_lines = [MARKUP_RE.sub("", line).strip() for line in lines[range_idx + 1:]]
    text = " ".join(line for line in text_lines if line)
    text = re.sub(r"\s+", " ", text).strip()
    if not text:
        return None
    return Subtitle(start=start, end=end, text=text)


def parse_captions(document: str) -> List[Subtitle]:
    """
    Parse an SRT or WebVTT document into subtitles ordered by start time.

    Headers (`WEBVTT`, `NOTE` and `STYLE` blocks), cue numbers and cue
    identifiers are skipped because they carry no range line. Malformed
    blocks are dropped silently.
    """
    normalized = document.replace("\r\n", "\n").replace("\r", "\n").lstrip("\ufeff")
    blocks = [b for b in BLOCK_SPLIT_RE.split(normalized.strip()) if b.strip()]

    subtitles = []
    dropped = 0
    for block in blocks:
        subtitle = _parse_block(block)
        if subtitle is None:
            dropped += 1
            continue
        subtitles.append(subtitle)

    if dropped:
        logger.debug(f"Dropped {dropped} caption block(s) without usable timing or text")

    # stable sort keeps source order for equal starts
    subtitles.sort(key=lambda s: s.start)
    return subtitles


def parse_caption_file(path: Path) -> List[Subtitle]:
    """Read and parse a caption file (utf-8, BOM tolerated)."""
    return parse_captions(Path(path).read_text(encoding="utf-8-sig", errors="replace"))


def require_subtitles(subtitles: Sequence[Subtitle]) -> List[Subtitle]:
    """
    Raises:
        NoCaptionsError: the list is empty
    """
    if not subtitles:
        raise NoCaptionsError("No usable caption cues found")
    return list(subtitles)


def serialize_srt(subtitles: Sequence[Subtitle]) -> str:
    """Render subtitles as an SRT document."""
    out_lines: List[str] = []
    for idx, sub in enumerate(subtitles, start=1):
        out_lines.append(str(idx))
        out_lines.append(f"{format_srt_timestamp(sub.start)} --> {format_srt_timestamp(sub.end)}")
        out_lines.append(sub.text)
        out_lines.append("")
    return "\n".join(out_lines)


# =============================================================================
# Planner Context
# =============================================================================

def _format_clock(seconds: float) -> str:
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}:{secs:02d}"


def format_subtitle_context(subtitles: Sequence[Subtitle], limit: int = 200) -> str:
    """
    Render `[m:ss-m:ss] text` lines for the scene-planning collaborator.

    Only the first `limit` cues are included to bound prompt size.
    """
    return "\n".join(
        f"[{_format_clock(s.start)}-{_format_clock(s.end)}] {s.text}"
        for s in list(subtitles)[:limit]
    )
