"""
Caption Burner - Burn narration captions into the final video.

Captions follow the output timeline, not the source: scenes are walked in
order and each one shows its narration for the time it takes to speak it
(never less than min_caption_seconds). Events are written to an ASS track
sized for the vertical canvas and burned in with ffmpeg's `ass` filter.

Usage:
    from short_forge.caption_burner import CaptionBurner, build_caption_events

    events = build_caption_events(scenes)
    burner = CaptionBurner()
    output = burner.burn(video_path, events, output_path)
"""

import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .config import EncodingConfig, TimingConfig
from .config_timeouts import TimeoutConfig
from .core.ffmpeg_atomics import run_ffmpeg_atomic
from .ffmpeg_utils import VideoEncodingParams, escape_filter_path
from .logger import logger
from .scene_planner import Scene
from .utils import estimated_speech_seconds, remove_quietly


@dataclass
class CaptionEvent:
    """A single caption on the output timeline."""
    start: float  # seconds
    end: float    # seconds
    text: str


@dataclass
class AssStyle:
    """
    The ASS `Default` style.

    Colours are ASS &HAABBGGRR. Alignment 2 is bottom center; border style 1
    is outline plus drop shadow.
    """
    fontname: str = "Arial"
    fontsize: int = 60
    primary_colour: str = "&H00FFFFFF"
    secondary_colour: str = "&H000000FF"
    outline_colour: str = "&H00000000"
    back_colour: str = "&H80000000"
    bold: int = -1
    border_style: int = 1
    outline: int = 3
    shadow: int = 0
    alignment: int = 2
    margin_l: int = 50
    margin_r: int = 50
    margin_v: int = 100

    def to_style_line(self) -> str:
        fields = [
            "Default", self.fontname, self.fontsize,
            self.primary_colour, self.secondary_colour, self.outline_colour, self.back_colour,
            self.bold, 0, 0, 0,   # italic, underline, strikeout
            100, 100, 0, 0,       # scale x/y, spacing, angle
            self.border_style, self.outline, self.shadow, self.alignment,
            self.margin_l, self.margin_r, self.margin_v,
            1,                    # encoding
        ]
        return "Style: " + ",".join(str(f) for f in fields)


STYLE_FORMAT = (
    "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, "
    "BackColour, Bold, Italic, Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, "
    "BorderStyle, Outline, Shadow, Alignment, MarginL, MarginR, MarginV, Encoding"
)
EVENT_FORMAT = "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text"


# =============================================================================
# Event Timing
# =============================================================================

def wrap_caption_text(text: str, wrap_chars: int = 40) -> str:
    """
    Insert an ASS hard break at the first space at or after wrap_chars.

    Applied repeatedly, so a long line breaks roughly every wrap_chars
    characters.
    """
    pattern = re.compile(r"(.{%d,}?)\s" % wrap_chars)
    return pattern.sub(r"\1\\N", text)


def _sanitize_ass_text(text: str) -> str:
    # braces open override blocks in ASS
    text = text.replace("{", "(").replace("}", ")")
    return re.sub(r"\s+", " ", text).strip()


def build_caption_events(
    scenes: Sequence[Scene],
    timing: Optional[TimingConfig] = None,
) -> List[CaptionEvent]:
    """One event per scene, laid end to end from t=0."""
    timing = timing or TimingConfig()
    events = []
    cursor = 0.0
    for scene in scenes:
        duration = max(
            timing.min_caption_seconds,
            estimated_speech_seconds(scene.narration_text, timing.words_per_minute),
        )
        text = wrap_caption_text(_sanitize_ass_text(scene.narration_text), timing.caption_wrap_chars)
        events.append(CaptionEvent(start=cursor, end=cursor + duration, text=text))
        cursor += duration
    return events


# =============================================================================
# ASS Serialization
# =============================================================================

def format_ass_time(seconds: float) -> str:
    """
    Format seconds as ASS `H:MM:SS.cc`.

    >>> format_ass_time(3725.5)
    '1:02:05.50'
    """
    total_cs = max(0, int(round(seconds * 100)))
    h = total_cs // 360_000
    m = (total_cs % 360_000) // 6_000
    s = (total_cs % 6_000) // 100
    cs = total_cs % 100
    return f"{h}:{m:02d}:{s:02d}.{cs:02d}"


def render_ass_track(
    events: Sequence[CaptionEvent],
    width: int = 1080,
    height: int = 1920,
    style: Optional[AssStyle] = None,
) -> str:
    style = style or AssStyle()
    lines = [
        "[Script Info]",
        "ScriptType: v4.00+",
        f"PlayResX: {width}",
        f"PlayResY: {height}",
        "WrapStyle: 0",
        "",
        "[V4+ Styles]",
        STYLE_FORMAT,
        style.to_style_line(),
        "",
        "[Events]",
        EVENT_FORMAT,
    ]
    for event in events:
        lines.append(
            f"Dialogue: 0,{format_ass_time(event.start)},{format_ass_time(event.end)},Default,,0,0,0,,{event.text}"
        )
    return "\n".join(lines) + "\n"


# =============================================================================
# Burn-in
# =============================================================================

class CaptionBurner:
    """
    Burns an ASS caption track into a video.

    The intermediate .ass file lives next to the output and is removed after
    the burn whether it succeeded or not.
    """

    def __init__(
        self,
        style: Optional[AssStyle] = None,
        encoding: Optional[EncodingConfig] = None,
    ):
        self.style = style or AssStyle()
        self.encoding = encoding or EncodingConfig()

    def write_track(self, events: Sequence[CaptionEvent], ass_path: Path) -> Path:
        ass_path = Path(ass_path)
        ass_path.write_text(
            render_ass_track(events, self.encoding.frame_width, self.encoding.frame_height, self.style),
            encoding="utf-8",
        )
        return ass_path

    def burn(
        self,
        video_path: Path,
        events: Sequence[CaptionEvent],
        output_path: Path,
        duration_hint: float = 61.0,
        cancel_event: Optional[threading.Event] = None,
    ) -> Path:
        """
        Burn events into video_path, writing output_path.

        Video is re-encoded; audio is copied.

        Raises:
            EncodingError: ffmpeg failed
        """
        video = Path(video_path)
        output_path = Path(output_path)
        ass_path = output_path.with_suffix(".ass")

        self.write_track(events, ass_path)
        logger.info(f"   💬 Burning {len(events)} captions...")

        params = VideoEncodingParams(
            codec=self.encoding.codec,
            preset=self.encoding.preset,
            crf=self.encoding.crf,
            pix_fmt=self.encoding.pix_fmt,
        )
        try:
            run_ffmpeg_atomic(
                ["-i", str(video), "-vf", f"ass={escape_filter_path(str(ass_path.resolve()))}"]
                + params.to_args(include_audio_copy=True),
                output_path,
                timeout=TimeoutConfig.encoding_for(duration_hint),
                cancel_event=cancel_event,
            )
        finally:
            remove_quietly(ass_path)

        return output_path
