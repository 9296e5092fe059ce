"""
FFmpeg/FFprobe command helpers.

Centralizes command building so the extractor, assembler and caption burner
share one way of spelling codecs, filters and standard flags.
"""

from dataclasses import dataclass
from typing import List, Optional


def _has_flag(args: List[str], flags: List[str]) -> bool:
    return any(flag in args for flag in flags)


def build_ffmpeg_cmd(
    args: List[str],
    *,
    overwrite: bool = True,
    hide_banner: bool = True,
    loglevel: Optional[str] = "error",
) -> List[str]:
    """
    Build a ffmpeg command list with optional standard flags.
    """
    cmd = ["ffmpeg"]
    if overwrite and not _has_flag(args, ["-y", "-n"]):
        cmd.append("-y")
    if hide_banner and "-hide_banner" not in args:
        cmd.append("-hide_banner")
    if loglevel and "-loglevel" not in args:
        cmd.extend(["-loglevel", loglevel])
    return cmd + args


def build_ffprobe_cmd(args: List[str], *, verbosity: Optional[str] = "error") -> List[str]:
    """
    Build a ffprobe command list with optional verbosity.
    """
    cmd = ["ffprobe"]
    if verbosity and "-v" not in args:
        cmd.extend(["-v", verbosity])
    return cmd + args


# =============================================================================
# Video Encoding Parameters
# =============================================================================

@dataclass
class VideoEncodingParams:
    """
    Encapsulates video encoding parameters to avoid repetition.

    Usage:
        params = VideoEncodingParams(codec="libx264", preset="fast", crf=23)
        cmd.extend(params.to_args_no_audio())
    """
    codec: str = "libx264"
    preset: str = "fast"
    crf: int = 23
    pix_fmt: str = "yuv420p"

    def to_args(self, *, include_audio_copy: bool = True) -> List[str]:
        args = [
            "-c:v", self.codec,
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-pix_fmt", self.pix_fmt,
        ]
        if include_audio_copy:
            args.extend(["-c:a", "copy"])
        return args

    def to_args_no_audio(self) -> List[str]:
        """Video-only operations: encoder args followed by -an."""
        return self.to_args(include_audio_copy=False) + ["-an"]


def build_audio_encoding_args(
    codec: str = "aac",
    bitrate: str = "192k",
) -> List[str]:
    """
    Returns:
        List like ["-c:a", "aac", "-b:a", "192k"]
    """
    return ["-c:a", codec, "-b:a", bitrate]


# =============================================================================
# Filter Helpers
# =============================================================================

def build_filter_chain(filters: List[str], separator: str = ",") -> str:
    """
    Join filter expressions into a single -vf chain, skipping empty entries.

    Usage:
        chain = build_filter_chain(["scale=1080:1920", "crop=1080:1920"])
        # Returns: "scale=1080:1920,crop=1080:1920"
    """
    valid_filters = [f for f in filters if f and f.strip()]
    return separator.join(valid_filters)


def build_cover_crop_filters(width: int, height: int) -> List[str]:
    """
    Scale-to-cover then center-crop to an exact frame.

    The source is scaled up until it covers the frame on both axes with its
    aspect ratio preserved, then the overflow is cropped equally from both
    sides. No letterboxing.
    """
    return [
        f"scale={width}:{height}:force_original_aspect_ratio=increase",
        f"crop={width}:{height}",
        "setsar=1",
    ]


def build_setpts_filter(speed_factor: float) -> str:
    """PTS multiplier that makes a track play speed_factor times faster."""
    return f"setpts={1.0 / speed_factor:.6f}*PTS"


def escape_filter_path(path: str) -> str:
    """
    Escape a filesystem path for use as a filter option value.

    Backslashes, colons and single quotes are significant to the filtergraph
    parser.
    """
    escaped = path.replace("\\", "/")
    escaped = escaped.replace(":", "\\:")
    escaped = escaped.replace("'", "\\'")
    return escaped
