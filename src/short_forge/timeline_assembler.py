"""
Timeline Assembler - Concatenation, speed sync, narration mux and duration cap.

Each step takes a track handle and returns a new one; files are never
rewritten in place. Durations feeding the arithmetic are always measured
with ffprobe after the step that produced them.

Pipeline:
    clips --concat (-c copy)--> video track
          --setpts (if |Dv/Dn - 1| > tolerance)--> synced track
          --mux narration (-shortest)--> muxed
          --cap (-t 61 -c copy, if longer)--> capped
"""

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .config import EncodingConfig, TimingConfig
from .config_timeouts import TimeoutConfig
from .core.ffmpeg_atomics import ConcatListManager, run_ffmpeg_atomic
from .exceptions import EncodingError
from .ffmpeg_utils import VideoEncodingParams, build_audio_encoding_args, build_setpts_filter
from .logger import logger
from .media_probe import probe_duration
from .segment_extractor import Clip


@dataclass(frozen=True)
class AssembledTrack:
    """A video file on the output timeline and its measured duration."""
    path: Path
    duration: float
    rescaled: bool = False
    speed_factor: float = 1.0


# =============================================================================
# Concatenation
# =============================================================================

def concatenate_clips(
    clips: Sequence[Clip],
    output_path: Path,
    cancel_event: Optional[threading.Event] = None,
) -> AssembledTrack:
    """
    Stream-level join of clips in the given order (concat demuxer, no re-encode).

    Raises:
        EncodingError: no clips, or ffmpeg/ffprobe failed
    """
    if not clips:
        raise EncodingError("Nothing to concatenate: no clips")

    output_path = Path(output_path)
    planned = sum(c.duration for c in clips)
    with ConcatListManager(output_path.parent, output_path.stem) as concat:
        concat.write([c.path for c in clips])
        run_ffmpeg_atomic(
            ["-f", "concat", "-safe", "0", "-i", concat.path, "-c", "copy"],
            output_path,
            timeout=TimeoutConfig.encoding_for(planned),
            cancel_event=cancel_event,
        )

    duration = probe_duration(output_path, cancel_event=cancel_event)
    logger.info(f"   🔗 Concatenated {len(clips)} clips: {duration:.2f}s (planned {planned:.2f}s)")
    return AssembledTrack(path=output_path, duration=duration)


# =============================================================================
# Speed Synchronization
# =============================================================================

def compute_speed_factor(video_duration: float, narration_duration: float) -> float:
    """
    Playback rate that stretches video_duration onto narration_duration.

    Raises:
        EncodingError: narration_duration is not positive
    """
    if narration_duration <= 0:
        raise EncodingError(f"Narration duration must be positive, got {narration_duration}")
    return video_duration / narration_duration


def synchronize_speed(
    track: AssembledTrack,
    narration_duration: float,
    output_path: Path,
    timing: Optional[TimingConfig] = None,
    encoding: Optional[EncodingConfig] = None,
    cancel_event: Optional[threading.Event] = None,
) -> AssembledTrack:
    """
    Retime the track to the narration length.

    Within tolerance the input handle is returned unchanged. Otherwise the
    video is re-encoded with setpts so it lasts narration_duration.
    """
    timing = timing or TimingConfig()
    encoding = encoding or EncodingConfig()
    factor = compute_speed_factor(track.duration, narration_duration)

    if abs(factor - 1.0) <= timing.speed_tolerance:
        logger.info(f"   ⏱️ Speed factor {factor:.3f} within tolerance, no retime")
        return track

    logger.info(f"   ⏱️ Retiming video {track.duration:.2f}s -> {narration_duration:.2f}s (x{factor:.3f})")
    params = VideoEncodingParams(
        codec=encoding.codec, preset=encoding.preset, crf=encoding.crf, pix_fmt=encoding.pix_fmt
    )
    run_ffmpeg_atomic(
        ["-i", str(track.path), "-filter:v", build_setpts_filter(factor)] + params.to_args_no_audio(),
        output_path,
        timeout=TimeoutConfig.encoding_for(max(track.duration, narration_duration)),
        cancel_event=cancel_event,
    )
    duration = probe_duration(output_path, cancel_event=cancel_event)
    return AssembledTrack(path=Path(output_path), duration=duration, rescaled=True, speed_factor=factor)


# =============================================================================
# Mux & Cap
# =============================================================================

def mux_narration(
    track: AssembledTrack,
    narration_path: Path,
    output_path: Path,
    encoding: Optional[EncodingConfig] = None,
    cancel_event: Optional[threading.Event] = None,
) -> AssembledTrack:
    """
    Attach narration as the only audio stream, ending at the shorter stream.
    """
    encoding = encoding or EncodingConfig()
    cmd_args = [
        "-i", str(track.path),
        "-i", str(narration_path),
        "-c:v", "copy",
    ] + build_audio_encoding_args(encoding.audio_codec, encoding.audio_bitrate) + [
        "-map", "0:v:0",
        "-map", "1:a:0",
        "-shortest",
    ]
    run_ffmpeg_atomic(
        cmd_args,
        output_path,
        timeout=TimeoutConfig.encoding_for(track.duration),
        cancel_event=cancel_event,
    )
    duration = probe_duration(output_path, cancel_event=cancel_event)
    logger.info(f"   🔊 Narration muxed: {duration:.2f}s")
    return AssembledTrack(path=Path(output_path), duration=duration, rescaled=track.rescaled,
                          speed_factor=track.speed_factor)


def cap_duration(
    track: AssembledTrack,
    output_path: Path,
    timing: Optional[TimingConfig] = None,
    cancel_event: Optional[threading.Event] = None,
) -> AssembledTrack:
    """Truncate losslessly to max_output_seconds; shorter tracks pass through."""
    timing = timing or TimingConfig()
    limit = timing.max_output_seconds
    if track.duration <= limit:
        return track

    logger.info(f"   ✂️ Capping {track.duration:.2f}s to {limit:.0f}s")
    run_ffmpeg_atomic(
        ["-i", str(track.path), "-t", f"{limit:g}", "-c", "copy"],
        output_path,
        timeout=TimeoutConfig.encoding_for(limit),
        cancel_event=cancel_event,
    )
    return AssembledTrack(path=Path(output_path), duration=limit, rescaled=track.rescaled,
                          speed_factor=track.speed_factor)


# =============================================================================
# Source Audio
# =============================================================================

def extract_audio(
    video_path: Union[str, Path],
    output_path: Union[str, Path],
    cancel_event: Optional[threading.Event] = None,
) -> Path:
    """Extract the source's audio to mp3 for the transcription fallback."""
    return run_ffmpeg_atomic(
        ["-i", str(video_path), "-vn", "-acodec", "libmp3lame", "-q:a", "2"],
        output_path,
        timeout=TimeoutConfig.download(),
        cancel_event=cancel_event,
    )


__all__: List[str] = [
    "AssembledTrack",
    "concatenate_clips",
    "compute_speed_factor",
    "synchronize_speed",
    "mux_narration",
    "cap_duration",
    "extract_audio",
]
