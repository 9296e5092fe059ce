"""
Segment Extractor - Cuts one reframed, silent clip per scene.

Each clip starts at the scene's source start and lasts long enough to cover
its narration at the nominal speaking rate plus padding, bounded to
[min_clip_seconds, max_clip_seconds]. Frames are scaled to cover the
vertical canvas and center-cropped, never letterboxed. Source audio is
dropped; narration is attached later.

Usage:
    clips = extract_clips(source_path, scenes, job_dir / "clips", workers=4)
"""

import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .config import EncodingConfig, TimingConfig
from .config_timeouts import TimeoutConfig
from .core.ffmpeg_atomics import run_ffmpeg_atomic
from .ffmpeg_utils import VideoEncodingParams, build_cover_crop_filters, build_filter_chain
from .logger import logger
from .scene_planner import Scene
from .utils import clamp, estimated_speech_seconds


@dataclass
class Clip:
    """A materialized scene segment on disk."""
    index: int
    path: Path
    duration: float  # planned duration in seconds
    scene: Scene


def clip_duration(text: str, timing: Optional[TimingConfig] = None) -> float:
    """
    Planned clip length for a narration sentence.

    >>> clip_duration(" ".join(["word"] * 10))
    4.4
    """
    timing = timing or TimingConfig()
    spoken = estimated_speech_seconds(text, timing.words_per_minute) * timing.clip_padding
    return round(clamp(spoken, timing.min_clip_seconds, timing.max_clip_seconds), 3)


def extract_clip(
    source: Path,
    scene: Scene,
    index: int,
    output_dir: Path,
    timing: Optional[TimingConfig] = None,
    encoding: Optional[EncodingConfig] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Clip:
    """
    Extract [start, start + clip_duration) of the source as a 1080x1920 clip.

    Raises:
        EncodingError: ffmpeg failed
    """
    timing = timing or TimingConfig()
    encoding = encoding or EncodingConfig()
    duration = clip_duration(scene.narration_text, timing)
    output_path = Path(output_dir) / f"clip_{index:03d}.mp4"

    params = VideoEncodingParams(
        codec=encoding.codec,
        preset=encoding.preset,
        crf=encoding.crf,
        pix_fmt=encoding.pix_fmt,
    )
    vf = build_filter_chain(build_cover_crop_filters(encoding.frame_width, encoding.frame_height))
    cmd_args = [
        "-ss", f"{scene.start_time:.3f}",
        "-i", str(source),
        "-t", f"{duration:.3f}",
        "-vf", vf,
    ] + params.to_args_no_audio()

    run_ffmpeg_atomic(
        cmd_args,
        output_path,
        timeout=TimeoutConfig.encoding_for(duration),
        cancel_event=cancel_event,
    )
    logger.debug(f"Clip {index}: {scene.start_time:.2f}s +{duration:.2f}s -> {output_path.name}")
    return Clip(index=index, path=output_path, duration=duration, scene=scene)


def extract_clips(
    source: Path,
    scenes: Sequence[Scene],
    output_dir: Path,
    workers: int = 1,
    timing: Optional[TimingConfig] = None,
    encoding: Optional[EncodingConfig] = None,
    cancel_event: Optional[threading.Event] = None,
) -> List[Clip]:
    """
    Extract every scene, returning clips in scene order.

    Extraction fans out over a thread pool; results are reassembled by scene
    index regardless of completion order. The first failure is raised once
    pending extractions have been cancelled.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    scenes = list(scenes)

    if workers <= 1 or len(scenes) <= 1:
        return [
            extract_clip(source, scene, idx, output_dir, timing, encoding, cancel_event)
            for idx, scene in enumerate(scenes)
        ]

    logger.info(f"   Extracting {len(scenes)} clips with {workers} workers...")
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="extract") as executor:
        futures = {
            executor.submit(extract_clip, source, scene, idx, output_dir, timing, encoding, cancel_event): idx
            for idx, scene in enumerate(scenes)
        }
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)
        for future in pending:
            future.cancel()

        clips: List[Optional[Clip]] = [None] * len(scenes)
        # without a failure every future is in `done`
        for future in done:
            error = future.exception()
            if error is not None:
                logger.error(f"Clip {futures[future]} extraction failed: {error}")
                raise error
            clip = future.result()
            clips[clip.index] = clip

    return [clip for clip in clips if clip is not None]
