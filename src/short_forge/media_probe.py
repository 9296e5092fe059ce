"""
Media probing via ffprobe.

Durations used for synchronization and capping are always re-measured here,
never taken from estimates handed in by collaborators.
"""

import subprocess
import threading
from pathlib import Path
from typing import Optional, Union

from .config_timeouts import TimeoutConfig
from .core.cmd_runner import CommandCancelled, run_command
from .exceptions import JobCancelledError, MetadataExtractionError
from .ffmpeg_utils import build_ffprobe_cmd


def probe_duration(
    media_path: Union[str, Path],
    timeout: Optional[float] = None,
    cancel_event: Optional[threading.Event] = None,
) -> float:
    """
    Container duration of a media file in seconds.

    Raises:
        MetadataExtractionError: ffprobe failed or printed no usable number
    """
    media_path = Path(media_path)
    if not media_path.exists():
        raise MetadataExtractionError(f"Cannot probe missing file: {media_path}")

    cmd = build_ffprobe_cmd([
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        str(media_path),
    ])
    try:
        result = run_command(
            cmd,
            timeout=timeout or TimeoutConfig.probe(),
            check=False,
            cancel_event=cancel_event,
        )
    except CommandCancelled as e:
        raise JobCancelledError(f"Cancelled while probing {media_path.name}") from e
    except (subprocess.TimeoutExpired, OSError) as e:
        raise MetadataExtractionError(f"ffprobe failed for {media_path}: {e}", command=cmd) from e

    if result.returncode != 0:
        raise MetadataExtractionError(
            f"ffprobe failed for {media_path}",
            command=cmd,
            stderr=(result.stderr or result.stdout or "").strip(),
        )
    try:
        seconds = float((result.stdout or "").strip())
    except ValueError as e:
        raise MetadataExtractionError(f"Unable to parse duration from ffprobe for {media_path}") from e
    if seconds != seconds or seconds < 0:
        raise MetadataExtractionError(f"ffprobe reported invalid duration {seconds} for {media_path}")
    return seconds
