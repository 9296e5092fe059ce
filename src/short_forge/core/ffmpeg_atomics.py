"""
FFmpeg Atomic Write Utilities.

Every assembly step writes to a temp path and only renames it to the final
name after ffmpeg exits cleanly, so a failed, timed-out or cancelled run
never leaves a file that a later stage could mistake for a usable artifact.

Usage:
    from short_forge.core.ffmpeg_atomics import run_ffmpeg_atomic, ConcatListManager

    run_ffmpeg_atomic(["-i", src, "-c", "copy"], dst, timeout=120)

    with ConcatListManager(work_dir, "clips") as concat:
        concat.write(clip_paths)
        run_ffmpeg_atomic(["-f", "concat", "-safe", "0", "-i", concat.path, "-c", "copy"], out)
"""

import os
import subprocess
import threading
from pathlib import Path
from typing import List, Optional, Union

from ..exceptions import EncodingError, JobCancelledError, StageTimeoutError
from ..ffmpeg_utils import build_ffmpeg_cmd
from ..logger import logger
from .cmd_runner import CommandCancelled, run_command


def temp_path_for(output_path: Union[str, Path]) -> Path:
    """Temp sibling of output_path that keeps the container extension."""
    output_path = Path(output_path)
    return Path(str(output_path) + ".tmp" + output_path.suffix)


def _discard(path: Path) -> None:
    if path.exists():
        try:
            path.unlink()
            logger.debug(f"Discarded partial output: {path}")
        except OSError as e:
            logger.warning(f"Could not remove partial output {path}: {e}")


def run_ffmpeg_atomic(
    cmd_args: List[str],
    output_path: Union[str, Path],
    timeout: Optional[float] = None,
    cancel_event: Optional[threading.Event] = None,
    log_output: bool = False,
) -> Path:
    """
    Execute an ffmpeg command with atomic write (temp -> rename).

    Args:
        cmd_args: FFmpeg arguments (excluding output path)
        output_path: Final output file path
        timeout: Command timeout in seconds
        cancel_event: Job cancellation flag, polled while ffmpeg runs
        log_output: Whether to log FFmpeg output

    Returns:
        output_path as a Path

    Raises:
        EncodingError: non-zero exit or no output produced
        StageTimeoutError: the command exceeded timeout
        JobCancelledError: the job was cancelled mid-command
    """
    output_path = Path(output_path)
    temp_path = temp_path_for(output_path)
    cmd = build_ffmpeg_cmd(list(cmd_args) + [str(temp_path)])

    try:
        result = run_command(
            cmd,
            capture_output=True,
            timeout=timeout,
            check=False,
            log_output=log_output,
            cancel_event=cancel_event,
        )
    except subprocess.TimeoutExpired as e:
        _discard(temp_path)
        raise StageTimeoutError(f"ffmpeg timed out after {timeout}s writing {output_path.name}") from e
    except CommandCancelled as e:
        _discard(temp_path)
        raise JobCancelledError(f"Cancelled while writing {output_path.name}") from e
    except OSError as e:
        _discard(temp_path)
        raise EncodingError(f"Could not start ffmpeg: {e}", command=cmd) from e

    if result.returncode != 0:
        _discard(temp_path)
        raise EncodingError(
            f"ffmpeg exited with {result.returncode} writing {output_path.name}",
            command=cmd,
            stderr=(result.stderr or "").strip(),
        )

    if not temp_path.exists():
        raise EncodingError(f"FFmpeg did not create output: {temp_path}", command=cmd)

    os.replace(temp_path, output_path)
    logger.debug(f"Atomic write: {temp_path} -> {output_path}")
    return output_path


class ConcatListManager:
    """
    Manages FFmpeg concat demuxer list files with automatic cleanup.

    Handles escaping of file paths and ensures the list file is removed even
    on error.
    """

    def __init__(self, output_dir: Union[str, Path], prefix: str = "concat"):
        self.output_dir = Path(output_dir)
        self.prefix = prefix
        self._path: Optional[Path] = None

    @property
    def path(self) -> str:
        if self._path is None:
            self._path = self.output_dir / f"{self.prefix}_concat.txt"
        return str(self._path)

    def write(self, clip_paths: List[Union[str, Path]]) -> str:
        """
        Write clip paths to the concat list file, in the given order.

        Returns:
            Path to the created concat list file
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)

        with open(self.path, "w", encoding="utf-8") as f:
            for clip_path in clip_paths:
                # concat demuxer quoting: close quote, escaped quote, reopen
                escaped_path = str(Path(clip_path).resolve()).replace("'", "'\\''")
                f.write(f"file '{escaped_path}'\n")

        logger.debug(f"Created concat list with {len(clip_paths)} files: {self.path}")
        return self.path

    def cleanup(self) -> None:
        if self._path and self._path.exists():
            try:
                self._path.unlink()
                logger.debug(f"Cleaned up concat list: {self._path}")
            except OSError as e:
                logger.warning(f"Could not remove concat list {self._path}: {e}")

    def __enter__(self) -> "ConcatListManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cleanup()


__all__ = [
    "run_ffmpeg_atomic",
    "temp_path_for",
    "ConcatListManager",
]
