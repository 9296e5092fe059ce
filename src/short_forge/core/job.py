"""
Job - Lifecycle state, cancellation flag and artifact handles of one run.

State machine:

    CREATED -> ACQUIRING -> CAPTIONS_READY -> SCENES_PLANNED
            -> ASSEMBLING -> CAPTIONS_BURNED -> COMPLETE

FAILED is absorbing and reachable from every non-terminal state; the state
the job was in when it failed is kept as `failed_stage`. Cancellation is a
failure with ErrorKind.CANCELLED.
"""

import json
import os
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from ..collaborators import NarrationResult
from ..exceptions import ErrorKind, JobCancelledError
from ..logger import logger
from ..providers import VideoMetadata
from ..scene_planner import Scene
from ..segment_extractor import Clip
from ..subtitle_parser import Subtitle
from ..timeline_assembler import AssembledTrack


class JobState(Enum):
    CREATED = "created"
    ACQUIRING = "acquiring"
    CAPTIONS_READY = "captions_ready"
    SCENES_PLANNED = "scenes_planned"
    ASSEMBLING = "assembling"
    CAPTIONS_BURNED = "captions_burned"
    COMPLETE = "complete"
    FAILED = "failed"


PIPELINE: List[JobState] = [
    JobState.CREATED,
    JobState.ACQUIRING,
    JobState.CAPTIONS_READY,
    JobState.SCENES_PLANNED,
    JobState.ASSEMBLING,
    JobState.CAPTIONS_BURNED,
    JobState.COMPLETE,
]

TERMINAL_STATES: Set[JobState] = {JobState.COMPLETE, JobState.FAILED}

TRANSITIONS: Dict[JobState, Set[JobState]] = {
    state: {PIPELINE[i + 1], JobState.FAILED}
    for i, state in enumerate(PIPELINE[:-1])
}
TRANSITIONS[JobState.COMPLETE] = set()
TRANSITIONS[JobState.FAILED] = set()


@dataclass
class JobArtifacts:
    """Typed handles produced by each stage and consumed by the next."""
    video_id: Optional[str] = None
    metadata: Optional[VideoMetadata] = None
    source_video: Optional[Path] = None
    source_audio: Optional[Path] = None
    subtitles: List[Subtitle] = field(default_factory=list)
    narration_text: str = ""
    scenes: List[Scene] = field(default_factory=list)
    narration: Optional[NarrationResult] = None
    narration_duration: Optional[float] = None
    clips: List[Clip] = field(default_factory=list)
    track: Optional[AssembledTrack] = None
    captioned_video: Optional[Path] = None
    final_output: Optional[Path] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "video_id": self.video_id,
            "title": self.metadata.title if self.metadata else None,
            "source": self.metadata.source if self.metadata else None,
            "source_video": str(self.source_video) if self.source_video else None,
            "subtitle_count": len(self.subtitles),
            "scene_count": len(self.scenes),
            "clips": [str(c.path) for c in self.clips],
            "narration_duration": self.narration_duration,
            "track": str(self.track.path) if self.track else None,
            "track_duration": self.track.duration if self.track else None,
            "speed_factor": self.track.speed_factor if self.track else None,
            "final_output": str(self.final_output) if self.final_output else None,
        }


def new_job_id() -> str:
    return uuid.uuid4().hex[:12]


class Job:
    """A single URL-to-short run. Owns everything under `work_dir`."""

    STATE_FILE = "job.json"

    def __init__(self, url: str, work_dir: Path, job_id: Optional[str] = None):
        self.id = job_id or new_job_id()
        self.url = url
        self.work_dir = Path(work_dir)
        self.state = JobState.CREATED
        self.failed_stage: Optional[JobState] = None
        self.error_kind: Optional[ErrorKind] = None
        self.error: Optional[str] = None
        self.artifacts = JobArtifacts()
        self.created_at = datetime.now()
        self.updated_at = self.created_at
        self._cancel_event = threading.Event()
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"<Job {self.id} {self.state.value}>"

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel_event

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    # =========================================================================
    # State Machine
    # =========================================================================

    def transition(self, new_state: JobState) -> None:
        """
        Advance to the next pipeline state.

        Raises:
            ValueError: new_state is not reachable from the current state
        """
        if new_state == JobState.FAILED:
            raise ValueError("Use fail() to move a job to FAILED")
        with self._lock:
            if new_state not in TRANSITIONS[self.state]:
                raise ValueError(f"Illegal transition {self.state.value} -> {new_state.value}")
            logger.debug(f"Job {self.id}: {self.state.value} -> {new_state.value}")
            self.state = new_state
            self.updated_at = datetime.now()

    def fail(self, kind: ErrorKind, error: str) -> None:
        """
        Move to FAILED, remembering the stage that failed.

        Raises:
            ValueError: the job is already terminal
        """
        with self._lock:
            if self.state in TERMINAL_STATES:
                raise ValueError(f"Job {self.id} is already {self.state.value}")
            self.failed_stage = self.state
            self.error_kind = kind
            self.error = error
            self.state = JobState.FAILED
            self.updated_at = datetime.now()

    def cancel(self) -> None:
        """Request cancellation; honoured between stages and by running subprocesses."""
        if not self._cancel_event.is_set():
            logger.info(f"Cancellation requested for job {self.id}")
        self._cancel_event.set()

    def check_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise JobCancelledError(f"Job {self.id} cancelled")

    # =========================================================================
    # Persistence
    # =========================================================================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.id,
            "url": self.url,
            "state": self.state.value,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "artifacts": self.artifacts.to_dict(),
        }

    def write_state(self) -> Optional[Path]:
        """Write job.json into the working directory (atomic replace)."""
        path = self.work_dir / self.STATE_FILE
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
            os.replace(tmp_path, path)
        except OSError as e:
            logger.warning(f"Could not write state for job {self.id}: {e}")
            return None
        return path
