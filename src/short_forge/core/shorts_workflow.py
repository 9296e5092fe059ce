"""
Shorts Workflow - URL to captioned vertical short.

Pipeline (one stage per Job state):
1. Acquire: resolve video id, metadata and source media (fallback chain)
2. Captions: upstream captions, else transcription of the source audio
3. Plan: external planner, then scene validation (or synthesis)
4. Assemble: narration, clip extraction, concat, speed sync, mux, cap
5. Burn: ASS captions on the output timeline
6. Export: move to the output directory and purge the working directory

Stages run sequentially inside one job; independent jobs run in parallel
through JobRunner.
"""

import shutil
import threading
import traceback
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..acquisition import AcquisitionChain
from ..caption_burner import CaptionBurner, build_caption_events
from ..collaborators import NarrationSynthesizer, ScenePlanner, Transcriber
from ..config import Settings, get_settings
from ..exceptions import CollaboratorError, ErrorKind, NoCaptionsError, ShortForgeError
from ..logger import (
    configure_file_logging,
    log_error,
    log_phase,
    log_step,
    log_success,
    log_warning,
    logger,
    remove_file_logging,
)
from ..media_probe import probe_duration
from ..scene_planner import plan_scenes
from ..segment_extractor import extract_clips
from ..source_resolver import extract_video_id
from ..subtitle_parser import Subtitle, require_subtitles
from ..timeline_assembler import (
    cap_duration,
    concatenate_clips,
    extract_audio,
    mux_narration,
    synchronize_speed,
)
from ..utils import remove_quietly
from .job import Job, JobState, new_job_id


@dataclass
class JobResult:
    """Result of workflow execution."""
    success: bool
    job_id: str
    state: JobState
    output_path: Optional[str] = None
    failed_stage: Optional[JobState] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "success": self.success,
            "job_id": self.job_id,
            "state": self.state.value,
            "output_path": self.output_path,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error": self.error,
            "metadata": self.metadata,
            "duration_seconds": self.duration_seconds,
        }


class ShortsWorkflow:
    """
    Runs one job end to end.

    execute() never raises for job failures: every error is recorded on the
    Job (state FAILED with stage and ErrorKind) and reported in JobResult.
    """

    workflow_name = "Shorts Forge"

    def __init__(
        self,
        url: str,
        planner: ScenePlanner,
        synthesizer: NarrationSynthesizer,
        transcriber: Optional[Transcriber] = None,
        settings: Optional[Settings] = None,
        chain: Optional[AcquisitionChain] = None,
        job_id: Optional[str] = None,
    ):
        self.settings = settings or get_settings()
        self.planner = planner
        self.synthesizer = synthesizer
        self.transcriber = transcriber
        self.chain = chain or AcquisitionChain.from_settings(self.settings)
        job_id = job_id or new_job_id()
        self.job = Job(url, work_dir=self.settings.paths.job_dir(job_id), job_id=job_id)

    @property
    def cancel_event(self) -> threading.Event:
        return self.job.cancel_event

    def cancel(self) -> None:
        self.job.cancel()

    # =========================================================================
    # Template Method
    # =========================================================================

    def execute(self) -> JobResult:
        start_time = datetime.now()
        job = self.job
        self.settings.paths.ensure_directories()
        job.work_dir.mkdir(parents=True, exist_ok=True)
        handler = configure_file_logging(job.work_dir, job.id)

        log_phase(f"[{self.workflow_name}] Job {job.id}: {job.url}")
        try:
            self.acquire()
            job.check_cancelled()
            self.prepare_captions()
            job.check_cancelled()
            self.plan()
            job.check_cancelled()
            self.assemble()
            job.check_cancelled()
            self.burn_captions()
            job.check_cancelled()
            self.export()
        except ShortForgeError as e:
            self._record_failure(e.kind, e)
        except Exception as e:
            logger.error(f"[{self.workflow_name}] Unexpected error: {type(e).__name__}: {e}")
            logger.error(f"Full traceback:\n{traceback.format_exc()}")
            self._record_failure(ErrorKind.UNKNOWN, e)
        finally:
            remove_file_logging(handler)

        duration = (datetime.now() - start_time).total_seconds()
        if job.state == JobState.COMPLETE:
            self.cleanup()
            log_success(f"[{self.workflow_name}] Completed in {duration:.1f}s: {job.artifacts.final_output}")
        elif not self.settings.processing.keep_failed_artifacts:
            self.cleanup()

        return JobResult(
            success=job.state == JobState.COMPLETE,
            job_id=job.id,
            state=job.state,
            output_path=str(job.artifacts.final_output) if job.artifacts.final_output else None,
            failed_stage=job.failed_stage,
            error_kind=job.error_kind,
            error=job.error,
            metadata=job.artifacts.to_dict(),
            duration_seconds=duration,
        )

    def _record_failure(self, kind: ErrorKind, error: Exception) -> None:
        job = self.job
        message = f"{type(error).__name__}: {error}"
        stage = job.state
        job.fail(kind, message)
        log_error(f"[{self.workflow_name}] Job {job.id} failed in {stage.value} ({kind.value}): {message}")
        state_file = job.write_state()
        if state_file:
            logger.info(f"   Artifacts kept for diagnosis: {job.work_dir}")

    def _call_collaborator(self, name: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except ShortForgeError:
            raise
        except Exception as e:
            raise CollaboratorError(f"{name} failed: {type(e).__name__}: {e}", collaborator=name) from e

    # =========================================================================
    # Stages
    # =========================================================================

    def acquire(self) -> None:
        """Resolve the URL and fetch metadata plus source media."""
        job = self.job
        artifacts = job.artifacts
        artifacts.video_id = extract_video_id(job.url)

        job.transition(JobState.ACQUIRING)
        log_step(f"Acquiring {artifacts.video_id}...", "📥")
        artifacts.metadata = self.chain.resolve_metadata(artifacts.video_id, cancel_event=job.cancel_event)
        logger.info(f"   '{artifacts.metadata.title}' ({artifacts.metadata.duration:.0f}s)")
        artifacts.source_video = self.chain.download_media(
            artifacts.video_id, job.work_dir, cancel_event=job.cancel_event
        )

    def prepare_captions(self) -> None:
        """Upstream captions, falling back to transcription when there are none."""
        job = self.job
        artifacts = job.artifacts
        try:
            artifacts.subtitles = require_subtitles(self.chain.fetch_captions(
                artifacts.video_id, job.work_dir, cancel_event=job.cancel_event
            ))
        except NoCaptionsError as e:
            logger.info(f"   {e}; falling back to transcription")
            artifacts.subtitles = self._transcribe()
        job.transition(JobState.CAPTIONS_READY)

    def _transcribe(self) -> List[Subtitle]:
        """Transcript of the source audio. Empty when there is no transcriber."""
        job = self.job
        artifacts = job.artifacts
        if self.transcriber is None:
            log_warning("No captions and no transcriber; scene bounds use the source duration")
            return []

        log_step("Transcribing source audio...", "🎙️")
        artifacts.source_audio = extract_audio(
            artifacts.source_video, job.work_dir / "source_audio.mp3", cancel_event=job.cancel_event
        )
        subtitles = list(self._call_collaborator(
            "transcriber", self.transcriber.transcribe, artifacts.source_audio
        ) or [])
        if not subtitles:
            log_warning("Transcript is empty; scene bounds use the source duration")
        return subtitles

    def plan(self) -> None:
        """Ask the planner for narration and scenes, then validate them."""
        job = self.job
        artifacts = job.artifacts
        title = artifacts.metadata.title if artifacts.metadata else artifacts.video_id

        log_step("Planning scenes...", "🧠")
        result = self._call_collaborator("planner", self.planner.plan, artifacts.subtitles, title)
        artifacts.narration_text = (result.narration or "").strip()
        artifacts.scenes = plan_scenes(
            artifacts.narration_text,
            result.scenes,
            artifacts.subtitles,
            metadata_duration=artifacts.metadata.duration if artifacts.metadata else None,
            timing=self.settings.timing,
        )
        logger.info(f"   {len(artifacts.scenes)} scenes")
        job.transition(JobState.SCENES_PLANNED)

    def assemble(self) -> None:
        """Narration, clips and the synchronized, muxed, capped track."""
        job = self.job
        artifacts = job.artifacts
        settings = self.settings
        cancel = job.cancel_event

        job.transition(JobState.ASSEMBLING)
        log_step("Synthesizing narration...", "🗣️")
        artifacts.narration = self._call_collaborator(
            "synthesizer", self.synthesizer.synthesize, artifacts.narration_text, job.work_dir
        )
        artifacts.narration_duration = probe_duration(artifacts.narration.audio_path, cancel_event=cancel)
        if artifacts.narration.estimated_duration:
            logger.debug(
                f"Narration estimate {artifacts.narration.estimated_duration:.2f}s, "
                f"measured {artifacts.narration_duration:.2f}s"
            )

        log_step("Assembling timeline...", "🎬")
        artifacts.clips = extract_clips(
            artifacts.source_video,
            artifacts.scenes,
            job.work_dir / "clips",
            workers=settings.processing.extract_workers,
            timing=settings.timing,
            encoding=settings.encoding,
            cancel_event=cancel,
        )
        job.check_cancelled()
        track = concatenate_clips(artifacts.clips, job.work_dir / "concat.mp4", cancel_event=cancel)
        job.check_cancelled()
        track = synchronize_speed(
            track,
            artifacts.narration_duration,
            job.work_dir / "synced.mp4",
            timing=settings.timing,
            encoding=settings.encoding,
            cancel_event=cancel,
        )
        job.check_cancelled()
        track = mux_narration(
            track, artifacts.narration.audio_path, job.work_dir / "muxed.mp4",
            encoding=settings.encoding, cancel_event=cancel,
        )
        job.check_cancelled()
        artifacts.track = cap_duration(track, job.work_dir / "capped.mp4", timing=settings.timing,
                                       cancel_event=cancel)

    def burn_captions(self) -> None:
        job = self.job
        artifacts = job.artifacts
        events = build_caption_events(artifacts.scenes, self.settings.timing)
        burner = CaptionBurner(encoding=self.settings.encoding)
        artifacts.captioned_video = burner.burn(
            artifacts.track.path,
            events,
            job.work_dir / "captioned.mp4",
            duration_hint=artifacts.track.duration,
            cancel_event=job.cancel_event,
        )
        job.transition(JobState.CAPTIONS_BURNED)

    def export(self) -> None:
        job = self.job
        artifacts = job.artifacts
        final_path = self.settings.paths.output_dir / f"{artifacts.video_id}_{job.id}_final.mp4"
        shutil.move(str(artifacts.captioned_video), str(final_path))
        artifacts.final_output = final_path
        job.transition(JobState.COMPLETE)

    def cleanup(self) -> None:
        """Purge the working directory. Best-effort."""
        if remove_quietly(self.job.work_dir):
            logger.debug(f"Purged working directory {self.job.work_dir}")


# =============================================================================
# Job Runner
# =============================================================================

class JobRunner:
    """
    Runs independent jobs concurrently, one worker thread per job.

    Usage:
        with JobRunner(max_workers=2) as runner:
            future = runner.submit(ShortsWorkflow(url, planner, synthesizer))
            result = future.result()
    """

    def __init__(self, max_workers: Optional[int] = None, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.max_workers = max_workers or settings.processing.max_concurrent_jobs
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="job")
        self._workflows: Dict[str, ShortsWorkflow] = {}
        self._lock = threading.Lock()

    def submit(self, workflow: ShortsWorkflow) -> "Future[JobResult]":
        job_id = workflow.job.id
        with self._lock:
            self._workflows[job_id] = workflow
        logger.info(f"Queued job {job_id}")
        future = self._executor.submit(workflow.execute)
        future.add_done_callback(lambda _: self._forget(job_id))
        return future

    def _forget(self, job_id: str) -> None:
        # finished jobs are reachable through their Future only
        with self._lock:
            self._workflows.pop(job_id, None)

    def cancel(self, job_id: str) -> bool:
        """Request cancellation of a submitted job. False if unknown."""
        with self._lock:
            workflow = self._workflows.get(job_id)
        if workflow is None:
            return False
        workflow.cancel()
        return True

    def jobs(self) -> List[Job]:
        """Jobs queued or running. Finished jobs are dropped."""
        with self._lock:
            return [w.job for w in self._workflows.values()]

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "JobRunner":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown(wait=True)
