"""
End-to-end tests for ShortsWorkflow with fake upstreams and a fake ffmpeg.

The acquisition chain and the collaborators are in-memory fakes; ffmpeg and
ffprobe are patched (see conftest), so these tests exercise the stage
ordering, the Job state machine and the failure/cleanup rules.
"""

import json
from pathlib import Path

import pytest

from short_forge.collaborators import (
    NarrationResult,
    NarrationSynthesizer,
    PlanResult,
    ScenePlanner,
    Transcriber,
)
from short_forge.core.job import JobState
from short_forge.core.shorts_workflow import JobRunner, ShortsWorkflow
from short_forge.exceptions import AcquisitionError, AcquisitionFailure, ErrorKind
from short_forge.providers import VideoMetadata
from short_forge.subtitle_parser import Subtitle


URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
SUBTITLES = [Subtitle(0.0, 30.0, "intro"), Subtitle(30.0, 120.0, "body")]


class FakeChain:
    def __init__(self, subtitles=None, error=None):
        self.subtitles = list(SUBTITLES if subtitles is None else subtitles)
        self.error = error

    def resolve_metadata(self, video_id, cancel_event=None):
        if self.error:
            raise self.error
        return VideoMetadata(video_id=video_id, title="Talk", duration=120.0, source="primary")

    def download_media(self, video_id, dest_dir, cancel_event=None):
        path = Path(dest_dir) / "source.mp4"
        path.write_bytes(b"source")
        return path

    def fetch_captions(self, video_id, dest_dir, languages=None, cancel_event=None):
        return list(self.subtitles)


class FakePlanner(ScenePlanner):
    def __init__(self, scenes=None, on_plan=None):
        self.scenes = scenes
        self.on_plan = on_plan
        self.calls = []

    def plan(self, subtitles, title):
        self.calls.append((list(subtitles), title))
        if self.on_plan:
            self.on_plan()
        return PlanResult(narration="First point. Second point.", scenes=self.scenes)


class FakeSynthesizer(NarrationSynthesizer):
    def __init__(self, error=None):
        self.error = error

    def synthesize(self, text, dest_dir):
        if self.error:
            raise self.error
        path = Path(dest_dir) / "narration.mp3"
        path.write_bytes(b"audio")
        return NarrationResult(audio_path=path)


class FakeTranscriber(Transcriber):
    def __init__(self):
        self.calls = []

    def transcribe(self, audio_path):
        self.calls.append(Path(audio_path))
        return list(SUBTITLES)


@pytest.fixture
def probe(monkeypatch):
    """Every measured duration is 12s: no retime, no cap."""
    fake = lambda path, **kwargs: 12.0  # noqa: E731
    monkeypatch.setattr("short_forge.timeline_assembler.probe_duration", fake)
    monkeypatch.setattr("short_forge.core.shorts_workflow.probe_duration", fake)
    return fake


def _workflow(settings, chain=None, planner=None, synthesizer=None, transcriber=None):
    return ShortsWorkflow(
        URL,
        planner=planner or FakePlanner([
            {"startTime": 10, "endTime": 15, "narrationText": "First point"},
            {"startTime": 40, "endTime": 45, "narrationText": "Second point"},
        ]),
        synthesizer=synthesizer or FakeSynthesizer(),
        transcriber=transcriber,
        settings=settings,
        chain=chain or FakeChain(),
    )


class TestSuccess:

    def test_full_pipeline(self, settings, fake_ffmpeg, probe):
        workflow = _workflow(settings)

        result = workflow.execute()

        assert result.success, result.error
        assert result.state == JobState.COMPLETE
        expected = settings.paths.output_dir / f"dQw4w9WgXcQ_{result.job_id}_final.mp4"
        assert result.output_path == str(expected)
        assert expected.exists()
        assert result.metadata["scene_count"] == 2
        # clip, clip, concat, mux, burn
        assert len(fake_ffmpeg.commands) == 5

    def test_working_directory_purged(self, settings, fake_ffmpeg, probe):
        workflow = _workflow(settings)
        result = workflow.execute()
        assert result.success
        assert not workflow.job.work_dir.exists()

    def test_planner_receives_subtitles_and_title(self, settings, fake_ffmpeg, probe):
        planner = FakePlanner([{"startTime": 10, "endTime": 15}])
        _workflow(settings, planner=planner).execute()
        subtitles, title = planner.calls[0]
        assert subtitles == SUBTITLES
        assert title == "Talk"

    def test_unusable_plan_still_completes(self, settings, fake_ffmpeg, probe):
        result = _workflow(settings, planner=FakePlanner("not a plan")).execute()
        assert result.success
        assert result.metadata["scene_count"] == 2

    def test_transcription_fallback(self, settings, fake_ffmpeg, probe):
        transcriber = FakeTranscriber()
        result = _workflow(settings, chain=FakeChain(subtitles=[]), transcriber=transcriber).execute()

        assert result.success
        assert transcriber.calls[0].name == "source_audio.mp3"
        assert any("-vn" in cmd for cmd in fake_ffmpeg.commands)

    def test_upstream_captions_skip_transcription(self, settings, fake_ffmpeg, probe):
        transcriber = FakeTranscriber()
        result = _workflow(settings, transcriber=transcriber).execute()

        assert result.success
        assert transcriber.calls == []
        assert not any("-vn" in cmd for cmd in fake_ffmpeg.commands)

    def test_no_captions_without_transcriber(self, settings, fake_ffmpeg, probe, caplog):
        workflow = _workflow(settings, chain=FakeChain(subtitles=[]))

        result = workflow.execute()

        assert result.success
        assert workflow.job.artifacts.subtitles == []
        assert "falling back to transcription" in caplog.text
        assert "no transcriber" in caplog.text


class TestFailure:

    def _state_file(self, workflow):
        return json.loads((workflow.job.work_dir / "job.json").read_text(encoding="utf-8"))

    def test_invalid_url(self, settings, fake_ffmpeg, probe):
        workflow = ShortsWorkflow("https://vimeo.com/123", FakePlanner(), FakeSynthesizer(),
                                  settings=settings, chain=FakeChain())
        result = workflow.execute()

        assert not result.success
        assert result.error_kind == ErrorKind.INVALID_INPUT
        assert result.failed_stage == JobState.CREATED

    def test_acquisition_failure_keeps_artifacts(self, settings, fake_ffmpeg, probe):
        error = AcquisitionError("all candidates failed", AcquisitionFailure.BOT_DETECTION)
        workflow = _workflow(settings, chain=FakeChain(error=error))

        result = workflow.execute()

        assert result.state == JobState.FAILED
        assert result.failed_stage == JobState.ACQUIRING
        assert result.error_kind == ErrorKind.ACQUISITION_FAILED
        state = self._state_file(workflow)
        assert state["state"] == "failed"
        assert state["failed_stage"] == "acquiring"
        assert list(settings.paths.output_dir.iterdir()) == []

    def test_failure_purges_when_not_keeping_artifacts(self, settings, fake_ffmpeg, probe):
        settings.processing.keep_failed_artifacts = False
        workflow = _workflow(settings, chain=FakeChain(error=AcquisitionError("down")))
        workflow.execute()
        assert not workflow.job.work_dir.exists()

    def test_collaborator_failure(self, settings, fake_ffmpeg, probe):
        workflow = _workflow(settings, synthesizer=FakeSynthesizer(error=RuntimeError("tts quota")))

        result = workflow.execute()

        assert result.error_kind == ErrorKind.COLLABORATOR_FAILED
        assert result.failed_stage == JobState.ASSEMBLING
        assert "tts quota" in result.error

    def test_encoding_failure(self, settings, fake_ffmpeg, probe):
        fake_ffmpeg.returncode = 1
        result = _workflow(settings).execute()
        assert result.error_kind == ErrorKind.ENCODING_FAILED
        assert result.failed_stage == JobState.ASSEMBLING

    def test_cancel_between_stages(self, settings, fake_ffmpeg, probe):
        holder = {}
        planner = FakePlanner([{"startTime": 10, "endTime": 15}], on_plan=lambda: holder["wf"].cancel())
        workflow = _workflow(settings, planner=planner)
        holder["wf"] = workflow

        result = workflow.execute()

        assert result.error_kind == ErrorKind.CANCELLED
        assert result.failed_stage == JobState.SCENES_PLANNED
        assert fake_ffmpeg.commands == []

    def test_unexpected_error_is_unknown(self, settings, fake_ffmpeg, probe, monkeypatch):
        def boom(*args, **kwargs):
            raise KeyError("surprise")

        monkeypatch.setattr("short_forge.core.shorts_workflow.plan_scenes", boom)
        result = _workflow(settings).execute()
        assert result.error_kind == ErrorKind.UNKNOWN
        assert result.failed_stage == JobState.CAPTIONS_READY


class TestJobRunner:

    def test_parallel_jobs(self, settings, fake_ffmpeg, probe):
        workflows = [_workflow(settings) for _ in range(3)]
        with JobRunner(max_workers=2, settings=settings) as runner:
            futures = [runner.submit(w) for w in workflows]
            results = [f.result(timeout=30) for f in futures]

        assert runner.jobs() == []
        assert all(r.success for r in results)
        assert len({r.output_path for r in results}) == 3

    def test_finished_job_is_forgotten(self, settings, fake_ffmpeg, probe):
        workflow = _workflow(settings)
        runner = JobRunner(max_workers=1, settings=settings)
        runner.submit(workflow).result(timeout=30)
        runner.shutdown(wait=True)

        assert runner.jobs() == []
        assert runner.cancel(workflow.job.id) is False

    def test_cancel_unknown_job(self, settings):
        with JobRunner(max_workers=1, settings=settings) as runner:
            assert runner.cancel("nope") is False

    def test_cancel_known_job(self, settings):
        workflow = _workflow(settings)
        runner = JobRunner(max_workers=1, settings=settings)
        runner._workflows[workflow.job.id] = workflow
        assert runner.cancel(workflow.job.id) is True
        assert workflow.job.cancelled
        runner.shutdown()
