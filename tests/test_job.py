"""
Tests for the job state machine and its persisted state.
"""

import json

import pytest

from short_forge.core.job import PIPELINE, TRANSITIONS, Job, JobState, new_job_id
from short_forge.exceptions import ErrorKind, JobCancelledError


class TestTransitions:

    def test_happy_path(self, tmp_path):
        job = Job("https://youtu.be/abc", tmp_path)
        for state in PIPELINE[1:]:
            job.transition(state)
        assert job.state == JobState.COMPLETE
        assert job.is_terminal

    def test_skipping_a_stage_is_illegal(self, tmp_path):
        job = Job("u", tmp_path)
        with pytest.raises(ValueError):
            job.transition(JobState.SCENES_PLANNED)
        assert job.state == JobState.CREATED

    def test_failed_only_via_fail(self, tmp_path):
        with pytest.raises(ValueError):
            Job("u", tmp_path).transition(JobState.FAILED)

    def test_every_non_terminal_state_can_fail(self):
        for state in PIPELINE[:-1]:
            assert JobState.FAILED in TRANSITIONS[state]
        assert TRANSITIONS[JobState.COMPLETE] == set()
        assert TRANSITIONS[JobState.FAILED] == set()


class TestFailure:

    def test_fail_records_stage(self, tmp_path):
        job = Job("u", tmp_path)
        job.transition(JobState.ACQUIRING)

        job.fail(ErrorKind.ACQUISITION_FAILED, "all candidates failed")

        assert job.state == JobState.FAILED
        assert job.failed_stage == JobState.ACQUIRING
        assert job.error_kind == ErrorKind.ACQUISITION_FAILED

    def test_failed_is_absorbing(self, tmp_path):
        job = Job("u", tmp_path)
        job.fail(ErrorKind.INVALID_INPUT, "bad url")
        with pytest.raises(ValueError):
            job.fail(ErrorKind.UNKNOWN, "again")
        with pytest.raises(ValueError):
            job.transition(JobState.ACQUIRING)

    def test_cannot_fail_complete_job(self, tmp_path):
        job = Job("u", tmp_path)
        for state in PIPELINE[1:]:
            job.transition(state)
        with pytest.raises(ValueError):
            job.fail(ErrorKind.UNKNOWN, "late")


class TestCancellation:

    def test_check_cancelled(self, tmp_path):
        job = Job("u", tmp_path)
        job.check_cancelled()
        job.cancel()
        assert job.cancelled
        assert job.cancel_event.is_set()
        with pytest.raises(JobCancelledError):
            job.check_cancelled()


class TestPersistence:

    def test_write_state(self, tmp_path):
        job = Job("https://youtu.be/abc", tmp_path / "job", job_id="abc123")
        job.transition(JobState.ACQUIRING)
        job.fail(ErrorKind.TIMEOUT, "deadline")

        path = job.write_state()

        data = json.loads(path.read_text(encoding="utf-8"))
        assert path == tmp_path / "job" / "job.json"
        assert data["job_id"] == "abc123"
        assert data["state"] == "failed"
        assert data["failed_stage"] == "acquiring"
        assert data["error_kind"] == "timeout"
        assert data["artifacts"]["scene_count"] == 0
        assert not (tmp_path / "job" / "job.json.tmp").exists()

    def test_write_state_unwritable(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        job = Job("u", blocker / "job")
        assert job.write_state() is None


def test_job_ids_are_unique():
    ids = {new_job_id() for _ in range(100)}
    assert len(ids) == 100
    assert all(len(i) == 12 for i in ids)
