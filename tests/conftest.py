"""
Shared fixtures.

ffmpeg and ffprobe never run in tests: run_command is replaced where
ffmpeg_atomics imports it, and probe_duration is patched in the modules
that measure durations.
"""

import subprocess
from pathlib import Path
from typing import List

import pytest

from short_forge.config import EncodingConfig, PathConfig, Settings, TimingConfig


class FakeFFmpeg:
    """Records ffmpeg commands and writes a placeholder output file for each."""

    def __init__(self):
        self.commands: List[List[str]] = []
        self.returncode = 0
        self.stderr = ""
        self.on_run = None  # optional callable(cmd), runs before the output is written

    def __call__(self, cmd, **kwargs):
        self.commands.append(list(cmd))
        if self.on_run is not None:
            self.on_run(cmd)
        if self.returncode == 0:
            Path(cmd[-1]).write_bytes(b"\x00fake-media")
        return subprocess.CompletedProcess(cmd, self.returncode, "", self.stderr)

    def last(self) -> List[str]:
        return self.commands[-1]


@pytest.fixture
def fake_ffmpeg(monkeypatch):
    fake = FakeFFmpeg()
    monkeypatch.setattr("short_forge.core.ffmpeg_atomics.run_command", fake)
    return fake


@pytest.fixture
def timing():
    return TimingConfig()


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in tmp_path with a single extraction worker."""
    s = Settings(
        paths=PathConfig(work_dir=tmp_path / "work", output_dir=tmp_path / "output"),
        encoding=EncodingConfig(),
        timing=TimingConfig(),
    )
    s.processing.extract_workers = 1
    s.processing.keep_failed_artifacts = True
    s.acquisition.mirror_endpoints = []
    s.acquisition.cookies_file = None
    return s
