"""
Collaborator interfaces for the external services a job depends on.

The pipeline only talks to script planning, speech synthesis and
transcription through these abstract classes. Concrete clients (LLM, TTS,
ASR) live outside this package.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

from .subtitle_parser import Subtitle


@dataclass
class PlanResult:
    """
    Planner output.

    `scenes` is untrusted: a list of dicts, a raw JSON/text response, or None.
    The scene validator decides whether it is usable.
    """
    narration: str
    scenes: Any = None


@dataclass
class NarrationResult:
    audio_path: Path
    estimated_duration: Optional[float] = None  # hint only, re-measured downstream


class Transcriber(ABC):
    """Produces caption cues from an audio file when the upstream has none."""

    @abstractmethod
    def transcribe(self, audio_path: Path) -> List[Subtitle]:
        ...


class ScenePlanner(ABC):
    """Writes the narration script and picks source time ranges for it."""

    @abstractmethod
    def plan(self, subtitles: List[Subtitle], title: str) -> PlanResult:
        ...


class NarrationSynthesizer(ABC):
    """Renders narration text to an audio file inside dest_dir."""

    @abstractmethod
    def synthesize(self, text: str, dest_dir: Path) -> NarrationResult:
        ...
