"""
Scene Planner - Validates planner scenes against the source timeline.

The external planner proposes source time ranges for each narration
sentence. Its output is untrusted: ranges may run past the end of the
video, be inverted, or be too short to cut. Every scene is repaired so that

    0 <= start_time < end_time <= max_source_time
    end_time - start_time >= min_scene_seconds

When the plan is missing or unusable a deterministic plan is synthesized
from the narration instead; that recovery is logged, never surfaced.
"""

import json
import re
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import TimingConfig
from .exceptions import InvalidInputError, PlanningUnusableError
from .logger import logger
from .subtitle_parser import Subtitle
from .utils import clamp, strip_markdown_json

JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")


class Scene(BaseModel):
    """A source time range paired with the narration spoken over it."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    start_time: float = Field(alias="startTime", allow_inf_nan=False)
    end_time: float = Field(alias="endTime", allow_inf_nan=False)
    narration_text: str = Field(default="", alias="narrationText")

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


# =============================================================================
# Planner Response Parsing
# =============================================================================

def _load_json_array(text: str) -> Any:
    cleaned = strip_markdown_json(text)
    try:
        return json.loads(cleaned)
    except ValueError:
        pass
    match = JSON_ARRAY_RE.search(text)
    if not match:
        raise PlanningUnusableError("No JSON array in planner response")
    try:
        return json.loads(match.group(0))
    except ValueError as e:
        raise PlanningUnusableError(f"Planner JSON is malformed: {e}") from e


def parse_plan_response(raw: Any) -> List[Scene]:
    """
    Turn raw planner output into scenes.

    Accepts a list of dicts, a `{"scenes": [...]}` object, a JSON string,
    or free text with a JSON array somewhere inside it.

    Raises:
        PlanningUnusableError: nothing usable; one bad entry spoils the plan
    """
    if raw is None:
        raise PlanningUnusableError("Planner returned no scenes")

    data = _load_json_array(raw) if isinstance(raw, str) else raw
    if isinstance(data, dict):
        data = data.get("scenes")
    if not isinstance(data, list):
        raise PlanningUnusableError(f"Expected a list of scenes, got {type(data).__name__}")
    if not data:
        raise PlanningUnusableError("Planner returned an empty scene list")

    scenes = []
    for idx, item in enumerate(data):
        if isinstance(item, Scene):
            scenes.append(item)
            continue
        if not isinstance(item, dict):
            raise PlanningUnusableError(f"Scene {idx} is not an object")
        try:
            scenes.append(Scene.model_validate(item))
        except ValidationError as e:
            raise PlanningUnusableError(f"Scene {idx} is invalid: {e.errors()[0].get('msg')}") from e
    return scenes


# =============================================================================
# Validation
# =============================================================================

def max_source_time(
    subtitles: Sequence[Subtitle],
    fallback: Optional[float] = None,
    default: float = 300.0,
) -> float:
    """End of the last subtitle, else the metadata duration, else `default`."""
    if subtitles:
        return subtitles[-1].end
    if fallback and fallback > 0:
        return float(fallback)
    return default


def validate_scenes(
    scenes: Sequence[Scene],
    max_time: float,
    timing: Optional[TimingConfig] = None,
) -> List[Scene]:
    """
    Repair each scene into the valid range of the source.

    start' = clamp(start, 0, max_time - margin)
    end'   = max(start' + min_len, clamp(end, start', max_time))

    Raises:
        InvalidInputError: max_time is shorter than the minimum scene
    """
    timing = timing or TimingConfig()
    if max_time < timing.min_scene_seconds:
        raise InvalidInputError(
            f"Source is {max_time:.2f}s long; no {timing.min_scene_seconds:.0f}s scene fits"
        )

    latest_start = max(0.0, max_time - timing.scene_start_margin)
    repaired = []
    for scene in scenes:
        start = clamp(scene.start_time, 0.0, latest_start)
        end = max(start + timing.min_scene_seconds, clamp(scene.end_time, start, max_time))
        if (start, end) != (scene.start_time, scene.end_time):
            logger.debug(
                f"Scene repaired: {scene.start_time:.2f}-{scene.end_time:.2f} -> {start:.2f}-{end:.2f}"
            )
        repaired.append(scene.model_copy(update={"start_time": start, "end_time": end}))
    return repaired


# =============================================================================
# Synthesis
# =============================================================================

def split_sentences(narration: str) -> List[str]:
    return [s.strip() for s in SENTENCE_SPLIT_RE.split(narration or "") if s.strip()]


def synthesize_scenes(
    narration: str,
    subtitles: Sequence[Subtitle],
    max_time: float,
    timing: Optional[TimingConfig] = None,
) -> List[Scene]:
    """
    Deterministic plan: one scene per sentence, spread across the source.

    Each sentence gets an equal share of the target length. The source
    cursor starts at the first subtitle and jumps max(factor * share,
    min_jump) per sentence, wrapping to the middle subtitle when it would
    run off the end.

    Raises:
        InvalidInputError: narration has no sentences
    """
    timing = timing or TimingConfig()
    sentences = split_sentences(narration)
    if not sentences:
        raise InvalidInputError("Narration is empty")

    share = timing.fallback_target_seconds / len(sentences)
    cursor = subtitles[0].start if subtitles else 0.0

    scenes = []
    for sentence in sentences:
        scenes.append(Scene(start_time=cursor, end_time=cursor + share, narration_text=sentence))
        cursor += max(share * timing.fallback_jump_factor, timing.fallback_min_jump)
        if cursor > max_time - share:
            middle = subtitles[len(subtitles) // 2].start if subtitles else 0.0
            cursor = middle or timing.default_wrap_cursor
    return scenes


def plan_scenes(
    narration: str,
    raw_scenes: Any,
    subtitles: Sequence[Subtitle],
    metadata_duration: Optional[float] = None,
    timing: Optional[TimingConfig] = None,
) -> List[Scene]:
    """
    Validated scenes for a job, synthesizing a plan if the planner's is unusable.

    Raises:
        InvalidInputError: empty narration, or a source too short to cut
    """
    timing = timing or TimingConfig()
    if not (narration or "").strip():
        raise InvalidInputError("Narration is empty")

    max_time = max_source_time(subtitles, metadata_duration, timing.default_source_seconds)
    if max_time < timing.min_scene_seconds:
        raise InvalidInputError(f"Source is {max_time:.2f}s long; nothing to cut")

    try:
        scenes = parse_plan_response(raw_scenes)
    except PlanningUnusableError as e:
        logger.warning(f"Planner output unusable ({e}); synthesizing scenes from narration")
        scenes = synthesize_scenes(narration, subtitles, max_time, timing)

    return validate_scenes(scenes, max_time, timing)
