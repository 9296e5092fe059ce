"""
Tests for scene validation, plan parsing and plan synthesis.
"""

import itertools
import logging

import pytest

from short_forge.config import TimingConfig
from short_forge.exceptions import InvalidInputError, PlanningUnusableError
from short_forge.scene_planner import (
    Scene,
    max_source_time,
    parse_plan_response,
    plan_scenes,
    split_sentences,
    synthesize_scenes,
    validate_scenes,
)
from short_forge.subtitle_parser import Subtitle


def _subs(*ranges):
    return [Subtitle(start, end, f"cue {i}") for i, (start, end) in enumerate(ranges)]


def _assert_valid(scenes, max_time):
    for scene in scenes:
        assert 0 <= scene.start_time < scene.end_time <= max_time
        assert scene.end_time - scene.start_time >= 2 - 1e-9


class TestParsePlanResponse:

    def test_list_of_dicts_with_camel_case(self):
        scenes = parse_plan_response([{"startTime": 12.5, "endTime": 17, "narrationText": "hi"}])
        assert scenes == [Scene(start_time=12.5, end_time=17.0, narration_text="hi")]

    def test_snake_case_keys(self):
        scenes = parse_plan_response([{"start_time": 1, "end_time": 3, "narration_text": "x"}])
        assert scenes[0].start_time == 1.0

    def test_json_in_prose_and_fences(self):
        raw = 'Here is the plan:\n```json\n[{"startTime": 1, "endTime": 4, "narrationText": "a"}]\n```\nEnjoy!'
        assert len(parse_plan_response(raw)) == 1

    def test_json_array_inside_text(self):
        raw = 'Sure! [{"startTime": 1, "endTime": 4, "narrationText": "a"}] hope that helps'
        assert parse_plan_response(raw)[0].end_time == 4.0

    def test_scenes_object(self):
        assert len(parse_plan_response({"scenes": [{"startTime": 0, "endTime": 3}]})) == 1

    @pytest.mark.parametrize("raw", [
        None,
        [],
        "",
        "no json here",
        "[not valid json]",
        {"narration": "x"},
        [{"startTime": "soon", "endTime": 4}],
        [{"startTime": float("nan"), "endTime": 4}],
        [{"startTime": float("inf"), "endTime": 4}],
        [{"endTime": 4}],
        ["just a string"],
        42,
    ])
    def test_unusable(self, raw):
        with pytest.raises(PlanningUnusableError):
            parse_plan_response(raw)


class TestValidateScenes:

    def test_repair_formula(self):
        max_time = 100.0
        scenes = [
            Scene(start_time=-5, end_time=10, narration_text="negative start"),
            Scene(start_time=99, end_time=120, narration_text="past the end"),
            Scene(start_time=50, end_time=40, narration_text="inverted"),
            Scene(start_time=20, end_time=20.5, narration_text="too short"),
        ]
        out = validate_scenes(scenes, max_time)

        assert (out[0].start_time, out[0].end_time) == (0.0, 10.0)
        assert (out[1].start_time, out[1].end_time) == (95.0, 100.0)
        assert (out[2].start_time, out[2].end_time) == (50.0, 52.0)
        assert (out[3].start_time, out[3].end_time) == (20.0, 22.0)
        assert [s.narration_text for s in out] == [s.narration_text for s in scenes]

    @pytest.mark.parametrize("max_time", [2.0, 3.0, 4.9, 5.0, 7.0, 60.0, 300.0])
    def test_invariants_hold_for_any_input(self, max_time):
        values = [-100.0, -1.0, 0.0, 1.0, 2.5, 4.0, 6.0, 59.0, 61.0, 299.0, 1e6]
        scenes = [
            Scene(start_time=s, end_time=e, narration_text="x")
            for s, e in itertools.product(values, values)
        ]
        _assert_valid(validate_scenes(scenes, max_time), max_time)

    @pytest.mark.parametrize("max_time", [0.0, 1.0, 1.99])
    def test_source_too_short(self, max_time):
        with pytest.raises(InvalidInputError):
            validate_scenes([Scene(start_time=0, end_time=1)], max_time)


class TestMaxSourceTime:

    def test_last_subtitle_end(self):
        assert max_source_time(_subs((0, 5), (10, 42.5))) == 42.5

    def test_metadata_fallback(self):
        assert max_source_time([], fallback=180.0) == 180.0

    def test_default(self):
        assert max_source_time([], fallback=0) == 300.0
        assert max_source_time([], None) == 300.0


class TestSynthesizeScenes:

    def test_sentences_split(self):
        assert split_sentences("One. Two!  Three?? ...") == ["One", "Two", "Three"]

    def test_equal_shares_and_jumps(self):
        subs = _subs((10, 12), (100, 105), (400, 600))
        scenes = synthesize_scenes("A b c. D e f. G h i. J k l. M n o.", subs, 600.0)

        share = 55 / 5
        assert len(scenes) == 5
        assert scenes[0].start_time == 10
        assert all(s.end_time - s.start_time == pytest.approx(share) for s in scenes)
        # cursor advances by max(3 * 11, 15) = 33
        assert [s.start_time for s in scenes] == pytest.approx([10, 43, 76, 109, 142])

    def test_minimum_jump(self):
        narration = ". ".join(f"sentence {i}" for i in range(20)) + "."
        scenes = synthesize_scenes(narration, [], 10_000.0)
        # share = 2.75, 3 * share < 15
        assert scenes[1].start_time - scenes[0].start_time == pytest.approx(15.0)

    def test_wraps_to_middle_subtitle(self):
        subs = _subs((5, 6), (20, 22), (30, 40))
        scenes = synthesize_scenes("One. Two. Three.", subs, 40.0)
        # share 18.33, jump 55; 5 + 55 > 40 - 18.33 -> middle subtitle start
        assert [s.start_time for s in scenes] == pytest.approx([5, 20, 20])

    def test_wraps_to_default_without_subtitles(self):
        scenes = synthesize_scenes("One. Two.", [], 50.0)
        assert scenes[1].start_time == 60.0

    def test_empty_narration(self):
        with pytest.raises(InvalidInputError):
            synthesize_scenes("  ...  ", [], 100.0)


class TestPlanScenes:

    def test_valid_plan_is_validated(self):
        subs = _subs((0, 30), (30, 60))
        scenes = plan_scenes("Hello.", [{"startTime": 58, "endTime": 70, "narrationText": "Hello"}], subs)
        assert (scenes[0].start_time, scenes[0].end_time) == (55.0, 60.0)

    def test_unusable_plan_is_synthesized_with_warning(self, caplog):
        subs = _subs((0, 30), (30, 120))
        with caplog.at_level(logging.WARNING, logger="short_forge"):
            scenes = plan_scenes("First part. Second part.", "garbage", subs)

        assert [s.narration_text for s in scenes] == ["First part", "Second part"]
        _assert_valid(scenes, 120.0)
        assert any("synthesizing" in r.getMessage() for r in caplog.records)

    def test_no_subtitles_uses_metadata_duration(self):
        scenes = plan_scenes("Only one.", None, [], metadata_duration=20.0)
        _assert_valid(scenes, 20.0)

    def test_empty_narration(self):
        with pytest.raises(InvalidInputError):
            plan_scenes("   ", [{"startTime": 0, "endTime": 5}], _subs((0, 10)))

    def test_short_source(self):
        with pytest.raises(InvalidInputError):
            plan_scenes("Hi.", None, _subs((0, 1.5)))

    def test_custom_timing(self):
        timing = TimingConfig(min_scene_seconds=3.0)
        scenes = plan_scenes("Hi.", [{"startTime": 10, "endTime": 11}], _subs((0, 100)), timing=timing)
        assert scenes[0].end_time == 13.0
