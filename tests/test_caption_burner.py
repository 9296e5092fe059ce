"""
Tests for caption timing, ASS rendering and the burn step.
"""

import pytest

from short_forge.caption_burner import (
    AssStyle,
    CaptionBurner,
    CaptionEvent,
    build_caption_events,
    format_ass_time,
    render_ass_track,
    wrap_caption_text,
)
from short_forge.exceptions import EncodingError
from short_forge.scene_planner import Scene


def _scene(text):
    return Scene(start_time=0, end_time=5, narration_text=text)


class TestWrap:

    def test_forty_two_characters_break_once(self):
        text = "x" * 40 + " y"
        assert len(text) == 42
        assert wrap_caption_text(text) == "x" * 40 + "\\Ny"

    def test_breaks_at_first_space_past_limit(self):
        text = "x" * 38 + " yy zzzz"
        assert wrap_caption_text(text) == "x" * 38 + " yy\\Nzzzz"

    def test_short_text_untouched(self):
        assert wrap_caption_text("short caption") == "short caption"

    def test_long_text_breaks_repeatedly(self):
        text = " ".join(["word"] * 30)
        assert wrap_caption_text(text).count("\\N") == 3


class TestCaptionEvents:

    def test_laid_end_to_end(self):
        scenes = [_scene(" ".join(["w"] * 10)), _scene("hi"), _scene(" ".join(["w"] * 15))]
        events = build_caption_events(scenes)

        assert [e.start for e in events] == pytest.approx([0, 4, 6])
        assert [e.end for e in events] == pytest.approx([4, 6, 12])

    def test_braces_neutralized(self):
        events = build_caption_events([_scene("a {\\b1} b")])
        assert "{" not in events[0].text
        assert "}" not in events[0].text


class TestAssRendering:

    @pytest.mark.parametrize("seconds, expected", [
        (0, "0:00:00.00"),
        (1.234, "0:00:01.23"),
        (59.999, "0:01:00.00"),
        (3725.5, "1:02:05.50"),
        (-3, "0:00:00.00"),
    ])
    def test_time_format(self, seconds, expected):
        assert format_ass_time(seconds) == expected

    def test_default_style_line(self):
        assert AssStyle().to_style_line() == (
            "Style: Default,Arial,60,&H00FFFFFF,&H000000FF,&H00000000,&H80000000,"
            "-1,0,0,0,100,100,0,0,1,3,0,2,50,50,100,1"
        )

    def test_track(self):
        track = render_ass_track([CaptionEvent(0.0, 4.0, "hello")])
        assert "PlayResX: 1080" in track
        assert "PlayResY: 1920" in track
        assert track.strip().endswith("Dialogue: 0,0:00:00.00,0:00:04.00,Default,,0,0,0,,hello")


class TestBurn:

    def test_burn_command_and_cleanup(self, fake_ffmpeg, tmp_path):
        seen = {}

        def check_track(cmd):
            seen["ass_exists"] = (tmp_path / "captioned.ass").exists()

        fake_ffmpeg.on_run = check_track
        output = CaptionBurner().burn(
            tmp_path / "capped.mp4", [CaptionEvent(0, 2, "hi")], tmp_path / "captioned.mp4"
        )

        cmd = fake_ffmpeg.last()
        vf = cmd[cmd.index("-vf") + 1]
        assert output == tmp_path / "captioned.mp4"
        assert output.exists()
        assert vf.startswith("ass=")
        assert vf.endswith("captioned.ass")
        assert cmd[cmd.index("-c:a") + 1] == "copy"
        assert seen["ass_exists"] is True
        assert not (tmp_path / "captioned.ass").exists()

    def test_track_removed_on_failure(self, fake_ffmpeg, tmp_path):
        fake_ffmpeg.returncode = 1
        with pytest.raises(EncodingError):
            CaptionBurner().burn(tmp_path / "capped.mp4", [CaptionEvent(0, 2, "hi")], tmp_path / "captioned.mp4")

        assert not (tmp_path / "captioned.ass").exists()
        assert not (tmp_path / "captioned.mp4").exists()
