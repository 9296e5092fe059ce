"""
Tests for the SRT/WebVTT caption normalizer.
"""

import pytest

from short_forge.exceptions import NoCaptionsError
from short_forge.subtitle_parser import (
    Subtitle,
    format_subtitle_context,
    parse_caption_file,
    parse_captions,
    parse_timestamp,
    require_subtitles,
    serialize_srt,
)


SAMPLE_SRT = """1
00:00:01,000 --> 00:00:03,500
Hello <i>world</i>

2
00:00:04,000 --> 00:00:06,000
Second line
continues here

"""

SAMPLE_VTT = """WEBVTT
Kind: captions
Language: en

NOTE this is a comment

intro
00:01.000 --> 00:03.500 align:start position:0%
Hello world

00:00:04.000 --> 00:00:06.000
{\\an8}Second line
"""


class TestParseTimestamp:
    """Unified timestamp parser."""

    def test_comma_and_dot_are_equivalent(self):
        assert parse_timestamp("00:01:02,500") == parse_timestamp("00:01:02.500") == 62.5

    def test_minutes_only_form(self):
        assert parse_timestamp("01:02.250") == 62.25

    def test_hours(self):
        assert parse_timestamp("1:00:00.000") == 3600.0

    def test_short_fraction(self):
        assert parse_timestamp("00:00:01.5") == 1.5

    @pytest.mark.parametrize("bad", ["", "abc", "0000", "1:2:3:4", "00:00:01;000"])
    def test_rejects_garbage(self, bad):
        with pytest.raises(ValueError):
            parse_timestamp(bad)


class TestParseCaptions:
    """Block-oriented SRT/VTT parsing."""

    def test_srt(self):
        subs = parse_captions(SAMPLE_SRT)
        assert subs == [
            Subtitle(1.0, 3.5, "Hello world"),
            Subtitle(4.0, 6.0, "Second line continues here"),
        ]

    def test_vtt_with_header_notes_and_cue_settings(self):
        subs = parse_captions(SAMPLE_VTT)
        assert [s.text for s in subs] == ["Hello world", "Second line"]
        assert subs[0].start == 1.0
        assert subs[0].end == 3.5

    def test_srt_and_vtt_agree(self):
        assert parse_captions(SAMPLE_SRT)[0].start == parse_captions(SAMPLE_VTT)[0].start

    def test_crlf_and_bom(self):
        doc = "\ufeff1\r\n00:00:01,000 --> 00:00:02,000\r\nHi\r\n"
        assert parse_captions(doc) == [Subtitle(1.0, 2.0, "Hi")]

    def test_malformed_blocks_dropped(self):
        doc = (
            "1\n00:00:05,000 --> 00:00:04,000\nbackwards\n\n"
            "2\nnot a range\ntext\n\n"
            "3\n00:00:01,000 --> 00:00:02,000\n\n\n"
            "4\n00:00:xx,000 --> 00:00:02,000\nbad stamp\n\n"
            "5\n00:00:07,000 --> 00:00:08,000\nkept\n"
        )
        subs = parse_captions(doc)
        assert [s.text for s in subs] == ["kept"]

    def test_sorted_by_start(self):
        doc = (
            "1\n00:00:10,000 --> 00:00:11,000\nlater\n\n"
            "2\n00:00:01,000 --> 00:00:02,000\nearlier\n"
        )
        assert [s.text for s in parse_captions(doc)] == ["earlier", "later"]

    def test_empty_document(self):
        assert parse_captions("") == []
        assert parse_captions("WEBVTT\n\n") == []

    def test_reserialize_is_idempotent(self):
        first = parse_captions(SAMPLE_VTT)
        second = parse_captions(serialize_srt(first))
        assert second == first
        assert parse_captions(serialize_srt(second)) == second


class TestCaptionFiles:

    def test_parse_caption_file(self, tmp_path):
        path = tmp_path / "captions.en.srt"
        path.write_text(SAMPLE_SRT, encoding="utf-8-sig")
        assert len(parse_caption_file(path)) == 2

    def test_require_subtitles(self):
        with pytest.raises(NoCaptionsError):
            require_subtitles([])
        subs = [Subtitle(0.0, 1.0, "a")]
        assert require_subtitles(subs) == subs


def test_format_subtitle_context():
    subs = [Subtitle(5.0, 7.5, "first"), Subtitle(65.0, 70.0, "second")]
    assert format_subtitle_context(subs) == "[0:05-0:07] first\n[1:05-1:10] second"
    assert format_subtitle_context(subs, limit=1) == "[0:05-0:07] first"
