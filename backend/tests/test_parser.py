import json

import pytest

from services.errors import ParseError
from services.transcript.parser import (
    PLAIN_LINE_DURATION,
    SubtitleParser,
    format_hint_for,
    parse_timestamp,
)


def _vtt_timestamp(seconds: float) -> str:
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{int(hours):02d}:{int(minutes):02d}:{secs:06.3f}"


@pytest.fixture
def parser():
    return SubtitleParser()


def test_vtt_cues_keep_their_timing(parser):
    cues = [(0.0, 2.5, "first cue"), (2.5, 4.0, "second cue"), (4.0, 7.25, "third cue"),
            (61.5, 63.0, "fourth cue"), (3600.0, 3602.125, "fifth cue")]
    blocks = [f"{_vtt_timestamp(s)} --> {_vtt_timestamp(e)}\n{text}" for s, e, text in cues]
    content = "WEBVTT\nKind: captions\nLanguage: en\n\n" + "\n\n".join(blocks) + "\n"

    entries = parser.parse(content, "vtt")

    assert len(entries) == len(cues)
    for entry, (start, end, text) in zip(entries, cues):
        assert entry.text == text
        assert entry.start == pytest.approx(start, abs=1e-3)
        assert entry.duration == pytest.approx(end - start, abs=1e-3)


def test_vtt_cleanup_and_cue_settings(parser):
    content = """WEBVTT

00:00:01.000 --> 00:00:03.500 align:start position:0%
Hello <c>world</c><00:00:02.000>

00:00:03.500 --> 00:00:06.000
[Music]

00:00:06.000 --> 00:00:08.250
Second line
continues   here
"""
    entries = parser.parse(content)

    assert [entry.text for entry in entries] == ["Hello world", "Second line continues here"]
    assert entries[0].start == pytest.approx(1.0)
    assert entries[0].duration == pytest.approx(2.5)
    assert entries[1].duration == pytest.approx(2.25)


def test_srt_with_indexes_and_commas(parser):
    content = """1
00:00:00,500 --> 00:00:02,000
Good morning

2
00:00:02,000 --> 00:00:04,750
<i>everyone</i>
"""
    entries = parser.parse(content, "srt")

    assert [entry.text for entry in entries] == ["Good morning", "everyone"]
    assert entries[0].start == pytest.approx(0.5)
    assert entries[1].duration == pytest.approx(2.75)


def test_cue_output_is_ordered_by_start(parser):
    content = "00:10.000 --> 00:12.000\nlater\n\n00:01.000 --> 00:02.000\nearlier\n"

    entries = parser.parse(content, "vtt")

    assert [entry.text for entry in entries] == ["earlier", "later"]


def test_json3_events(parser):
    payload = {
        "events": [
            {"tStartMs": 0, "dDurationMs": 1500},
            {"tStartMs": 1500, "dDurationMs": 2000, "segs": [{"utf8": "Hello "}, {"utf8": "there"}]},
            {"tStartMs": 3500, "dDurationMs": 500, "segs": [{"utf8": "\n"}]},
            {"tStartMs": 4000, "dDurationMs": 1000, "segs": [{"utf8": "General Kenobi"}]},
        ]
    }

    entries = parser.parse(json.dumps(payload), "json3")

    assert [(entry.text, entry.start, entry.duration) for entry in entries] == [
        ("Hello there", 1.5, 2.0),
        ("General Kenobi", 4.0, 1.0),
    ]


def test_json_entry_list_is_detected(parser):
    payload = [{"text": "one", "start": 0, "duration": 1}, {"text": "two", "start": 1, "duration": 2}]

    entries = parser.parse(json.dumps(payload))

    assert [entry.text for entry in entries] == ["one", "two"]


def test_invalid_json_raises_parse_error(parser):
    with pytest.raises(ParseError):
        parser.parse("{not json", "json")


def test_plain_lines_get_synthetic_timing(parser):
    entries = parser.parse("first line\n\nsecond line\nthird line\n")

    assert [entry.text for entry in entries] == ["first line", "second line", "third line"]
    assert [entry.start for entry in entries] == [0.0, PLAIN_LINE_DURATION, 2 * PLAIN_LINE_DURATION]
    assert all(entry.duration == PLAIN_LINE_DURATION for entry in entries)


@pytest.mark.parametrize(
    "value,expected",
    [
        ("01:02:03.500", 3723.5),
        ("02:03.250", 123.25),
        ("00:00:01,200", 1.2),
        ("garbage", 0.0),
        ("1:2:3:4", 0.0),
        ("-1:00.000", 0.0),
    ],
)
def test_parse_timestamp(value, expected):
    assert parse_timestamp(value) == pytest.approx(expected)


def test_format_hint_for():
    assert format_hint_for("text/vtt") == "vtt"
    assert format_hint_for("application/x-subrip; charset=utf-8") == "srt"
    assert format_hint_for("captions_abc_en.en.srt") == "srt"
    assert format_hint_for("notes.docx") is None
    assert format_hint_for(None) is None
