"""Unit tests for rescontent.parser."""

from __future__ import annotations

import pytest

from rescontent.parser import parse_json3, parse_vtt, vtt_timestamp_to_seconds

# ---------------------------------------------------------------------------
# WebVTT
# ---------------------------------------------------------------------------


def test_two_cue_example() -> None:
    content = "00:00:01.000 --> 00:00:03.500\nHello world\n\n00:00:03.500 --> 00:00:05.000\nGoodbye"
    segments = parse_vtt(content)
    assert [s.model_dump() for s in segments] == [
        {"start": 1.0, "duration": 2.5, "text": "Hello world"},
        {"start": 3.5, "duration": 1.5, "text": "Goodbye"},
    ]


def test_header_and_cue_settings_are_skipped() -> None:
    content = (
        "WEBVTT\n"
        "Kind: captions\n"
        "Language: en\n"
        "\n"
        "1\n"
        "00:00:00.000 --> 00:00:02.000 align:start position:0%\n"
        "First line\n"
    )
    segments = parse_vtt(content)
    assert len(segments) == 1
    assert segments[0].text == "First line"
    assert segments[0].duration == 2.0


def test_markup_and_speaker_labels_are_stripped() -> None:
    content = (
        "00:00:01.000 --> 00:00:02.000\n"
        "[Narrator] <c.colorE5E5E5>Once</c> <00:00:01.500><c>upon</c> a time\n"
    )
    assert parse_vtt(content)[0].text == "Once upon a time"


def test_html_entities_are_decoded() -> None:
    content = "00:00:01.000 --> 00:00:02.000\nTom &amp; Jerry\n"
    assert parse_vtt(content)[0].text == "Tom & Jerry"


def test_multiline_cue_joined_with_spaces() -> None:
    content = "00:00:01.000 --> 00:00:04.000\nfirst line\nsecond line\n"
    assert parse_vtt(content)[0].text == "first line second line"


def test_note_blocks_are_skipped() -> None:
    content = (
        "WEBVTT\n\n"
        "NOTE this is a comment\nspanning two lines\n\n"
        "00:00:01.000 --> 00:00:02.000\nSpoken\n"
    )
    segments = parse_vtt(content)
    assert [s.text for s in segments] == ["Spoken"]


def test_lines_after_blank_line_are_not_cue_text() -> None:
    content = (
        "00:00:01.000 --> 00:00:02.000\nSpoken\n\n"
        "cue-2\n"
        "00:00:02.000 --> 00:00:03.000\nAnswered\n"
    )
    assert [s.text for s in parse_vtt(content)] == ["Spoken", "Answered"]


def test_source_order_preserved_even_if_not_chronological() -> None:
    content = "00:00:05.000 --> 00:00:06.000\nlater\n\n00:00:01.000 --> 00:00:02.000\nearlier\n"
    assert [s.text for s in parse_vtt(content)] == ["later", "earlier"]


def test_cue_with_only_markup_produces_no_segment() -> None:
    content = "00:00:01.000 --> 00:00:02.000\n<c></c>\n\n00:00:02.000 --> 00:00:03.000\nreal\n"
    assert [s.text for s in parse_vtt(content)] == ["real"]


def test_empty_input() -> None:
    assert parse_vtt("") == []
    assert parse_vtt("WEBVTT\n\n") == []


@pytest.mark.parametrize(
    ("timestamp", "seconds"),
    [
        ("00:00:00.000", 0.0),
        ("00:00:01.250", 1.25),
        ("01:02:03.500", 3723.5),
    ],
)
def test_timestamp_conversion(timestamp: str, seconds: float) -> None:
    assert vtt_timestamp_to_seconds(timestamp) == pytest.approx(seconds)


# ---------------------------------------------------------------------------
# JSON3
# ---------------------------------------------------------------------------


def test_json3_events_become_segments() -> None:
    data = {
        "events": [
            {"tStartMs": 0, "dDurationMs": 1000},  # window-definition event, no segs
            {"tStartMs": 1000, "dDurationMs": 2500, "segs": [{"utf8": "Hello "}, {"utf8": "world"}]},
            {"tStartMs": 3500, "dDurationMs": 1500, "segs": [{"utf8": "\n"}]},
            {"tStartMs": 5000, "dDurationMs": 500, "segs": [{"utf8": "Goodbye\nall"}]},
        ]
    }
    segments = parse_json3(data)
    assert [s.model_dump() for s in segments] == [
        {"start": 1.0, "duration": 2.5, "text": "Hello world"},
        {"start": 5.0, "duration": 0.5, "text": "Goodbye all"},
    ]


def test_json3_without_events() -> None:
    assert parse_json3({}) == []
