"""Subtitle parsers for the two timed-text formats yt-dlp can hand back.

``parse_vtt`` is a single-pass line scanner: a cue timing line flushes the
block accumulated so far and opens a new one; the last block is flushed
after the scan. ``parse_json3`` walks YouTube's JSON3 event list.

Cue text is the run of non-empty lines directly after a timing line. A blank
line closes the run, and lines between it and the next timing line are
dropped: in WebVTT those are cue identifiers, headers or comments, never cue
text.

Both return segments in source order; nothing is sorted or merged.
"""

from __future__ import annotations

import html
import re
from collections.abc import Mapping
from typing import Any

from rescontent.models.results import TranscriptSegment

_TIMING_RE = re.compile(r"(\d{2,}:\d{2}:\d{2}\.\d{3})\s*-->\s*(\d{2,}:\d{2}:\d{2}\.\d{3})")
_TAG_RE = re.compile(r"<[^>]+>")
_SPEAKER_RE = re.compile(r"^\[.*?\]\s*")


def vtt_timestamp_to_seconds(timestamp: str) -> float:
    """``"01:02:03.500"`` → ``3723.5``."""
    hours, minutes, seconds = timestamp.split(":")
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def _clean_cue_line(line: str) -> str:
    text = _TAG_RE.sub("", line)
    text = _SPEAKER_RE.sub("", text)
    return html.unescape(text).strip()


def parse_vtt(content: str) -> list[TranscriptSegment]:
    """Parse WebVTT text into ordered transcript segments.

    A blank line ends a cue's text block, so header lines (``WEBVTT``,
    ``Kind:``, ``Language:``), cue identifiers and ``NOTE`` blocks, which
    never directly follow a timing line, are skipped.
    """
    segments: list[TranscriptSegment] = []

    in_cue = False
    start = 0.0
    end = 0.0
    parts: list[str] = []

    def flush() -> None:
        if parts:
            segments.append(
                TranscriptSegment(start=start, duration=end - start, text=" ".join(parts))
            )

    for raw_line in content.splitlines():
        line = raw_line.strip()

        timing = _TIMING_RE.search(line)
        if timing:
            flush()
            in_cue = True
            start = vtt_timestamp_to_seconds(timing.group(1))
            end = vtt_timestamp_to_seconds(timing.group(2))
            parts = []
            continue

        if not line:
            in_cue = False
            continue

        if not in_cue or line.startswith("WEBVTT") or line.startswith("NOTE"):
            continue

        cleaned = _clean_cue_line(line)
        if cleaned:
            parts.append(cleaned)

    flush()
    return segments


def parse_json3(data: Mapping[str, Any]) -> list[TranscriptSegment]:
    """Parse YouTube JSON3 subtitle data into ordered transcript segments."""
    segments: list[TranscriptSegment] = []

    for event in data.get("events") or []:
        segs = event.get("segs")
        if not segs:
            continue
        text = "".join(seg.get("utf8") or "" for seg in segs).replace("\n", " ").strip()
        if not text:
            continue
        segments.append(
            TranscriptSegment(
                start=(event.get("tStartMs") or 0) / 1000,
                duration=(event.get("dDurationMs") or 0) / 1000,
                text=text,
            )
        )

    return segments
