"""Render timed segments as SRT subtitle text."""

import os

from srt_recorder.constants import FALLBACK_DURATION_MS
from srt_recorder.models import Segment


def format_timestamp(ms: int) -> str:
    """Format milliseconds as an SRT timestamp: HH:MM:SS,mmm.

    Pure integer arithmetic, so durations past 24h stay valid and hours
    simply grow wider than two digits.

    3661001 → "01:01:01,001"
    """
    ms = int(ms)
    if ms < 0:
        raise ValueError(f"Timestamp must be non-negative, got {ms}")
    total_seconds, millis = divmod(ms, 1000)
    total_minutes, seconds = divmod(total_seconds, 60)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d},{millis:03d}"


def _block(position: int, segment: Segment) -> str:
    start_ms = segment.start_time if segment.start_time is not None else 0
    # Unrecorded end: backfill a synthetic one-second cue
    end_ms = segment.end_time if segment.end_time is not None else start_ms + FALLBACK_DURATION_MS
    return (
        f"{position}\n"
        f"{format_timestamp(start_ms)} --> {format_timestamp(end_ms)}\n"
        f"{segment.text.strip()}"
    )


def render(segments: list[Segment]) -> str:
    """Render segments as SRT text.

    Blocks are numbered from 1 in list order, separated by one blank line,
    and the result ends with a single trailing newline.
    """
    return "\n\n".join(_block(i + 1, seg) for i, seg in enumerate(segments)) + "\n"


def write_srt(segments: list[Segment], path: str) -> str:
    """Write rendered SRT to path as UTF-8. Returns the path."""
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(render(segments))
    return path
