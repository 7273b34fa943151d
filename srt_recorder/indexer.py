"""Character offsets of segments inside the joined full text."""

from srt_recorder.constants import SEGMENT_SEPARATOR
from srt_recorder.models import Segment


def index_segments(texts: list[str]) -> list[Segment]:
    """Build the segment table from ordered segment strings.

    Each segment gets a half-open [start_char, end_char) range; one character
    is reserved after every segment for the separator used by join_segments().

    ["Hello", "world"] → [(0, 5), (6, 11)]
    """
    segments = []
    cursor = 0
    for i, text in enumerate(texts):
        start = cursor
        end = start + len(text)
        segments.append(Segment(index=i, text=text, start_char=start, end_char=end))
        cursor = end + len(SEGMENT_SEPARATOR)
    return segments


def join_segments(segments: list[Segment]) -> str:
    """Reconstruct the full text handed to the speech engine.

    Must stay in lockstep with index_segments() or char offsets drift.
    """
    return SEGMENT_SEPARATOR.join(seg.text for seg in segments)
