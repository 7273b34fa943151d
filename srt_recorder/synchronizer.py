"""Map speech progress events onto segment start/end times."""

import bisect
import logging
from typing import Callable

from srt_recorder.models import Segment

logger = logging.getLogger(__name__)

ActiveCallback = Callable[[int | None], None]


class TimingSynchronizer:
    """Single-writer state machine over one segment table.

    Events are expected serially and in non-decreasing time order. A segment's
    start_time is never rewritten once set. During playback an end_time is
    written only on the transition away from the active segment; at session
    end the still-open active segment is closed too, along with the last one.
    """

    def __init__(self, segments: list[Segment]):
        self.segments = segments
        self.active_index: int | None = None
        self.last_elapsed_ms: int | None = None
        self._starts = [seg.start_char for seg in segments]
        self._observers: list[ActiveCallback] = []

    def subscribe(self, callback: ActiveCallback) -> None:
        """Register a callable notified with the new active index (or None)."""
        self._observers.append(callback)

    def _notify(self) -> None:
        for callback in self._observers:
            callback(self.active_index)

    def locate(self, char_index: int) -> int | None:
        """Return the index of the segment containing char_index, or None."""
        pos = bisect.bisect_right(self._starts, char_index) - 1
        if pos < 0:
            return None
        seg = self.segments[pos]
        if char_index >= seg.end_char:
            return None  # separator gap or past the end
        return pos

    def on_session_start(self) -> None:
        for seg in self.segments:
            seg.reset_timing()
        self.last_elapsed_ms = 0
        if not self.segments:
            self.active_index = None
            return
        self.active_index = 0
        self.segments[0].start_time = 0
        self._notify()

    def on_progress(self, char_index: int, elapsed_ms: int) -> bool:
        """Apply one progress event. Returns True if the active segment changed."""
        if self.active_index is None:
            logger.debug("Progress event with no active session ignored")
            return False

        matched = self.locate(char_index)
        if matched is None:
            logger.debug("No segment at char %d (t=%dms)", char_index, elapsed_ms)
            return False
        if matched < self.active_index:
            logger.debug("Stale event for segment %d (active %d)", matched, self.active_index)
            return False

        active = self.segments[self.active_index]
        if active.start_time is not None and elapsed_ms < active.start_time:
            logger.debug("Out-of-order event at %dms ignored", elapsed_ms)
            return False

        self.last_elapsed_ms = max(self.last_elapsed_ms or 0, elapsed_ms)
        if matched == self.active_index:
            return False

        if active.end_time is None:
            active.end_time = elapsed_ms
        self.segments[matched].start_time = elapsed_ms
        self.active_index = matched
        self._notify()
        return True

    def on_session_end(self, elapsed_ms: int) -> None:
        """Finalize the read-through; the last segment always gets an end time.

        The active segment, if still open, is also closed at elapsed_ms so the
        final cue does not start after a gap.
        """
        if not self.segments:
            self.active_index = None
            return

        if self.active_index is not None:
            active = self.segments[self.active_index]
            if active.end_time is None:
                active.end_time = max(elapsed_ms, active.start_time or 0)

        last = self.segments[-1]
        last.end_time = max(elapsed_ms, last.start_time or 0)
        self.last_elapsed_ms = max(self.last_elapsed_ms or 0, elapsed_ms)
        self.active_index = None
        self._notify()

    def on_error(self) -> None:
        """Abnormal end: freeze timings as they are, no finalization."""
        if self.active_index is None:
            return
        logger.debug("Session aborted at segment %d", self.active_index)
        self.active_index = None
        self._notify()
