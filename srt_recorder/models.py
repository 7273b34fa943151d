"""Data models for subtitle timing."""

from dataclasses import dataclass
from enum import Enum


class SessionStatus(str, Enum):
    IDLE = "idle"
    SEGMENTING = "segmenting"
    READY = "ready"            # segment table indexed, waiting to record
    RECORDING = "recording"
    FINISHED = "finished"
    FAILED = "failed"


@dataclass
class Segment:
    index: int                     # 0-based position in read order
    text: str
    start_char: int                # half-open range into the joined full text
    end_char: int
    start_time: int | None = None  # ms, None until observed
    end_time: int | None = None

    @property
    def is_timed(self) -> bool:
        return self.start_time is not None and self.end_time is not None

    def reset_timing(self) -> None:
        self.start_time = None
        self.end_time = None
