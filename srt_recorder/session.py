"""Playback session: one read-through from segmentation to finalized timings."""

import asyncio
import logging
from typing import Awaitable, Callable

from srt_recorder.constants import DEFAULT_VOICE, TTS_PITCH, TTS_RATE
from srt_recorder.indexer import index_segments, join_segments
from srt_recorder.models import Segment, SessionStatus
from srt_recorder.segmenter import segment_text
from srt_recorder.srt import render, write_srt
from srt_recorder.synchronizer import TimingSynchronizer
from srt_recorder.tts import SpeechEngine

logger = logging.getLogger(__name__)

Segmenter = Callable[[str], Awaitable[list[str]]]


class SessionError(RuntimeError):
    """Raised when the session is asked to do something its state forbids."""


class RecordingTimeout(SessionError):
    """The watchdog expired before the engine reported an end."""


class _Listener:
    """Engine callbacks tagged with the generation that started them.

    Callbacks from a superseded or stopped read-through are dropped, so only
    one event stream can ever write into the segment table.
    """

    def __init__(self, session: "PlaybackSession", generation: int):
        self.session = session
        self.generation = generation

    def _live(self) -> bool:
        s = self.session
        return s._generation == self.generation and s._status is SessionStatus.RECORDING

    def on_start(self) -> None:
        if self._live():
            logger.info("Speech started")

    def on_boundary(self, char_index: int, elapsed_ms: int) -> None:
        if self._live():
            self.session.synchronizer.on_progress(char_index, elapsed_ms)

    def on_end(self, elapsed_ms: int) -> None:
        if self._live():
            self.session._finish(elapsed_ms)

    def on_error(self, cause: BaseException) -> None:
        if self._live():
            self.session._fail(cause)


class PlaybackSession:
    """State machine: IDLE → SEGMENTING → READY → RECORDING → FINISHED | FAILED.

    Owns the segment table, its TimingSynchronizer and the speech engine. All
    table mutation happens on the engine's callback path through the
    synchronizer.
    """

    def __init__(
        self,
        engine: SpeechEngine,
        voice: str | None = DEFAULT_VOICE,
        rate: str = TTS_RATE,
        pitch: str = TTS_PITCH,
        segmenter: Segmenter = segment_text,
    ):
        self.engine = engine
        self.voice = voice
        self.rate = rate
        self.pitch = pitch
        self.segmenter = segmenter
        self.text = ""
        self._status = SessionStatus.IDLE
        self._segments: list[Segment] = []
        self._generation = 0
        self._error: BaseException | None = None
        self._observers: list[Callable[[int | None], None]] = []
        self.synchronizer = TimingSynchronizer(self._segments)

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def segments(self) -> list[Segment]:
        return self._segments

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def active_index(self) -> int | None:
        return self.synchronizer.active_index

    @property
    def full_text(self) -> str:
        return join_segments(self._segments)

    def _replace_table(self, segments: list[Segment]) -> None:
        self._segments = segments
        self.synchronizer = TimingSynchronizer(segments)
        for callback in self._observers:
            self.synchronizer.subscribe(callback)

    def subscribe(self, callback: Callable[[int | None], None]) -> None:
        """Be notified of active segment changes (survives table replacement)."""
        self._observers.append(callback)
        self.synchronizer.subscribe(callback)

    def set_text(self, text: str) -> None:
        """Replace the source text, discarding any segment table."""
        if self._status is SessionStatus.RECORDING:
            raise SessionError("Cannot edit text while recording")
        self.text = text
        self._replace_table([])
        self._error = None
        self._status = SessionStatus.IDLE

    def load_segments(self, texts: list[str]) -> list[Segment]:
        """Accept already-split segments and index them."""
        if self._status is SessionStatus.RECORDING:
            raise SessionError("Cannot replace segments while recording")
        self._replace_table(index_segments(texts))
        self._error = None
        self._status = SessionStatus.READY if self._segments else SessionStatus.IDLE
        return self._segments

    async def prepare(self, text: str | None = None) -> list[Segment]:
        """Segment the source text and build the segment table."""
        if self._status in (SessionStatus.RECORDING, SessionStatus.SEGMENTING):
            raise SessionError(f"Cannot segment while {self._status.value}")
        if text is not None:
            self.text = text

        self._replace_table([])
        self._status = SessionStatus.SEGMENTING
        try:
            lines = await self.segmenter(self.text)
        except Exception as e:
            logger.warning("Segmentation failed: %s", e)
            self._status = SessionStatus.IDLE
            return self._segments

        return self.load_segments(lines)

    def start(self) -> None:
        """Begin a read-through. Non-blocking; the engine drives the rest."""
        if self._status is SessionStatus.SEGMENTING:
            raise SessionError("Cannot record while segmenting")
        if not self._segments:
            raise SessionError("No segments to record; prepare text first")
        if not self.voice:
            raise SessionError("No voice selected")

        if self._status is SessionStatus.RECORDING:
            self.stop()

        self._generation += 1
        self._error = None
        self.synchronizer.on_session_start()
        self._status = SessionStatus.RECORDING
        logger.info("Recording %d segments with %s", len(self._segments), self.voice)
        self.engine.start(
            self.full_text,
            self.rate,
            self.pitch,
            self.voice,
            _Listener(self, self._generation),
        )

    def stop(self) -> None:
        """Cancel the read-through; recorded timings are kept as they are."""
        if self._status is not SessionStatus.RECORDING:
            return
        self.engine.stop()
        self.synchronizer.on_error()
        self._status = SessionStatus.IDLE
        logger.info("Recording stopped")

    def _finish(self, elapsed_ms: int) -> None:
        self.synchronizer.on_session_end(elapsed_ms)
        self._status = SessionStatus.FINISHED
        logger.info("Recording finished at %dms", elapsed_ms)

    def _fail(self, cause: BaseException) -> None:
        self.synchronizer.on_error()
        self._error = cause
        self._status = SessionStatus.FAILED
        logger.error("Recording failed: %s", cause)

    async def wait(self, timeout: float | None = None) -> SessionStatus:
        """Wait for the read-through to end; optional watchdog in seconds."""
        if self._status is not SessionStatus.RECORDING:
            return self._status
        generation = self._generation
        try:
            await asyncio.wait_for(self.engine.wait(), timeout)
        except asyncio.TimeoutError:
            if generation == self._generation and self._status is SessionStatus.RECORDING:
                self.engine.stop()
                self._fail(RecordingTimeout(f"No end of speech after {timeout}s"))
                await self.engine.wait()
            return self._status

        if generation == self._generation and self._status is SessionStatus.RECORDING:
            logger.warning("Speech engine ended without an end event; finalizing")
            self._finish(self.synchronizer.last_elapsed_ms or 0)
        return self._status

    async def record(self, timeout: float | None = None) -> SessionStatus:
        self.start()
        return await self.wait(timeout)

    def render(self) -> str:
        return render(self._segments)

    def write_srt(self, path: str) -> str:
        return write_srt(self._segments, path)
