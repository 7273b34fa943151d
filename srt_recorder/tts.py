"""Speech engine: edge-tts streaming with word-boundary progress events."""

import asyncio
import io
import logging
from abc import ABC, abstractmethod
from typing import Protocol

import edge_tts
from pydub import AudioSegment

from srt_recorder.constants import (
    TICKS_PER_MS,
    TTS_PITCH,
    TTS_RATE,
    TTS_RETRY_BASE_DELAY,
    TTS_RETRY_COUNT,
)

logger = logging.getLogger(__name__)


class SpeechListener(Protocol):
    """Callbacks a speech engine delivers, serially, during one read-through."""

    def on_start(self) -> None: ...

    def on_boundary(self, char_index: int, elapsed_ms: int) -> None: ...

    def on_end(self, elapsed_ms: int) -> None: ...

    def on_error(self, cause: BaseException) -> None: ...


class SpeechEngine(ABC):
    """Interface to a speech renderer that reports progress as it speaks.

    start() must not block; completion is signalled only through the
    listener's on_end/on_error.
    """

    @abstractmethod
    def start(
        self,
        full_text: str,
        rate: str,
        pitch: str,
        voice: str,
        listener: SpeechListener,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def wait(self) -> None:
        """Return once the current read-through has ended, failed or been stopped."""
        raise NotImplementedError


def ticks_to_ms(ticks: int) -> int:
    """Convert an edge-tts offset (100ns ticks) to whole milliseconds."""
    return int(ticks) // TICKS_PER_MS


def audio_duration_ms(data: bytes) -> int:
    """Duration of an MP3 byte stream in ms, decoded with pydub (needs ffmpeg)."""
    return len(AudioSegment.from_file(io.BytesIO(data), format="mp3"))


class EdgeSpeechEngine(SpeechEngine):
    """Microsoft Edge neural TTS via edge_tts.Communicate().stream().

    Each WordBoundary chunk is located in the full text by a forward search
    from the previous word, giving the char index of the progress event.
    Elapsed time is the engine's own audio offset, not host wall-clock.
    """

    def __init__(self, retry_count: int = TTS_RETRY_COUNT):
        self.retry_count = retry_count
        self.audio = bytearray()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(
        self,
        full_text: str,
        rate: str = TTS_RATE,
        pitch: str = TTS_PITCH,
        voice: str = "",
        listener: SpeechListener | None = None,
    ) -> None:
        """Schedule the read-through on the running event loop and return."""
        if listener is None:
            raise ValueError("A listener is required")
        self.stop()
        self.audio = bytearray()
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(full_text, rate, pitch, voice, listener))

    def stop(self) -> None:
        if self.running:
            logger.info("Cancelling speech stream")
            self._task.cancel()

    async def wait(self) -> None:
        if self._task is not None:
            # asyncio.wait() does not re-raise the task's cancellation
            await asyncio.wait({self._task})

    async def _run(
        self,
        full_text: str,
        rate: str,
        pitch: str,
        voice: str,
        listener: SpeechListener,
    ) -> None:
        listener.on_start()
        last_error = None
        for attempt in range(self.retry_count):
            received = False
            cursor = 0
            last_end_ms = 0
            try:
                communicate = edge_tts.Communicate(
                    full_text, voice, rate=rate, pitch=pitch, boundary="WordBoundary",
                )
                async for chunk in communicate.stream():
                    received = True
                    if chunk["type"] == "audio":
                        self.audio.extend(chunk["data"])
                    elif chunk["type"] == "WordBoundary":
                        word = chunk["text"]
                        char_index = full_text.find(word, cursor)
                        if char_index == -1:
                            logger.debug("Boundary word %r not found after char %d", word, cursor)
                            continue
                        cursor = char_index + len(word)
                        elapsed_ms = ticks_to_ms(chunk["offset"])
                        last_end_ms = ticks_to_ms(chunk["offset"] + chunk["duration"])
                        listener.on_boundary(char_index, elapsed_ms)
            except ValueError as e:
                # Invalid voice, rate or pitch
                listener.on_error(e)
                return
            except Exception as e:
                last_error = e
                if received:
                    # Events already delivered; a replay would double-write timings
                    listener.on_error(e)
                    return
                logger.warning("Speech stream attempt %d/%d failed: %s", attempt + 1, self.retry_count, e)
                if attempt < self.retry_count - 1:
                    await asyncio.sleep(TTS_RETRY_BASE_DELAY * (2 ** attempt))
                continue

            end_ms = last_end_ms
            if self.audio:
                try:
                    end_ms = max(end_ms, await asyncio.to_thread(audio_duration_ms, bytes(self.audio)))
                except Exception as e:
                    logger.warning("Could not measure audio duration: %s", e)
            listener.on_end(end_ms)
            return

        listener.on_error(last_error or RuntimeError("Speech stream failed"))

    def save_audio(self, path: str) -> str:
        """Write the MP3 collected during the last read-through."""
        with open(path, "wb") as f:
            f.write(bytes(self.audio))
        return path
