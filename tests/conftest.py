"""Shared fixtures for srt recorder tests."""

import asyncio
import io
import re

import pytest
from pydub import AudioSegment

from srt_recorder.indexer import index_segments
from srt_recorder.tts import SpeechEngine


class FakeEngine(SpeechEngine):
    """Speech engine double; `script(listener)` runs when the session waits."""

    def __init__(self, script=None, hang=False):
        self.script = script
        self.hang = hang
        self.started = []
        self.listeners = []
        self.stopped = 0
        self.audio = bytearray()

    @property
    def listener(self):
        return self.listeners[-1] if self.listeners else None

    def start(self, full_text, rate, pitch, voice, listener):
        self.started.append((full_text, rate, pitch, voice))
        self.listeners.append(listener)

    def stop(self):
        self.stopped += 1

    def save_audio(self, path):
        with open(path, "wb") as f:
            f.write(bytes(self.audio))
        return path

    async def wait(self):
        if self.script is not None:
            script, self.script = self.script, None
            script(self.listener)
        while self.hang and not self.stopped:
            await asyncio.sleep(0.01)


class WordStreamEngine(FakeEngine):
    """Emits one boundary per word of the full text, 10ms per character."""

    def start(self, full_text, rate, pitch, voice, listener):
        super().start(full_text, rate, pitch, voice, listener)

        def speak(listener):
            listener.on_start()
            for match in re.finditer(r"\S+", full_text):
                listener.on_boundary(match.start(), match.start() * 10)
            listener.on_end(len(full_text) * 10)

        self.script = speak


@pytest.fixture
def sample_texts():
    return ["Hello there.", "How are you?", "Goodbye."]


@pytest.fixture
def sample_segments(sample_texts):
    """Indexed table: [0,12) [13,25) [26,34)."""
    return index_segments(sample_texts)


@pytest.fixture
def silent_mp3_bytes():
    """Two seconds of silence encoded as MP3 (needs ffmpeg)."""
    buf = io.BytesIO()
    AudioSegment.silent(duration=2000).export(buf, format="mp3")
    return buf.getvalue()
