"""Tests for the edge-tts speech engine (Layer 2)."""

import asyncio
import threading
from unittest.mock import patch, MagicMock

import pytest

from srt_recorder.tts import EdgeSpeechEngine, SpeechEngine, ticks_to_ms


class RecordingListener:
    """Collects engine callbacks in order."""

    def __init__(self):
        self.events = []

    def on_start(self):
        self.events.append(("start",))

    def on_boundary(self, char_index, elapsed_ms):
        self.events.append(("boundary", char_index, elapsed_ms))

    def on_end(self, elapsed_ms):
        self.events.append(("end", elapsed_ms))

    def on_error(self, cause):
        self.events.append(("error", cause))

    def of(self, kind):
        return [e for e in self.events if e[0] == kind]


def _word(text, offset_ms, duration_ms=100):
    return {
        "type": "WordBoundary",
        "text": text,
        "offset": offset_ms * 10_000,
        "duration": duration_ms * 10_000,
    }


def _make_mock_communicate(chunks, fail_after=None, error=None):
    """Mock edge_tts.Communicate whose stream() yields `chunks`."""
    def factory(text, voice, **kwargs):
        mock = MagicMock()

        async def stream():
            for i, chunk in enumerate(chunks):
                if fail_after is not None and i == fail_after:
                    raise error
                yield chunk
            if fail_after is not None and fail_after >= len(chunks):
                raise error

        mock.stream = stream
        return mock
    return factory


def _run(engine, text, listener, voice="en-US-GuyNeural"):
    async def go():
        engine.start(text, "+0%", "+0Hz", voice, listener)
        await engine.wait()
    asyncio.run(go())


def test_ticks_to_ms():
    assert ticks_to_ms(0) == 0
    assert ticks_to_ms(12_345_678) == 1234


@patch("srt_recorder.tts.edge_tts.Communicate")
def test_boundaries_map_to_char_indexes(mock_comm):
    text = "Hello world. Bye now."
    mock_comm.side_effect = _make_mock_communicate([
        _word("Hello", 100), _word("world", 450), _word("Bye", 1200), _word("now", 1500, 300),
    ])
    listener = RecordingListener()
    _run(EdgeSpeechEngine(), text, listener)

    assert listener.events[0] == ("start",)
    assert listener.of("boundary") == [
        ("boundary", 0, 100), ("boundary", 6, 450), ("boundary", 13, 1200), ("boundary", 17, 1500),
    ]
    # No audio: end is the close of the last word
    assert listener.events[-1] == ("end", 1800)


@patch("srt_recorder.tts.edge_tts.Communicate")
def test_repeated_words_advance(mock_comm):
    text = "the cat the dog"
    mock_comm.side_effect = _make_mock_communicate([
        _word("the", 0), _word("cat", 200), _word("the", 400), _word("dog", 600),
    ])
    listener = RecordingListener()
    _run(EdgeSpeechEngine(), text, listener)
    assert [e[1] for e in listener.of("boundary")] == [0, 4, 8, 12]


@patch("srt_recorder.tts.edge_tts.Communicate")
def test_unknown_word_skipped(mock_comm):
    text = "Twenty one."
    mock_comm.side_effect = _make_mock_communicate([
        _word("21", 0), _word("Twenty", 0), _word("one", 300),
    ])
    listener = RecordingListener()
    _run(EdgeSpeechEngine(), text, listener)
    assert [e[1] for e in listener.of("boundary")] == [0, 7]


@patch("srt_recorder.tts.edge_tts.Communicate")
def test_communicate_parameters(mock_comm):
    mock_comm.side_effect = _make_mock_communicate([])
    _run(EdgeSpeechEngine(), "Hi.", RecordingListener(), voice="en-GB-RyanNeural")
    args, kwargs = mock_comm.call_args
    assert args == ("Hi.", "en-GB-RyanNeural")
    assert kwargs == {"rate": "+0%", "pitch": "+0Hz", "boundary": "WordBoundary"}


@patch("srt_recorder.tts.edge_tts.Communicate")
def test_audio_collected_and_measured(mock_comm, silent_mp3_bytes, tmp_path):
    mock_comm.side_effect = _make_mock_communicate([
        {"type": "audio", "data": silent_mp3_bytes[:100]},
        _word("Quiet", 50),
        {"type": "audio", "data": silent_mp3_bytes[100:]},
    ])
    engine = EdgeSpeechEngine()
    listener = RecordingListener()
    _run(engine, "Quiet.", listener)

    assert bytes(engine.audio) == silent_mp3_bytes
    end_ms = listener.events[-1][1]
    assert end_ms >= 1900  # ~2s of decoded audio beats the 150ms word end

    out = engine.save_audio(str(tmp_path / "speech.mp3"))
    assert (tmp_path / "speech.mp3").read_bytes() == silent_mp3_bytes
    assert out == str(tmp_path / "speech.mp3")


@patch("srt_recorder.tts.edge_tts.Communicate")
def test_retry_before_first_chunk(mock_comm, monkeypatch):
    monkeypatch.setattr("srt_recorder.tts.TTS_RETRY_BASE_DELAY", 0)
    calls = []
    ok = _make_mock_communicate([_word("Hi", 0)])
    bad = _make_mock_communicate([], fail_after=0, error=ConnectionError("reset"))

    def fail_then_succeed(text, voice, **kwargs):
        calls.append(text)
        return (bad if len(calls) == 1 else ok)(text, voice, **kwargs)

    mock_comm.side_effect = fail_then_succeed
    listener = RecordingListener()
    _run(EdgeSpeechEngine(), "Hi.", listener)

    assert len(calls) == 2
    assert not listener.of("error")
    assert listener.of("boundary") == [("boundary", 0, 0)]
    assert listener.of("end")


@patch("srt_recorder.tts.edge_tts.Communicate")
def test_retry_exhausted_reports_error(mock_comm, monkeypatch):
    monkeypatch.setattr("srt_recorder.tts.TTS_RETRY_BASE_DELAY", 0)
    mock_comm.side_effect = _make_mock_communicate([], fail_after=0, error=ConnectionError("down"))
    listener = RecordingListener()
    _run(EdgeSpeechEngine(retry_count=3), "Hi.", listener)

    assert mock_comm.call_count == 3
    errors = listener.of("error")
    assert len(errors) == 1
    assert str(errors[0][1]) == "down"
    assert not listener.of("end")


@patch("srt_recorder.tts.edge_tts.Communicate")
def test_error_mid_stream_not_retried(mock_comm):
    mock_comm.side_effect = _make_mock_communicate(
        [_word("One", 0), _word("two", 300)], fail_after=1, error=RuntimeError("dropped"),
    )
    listener = RecordingListener()
    _run(EdgeSpeechEngine(), "One two.", listener)

    assert mock_comm.call_count == 1
    assert listener.of("boundary") == [("boundary", 0, 0)]
    assert [str(e[1]) for e in listener.of("error")] == ["dropped"]
    assert not listener.of("end")


@patch("srt_recorder.tts.edge_tts.Communicate")
def test_stop_cancels_without_callbacks(mock_comm):
    def factory(text, voice, **kwargs):
        mock = MagicMock()

        async def stream():
            yield _word("Slow", 0)
            await asyncio.sleep(10)
            yield _word("never", 5000)

        mock.stream = stream
        return mock

    mock_comm.side_effect = factory
    engine = EdgeSpeechEngine()
    listener = RecordingListener()

    async def go():
        engine.start("Slow never.", "+0%", "+0Hz", "v", listener)
        await asyncio.sleep(0.05)
        assert engine.running
        engine.stop()
        await engine.wait()

    asyncio.run(go())
    assert not engine.running
    assert listener.of("boundary") == [("boundary", 0, 0)]
    assert not listener.of("end")
    assert not listener.of("error")


def test_start_requires_listener():
    async def go():
        with pytest.raises(ValueError):
            EdgeSpeechEngine().start("Hi.", "+0%", "+0Hz", "v", None)
    asyncio.run(go())


@patch("srt_recorder.tts.edge_tts.Communicate")
def test_invalid_parameters_not_retried(mock_comm, monkeypatch):
    monkeypatch.setattr("srt_recorder.tts.TTS_RETRY_BASE_DELAY", 0)
    mock_comm.side_effect = ValueError("Invalid rate '-10'.")
    listener = RecordingListener()
    _run(EdgeSpeechEngine(retry_count=3), "Hi.", listener)

    assert mock_comm.call_count == 1
    assert [str(e[1]) for e in listener.of("error")] == ["Invalid rate '-10'."]
    assert not listener.of("end")


@patch("srt_recorder.tts.edge_tts.Communicate")
def test_audio_measured_off_the_event_loop(mock_comm, monkeypatch):
    threads = []

    def fake_duration(data):
        threads.append(threading.get_ident())
        return 2000

    monkeypatch.setattr("srt_recorder.tts.audio_duration_ms", fake_duration)
    mock_comm.side_effect = _make_mock_communicate([
        {"type": "audio", "data": b"ID3"}, _word("Hi", 0),
    ])
    listener = RecordingListener()
    _run(EdgeSpeechEngine(), "Hi.", listener)

    assert listener.events[-1] == ("end", 2000)
    assert threads and threads[0] != threading.get_ident()


def test_incomplete_engine_cannot_be_built():
    class HalfEngine(SpeechEngine):
        def start(self, full_text, rate, pitch, voice, listener):
            pass

    with pytest.raises(TypeError):
        HalfEngine()
