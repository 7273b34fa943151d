"""Voice catalogue for the speech engine."""

import asyncio
import logging

import edge_tts

from srt_recorder.constants import DEFAULT_VOICE

logger = logging.getLogger(__name__)

# Hardcoded English voice pool (avoids network call at startup)
VOICE_POOL = [
    "en-US-GuyNeural",
    "en-US-AriaNeural",
    "en-US-DavisNeural",
    "en-US-TonyNeural",
    "en-US-JennyNeural",
    "en-US-SaraNeural",
    "en-GB-RyanNeural",
    "en-GB-SoniaNeural",
    "en-GB-ThomasNeural",
    "en-AU-NatashaNeural",
    "en-AU-WilliamNeural",
    "en-CA-ClaraNeural",
    "en-CA-LiamNeural",
    "en-IN-NeerjaNeural",
    "en-IN-PrabhatNeural",
    "en-IE-EmilyNeural",
]


def _locale(voice: str) -> str:
    """Locale prefix of a voice name: en-US-GuyNeural → en-US."""
    return "-".join(voice.split("-")[:2])


def _sort_voices(voices: list[str]) -> list[str]:
    return sorted(set(voices), key=lambda v: (_locale(v).lower(), v.lower()))


def fetch_online_voices() -> list[str]:
    """Query the edge-tts service for every available voice short name."""
    voices = asyncio.run(edge_tts.list_voices())
    return [v["ShortName"] for v in voices if v.get("ShortName")]


def list_voices(filter_str: str | None = None, online: bool = False) -> list[str]:
    """Return voice names sorted by locale then name, optionally filtered by substring."""
    voices = fetch_online_voices() if online else list(VOICE_POOL)
    if filter_str:
        needle = filter_str.lower()
        voices = [v for v in voices if needle in v.lower()]
    return _sort_voices(voices)


def resolve_voice(voice: str | None) -> str:
    """Pick the voice to speak with; None or "" means the default voice."""
    if not voice:
        return DEFAULT_VOICE
    if voice not in VOICE_POOL:
        logger.warning("Voice %s is not in the built-in pool; passing it through", voice)
    return voice
