"""All magic numbers and configuration constants."""

SEGMENT_SEPARATOR = " "             # joins segment texts into the spoken full text (exactly 1 char)
FALLBACK_DURATION_MS = 1000         # ms, synthetic duration for segments with no recorded end
TTS_RATE = "+0%"                    # speech rate: relative string, e.g. "-10%" = 10% slower
TTS_PITCH = "+0Hz"                  # pitch shift: relative string in Hz
DEFAULT_VOICE = "en-US-GuyNeural"   # preferred English (United States) neural voice
TTS_RETRY_COUNT = 3                 # max connection attempts per read-through
TTS_RETRY_BASE_DELAY = 1.0          # seconds, base delay for exponential backoff
TICKS_PER_MS = 10_000               # edge-tts offsets are in 100ns ticks
AI_MODEL = "gpt-4o-mini"            # chat model used for sentence segmentation
OPENAI_API_KEY_ENV = "OPENAI_API_KEY"
SRT_SUFFIX = ".srt"
VERSION = "0.1.0"
