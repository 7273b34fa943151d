"""CLI interface with subcommand routing."""

import argparse
import asyncio
import logging
import os
import shutil
import sys

from srt_recorder.constants import SRT_SUFFIX, TTS_PITCH, TTS_RATE, VERSION
from srt_recorder.models import SessionStatus
from srt_recorder.segmenter import fallback_split, segment_text
from srt_recorder.session import PlaybackSession, SessionError
from srt_recorder.tts import EdgeSpeechEngine
from srt_recorder.voices import list_voices, resolve_voice


def _check_ffmpeg():
    """Verify ffmpeg is installed."""
    if not shutil.which("ffmpeg"):
        print("Error: ffmpeg is required but not found.", file=sys.stderr)
        print("Install with: brew install ffmpeg", file=sys.stderr)
        raise SystemExit(1)


def _read_source(file_path: str) -> str:
    """Read the source text file, exiting on missing or empty input."""
    if not os.path.exists(file_path):
        print(f"Error: File not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)

    with open(file_path, encoding="utf-8") as f:
        text = f.read()

    if not text.strip():
        print(f"Error: File is empty: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    return text


def _make_segmenter(no_ai: bool):
    if not no_ai:
        return segment_text

    async def rule_based(text: str) -> list[str]:
        return fallback_split(text)

    return rule_based


def _default_output(file_path: str) -> str:
    return os.path.splitext(file_path)[0] + SRT_SUFFIX


def cmd_segment(args):
    """Split a text file into subtitle segments and show their char ranges."""
    text = _read_source(args.file)
    session = PlaybackSession(EdgeSpeechEngine(), segmenter=_make_segmenter(args.no_ai))
    segments = asyncio.run(session.prepare(text))

    if not segments:
        print(f"Error: Could not split any segments from: {args.file}", file=sys.stderr)
        raise SystemExit(1)

    print(f"{len(segments)} segments:")
    for seg in segments:
        print(f"  {seg.index + 1:>3} [{seg.start_char}:{seg.end_char}) {seg.text}")


async def _record(session: PlaybackSession, text: str, timeout: float | None) -> SessionStatus:
    segments = await session.prepare(text)
    if not segments:
        return session.status
    print(f"Recording {len(segments)} segments with {session.voice}...")
    return await session.record(timeout=timeout)


def cmd_record(args):
    """Read the text aloud and write an SRT timed to the speech."""
    _check_ffmpeg()
    text = _read_source(args.file)
    output = args.output or _default_output(args.file)

    engine = EdgeSpeechEngine()
    session = PlaybackSession(
        engine,
        voice=resolve_voice(args.voice),
        rate=args.rate,
        pitch=args.pitch,
        segmenter=_make_segmenter(args.no_ai),
    )

    def show_progress(index):
        if index is None:
            return
        seg = session.segments[index]
        print(f"  [{index + 1}/{len(session.segments)}] {seg.text[:60]}")

    session.subscribe(show_progress)

    try:
        status = asyncio.run(_record(session, text, args.timeout))
    except SessionError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)
    except KeyboardInterrupt:
        session.stop()
        if not session.segments:
            print("Error: Recording stopped", file=sys.stderr)
            raise SystemExit(1)
        status = session.status

    if not session.segments:
        print(f"Error: Could not split any segments from: {args.file}", file=sys.stderr)
        raise SystemExit(1)

    # Partial timings are still worth keeping
    session.write_srt(output)
    if args.audio and engine.audio:
        engine.save_audio(args.audio)
        print(f"Audio: {args.audio}")

    if status is not SessionStatus.FINISHED:
        if session.error is None:
            print("Error: Recording stopped", file=sys.stderr)
        else:
            print(f"Error: Recording failed: {session.error}", file=sys.stderr)
        print(f"Partial subtitles written to {output}", file=sys.stderr)
        raise SystemExit(1)

    print(f"Done: {output}")


def cmd_voices(args):
    """List available voices."""
    voices = list_voices(args.filter, online=args.online)
    if not voices:
        print("No matching voices found.")
        return
    print("Available voices:")
    for v in voices:
        print(f"  {v}")


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="srt-recorder",
        description="SRT Recorder: time subtitles to a spoken read-through of your text",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # segment
    segment_parser = subparsers.add_parser("segment", help="Split a text file into subtitle lines")
    segment_parser.add_argument("file", help="Path to the source text file")
    segment_parser.add_argument("--no-ai", action="store_true", help="Use rule-based splitting only")
    segment_parser.set_defaults(func=cmd_segment)

    # record
    record_parser = subparsers.add_parser("record", help="Record SRT timings from a read-through")
    record_parser.add_argument("file", help="Path to the source text file")
    record_parser.add_argument("-o", "--output", help="SRT output path (default: <file>.srt)")
    record_parser.add_argument("--voice", help="Voice short name (see 'voices')")
    record_parser.add_argument("--rate", default=TTS_RATE, help="Relative speech rate, e.g. --rate=-10%%")
    record_parser.add_argument("--pitch", default=TTS_PITCH, help="Relative pitch, e.g. --pitch=-5Hz")
    record_parser.add_argument("--audio", help="Also save the spoken audio as MP3")
    record_parser.add_argument("--timeout", type=float, help="Give up after this many seconds")
    record_parser.add_argument("--no-ai", action="store_true", help="Use rule-based splitting only")
    record_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    record_parser.set_defaults(func=cmd_record)

    # voices
    voices_parser = subparsers.add_parser("voices", help="List available voices")
    voices_parser.add_argument("--filter", help="Filter voices by substring")
    voices_parser.add_argument("--online", action="store_true", help="Query the full online voice list")
    voices_parser.set_defaults(func=cmd_voices)

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if getattr(args, "verbose", False) else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return

    args.func(args)
