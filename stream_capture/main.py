from __future__ import annotations

import argparse
import logging
import os
import re
import signal
import sys
import tempfile
import threading

from dotenv import load_dotenv

from .downloader.capture_controller import AssemblyFailed, NoSegmentsAvailable, capture
from .downloader.playlist_parser import MalformedPlaylist
from .downloader.segment_store import MissingSegment
from .models import CaptureResult
from .postprocess import AudioExtractor, ExtractionError, SubtitleExtractor, ToolNotFoundError
from .utils.file_utils import remove_file, replace_extension
from .utils.http_client import TransportError

load_dotenv()

DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def _env_str(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return value


def _env_bool(name: str) -> bool:
    value = _env_str(name)
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _duration_arg(value: str) -> float:
    """Parses ``2s``, ``500ms``, ``1m`` or plain seconds into seconds."""

    match = DURATION_RE.match(value or "")
    if not match:
        raise argparse.ArgumentTypeError(f"invalid duration: {value!r} (use e.g. 2s, 500ms, 1m)")
    amount, unit = match.groups()
    return float(amount) * DURATION_UNITS[unit or "s"]


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid count: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError("count must be at least 1")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stream-capture",
        description="Capture segments of an HLS live stream and merge them into a single file.",
    )
    parser.add_argument("-u", "--url", default=_env_str("STREAM_URL"), help="M3U8 playlist URL (required)")
    parser.add_argument(
        "-c",
        "--count",
        type=_positive_int,
        default=_env_str("SEGMENT_COUNT") or "10",
        help="Number of segments to download (starting from the latest)",
    )
    parser.add_argument("-o", "--output", default=_env_str("OUTPUT_FILE"), help="Output file for merged segments")
    parser.add_argument("-m", "--merge", default=None, help="Output file for merged segments (alias of --output)")
    parser.add_argument(
        "-i",
        "--interval",
        type=_duration_arg,
        default=_env_str("POLL_INTERVAL") or "2s",
        help="Playlist polling interval, e.g. 2s or 500ms",
    )
    parser.add_argument("--staging-dir", default=_env_str("STAGING_DIR"), help="Parent directory for temporary segments")
    parser.add_argument(
        "-a",
        "--audio",
        action="store_true",
        default=_env_bool("EXTRACT_AUDIO"),
        help="Extract audio as MP3 from the merged video file",
    )
    parser.add_argument(
        "--audio-only",
        action="store_true",
        default=_env_bool("AUDIO_ONLY"),
        help="Extract only audio (video file will be deleted after extraction)",
    )
    parser.add_argument(
        "--audio-output",
        default=_env_str("AUDIO_OUTPUT"),
        help="Output path for audio file (default: <output>.mp3)",
    )
    parser.add_argument(
        "--subtitle",
        action="store_true",
        default=_env_bool("EXTRACT_SUBTITLE"),
        help="Extract subtitles from audio using Whisper",
    )
    parser.add_argument(
        "--subtitle-output",
        default=_env_str("SUBTITLE_OUTPUT"),
        help="Output path for subtitle file (default: <audio>.srt)",
    )
    parser.add_argument(
        "--subtitle-language",
        default=_env_str("SUBTITLE_LANGUAGE"),
        help="Language code for subtitle extraction (e.g. tr, en). Auto-detect if not specified",
    )
    parser.add_argument(
        "--subtitle-model",
        default=_env_str("SUBTITLE_MODEL") or "base",
        help="Whisper model used for subtitle extraction",
    )
    parser.add_argument("-v", "--verbose", action="store_true", default=_env_bool("VERBOSE"), help="Enable debug logging")
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.url:
        parser.error("--url is required (or set STREAM_URL)")

    args.output = args.merge or args.output

    # Subtitles are transcribed from the extracted audio.
    if args.subtitle or args.audio_only:
        args.audio = True

    if args.audio_only:
        if not args.audio_output:
            parser.error("--audio-output is required when using --audio-only")
        if not args.output:
            args.output = os.path.join(tempfile.gettempdir(), "stream-capture-temp.ts")
    elif not args.output:
        parser.error("either --output or --merge is required")
    return args


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


def install_signal_handlers(cancel_event: threading.Event) -> None:
    def _handle(signum, frame) -> None:
        if not cancel_event.is_set():
            logging.info("Shutting down...")
        cancel_event.set()

    signal.signal(signal.SIGINT, _handle)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handle)


def run_postprocessing(args: argparse.Namespace, video_path: str) -> None:
    if not args.audio:
        return

    audio_path = args.audio_output or replace_extension(video_path, ".mp3")
    logging.info("Extracting audio to: %s", audio_path)
    AudioExtractor().extract(video_path, audio_path)

    if args.subtitle:
        subtitle_path = args.subtitle_output or replace_extension(audio_path, ".srt")
        logging.info("Extracting subtitles to: %s (model: %s)", subtitle_path, args.subtitle_model)
        SubtitleExtractor().extract(
            audio_path,
            subtitle_path,
            language=args.subtitle_language,
            model=args.subtitle_model,
        )

    if args.audio_only:
        try:
            if remove_file(video_path):
                logging.info("Removed temporary video file: %s", video_path)
        except OSError as exc:
            logging.warning("Failed to remove temporary video file %s: %s", video_path, exc)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    cancel_event = threading.Event()
    install_signal_handlers(cancel_event)

    try:
        result: CaptureResult = capture(
            args.url,
            args.count,
            args.output,
            poll_interval=args.interval,
            cancel_event=cancel_event,
            staging_dir=args.staging_dir,
        )
    except (TransportError, MalformedPlaylist) as exc:
        logging.error("Error fetching playlist: %s", exc)
        return 1
    except NoSegmentsAvailable as exc:
        logging.error("%s", exc)
        return 1
    except (AssemblyFailed, MissingSegment) as exc:
        logging.error("Error merging segments: %s", exc)
        return 1

    if result.cancelled:
        logging.info("Capture cancelled; %s of %s segments were downloaded", result.downloaded_count, result.requested)
        return 0
    if not result.output_path:
        logging.error("No segments were captured")
        return 1

    try:
        run_postprocessing(args, result.output_path)
    except (ToolNotFoundError, ExtractionError) as exc:
        logging.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
