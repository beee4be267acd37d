from __future__ import annotations

import argparse

import pytest

from stream_capture import main as cli
from stream_capture.downloader.capture_controller import AssemblyFailed, NoSegmentsAvailable
from stream_capture.models import CaptureResult
from stream_capture.utils.http_client import TransportError

ENV_VARS = (
    "STREAM_URL",
    "SEGMENT_COUNT",
    "OUTPUT_FILE",
    "POLL_INTERVAL",
    "STAGING_DIR",
    "EXTRACT_AUDIO",
    "AUDIO_ONLY",
    "AUDIO_OUTPUT",
    "EXTRACT_SUBTITLE",
    "SUBTITLE_OUTPUT",
    "SUBTITLE_LANGUAGE",
    "SUBTITLE_MODEL",
    "VERBOSE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.mark.parametrize(
    "value, seconds",
    [("2s", 2.0), ("500ms", 0.5), ("1m", 60.0), ("3", 3.0), ("1.5s", 1.5)],
)
def test_duration_arg(value: str, seconds: float) -> None:
    assert cli._duration_arg(value) == pytest.approx(seconds)


def test_duration_arg_rejects_garbage() -> None:
    with pytest.raises(argparse.ArgumentTypeError):
        cli._duration_arg("soon")


def test_defaults() -> None:
    args = cli.parse_args(["-u", "https://cdn.example.com/live.m3u8", "-o", "out.ts"])

    assert args.count == 10
    assert args.interval == pytest.approx(2.0)
    assert args.output == "out.ts"
    assert args.audio is False
    assert args.subtitle_model == "base"


def test_merge_is_an_alias_for_output() -> None:
    args = cli.parse_args(["-u", "https://cdn.example.com/live.m3u8", "-m", "merged.ts"])

    assert args.output == "merged.ts"


def test_environment_supplies_defaults(monkeypatch) -> None:
    monkeypatch.setenv("STREAM_URL", "https://cdn.example.com/env.m3u8")
    monkeypatch.setenv("SEGMENT_COUNT", "4")
    monkeypatch.setenv("OUTPUT_FILE", "env.ts")
    monkeypatch.setenv("POLL_INTERVAL", "250ms")

    args = cli.parse_args([])

    assert args.url == "https://cdn.example.com/env.m3u8"
    assert args.count == 4
    assert args.output == "env.ts"
    assert args.interval == pytest.approx(0.25)


@pytest.mark.parametrize("count", ["0", "-3", "ten"])
def test_invalid_segment_count_from_environment_exits(monkeypatch, count: str) -> None:
    monkeypatch.setenv("SEGMENT_COUNT", count)

    with pytest.raises(SystemExit):
        cli.parse_args(["-u", "https://x/live.m3u8", "-o", "out.ts"])


def test_subtitle_implies_audio() -> None:
    args = cli.parse_args(["-u", "https://x/live.m3u8", "-o", "out.ts", "--subtitle"])

    assert args.audio is True


def test_audio_only_requires_audio_output() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args(["-u", "https://x/live.m3u8", "--audio-only"])


def test_audio_only_uses_temporary_video() -> None:
    args = cli.parse_args(["-u", "https://x/live.m3u8", "--audio-only", "--audio-output", "a.mp3"])

    assert args.audio is True
    assert args.output.endswith("stream-capture-temp.ts")


@pytest.mark.parametrize("argv", [["-o", "out.ts"], ["-u", "https://x/live.m3u8"], ["-u", "https://x", "-o", "o", "-c", "0"]])
def test_invalid_arguments_exit(argv) -> None:
    with pytest.raises(SystemExit):
        cli.parse_args(argv)


@pytest.fixture
def no_signals(monkeypatch):
    monkeypatch.setattr(cli, "install_signal_handlers", lambda event: None)


def _stub_capture(monkeypatch, outcome):
    calls = []

    def _capture(url, count, output, **kwargs):
        calls.append((url, count, output, kwargs))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(cli, "capture", _capture)
    return calls


def test_main_success_skips_postprocessing_by_default(monkeypatch, no_signals) -> None:
    calls = _stub_capture(monkeypatch, CaptureResult(requested=2, downloaded_sequences=[5, 6], output_path="out.ts"))
    monkeypatch.setattr(cli, "AudioExtractor", lambda: pytest.fail("audio extraction not requested"))

    assert cli.main(["-u", "https://x/live.m3u8", "-o", "out.ts", "-c", "2", "-i", "1s"]) == 0

    (url, count, output, kwargs) = calls[0]
    assert (url, count, output) == ("https://x/live.m3u8", 2, "out.ts")
    assert kwargs["poll_interval"] == pytest.approx(1.0)
    assert kwargs["cancel_event"].is_set() is False


@pytest.mark.parametrize(
    "error",
    [
        TransportError("boom", "https://x/live.m3u8"),
        NoSegmentsAvailable("no segments found"),
        AssemblyFailed("disk full"),
    ],
)
def test_main_fatal_errors_exit_nonzero(monkeypatch, no_signals, error) -> None:
    _stub_capture(monkeypatch, error)

    assert cli.main(["-u", "https://x/live.m3u8", "-o", "out.ts"]) == 1


def test_main_cancelled_run_is_clean(monkeypatch, no_signals) -> None:
    _stub_capture(monkeypatch, CaptureResult(requested=5, downloaded_sequences=[5], cancelled=True))

    assert cli.main(["-u", "https://x/live.m3u8", "-o", "out.ts", "--audio"]) == 0


def test_main_nothing_captured_fails(monkeypatch, no_signals) -> None:
    _stub_capture(monkeypatch, CaptureResult(requested=5))

    assert cli.main(["-u", "https://x/live.m3u8", "-o", "out.ts"]) == 1


def test_postprocessing_chain_for_audio_only(monkeypatch, tmp_path) -> None:
    video = tmp_path / "capture.ts"
    video.write_bytes(b"ts")
    steps = []

    class FakeAudio:
        def extract(self, video_path, audio_path):
            steps.append(("audio", video_path, audio_path))

    class FakeSubtitles:
        def extract(self, audio_path, subtitle_path, language=None, model="base"):
            steps.append(("subtitle", audio_path, subtitle_path, language, model))

    monkeypatch.setattr(cli, "AudioExtractor", FakeAudio)
    monkeypatch.setattr(cli, "SubtitleExtractor", FakeSubtitles)
    args = cli.parse_args(
        [
            "-u",
            "https://x/live.m3u8",
            "-o",
            str(video),
            "--audio-only",
            "--audio-output",
            str(tmp_path / "a.mp3"),
            "--subtitle",
            "--subtitle-language",
            "en",
        ]
    )

    cli.run_postprocessing(args, str(video))

    assert steps == [
        ("audio", str(video), str(tmp_path / "a.mp3")),
        ("subtitle", str(tmp_path / "a.mp3"), str(tmp_path / "a.srt"), "en", "base"),
    ]
    assert not video.exists()
