"""Tests for process execution and progress monitoring."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import Mock, patch

import pytest

from convert_toolkit.core.base import ConversionCanceled, ProcessOutcome
from convert_toolkit.core.ffmpeg import (
    FFmpegProcessor,
    ProcessExitError,
    ProcessLaunchError,
    ProgressParser,
    parse_duration_line,
)
from convert_toolkit.core.models import CancellationToken

if TYPE_CHECKING:
    from pathlib import Path


def test_progress_parser_reports_floor_percentage() -> None:
    """120 s duration: one minute in is 50, the end is capped at 99."""
    parser = ProgressParser()
    assert parser.feed("  Duration: 00:02:00.00, start: 0.000000, bitrate: 320 kb/s") is None
    assert parser.feed("size= 1kB time=00:01:00.00 bitrate=1.0kbits/s") == 50
    assert parser.feed("size= 2kB time=00:02:00.00 bitrate=1.0kbits/s") == 99
    assert parser.feed("size= 2kB time=00:00:01.19 bitrate=1.0kbits/s") == 0


def test_progress_without_duration_stays_silent() -> None:
    """Without a Duration marker no percentage can be computed."""
    parser = ProgressParser()
    assert parser.feed("size= 1kB time=00:01:00.00 bitrate=1.0kbits/s") is None
    assert parse_duration_line("Duration: N/A") is None


def test_successful_run_reports_progress(tmp_path: Path, fake_ffmpeg) -> None:
    """Progress goes 50, 99 and finally 100 once the output exists."""
    script = fake_ffmpeg()
    output = tmp_path / "out.mp3"
    seen: list[int] = []

    handle = FFmpegProcessor(str(script)).run([str(script), str(output)], output, progress_callback=seen.append)

    assert seen == [50, 99, 100]
    assert handle.outcome is ProcessOutcome.SUCCEEDED
    assert handle.duration == 120
    assert handle.return_code == 0
    assert output.read_bytes() == b"converted"


def test_cancel_before_start_never_spawns(tmp_path: Path, fake_ffmpeg, calls_of) -> None:
    """A token set before the run raises immediately and produces nothing."""
    script = fake_ffmpeg()
    output = tmp_path / "out.mp3"
    token = CancellationToken()
    token.cancel()

    with pytest.raises(ConversionCanceled):
        FFmpegProcessor(str(script)).run([str(script), str(output)], output, cancel=token)

    assert calls_of(script) == []
    assert not output.exists()


def test_cancel_during_run_deletes_output(tmp_path: Path, fake_ffmpeg) -> None:
    """Cancellation observed mid-run stops the process and wins over its exit status."""
    script = fake_ffmpeg(delay=5.0)
    output = tmp_path / "out.mp3"
    token = CancellationToken()

    def on_progress(percent: int) -> None:
        if percent == 50:
            token.cancel()

    with pytest.raises(ConversionCanceled):
        FFmpegProcessor(str(script)).run(
            [str(script), str(output)], output, progress_callback=on_progress, cancel=token
        )

    assert not output.exists()


def test_cancel_predicate_is_latched() -> None:
    """Once observed, cancellation stays set even if the source flips back."""
    flags = [True, False]
    token = CancellationToken(lambda: flags.pop(0) if flags else False)
    assert token.is_set
    assert token()


def test_non_zero_exit_deletes_output(tmp_path: Path, fake_ffmpeg) -> None:
    """A failing process leaves no file behind and reports the diagnostic tail."""
    script = fake_ffmpeg(exit_code=1)
    output = tmp_path / "out.mp3"

    with pytest.raises(ProcessExitError) as exc_info:
        FFmpegProcessor(str(script)).run([str(script), str(output)], output)

    assert exc_info.value.return_code == 1
    assert "fake ffmpeg done" in exc_info.value.stderr
    assert len(exc_info.value.stderr.splitlines()) <= 10
    assert not output.exists()


def test_zero_exit_without_output_is_a_failure(tmp_path: Path, fake_ffmpeg) -> None:
    """Success needs both a zero exit status and the output file."""
    script = fake_ffmpeg(write_output=False)
    output = tmp_path / "out.mp3"

    with pytest.raises(ProcessExitError):
        FFmpegProcessor(str(script)).run([str(script), str(output)], output)


def test_missing_executable_retries_with_fallback(tmp_path: Path, fake_ffmpeg) -> None:
    """A missing executable is retried exactly once with the fallback name."""
    script = fake_ffmpeg()
    output = tmp_path / "out.mp3"
    missing = tmp_path / "nowhere" / "ffmpeg"

    handle = FFmpegProcessor(str(missing)).run(
        [str(missing), str(output)], output, fallback_executable=str(script)
    )

    assert handle.command[0] == str(script)
    assert output.exists()


def test_launch_failure_after_fallback(tmp_path: Path) -> None:
    """When the fallback cannot start either, a launch error is raised."""
    missing = tmp_path / "nowhere" / "ffmpeg"
    output = tmp_path / "out.mp3"

    with pytest.raises(ProcessLaunchError):
        FFmpegProcessor(str(missing)).run(
            [str(missing), str(output)], output, fallback_executable=str(tmp_path / "also-missing")
        )
    assert not output.exists()


def test_failing_progress_callback_stops_process(tmp_path: Path, fake_ffmpeg) -> None:
    """An exception from the callback propagates and removes partial output."""
    script = fake_ffmpeg(delay=5.0)
    output = tmp_path / "out.mp3"

    def explode(_percent: int) -> None:
        msg = "boom"
        raise RuntimeError(msg)

    with pytest.raises(RuntimeError, match="boom"):
        FFmpegProcessor(str(script)).run([str(script), str(output)], output, progress_callback=explode)
    assert not output.exists()


def test_process_without_stderr_pipe_still_finishes(tmp_path: Path) -> None:
    """A child without a diagnostics stream is waited on and judged by its exit code."""
    output = tmp_path / "out.mp3"
    output.write_bytes(b"data")
    process = Mock(stderr=None, pid=4242)
    process.wait.return_value = 0

    with patch.object(FFmpegProcessor, "_spawn", return_value=process):
        handle = FFmpegProcessor("ffmpeg").run(["ffmpeg", str(output)], output)

    assert handle.outcome is ProcessOutcome.SUCCEEDED
    assert not handle.diagnostics
    process.wait.assert_called_once()
