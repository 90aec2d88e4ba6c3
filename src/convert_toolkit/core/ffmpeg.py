"""FFmpeg process execution and progress monitoring."""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
import sys
import time
from collections import deque
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import psutil

from ..config.constants import DIAGNOSTIC_TAIL_LINES, PROGRESS_CAP, PROGRESS_DONE, TERMINATE_GRACE_SECONDS
from .base import ConversionCanceled, ProcessingError, ProcessOutcome

if TYPE_CHECKING:
    from collections.abc import Callable

    from ..config.settings import FFmpegConfig
    from .models import CancellationToken

LOG = logging.getLogger(__name__)

DURATION_RE = re.compile(r"Duration:\s+(\d+):(\d+):(\d+(?:\.\d+)?)")
TIME_RE = re.compile(r"time=(\d+):(\d+):(\d+(?:\.\d+)?)")
DIAGNOSTIC_BUFFER_LINES = 500

_IS_WINDOWS = sys.platform == "win32"
FFMPEG_EXE = "ffmpeg.exe" if _IS_WINDOWS else "ffmpeg"
_FFMPEG_GUESSES = (
    (r"C:\tools\ffmpeg\bin\ffmpeg.exe", r"C:\ffmpeg\bin\ffmpeg.exe")
    if _IS_WINDOWS
    else ("/usr/bin/ffmpeg", "/usr/local/bin/ffmpeg", "/bin/ffmpeg")
)


class FFmpegError(ProcessingError):
    """FFmpeg-specific error."""

    def __init__(
        self,
        message: str,
        *,
        command: list[str] | None = None,
        return_code: int | None = None,
        stderr: str | None = None,
        file_path: Path | None = None,
    ) -> None:
        """Initialize FFmpeg error with detailed context."""
        super().__init__(message, file_path=file_path)
        self.command = command
        self.return_code = return_code
        self.stderr = stderr


class ProcessLaunchError(FFmpegError):
    """The executable could not be started, even after the fallback attempt."""


class ProcessExitError(FFmpegError):
    """The process exited unsuccessfully or did not produce its output."""


def _is_executable(path: str | os.PathLike[str]) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def resolve_ffmpeg_bin(config: FFmpegConfig | None = None) -> str:
    """
    Locate the FFmpeg executable.

    Order: configured binary, configured directory, ``PATH``, well-known
    install locations.  Falls back to the bare name so the OS resolves it.
    """
    if config is not None:
        if config.binary and _is_executable(config.binary):
            return config.binary
        if config.directory:
            candidate = Path(config.directory) / FFMPEG_EXE
            if _is_executable(candidate):
                return str(candidate)

    found = shutil.which(FFMPEG_EXE)
    if found:
        return found

    for guess in _FFMPEG_GUESSES:
        if _is_executable(guess):
            return guess

    return FFMPEG_EXE


def _to_seconds(match: re.Match[str]) -> float:
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def parse_duration_line(line: str) -> float | None:
    match = DURATION_RE.search(line)
    return _to_seconds(match) if match else None


def parse_time_line(line: str) -> float | None:
    match = TIME_RE.search(line)
    return _to_seconds(match) if match else None


class ProgressParser:
    """
    Turns diagnostic lines into progress percentages.

    The first ``Duration:`` marker fixes the total; every ``time=`` marker
    after that yields ``floor(100 * position / duration)`` capped at 99.
    Without a duration no progress is reported.
    """

    def __init__(self) -> None:
        self.duration: float | None = None

    def feed(self, line: str) -> int | None:
        if self.duration is None:
            duration = parse_duration_line(line)
            if duration:
                self.duration = duration

        position = parse_time_line(line)
        if position is None or not self.duration:
            return None
        return min(PROGRESS_CAP, int(100 * position // self.duration))


@dataclass
class ProcessHandle:
    """State of one spawn of the external executable."""

    command: list[str]
    output_path: Path | None = None
    process: subprocess.Popen[str] | None = None
    diagnostics: deque[str] = field(default_factory=lambda: deque(maxlen=DIAGNOSTIC_BUFFER_LINES))
    duration: float | None = None
    outcome: ProcessOutcome = ProcessOutcome.STARTING
    cancel_observed: bool = False
    return_code: int | None = None
    last_progress: int = 0

    def transition(self, outcome: ProcessOutcome) -> None:
        if self.outcome.is_terminal:
            msg = f"Process already finished as {self.outcome.value}"
            raise RuntimeError(msg)
        LOG.debug("Process %s -> %s", self.outcome.value, outcome.value)
        self.outcome = outcome

    def tail(self, lines: int = DIAGNOSTIC_TAIL_LINES) -> str:
        return "\n".join(list(self.diagnostics)[-lines:])


def _discard(path: Path | None) -> None:
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        LOG.warning("Could not remove partial output %s: %s", path, e)


def terminate_process(process: subprocess.Popen[str], grace: float = TERMINATE_GRACE_SECONDS) -> None:
    """Ask the process (and its children) to stop, then kill whatever remains."""
    try:
        parent = psutil.Process(process.pid)
        targets = [parent, *parent.children(recursive=True)]
    except psutil.NoSuchProcess:
        return

    for proc in targets:
        with suppress(psutil.NoSuchProcess):
            proc.terminate()
    _, alive = psutil.wait_procs(targets, timeout=grace)
    for proc in alive:
        LOG.warning("Process %d ignored terminate, killing", proc.pid)
        with suppress(psutil.NoSuchProcess):
            proc.kill()


class FFmpegProbe:
    """Availability checks for the FFmpeg executable."""

    @staticmethod
    def check_availability(ffmpeg_bin: str | None = None) -> str:
        """Return the resolved executable or raise if it cannot be found."""
        binary = ffmpeg_bin or resolve_ffmpeg_bin()
        if _is_executable(binary) or shutil.which(binary):
            return binary

        error_msg = f"Missing FFmpeg executable: {binary}"
        LOG.error(error_msg)
        raise FFmpegError(error_msg)


class FFmpegProcessor:
    """FFmpeg command executor with progress monitoring and cancellation."""

    def __init__(self, ffmpeg_bin: str | None = None, timeout: int = 300) -> None:
        """Initialize FFmpeg processor; ``timeout`` applies to ``run_command`` only."""
        self.ffmpeg_bin = ffmpeg_bin or resolve_ffmpeg_bin()
        self.timeout = timeout

    def _spawn(self, command: list[str]) -> subprocess.Popen[str]:
        return subprocess.Popen(  # noqa: S603
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )

    def _launch(self, handle: ProcessHandle, fallback_executable: str | None) -> subprocess.Popen[str]:
        """Start the process, retrying once by bare name if the executable is missing."""
        command = handle.command
        try:
            return self._spawn(command)
        except FileNotFoundError as e:
            fallback = fallback_executable or Path(command[0]).name
            LOG.warning("FFmpeg spawn failed (%s), retrying once as %s", e, fallback)
            handle.command = [fallback, *command[1:]]
            try:
                return self._spawn(handle.command)
            except OSError as e2:
                msg = f"FFmpeg spawn error (fallback): {e2}"
                raise ProcessLaunchError(msg, command=handle.command, file_path=handle.output_path) from e2
        except OSError as e:
            msg = f"FFmpeg spawn error: {e}"
            raise ProcessLaunchError(msg, command=command, file_path=handle.output_path) from e

    def run(
        self,
        command: list[str],
        output_path: Path | None,
        *,
        progress_callback: Callable[[int], None] | None = None,
        cancel: CancellationToken | None = None,
        on_process: Callable[[subprocess.Popen[str]], None] | None = None,
        fallback_executable: str | None = None,
    ) -> ProcessHandle:
        """
        Run a command to completion while reporting progress.

        Args:
            command: Full argument list, executable first
            output_path: File the command must produce; deleted on any non-success
            progress_callback: Receives 0..99 per ``time=`` line, then 100 on success
            cancel: Polled before spawning and on every diagnostic line
            on_process: Receives the spawned ``Popen`` object
            fallback_executable: Name used for the single re-launch on a missing executable

        Returns:
            The finished handle (outcome SUCCEEDED)

        Raises:
            ConversionCanceled: cancellation was observed at any point
            ProcessLaunchError: the executable could not be started
            ProcessExitError: non-zero exit or missing output

        """
        handle = ProcessHandle(command=list(command), output_path=output_path)
        is_canceled = cancel if cancel is not None else (lambda: False)

        if is_canceled():
            handle.cancel_observed = True
            handle.transition(ProcessOutcome.CANCELED)
            raise ConversionCanceled(file_path=output_path)

        LOG.debug("Running FFmpeg command: %s", " ".join(handle.command))
        start_time = time.time()
        process = self._launch(handle, fallback_executable)
        handle.process = process
        handle.transition(ProcessOutcome.RUNNING)

        if on_process is not None:
            try:
                on_process(process)
            except Exception:
                LOG.exception("on_process callback failed")

        parser = ProgressParser()

        def check_cancel() -> None:
            if not handle.cancel_observed and is_canceled():
                handle.cancel_observed = True
                LOG.info("Cancellation requested, stopping FFmpeg (pid %d)", process.pid)
                terminate_process(process)

        try:
            for raw_line in process.stderr or ():
                line = raw_line.rstrip("\r\n")
                handle.diagnostics.append(line)
                check_cancel()

                progress = parser.feed(line)
                handle.duration = parser.duration
                if progress is not None and not handle.cancel_observed:
                    handle.last_progress = progress
                    if progress_callback is not None:
                        progress_callback(progress)
                    check_cancel()
        except BaseException:
            # Nobody drains stderr any more; do not leave the child blocked on it
            terminate_process(process)
            _discard(output_path)
            raise
        finally:
            handle.return_code = process.wait()
            if process.stderr is not None:
                process.stderr.close()

        LOG.debug("FFmpeg exited with %s after %.2fs", handle.return_code, time.time() - start_time)

        # Cancellation wins over whatever the process managed to do
        if handle.cancel_observed or is_canceled():
            handle.cancel_observed = True
            _discard(output_path)
            handle.transition(ProcessOutcome.CANCELED)
            raise ConversionCanceled(file_path=output_path)

        if handle.return_code == 0 and (output_path is None or output_path.exists()):
            handle.transition(ProcessOutcome.SUCCEEDED)
            if progress_callback is not None:
                progress_callback(PROGRESS_DONE)
            return handle

        _discard(output_path)
        handle.transition(ProcessOutcome.FAILED)
        tail = handle.tail()
        if handle.return_code == 0:
            msg = f"FFmpeg finished but produced no output at {output_path}"
        else:
            msg = f"FFmpeg error (code {handle.return_code}): {tail}"
        LOG.error("%s", msg)
        raise ProcessExitError(
            msg,
            command=handle.command,
            return_code=handle.return_code,
            stderr=tail,
            file_path=output_path,
        )

    def run_command(self, command: list[str], file_path: Path | None = None) -> subprocess.CompletedProcess[str]:
        """Run a short FFmpeg command with a timeout, without monitoring."""
        LOG.debug("Running FFmpeg command: %s", " ".join(command))

        try:
            result = subprocess.run(  # noqa: S603
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,  # We'll handle return code ourselves
                encoding="utf-8",
                errors="replace",
            )
        except subprocess.TimeoutExpired as e:
            msg = f"FFmpeg command timed out after {self.timeout}s"
            raise FFmpegError(msg, command=command, file_path=file_path) from e
        except OSError as e:
            msg = f"FFmpeg spawn error: {e}"
            raise ProcessLaunchError(msg, command=command, file_path=file_path) from e

        if result.returncode != 0:
            tail = "\n".join((result.stderr or "").strip().splitlines()[-DIAGNOSTIC_TAIL_LINES:])
            msg = f"FFmpeg failed with return code {result.returncode}: {tail}"
            raise ProcessExitError(msg, command=command, return_code=result.returncode, stderr=tail, file_path=file_path)
        return result
