"""Shared fixtures: a stand-in FFmpeg built from the running interpreter."""

from __future__ import annotations

import json
import stat
import sys
from typing import TYPE_CHECKING

import pytest

from convert_toolkit.config import ConvertToolkitConfig
from convert_toolkit.config.settings import LyricsConfig

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

FAKE_FFMPEG = """#!{python}
import json
import sys
import time

with open({calls!r}, "a", encoding="utf-8") as log:
    log.write(json.dumps(sys.argv[1:]) + "\\n")

out = sys.argv[-1]
sys.stderr.write("  Duration: 00:02:00.00, start: 0.000000, bitrate: 320 kb/s\\n")
sys.stderr.write("size=       1kB time=00:01:00.00 bitrate=   1.0kbits/s speed=10x\\n")
sys.stderr.flush()
time.sleep({delay})
if {write_output}:
    with open(out, "wb") as f:
        f.write({payload!r})
sys.stderr.write("size=       2kB time=00:02:00.00 bitrate=   1.0kbits/s speed=10x\\n")
sys.stderr.write("fake ffmpeg done\\n")
sys.exit({exit_code})
"""


@pytest.fixture
def config() -> ConvertToolkitConfig:
    """Default configuration without network lookups."""
    return ConvertToolkitConfig(lyrics=LyricsConfig(enabled=False))


@pytest.fixture
def fake_ffmpeg(tmp_path: Path) -> Callable[..., Path]:
    """
    Factory for an executable that behaves like a short FFmpeg run.

    It reports a 120 s duration, writes ``payload`` to its last argument and
    exits with ``exit_code``.  Every invocation's arguments are appended to
    ``<script>.calls`` as JSON lines.
    """
    counter = {"n": 0}

    def make(
        *,
        exit_code: int = 0,
        write_output: bool = True,
        payload: bytes = b"converted",
        delay: float = 0.0,
    ) -> Path:
        counter["n"] += 1
        script = tmp_path / f"fake_ffmpeg_{counter['n']}"
        script.write_text(
            FAKE_FFMPEG.format(
                python=sys.executable,
                calls=str(script.with_suffix(".calls")),
                delay=delay,
                write_output=write_output,
                payload=payload,
                exit_code=exit_code,
            ),
            encoding="utf-8",
        )
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return make


def recorded_calls(script: Path) -> list[list[str]]:
    """Argument lists the fake executable was started with."""
    calls_file = script.with_suffix(".calls")
    if not calls_file.exists():
        return []
    return [json.loads(line) for line in calls_file.read_text(encoding="utf-8").splitlines()]


@pytest.fixture
def calls_of() -> Callable[[Path], list[list[str]]]:
    return recorded_calls
