"""Tests for the command-line interface."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from convert_toolkit.cli import ConvertToolkitCLI
from convert_toolkit.core.legacy_tag import LATIN5, read_legacy_tag

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def cli(tmp_path: Path) -> ConvertToolkitCLI:
    """CLI bound to an isolated configuration file without lyrics lookups."""
    path = tmp_path / "config.yaml"
    path.write_text("lyrics:\n  enabled: false\n", encoding="utf-8")
    return ConvertToolkitCLI(path)


def test_subcommand_is_required(cli: ConvertToolkitCLI) -> None:
    with pytest.raises(SystemExit):
        cli.run([])


def test_retag_writes_latin5_trailer(tmp_path: Path, cli: ConvertToolkitCLI, capsys: pytest.CaptureFixture) -> None:
    path = tmp_path / "song.mp3"
    path.write_bytes(b"\xff\xfb" * 100)

    assert cli.run(["retag", str(path), "--title", "Öğretmen", "--artist", "Someone", "--track", "3"]) == 0

    tag = read_legacy_tag(path, LATIN5)
    assert tag is not None
    assert tag.title == "Öğretmen"
    assert tag.track == 3
    assert "Someone - Öğretmen" in capsys.readouterr().out


def test_retag_reads_back_with_comment_charset(tmp_path: Path, cli: ConvertToolkitCLI, capsys: pytest.CaptureFixture) -> None:
    """A Turkish letter only in the comment still selects Latin-5 for the summary."""
    path = tmp_path / "song.mp3"
    path.write_bytes(b"\xff\xfb" * 100)

    with patch("convert_toolkit.cli.commands.utils.read_legacy_tag", wraps=read_legacy_tag) as read:
        assert cli.run(["retag", str(path), "--title", "x", "--comment", "Işık"]) == 0

    assert read.call_args.args[1] == LATIN5
    tag = read_legacy_tag(path, LATIN5)
    assert tag is not None
    assert tag.comment == "Işık"
    assert " - x" in capsys.readouterr().out


def test_retag_rejects_non_mp3(tmp_path: Path, cli: ConvertToolkitCLI) -> None:
    path = tmp_path / "song.flac"
    path.write_bytes(b"fLaC")
    assert cli.run(["retag", str(path), "--title", "x"]) == 1
    assert path.read_bytes() == b"fLaC"


def test_info_with_available_ffmpeg(cli: ConvertToolkitCLI, fake_ffmpeg, capsys: pytest.CaptureFixture) -> None:
    script = fake_ffmpeg()
    assert cli.run(["--ffmpeg", str(script), "info"]) == 0
    assert str(script) in capsys.readouterr().out


def test_convert_single_file(tmp_path: Path, cli: ConvertToolkitCLI, fake_ffmpeg) -> None:
    """A CLI conversion lands in the requested directory under the templated name."""
    script = fake_ffmpeg()
    source = tmp_path / "input.wav"
    source.write_bytes(b"RIFF")
    out_dir = tmp_path / "converted"

    argv = ["--ffmpeg", str(script), "--no-legacy-tag", "convert", str(source), "-f", "flac", "-o", str(out_dir)]
    code = cli.run([*argv, "--artist", "Band", "--title", "Tune"])

    assert code == 0
    assert (out_dir / "Band - Tune.flac").read_bytes() == b"converted"


def test_convert_reports_failures(tmp_path: Path, cli: ConvertToolkitCLI, fake_ffmpeg) -> None:
    script = fake_ffmpeg(exit_code=1)
    source = tmp_path / "input.wav"
    source.write_bytes(b"RIFF")

    code = cli.run(["--ffmpeg", str(script), "convert", str(source), "-o", str(tmp_path / "converted")])

    assert code == 1


def test_convert_without_inputs(tmp_path: Path, cli: ConvertToolkitCLI) -> None:
    assert cli.run(["convert", str(tmp_path / "missing.wav")]) == 1
