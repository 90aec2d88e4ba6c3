"""Tests for atomic publishing and output path allocation."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest

from convert_toolkit.core.base import FilesystemInconsistencyError, ProcessingError
from convert_toolkit.core.file_manager import FileManager, temp_sibling, unique_output_path

if TYPE_CHECKING:
    from pathlib import Path


def test_publish_without_existing_target(tmp_path: Path) -> None:
    """The temp file simply becomes the target."""
    target = tmp_path / "song.mp3"
    temp = temp_sibling(target, "part")
    temp.write_bytes(b"new")

    operation = FileManager().publish(temp, target)

    assert operation.success
    assert target.read_bytes() == b"new"
    assert not temp.exists()


def test_publish_replaces_target_and_drops_backup(tmp_path: Path) -> None:
    """An existing target is swapped out and no backup file is left behind."""
    target = tmp_path / "song.mp3"
    target.write_bytes(b"old")
    temp = temp_sibling(target, "lyrics")
    temp.write_bytes(b"new")

    manager = FileManager()
    operation = manager.publish(temp, target)

    assert operation.backup_path is not None
    assert not operation.backup_path.exists()
    assert target.read_bytes() == b"new"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["song.mp3"]
    assert manager.get_session_summary()["successful_operations"] == 1


def test_publish_with_missing_temp_is_inconsistent(tmp_path: Path) -> None:
    """A vanished temp file is reported instead of silently ignored."""
    target = tmp_path / "song.mp3"
    target.write_bytes(b"old")

    manager = FileManager()
    with pytest.raises(FilesystemInconsistencyError):
        manager.publish(tmp_path / "gone.part.mp3", target)

    assert target.read_bytes() == b"old"
    assert manager.get_session_summary()["failed_operations"] == 1


def test_failed_swap_restores_original(tmp_path: Path) -> None:
    """If moving the new file in fails, the original content comes back."""
    target = tmp_path / "song.mp3"
    target.write_bytes(b"old")
    temp = temp_sibling(target, "lyrics")
    temp.write_bytes(b"new")

    real_replace = os.replace
    calls = {"n": 0}

    def flaky_replace(src, dst):
        calls["n"] += 1
        if calls["n"] == 2:
            msg = "disk hiccup"
            raise OSError(msg)
        return real_replace(src, dst)

    with (
        patch("convert_toolkit.core.file_manager.os.replace", side_effect=flaky_replace),
        pytest.raises(ProcessingError, match="replacement failed"),
    ):
        FileManager().publish(temp, target)

    assert target.read_bytes() == b"old"
    assert temp.read_bytes() == b"new"


def test_temp_sibling_keeps_extension_and_directory(tmp_path: Path) -> None:
    """Temp names live next to the target and keep its suffix."""
    target = tmp_path / "Artist - Song.flac"
    first = temp_sibling(target, "part")
    second = temp_sibling(target, "part")

    assert first.parent == tmp_path
    assert first.suffix == ".flac"
    assert ".part." in first.name
    assert first != second


def test_unique_output_path_counts_up(tmp_path: Path) -> None:
    """Existing files and reserved names are both skipped."""
    assert unique_output_path(tmp_path, "song", "mp3") == tmp_path / "song.mp3"

    (tmp_path / "song.mp3").write_bytes(b"")
    assert unique_output_path(tmp_path, "song", ".mp3") == tmp_path / "song (1).mp3"

    reserved = {tmp_path / "song (1).mp3"}
    assert unique_output_path(tmp_path, "song", "mp3", reserved) == tmp_path / "song (2).mp3"
