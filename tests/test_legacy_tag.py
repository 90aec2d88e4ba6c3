"""Tests for the 128-byte legacy tag trailer."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import patch

from convert_toolkit.config.constants import LEGACY_TAG_SIZE
from convert_toolkit.core.legacy_tag import (
    LATIN1,
    LATIN5,
    LegacyTag,
    encode_field,
    find_trailer,
    read_legacy_tag,
    rewrite_legacy_tag,
    select_charset,
)
from convert_toolkit.core.models import MetadataRecord

if TYPE_CHECKING:
    from pathlib import Path

AUDIO_BYTES = b"\xff\xfb\x90\x00" * 64


def _mp3(tmp_path: Path, name: str = "song.mp3") -> Path:
    path = tmp_path / name
    path.write_bytes(AUDIO_BYTES)
    return path


def test_layout_and_truncation() -> None:
    """Fields are clipped to their width and the v1.1 markers are set."""
    tag = LegacyTag(title="T" * 40, artist="A", album="B", year="20245", comment="C" * 40, track=7)
    block = tag.encode()
    assert len(block) == LEGACY_TAG_SIZE
    assert block[:3] == b"TAG"
    assert block[3:33] == b"T" * 30
    assert block[93:97] == b"2024"
    assert block[97:125] == b"C" * 28
    assert block[125] == 0
    assert block[126] == 7
    assert block[127] == 255

    decoded = LegacyTag.decode(block)
    assert decoded.title == "T" * 30
    assert decoded.artist == "A"
    assert decoded.track == 7


def test_turkish_text_selects_latin5() -> None:
    """'Öğretmen' contains ğ, so Latin-5 is chosen and ğ is byte 0xF0."""
    assert select_charset(["Öğretmen"]) == LATIN5
    encoded = encode_field("Öğretmen", 30, LATIN5)
    assert encoded[0] == 0xD6
    assert encoded[1] == 0xF0


def test_charset_override_and_fallbacks() -> None:
    """An explicit override wins; unknown characters become '?'."""
    assert select_charset(["Öğretmen"], "latin1") == LATIN1
    assert select_charset(["Café"], "auto") == LATIN1
    assert encode_field("ğ", 4, LATIN1) == b"?\x00\x00\x00"
    assert encode_field("日本", 4, LATIN5) == b"??\x00\x00"


def test_second_write_keeps_length(tmp_path: Path) -> None:
    """A rewrite overwrites the existing trailer instead of appending another."""
    path = _mp3(tmp_path)
    meta = MetadataRecord(title="First", artist="Someone", track_number=3)

    assert rewrite_legacy_tag(path, meta)
    size_after_first = path.stat().st_size
    assert size_after_first == len(AUDIO_BYTES) + LEGACY_TAG_SIZE

    assert rewrite_legacy_tag(path, MetadataRecord(title="Second", artist="Someone"))
    assert path.stat().st_size == size_after_first
    assert path.read_bytes().count(b"TAG") == 1

    tag = read_legacy_tag(path)
    assert tag is not None
    assert tag.title == "Second"
    assert path.read_bytes()[: len(AUDIO_BYTES)] == AUDIO_BYTES


def test_latin5_round_trip(tmp_path: Path) -> None:
    """Turkish letters survive a write/read cycle in Latin-5."""
    path = _mp3(tmp_path)
    assert rewrite_legacy_tag(path, MetadataRecord(title="Öğretmen", artist="Işık"))
    tag = read_legacy_tag(path, LATIN5)
    assert tag is not None
    assert tag.title == "Öğretmen"
    assert tag.artist == "Işık"


def test_metadata_mapping() -> None:
    """Track title wins over title; track number comes from 'N/M' when needed."""
    meta = MetadataRecord(title="Video title", track="Song", uploader="Channel", track_number=5)
    tag = LegacyTag.from_metadata(meta, comment="converted")
    assert tag.title == "Song"
    assert tag.artist == "Channel"
    assert tag.comment == "converted"
    assert tag.track == 5

    assert MetadataRecord(track="4/12").track_no == 4
    assert MetadataRecord(track_number=300).track_no == 255


def test_non_mp3_and_missing_files_are_skipped(tmp_path: Path) -> None:
    """Only existing mp3 files are touched, and failures never raise."""
    flac = tmp_path / "song.flac"
    flac.write_bytes(AUDIO_BYTES)
    assert not rewrite_legacy_tag(flac, MetadataRecord(title="x"))
    assert flac.read_bytes() == AUDIO_BYTES
    assert not rewrite_legacy_tag(tmp_path / "missing.mp3", MetadataRecord(title="x"))
    assert find_trailer(flac) is None


def test_non_finite_track_numbers_fall_back() -> None:
    """Overflowing numbers are treated as unknown instead of raising."""
    assert MetadataRecord(track_number="inf").track_no == 0
    assert MetadataRecord(track_number="1e999").track_no == 0
    assert MetadataRecord(track_number=float("nan"), track="7/9").track_no == 7


def test_rewrite_with_non_finite_track_still_writes(tmp_path: Path) -> None:
    path = _mp3(tmp_path)
    assert rewrite_legacy_tag(path, MetadataRecord(title="t", track_number="inf"))
    tag = read_legacy_tag(path)
    assert tag is not None
    assert tag.track == 0


def test_rewrite_reports_failure_instead_of_raising(tmp_path: Path) -> None:
    """Encoding problems surface as False and leave the file untouched."""
    path = _mp3(tmp_path)
    with patch.object(LegacyTag, "from_metadata", side_effect=OverflowError("too big")):
        assert not rewrite_legacy_tag(path, MetadataRecord(title="t"))
    assert path.read_bytes() == AUDIO_BYTES
