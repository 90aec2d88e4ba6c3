"""
Legacy 128-byte ID3v1.1 trailer encoding.

Layout::

    0   3   "TAG"
    3   30  title
    33  30  artist
    63  30  album
    93  4   year
    97  28  comment
    125 1   zero byte (marks v1.1)
    126 1   track number
    127 1   genre (255 = unset)

Text is written in Latin-1, or Latin-5 when Turkish-specific letters are
present.  Only six Latin-5 letters get dedicated bytes; anything else
outside [0x20, 0xFF] becomes ``?``.
"""

from __future__ import annotations

import logging
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from ..config.constants import LEGACY_TAG_GENRE_UNSET, LEGACY_TAG_MAGIC, LEGACY_TAG_SIZE

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .models import MetadataRecord

LOG = logging.getLogger(__name__)

LATIN1 = "latin1"
LATIN5 = "latin5"

LATIN5_SPECIAL = {
    "Ğ": 0xD0,
    "ğ": 0xF0,
    "İ": 0xDD,
    "ı": 0xFD,
    "Ş": 0xDE,
    "ş": 0xFE,
}
# Inverse mapping used when reading a Latin-5 trailer back
_LATIN5_DECODE = {value: char for char, value in LATIN5_SPECIAL.items()}

_CHARSET_ALIASES = {
    "latin1": LATIN1,
    "iso-8859-1": LATIN1,
    "latin5": LATIN5,
    "iso-8859-9": LATIN5,
    "windows-1254": LATIN5,
    "cp1254": LATIN5,
}

FIELD_WIDTHS = {"title": 30, "artist": 30, "album": 30, "year": 4, "comment": 28}
_OFFSETS = {"title": 3, "artist": 33, "album": 63, "year": 93, "comment": 97}
_TRACK_OFFSET = 126
_GENRE_OFFSET = 127


def select_charset(values: Iterable[str | None], override: str | None = None) -> str:
    """Explicit override wins; otherwise Latin-5 iff a Turkish-specific letter appears."""
    if override:
        charset = _CHARSET_ALIASES.get(override.strip().lower())
        if charset:
            return charset
    joined = " ".join(v for v in values if v)
    return LATIN5 if any(ch in LATIN5_SPECIAL for ch in joined) else LATIN1


def encode_field(text: str | None, width: int, charset: str) -> bytes:
    """Encode one fixed-width field, NUL padded and clipped to ``width``."""
    out = bytearray(width)
    normalized = unicodedata.normalize("NFC", str(text or ""))
    index = 0
    for ch in normalized:
        if index >= width:
            break
        special = LATIN5_SPECIAL.get(ch) if charset == LATIN5 else None
        if special is not None:
            out[index] = special
        else:
            code = ord(ch)
            out[index] = code if 0x20 <= code <= 0xFF else 0x3F
        index += 1
    return bytes(out)


def decode_field(raw: bytes, charset: str = LATIN1) -> str:
    text = raw.split(b"\x00", 1)[0]
    if charset == LATIN5:
        return "".join(_LATIN5_DECODE.get(b, chr(b)) for b in text)
    return text.decode("latin-1")


@dataclass
class LegacyTag:
    """The 128-byte trailer; always derived from metadata, never stored separately."""

    title: str = ""
    artist: str = ""
    album: str = ""
    year: str = ""
    comment: str = ""
    track: int = 0
    genre: int = LEGACY_TAG_GENRE_UNSET

    @classmethod
    def from_metadata(cls, meta: MetadataRecord, comment: str | None = None) -> LegacyTag:
        return cls(
            title=meta.display_title,
            artist=meta.display_artist,
            album=meta.display_album,
            year=meta.year,
            comment=meta.comment or comment or "",
            track=meta.track_no,
        )

    def text_fields(self) -> list[str]:
        return [self.title, self.artist, self.album, self.comment]

    def encode(self, charset: str = LATIN1) -> bytes:
        block = bytearray(LEGACY_TAG_SIZE)
        block[0:3] = LEGACY_TAG_MAGIC
        for name, width in FIELD_WIDTHS.items():
            offset = _OFFSETS[name]
            block[offset : offset + width] = encode_field(getattr(self, name), width, charset)
        block[125] = 0
        block[_TRACK_OFFSET] = max(0, min(255, int(self.track)))
        block[_GENRE_OFFSET] = self.genre
        return bytes(block)

    @classmethod
    def decode(cls, block: bytes, charset: str = LATIN1) -> LegacyTag:
        if len(block) != LEGACY_TAG_SIZE or block[:3] != LEGACY_TAG_MAGIC:
            msg = "Not a legacy tag block"
            raise ValueError(msg)
        values = {
            name: decode_field(block[_OFFSETS[name] : _OFFSETS[name] + width], charset)
            for name, width in FIELD_WIDTHS.items()
        }
        return cls(**values, track=block[_TRACK_OFFSET], genre=block[_GENRE_OFFSET])


def find_trailer(path: Path) -> int | None:
    """Offset of an existing trailer at the end of ``path``, if any."""
    size = path.stat().st_size
    if size < LEGACY_TAG_SIZE:
        return None
    with path.open("rb") as f:
        f.seek(size - LEGACY_TAG_SIZE)
        if f.read(len(LEGACY_TAG_MAGIC)) == LEGACY_TAG_MAGIC:
            return size - LEGACY_TAG_SIZE
    return None


def read_legacy_tag(path: Path, charset: str = LATIN1) -> LegacyTag | None:
    offset = find_trailer(path)
    if offset is None:
        return None
    with path.open("rb") as f:
        f.seek(offset)
        return LegacyTag.decode(f.read(LEGACY_TAG_SIZE), charset)


def write_legacy_tag(path: Path, tag: LegacyTag, charset: str = LATIN1) -> int:
    """
    Write the trailer, overwriting an existing one in place.

    Returns the offset the block was written at.
    """
    block = tag.encode(charset)
    with path.open("r+b") as f:
        f.seek(0, 2)
        size = f.tell()
        offset = size
        if size >= LEGACY_TAG_SIZE:
            f.seek(size - LEGACY_TAG_SIZE)
            if f.read(len(LEGACY_TAG_MAGIC)) == LEGACY_TAG_MAGIC:
                offset = size - LEGACY_TAG_SIZE
        f.seek(offset)
        f.write(block)
    return offset


def rewrite_legacy_tag(
    file_path: Path,
    metadata: MetadataRecord,
    *,
    charset_override: str | None = None,
    comment: str | None = None,
) -> bool:
    """
    Rewrite the legacy trailer of an mp3 file from metadata.

    Fire-and-forget: returns ``False`` instead of raising.
    """
    file_path = Path(file_path)
    if file_path.suffix.lower() != ".mp3" or not file_path.is_file():
        return False

    try:
        tag = LegacyTag.from_metadata(metadata, comment)
        charset = select_charset(tag.text_fields(), charset_override)
        offset = write_legacy_tag(file_path, tag, charset)
    except (OSError, ValueError, OverflowError) as e:
        LOG.warning("Legacy tag write failed for %s: %s", file_path, e)
        return False

    LOG.debug("Legacy tag (%s) written at offset %d in %s", charset, offset, file_path.name)
    return True
