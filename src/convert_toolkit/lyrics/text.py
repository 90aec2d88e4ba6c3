"""Lyrics text helpers and search-term normalization."""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..core.models import MetadataRecord

_TIMESTAMP_RE = re.compile(r"\[\d{1,3}:\d{2}(?:[.:]\d{1,3})?\]")
_HEADER_RE = re.compile(r"^\s*\[(?:ar|ti|al|au|by|length|offset|re|ve|#):[^\]]*\]\s*$", re.IGNORECASE)
_ARTIST_NOISE = (
    re.compile(r"\bofficial\b", re.IGNORECASE),
    re.compile(r"\btopic\b", re.IGNORECASE),
    re.compile(r"\bvevo\b", re.IGNORECASE),
)
_BRACKET_NOISE = (
    re.compile(r"\((.*?)official(.*?)\)", re.IGNORECASE),
    re.compile(r"\((.*?)video(.*?)\)", re.IGNORECASE),
    re.compile(r"\((.*?)audio(.*?)\)", re.IGNORECASE),
)
_SQUARE_NOISE = (
    re.compile(r"\[(.*?)official(.*?)\]", re.IGNORECASE),
    re.compile(r"\[(.*?)video(.*?)\]", re.IGNORECASE),
    re.compile(r"\[(.*?)audio(.*?)\]", re.IGNORECASE),
)
_FILENAME_SPLIT_RE = re.compile(r"\s*[-–—]\s*")


def strip_timestamps(text: str) -> str:
    """Drop LRC timing markers and header tags, keeping the lyric lines."""
    lines = []
    for line in text.splitlines():
        if _HEADER_RE.match(line):
            continue
        lines.append(_TIMESTAMP_RE.sub("", line).strip())
    return "\n".join(lines).strip()


def to_lrc(plain: str) -> str:
    """Plain lyrics as LRC: every non-empty line pinned to ``[00:00.00]``."""
    return "\n".join(f"[00:00.00]{line.strip()}" for line in plain.splitlines() if line.strip())


def _squash(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def normalize_artist_name(name: str) -> str:
    text = name or ""
    for pattern in (*_BRACKET_NOISE, *_ARTIST_NOISE):
        text = pattern.sub("", text)
    return _squash(text)


def normalize_title(name: str) -> str:
    text = name or ""
    for pattern in (*_BRACKET_NOISE, *_SQUARE_NOISE):
        text = pattern.sub("", text)
    return _squash(text)


def guess_artist_title(meta: MetadataRecord, file_path: Path) -> tuple[str, str]:
    """
    Pick search terms from metadata, falling back to an ``Artist - Title`` filename.
    """
    artist = (meta.artist or meta.album_artist or meta.uploader or "").strip()
    title = (meta.title or meta.track or "").strip()
    base_name = Path(file_path).stem

    if not artist or not title or artist == title:
        parts = _FILENAME_SPLIT_RE.split(base_name)
        if len(parts) >= 2:  # noqa: PLR2004
            file_artist = parts[0].strip()
            file_title = " - ".join(parts[1:]).strip()
            if not artist:
                artist = file_artist
            if not title or title == base_name or title.lower() == artist.lower():
                title = file_title

    return artist, title
