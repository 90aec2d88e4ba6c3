"""Lyrics lookup and text handling."""

from .attach import LyricsAttacher
from .client import LrclibClient, LyricsLookup, LyricsPayload
from .text import guess_artist_title, normalize_artist_name, normalize_title, strip_timestamps, to_lrc

__all__ = [
    "LrclibClient",
    "LyricsAttacher",
    "LyricsLookup",
    "LyricsPayload",
    "guess_artist_title",
    "normalize_artist_name",
    "normalize_title",
    "strip_timestamps",
    "to_lrc",
]
