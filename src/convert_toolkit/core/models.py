"""Data model for conversion requests and results."""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

_TRACK_RE = re.compile(r"^\s*(\d{1,3})(?:\s*/\s*\d{1,3})?\s*$")


def _first(*values: object) -> str:
    for value in values:
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


@dataclass
class MetadataRecord:
    """Partially trusted free-form metadata supplied by the acquisition step."""

    title: str | None = None
    track: str | None = None
    artist: str | None = None
    album_artist: str | None = None
    uploader: str | None = None
    album: str | None = None
    playlist_title: str | None = None
    release_date: str | None = None
    release_year: str | None = None
    upload_year: str | None = None
    upload_date: str | None = None
    track_number: int | str | None = None
    track_total: int | str | None = None
    disc_number: int | str | None = None
    disc_total: int | str | None = None
    genre: str | None = None
    label: str | None = None
    publisher: str | None = None
    copyright: str | None = None
    isrc: str | None = None
    webpage_url: str | None = None
    comment: str | None = None
    duration: float | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> MetadataRecord:
        """Build a record from a loose mapping, ignoring unknown keys."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    @property
    def display_title(self) -> str:
        return _first(self.track, self.title)

    @property
    def display_artist(self) -> str:
        return _first(self.artist, self.album_artist, self.uploader)

    @property
    def display_album(self) -> str:
        return _first(self.album, self.playlist_title)

    @property
    def year(self) -> str:
        return _first(self.release_year, self.upload_year)[:4]

    @property
    def track_no(self) -> int:
        """Track number clamped to a single byte, 0 when unknown."""
        try:
            direct = int(float(self.track_number))  # type: ignore[arg-type]
        except (TypeError, ValueError, OverflowError):
            direct = None
        if direct is not None and direct >= 0:
            return max(0, min(255, direct))

        match = _TRACK_RE.match(str(self.track or ""))
        if match:
            return max(0, min(255, int(match.group(1))))
        return 0


class CancellationToken:
    """
    Level-triggered cancellation flag shared between a job and its owner.

    The token is polled, never delivered as an interrupt.  An optional
    predicate lets callers bridge an existing flag (e.g. a job record).
    """

    def __init__(self, predicate: Callable[[], bool] | None = None) -> None:
        self._event = threading.Event()
        self._predicate = predicate

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_set(self) -> bool:
        if self._event.is_set():
            return True
        if self._predicate is not None and self._predicate():
            # Latch so later checks agree even if the predicate flips back
            self._event.set()
            return True
        return False

    def __call__(self) -> bool:
        return self.is_set


@dataclass
class SelectedStreams:
    """Source stream indices chosen by the user."""

    audio: list[int] = field(default_factory=list)
    subtitles: list[int] = field(default_factory=list)
    has_video: bool | None = None
    audio_languages: dict[int, str] = field(default_factory=dict)
    subtitle_languages: dict[int, str] = field(default_factory=dict)


@dataclass
class VideoSettings:
    """User options for video conversions."""

    transcode_enabled: bool = False
    codec: str = "h264"
    hwaccel: str | None = None
    quality: int | str | None = None
    preset: str | None = None
    fps: str | int | float | None = None
    audio_transcode_enabled: bool = False
    audio_codec: str = "aac"
    audio_bitrate: str = "192k"
    audio_channels: str = "original"
    audio_sample_rate: str = "48000"
    volume_gain: float | None = None


@dataclass
class ConversionOptions:
    """Per-request knobs; everything is optional."""

    sample_rate: str | int | None = None
    sample_rate_hz: str | int | None = None
    stereo_convert: str = "auto"
    tempo_adjust: str = "none"
    bit_depth: str | None = None
    compression_level: int | str | None = None
    volume_gain: float | str | None = None
    include_lyrics: bool = True
    embed_lyrics: bool = True
    selected_streams: SelectedStreams | None = None
    video_settings: VideoSettings = field(default_factory=VideoSettings)
    ffmpeg_bin: str | None = None
    cancel: CancellationToken = field(default_factory=CancellationToken)
    on_process: Callable[[Any], None] | None = None
    on_lyrics_stats: Callable[[dict[str, int]], None] | None = None


@dataclass
class ConversionRequest:
    """A declarative conversion job, created and consumed once."""

    input_path: Path
    format: str
    bitrate: str = "192k"
    job_id: str = "job"
    metadata: MetadataRecord = field(default_factory=MetadataRecord)
    cover_path: Path | None = None
    is_video: bool = False
    output_dir: Path = field(default_factory=lambda: Path("outputs"))
    temp_dir: Path | None = None
    options: ConversionOptions = field(default_factory=ConversionOptions)

    def __post_init__(self) -> None:
        self.input_path = Path(self.input_path)
        self.output_dir = Path(self.output_dir)
        self.format = str(self.format or "").lower().lstrip(".")
        if isinstance(self.metadata, dict):
            self.metadata = MetadataRecord.from_dict(self.metadata)


@dataclass
class ConversionResult:
    """Outcome of a successful conversion."""

    output_path: Path
    file_size: int
    lyrics_path: Path | None = None
