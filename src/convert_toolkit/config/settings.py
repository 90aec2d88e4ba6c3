"""Configuration management for the conversion toolkit."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

if TYPE_CHECKING:
    from collections.abc import Mapping

LOG = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


# Configuration singleton
class _ConfigSingleton:
    """Configuration singleton holder."""

    _instance: ConvertToolkitConfig | None = None

    @classmethod
    def get_instance(cls) -> ConvertToolkitConfig:
        """Get the configuration instance."""
        if cls._instance is None:
            # Try to load from default config file (look in project root)
            config_path = Path.cwd() / "config.yaml"
            if config_path.exists():
                base = ConvertToolkitConfig.load_from_file(config_path)
            else:
                base = ConvertToolkitConfig()
            cls._instance = base.with_env_overrides(os.environ)
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the configuration instance."""
        cls._instance = None


_config_singleton = _ConfigSingleton()


@dataclass
class AudioConfig:
    """Audio conversion defaults."""

    # Raw string on purpose: malformed values degrade to 48000 in the normalizer
    target_sample_rate: str | None = None
    default_bitrate: str = "192k"
    formats: list[str] = field(default_factory=lambda: ["mp3", "flac", "wav", "ogg", "aac", "ac3", "eac3", "m4a"])


@dataclass
class VideoConfig:
    """Video conversion defaults."""

    hwaccel: str = "off"
    preset: str = "veryfast"
    nvenc_preset: str = "fast"
    nvenc_quality: str = "23"
    qsv_preset: str = "veryfast"
    qsv_quality: str = "23"
    vaapi_device: str = "/dev/dri/renderD128"
    vaapi_quality: str = "23"
    disable_qsv: bool = False
    disable_vaapi: bool = False
    formats: list[str] = field(default_factory=lambda: ["mp4", "mkv", "webm", "mov"])


@dataclass
class TagConfig:
    """Tagging behaviour."""

    comment_text: str = "convert-toolkit"
    write_legacy_tag: bool = True
    legacy_tag_charset: str = "auto"
    ffmpeg_id3v1: bool = False
    filename_template: str = "%(artist|album_artist)s - %(track|title)s"
    filename_template_video: str = "%(title)s"
    title_clean_pipe: bool = False


@dataclass
class LyricsConfig:
    """Lyrics lookup settings."""

    enabled: bool = True
    embed: bool = True
    api_url: str = "https://lrclib.net/api"
    timeout: float = 10.0
    cache_ttl: int = 24 * 60 * 60


@dataclass
class FFmpegConfig:
    """Location of the transform executable."""

    binary: str | None = None
    directory: str | None = None
    probe_timeout: int = 30


@dataclass
class GlobalConfig:
    """Global settings."""

    default_workers: int | None = None
    log_level: str = "INFO"
    output_dir: str = "outputs"
    temp_dir: str | None = None


@dataclass
class ConvertToolkitConfig:
    """Main configuration class."""

    audio: AudioConfig = field(default_factory=AudioConfig)
    video: VideoConfig = field(default_factory=VideoConfig)
    tags: TagConfig = field(default_factory=TagConfig)
    lyrics: LyricsConfig = field(default_factory=LyricsConfig)
    ffmpeg: FFmpegConfig = field(default_factory=FFmpegConfig)
    global_: GlobalConfig = field(default_factory=GlobalConfig)

    @classmethod
    def load_from_file(cls, config_path: Path) -> ConvertToolkitConfig:
        """Load configuration from YAML file."""
        try:
            with config_path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}

            return cls._from_dict(data)
        except (OSError, yaml.YAMLError) as e:
            LOG.warning("Failed to load config from %s: %s", config_path, e)
            return cls()

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> ConvertToolkitConfig:
        """Create config from dictionary."""
        return cls(
            audio=_parse_section(AudioConfig, data.get("audio")),
            video=_parse_section(VideoConfig, data.get("video")),
            tags=_parse_section(TagConfig, data.get("tags")),
            lyrics=_parse_section(LyricsConfig, data.get("lyrics")),
            ffmpeg=_parse_section(FFmpegConfig, data.get("ffmpeg")),
            global_=_parse_section(GlobalConfig, data.get("global")),
        )

    def with_env_overrides(self, env: Mapping[str, str]) -> ConvertToolkitConfig:
        """
        Return a copy with named string overrides applied.

        This is the only place the environment is consulted; the resulting
        object is handed to processors explicitly.
        """
        audio = self.audio
        if env.get("TARGET_SAMPLE_RATE"):
            audio = replace(audio, target_sample_rate=env["TARGET_SAMPLE_RATE"])

        video = self.video
        video_overrides: dict[str, Any] = {}
        for env_key, attr in (
            ("VIDEO_HWACCEL", "hwaccel"),
            ("VIDEO_PRESET", "preset"),
            ("NVENC_PRESET", "nvenc_preset"),
            ("NVENC_Q", "nvenc_quality"),
            ("QSV_PRESET", "qsv_preset"),
            ("QSV_Q", "qsv_quality"),
            ("VAAPI_DEVICE", "vaapi_device"),
            ("VAAPI_QUALITY", "vaapi_quality"),
        ):
            if env.get(env_key):
                video_overrides[attr] = env[env_key].strip()
        if "DISABLE_QSV_IN_DOCKER" in env:
            video_overrides["disable_qsv"] = env["DISABLE_QSV_IN_DOCKER"] == "1"
        if "DISABLE_VAAPI_IN_DOCKER" in env:
            video_overrides["disable_vaapi"] = env["DISABLE_VAAPI_IN_DOCKER"] == "1"
        if video_overrides:
            video = replace(video, **video_overrides)

        tags = self.tags
        tag_overrides: dict[str, Any] = {}
        comment = env.get("MEDIA_COMMENT") or env.get("COMMENT_TEXT")
        if comment:
            tag_overrides["comment_text"] = comment
        if "LEGACY_TAG" in env:
            tag_overrides["write_legacy_tag"] = env["LEGACY_TAG"].strip().lower() in _TRUTHY
        if env.get("ID3V1_ENCODING"):
            tag_overrides["legacy_tag_charset"] = env["ID3V1_ENCODING"].strip().lower()
        if "WRITE_ID3V1" in env:
            tag_overrides["ffmpeg_id3v1"] = env["WRITE_ID3V1"] == "1"
        if env.get("FILENAME_TEMPLATE"):
            tag_overrides["filename_template"] = env["FILENAME_TEMPLATE"]
        if env.get("FILENAME_TEMPLATE_VIDEO"):
            tag_overrides["filename_template_video"] = env["FILENAME_TEMPLATE_VIDEO"]
        if "TITLE_CLEAN_PIPE" in env:
            tag_overrides["title_clean_pipe"] = env["TITLE_CLEAN_PIPE"] == "1"
        if tag_overrides:
            tags = replace(tags, **tag_overrides)

        ffmpeg = self.ffmpeg
        binary = env.get("FFMPEG_BIN") or env.get("FFMPEG_PATH")
        if binary or env.get("FFMPEG_DIR"):
            ffmpeg = replace(
                ffmpeg,
                binary=binary or ffmpeg.binary,
                directory=env.get("FFMPEG_DIR") or ffmpeg.directory,
            )

        return replace(self, audio=audio, video=video, tags=tags, ffmpeg=ffmpeg)


def _parse_section(section_cls: type, section_data: object) -> Any:
    """Build a config section, ignoring unknown keys."""
    if not isinstance(section_data, dict):
        return section_cls()

    known = set(section_cls.__dataclass_fields__)
    unknown = set(section_data) - known
    if unknown:
        LOG.warning("Ignoring unknown %s keys: %s", section_cls.__name__, ", ".join(sorted(unknown)))

    try:
        return section_cls(**{k: v for k, v in section_data.items() if k in known})
    except (TypeError, ValueError) as e:
        LOG.warning("Failed to load %s: %s", section_cls.__name__, e)
        return section_cls()


def get_config() -> ConvertToolkitConfig:
    """Get the global configuration instance."""
    return _config_singleton.get_instance()
