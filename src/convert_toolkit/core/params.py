"""
Parameter normalization for conversions.

Pure functions that turn a target format plus loosely typed user options
into concrete encoder parameters.  Nothing here touches the filesystem or
the environment: defaults that come from configuration are passed in.
Malformed numeric input never raises, it degrades to the default.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..config.constants import (
    AAC_MAX_SAMPLE_RATE,
    DEFAULT_SAMPLE_RATE,
    MAX_SAMPLE_RATE,
    MIN_SAMPLE_RATE,
    MP3_SAMPLE_RATES,
)
from .tempo import tempo_filter

if TYPE_CHECKING:
    from ..config.settings import ConvertToolkitConfig
    from .models import ConversionRequest, VideoSettings

LOG = logging.getLogger(__name__)

VIDEO_FORMATS = frozenset({"mp4", "mkv", "mov", "webm"})
AUTO_BITRATES = frozenset({"auto", "0", "lossless"})

SW_PRESET_ORDER = (
    "ultrafast",
    "superfast",
    "veryfast",
    "faster",
    "fast",
    "medium",
    "slow",
    "slower",
    "veryslow",
)
SVT_PRESETS = {
    "ultrafast": 12,
    "superfast": 11,
    "veryfast": 10,
    "faster": 9,
    "fast": 8,
    "medium": 7,
    "slow": 6,
    "slower": 5,
    "veryslow": 4,
}
NVENC_LEGACY_PRESETS = {
    "slow": "p7",
    "medium": "p5",
    "fast": "p3",
    "hp": "p3",
    "bd": "p5",
    "llhq": "p5",
    "llhp": "p3",
    "losslesshp": "p3",
}
NVENC_TUNES = ("hq", "ll", "ull", "lossless")

# codec -> hardware mode -> encoder
VIDEO_ENCODERS = {
    "h264": {"software": "libx264", "nvenc": "h264_nvenc", "qsv": "h264_qsv", "vaapi": "h264_vaapi"},
    "h265": {"software": "libx265", "nvenc": "hevc_nvenc", "qsv": "hevc_qsv", "vaapi": "hevc_vaapi"},
    "av1": {"software": "libsvtav1", "nvenc": "av1_nvenc", "qsv": "av1_qsv", "vaapi": "av1_vaapi"},
    "vp9": {"software": "libvpx-vp9", "qsv": "vp9_qsv", "vaapi": "vp9_vaapi"},
    "prores": {"software": "prores_ks"},
}
CODEC_ALIASES = {"hevc": "h265", "x265": "h265", "x264": "h264", "libx264": "h264", "libx265": "h265"}
NO_CRF_ENCODERS = frozenset({"libvpx-vp9", "prores_ks"})

_NON_NUMERIC = re.compile(r"[^0-9.]")


def parse_int_loose(value: object) -> int | None:
    """
    Parse user input such as ``"44.1k"``-less strings, ``"48000Hz"`` or ``48000``.

    Non-digit characters are dropped before parsing.  Returns ``None`` when
    nothing usable remains.
    """
    if value is None or isinstance(value, bool):
        return None
    raw = value if isinstance(value, (int, float)) else _NON_NUMERIC.sub("", str(value))
    try:
        number = float(raw)
    except (ValueError, OverflowError):
        LOG.debug("Ignoring malformed numeric value %r", value)
        return None
    if not math.isfinite(number):
        return None
    return round(number)


def clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(upper, value))


@dataclass(frozen=True)
class SampleRateChoice:
    """Resolved output sample rate and where it came from."""

    rate: int
    source: str
    note: str


def snap_to_mp3_rate(rate: int) -> int:
    """Pick the nearest legal MPEG audio rate; ties go to the lower rate."""
    best = MP3_SAMPLE_RATES[0]
    for candidate in MP3_SAMPLE_RATES:
        if abs(candidate - rate) < abs(best - rate):
            best = candidate
    return best


def normalize_sample_rate(fmt: str, rate: int) -> tuple[int, str]:
    """Apply container-specific limits to an already clamped rate."""
    fmt = fmt.lower()
    if fmt == "mp3":
        return snap_to_mp3_rate(rate), "mp3-legal"
    if fmt in {"mp4", "m4a"}:
        return clamp(rate, MIN_SAMPLE_RATE, AAC_MAX_SAMPLE_RATE), "aac-clamped"
    return rate, "as-is"


def resolve_sample_rate(
    fmt: str,
    *,
    is_video: bool = False,
    option_a: object = None,
    option_b: object = None,
    env_default: object = None,
) -> SampleRateChoice:
    """
    Resolve the target sample rate.

    Priority: ``option_a`` > ``option_b`` > ``env_default`` > 48000.  The
    result is clamped to [8000, 192000] before format-specific limits apply.
    """
    source = "default"
    rate = DEFAULT_SAMPLE_RATE
    for name, candidate in (("option", option_a), ("option_hz", option_b), ("env", env_default)):
        parsed = parse_int_loose(candidate)
        if parsed is not None:
            rate, source = parsed, name
            break

    if rate <= 0:
        rate = DEFAULT_SAMPLE_RATE

    safe = clamp(rate, MIN_SAMPLE_RATE, MAX_SAMPLE_RATE)
    if is_video and fmt == "mp4" and source == "default":
        safe = DEFAULT_SAMPLE_RATE

    normalized, note = normalize_sample_rate(fmt, safe)
    return SampleRateChoice(rate=normalized, source=source, note=note)


def resolve_final_sample_rate(fmt: str, choice: SampleRateChoice, video: VideoSettings) -> int | None:
    """
    Let the video audio settings override the resolved rate.

    Returns ``None`` when the original rate must be kept (no ``-ar``).
    """
    if not video.audio_transcode_enabled:
        return choice.rate

    selected = str(video.audio_sample_rate or "").strip().lower()
    if selected == "original":
        return None

    parsed = parse_int_loose(selected)
    if parsed is None or parsed <= 0:
        return choice.rate
    rate = clamp(parsed, MIN_SAMPLE_RATE, MAX_SAMPLE_RATE)
    return normalize_sample_rate(fmt, rate)[0]


def resolve_channels(stereo_convert: str | None, audio_channels: str | None = None) -> str | None:
    """Map channel options to an ``-ac`` value."""
    if str(stereo_convert or "").lower() == "force":
        return "2"
    channels = str(audio_channels or "original").lower()
    if channels == "stereo":
        return "2"
    if channels == "mono":
        return "1"
    return None


def resolve_compression_level(value: object, default: int = 5) -> int:
    level = parse_int_loose(value)
    if level is None:
        return default
    return clamp(level, 0, 12)


def resolve_volume_gain(value: object) -> float | None:
    """Return a usable gain factor, or ``None`` when no change is wanted."""
    try:
        gain = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if not math.isfinite(gain) or gain <= 0 or gain == 1:
        return None
    return min(max(gain, 0.5), 5.0)


def resolve_audio_codec_args(  # noqa: PLR0911
    fmt: str,
    bitrate: str,
    sample_rate: int | None,
    *,
    bit_depth: str | None = None,
    compression_level: object = None,
    stereo_convert: str | None = None,
    write_id3v1: bool = False,
) -> list[str]:
    """Build the audio encoder arguments for an audio-only conversion."""
    bitrate = str(bitrate or "").strip().lower()
    rate_args = ["-ar", str(sample_rate)] if sample_rate is not None else []

    if fmt == "mp3":
        args = ["-id3v2_version", "3"]
        if write_id3v1:
            args += ["-write_id3v1", "1"]
        if bitrate in AUTO_BITRATES or not bitrate:
            return [*args, "-acodec", "libmp3lame", "-q:a", "0", *rate_args]
        return [*args, "-acodec", "libmp3lame", "-b:a", bitrate, *rate_args]

    if fmt == "flac":
        args = ["-acodec", "flac", "-compression_level", str(resolve_compression_level(compression_level)), *rate_args]
        sample_fmt = {"16": "s16", "24": "s32", "32f": "flt"}.get(str(bit_depth or ""))
        if sample_fmt:
            args += ["-sample_fmt", sample_fmt]
        return args

    if fmt == "wav":
        codec = {"24": "pcm_s24le", "32f": "pcm_f32le"}.get(str(bit_depth or ""), "pcm_s16le")
        return ["-acodec", codec, *rate_args]

    if fmt == "ogg":
        if bitrate in {"auto", "0"} or not bitrate:
            return ["-acodec", "libvorbis", "-q:a", "6", *rate_args]
        return ["-acodec", "libvorbis", "-b:a", bitrate, *rate_args]

    if fmt in {"aac", "ac3", "eac3", "m4a"}:
        codec = "aac" if fmt == "m4a" else fmt
        args = ["-acodec", codec, "-b:a", bitrate or "192k", *rate_args]
        if str(stereo_convert or "").lower() == "force":
            args += ["-ac", "2"]
        return args

    LOG.warning("No codec mapping for format %s, letting FFmpeg pick defaults", fmt)
    return rate_args


# Video ---------------------------------------------------------------------


def normalize_sw_preset(preset: str | None) -> str:
    value = str(preset or "").strip().lower()
    return value if value in SW_PRESET_ORDER else "veryfast"


def preset_to_svt(preset: str | None) -> int:
    return SVT_PRESETS[normalize_sw_preset(preset)]


def preset_to_aom_cpu_used(preset: str | None) -> int:
    rank = SW_PRESET_ORDER.index(normalize_sw_preset(preset))
    return clamp(8 - rank, 0, 8)


def nvenc_preset_and_tune(raw: str | None) -> tuple[str, str | None]:
    """Translate legacy NVENC preset names to the p1..p7 scheme."""
    value = str(raw or "").strip().lower()
    if re.fullmatch(r"p[1-7]", value):
        return value, None
    if value in NVENC_TUNES:
        return "p4", value
    return NVENC_LEGACY_PRESETS.get(value, "p4"), None


def parse_fps(value: object) -> float | None:
    """Target frame rate in [15, 120], or ``None`` to keep the source rate."""
    text = str(value if value is not None else "").strip().lower()
    if not text or text in {"source", "auto"}:
        return None
    try:
        fps = float(text)
    except ValueError:
        return None
    if not math.isfinite(fps) or fps <= 0:
        return None
    return max(15.0, min(120.0, fps))


def resolve_hwaccel(requested: str | None, *, disable_qsv: bool = False, disable_vaapi: bool = False) -> str:
    mode = str(requested or "off").strip().lower()
    if mode not in {"off", "nvenc", "qsv", "vaapi"}:
        LOG.debug("Unknown hwaccel mode %r, using software", requested)
        return "off"
    if (mode == "qsv" and disable_qsv) or (mode == "vaapi" and disable_vaapi):
        LOG.info("%s is disabled in this environment, falling back to NVENC", mode.upper())
        return "nvenc"
    return mode


def resolve_video_encoder(codec: str | None, hwaccel: str) -> str:
    """Pick the encoder for a codec and hardware mode; software when unsupported."""
    name = str(codec or "h264").strip().lower()
    name = CODEC_ALIASES.get(name, name)
    table = VIDEO_ENCODERS.get(name, VIDEO_ENCODERS["h264"])
    hardware = "software" if hwaccel == "off" else hwaccel
    return table.get(hardware, table["software"])


@dataclass
class VideoParameters:
    """Resolved video encoder arguments."""

    encoder: str
    hwaccel: str
    input_args: list[str] = field(default_factory=list)
    args: list[str] = field(default_factory=list)
    fps: float | None = None


def _explicit_video_bitrate(bitrate: str) -> str | None:
    text = str(bitrate or "").strip().lower()
    if re.fullmatch(r"\d+(\.\d+)?m", text) or re.fullmatch(r"\d+k", text):
        return text
    return None


def resolve_video_parameters(
    fmt: str,
    bitrate: str,
    video: VideoSettings,
    config: ConvertToolkitConfig,
) -> VideoParameters:
    """Resolve encoder, rate control and container flags for a video output."""
    fps = parse_fps(video.fps)
    if not video.transcode_enabled:
        return VideoParameters(encoder="copy", hwaccel="off", args=["-c:v", "copy"], fps=None)

    hwaccel = resolve_hwaccel(
        video.hwaccel or config.video.hwaccel,
        disable_qsv=config.video.disable_qsv,
        disable_vaapi=config.video.disable_vaapi,
    )
    encoder = resolve_video_encoder(video.codec, hwaccel)
    explicit_bv = _explicit_video_bitrate(bitrate)
    params = VideoParameters(encoder=encoder, hwaccel=hwaccel, fps=fps)
    args = ["-c:v", encoder]

    if encoder.endswith("_nvenc"):
        preset, tune = nvenc_preset_and_tune(video.preset or config.video.nvenc_preset)
        args += ["-preset", preset]
        if tune:
            args += ["-tune", tune]
        args += ["-rc:v", "vbr"]
        quality = video.quality or config.video.nvenc_quality
        args += ["-b:v", explicit_bv, "-maxrate", explicit_bv] if explicit_bv else ["-cq:v", str(quality)]
    elif encoder.endswith("_qsv"):
        args += ["-preset", normalize_sw_preset(video.preset or config.video.qsv_preset)]
        quality = video.quality or config.video.qsv_quality
        args += ["-b:v", explicit_bv] if explicit_bv else ["-global_quality", str(quality)]
    elif encoder.endswith("_vaapi"):
        params.input_args = ["-vaapi_device", config.video.vaapi_device]
        args = ["-vf", "format=nv12,hwupload", *args]
        quality = video.quality or config.video.vaapi_quality
        args += ["-b:v", explicit_bv] if explicit_bv else ["-global_quality", str(quality)]
    else:
        preset = normalize_sw_preset(video.preset or config.video.preset)
        if encoder == "libsvtav1":
            args += ["-preset", str(preset_to_svt(preset))]
        elif encoder == "libvpx-vp9":
            args += ["-cpu-used", str(preset_to_aom_cpu_used(preset)), "-row-mt", "1"]
        elif encoder == "prores_ks":
            args += ["-profile:v", "2"]
        else:
            args += ["-preset", preset]

        if explicit_bv:
            args += ["-b:v", explicit_bv, "-maxrate", explicit_bv, "-bufsize", f"{explicit_bv}*2"]
        elif encoder not in NO_CRF_ENCODERS:
            quality = parse_int_loose(video.quality)
            crf = clamp(quality, 16, 30) if quality is not None else (23 if bitrate in AUTO_BITRATES else 21)
            args += ["-crf", str(crf)]
        if encoder != "prores_ks":
            args += ["-pix_fmt", "yuv420p"]

    if fmt == "mp4":
        args += ["-movflags", "+faststart"]
    if "264" in encoder or "265" in encoder or "hevc" in encoder:
        args += ["-g", "60", "-keyint_min", "60", "-sc_threshold", "0"]
    if fps is not None:
        args += ["-r", f"{fps:g}"]

    params.args = args
    return params


def resolve_video_audio_args(video: VideoSettings, sample_rate: int | None) -> list[str]:
    """Audio arguments for the audio track(s) of a video output."""
    if not video.audio_transcode_enabled:
        args = ["-c:a", "aac", "-b:a", "192k"]
        return [*args, "-ar", str(sample_rate)] if sample_rate is not None else args

    codec = str(video.audio_codec or "aac").lower()
    if codec == "copy":
        return ["-c:a", "copy"]

    args = ["-c:a", codec]
    if codec == "flac":
        args += ["-compression_level", "5"]
    elif video.audio_bitrate not in {"original", "lossless"}:
        args += ["-b:a", str(video.audio_bitrate)]

    channels = resolve_channels(None, video.audio_channels)
    if channels:
        args += ["-ac", channels]
    if sample_rate is not None:
        args += ["-ar", str(sample_rate)]
    return args


# Aggregate -----------------------------------------------------------------


@dataclass
class ResolvedParameters:
    """Everything the command builder needs, fully resolved."""

    format: str
    is_video: bool
    sample_rate: SampleRateChoice
    final_sample_rate: int | None
    audio_args: list[str]
    audio_filters: list[str]
    video: VideoParameters | None = None


def resolve_audio_filters(*, is_video: bool, tempo_adjust: str | None, volume_gain: object) -> list[str]:
    filters = []
    if not is_video:
        tempo = tempo_filter(tempo_adjust)
        if tempo:
            filters.append(tempo)
    gain = resolve_volume_gain(volume_gain)
    if gain is not None:
        filters.append(f"volume={gain:.2f}")
    return filters


def resolve_parameters(request: ConversionRequest, config: ConvertToolkitConfig) -> ResolvedParameters:
    """Resolve all encoder parameters for a conversion request."""
    opts = request.options
    video_settings = opts.video_settings
    fmt = request.format

    choice = resolve_sample_rate(
        fmt,
        is_video=request.is_video,
        option_a=opts.sample_rate,
        option_b=opts.sample_rate_hz,
        env_default=config.audio.target_sample_rate,
    )
    final_rate = resolve_final_sample_rate(fmt, choice, video_settings) if request.is_video else choice.rate

    gain_source = opts.volume_gain
    if gain_source is None:
        gain_source = video_settings.volume_gain
    filters = resolve_audio_filters(is_video=request.is_video, tempo_adjust=opts.tempo_adjust, volume_gain=gain_source)

    if request.is_video and fmt in VIDEO_FORMATS:
        return ResolvedParameters(
            format=fmt,
            is_video=True,
            sample_rate=choice,
            final_sample_rate=final_rate,
            audio_args=resolve_video_audio_args(video_settings, final_rate),
            audio_filters=filters,
            video=resolve_video_parameters(fmt, request.bitrate, video_settings, config),
        )

    audio_args = resolve_audio_codec_args(
        fmt,
        request.bitrate,
        final_rate,
        bit_depth=opts.bit_depth,
        compression_level=opts.compression_level,
        stereo_convert=opts.stereo_convert,
        write_id3v1=config.tags.ffmpeg_id3v1,
    )
    return ResolvedParameters(
        format=fmt,
        is_video=request.is_video,
        sample_rate=choice,
        final_sample_rate=final_rate,
        audio_args=audio_args,
        audio_filters=filters,
    )
