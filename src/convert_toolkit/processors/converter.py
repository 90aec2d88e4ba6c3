"""Conversion orchestrator: parameters, command, monitored run, post-processing."""

from __future__ import annotations

import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import psutil
from tqdm import tqdm

from ..config import get_config
from ..config.constants import PROGRESS_DONE
from ..core import (
    ConversionCanceled,
    ConversionOptions,
    ConversionRequest,
    ConversionResult,
    FFmpegError,
    FFmpegProcessor,
    FileManager,
    InMemoryJobStore,
    MediaProcessor,
    MetadataRecord,
    ProcessingError,
    temp_sibling,
    unique_output_path,
)
from ..core.ffmpeg import resolve_ffmpeg_bin
from ..core.legacy_tag import rewrite_legacy_tag
from ..core.naming import (
    clean_title_for_tags,
    comment_key_for,
    maybe_clean_title,
    resolve_template,
    sanitize_filename,
)
from ..core.params import ResolvedParameters, resolve_parameters
from ..lyrics import LyricsAttacher
from .lyrics_embed import LyricsEmbedder

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from ..config import ConvertToolkitConfig
    from ..core import JobStatusStore

COVER_FORMATS = frozenset({"mp3", "flac"})
VORBIS_FORMATS = frozenset({"flac", "ogg"})
JPEG_EXTENSIONS = frozenset({".jpg", ".jpeg"})

_DATE_RE = re.compile(r"^\d{4}(-\d{2}(-\d{2})?)?$")

LOG = logging.getLogger(__name__)


def _positive_int(value: object) -> int | None:
    try:
        number = int(float(value))  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return None
    return number if number > 0 else None


def _numbered(number: object, total: object) -> str:
    n = _positive_int(number)
    if n is None:
        return ""
    t = _positive_int(total)
    return f"{n}/{t}" if t else str(n)


def tag_metadata(meta: MetadataRecord, *, clean_pipe: bool = False) -> MetadataRecord:
    """Copy of ``meta`` with title and track cleaned for tags and filenames."""
    data = meta.to_dict()
    data["title"] = clean_title_for_tags(maybe_clean_title(meta.title, clean_pipe=clean_pipe))
    data["track"] = clean_title_for_tags(meta.track)
    return MetadataRecord.from_dict(data)


def build_metadata_args(meta: MetadataRecord, fmt: str, *, is_video: bool, comment_text: str | None) -> list[str]:
    """Tag arguments; source tags are dropped so only these survive."""
    date = meta.release_date if meta.release_date and _DATE_RE.match(meta.release_date) else None
    date = date or meta.release_year or meta.upload_date or ""
    label = meta.label or meta.publisher

    pairs: dict[str, str] = {
        "title": meta.display_title,
        "artist": meta.artist or "",
        "album": meta.display_album,
        "date": str(date),
        "track": _numbered(meta.track_number, meta.track_total),
        "disc": _numbered(meta.disc_number, meta.disc_total),
        "genre": meta.genre or "",
    }
    if meta.album_artist:
        pairs["album_artist"] = meta.album_artist
    if label:
        pairs["publisher"] = label
    if meta.copyright:
        pairs["copyright"] = meta.copyright

    args = ["-map_metadata", "-1"]
    for key, value in pairs.items():
        if value:
            args += ["-metadata", f"{key}={value}"]

    comment = meta.comment or comment_text
    if comment:
        args += ["-metadata", f"{comment_key_for(fmt)}={comment}"]
    if meta.isrc:
        args += ["-metadata", f"ISRC={meta.isrc}"]

    if not is_video and fmt in VORBIS_FORMATS:
        if meta.album_artist:
            args += ["-metadata", f"ALBUMARTIST={meta.album_artist}"]
        if label:
            args += ["-metadata", f"LABEL={label}"]
        if meta.webpage_url:
            args += ["-metadata", f"URL={meta.webpage_url}"]
    elif not is_video and fmt == "mp3":
        if meta.album_artist:
            args += ["-metadata", f"ALBUMARTIST={meta.album_artist}"]
        if meta.webpage_url:
            args += ["-metadata", f"URL={meta.webpage_url}"]
    return args


def _language(code: str | None) -> str | None:
    text = str(code or "").strip().lower()[:3]
    return text if text and text != "und" else None


def _video_stream_args(request: ConversionRequest) -> list[str]:
    streams = request.options.selected_streams
    audio = [i for i in (streams.audio if streams else []) if isinstance(i, int) and i >= 0]
    subtitles = [i for i in (streams.subtitles if streams else []) if isinstance(i, int) and i >= 0]

    args = ["-vn"] if streams is not None and streams.has_video is False else ["-map", "0:v:0"]
    if audio:
        for index in audio:
            args += ["-map", f"0:{index}"]
    else:
        args += ["-map", "0:a:0"]

    if subtitles:
        for index in subtitles:
            args += ["-map", f"0:{index}"]
        args += ["-disposition:s:0", "default"]
        args += ["-c:s", "mov_text" if request.format == "mp4" else "copy"]

    if streams is not None:
        for out_index, src_index in enumerate(audio):
            lang = _language(streams.audio_languages.get(src_index))
            if lang:
                args += [f"-metadata:s:a:{out_index}", f"language={lang}"]
        for out_index, src_index in enumerate(subtitles):
            lang = _language(streams.subtitle_languages.get(src_index))
            if lang:
                args += [f"-metadata:s:s:{out_index}", f"language={lang}"]
    return args


def build_conversion_command(
    request: ConversionRequest,
    params: ResolvedParameters,
    output_path: Path,
    ffmpeg_bin: str,
    cover: Path | None = None,
    *,
    metadata: MetadataRecord | None = None,
    comment_text: str | None = None,
) -> list[str]:
    """Assemble the full FFmpeg argument list for one conversion."""
    meta = metadata or request.metadata
    fmt = params.format
    is_video = params.is_video and params.video is not None
    embed_cover = cover is not None and not request.is_video and fmt in COVER_FORMATS
    streams = request.options.selected_streams
    first_audio = streams.audio[0] if streams and streams.audio else None

    command = [ffmpeg_bin, "-hide_banner", "-nostdin", "-y"]
    if is_video:
        command += params.video.input_args
    command += ["-i", str(request.input_path)]

    if embed_cover:
        command += ["-i", str(cover)]
    elif not is_video:
        if first_audio is not None:
            command += ["-map", f"0:{first_audio}"]
        command.append("-vn")

    command += build_metadata_args(meta, fmt, is_video=request.is_video, comment_text=comment_text)

    if embed_cover:
        command += ["-map", f"0:{first_audio}" if first_audio is not None else "0:a"]
        command += ["-map", "1:v?", "-disposition:v", "attached_pic", "-metadata:s:v", "title=Album cover"]
        command += ["-c:v", "mjpeg"]

    if is_video:
        command += _video_stream_args(request)
        command += params.video.args

    command += params.audio_args
    if params.audio_filters:
        command += ["-af", ",".join(params.audio_filters)]

    command.append(str(output_path))
    return command


def ensure_jpeg_cover(cover_path: Path | None, temp_dir: Path | None, ffmpeg: FFmpegProcessor) -> Path | None:
    """Return a JPEG version of the cover, converting it if needed; ``None`` on failure."""
    if cover_path is None or not Path(cover_path).is_file():
        return None
    cover_path = Path(cover_path)
    if cover_path.suffix.lower() in JPEG_EXTENSIONS:
        return cover_path

    out_dir = cover_path.parent if cover_path.parent.is_absolute() else Path(temp_dir or Path.cwd())
    out_jpg = out_dir / f"{cover_path.stem}.norm.jpg"
    command = [ffmpeg.ffmpeg_bin, "-y", "-hide_banner", "-loglevel", "error", "-i", str(cover_path), str(out_jpg)]
    try:
        ffmpeg.run_command(command, cover_path)
    except FFmpegError as e:
        LOG.warning("Cover conversion failed for %s: %s", cover_path.name, e)
        return None
    return out_jpg if out_jpg.exists() else None


def default_worker_count(configured: int | None, *, video: bool = False) -> int:
    """Configured count, or a share of the physical cores that leaves room for the encoder's own threads."""
    if configured is not None and configured > 0:
        return configured
    physical_cores = psutil.cpu_count(logical=False) or 1
    return max(1, physical_cores // 3) if video else max(1, physical_cores // 2)


@dataclass
class BatchItem:
    """One entry of a batch run: the request and either its result or its error."""

    request: ConversionRequest
    result: ConversionResult | None = None
    error: ProcessingError | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None


class MediaConverter(MediaProcessor):
    """Runs conversion jobs end to end and reports into a job status store."""

    def __init__(
        self,
        config: ConvertToolkitConfig | None = None,
        *,
        ffmpeg: FFmpegProcessor | None = None,
        file_manager: FileManager | None = None,
        lyrics_attacher: LyricsAttacher | None = None,
        job_store: JobStatusStore | None = None,
    ) -> None:
        super().__init__("MediaConverter")
        self.config = config or get_config()
        self.ffmpeg = ffmpeg or FFmpegProcessor(resolve_ffmpeg_bin(self.config.ffmpeg))
        self.file_manager = file_manager or FileManager()
        self.job_store = job_store or InMemoryJobStore()
        self.lyrics_attacher = lyrics_attacher or LyricsAttacher(
            self.config,
            embedder=LyricsEmbedder(self.config, self.ffmpeg, self.file_manager),
        )
        self._reserved: set[Path] = set()
        self._reserve_lock = threading.Lock()

    def can_process(self, file_path: Path) -> bool:
        return Path(file_path).is_file()

    def _reserve_output_path(self, request: ConversionRequest, meta: MetadataRecord) -> Path:
        tags = self.config.tags
        template = tags.filename_template_video if request.is_video else tags.filename_template
        base_name = sanitize_filename(resolve_template(meta.to_dict(), template)) or f"output_{request.job_id}"
        request.output_dir.mkdir(parents=True, exist_ok=True)
        with self._reserve_lock:
            output_path = unique_output_path(request.output_dir, base_name, request.format, self._reserved)
            self._reserved.add(output_path)
        return output_path

    def _release_output_path(self, output_path: Path) -> None:
        with self._reserve_lock:
            self._reserved.discard(output_path)

    def _log(self, job_id: str, message: str) -> None:
        self.logger.info(message)
        self.job_store.set_last_log(job_id, message)

    def convert(
        self,
        request: ConversionRequest,
        progress_callback: Callable[[int], None] | None = None,
    ) -> ConversionResult:
        """
        Convert one request into a new file in ``request.output_dir``.

        The output name is fixed (and de-duplicated) before FFmpeg starts.
        FFmpeg writes to a temporary sibling which is only published after a
        successful, non-canceled run.  Lyrics and legacy tags are applied
        afterwards and can never fail the conversion.

        Raises:
            ConversionCanceled: the job was canceled at any point before publish
            ProcessLaunchError: FFmpeg could not be started
            ProcessExitError: FFmpeg failed
            ProcessingError: the input is missing or the output could not be published

        """
        opts = request.options
        job_id = request.job_id

        if opts.cancel.is_set:
            raise ConversionCanceled(file_path=request.input_path)
        if not self.can_process(request.input_path):
            msg = f"Input file not found: {request.input_path}"
            raise ProcessingError(msg, file_path=request.input_path)

        ffmpeg = FFmpegProcessor(opts.ffmpeg_bin, self.ffmpeg.timeout) if opts.ffmpeg_bin else self.ffmpeg
        meta = tag_metadata(request.metadata, clean_pipe=self.config.tags.title_clean_pipe)
        params = resolve_parameters(request, self.config)
        choice = params.sample_rate
        self.logger.debug("Sample rate %s Hz (%s, %s) for %s", choice.rate, choice.source, choice.note, request.format)

        cover = None
        if request.cover_path and not request.is_video and request.format in COVER_FORMATS:
            cover = ensure_jpeg_cover(request.cover_path, request.temp_dir, ffmpeg)

        def report(progress: int) -> None:
            # 100 is only reported once the file is published
            if progress >= PROGRESS_DONE:
                return
            self.job_store.set_progress(job_id, progress)
            if progress_callback is not None:
                progress_callback(progress)

        output_path = self._reserve_output_path(request, meta)
        temp_path = temp_sibling(output_path, "part")
        try:
            command = build_conversion_command(
                request,
                params,
                temp_path,
                ffmpeg.ffmpeg_bin,
                cover,
                metadata=meta,
                comment_text=self.config.tags.comment_text,
            )
            self._log(job_id, f"Converting {request.input_path.name} -> {output_path.name}")
            ffmpeg.run(command, temp_path, progress_callback=report, cancel=opts.cancel, on_process=opts.on_process)
            if opts.cancel.is_set:
                raise ConversionCanceled(file_path=output_path)
            self.file_manager.publish(temp_path, output_path)
        except ConversionCanceled:
            self.file_manager.discard(temp_path)
            self._log(job_id, f"Conversion canceled: {request.input_path.name}")
            raise
        except ProcessingError as e:
            self.file_manager.discard(temp_path)
            self.job_store.set_last_log(job_id, f"Conversion failed: {e}")
            raise
        finally:
            self._release_output_path(output_path)

        self.job_store.set_progress(job_id, PROGRESS_DONE)
        if progress_callback is not None:
            progress_callback(PROGRESS_DONE)
        self._log(job_id, f"Conversion finished: {output_path.name}")

        lyrics_path = self._post_process(request, output_path, meta)

        try:
            file_size = output_path.stat().st_size
        except OSError as e:
            msg = f"Published output disappeared: {output_path}"
            raise ProcessingError(msg, file_path=output_path, cause=e) from e
        return ConversionResult(output_path=output_path, file_size=file_size, lyrics_path=lyrics_path)

    def _post_process(self, request: ConversionRequest, output_path: Path, meta: MetadataRecord) -> Path | None:
        """Legacy tag and lyrics; failures are logged, never raised."""
        opts = request.options
        job_id = request.job_id

        if request.format == "mp3" and self.config.tags.write_legacy_tag:
            try:
                rewrite_legacy_tag(
                    output_path,
                    meta,
                    charset_override=self.config.tags.legacy_tag_charset,
                    comment=self.config.tags.comment_text,
                )
            except Exception:
                self.logger.exception("Legacy tag post-processing failed for %s", output_path.name)

        if request.is_video or not opts.include_lyrics or opts.cancel.is_set:
            return None

        def on_stats(stats: dict[str, int]) -> None:
            self.job_store.add_lyrics_stats(job_id, found=stats.get("found", 0), not_found=stats.get("notFound", 0))
            if opts.on_lyrics_stats is not None:
                opts.on_lyrics_stats(stats)

        try:
            return self.lyrics_attacher.attach(
                output_path,
                meta,
                include_lyrics=opts.include_lyrics,
                embed_lyrics=opts.embed_lyrics,
                on_log=lambda message: self.job_store.set_last_log(job_id, message),
                on_lyrics_stats=on_stats,
                cancel=opts.cancel,
            )
        except Exception:
            self.logger.exception("Lyrics post-processing failed for %s", output_path.name)
            return None

    def convert_many(
        self,
        requests: Iterable[ConversionRequest],
        workers: int | None = None,
        *,
        show_progress: bool = True,
    ) -> list[BatchItem]:
        """Run independent requests concurrently; one failure never stops the others."""
        items = [BatchItem(request) for request in requests]
        if not items:
            return []

        any_video = any(item.request.is_video for item in items)
        configured = workers or self.config.global_.default_workers
        max_workers = min(len(items), default_worker_count(configured, video=any_video))
        self.logger.info(f"Converting {len(items)} file(s) with {max_workers} worker(s)")

        progress_bar = tqdm(total=len(items), desc="Converting", unit="file", disable=not show_progress)
        try:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                future_to_item = {executor.submit(self.convert, item.request): item for item in items}
                try:
                    for future in as_completed(future_to_item):
                        item = future_to_item[future]
                        name = item.request.input_path.name
                        try:
                            item.result = future.result()
                            progress_bar.set_description(f"✓ {name}")
                        except ProcessingError as e:
                            item.error = e
                            progress_bar.set_description(f"✗ {name}")
                            if not isinstance(e, ConversionCanceled):
                                self.logger.error(f"Failed to convert {name}: {e}")
                        except Exception as e:
                            self.logger.exception(f"Unexpected error converting {name}")
                            item.error = ProcessingError(
                                f"Unexpected error: {e}", file_path=item.request.input_path, cause=e
                            )
                            progress_bar.set_description(f"✗ {name}")
                        progress_bar.update(1)
                except KeyboardInterrupt:
                    # Workers only stop once their tokens are set; the executor waits for them
                    self.logger.warning("Interrupted, canceling remaining conversions")
                    for item in items:
                        item.request.options.cancel.cancel()
                    raise
        finally:
            progress_bar.close()

        return items


def convert_media(  # noqa: PLR0913
    input_path: str | Path,
    fmt: str,
    bitrate: str = "192k",
    job_id: str = "job",
    progress_callback: Callable[[int], None] | None = None,
    metadata: MetadataRecord | dict[str, Any] | None = None,
    cover_path: str | Path | None = None,
    is_video: bool = False,
    output_dir: str | Path | None = None,
    temp_dir: str | Path | None = None,
    options: ConversionOptions | None = None,
    *,
    config: ConvertToolkitConfig | None = None,
    job_store: JobStatusStore | None = None,
    lyrics_attacher: LyricsAttacher | None = None,
) -> ConversionResult:
    """Convert a single file; functional wrapper around ``MediaConverter.convert``."""
    config = config or get_config()
    request = ConversionRequest(
        input_path=Path(input_path),
        format=fmt,
        bitrate=bitrate,
        job_id=job_id,
        metadata=metadata if metadata is not None else MetadataRecord(),
        cover_path=Path(cover_path) if cover_path else None,
        is_video=is_video,
        output_dir=Path(output_dir or config.global_.output_dir),
        temp_dir=Path(temp_dir) if temp_dir else None,
        options=options or ConversionOptions(),
    )
    converter = MediaConverter(config, job_store=job_store, lyrics_attacher=lyrics_attacher)
    return converter.convert(request, progress_callback)
