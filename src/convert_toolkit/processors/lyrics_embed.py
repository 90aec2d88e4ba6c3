"""Atomic lyrics embedding into an already published media file."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from ..core import (
    FFmpegProcessor,
    FileManager,
    FilesystemInconsistencyError,
    MediaProcessor,
    ProcessingError,
    temp_sibling,
)
from ..core.legacy_tag import rewrite_legacy_tag
from ..lyrics.text import strip_timestamps

if TYPE_CHECKING:
    from ..config import ConvertToolkitConfig
    from ..core import CancellationToken, MetadataRecord

EMBEDDABLE_EXTENSIONS = frozenset({".mp3", ".flac", ".m4a", ".mp4", ".ogg", ".opus"})

__all__ = ["EMBEDDABLE_EXTENSIONS", "LyricsEmbedder", "build_embed_command", "strip_timestamps"]


def build_embed_command(ffmpeg_bin: str, source: Path, temp: Path, text: str) -> list[str]:
    """Stream-copy ``source`` to ``temp`` with lyrics set on the container and first audio stream."""
    command = [
        ffmpeg_bin,
        "-hide_banner",
        "-nostdin",
        "-y",
        "-i",
        str(source),
        "-map",
        "0",
        "-c",
        "copy",
        "-map_metadata",
        "0",
        "-metadata",
        f"lyrics={text}",
        "-metadata:s:a:0",
        f"lyrics={text}",
    ]
    if source.suffix.lower() == ".mp3":
        command += ["-id3v2_version", "3"]
    command.append(str(temp))
    return command


class LyricsEmbedder(MediaProcessor):
    """
    Rewrites a file with embedded lyrics without ever exposing a partial file.

    The rewrite goes to a temporary sibling; only a verified temp file is
    swapped in through ``FileManager.publish``.  On any failure the temp file
    is removed and the original stays byte-for-byte intact.
    """

    def __init__(
        self,
        config: ConvertToolkitConfig,
        ffmpeg: FFmpegProcessor | None = None,
        file_manager: FileManager | None = None,
    ) -> None:
        super().__init__("LyricsEmbedder")
        self.config = config
        self.ffmpeg = ffmpeg or FFmpegProcessor()
        self.file_manager = file_manager or FileManager()

    def can_process(self, file_path: Path) -> bool:
        return Path(file_path).suffix.lower() in EMBEDDABLE_EXTENSIONS

    def embed(
        self,
        file_path: Path,
        lyrics_text: str,
        metadata: MetadataRecord | None = None,
        *,
        cancel: CancellationToken | None = None,
    ) -> bool:
        """
        Embed plain lyrics into ``file_path``.

        Returns ``True`` only when the file at ``file_path`` now carries the
        lyrics.  Never raises for processing failures.
        """
        file_path = Path(file_path)
        if not self.can_process(file_path):
            self.logger.debug("Lyrics embedding not supported for %s", file_path.suffix)
            return False

        text = strip_timestamps(lyrics_text or "")
        if not text:
            self.logger.debug("No lyrics text to embed in %s", file_path.name)
            return False

        temp_path = temp_sibling(file_path, "lyrics")
        command = build_embed_command(self.ffmpeg.ffmpeg_bin, file_path, temp_path, text)

        try:
            self.ffmpeg.run(command, temp_path, cancel=cancel)
            if not temp_path.exists():
                msg = f"Embed step reported success but {temp_path.name} is missing"
                raise FilesystemInconsistencyError(msg, file_path=file_path)
            self.file_manager.publish(temp_path, file_path)
        except ProcessingError as e:
            self.logger.warning(f"Lyrics embed failed for {file_path.name}: {e}")
            self.file_manager.discard(temp_path)
            return False

        self.logger.info(f"Embedded lyrics into {file_path.name}")

        if file_path.suffix.lower() == ".mp3" and self.config.tags.write_legacy_tag and metadata is not None:
            rewrite_legacy_tag(
                file_path,
                metadata,
                charset_override=self.config.tags.legacy_tag_charset,
                comment=self.config.tags.comment_text,
            )
        return True
