"""Find lyrics for a converted file, write an ``.lrc`` sidecar and embed them."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from ..core.base import PostProcessingError
from .client import LrclibClient
from .text import guess_artist_title, normalize_artist_name, normalize_title, to_lrc

if TYPE_CHECKING:
    from collections.abc import Callable

    from ..config import ConvertToolkitConfig
    from ..core.models import CancellationToken, MetadataRecord
    from ..processors.lyrics_embed import LyricsEmbedder
    from .client import LyricsLookup, LyricsPayload

LOG = logging.getLogger(__name__)


class LyricsAttacher:
    """Post-processing step that never lets a failure reach the conversion."""

    def __init__(
        self,
        config: ConvertToolkitConfig,
        lookup: LyricsLookup | None = None,
        embedder: LyricsEmbedder | None = None,
    ) -> None:
        self.config = config
        self.lookup = lookup or LrclibClient(
            config.lyrics.api_url,
            timeout=config.lyrics.timeout,
            cache_ttl=config.lyrics.cache_ttl,
        )
        self.embedder = embedder

    def attach(
        self,
        file_path: Path,
        metadata: MetadataRecord,
        *,
        include_lyrics: bool = True,
        embed_lyrics: bool = True,
        on_log: Callable[[str], None] | None = None,
        on_lyrics_stats: Callable[[dict[str, int]], None] | None = None,
        cancel: CancellationToken | None = None,
    ) -> Path | None:
        """
        Look up lyrics for ``file_path`` and attach them.

        Returns the sidecar path when lyrics were found, else ``None``.
        Stats are reported once per lookup that actually ran.
        """
        file_path = Path(file_path)

        def emit(message: str) -> None:
            LOG.info("%s", message)
            if on_log is not None:
                try:
                    on_log(message)
                except Exception:
                    LOG.exception("Lyrics log callback failed")

        if not include_lyrics or not self.config.lyrics.enabled:
            emit(f"Lyrics disabled for {file_path.name}")
            return None

        try:
            raw_artist, raw_title = guess_artist_title(metadata, file_path)
            artist = normalize_artist_name(raw_artist)
            title = normalize_title(raw_title)
            if artist != raw_artist:
                emit(f'Normalized artist for lyrics: "{raw_artist}" -> "{artist}"')
            if title != raw_title:
                emit(f'Normalized title for lyrics: "{raw_title}" -> "{title}"')

            if not artist or not title:
                emit(f'Artist or title missing (artist: "{artist}", title: "{title}")')
                return None

            emit(f'Searching lyrics: "{artist}" - "{title}" ({file_path.name})')
            payload = self.lookup.search(artist, title, metadata.duration)
            lyrics_path = self._write_sidecar(file_path, self._lrc_text(payload)) if payload else None

            if on_lyrics_stats is not None:
                on_lyrics_stats({"found": 1, "notFound": 0} if lyrics_path else {"found": 0, "notFound": 1})

            if lyrics_path is None:
                emit(f'Lyrics not found: "{artist}" - "{title}"')
                return None

            emit(f"Lyrics attached: {lyrics_path.name}")
            if embed_lyrics and self.config.lyrics.embed and self.embedder is not None:
                if self.embedder.embed(file_path, payload.best_text, metadata, cancel=cancel):
                    emit(f"Lyrics embedded into {file_path.name}")
                else:
                    emit(f"Lyrics could not be embedded into {file_path.name}")
        except PostProcessingError as e:
            emit(f"Error while attaching lyrics: {e} ({file_path.name})")
            return None
        except Exception as e:
            LOG.exception("Lyrics attachment failed for %s", file_path.name)
            emit(f"Error while attaching lyrics: {e} ({file_path.name})")
            return None
        else:
            return lyrics_path

    @staticmethod
    def _lrc_text(payload: LyricsPayload) -> str:
        return payload.best_text if payload.is_synced else to_lrc(payload.best_text)

    @staticmethod
    def _write_sidecar(file_path: Path, text: str) -> Path | None:
        if not text:
            return None
        lyrics_path = file_path.with_suffix(".lrc")
        try:
            lyrics_path.write_text(text + "\n", encoding="utf-8")
        except OSError as e:
            msg = f"Could not write {lyrics_path.name}: {e}"
            raise PostProcessingError(msg, file_path=lyrics_path, cause=e) from e
        return lyrics_path
