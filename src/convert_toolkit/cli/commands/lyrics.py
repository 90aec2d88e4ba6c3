"""Lyrics CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from ...core import FFmpegProcessor, MetadataRecord
from ...core.ffmpeg import resolve_ffmpeg_bin

if TYPE_CHECKING:
    import argparse

    from ...core import ConfigManager

LOG = logging.getLogger(__name__)


class LyricsCommands:
    """Lyrics command handlers."""

    def __init__(self, config_manager: ConfigManager) -> None:
        self.config_manager = config_manager

    def add_subcommands(self, subparsers: argparse._SubParsersAction) -> None:
        """Register the ``lyrics`` command."""
        parser = subparsers.add_parser("lyrics", help="Find lyrics for existing files")
        parser.add_argument("files", type=Path, nargs="+", help="Media files")
        parser.add_argument("--artist", help="Artist to search for (default: from the file name)")
        parser.add_argument("--title", help="Title to search for (default: from the file name)")
        parser.add_argument("--duration", type=float, help="Track duration in seconds")
        parser.add_argument("--no-embed", action="store_true", help="Write .lrc only, do not embed lyrics")

    def handle_command(self, args: argparse.Namespace) -> int:
        """Handle lyrics command execution."""
        from ...lyrics import LyricsAttacher
        from ...processors import LyricsEmbedder

        config = self.config_manager.effective_config()
        embedder = LyricsEmbedder(config, FFmpegProcessor(resolve_ffmpeg_bin(config.ffmpeg)))
        attacher = LyricsAttacher(config, embedder=embedder)
        stats = {"found": 0, "notFound": 0}

        def add_stats(delta: dict[str, int]) -> None:
            for key, value in delta.items():
                stats[key] = stats.get(key, 0) + value

        for file_path in args.files:
            if not file_path.is_file():
                LOG.error("File not found: %s", file_path)
                stats["notFound"] += 1
                continue
            metadata = MetadataRecord(artist=args.artist, title=args.title, duration=args.duration)
            lyrics_path = attacher.attach(
                file_path,
                metadata,
                embed_lyrics=not args.no_embed,
                on_lyrics_stats=add_stats,
            )
            if lyrics_path:
                print(f"{file_path.name}: {lyrics_path}")
            else:
                print(f"{file_path.name}: no lyrics")

        LOG.info("Lyrics found: %d, not found: %d", stats["found"], stats["notFound"])
        return 0 if stats["notFound"] == 0 else 1
