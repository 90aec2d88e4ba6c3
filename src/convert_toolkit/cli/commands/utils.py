"""Utility CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from ...core import FFmpegError, FFmpegProbe, MetadataRecord
from ...core.ffmpeg import resolve_ffmpeg_bin
from ...core.legacy_tag import LegacyTag, read_legacy_tag, rewrite_legacy_tag, select_charset

if TYPE_CHECKING:
    import argparse

    from ...core import ConfigManager

LOG = logging.getLogger(__name__)


class UtilityCommands:
    """Utility command handlers."""

    def __init__(self, config_manager: ConfigManager) -> None:
        """Initialize utility commands handler."""
        self.config_manager = config_manager

    def add_subcommands(self, subparsers: argparse._SubParsersAction) -> None:
        """Register the ``retag`` and ``info`` commands."""
        retag_parser = subparsers.add_parser("retag", help="Rewrite the legacy ID3v1 trailer of an mp3")
        retag_parser.add_argument("file", type=Path, help="MP3 file")
        retag_parser.add_argument("--title", help="Title")
        retag_parser.add_argument("--artist", help="Artist")
        retag_parser.add_argument("--album", help="Album")
        retag_parser.add_argument("--year", help="Year")
        retag_parser.add_argument("--track", help="Track number")
        retag_parser.add_argument("--comment", help="Comment (default: configured comment text)")
        retag_parser.add_argument("--charset", help="Force latin1 or latin5")

        subparsers.add_parser("info", help="Show FFmpeg availability and effective configuration")

    def handle_command(self, args: argparse.Namespace) -> int:
        """Handle utility command execution."""
        if args.command == "retag":
            return self._handle_retag(args)
        if args.command == "info":
            return self._handle_info(args)
        LOG.error("Unknown utility command: %s", args.command)
        return 1

    def _handle_retag(self, args: argparse.Namespace) -> int:
        """Handle legacy tag rewrite."""
        config = self.config_manager.effective_config()
        metadata = MetadataRecord(
            title=args.title,
            artist=args.artist,
            album=args.album,
            release_year=args.year,
            track_number=args.track,
            comment=args.comment,
        )
        charset_override = args.charset or config.tags.legacy_tag_charset
        if not rewrite_legacy_tag(args.file, metadata, charset_override=charset_override, comment=config.tags.comment_text):
            LOG.error("Could not write legacy tag to %s (mp3 files only)", args.file)
            return 1

        written = LegacyTag.from_metadata(metadata, config.tags.comment_text)
        tag = read_legacy_tag(args.file, select_charset(written.text_fields(), charset_override))
        if tag is not None:
            print(f"{args.file.name}: {tag.artist} - {tag.title} [{tag.album}] {tag.year} #{tag.track}")
        return 0

    def _handle_info(self, _args: argparse.Namespace) -> int:
        """Handle info display."""
        config = self.config_manager.effective_config()
        binary = resolve_ffmpeg_bin(config.ffmpeg)
        try:
            FFmpegProbe.check_availability(binary)
        except FFmpegError:
            print(f"FFmpeg:            ✗ not found ({binary})")
            ffmpeg_ok = False
        else:
            print(f"FFmpeg:            ✓ {binary}")
            ffmpeg_ok = True

        print(f"Output directory:  {config.global_.output_dir}")
        print(f"Sample rate:       {config.audio.target_sample_rate or 'default (48000)'}")
        print(f"Video hwaccel:     {config.video.hwaccel}")
        print(f"Comment text:      {config.tags.comment_text}")
        print(f"Legacy tag:        {'on' if config.tags.write_legacy_tag else 'off'} ({config.tags.legacy_tag_charset})")
        print(f"Lyrics:            {'on' if config.lyrics.enabled else 'off'} via {config.lyrics.api_url}")
        return 0 if ffmpeg_ok else 1
