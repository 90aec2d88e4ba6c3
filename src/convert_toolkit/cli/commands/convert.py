"""Conversion CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from ...core import ConversionOptions, ConversionRequest, MetadataRecord, VideoSettings
from ...core.tempo import TEMPO_RATIOS

if TYPE_CHECKING:
    import argparse

    from ...core import ConfigManager

LOG = logging.getLogger(__name__)


def _collect_inputs(paths: list[Path], recursive: bool) -> list[Path]:
    files: list[Path] = []
    for path in paths:
        if path.is_dir():
            pattern = "**/*" if recursive else "*"
            files.extend(sorted(p for p in path.glob(pattern) if p.is_file()))
        elif path.is_file():
            files.append(path)
        else:
            LOG.warning("Skipping missing path: %s", path)
    return files


def _metadata_for(path: Path, args: argparse.Namespace, *, single: bool) -> MetadataRecord:
    """Tags from the command line apply only when converting a single file."""
    data: dict[str, str] = {"title": path.stem}
    if single:
        data.update({key: getattr(args, key) for key in ("title", "artist", "album") if getattr(args, key)})
    return MetadataRecord.from_dict(data)


class ConvertCommands:
    """Conversion command handlers."""

    def __init__(self, config_manager: ConfigManager) -> None:
        self.config_manager = config_manager

    def add_subcommands(self, subparsers: argparse._SubParsersAction) -> None:
        """Register the ``convert`` command."""
        parser = subparsers.add_parser("convert", help="Convert media files")
        parser.add_argument("paths", type=Path, nargs="+", help="Input files or directories")
        parser.add_argument("--format", "-f", default="mp3", type=str.lower, help="Target format (default: mp3)")
        parser.add_argument("--bitrate", "-b", default=None, help="Target bitrate, e.g. 192k or auto")
        parser.add_argument("--video", action="store_true", help="Treat inputs as video")
        parser.add_argument("--transcode-video", action="store_true", help="Re-encode video instead of copying")
        parser.add_argument("--codec", default="h264", help="Video codec when re-encoding")
        parser.add_argument("--hwaccel", choices=["off", "nvenc", "qsv", "vaapi"], help="Hardware encoder")
        parser.add_argument("--output-dir", "-o", help="Output directory")
        parser.add_argument("--sample-rate", help="Output sample rate in Hz")
        parser.add_argument("--tempo", choices=["none", *sorted(TEMPO_RATIOS)], default="none", help="Tempo adjustment")
        parser.add_argument("--volume", type=float, help="Volume gain factor")
        parser.add_argument("--stereo", action="store_true", help="Force stereo output")
        parser.add_argument("--cover", type=Path, help="Cover image to embed (mp3/flac)")
        parser.add_argument("--title", help="Title tag")
        parser.add_argument("--artist", help="Artist tag")
        parser.add_argument("--album", help="Album tag")
        parser.add_argument("--no-lyrics", action="store_true", help="Skip lyrics lookup")
        parser.add_argument("--no-embed", action="store_true", help="Write .lrc only, do not embed lyrics")
        parser.add_argument("--recursive", "-r", action="store_true", help="Descend into directories")
        parser.add_argument("--workers", "-w", type=int, help="Parallel conversions")

    def handle_command(self, args: argparse.Namespace) -> int:
        """Handle convert command execution."""
        from ...processors import MediaConverter
        from ..failure_table import print_failure_table

        config = self.config_manager.effective_config()
        files = _collect_inputs(args.paths, args.recursive)
        if not files:
            LOG.error("No input files found")
            return 1

        requests = [
            ConversionRequest(
                input_path=path,
                format=args.format,
                bitrate=args.bitrate or config.audio.default_bitrate,
                job_id=f"cli-{index}",
                metadata=_metadata_for(path, args, single=len(files) == 1),
                cover_path=args.cover,
                is_video=args.video,
                output_dir=Path(config.global_.output_dir),
                temp_dir=Path(config.global_.temp_dir) if config.global_.temp_dir else None,
                options=ConversionOptions(
                    sample_rate=args.sample_rate,
                    stereo_convert="force" if args.stereo else "auto",
                    tempo_adjust=args.tempo,
                    volume_gain=args.volume,
                    include_lyrics=config.lyrics.enabled and not args.no_lyrics,
                    embed_lyrics=config.lyrics.embed and not args.no_embed,
                    video_settings=VideoSettings(
                        transcode_enabled=args.transcode_video,
                        codec=args.codec,
                        hwaccel=args.hwaccel,
                    ),
                ),
            )
            for index, path in enumerate(files)
        ]

        converter = MediaConverter(config)
        items = converter.convert_many(requests)

        for item in items:
            if item.ok:
                print(f"{item.request.input_path.name} -> {item.result.output_path}")

        failed = [item for item in items if not item.ok]
        LOG.info("Converted %d/%d files successfully", len(items) - len(failed), len(items))
        print_failure_table(failed)
        return 0 if not failed else 1
