"""Main CLI interface for the conversion toolkit."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from ..core import ConfigManager, ProcessingOptions, with_config_overrides
from .commands import ConvertCommands, LyricsCommands, UtilityCommands

LOG = logging.getLogger(__name__)


class ConvertToolkitCLI:
    """Main CLI interface."""

    def __init__(self, config_path: Path | None = None) -> None:
        self.config_manager = ConfigManager(config_path)
        self.convert_commands = ConvertCommands(self.config_manager)
        self.lyrics_commands = LyricsCommands(self.config_manager)
        self.utility_commands = UtilityCommands(self.config_manager)

    @staticmethod
    def setup_logging(verbosity: int) -> None:
        """Setup logging based on verbosity level."""
        level_map = {
            0: logging.WARNING,
            1: logging.INFO,
            2: logging.DEBUG,
        }

        level = level_map.get(verbosity, logging.DEBUG)
        log_format = "%(levelname)s: %(name)s: %(message)s" if verbosity >= 2 else "%(levelname)s: %(message)s"

        logging.basicConfig(level=level, format=log_format, handlers=[logging.StreamHandler(sys.stderr)])

        # Full FFmpeg argument lists only at -vv
        if verbosity < 2:
            logging.getLogger("convert_toolkit.core.ffmpeg").setLevel(logging.WARNING)

    def build_parser(self) -> argparse.ArgumentParser:
        """Build the argument parser."""
        parser = argparse.ArgumentParser(
            prog="convert-toolkit",
            description="Media conversion with tagging and lyrics",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  # Convert to mp3 with the default bitrate
  convert-toolkit convert song.flac --format mp3

  # Convert a folder to flac at 44.1 kHz, four at a time
  convert-toolkit convert /path/to/music -r --format flac --sample-rate 44100 --workers 4

  # Fetch lyrics for an existing file
  convert-toolkit lyrics "Artist - Title.mp3"

  # Rewrite the ID3v1 trailer
  convert-toolkit retag song.mp3 --title "Öğretmen" --artist "Someone"
            """,
        )

        parser.add_argument(
            "-v",
            "--verbose",
            action="count",
            default=0,
            help="Increase verbosity (-v for info, -vv for debug)",
        )
        parser.add_argument("--config", type=Path, help="Path to configuration file")
        parser.add_argument("--ffmpeg", dest="ffmpeg_bin", help="Path to the FFmpeg executable")
        parser.add_argument("--no-legacy-tag", action="store_true", help="Do not write ID3v1 trailers")

        subparsers = parser.add_subparsers(dest="command", required=True, help="Available commands")
        self.convert_commands.add_subcommands(subparsers)
        self.lyrics_commands.add_subcommands(subparsers)
        self.utility_commands.add_subcommands(subparsers)

        return parser

    @staticmethod
    def create_processing_options(args: argparse.Namespace) -> ProcessingOptions:
        """Create processing options from CLI arguments."""
        return ProcessingOptions(
            workers=getattr(args, "workers", None),
            output_dir=getattr(args, "output_dir", None),
            ffmpeg_bin=getattr(args, "ffmpeg_bin", None),
            legacy_tag=False if getattr(args, "no_legacy_tag", False) else None,
        )

    def _set_config_manager(self, config_manager: ConfigManager) -> None:
        self.config_manager = config_manager
        self.convert_commands.config_manager = config_manager
        self.lyrics_commands.config_manager = config_manager
        self.utility_commands.config_manager = config_manager

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parser = self.build_parser()
        parsed_args = parser.parse_args(args)

        self.setup_logging(parsed_args.verbose)

        if getattr(parsed_args, "config", None):
            self._set_config_manager(ConfigManager(parsed_args.config))

        processing_options = self.create_processing_options(parsed_args)

        try:
            with with_config_overrides(self.config_manager) as config_mgr:
                config_mgr.apply_processing_options(processing_options)

                if parsed_args.command == "convert":
                    return self.convert_commands.handle_command(parsed_args)
                if parsed_args.command == "lyrics":
                    return self.lyrics_commands.handle_command(parsed_args)
                if parsed_args.command in {"retag", "info"}:
                    return self.utility_commands.handle_command(parsed_args)
                parser.error(f"Unknown command: {parsed_args.command}")

        except KeyboardInterrupt:
            LOG.info("Operation cancelled by user")
            return 130  # Standard exit code for SIGINT
        except Exception as e:
            LOG.exception(f"Unexpected error: {e}")
            return 1

        return 0


def main() -> int:
    """Entry point for the CLI."""
    cli = ConvertToolkitCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
