"""CLI module for the conversion toolkit."""

from .commands import ConvertCommands, LyricsCommands, UtilityCommands
from .main import ConvertToolkitCLI

__all__ = [
    "ConvertCommands",
    "ConvertToolkitCLI",
    "LyricsCommands",
    "UtilityCommands",
]
