"""CLI command modules."""

from .convert import ConvertCommands
from .lyrics import LyricsCommands
from .utils import UtilityCommands

__all__ = ["ConvertCommands", "LyricsCommands", "UtilityCommands"]
