"""Media processors built on the core architecture."""

from .converter import BatchItem, MediaConverter, build_conversion_command, convert_media, ensure_jpeg_cover
from .lyrics_embed import EMBEDDABLE_EXTENSIONS, LyricsEmbedder, build_embed_command

__all__ = [
    "EMBEDDABLE_EXTENSIONS",
    "BatchItem",
    "LyricsEmbedder",
    "MediaConverter",
    "build_conversion_command",
    "build_embed_command",
    "convert_media",
    "ensure_jpeg_cover",
]
