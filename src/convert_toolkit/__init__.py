"""Convert Toolkit - media conversion with tagging and lyrics."""

from __future__ import annotations

__version__ = "0.1.0"
__description__ = "Media conversion with tagging and lyrics"

# Public API exports
from .config import ConvertToolkitConfig, get_config
from .core import (
    CancellationToken,
    ConfigManager,
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
    PostProcessingError,
    ProcessExitError,
    ProcessingError,
    ProcessLaunchError,
    with_config_overrides,
)
from .core.legacy_tag import rewrite_legacy_tag
from .lyrics import LrclibClient, LyricsAttacher
from .processors import LyricsEmbedder, MediaConverter, convert_media

__all__ = [
    # Configuration
    "ConvertToolkitConfig",
    "get_config",
    "ConfigManager",
    "with_config_overrides",
    # Entry points
    "convert_media",
    "rewrite_legacy_tag",
    "MediaConverter",
    "LyricsAttacher",
    "LyricsEmbedder",
    "LrclibClient",
    # Core functionality
    "MediaProcessor",
    "FFmpegProcessor",
    "FileManager",
    "InMemoryJobStore",
    # Data classes
    "CancellationToken",
    "ConversionOptions",
    "ConversionRequest",
    "ConversionResult",
    "MetadataRecord",
    # Exceptions
    "ProcessingError",
    "FFmpegError",
    "ProcessLaunchError",
    "ProcessExitError",
    "ConversionCanceled",
    "PostProcessingError",
]
