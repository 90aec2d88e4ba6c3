"""Core abstractions and utilities for the conversion toolkit."""

from .base import (
    ConversionCanceled,
    FilesystemInconsistencyError,
    MediaProcessor,
    PostProcessingError,
    ProcessingError,
    ProcessOutcome,
)
from .config import ConfigManager, ProcessingOptions, with_config_overrides
from .ffmpeg import FFmpegError, FFmpegProbe, FFmpegProcessor, ProcessExitError, ProcessLaunchError
from .file_manager import FileManager, temp_sibling, unique_output_path
from .models import (
    CancellationToken,
    ConversionOptions,
    ConversionRequest,
    ConversionResult,
    MetadataRecord,
    SelectedStreams,
    VideoSettings,
)
from .status import InMemoryJobStore, JobStatus, JobStatusStore

__all__ = [
    "CancellationToken",
    "ConfigManager",
    "ConversionCanceled",
    "ConversionOptions",
    "ConversionRequest",
    "ConversionResult",
    "FFmpegError",
    "FFmpegProbe",
    "FFmpegProcessor",
    "FileManager",
    "FilesystemInconsistencyError",
    "InMemoryJobStore",
    "JobStatus",
    "JobStatusStore",
    "MediaProcessor",
    "MetadataRecord",
    "PostProcessingError",
    "ProcessExitError",
    "ProcessLaunchError",
    "ProcessOutcome",
    "ProcessingError",
    "ProcessingOptions",
    "SelectedStreams",
    "VideoSettings",
    "temp_sibling",
    "unique_output_path",
    "with_config_overrides",
]
