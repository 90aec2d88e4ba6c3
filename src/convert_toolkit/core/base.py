"""Base classes and exceptions for media conversion."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

LOG = logging.getLogger(__name__)


class ProcessOutcome(Enum):
    """Lifecycle state of one external process spawn."""

    STARTING = "starting"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in {ProcessOutcome.SUCCEEDED, ProcessOutcome.FAILED, ProcessOutcome.CANCELED}


class ProcessingError(Exception):
    """Base exception for media processing errors."""

    def __init__(
        self,
        message: str,
        file_path: Path | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.file_path = file_path
        self.cause = cause


class ConversionCanceled(ProcessingError):
    """The job was canceled cooperatively. Not a failure."""

    def __init__(self, message: str = "CANCELED", file_path: Path | None = None) -> None:
        super().__init__(message, file_path=file_path)


class PostProcessingError(ProcessingError):
    """An enrichment step (lyrics, tags) failed after a successful conversion."""


class FilesystemInconsistencyError(ProcessingError):
    """A file that a successful step claimed to produce is missing."""


class MediaProcessor(ABC):
    """Abstract base class for media processors."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    @abstractmethod
    def can_process(self, file_path: Path) -> bool:
        """Check if this processor can handle the given file."""
