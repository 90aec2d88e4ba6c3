"""Output path allocation and atomic file publishing."""

from __future__ import annotations

import logging
import os
import secrets
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .base import FilesystemInconsistencyError, ProcessingError

if TYPE_CHECKING:
    from collections.abc import Container

LOG = logging.getLogger(__name__)


@dataclass
class FileOperation:
    """Represents a file operation performed in this session."""

    operation_type: str
    source_path: Path
    backup_path: Path | None = None
    target_path: Path | None = None
    success: bool = False
    timestamp: float = 0.0

    def __post_init__(self) -> None:
        """Set timestamp if not provided."""
        if self.timestamp == 0.0:
            self.timestamp = time.time()


def unique_output_path(directory: Path, base_name: str, extension: str, reserved: Container[Path] = ()) -> Path:
    """Return ``base.ext``, or ``base (1).ext``, ``base (2).ext``... if taken or reserved."""
    extension = extension.lstrip(".")
    candidate = directory / f"{base_name}.{extension}"
    counter = 1
    while candidate.exists() or candidate in reserved:
        candidate = directory / f"{base_name} ({counter}).{extension}"
        counter += 1
    return candidate


def temp_sibling(path: Path, tag: str) -> Path:
    """A randomised path next to ``path`` that keeps its extension."""
    return path.with_name(f"{path.stem}.{tag}.{secrets.token_hex(4)}{path.suffix}")


class FileManager:
    """File manager with atomic publish and a per-session operation log."""

    def __init__(self) -> None:
        self.session_operations: list[FileOperation] = []
        self._lock = threading.Lock()

    def _record(self, operation: FileOperation) -> FileOperation:
        with self._lock:
            self.session_operations.append(operation)
        return operation

    def discard(self, path: Path | None) -> bool:
        """Best-effort delete; returns whether a file was removed."""
        if path is None or not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            LOG.warning("Failed to remove %s: %s", path, e)
            return False
        LOG.debug("Removed %s", path)
        return True

    def publish(self, temp_path: Path, target_path: Path) -> FileOperation:
        """
        Move ``temp_path`` into place at ``target_path``.

        An existing target is first renamed to a backup and only then
        replaced, so the target path is never missing.  If the second rename
        fails the backup is restored before the error propagates.  The
        backup is removed on success.  Both paths must live on the same
        filesystem (callers use ``temp_sibling``).

        Raises:
            FilesystemInconsistencyError: ``temp_path`` does not exist
            ProcessingError: the swap failed; the original is left in place

        """
        if not temp_path.exists():
            msg = f"Temporary file missing before publish: {temp_path}"
            self._record(FileOperation("publish", source_path=temp_path, target_path=target_path))
            raise FilesystemInconsistencyError(msg, file_path=target_path)

        if not target_path.exists():
            try:
                os.replace(temp_path, target_path)
            except OSError as e:
                self._record(FileOperation("publish", source_path=temp_path, target_path=target_path))
                msg = f"Atomic file replacement failed: {e}"
                raise ProcessingError(msg, file_path=target_path, cause=e) from e
            LOG.debug("Published %s -> %s", temp_path, target_path)
            return self._record(
                FileOperation("publish", source_path=temp_path, target_path=target_path, success=True)
            )

        backup_path = temp_sibling(target_path, "bak")
        try:
            os.replace(target_path, backup_path)
        except OSError as e:
            self._record(FileOperation("publish", source_path=temp_path, target_path=target_path))
            msg = f"Could not move original aside: {e}"
            raise ProcessingError(msg, file_path=target_path, cause=e) from e

        try:
            os.replace(temp_path, target_path)
        except OSError as e:
            try:
                os.replace(backup_path, target_path)
                LOG.info("Restored original after failed replacement: %s", target_path)
            except OSError:
                LOG.exception("Failed to restore %s from %s", target_path, backup_path)
            self._record(
                FileOperation("publish", source_path=temp_path, backup_path=backup_path, target_path=target_path)
            )
            msg = f"Atomic file replacement failed: {e}"
            raise ProcessingError(msg, file_path=target_path, cause=e) from e

        self.discard(backup_path)
        LOG.debug("Atomically replaced %s with %s", target_path, temp_path)
        return self._record(
            FileOperation(
                "publish",
                source_path=temp_path,
                backup_path=backup_path,
                target_path=target_path,
                success=True,
            )
        )

    def get_session_summary(self) -> dict[str, Any]:
        """Get summary of file operations in this session."""
        successful_ops = [op for op in self.session_operations if op.success]
        failed_ops = [op for op in self.session_operations if not op.success]

        return {
            "total_operations": len(self.session_operations),
            "successful_operations": len(successful_ops),
            "failed_operations": len(failed_ops),
            "operations": self.session_operations,
        }
