"""Job status reporting boundary."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from typing import Protocol


@dataclass
class JobStatus:
    """Reporting-only view of a job."""

    progress: int = 0
    last_log: str = ""
    lyrics_found: int = 0
    lyrics_not_found: int = 0
    extra: dict[str, object] = field(default_factory=dict)

    @property
    def lyrics_stats(self) -> dict[str, int]:
        return {"found": self.lyrics_found, "notFound": self.lyrics_not_found}


class JobStatusStore(Protocol):
    """Externally owned store keyed by job id."""

    def get(self, job_id: str) -> JobStatus | None: ...

    def set_progress(self, job_id: str, progress: int) -> None: ...

    def set_last_log(self, job_id: str, message: str) -> None: ...

    def add_lyrics_stats(self, job_id: str, *, found: int = 0, not_found: int = 0) -> None: ...

    def update(self, job_id: str, **fields: object) -> None: ...


class InMemoryJobStore:
    """Thread-safe in-process store, used by the CLI and tests."""

    def __init__(self) -> None:
        self._jobs: dict[str, JobStatus] = {}
        self._lock = threading.Lock()

    def _job(self, job_id: str) -> JobStatus:
        return self._jobs.setdefault(job_id, JobStatus())

    def get(self, job_id: str) -> JobStatus | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return replace(job, extra=dict(job.extra)) if job else None

    def set_progress(self, job_id: str, progress: int) -> None:
        with self._lock:
            self._job(job_id).progress = progress

    def set_last_log(self, job_id: str, message: str) -> None:
        with self._lock:
            self._job(job_id).last_log = message

    def add_lyrics_stats(self, job_id: str, *, found: int = 0, not_found: int = 0) -> None:
        with self._lock:
            job = self._job(job_id)
            job.lyrics_found += found
            job.lyrics_not_found += not_found

    def update(self, job_id: str, **fields: object) -> None:
        """Set known fields directly; anything else lands in ``extra``."""
        with self._lock:
            job = self._job(job_id)
            for key, value in fields.items():
                if key in {"progress", "last_log", "lyrics_found", "lyrics_not_found"}:
                    setattr(job, key, value)
                else:
                    job.extra[key] = value
