"""Lyrics lookup against LRCLIB."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Protocol

import requests

LOG = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404


@dataclass(frozen=True)
class LyricsPayload:
    """A lookup hit: synced (LRC) text, plain text, or both."""

    synced: str | None = None
    plain: str | None = None

    @property
    def best_text(self) -> str:
        """Synced text when present, else plain text; may be empty."""
        return (self.synced or self.plain or "").strip()

    @property
    def is_synced(self) -> bool:
        return bool((self.synced or "").strip())


class LyricsLookup(Protocol):
    """Opaque metadata lookup; ``None`` means not found."""

    def search(self, artist: str, title: str, duration: float | None = None) -> LyricsPayload | None: ...


class LrclibClient:
    """Minimal LRCLIB ``/get`` client with an in-memory TTL cache."""

    def __init__(
        self,
        base_url: str = "https://lrclib.net/api",
        *,
        timeout: float = 10.0,
        cache_ttl: float = 24 * 60 * 60,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self.session = session or requests.Session()
        self._cache: dict[tuple[str, str, int | None], tuple[float, LyricsPayload | None]] = {}
        self._lock = threading.Lock()

    def search(self, artist: str, title: str, duration: float | None = None) -> LyricsPayload | None:
        rounded = round(duration) if duration else None
        key = (artist, title, rounded)
        with self._lock:
            cached = self._cache.get(key)
        if cached and time.time() - cached[0] < self.cache_ttl:
            LOG.debug("Lyrics cache hit: %s - %s", artist, title)
            return cached[1]

        params: dict[str, str | int] = {"artist_name": artist, "track_name": title}
        if rounded:
            params["duration"] = rounded

        try:
            response = self.session.get(f"{self.base_url}/get", params=params, timeout=self.timeout)
            if response.status_code == HTTP_NOT_FOUND:
                LOG.info("Lyrics not found: %s - %s", artist, title)
                payload = None
            else:
                response.raise_for_status()
                data = response.json() or {}
                payload = LyricsPayload(synced=data.get("syncedLyrics"), plain=data.get("plainLyrics"))
                if not payload.best_text:
                    LOG.info("No usable lyrics content: %s - %s", artist, title)
                    payload = None
        except (requests.RequestException, ValueError) as e:
            # Transport errors are not cached so a later job can retry
            LOG.warning("Lyrics lookup failed (%s - %s): %s", artist, title, e)
            return None

        with self._lock:
            self._cache[key] = (time.time(), payload)
        return payload
