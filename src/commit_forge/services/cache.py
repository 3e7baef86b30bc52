"""
Content Cache

Two-tier, content-addressed cache of generated messages: an in-process
dict and one JSON file per key on disk. Cache failures never surface to
the caller; they are logged and treated as misses.
"""

import hashlib
import json
import os
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import structlog
from pydantic import BaseModel, ValidationError

logger = structlog.get_logger(__name__)

KEY_LENGTH = 16
DIR_MODE = 0o700
FILE_MODE = 0o600
TRAILING_WHITESPACE = re.compile(r"[ \t]+$", re.MULTILINE)


class CacheFile(BaseModel):
    """On-disk cache entry."""

    data: str
    timestamp: float
    hash: str
    model: str
    provider: str


@dataclass
class CacheEntry:
    message: str
    timestamp: float
    model: str
    provider: str


@dataclass
class CacheStats:
    memory_entries: int
    disk_entries: int
    total_size_bytes: int
    oldest_entry: datetime | None = None
    newest_entry: datetime | None = None


def normalize_content(content: str) -> str:
    """CRLF to LF, trailing whitespace stripped per line and at the end."""
    text = content.replace("\r\n", "\n")
    return TRAILING_WHITESPACE.sub("", text).rstrip()


def make_key(content: str, model: str, provider: str, temperature: float) -> str:
    """First 16 hex chars of sha256 over content and generation settings."""
    digest = hashlib.sha256()
    for part in (normalize_content(content), model, provider, repr(float(temperature))):
        digest.update(part.encode("utf-8"))
        digest.update(b"\0")
    return digest.hexdigest()[:KEY_LENGTH]


class ContentCache:
    """Memory-then-disk cache keyed by content and generation settings."""

    def __init__(
        self,
        cache_dir: str | Path,
        ttl_seconds: float = 24 * 60 * 60,
        max_memory_entries: int = 100,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize cache.

        Args:
            cache_dir: Directory for the disk tier (created lazily, mode 0700)
            ttl_seconds: Entry lifetime from its write time
            max_memory_entries: Memory tier cap; oldest entries evicted first
            enabled: When False every get misses and set is a no-op
            clock: Wall clock in seconds, replaced in tests
        """
        self.cache_dir = Path(cache_dir).expanduser()
        self.ttl_seconds = ttl_seconds
        self.max_memory_entries = max_memory_entries
        self.enabled = enabled
        self._clock = clock
        self._memory: dict[str, CacheEntry] = {}

    def get(self, content: str, model: str, provider: str, temperature: float) -> str | None:
        """Cached message, or None on miss, expiry or any error."""
        if not self.enabled:
            return None

        try:
            key = make_key(content, model, provider, temperature)

            entry = self._memory.get(key)
            if entry is not None:
                if not self._is_expired(entry.timestamp):
                    logger.debug("Cache hit (memory)", key=key)
                    return entry.message
                del self._memory[key]

            entry = self._read_disk(key)
            if entry is None:
                return None
            if self._is_expired(entry.timestamp):
                self._path_for(key).unlink(missing_ok=True)
                return None

            self._memory[key] = entry
            self._evict()
            logger.debug("Cache hit (disk)", key=key)
            return entry.message
        except Exception as e:
            logger.debug("Cache get failed", error=str(e))
            return None

    def set(
        self,
        content: str,
        message: str,
        model: str,
        provider: str,
        temperature: float,
    ) -> None:
        """Store a message in both tiers."""
        if not self.enabled:
            return

        try:
            key = make_key(content, model, provider, temperature)
            entry = CacheEntry(
                message=message,
                timestamp=self._clock(),
                model=model,
                provider=provider,
            )
            self._memory[key] = entry
            self._evict()
            self._write_disk(key, entry)
            logger.debug("Cache stored", key=key, provider=provider, model=model)
        except Exception as e:
            logger.debug("Cache set failed", error=str(e))

    def cleanup(self) -> int:
        """Delete expired or unparseable disk entries; returns how many."""
        removed = 0
        for path in self._disk_files():
            try:
                entry = CacheFile.model_validate_json(path.read_text(encoding="utf-8"))
                expired = self._is_expired(entry.timestamp)
            except (OSError, ValidationError, ValueError):
                expired = True

            if expired:
                try:
                    path.unlink(missing_ok=True)
                    removed += 1
                except OSError as e:
                    logger.debug("Cache cleanup failed", path=str(path), error=str(e))

        for key in [k for k, v in self._memory.items() if self._is_expired(v.timestamp)]:
            del self._memory[key]

        if removed:
            logger.debug("Cache cleanup complete", removed=removed)
        return removed

    def clear(self) -> None:
        """Drop every entry in both tiers."""
        self._memory.clear()
        for path in self._disk_files():
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.debug("Cache clear failed", path=str(path), error=str(e))

    def stats(self) -> CacheStats:
        disk_entries = 0
        total_size = 0
        oldest: float | None = None
        newest: float | None = None

        for path in self._disk_files():
            try:
                total_size += path.stat().st_size
                entry = CacheFile.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, ValidationError, ValueError):
                continue
            disk_entries += 1
            oldest = entry.timestamp if oldest is None else min(oldest, entry.timestamp)
            newest = entry.timestamp if newest is None else max(newest, entry.timestamp)

        return CacheStats(
            memory_entries=len(self._memory),
            disk_entries=disk_entries,
            total_size_bytes=total_size,
            oldest_entry=_to_datetime(oldest),
            newest_entry=_to_datetime(newest),
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _is_expired(self, timestamp: float) -> bool:
        return self._clock() - timestamp > self.ttl_seconds

    def _evict(self) -> None:
        overflow = len(self._memory) - self.max_memory_entries
        if overflow <= 0:
            return
        oldest = sorted(self._memory.items(), key=lambda item: item[1].timestamp)[:overflow]
        for key, _ in oldest:
            del self._memory[key]

    def _path_for(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def _disk_files(self) -> list[Path]:
        try:
            return sorted(self.cache_dir.glob("*.json"))
        except OSError:
            return []

    def _read_disk(self, key: str) -> CacheEntry | None:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            raw = CacheFile.model_validate_json(path.read_text(encoding="utf-8"))
        except (ValidationError, ValueError) as e:
            logger.debug("Unreadable cache file", path=str(path), error=str(e))
            return None
        return CacheEntry(
            message=raw.data,
            timestamp=raw.timestamp,
            model=raw.model,
            provider=raw.provider,
        )

    def _write_disk(self, key: str, entry: CacheEntry) -> None:
        self.cache_dir.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
        payload = CacheFile(
            data=entry.message,
            timestamp=entry.timestamp,
            hash=key,
            model=entry.model,
            provider=entry.provider,
        )
        path = self._path_for(key)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload.model_dump(), f, indent=2)


def _to_datetime(timestamp: float | None) -> datetime | None:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)
