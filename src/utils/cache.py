"""
Caching Module for ProspectOS.

Content-addressed store for raw source results.
Backends hold plain JSON-able records; ResultCache layers the fetch-result
rules on top (live entries are write-once, replacements are monotonic in
fetch time).
"""

import json
import math
import re
import hashlib
import logging
import time
from collections import OrderedDict
from datetime import datetime, timedelta
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Optional

from src.intelligence.models.content import CacheEntry, FetchResult, utcnow

logger = logging.getLogger(__name__)


class CacheBackend:
    """
    Key/value store with housekeeping TTLs.
    A ttl of 0 keeps the value until it is deleted or evicted.
    """

    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl: float = 3600) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def clear(self) -> bool:
        raise NotImplementedError


class InMemoryCache(CacheBackend):
    """
    Thread-safe LRU cache with TTL support.

    Reads refresh recency; when full, the least recently used key goes first.
    """

    def __init__(self, max_size: int = 1000, clock: Callable[[], float] = time.monotonic):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._entries: OrderedDict[str, tuple[Any, Optional[float]]] = OrderedDict()
        self._lock = Lock()
        self._max_size = max_size
        self._clock = clock
        self.evictions = 0

    def _expired(self, deadline: Optional[float]) -> bool:
        return deadline is not None and self._clock() >= deadline

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                return None
            value, deadline = item
            if self._expired(deadline):
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: Any, ttl: float = 3600) -> bool:
        with self._lock:
            deadline = self._clock() + ttl if ttl > 0 else None
            self._entries[key] = (value, deadline)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_size:
                self._entries.popitem(last=False)
                self.evictions += 1
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> bool:
        with self._lock:
            self._entries.clear()
            return True

    def stats(self) -> dict:
        with self._lock:
            return {
                'size': len(self._entries),
                'max_size': self._max_size,
                'evictions': self.evictions,
                'expired_entries': sum(1 for _, d in self._entries.values() if self._expired(d)),
            }


class FileCache(CacheBackend):
    """
    One JSON document per key, surviving restarts.

    File names keep a readable prefix of the key plus a short digest, so
    `fetch:site:<fingerprint>` lands in `fetch_site_<fingerprint>-<digest>.json`.
    Writes go through a temporary file renamed into place; readers never see
    a half-written document.
    """

    _UNSAFE = re.compile(r'[^A-Za-z0-9_.-]+')

    def __init__(self, cache_dir: str = "cache", clock: Callable[[], float] = time.time):
        self._cache_dir = Path(cache_dir)
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._clock = clock

    def path_for(self, key: str) -> Path:
        readable = self._UNSAFE.sub('_', key)[:80]
        digest = hashlib.sha256(key.encode()).hexdigest()[:8]
        return self._cache_dir / f"{readable}-{digest}.json"

    def get(self, key: str) -> Optional[Any]:
        path = self.path_for(key)
        with self._lock:
            try:
                document = json.loads(path.read_text())
            except FileNotFoundError:
                return None
            except (json.JSONDecodeError, OSError) as e:
                logger.warning(f"Discarding unreadable cache file {path.name}: {e}")
                path.unlink(missing_ok=True)
                return None

            if document.get('key') != key:
                # Digest collision on the truncated name
                return None
            deadline = document.get('expires_at')
            if deadline is not None and self._clock() >= deadline:
                path.unlink(missing_ok=True)
                return None
            return document.get('value')

    def set(self, key: str, value: Any, ttl: float = 3600) -> bool:
        path = self.path_for(key)
        document = {
            'key': key,
            'value': value,
            'expires_at': self._clock() + ttl if ttl > 0 else None,
        }
        with self._lock:
            tmp_path = path.with_suffix('.tmp')
            try:
                tmp_path.write_text(json.dumps(document, sort_keys=True))
                tmp_path.replace(path)
                return True
            except (OSError, TypeError) as e:
                logger.warning(f"Failed to write cache file {path.name}: {e}")
                tmp_path.unlink(missing_ok=True)
                return False

    def delete(self, key: str) -> bool:
        with self._lock:
            try:
                self.path_for(key).unlink()
                return True
            except FileNotFoundError:
                return False

    def clear(self) -> bool:
        with self._lock:
            for path in self._cache_dir.glob("*.json"):
                path.unlink(missing_ok=True)
            return True

def result_cache_key(source: str, company_fingerprint: str) -> str:
    """Backend key for a (source, company fingerprint) pair."""
    return f"fetch:{source}:{company_fingerprint}"


class ResultCache:
    """
    Shared store of raw adapter outputs.

    Entries are keyed by (source, company fingerprint) and carry the content
    hash of their payload. A live entry is never overwritten; once it expires
    it may be superseded by a result fetched at the same time or later.
    """

    def __init__(
        self,
        backend: Optional[CacheBackend] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._backend = backend or InMemoryCache()
        self._clock = clock
        self._lock = Lock()
        self.hits = 0
        self.misses = 0

    def _read(self, key: str) -> Optional[CacheEntry]:
        record = self._backend.get(key)
        if record is None:
            return None
        try:
            return CacheEntry.from_record(record)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding unreadable cache record {key}: {e}")
            self._backend.delete(key)
            return None

    def get_entry(self, source: str, company_fingerprint: str) -> Optional[CacheEntry]:
        """Return the live entry for the key, or None."""
        key = result_cache_key(source, company_fingerprint)
        with self._lock:
            entry = self._read(key)
            if entry is None:
                self.misses += 1
                return None
            if entry.is_expired(self._clock()):
                self.misses += 1
                return None
            self.hits += 1
            return entry

    def get(self, source: str, company_fingerprint: str) -> Optional[FetchResult]:
        entry = self.get_entry(source, company_fingerprint)
        return entry.result if entry else None

    def put(self, result: FetchResult, ttl_seconds: float) -> FetchResult:
        """
        Store a result unless a live entry already exists.

        Returns the result that is live in the cache afterwards, which is the
        earlier entry when another writer got there first.
        """
        key = result_cache_key(result.source, result.company_fingerprint)
        now = self._clock()
        with self._lock:
            existing = self._read(key)
            if existing is not None:
                if not existing.is_expired(now):
                    logger.debug(f"Cache entry {key} already live, keeping {existing.result.content_hash[:12]}")
                    return existing.result
                if existing.result.fetched_at > result.fetched_at:
                    logger.debug(f"Ignoring stale result for {key}")
                    return existing.result

            expires_at = now + timedelta(seconds=ttl_seconds) if ttl_seconds > 0 else None
            entry = CacheEntry(result=result, expires_at=expires_at)
            # Backend TTL is housekeeping only; expires_at is authoritative.
            backend_ttl = math.ceil(ttl_seconds) + 1 if ttl_seconds > 0 else 0
            if not self._backend.set(key, entry.to_record(), backend_ttl):
                logger.warning(f"Cache backend rejected entry {key}")
            return result

    def stats(self) -> dict:
        return {"hits": self.hits, "misses": self.misses}


def create_cache_backend(backend: str = "memory", cache_dir: str = "cache/results", max_size: int = 1000) -> CacheBackend:
    """Build the configured backend. Called once at process start."""
    if backend == "file":
        return FileCache(cache_dir)
    if backend == "memory":
        return InMemoryCache(max_size=max_size)
    raise ValueError(f"Unknown cache backend: {backend}")
