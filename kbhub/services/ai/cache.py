"""In-memory response cache with lazy TTL expiry."""

import asyncio
import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Any, Optional

from kbhub.infra.metrics import ai_cache_events_total
from kbhub.models.ai import (
    DEFAULT_CANDIDATE_COUNT,
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    GenerateRequest,
    GenerateResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 300.0
CACHE_KEY_PREFIX = "ai"


def build_cache_key(request: GenerateRequest) -> str:
    """
    Derive the cache key from every field that shapes the output.

    requester_id is not part of the key. The tenant id stays readable so a
    tenant's entries can be invalidated together.
    """
    temperature = request.temperature if request.temperature is not None else DEFAULT_TEMPERATURE
    max_tokens = request.max_tokens if request.max_tokens is not None else DEFAULT_MAX_TOKENS
    candidate_count = request.candidate_count if request.candidate_count is not None else DEFAULT_CANDIDATE_COUNT

    identity = json.dumps(
        [request.text, request.style_prompt or "", float(temperature), int(max_tokens), int(candidate_count)],
        ensure_ascii=False,
        separators=(",", ":"),
    )
    digest = hashlib.sha256(identity.encode("utf-8")).hexdigest()
    return f"{CACHE_KEY_PREFIX}:{request.tenant_id}:{digest}"


@dataclass(frozen=True)
class CacheEntry:
    response: GenerateResponse
    inserted_at: float
    expires_at: float


class ResponseCache:
    """
    Keyed store of generation responses.

    Entries expire at ``inserted_at + ttl``. Expired entries are removed when
    read, on every write, and by the optional periodic sweep. All access goes
    through one lock so reads and writes of a key never interleave.
    """

    def __init__(
        self,
        default_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if default_ttl_seconds <= 0:
            raise ValueError("default_ttl_seconds must be positive")
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._sweep_task: Optional[asyncio.Task] = None

    def get(self, key: str) -> Optional[GenerateResponse]:
        """Return the cached response, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                ai_cache_events_total.labels(event="miss").inc()
                return None

            if self._clock() >= entry.expires_at:
                del self._entries[key]
                self._misses += 1
                ai_cache_events_total.labels(event="expired").inc()
                return None

            self._hits += 1
            ai_cache_events_total.labels(event="hit").inc()
            return entry.response

    def set(self, key: str, value: GenerateResponse, ttl_seconds: Optional[float] = None) -> None:
        """Store a response, replacing any entry under the same key."""
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            raise ValueError("ttl_seconds must be positive")

        with self._lock:
            now = self._clock()
            self._entries[key] = CacheEntry(response=value, inserted_at=now, expires_at=now + ttl)
            self._evict_expired_locked(now)
        ai_cache_events_total.labels(event="store").inc()

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_tenant(self, tenant_id: str) -> int:
        """Remove every entry of a tenant."""
        prefix = f"{CACHE_KEY_PREFIX}:{tenant_id}:"
        with self._lock:
            keys = [key for key in self._entries if key.startswith(prefix)]
            for key in keys:
                del self._entries[key]
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def sweep(self) -> int:
        """Remove all expired entries now."""
        with self._lock:
            return self._evict_expired_locked(self._clock())

    def _evict_expired_locked(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / lookups if lookups else 0.0,
                "ttl_seconds": self.default_ttl_seconds,
            }

    def start_periodic_sweep(self, interval_seconds: float) -> asyncio.Task:
        """Start a background task that reclaims expired entries."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop(interval_seconds))
        return self._sweep_task

    async def stop_periodic_sweep(self) -> None:
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _sweep_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            removed = self.sweep()
            if removed:
                logger.debug(f"Cache sweep removed {removed} expired entries", extra={"removed": removed})
