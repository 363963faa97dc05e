"""In-memory, time-bounded store of response payloads.

Each :class:`~apiresource.controller.ResourceController` owns one
:class:`CacheStore` unless a shared store is injected explicitly.  Expiry
is lazy: an entry older than ``ttl_ms`` is evicted by the read that finds
it, never by a background sweep.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from apiresource.models import CacheClassification


@dataclass(frozen=True)
class CacheEntry:
    """One stored payload.

    Attributes:
        key: Key from :func:`~apiresource.cache.keys.build_cache_key`.
        payload: The response body as returned to callers.
        stored_at: Clock reading (seconds) at insertion time.
        classification: Advisory classification of the original response.
    """

    key: str
    payload: Any
    stored_at: float
    classification: CacheClassification


class CacheStore:
    """Mapping from cache key to :class:`CacheEntry` with a TTL.

    Args:
        ttl_ms: Entry lifetime in milliseconds.  An entry whose age is
            greater than or equal to the TTL is expired, so ``ttl_ms=0``
            never produces a hit.
        clock: Monotonic clock returning seconds.  Tests inject a fake.

    Example::

        store = CacheStore(ttl_ms=300_000)
        store.set(key, {"posts": []}, CacheClassification.FRESH)
        entry = store.get(key)
    """

    def __init__(
        self,
        ttl_ms: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_ms = ttl_ms
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @property
    def ttl_ms(self) -> int:
        return self._ttl_ms

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for *key*, evicting it if expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.age_ms(entry) >= self._ttl_ms:
            del self._entries[key]
            return None
        return entry

    def set(self, key: str, payload: Any, classification: CacheClassification) -> None:
        """Store *payload* under *key*, replacing any previous entry."""
        self._entries[key] = CacheEntry(
            key=key,
            payload=payload,
            stored_at=self._clock(),
            classification=classification,
        )

    def has(self, key: str) -> bool:
        """Whether a live entry exists for *key*.  Applies the same expiry as :meth:`get`."""
        return self.get(key) is not None

    def delete(self, key: str) -> None:
        """Remove the entry for *key*; missing keys are ignored."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Remove every entry."""
        self._entries.clear()

    def age_ms(self, entry: CacheEntry) -> int:
        """Milliseconds elapsed since *entry* was stored."""
        return round((self._clock() - entry.stored_at) * 1000)

    def stats(self) -> dict[str, Any]:
        """Return ``size`` (entries held, expired ones included until read) and ``ttl_ms``."""
        return {"size": len(self._entries), "ttl_ms": self._ttl_ms}

    def __len__(self) -> int:
        return len(self._entries)
