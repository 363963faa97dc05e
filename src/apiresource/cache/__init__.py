"""In-memory response caching for apiresource.

:class:`CacheStore` holds payloads keyed by
:func:`build_cache_key` with a per-store TTL.  Stores are process-local and
owned by one :class:`~apiresource.controller.ResourceController` unless
shared explicitly.
"""

from apiresource.cache.keys import build_cache_key
from apiresource.cache.store import CacheEntry, CacheStore

__all__ = ["CacheEntry", "CacheStore", "build_cache_key"]
