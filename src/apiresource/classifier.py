"""Classification of server cache signaling.

First match wins:

1. ``Cache-Control`` contains ``no-store``  -> ``no-store``
2. ``Cache-Control`` contains ``no-cache``  -> ``no-cache``
3. ``ETag`` or ``Last-Modified`` is present -> ``validated``
4. otherwise                                -> ``fresh``
"""

from __future__ import annotations

from typing import Mapping, Optional

from apiresource.models import CacheClassification, CacheHeaders


def classify(
    cache_control: Optional[str],
    etag: Optional[str],
    last_modified: Optional[str],
) -> CacheClassification:
    """Classify a response from its three cache-related header values."""
    directives = (cache_control or "").lower()
    if "no-store" in directives:
        return CacheClassification.NO_STORE
    if "no-cache" in directives:
        return CacheClassification.NO_CACHE
    if etag or last_modified:
        return CacheClassification.VALIDATED
    return CacheClassification.FRESH


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


def classify_headers(
    headers: Mapping[str, str],
) -> tuple[CacheClassification, CacheHeaders]:
    """Read the cache headers from *headers* and classify them.

    Works with :class:`httpx.Headers` and with plain dicts; name lookup is
    case-insensitive either way.
    """
    cache_headers = CacheHeaders(
        cache_control=_header(headers, "Cache-Control"),
        etag=_header(headers, "ETag"),
        last_modified=_header(headers, "Last-Modified"),
    )
    classification = classify(
        cache_headers.cache_control,
        cache_headers.etag,
        cache_headers.last_modified,
    )
    return classification, cache_headers
