"""Deterministic cache keys for resource requests.

Keys are SHA-256 hashes of ``METHOD|ENDPOINT|body|headers`` where body and
headers are serialised with sorted mapping keys, so equivalent values
always resolve to the same entry regardless of insertion order.  Header
*names* are compared verbatim: ``Accept`` and ``accept`` produce different
keys.  Non-string mapping keys are folded in via ``str()``, so ``{1: "a"}``
and ``{"1": "a"}`` share a key, exactly as their JSON bodies would.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping, Optional


def _normalise(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): _normalise(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalise(item) for item in value]
    return value


def _canonical(value: Any) -> str:
    # Mixed key types cannot be sorted, so keys become strings first.
    return json.dumps(
        _normalise(value), sort_keys=True, separators=(",", ":"), default=str
    )


def build_cache_key(
    method: str,
    endpoint: str,
    body: Any = None,
    headers: Optional[Mapping[str, str]] = None,
) -> str:
    """Return the cache key identifying a request.

    ``None`` headers and empty headers are equivalent.  Values that are
    not JSON-serialisable are folded in via ``str()``.

    Args:
        method: HTTP method; casing is ignored.
        endpoint: Request URL or path, used verbatim.
        body: Request body (any JSON-like value).
        headers: Per-request headers.

    Returns:
        A 64-character hex digest.
    """
    parts = [
        method.upper(),
        endpoint,
        _canonical(body),
        _canonical(dict(headers or {})),
    ]
    raw = "|".join(parts)
    return hashlib.sha256(raw.encode()).hexdigest()
