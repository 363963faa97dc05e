"""Canonical Pydantic models shared across apiresource modules.

**Configuration models**:
    :class:`RequestConfig` (per-controller request settings) and
    :class:`ClientSettings` (what :mod:`apiresource.config` loads from disk
    and the environment).

**Runtime models**:
    :class:`RequestState` (the observable state of a controller),
    :class:`CacheHeaders` and :class:`ExecuteResult` (what ``execute``
    returns), plus the :class:`HTTPMethod`, :class:`CacheClassification`
    and :class:`ControllerStatus` enumerations.
"""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class HTTPMethod(str, enum.Enum):
    """HTTP methods a resource controller may issue."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"


class CacheClassification(str, enum.Enum):
    """Advisory label describing how the server wants a response cached.

    Derived by :func:`~apiresource.classifier.classify`.  The label is
    surfaced to callers (e.g. for staleness badges) but never decides
    whether a response is stored.
    """

    FRESH = "fresh"
    NO_CACHE = "no-cache"
    NO_STORE = "no-store"
    VALIDATED = "validated"


class ControllerStatus(str, enum.Enum):
    """States of the :class:`~apiresource.controller.ResourceController` state machine."""

    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"
    ABORTED = "aborted"


# --- Configuration ---


class RequestConfig(BaseModel):
    """Request settings fixed for the lifetime of one controller.

    ``body`` and ``headers`` are defaults; ``execute`` may override them for
    a single call.

    Example::

        RequestConfig(method="GET", cache_enabled=True, cache_time_ms=300_000)
    """

    model_config = ConfigDict(frozen=True)

    method: HTTPMethod = HTTPMethod.GET
    body: Any = None
    headers: dict[str, str] = Field(default_factory=dict)
    cache_enabled: bool = Field(default=False, description="Read and write the cache store")
    cache_time_ms: int = Field(default=5 * 60 * 1000, ge=0, description="Cache entry TTL")
    retry_count: int = Field(default=3, ge=0, description="Attempts after the first")
    retry_delay_ms: int = Field(default=1000, ge=0, description="Linear backoff unit")
    run_immediately: bool = Field(
        default=True, description="Execute once when the controller is entered"
    )
    suppress_cache_request_headers: bool = Field(
        default=False,
        description="Omit Cache-Control/Pragma hints from outgoing GET requests",
    )


class ClientSettings(BaseModel):
    """Settings resolved by :func:`~apiresource.config.resolve_settings`.

    Persisted as JSON in ``apiresource.json`` (project) or
    ``~/.config/apiresource/config.json`` (user).
    """

    base_url: Optional[str] = Field(
        default=None, description="Prefix for relative endpoints"
    )
    timeout: float = Field(default=30.0, gt=0, description="Per-attempt timeout in seconds")
    defaults: RequestConfig = Field(default_factory=RequestConfig)


# --- Runtime state and results ---


class RequestState(BaseModel):
    """Externally observable state of a controller.

    Mutated only by :class:`~apiresource.controller.ResourceController`.
    """

    payload: Any = None
    loading: bool = False
    error: Optional[str] = None
    status_code: Optional[int] = None


class CacheHeaders(BaseModel):
    """Cache-related headers read from a network response."""

    cache_control: Optional[str] = None
    etag: Optional[str] = None
    last_modified: Optional[str] = None


class ExecuteResult(BaseModel):
    """Outcome of one ``execute`` call.

    Exactly one of three shapes:

    * network success -- ``from_cache=False``, ``cache_headers`` set;
    * cache hit -- ``from_cache=True``, ``cache_age_ms`` set, ``attempts=0``;
    * aborted -- ``aborted=True``, ``payload`` and ``status_code`` are ``None``.
    """

    payload: Any = None
    status_code: Optional[int] = None
    from_cache: bool = False
    classification: Optional[CacheClassification] = None
    aborted: bool = False
    attempts: int = 0
    cache_age_ms: Optional[int] = None
    cache_headers: Optional[CacheHeaders] = None
