"""apiresource -- cached, retrying, cancellable access to remote resources.

The client-side accessor used by the blog frontend to talk to its REST API.
A :class:`~apiresource.controller.ResourceController` wraps one endpoint and
layers on:

* an in-memory, time-bounded cache keyed by request identity,
* advisory classification of the server's cache headers,
* bounded retry of transient failures with linear backoff,
* per-call cancellation tokens, so aborted or superseded calls never
  overwrite newer state.

Typical use::

    from apiresource import RequestConfig, ResourceController

    async with ResourceController(
        "https://blog.example.com/api/posts",
        RequestConfig(cache_enabled=True, run_immediately=False),
    ) as posts:
        result = await posts.execute()

Modules:
    controller: The state machine callers hold.
    executor: Attempts, backoff and cancellation for one logical call.
    cache: Cache keys and the in-memory store.
    classifier: Cache-Control / ETag / Last-Modified classification.
    retry: Retry policy and backoff strategies.
    cancellation: Per-call cancellation tokens.
    handlers: Typed success/error result handlers.
    models: Pydantic models shared across the package.
    config: XDG-aware settings resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stdout/stderr diagnostics with Rich support.
    cli: The ``apiresource`` command line.
"""

__version__ = "0.1.0"

from apiresource.cache import CacheEntry, CacheStore, build_cache_key  # noqa: E402
from apiresource.cancellation import CancellationToken  # noqa: E402
from apiresource.classifier import classify, classify_headers  # noqa: E402
from apiresource.controller import ResourceController  # noqa: E402
from apiresource.exceptions import RequestFailedError, ResourceError  # noqa: E402
from apiresource.executor import RequestExecutor  # noqa: E402
from apiresource.handlers import ResultHandler  # noqa: E402
from apiresource.models import (  # noqa: E402
    CacheClassification,
    ControllerStatus,
    ExecuteResult,
    HTTPMethod,
    RequestConfig,
    RequestState,
)
from apiresource.retry import ExponentialBackoff, LinearBackoff, RetryPolicy  # noqa: E402

__all__ = [
    "CacheClassification",
    "CacheEntry",
    "CacheStore",
    "CancellationToken",
    "ControllerStatus",
    "ExecuteResult",
    "ExponentialBackoff",
    "HTTPMethod",
    "LinearBackoff",
    "RequestConfig",
    "RequestExecutor",
    "RequestFailedError",
    "RequestState",
    "ResourceController",
    "ResourceError",
    "ResultHandler",
    "RetryPolicy",
    "build_cache_key",
    "classify",
    "classify_headers",
]
