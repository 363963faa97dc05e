"""The resource controller: cache, state machine and request lifecycle.

:class:`ResourceController` is what callers hold.  It binds one endpoint
and one :class:`~apiresource.models.RequestConfig`, owns a
:class:`~apiresource.cache.CacheStore`, and exposes
:meth:`~ResourceController.execute`, :meth:`~ResourceController.abort`,
:meth:`~ResourceController.clear_cache` and
:meth:`~ResourceController.refetch`.

State machine (``status``)::

    idle/success/error/aborted --execute, cache miss--> loading
    idle/success/error/aborted --execute, cache hit---> success
    loading --executor success--> success
    loading --retries exhausted--> error
    loading --token signalled---> aborted

Every ``execute`` mints a :class:`~apiresource.cancellation.CancellationToken`
with the next generation number.  A call may write
:attr:`~ResourceController.state`, run handlers, or clear ``loading`` only
while its token is the current one, so a superseded call can never
overwrite the result of a newer one.

Example::

    async with ResourceController(
        "https://blog.example.com/api/posts",
        RequestConfig(cache_enabled=True),
    ) as posts:
        await posts.initial_task
        print(posts.state.payload)
        result = await posts.refetch()   # served from cache
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Iterable, Optional

import httpx

from apiresource.cache import CacheStore, build_cache_key
from apiresource.cancellation import CancellationToken
from apiresource.classifier import classify_headers
from apiresource.exceptions import ResourceError
from apiresource.executor import OutcomeKind, RequestExecutor, build_request
from apiresource.handlers import HandlerRunner, ResultHandler
from apiresource.models import (
    ClientSettings,
    ControllerStatus,
    ExecuteResult,
    RequestConfig,
    RequestState,
)
from apiresource.output import get_output
from apiresource.retry import RetryPolicy

_UNSET: Any = object()


class ResourceController:
    """Cached, retrying, cancellable accessor for one remote resource.

    Args:
        endpoint: URL of the resource.  Relative URLs are resolved against
            the client's ``base_url``.
        config: Request settings for the controller's lifetime.
        client: Client to send requests with.  When omitted, the controller
            creates one on first use and closes it in :meth:`aclose`.
        handlers: Result-handling ports, run in order.
        cache_store: Store to read and write.  Defaults to a private store
            with ``config.cache_time_ms``; pass a shared store explicitly to
            let several controllers reuse entries.
        policy: Retry policy.  Defaults to linear backoff built from
            ``config.retry_count`` and ``config.retry_delay_ms``.
        timeout: Per-attempt timeout (seconds) of an owned client.
        clock: Monotonic clock for the private cache store.

    ``config.run_immediately`` only takes effect when the controller is
    entered with ``async with``; a controller that is merely constructed
    fetches nothing until :meth:`execute` is called.
    """

    def __init__(
        self,
        endpoint: str,
        config: Optional[RequestConfig] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        handlers: Iterable[ResultHandler] = (),
        cache_store: Optional[CacheStore] = None,
        policy: Optional[RetryPolicy] = None,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._endpoint = endpoint
        self._config = config or RequestConfig()
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._handlers = HandlerRunner(handlers)
        self._cache = cache_store if cache_store is not None else CacheStore(
            self._config.cache_time_ms, clock=clock
        )
        self._executor: Optional[RequestExecutor] = None
        self._policy = policy or RetryPolicy.from_config(self._config)

        self._state = RequestState()
        self._status = ControllerStatus.IDLE
        self._generation = 0
        self._token: Optional[CancellationToken] = None
        self._inflight: set[CancellationToken] = set()
        self._closed = False
        self.initial_task: Optional[asyncio.Task[None]] = None

    @classmethod
    def from_settings(
        cls,
        endpoint: str,
        settings: ClientSettings,
        *,
        config: Optional[RequestConfig] = None,
        **kwargs: Any,
    ) -> ResourceController:
        """Build a controller from resolved :class:`~apiresource.models.ClientSettings`.

        A relative *endpoint* is joined to ``settings.base_url``;
        ``settings.defaults`` is used unless *config* is given.
        """
        url = endpoint
        if settings.base_url and not endpoint.startswith(("http://", "https://")):
            url = settings.base_url.rstrip("/") + "/" + endpoint.lstrip("/")
        kwargs.setdefault("timeout", settings.timeout)
        return cls(url, config or settings.defaults, **kwargs)

    # ------------------------------------------------------------------ #
    # Observable state
    # ------------------------------------------------------------------ #

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def config(self) -> RequestConfig:
        return self._config

    @property
    def state(self) -> RequestState:
        """Snapshot of the current :class:`~apiresource.models.RequestState`."""
        return self._state.model_copy()

    @property
    def status(self) -> ControllerStatus:
        return self._status

    @property
    def generation(self) -> int:
        """Number of ``execute`` calls started so far."""
        return self._generation

    @property
    def cache(self) -> CacheStore:
        return self._cache

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> ResourceController:
        if self._config.run_immediately and self.initial_task is None:
            self.initial_task = asyncio.create_task(self._run_initial())
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Tear the controller down.

        Signals every in-flight token before anything else, so no call
        started by this controller can store a result or run handlers
        afterwards.  Then waits for the initial call and closes an owned
        client.  Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True
        for token in list(self._inflight):
            token.cancel()
        if self.initial_task is not None:
            await self.initial_task
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _run_initial(self) -> None:
        if self._closed:
            return
        try:
            await self.execute()
        except ResourceError as exc:
            get_output().debug(f"Initial fetch of {self._endpoint} failed: {exc}")

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #

    async def execute(
        self,
        body: Any = _UNSET,
        headers: Optional[dict[str, str]] = None,
    ) -> ExecuteResult:
        """Fetch the resource, from cache when possible.

        Args:
            body: Body for this call only.  Defaults to ``config.body``.
            headers: Headers for this call only.  Default to ``config.headers``.

        Returns:
            The :class:`~apiresource.models.ExecuteResult`.  Aborted calls
            return ``aborted=True`` instead of raising.

        Raises:
            RequestFailedError: When the retry budget is exhausted.  State
                and error handlers are updated first.
            ResourceError: When the controller is already closed.
        """
        if self._closed:
            raise ResourceError(f"ResourceController for {self._endpoint} is closed")

        call_body = self._config.body if body is _UNSET else body
        call_headers = dict(self._config.headers if headers is None else headers)
        method = self._config.method
        output = get_output()
        if self._generation == 0 and self._config.run_immediately and self.initial_task is None:
            output.debug(
                f"run_immediately is set but {self._endpoint} was not entered with "
                "'async with'; no initial fetch was scheduled"
            )

        key = build_cache_key(method.value, self._endpoint, call_body, call_headers)
        token = self._supersede()
        if self._config.cache_enabled:
            entry = self._cache.get(key)
            if entry is not None:
                age = self._cache.age_ms(entry)
                output.debug(f"Cache hit: {method.value} {self._endpoint} (age {age} ms)")
                self._inflight.discard(token)
                self._state = RequestState(payload=entry.payload, status_code=200)
                self._status = ControllerStatus.SUCCESS
                return ExecuteResult(
                    payload=entry.payload,
                    status_code=200,
                    from_cache=True,
                    classification=entry.classification,
                    cache_age_ms=age,
                )

        self._state = self._state.model_copy(update={"loading": True, "error": None})
        self._status = ControllerStatus.LOADING

        request = build_request(
            method,
            self._endpoint,
            call_body,
            call_headers,
            suppress_cache_request_headers=self._config.suppress_cache_request_headers,
        )
        try:
            outcome = await self._get_executor().run(request, token)
        except asyncio.CancelledError:
            if self._is_current(token):
                self._state = self._state.model_copy(update={"loading": False})
                self._status = ControllerStatus.ABORTED
            raise
        except Exception as exc:
            if self._is_current(token):
                self._state = self._state.model_copy(
                    update={"loading": False, "error": str(exc) or type(exc).__name__}
                )
                self._status = ControllerStatus.ERROR
            raise
        finally:
            self._inflight.discard(token)

        current = self._is_current(token)

        if outcome.kind is OutcomeKind.ABORTED:
            if current:
                self._state = self._state.model_copy(update={"loading": False})
                self._status = ControllerStatus.ABORTED
            return ExecuteResult(aborted=True, attempts=outcome.attempts)

        if outcome.kind is OutcomeKind.FAILED:
            assert outcome.error is not None
            if current:
                self._state = self._state.model_copy(
                    update={
                        "loading": False,
                        "error": outcome.error.message,
                        "status_code": outcome.status_code,
                    }
                )
                self._status = ControllerStatus.ERROR
                self._handlers.run_error(outcome.error, outcome.attempts)
            else:
                output.debug(f"Discarding failure of superseded call to {self._endpoint}")
            raise outcome.error

        assert outcome.response is not None
        classification, cache_headers = classify_headers(outcome.response.headers)
        # Storage ignores the classification, no-store included.
        if self._config.cache_enabled:
            self._cache.set(key, outcome.payload, classification)

        if current:
            self._state = RequestState(
                payload=outcome.payload,
                loading=False,
                error=None,
                status_code=outcome.status_code,
            )
            self._status = ControllerStatus.SUCCESS
            self._handlers.run_success(outcome.payload, outcome.response)
        else:
            output.debug(f"Discarding result of superseded call to {self._endpoint}")

        return ExecuteResult(
            payload=outcome.payload,
            status_code=outcome.status_code,
            from_cache=False,
            classification=classification,
            attempts=outcome.attempts,
            cache_headers=cache_headers,
        )

    async def refetch(self) -> ExecuteResult:
        """Execute again with the configured body and headers."""
        return await self.execute()

    def abort(self) -> None:
        """Signal the current call.  A no-op unless the controller is loading."""
        if self._status is ControllerStatus.LOADING and self._token is not None:
            self._token.cancel()

    def clear_cache(self) -> None:
        """Drop every cache entry.  Leaves :attr:`state` untouched."""
        self._cache.clear()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _supersede(self) -> CancellationToken:
        """Mint the token for a new call; earlier calls lose the right to write state."""
        self._generation += 1
        if self._token is not None and not self._token.cancelled and self._token in self._inflight:
            get_output().debug(
                f"Call {self._token.generation} to {self._endpoint} superseded by call {self._generation}"
            )
        token = CancellationToken(self._generation)
        self._token = token
        self._inflight.add(token)
        return token

    def _is_current(self, token: CancellationToken) -> bool:
        return token is self._token

    def _get_executor(self) -> RequestExecutor:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        if self._executor is None:
            self._executor = RequestExecutor(self._client, self._policy)
        return self._executor
