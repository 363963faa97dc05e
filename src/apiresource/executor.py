"""One logical request: attempts, backoff and cancellation.

:class:`RequestExecutor` wraps an :class:`httpx.AsyncClient`.  For a
:class:`PreparedRequest` and a
:class:`~apiresource.cancellation.CancellationToken` it performs up to
``policy.max_attempts`` network attempts and reports exactly one of three
outcomes:

- **success** -- a 2xx response arrived while the token was live;
- **failed** -- every permitted attempt failed with a transient error, or
  the request could not be sent at all (unserialisable body, bad URL);
- **aborted** -- the token fired before, during, or between attempts.

Aborts never count as failures and are never retried.  The executor does
not touch controller state; :mod:`apiresource.controller` decides what an
outcome means for the caller.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from apiresource.cancellation import CancellationToken, OperationCancelled
from apiresource.exceptions import (
    HTTPStatusError_,
    InvalidUsageError,
    RequestFailedError,
    ResourceError,
    TransportError_,
)
from apiresource.models import HTTPMethod
from apiresource.output import get_output
from apiresource.retry import RetryPolicy

CACHE_HINT_HEADERS = {"Cache-Control": "max-age=300", "Pragma": "cache"}


@dataclass(frozen=True)
class PreparedRequest:
    """The fully resolved request sent on every attempt."""

    method: HTTPMethod
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None


def build_request(
    method: HTTPMethod,
    url: str,
    body: Any = None,
    headers: Optional[dict[str, str]] = None,
    suppress_cache_request_headers: bool = False,
) -> PreparedRequest:
    """Resolve outgoing headers and body.

    ``Content-Type: application/json`` is always declared; caller headers
    override it.  GET requests carry ``Cache-Control``/``Pragma`` hints
    unless *suppress_cache_request_headers* is set, and never carry a body.
    """
    merged: dict[str, str] = {"Content-Type": "application/json"}
    merged.update(headers or {})
    if method is HTTPMethod.GET:
        if not suppress_cache_request_headers:
            merged.update(CACHE_HINT_HEADERS)
        body = None
    return PreparedRequest(method=method, url=url, headers=merged, body=body)


def extract_payload(response: httpx.Response) -> Any:
    """Decode a response body: JSON if possible, raw text otherwise, ``None`` if empty."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class OutcomeKind(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass
class ExecutionOutcome:
    """Result of :meth:`RequestExecutor.run`.

    Attributes:
        kind: Which of the three disjoint outcomes occurred.
        attempts: Network attempts started.
        response: The successful response (``SUCCESS`` only).
        payload: Decoded body of ``response`` (``SUCCESS`` only).
        error: Terminal error (``FAILED`` only).
        status_code: Status of the last response received, if any.
    """

    kind: OutcomeKind
    attempts: int
    response: Optional[httpx.Response] = None
    payload: Any = None
    error: Optional[RequestFailedError] = None
    status_code: Optional[int] = None


class RequestExecutor:
    """Issues a request with bounded retry and cooperative cancellation.

    Args:
        client: Open client used for every attempt.  Its timeout bounds
            each individual attempt.
        policy: Retry policy; defaults to 3 retries with 1 s linear backoff.

    Example::

        executor = RequestExecutor(client, RetryPolicy(retry_count=1))
        outcome = await executor.run(build_request(HTTPMethod.GET, "/api/posts"), token)
    """

    def __init__(self, client: httpx.AsyncClient, policy: Optional[RetryPolicy] = None) -> None:
        self._client = client
        self._policy = policy or RetryPolicy()

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def run(self, request: PreparedRequest, token: CancellationToken) -> ExecutionOutcome:
        """Perform *request* until success, exhaustion, or cancellation."""
        output = get_output()
        attempt = 0
        status_code: Optional[int] = None

        while True:
            if token.cancelled:
                return self._aborted(request, attempt, status_code)

            attempt += 1
            try:
                response = await token.race(self._send(request))
            except OperationCancelled:
                return self._aborted(request, attempt, status_code)
            except (TypeError, ValueError, httpx.InvalidURL) as exc:
                # Unserialisable body or malformed URL; no attempt can succeed.
                error: ResourceError = InvalidUsageError(
                    f"Cannot send {request.method.value} {request.url}: {exc}"
                )
            except httpx.HTTPError as exc:
                error = TransportError_(
                    f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
                )
            else:
                status_code = response.status_code
                if token.cancelled:
                    return self._aborted(request, attempt, status_code)
                if response.is_success:
                    return ExecutionOutcome(
                        kind=OutcomeKind.SUCCESS,
                        attempts=attempt,
                        response=response,
                        payload=extract_payload(response),
                        status_code=status_code,
                    )
                error = HTTPStatusError_(response.status_code)

            if not self._policy.should_retry(attempt, error):
                return ExecutionOutcome(
                    kind=OutcomeKind.FAILED,
                    attempts=attempt,
                    error=RequestFailedError(error, attempts=attempt, status_code=status_code),
                    status_code=status_code,
                )

            delay = self._policy.delay_seconds(attempt)
            output.debug(
                f"{error}, retrying {request.method.value} {request.url} in {delay:g}s "
                f"(attempt {attempt}/{self._policy.max_attempts})"
            )
            if await token.sleep(delay):
                return self._aborted(request, attempt, status_code)

    async def _send(self, request: PreparedRequest) -> httpx.Response:
        kwargs: dict[str, Any] = {
            "method": request.method.value,
            "url": request.url,
            "headers": request.headers,
        }
        if request.body is not None:
            kwargs["content"] = json.dumps(request.body)
        return await self._client.request(**kwargs)

    @staticmethod
    def _aborted(
        request: PreparedRequest, attempts: int, status_code: Optional[int]
    ) -> ExecutionOutcome:
        get_output().debug(
            f"Aborted {request.method.value} {request.url} after {attempts} attempt(s)"
        )
        return ExecutionOutcome(
            kind=OutcomeKind.ABORTED, attempts=attempts, status_code=status_code
        )
