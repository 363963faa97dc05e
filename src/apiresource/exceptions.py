"""Exception hierarchy for apiresource.

All exceptions inherit from :class:`ResourceError`, which carries an
``exit_code`` attribute mapped to a constant from
:mod:`apiresource.exit_codes`.  The command line catches ``ResourceError``
and exits with the appropriate code.

Cancellation is deliberately absent from this hierarchy: an aborted call
resolves to an :class:`~apiresource.models.ExecuteResult` with
``aborted=True`` instead of raising.

Subclass hierarchy::

    ResourceError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- ConfigError         (exit 1)
    +-- HTTPStatusError_    (exit 3 / 4 / 5 depending on status)
    +-- TransportError_     (exit 6)
    +-- RequestFailedError  (exit code of its cause)
"""

from __future__ import annotations

from typing import Optional

from apiresource.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_HTTP_ERROR,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
)


class ResourceError(Exception):
    """Base exception for all apiresource errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code

    @property
    def message(self) -> str:
        """The error message as written to :class:`~apiresource.models.RequestState`."""
        return str(self)


class InvalidUsageError(ResourceError):
    """Raised for invalid arguments.

    A malformed ``--header`` on the command line, or a request that cannot
    be sent at all (a body ``json`` cannot serialise, a malformed URL).
    Never retried.
    """

    exit_code = EXIT_INVALID_USAGE


class ConfigError(ResourceError):
    """Raised for configuration problems (invalid JSON, invalid values, bad env vars)."""

    exit_code = EXIT_GENERIC_FAILURE


class HTTPStatusError_(ResourceError):
    """Raised for one attempt that answered with a non-2xx status.

    Named with a trailing underscore to avoid shadowing
    :class:`httpx.HTTPStatusError`.  This is a transient failure: the
    executor retries it while the retry budget lasts.
    """

    def __init__(self, status_code: int) -> None:
        if status_code in (401, 403):
            code = EXIT_AUTH_FAILURE
        elif status_code == 404:
            code = EXIT_NOT_FOUND
        else:
            code = EXIT_HTTP_ERROR
        super().__init__(f"HTTP error! status: {status_code}", exit_code=code)
        self.status_code = status_code


class TransportError_(ResourceError):
    """Raised for one attempt that failed below HTTP (timeout, DNS, refused connection).

    Named with a trailing underscore to avoid shadowing
    :class:`httpx.TransportError`.
    """

    exit_code = EXIT_CONNECTION_ERROR


class RequestFailedError(ResourceError):
    """Raised once the retry budget is exhausted.

    Carries the last attempt's error as ``cause`` and reuses its message, so
    callers see ``HTTP error! status: 500`` rather than a generic summary.

    Attributes:
        cause: The error of the final attempt.
        attempts: Number of network attempts made.
        status_code: Status of the final response, or ``None`` when the
            final attempt never got one.
    """

    def __init__(
        self,
        cause: ResourceError,
        attempts: int,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(str(cause), exit_code=cause.exit_code)
        self.cause = cause
        self.attempts = attempts
        self.status_code = status_code
