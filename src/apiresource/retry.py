"""Retry policy: how many attempts, which failures qualify, how long to wait.

The executor only asks the policy two questions after a failed attempt:
:meth:`RetryPolicy.should_retry` and :meth:`RetryPolicy.delay_seconds`.
Swapping :class:`LinearBackoff` for :class:`ExponentialBackoff` (or any
other :class:`BackoffStrategy`) therefore never touches the executor or the
controller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from apiresource.exceptions import HTTPStatusError_, ResourceError, TransportError_
from apiresource.models import RequestConfig


class BackoffStrategy(ABC):
    """Maps a 1-based attempt number to the wait before the next attempt."""

    @abstractmethod
    def delay_ms(self, attempt: int) -> int:
        """Milliseconds to wait after failed attempt number *attempt*."""
        ...


@dataclass(frozen=True)
class LinearBackoff(BackoffStrategy):
    """``unit_ms * attempt``: 1x, 2x, 3x, ..."""

    unit_ms: int = 1000

    def delay_ms(self, attempt: int) -> int:
        return self.unit_ms * attempt


@dataclass(frozen=True)
class ExponentialBackoff(BackoffStrategy):
    """``base_ms * 2 ** (attempt - 1)``: 1x, 2x, 4x, ..., capped at ``max_ms``."""

    base_ms: int = 1000
    max_ms: int = 60_000

    def delay_ms(self, attempt: int) -> int:
        return min(self.base_ms * 2 ** (attempt - 1), self.max_ms)


def is_transient(error: BaseException) -> bool:
    """Whether *error* is worth another attempt.

    Non-2xx answers and transport failures are transient.  Anything else
    (including cancellation, which never reaches here) is not.
    """
    return isinstance(error, (HTTPStatusError_, TransportError_))


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry of transient failures.

    Args:
        retry_count: Attempts allowed after the first one.
        backoff: Strategy producing the wait between attempts.
    """

    retry_count: int = 3
    backoff: BackoffStrategy = field(default_factory=LinearBackoff)

    @classmethod
    def from_config(cls, config: RequestConfig) -> RetryPolicy:
        """Linear policy from ``retry_count`` and ``retry_delay_ms``."""
        return cls(
            retry_count=config.retry_count,
            backoff=LinearBackoff(unit_ms=config.retry_delay_ms),
        )

    @property
    def max_attempts(self) -> int:
        return self.retry_count + 1

    def should_retry(self, attempt: int, error: ResourceError) -> bool:
        """Whether to try again after *attempt* (1-based) failed with *error*."""
        return attempt < self.max_attempts and is_transient(error)

    def delay_seconds(self, attempt: int) -> float:
        return self.backoff.delay_ms(attempt) / 1000
