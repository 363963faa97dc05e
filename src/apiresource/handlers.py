"""Result-handling ports for resource controllers.

Callers that want to react to completed calls subclass
:class:`ResultHandler` and pass instances to
:class:`~apiresource.controller.ResourceController` at construction.  Both
hooks default to no-ops so a handler only overrides what it needs.

Handlers run only for the call that currently owns the controller's state:
never for aborted calls, never for superseded ones, never after the
controller is closed.

Example::

    class Toast(ResultHandler):
        def on_error(self, error, attempts):
            show_toast(f"{error.message} after {attempts} attempts")

    controller = ResourceController("/api/posts", handlers=[Toast()])
"""

from __future__ import annotations

from typing import Any, Iterable

import httpx

from apiresource.exceptions import RequestFailedError
from apiresource.output import get_output


class ResultHandler:
    """Base class for success/error handlers."""

    def on_success(self, payload: Any, response: httpx.Response) -> None:
        """Called after a network call succeeded and state was updated.

        Not called for cache hits.

        Args:
            payload: Decoded response body.
            response: The raw :class:`httpx.Response`.
        """

    def on_error(self, error: RequestFailedError, attempts: int) -> None:
        """Called once the retry budget is exhausted.

        Args:
            error: The terminal error (its ``cause`` is the last attempt's error).
            attempts: Number of network attempts made.
        """


class HandlerRunner:
    """Runs handlers in registration order.

    An exception raised by a handler is reported as a warning and does not
    stop the remaining handlers or change the outcome of the call.
    """

    def __init__(self, handlers: Iterable[ResultHandler] = ()) -> None:
        self._handlers = list(handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    def run_success(self, payload: Any, response: httpx.Response) -> None:
        for handler in self._handlers:
            try:
                handler.on_success(payload, response)
            except Exception as exc:
                get_output().warning(
                    f"{type(handler).__name__}.on_success raised {type(exc).__name__}: {exc}"
                )

    def run_error(self, error: RequestFailedError, attempts: int) -> None:
        for handler in self._handlers:
            try:
                handler.on_error(error, attempts)
            except Exception as exc:
                get_output().warning(
                    f"{type(handler).__name__}.on_error raised {type(exc).__name__}: {exc}"
                )
