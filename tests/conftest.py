"""Shared test fixtures for apiresource.

Provides output isolation, a controllable clock for cache expiry, a
recording endpoint built on :class:`httpx.MockTransport`, and environment
isolation for configuration tests.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from apiresource.output import OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Output isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _quiet_output_between_tests():
    """Install a quiet, colourless OutputManager and reset it afterwards."""
    set_output(OutputManager(no_color=True, quiet=True))
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Remote endpoint
# ---------------------------------------------------------------------------


class RecordingEndpoint:
    """Stand-in for the blog API.

    Responds from a queue of scripted replies (the last reply repeats) and
    records every request it receives.  A reply is an :class:`httpx.Response`
    or an exception instance to raise.  ``delay`` (seconds) simulates
    network latency before replying.
    """

    def __init__(self, *replies: Any, delay: float = 0.0) -> None:
        self.replies = list(replies) or [httpx.Response(200, json={"ok": True})]
        self.delay = delay
        self.requests: list[httpx.Request] = []
        self.call_times: list[float] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.call_times.append(time.monotonic())
        index = min(len(self.requests), len(self.replies)) - 1
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self.replies[index]
        if isinstance(reply, BaseException):
            raise reply
        # A fresh copy per request; httpx binds a response to one request.
        return httpx.Response(reply.status_code, headers=reply.headers, content=reply.content)

    def client(self, base_url: str = "https://blog.example.com") -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=base_url, transport=httpx.MockTransport(self))


@pytest.fixture
def endpoint_factory() -> Callable[..., RecordingEndpoint]:
    return RecordingEndpoint


# ---------------------------------------------------------------------------
# Config isolation
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point XDG_CONFIG_HOME at tmp_path, clear APIRESOURCE_* vars, chdir to tmp_path."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setattr("apiresource.config._is_xdg_platform", lambda: True)
    from apiresource.config import ENV_VARS

    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path
