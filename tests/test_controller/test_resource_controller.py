"""Tests for ResourceController: caching, state machine and lifecycle."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

import httpx
import pytest

from apiresource.cache import CacheStore
from apiresource.controller import ResourceController
from apiresource.exceptions import RequestFailedError, ResourceError
from apiresource.executor import RequestExecutor
from apiresource.handlers import ResultHandler
from apiresource.models import (
    CacheClassification,
    ClientSettings,
    ControllerStatus,
    HTTPMethod,
    RequestConfig,
)
from apiresource.output import OutputManager, set_output


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _json_response(data: Any, status_code: int = 200, headers: dict | None = None) -> httpx.Response:
    return httpx.Response(status_code=status_code, headers=headers or {}, json=data)


def _config(**overrides: Any) -> RequestConfig:
    values: dict[str, Any] = {"run_immediately": False, "retry_delay_ms": 1}
    values.update(overrides)
    return RequestConfig(**values)


class RecordingHandler(ResultHandler):
    def __init__(self) -> None:
        self.successes: list[tuple[Any, int]] = []
        self.errors: list[tuple[str, int]] = []

    def on_success(self, payload: Any, response: httpx.Response) -> None:
        self.successes.append((payload, response.status_code))

    def on_error(self, error: RequestFailedError, attempts: int) -> None:
        self.errors.append((error.message, attempts))


class ExplodingHandler(ResultHandler):
    def on_success(self, payload: Any, response: httpx.Response) -> None:
        raise RuntimeError("handler bug")


POSTS = [{"id": 1, "title": "Hello"}, {"id": 2, "title": "World"}]


# ---------------------------------------------------------------------------
# Network success and state
# ---------------------------------------------------------------------------


class TestExecute:
    async def test_success_updates_state(self, endpoint_factory) -> None:
        endpoint = endpoint_factory(
            _json_response(POSTS, headers={"Cache-Control": "max-age=60", "ETag": "v1"})
        )
        async with endpoint.client() as client:
            controller = ResourceController("/api/posts", _config(), client=client)
            assert controller.status is ControllerStatus.IDLE
            result = await controller.execute()

        assert result.payload == POSTS
        assert result.status_code == 200
        assert result.from_cache is False
        assert result.aborted is False
        assert result.attempts == 1
        assert result.classification is CacheClassification.VALIDATED
        assert result.cache_headers.etag == "v1"
        assert result.cache_headers.cache_control == "max-age=60"

        state = controller.state
        assert state.payload == POSTS
        assert state.loading is False
        assert state.error is None
        assert state.status_code == 200
        assert controller.status is ControllerStatus.SUCCESS
        assert controller.generation == 1

    async def test_loading_while_in_flight(self, endpoint_factory) -> None:
        endpoint = endpoint_factory(delay=0.05)
        async with endpoint.client() as client:
            controller = ResourceController("/api/posts", _config(), client=client)
            task = asyncio.create_task(controller.execute())
            await asyncio.sleep(0.01)
            assert controller.state.loading is True
            assert controller.status is ControllerStatus.LOADING
            await task
        assert controller.state.loading is False

    async def test_per_call_body_and_headers(self, endpoint_factory) -> None:
        endpoint = endpoint_factory(_json_response({"id": 3}, status_code=201))
        config = _config(method=HTTPMethod.POST, body={"title": "default"}, headers={"X-A": "1"})
        async with endpoint.client() as client:
            controller = ResourceController("/api/posts", config, client=client)
            await controller.execute()
            await controller.execute(body={"title": "override"}, headers={"X-B": "2"})

        first, second = endpoint.requests
        assert first.content == b'{"title": "default"}'
        assert first.headers["x-a"] == "1"
        assert second.content == b'{"title": "override"}'
        assert second.headers["x-b"] == "2"
        assert "x-a" not in second.headers

    async def test_state_snapshot_is_a_copy(self, endpoint_factory) -> None:
        endpoint = endpoint_factory()
        async with endpoint.client() as client:
            controller = ResourceController("/api/posts", _config(), client=client)
            await controller.execute()
        snapshot = controller.state
        snapshot.loading = True
        assert controller.state.loading is False


# ---------------------------------------------------------------------------
# Cache behaviour
# ---------------------------------------------------------------------------


class TestCaching:
    async def test_cache_hit_makes_no_network_call(self, endpoint_factory, clock) -> None:
        endpoint = endpoint_factory(_json_response(POSTS))
        async with endpoint.client() as client:
            controller = ResourceController(
                "/api/posts", _config(cache_enabled=True), client=client, clock=clock
            )
            await controller.execute()
            clock.advance_ms(1200)
            result = await controller.execute()

        assert endpoint.calls == 1
        assert result.from_cache is True
        assert result.payload == POSTS
        assert result.status_code == 200
        assert result.attempts == 0
        assert result.cache_age_ms == 1200
        assert result.classification is CacheClassification.FRESH
        assert controller.state.payload == POSTS
        assert controller.status is ControllerStatus.SUCCESS

    async def test_cache_disabled_always_fetches(self, endpoint_factory) -> None:
        endpoint = endpoint_factory()
        async with endpoint.client() as client:
            controller = ResourceController("/api/posts", _config(), client=client)
            await controller.execute()
            await controller.execute()
        assert endpoint.calls == 2
        assert len(controller.cache) == 0

    async def test_entry_expires_after_ttl(self, endpoint_factory, clock) -> None:
        endpoint = endpoint_factory(_json_response({"v": 1}), _json_response({"v": 2}))
        config = _config(cache_enabled=True, cache_time_ms=300_000)
        async with endpoint.client() as client:
            controller = ResourceController("/api/posts", config, client=client, clock=clock)
            await controller.execute()
            clock.advance_ms(299_999)
            assert (await controller.execute()).from_cache is True
            clock.advance_ms(1)
            result = await controller.execute()

        assert endpoint.calls == 2
        assert result.from_cache is False
        assert result.payload == {"v": 2}

    async def test_no_store_response_is_still_cached(self, endpoint_factory) -> None:
        endpoint = endpoint_factory(_json_response(POSTS, headers={"Cache-Control": "no-store"}))
        async with endpoint.client() as client:
            controller = ResourceController(
                "/api/posts", _config(cache_enabled=True), client=client
            )
            first = await controller.execute()
            second = await controller.execute()

        assert first.classification is CacheClassification.NO_STORE
        assert second.from_cache is True
        assert second.classification is CacheClassification.NO_STORE
        assert endpoint.calls == 1

    async def test_distinct_bodies_use_distinct_entries(self, endpoint_factory) -> None:
        endpoint = endpoint_factory()
        config = _config(method=HTTPMethod.POST, cache_enabled=True)
        async with endpoint.client() as client:
            controller = ResourceController("/api/search", config, client=client)
            await controller.execute(body={"q": "a"})
            await controller.execute(body={"q": "b"})
            await controller.execute(body={"q": "a"})
        assert endpoint.calls == 2

    async def test_failures_are_not_cached(self, endpoint_factory) -> None:
        endpoint = endpoint_factory(httpx.Response(500))
        async with endpoint.client() as client:
            controller = ResourceController(
                "/api/posts", _config(cache_enabled=True, retry_count=0), client=client
            )
            with pytest.raises(RequestFailedError):
                await controller.execute()
        assert len(controller.cache) == 0

    async def test_clear_cache_forces_network(self, endpoint_factory) -> None:
        endpoint = endpoint_factory(_json_response(POSTS))
        async with endpoint.client() as client:
            controller = ResourceController(
                "/api/posts", _config(cache_enabled=True), client=client
            )
            await controller.execute()
            controller.clear_cache()
            assert controller.state.payload == POSTS
            result = await controller.execute()
        assert endpoint.calls == 2
        assert result.from_cache is False

    async def test_refetch_uses_cache_when_enabled(self, endpoint_factory) -> None:
        endpoint = endpoint_factory()
        async with endpoint.client() as client:
            controller = ResourceController(
                "/api/posts", _config(cache_enabled=True), client=client
            )
            await controller.execute()
            result = await controller.refetch()
        assert result.from_cache is True
        assert endpoint.calls == 1

    async def test_cache_is_private_per_controller(self, endpoint_factory) -> None:
        endpoint = endpoint_factory()
        async with endpoint.client() as client:
            first = ResourceController("/api/posts", _config(cache_enabled=True), client=client)
            second = ResourceController("/api/posts", _config(cache_enabled=True), client=client)
            await first.execute()
            result = await second.execute()
        assert result.from_cache is False
        assert endpoint.calls == 2

    async def test_shared_store_is_reused(self, endpoint_factory) -> None:
        endpoint = endpoint_factory()
        store = CacheStore(ttl_ms=60_000)
        async with endpoint.client() as client:
            first = ResourceController(
                "/api/posts", _config(cache_enabled=True), client=client, cache_store=store
            )
            second = ResourceController(
                "/api/posts", _config(cache_enabled=True), client=client, cache_store=store
            )
            await first.execute()
            result = await second.execute()
        assert result.from_cache is True
        assert endpoint.calls == 1


# ---------------------------------------------------------------------------
# Failure
# ---------------------------------------------------------------------------


class TestFailure:
    async def test_exhausted_retries_set_error_state(self, endpoint_factory) -> None:
        endpoint = endpoint_factory(httpx.Response(500))
        handler = RecordingHandler()
        async with endpoint.client() as client:
            controller = ResourceController(
                "/api/posts", _config(retry_count=2), client=client, handlers=[handler]
            )
            with pytest.raises(RequestFailedError) as exc_info:
                await controller.execute()

        assert exc_info.value.message == "HTTP error! status: 500"
        assert exc_info.value.attempts == 3
        assert endpoint.calls == 3
        state = controller.state
        assert state.loading is False
        assert state.error == "HTTP error! status: 500"
        assert state.status_code == 500
        assert controller.status is ControllerStatus.ERROR
        assert handler.errors == [("HTTP error! status: 500", 3)]
        assert handler.successes == []

    async def test_success_after_error_clears_error(self, endpoint_factory) -> None:
        endpoint = endpoint_factory(httpx.Response(503), _json_response(POSTS))
        async with endpoint.client() as client:
            controller = ResourceController("/api/posts", _config(retry_count=0), client=client)
            with pytest.raises(RequestFailedError):
                await controller.execute()
            await controller.execute()
        assert controller.state.error is None
        assert controller.state.payload == POSTS
        assert controller.status is ControllerStatus.SUCCESS


# ---------------------------------------------------------------------------
# Abort and supersession
# ---------------------------------------------------------------------------


class TestAbort:
    async def test_abort_mid_flight(self, endpoint_factory) -> None:
        endpoint = endpoint_factory(delay=0.05)
        handler = RecordingHandler()
        async with endpoint.client() as client:
            controller = ResourceController(
                "/api/posts", _config(cache_enabled=True), client=client, handlers=[handler]
            )
            task = asyncio.create_task(controller.execute())
            await asyncio.sleep(0.005)
            controller.abort()
            result = await task

        assert result.aborted is True
        assert result.payload is None
        assert result.status_code is None
        state = controller.state
        assert state.loading is False
        assert state.payload is None
        assert state.error is None
        assert controller.status is ControllerStatus.ABORTED
        assert handler.successes == []
        assert handler.errors == []
        assert len(controller.cache) == 0

    async def test_abort_when_idle_is_noop(self, endpoint_factory) -> None:
        endpoint = endpoint_factory()
        async with endpoint.client() as client:
            controller = ResourceController("/api/posts", _config(), client=client)
            controller.abort()
            assert controller.status is ControllerStatus.IDLE
            await controller.execute()
            controller.abort()
        assert controller.status is ControllerStatus.SUCCESS

    async def test_newer_call_wins(self, endpoint_factory) -> None:
        endpoint = endpoint_factory(
            _json_response({"call": "first"}), _json_response({"call": "second"}), delay=0.05
        )
        handler = RecordingHandler()
        async with endpoint.client() as client:
            controller = ResourceController(
                "/api/posts", _config(), client=client, handlers=[handler]
            )
            first = asyncio.create_task(controller.execute())
            await asyncio.sleep(0.01)
            second = asyncio.create_task(controller.execute())

            first_result = await first
            assert controller.state.loading is True
            assert controller.state.payload is None

            second_result = await second

        assert first_result.payload == {"call": "first"}
        assert second_result.payload == {"call": "second"}
        assert controller.state.payload == {"call": "second"}
        assert controller.state.loading is False
        assert handler.successes == [({"call": "second"}, 200)]
        assert controller.generation == 2

    async def test_superseded_failure_does_not_touch_state(self, endpoint_factory) -> None:
        endpoint = endpoint_factory(httpx.Response(500), _json_response(POSTS), delay=0.05)
        handler = RecordingHandler()
        async with endpoint.client() as client:
            controller = ResourceController(
                "/api/posts", _config(retry_count=0), client=client, handlers=[handler]
            )
            first = asyncio.create_task(controller.execute())
            await asyncio.sleep(0.01)
            second = asyncio.create_task(controller.execute())
            with pytest.raises(RequestFailedError):
                await first
            assert controller.state.error is None
            await second

        assert handler.errors == []
        assert controller.status is ControllerStatus.SUCCESS


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


class TestHandlers:
    async def test_success_handler_receives_payload(self, endpoint_factory) -> None:
        endpoint = endpoint_factory(_json_response(POSTS))
        handler = RecordingHandler()
        async with endpoint.client() as client:
            controller = ResourceController(
                "/api/posts", _config(cache_enabled=True), client=client, handlers=[handler]
            )
            await controller.execute()
            await controller.execute()
        # The cache hit does not run handlers.
        assert handler.successes == [(POSTS, 200)]

    async def test_failing_handler_does_not_break_others(self, endpoint_factory) -> None:
        endpoint = endpoint_factory(_json_response(POSTS))
        recorder = RecordingHandler()
        async with endpoint.client() as client:
            controller = ResourceController(
                "/api/posts",
                _config(),
                client=client,
                handlers=[ExplodingHandler(), recorder],
            )
            result = await controller.execute()
        assert result.payload == POSTS
        assert recorder.successes == [(POSTS, 200)]
        assert controller.status is ControllerStatus.SUCCESS


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    async def test_run_immediately_fetches_on_enter(self, endpoint_factory) -> None:
        endpoint = endpoint_factory(_json_response(POSTS))
        async with endpoint.client() as client:
            async with ResourceController(
                "/api/posts", RequestConfig(), client=client
            ) as controller:
                assert controller.initial_task is not None
                await controller.initial_task
                assert controller.state.payload == POSTS
        assert endpoint.calls == 1

    async def test_run_immediately_disabled(self, endpoint_factory) -> None:
        endpoint = endpoint_factory()
        async with endpoint.client() as client:
            async with ResourceController("/api/posts", _config(), client=client) as controller:
                assert controller.initial_task is None
        assert endpoint.calls == 0
        assert controller.status is ControllerStatus.IDLE

    async def test_initial_failure_is_not_raised(self, endpoint_factory) -> None:
        endpoint = endpoint_factory(httpx.Response(404))
        async with endpoint.client() as client:
            async with ResourceController(
                "/api/posts", _config(run_immediately=True, retry_count=0), client=client
            ) as controller:
                await controller.initial_task
        assert controller.status is ControllerStatus.ERROR
        assert controller.state.error == "HTTP error! status: 404"

    async def test_teardown_cancels_in_flight_call(self, endpoint_factory) -> None:
        endpoint = endpoint_factory(_json_response(POSTS), delay=0.05)
        handler = RecordingHandler()
        async with endpoint.client() as client:
            async with ResourceController(
                "/api/posts",
                _config(run_immediately=True, cache_enabled=True),
                client=client,
                handlers=[handler],
            ) as controller:
                await asyncio.sleep(0.005)
                assert controller.status is ControllerStatus.LOADING

        assert controller.state.payload is None
        assert controller.state.loading is False
        assert handler.successes == []
        assert len(controller.cache) == 0

    async def test_execute_after_close_raises(self, endpoint_factory) -> None:
        endpoint = endpoint_factory()
        async with endpoint.client() as client:
            controller = ResourceController("/api/posts", _config(), client=client)
            await controller.aclose()
            await controller.aclose()
            with pytest.raises(ResourceError, match="closed"):
                await controller.execute()
        assert endpoint.calls == 0

    async def test_injected_client_left_open(self, endpoint_factory) -> None:
        endpoint = endpoint_factory()
        async with endpoint.client() as client:
            async with ResourceController("/api/posts", _config(), client=client):
                pass
            assert not client.is_closed


class TestFromSettings:
    def test_relative_endpoint_joined_to_base_url(self) -> None:
        settings = ClientSettings(base_url="https://blog.example.com/", timeout=5)
        controller = ResourceController.from_settings("/api/posts", settings)
        assert controller.endpoint == "https://blog.example.com/api/posts"
        assert controller.config == settings.defaults

    def test_absolute_endpoint_kept(self) -> None:
        settings = ClientSettings(base_url="https://blog.example.com")
        controller = ResourceController.from_settings("https://other.example.com/x", settings)
        assert controller.endpoint == "https://other.example.com/x"

    def test_explicit_config_wins(self) -> None:
        settings = ClientSettings()
        config = RequestConfig(cache_enabled=True)
        controller = ResourceController.from_settings("/p", settings, config=config)
        assert controller.config.cache_enabled is True


# ---------------------------------------------------------------------------
# Requests that cannot be sent
# ---------------------------------------------------------------------------


class TestUnsendableRequests:
    async def test_mixed_key_body_is_sent_and_cached(self, endpoint_factory) -> None:
        endpoint = endpoint_factory()
        config = _config(method=HTTPMethod.POST, cache_enabled=True)
        async with endpoint.client() as client:
            controller = ResourceController("/api/posts", config, client=client)
            await controller.execute(body={1: "a", "b": 2})
            result = await controller.execute(body={1: "a", "b": 2})
        assert endpoint.calls == 1
        assert result.from_cache is True
        assert controller.status is ControllerStatus.SUCCESS

    async def test_unserialisable_body_lands_in_error_state(self, endpoint_factory) -> None:
        endpoint = endpoint_factory()
        handler = RecordingHandler()
        config = _config(method=HTTPMethod.POST)
        async with endpoint.client() as client:
            controller = ResourceController(
                "/api/posts", config, client=client, handlers=[handler]
            )
            with pytest.raises(RequestFailedError) as exc_info:
                await controller.execute(body={"when": datetime(2024, 1, 1)})

        assert exc_info.value.attempts == 1
        assert endpoint.calls == 0
        state = controller.state
        assert state.loading is False
        assert state.error is not None and "Cannot send POST" in state.error
        assert controller.status is ControllerStatus.ERROR
        assert len(handler.errors) == 1
        assert handler.errors[0][1] == 1

    async def test_unexpected_executor_error_clears_loading(
        self, endpoint_factory, monkeypatch
    ) -> None:
        async def _explode(self, request, token):
            raise RuntimeError("executor bug")

        monkeypatch.setattr(RequestExecutor, "run", _explode)
        endpoint = endpoint_factory()
        async with endpoint.client() as client:
            controller = ResourceController("/api/posts", _config(), client=client)
            with pytest.raises(RuntimeError, match="executor bug"):
                await controller.execute()
            controller.abort()

        assert controller.state.loading is False
        assert controller.state.error == "executor bug"
        assert controller.status is ControllerStatus.ERROR

    async def test_cancelled_task_clears_loading(self, endpoint_factory) -> None:
        endpoint = endpoint_factory(delay=0.05)
        async with endpoint.client() as client:
            controller = ResourceController("/api/posts", _config(), client=client)
            task = asyncio.create_task(controller.execute())
            await asyncio.sleep(0.005)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        assert controller.state.loading is False
        assert controller.status is ControllerStatus.ABORTED

    async def test_next_call_works_after_failure(self, endpoint_factory) -> None:
        endpoint = endpoint_factory(_json_response({"id": 9}, status_code=201))
        config = _config(method=HTTPMethod.POST)
        async with endpoint.client() as client:
            controller = ResourceController("/api/posts", config, client=client)
            with pytest.raises(RequestFailedError):
                await controller.execute(body={"when": datetime(2024, 1, 1)})
            result = await controller.execute(body={"when": "2024-01-01"})

        assert result.payload == {"id": 9}
        assert controller.state.error is None
        assert controller.status is ControllerStatus.SUCCESS


class TestRunImmediatelyOutsideContext:
    async def test_bare_controller_notes_missing_initial_fetch(
        self, endpoint_factory, capfd
    ) -> None:
        set_output(OutputManager(no_color=True, verbose=True))
        endpoint = endpoint_factory()
        async with endpoint.client() as client:
            controller = ResourceController(
                "/api/posts", RequestConfig(retry_delay_ms=1), client=client
            )
            assert endpoint.calls == 0
            await controller.execute()
        assert "run_immediately is set" in capfd.readouterr().err

    async def test_entered_controller_has_no_note(self, endpoint_factory, capfd) -> None:
        set_output(OutputManager(no_color=True, verbose=True))
        endpoint = endpoint_factory()
        async with endpoint.client() as client:
            async with ResourceController("/api/posts", RequestConfig(), client=client) as posts:
                await posts.initial_task
        assert "run_immediately is set" not in capfd.readouterr().err
