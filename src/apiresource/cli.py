"""Typer application and console entry point for apiresource.

``apiresource fetch`` drives one :class:`~apiresource.controller.ResourceController`
from the shell, which is handy for poking at the blog API and for watching
cache hits and retries happen::

    $ apiresource fetch /posts --cache --repeat 2 --verbose
    HTTP 200 (fresh, 1 attempt)
    [debug] Cache hit: GET https://blog.example.com/api/posts (age 0 ms)
    HTTP 200 (cached, fresh, age 0 ms)

Payloads go to stdout; status lines and diagnostics to stderr.  Failures
exit with the ``exit_code`` of the raised
:class:`~apiresource.exceptions.ResourceError`.
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any, List, Optional

import typer

from apiresource import __version__
from apiresource.config import resolve_settings
from apiresource.controller import ResourceController
from apiresource.exceptions import InvalidUsageError, ResourceError
from apiresource.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INTERRUPTED
from apiresource.models import ClientSettings, ExecuteResult, HTTPMethod, RequestConfig
from apiresource.output import OutputFormat, OutputManager, get_output, set_output

app = typer.Typer(
    name="apiresource",
    help="Fetch blog API resources with caching, retry and cancellation.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"apiresource {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Fetch blog API resources with caching, retry and cancellation."""


def _parse_headers(values: List[str]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for raw in values:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            raise InvalidUsageError(f"Invalid header '{raw}', expected 'Name: value'")
        headers[name.strip()] = value.strip()
    return headers


def _parse_body(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidUsageError(f"--body is not valid JSON: {exc}") from exc


async def _run_fetch(
    endpoint: str,
    settings: ClientSettings,
    config: RequestConfig,
    repeat: int,
) -> list[ExecuteResult]:
    output = get_output()
    results: list[ExecuteResult] = []
    async with ResourceController.from_settings(endpoint, settings, config=config) as controller:
        for _ in range(repeat):
            result = await controller.execute()
            results.append(result)
            output.show_result(result)
    return results


@app.command()
def fetch(
    endpoint: str = typer.Argument(..., help="Absolute URL, or a path relative to the configured base URL."),
    method: HTTPMethod = typer.Option(HTTPMethod.GET, "--method", "-X", case_sensitive=False, help="HTTP method."),
    body: Optional[str] = typer.Option(None, "--body", "-d", help="JSON request body (ignored for GET)."),
    header: Optional[List[str]] = typer.Option(None, "--header", "-H", help="Extra header 'Name: value' (repeatable)."),
    cache: Optional[bool] = typer.Option(None, "--cache/--no-cache", help="Serve repeated calls from the in-memory cache."),
    cache_time_ms: Optional[int] = typer.Option(None, "--cache-time-ms", min=0, help="Cache TTL in milliseconds."),
    retries: Optional[int] = typer.Option(None, "--retries", min=0, help="Retries after the first attempt."),
    retry_delay_ms: Optional[int] = typer.Option(None, "--retry-delay-ms", min=0, help="Linear backoff unit in milliseconds."),
    no_cache_headers: bool = typer.Option(False, "--no-cache-headers", help="Do not send Cache-Control/Pragma hints."),
    repeat: int = typer.Option(1, "--repeat", min=1, help="Issue the call this many times."),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colour output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress status lines."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show cache, retry and abort diagnostics."),
) -> None:
    """Fetch ENDPOINT and print its payload."""
    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    output = get_output()

    try:
        settings = resolve_settings(
            {
                "defaults": {
                    "cache_enabled": cache,
                    "cache_time_ms": cache_time_ms,
                    "retry_count": retries,
                    "retry_delay_ms": retry_delay_ms,
                    "suppress_cache_request_headers": True if no_cache_headers else None,
                }
            }
        )
        defaults = settings.defaults
        config = defaults.model_copy(
            update={
                "method": method,
                "body": _parse_body(body),
                "headers": {**defaults.headers, **_parse_headers(header or [])},
                "run_immediately": False,
            }
        )
        asyncio.run(_run_fetch(endpoint, settings, config, repeat))
    except ResourceError as exc:
        output.error(str(exc))
        raise typer.Exit(exc.exit_code)


def main() -> None:
    """Console-script entry point."""
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as exc:
        get_output().error(f"Unexpected error: {type(exc).__name__}: {exc}")
        sys.exit(EXIT_GENERIC_FAILURE)
