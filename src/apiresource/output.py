"""Payload rendering and diagnostics for apiresource.

Fetched payloads go to stdout so ``apiresource fetch`` can be piped into
``jq``; status lines, cache hits, retries, aborts and errors go to stderr.
Colour is dropped when ``NO_COLOR`` is set, when ``TERM=dumb``, or on
request.

Library code (:mod:`apiresource.executor`, :mod:`apiresource.controller`,
:mod:`apiresource.handlers`) never prints.  It reports through
:func:`get_output`, and an embedding application picks the verbosity once
with :func:`set_output`.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console

from apiresource.models import ExecuteResult


class OutputFormat(str, Enum):
    """How payloads are rendered.

    ``AUTO`` becomes ``RICH`` on an interactive, colour-capable terminal and
    ``JSON`` everywhere else.
    """

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


# Diagnostic level -> (plain prefix, rich prefix)
_PREFIXES = {
    "info": ("", ""),
    "warning": ("Warning: ", "[yellow]Warning:[/yellow] "),
    "error": ("Error: ", "[bold red]Error:[/bold red] "),
    "debug": ("[debug] ", "[dim]\\[debug][/dim] "),
}


class OutputManager:
    """Routes payloads to stdout and diagnostics to stderr.

    Args:
        format: Payload format.
        no_color: Disable colour and Rich markup.
        quiet: Hide ``info`` lines (status lines).  Warnings and errors
            are always shown.
        verbose: Show ``debug`` lines (cache hits, retries, aborts).
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose
        if format == OutputFormat.AUTO:
            format = OutputFormat.RICH if _is_tty() and not self._no_color else OutputFormat.JSON
        self._format = format
        self._stdout = Console(file=sys.stdout, no_color=self._no_color)
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    # ------------------------------------------------------------------ #
    # stdout
    # ------------------------------------------------------------------ #

    def format_response(self, data: Any) -> None:
        """Render a decoded payload.  ``None`` (an empty body) prints nothing."""
        if data is None:
            return
        if isinstance(data, str):
            self._out(data)
        elif self._format == OutputFormat.PLAIN:
            for line in _plain_lines(data):
                self._out(line)
        elif self._format == OutputFormat.RICH:
            self._stdout.print_json(data=data, default=str)
        else:
            self._out(json.dumps(data, indent=2, ensure_ascii=False, default=str))

    def show_result(self, result: ExecuteResult) -> None:
        """Status line on stderr, then the payload on stdout."""
        if result.aborted:
            self.warning("Request aborted")
            return
        self.info(status_line(result))
        self.format_response(result.payload)

    # ------------------------------------------------------------------ #
    # stderr
    # ------------------------------------------------------------------ #

    def info(self, message: str) -> None:
        if not self._quiet:
            self._diagnostic("info", message)

    def warning(self, message: str) -> None:
        self._diagnostic("warning", message)

    def error(self, message: str) -> None:
        self._diagnostic("error", message)

    def debug(self, message: str) -> None:
        if self._verbose:
            self._diagnostic("debug", message)

    def _diagnostic(self, level: str, message: str) -> None:
        plain, rich = _PREFIXES[level]
        if self._no_color:
            print(f"{plain}{message}", file=sys.stderr, flush=True)
        else:
            self._stderr.print(f"{rich}{message}", highlight=False)

    def _out(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)


def status_line(result: ExecuteResult) -> str:
    """One-line summary of a non-aborted result, e.g. ``HTTP 200 (fresh, 1 attempt)``."""
    label = result.classification.value if result.classification else "unknown"
    if result.from_cache:
        return f"HTTP {result.status_code} (cached, {label}, age {result.cache_age_ms} ms)"
    plural = "" if result.attempts == 1 else "s"
    return f"HTTP {result.status_code} ({label}, {result.attempts} attempt{plural})"


def _plain_lines(data: Any) -> list[str]:
    # dict -> "key<TAB>value" rows; list -> one row per item, dict items tab-joined.
    if isinstance(data, dict):
        return [f"{key}\t{value}" for key, value in data.items()]
    if isinstance(data, list):
        return [
            "\t".join(str(v) for v in item.values()) if isinstance(item, dict) else str(item)
            for item in data
        ]
    return [str(data)]


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """True when ``NO_COLOR`` is set (to anything) or ``TERM=dumb``."""
    return os.environ.get("NO_COLOR") is not None or os.environ.get("TERM") == "dumb"


_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the process-wide :class:`OutputManager`, creating a default one lazily."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Forget the process-wide manager; the next :func:`get_output` builds a fresh one."""
    global _output
    _output = None
