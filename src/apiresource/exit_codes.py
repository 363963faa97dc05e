"""Numeric process exit codes for the ``apiresource`` command line.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~apiresource.exceptions.ResourceError` subclass.
Shell wrappers can inspect the exit code to determine the failure class
without parsing stderr.

Example::

    $ apiresource fetch https://blog.example.com/api/posts/missing
    $ echo $?
    4   # EXIT_NOT_FOUND -- the endpoint answered 404
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_AUTH_FAILURE = 3
"""The endpoint rejected the request with HTTP 401 or 403."""

EXIT_NOT_FOUND = 4
"""The requested resource was not found (HTTP 404)."""

EXIT_HTTP_ERROR = 5
"""The endpoint answered with any other non-2xx status."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_INTERRUPTED = 130
"""The command was interrupted with Ctrl-C."""
