"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific outcome of ``restexec send`` and is
referenced either by the corresponding
:class:`~restexec.exceptions.RestexecError` subclass or by the CLI's
mapping of :class:`~restexec.models.ResponseStatus` values.  Shell scripts
can inspect the exit code to tell a timeout from a refused connection
without parsing stderr.

Example::

    $ restexec send GET https://slow.example.com --timeout 100
    $ echo $?
    7   # EXIT_TIMED_OUT -- the local timer fired first
"""

EXIT_SUCCESS = 0
"""The request completed."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_HTTP_ERROR = 4
"""The server answered with a status code >= 400 and ``--fail`` was given."""

EXIT_TRANSPORT_ERROR = 6
"""A transport or protocol error occurred (DNS failure, connection refused, bad TLS)."""

EXIT_TIMED_OUT = 7
"""The local timeout fired before the response arrived."""

EXIT_ABORTED = 8
"""The request was cancelled before it resolved."""

EXIT_INTERRUPTED = 130
"""The process received SIGINT."""
