"""Exception hierarchy for restexec.

All exceptions inherit from :class:`RestexecError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`restexec.exit_codes`.

The execution pipeline never lets these escape to its caller: anything raised
while configuring a request or writing its body is converted into an
:class:`~restexec.models.HttpResponse` with ``ResponseStatus.ERROR`` and the
exception kept as ``error_exception``.  They surface as real exceptions only
in the configuration layer and the CLI.

Subclass hierarchy::

    RestexecError (exit 1)
    +-- InvalidUsageError    (exit 2)
    +-- ConfigError          (exit 1)
    +-- InvalidRequestError  (exit 6)
    +-- BodyWriteError       (exit 6)
"""

from restexec.exit_codes import (
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_TRANSPORT_ERROR,
)


class RestexecError(Exception):
    """Base exception for all restexec errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(RestexecError):
    """Raised for invalid CLI arguments (malformed ``-H`` or ``--file`` values)."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(RestexecError):
    """Raised for configuration problems (invalid JSON, bad environment values)."""

    exit_code = EXIT_GENERIC_FAILURE


class InvalidRequestError(RestexecError):
    """Raised when a request cannot be turned into a transport request.

    Covers malformed URLs, unusable credentials and client certificates
    that fail to load.  No network I/O has happened when this is raised.
    """

    exit_code = EXIT_TRANSPORT_ERROR


class BodyWriteError(RestexecError):
    """Raised when the bytes written to a request body differ from the declared length."""

    exit_code = EXIT_TRANSPORT_ERROR

    def __init__(self, message: str, expected: int = 0, written: int = 0):
        super().__init__(message)
        self.expected = expected
        self.written = written
