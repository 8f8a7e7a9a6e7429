"""Shared test fixtures for restexec.

Provides isolated config environments, output state management, mock
transports, and a CLI runner.  These fixtures are automatically discovered
by pytest and available to all test modules without explicit imports.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from restexec.models import RequestPhase, RequestSpec
from restexec.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_CONFIG_HOME at a subdirectory of tmp_path, clears every
    RESTEXEC_* environment variable and changes the working directory to
    tmp_path so no project config leaks in.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("restexec.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    for var in [
        "RESTEXEC_TIMEOUT",
        "RESTEXEC_USER_AGENT",
        "RESTEXEC_VERIFY_SSL",
        "RESTEXEC_MAX_REDIRECTS",
        "RESTEXEC_PROXY",
        "NO_COLOR",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True, no_color=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Transport fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_factory() -> Callable[[Any], Callable[[Any], httpx.MockTransport]]:
    """Turn a request handler into a transport factory for :class:`Http`.

    Example::

        http = Http(transport_factory=mock_factory(handler))
    """

    def _make(handler: Callable[..., Any]) -> Callable[[Any], httpx.MockTransport]:
        return lambda transport_request: httpx.MockTransport(handler)

    return _make


@pytest.fixture
def phases() -> list[RequestPhase]:
    """A list that a :func:`record_phases` observer appends to."""
    return []


@pytest.fixture
def record_phases(phases: list[RequestPhase]) -> Callable[[RequestPhase, RequestSpec], None]:
    """Transition observer collecting every phase into the ``phases`` fixture."""

    def _observer(phase: RequestPhase, spec: RequestSpec) -> None:
        phases.append(phase)

    return _observer


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
