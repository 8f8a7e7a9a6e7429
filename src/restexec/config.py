"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles the persistent defaults for the executor:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.restexec/`` on macOS and Windows. See :func:`get_config_dir`.
* **Global config** -- a single :class:`~restexec.models.ExecutorConfig`
  JSON file holding default timeout, redirect policy, TLS verification,
  proxy, user agent, and transport capabilities.
* **Project config** -- an optional ``./restexec.json`` with the same keys.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config, and global config into the
  effective :class:`~restexec.models.ExecutorConfig`.

All file writes use a temp-file-then-rename strategy (:func:`_atomic_write`).
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from restexec.exceptions import ConfigError
from restexec.models import ExecutorConfig

_APP_NAME = "restexec"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "restexec.json"

ENV_TIMEOUT = "RESTEXEC_TIMEOUT"
ENV_USER_AGENT = "RESTEXEC_USER_AGENT"
ENV_VERIFY_SSL = "RESTEXEC_VERIFY_SSL"
ENV_MAX_REDIRECTS = "RESTEXEC_MAX_REDIRECTS"
ENV_PROXY = "RESTEXEC_PROXY"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/restexec/`` (default ``~/.config/restexec/``).
    On macOS/Windows: ``~/.restexec/``.
    """
    if _is_xdg_platform():
        env_value = os.environ.get("XDG_CONFIG_HOME", "")
        base = Path(env_value) if env_value else Path.home() / ".config"
        path = base / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file lives next to *path* so that ``os.replace`` is an
    atomic rename on POSIX. On any failure the temp file is removed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def _read_json(path: Path, label: str) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid {label} at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid {label} at {path}: expected a JSON object")
    return data


def load_global_config() -> ExecutorConfig:
    """Load the user-wide configuration.

    Returns:
        The deserialised :class:`~restexec.models.ExecutorConfig`, or a
        default instance when the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return ExecutorConfig()
    data = _read_json(path, "global config")
    try:
        return ExecutorConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: ExecutorConfig) -> None:
    """Persist the user-wide configuration atomically."""
    data = config.model_dump(mode="json")
    _atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local overrides from ``./restexec.json``.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    return _read_json(path, "project config")


# --- Environment ---


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"Environment variable {name} must be a boolean, got '{raw}'")


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"Environment variable {name} must be an integer, got '{raw}'") from exc


def _env_overrides() -> dict[str, Any]:
    """Collect ``RESTEXEC_*`` environment overrides as config keys."""
    overrides: dict[str, Any] = {}
    timeout = os.environ.get(ENV_TIMEOUT)
    if timeout:
        overrides["timeout_ms"] = _parse_int(ENV_TIMEOUT, timeout)
    max_redirects = os.environ.get(ENV_MAX_REDIRECTS)
    if max_redirects:
        overrides["max_redirects"] = _parse_int(ENV_MAX_REDIRECTS, max_redirects)
    verify_ssl = os.environ.get(ENV_VERIFY_SSL)
    if verify_ssl:
        overrides["verify_ssl"] = _parse_bool(ENV_VERIFY_SSL, verify_ssl)
    user_agent = os.environ.get(ENV_USER_AGENT)
    if user_agent:
        overrides["user_agent"] = user_agent
    proxy = os.environ.get(ENV_PROXY)
    if proxy:
        overrides["proxy"] = proxy
    return overrides


# --- Precedence resolution ---


def resolve_config(cli_overrides: Optional[dict[str, Any]] = None) -> ExecutorConfig:
    """Resolve the effective executor configuration.

    Precedence (high to low):
        1. CLI flags (``cli_overrides``; ``None`` values are ignored)
        2. Environment variables (``RESTEXEC_TIMEOUT``, ``RESTEXEC_USER_AGENT``,
           ``RESTEXEC_VERIFY_SSL``, ``RESTEXEC_MAX_REDIRECTS``, ``RESTEXEC_PROXY``)
        3. Project config (``./restexec.json``)
        4. User config (``~/.config/restexec/config.json``)
        5. Defaults

    Raises:
        ConfigError: If any layer holds an invalid value.
    """
    merged = load_global_config().model_dump()

    project = load_project_config()
    if project is not None:
        merged.update(project)

    merged.update(_env_overrides())

    if cli_overrides:
        merged.update({k: v for k, v in cli_overrides.items() if v is not None})

    try:
        return ExecutorConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
