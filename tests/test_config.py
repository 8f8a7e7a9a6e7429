"""Tests for restexec.config -- XDG paths, atomic writes, precedence."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from restexec.config import (
    _atomic_write,
    get_config_dir,
    load_global_config,
    load_project_config,
    resolve_config,
    save_global_config,
)
from restexec.exceptions import ConfigError
from restexec.models import ExecutorConfig


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_json(path: Path, data: Any) -> None:
    """Write a dict as JSON to *path*, creating parent dirs."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


# ---------------------------------------------------------------------------
# XDG path resolution
# ---------------------------------------------------------------------------


class TestConfigDir:
    def test_xdg_config_home(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("restexec.config._is_xdg_platform", lambda: True)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
        path = get_config_dir()
        assert path == tmp_path / "xdg" / "restexec"
        assert path.is_dir()

    def test_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("restexec.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setattr(Path, "home", lambda: tmp_path)
        assert get_config_dir() == tmp_path / ".config" / "restexec"

    def test_non_xdg_platform(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("restexec.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", lambda: tmp_path)
        assert get_config_dir() == tmp_path / ".restexec"


# ---------------------------------------------------------------------------
# Atomic writes
# ---------------------------------------------------------------------------


class TestAtomicWrite:
    def test_writes_and_leaves_no_temp_files(self, tmp_path: Path) -> None:
        target = tmp_path / "sub" / "config.json"
        _atomic_write(target, '{"a": 1}')
        assert target.read_text() == '{"a": 1}'
        assert [p.name for p in target.parent.iterdir()] == ["config.json"]

    def test_replaces_existing(self, tmp_path: Path) -> None:
        target = tmp_path / "config.json"
        target.write_text("old")
        _atomic_write(target, "new")
        assert target.read_text() == "new"


# ---------------------------------------------------------------------------
# Global and project config
# ---------------------------------------------------------------------------


class TestGlobalConfig:
    def test_missing_file_gives_defaults(self, isolated_config: Path) -> None:
        assert load_global_config() == ExecutorConfig()

    def test_round_trip(self, isolated_config: Path) -> None:
        config = ExecutorConfig(timeout_ms=2500, verify_ssl=False, proxy="http://p:3128")
        save_global_config(config)
        assert load_global_config() == config

    def test_invalid_json(self, isolated_config: Path) -> None:
        (get_config_dir() / "config.json").write_text("{broken")
        with pytest.raises(ConfigError):
            load_global_config()

    def test_invalid_value(self, isolated_config: Path) -> None:
        _write_json(get_config_dir() / "config.json", {"timeout_ms": -5})
        with pytest.raises(ConfigError):
            load_global_config()


class TestProjectConfig:
    def test_missing(self, isolated_config: Path) -> None:
        assert load_project_config() is None

    def test_loaded_from_cwd(self, isolated_config: Path) -> None:
        _write_json(isolated_config / "restexec.json", {"timeout_ms": 100})
        assert load_project_config() == {"timeout_ms": 100}

    def test_must_be_object(self, isolated_config: Path) -> None:
        _write_json(isolated_config / "restexec.json", [1, 2])
        with pytest.raises(ConfigError):
            load_project_config()


# ---------------------------------------------------------------------------
# Precedence
# ---------------------------------------------------------------------------


class TestResolveConfig:
    def test_defaults(self, isolated_config: Path) -> None:
        assert resolve_config() == ExecutorConfig()

    def test_project_overrides_global(self, isolated_config: Path) -> None:
        save_global_config(ExecutorConfig(timeout_ms=1000, user_agent="global/1"))
        _write_json(isolated_config / "restexec.json", {"timeout_ms": 2000})

        config = resolve_config()

        assert config.timeout_ms == 2000
        assert config.user_agent == "global/1"

    def test_env_overrides_project(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _write_json(isolated_config / "restexec.json", {"timeout_ms": 2000})
        monkeypatch.setenv("RESTEXEC_TIMEOUT", "3000")
        monkeypatch.setenv("RESTEXEC_VERIFY_SSL", "no")
        monkeypatch.setenv("RESTEXEC_MAX_REDIRECTS", "4")
        monkeypatch.setenv("RESTEXEC_PROXY", "http://env:8080")
        monkeypatch.setenv("RESTEXEC_USER_AGENT", "env/1")

        config = resolve_config()

        assert config.timeout_ms == 3000
        assert config.verify_ssl is False
        assert config.max_redirects == 4
        assert config.proxy == "http://env:8080"
        assert config.user_agent == "env/1"

    def test_cli_overrides_env_and_ignores_none(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("RESTEXEC_TIMEOUT", "3000")
        monkeypatch.setenv("RESTEXEC_PROXY", "http://env:8080")

        config = resolve_config({"timeout_ms": 10, "proxy": None})

        assert config.timeout_ms == 10
        assert config.proxy == "http://env:8080"

    @pytest.mark.parametrize(
        "var, value",
        [("RESTEXEC_TIMEOUT", "soon"), ("RESTEXEC_VERIFY_SSL", "maybe")],
    )
    def test_bad_env_values(
        self, var: str, value: str, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv(var, value)
        with pytest.raises(ConfigError):
            resolve_config()

    def test_invalid_cli_value(self, isolated_config: Path) -> None:
        with pytest.raises(ConfigError):
            resolve_config({"max_redirects": -1})
