"""Tests for config.py."""

from __future__ import annotations

from pathlib import Path

import pytest

from codemask.config import Settings, load_settings
from codemask.errors import ConfigError

_ENV_VARS = (
    "CODEMASK_HOST",
    "CODEMASK_PORT",
    "PORT",
    "CODEMASK_PUBLIC_URL",
    "CODEMASK_LOG_LEVEL",
    "CODEMASK_LOG_FILE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # away from the repo config/config.yaml
    monkeypatch.chdir(tmp_path)


def _write(tmp_path: Path, content: str) -> str:
    p = tmp_path / "config.yaml"
    p.write_text(content, encoding="utf-8")
    return str(p)


def test_defaults_when_no_file(tmp_path: Path) -> None:
    settings = load_settings(str(tmp_path / "missing.yaml"))
    assert settings == Settings()


def test_yaml_values(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        "server:\n  port: 9000\n  public_url: https://mask.example\nlogging:\n  level: DEBUG\n",
    )
    settings = load_settings(path)
    assert settings.port == 9000
    assert settings.public_url == "https://mask.example"
    assert settings.log_level == "DEBUG"
    assert settings.host == "0.0.0.0"


def test_env_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write(tmp_path, "server:\n  port: 9000\n")
    monkeypatch.setenv("PORT", "7000")
    monkeypatch.setenv("CODEMASK_PUBLIC_URL", "https://env.example")
    settings = load_settings(path)
    assert settings.port == 7000
    assert settings.public_url == "https://env.example"


def test_codemask_port_wins_over_port(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PORT", "7000")
    monkeypatch.setenv("CODEMASK_PORT", "7100")
    assert load_settings(str(tmp_path / "missing.yaml")).port == 7100


@pytest.mark.parametrize("port", ["abc", "0", "70000"])
def test_invalid_port(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, port: str) -> None:
    monkeypatch.setenv("CODEMASK_PORT", port)
    with pytest.raises(ConfigError):
        load_settings(str(tmp_path / "missing.yaml"))


def test_non_mapping_yaml_rejected(tmp_path: Path) -> None:
    path = _write(tmp_path, "- just\n- a list\n")
    with pytest.raises(ConfigError):
        load_settings(path)
