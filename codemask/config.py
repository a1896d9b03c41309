"""CodeMask settings.

Priority (high -> low):
  1. Environment variables (a .env file is loaded first via python-dotenv)
  2. config/config.yaml, if present
  3. Hardcoded defaults
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from codemask.errors import ConfigError

DEFAULT_CONFIG_PATH = "config/config.yaml"


@dataclass
class Settings:
    host: str = "0.0.0.0"
    port: int = 8080
    public_url: str = "http://localhost:5050"     # baked into generated snippets
    log_level: str = "INFO"
    log_file: str = "logs/codemask.log"


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def _parse_port(value: Any) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid port: {value!r}") from None
    if not 0 < port < 65536:
        raise ConfigError(f"Port out of range: {port}")
    return port


def load_settings(config_path: Optional[str] = None) -> Settings:
    load_dotenv()
    cfg = _load_yaml(Path(config_path or DEFAULT_CONFIG_PATH))
    server = cfg.get("server", {}) or {}
    log_cfg = cfg.get("logging", {}) or {}

    defaults = Settings()
    port = os.getenv("CODEMASK_PORT") or os.getenv("PORT") or server.get("port", defaults.port)
    return Settings(
        host=os.getenv("CODEMASK_HOST") or server.get("host", defaults.host),
        port=_parse_port(port),
        public_url=os.getenv("CODEMASK_PUBLIC_URL") or server.get("public_url", defaults.public_url),
        log_level=os.getenv("CODEMASK_LOG_LEVEL") or log_cfg.get("level", defaults.log_level),
        log_file=os.getenv("CODEMASK_LOG_FILE") or log_cfg.get("file", defaults.log_file),
    )
