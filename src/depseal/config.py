"""depseal configuration.

Loads config from:
  1. Defaults
  2. User config (CLI --config or ~/.depseal/config.json)
  3. Environment variables

``DEPSEAL_HOME`` relocates the ``~/.depseal`` directory (keys and config).
"""
from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from depseal.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "backend": "attested",
    "engine_key": None,
    "trusted_keys": [],
    "commit_workers": 1,
    "max_member_bytes": 256 * 1024 * 1024,
    "log_level": "WARNING",
}

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Settings:
    backend: str = "attested"
    engine_key: Optional[Path] = None
    trusted_keys: List[Path] = field(default_factory=list)
    commit_workers: int = 1
    max_member_bytes: int = 256 * 1024 * 1024
    log_level: str = "WARNING"
    home: Path = field(default_factory=lambda: depseal_home())

    @property
    def default_engine_key(self) -> Path:
        return self.home / "keys" / "engine_key.pem"


def depseal_home() -> Path:
    env = os.environ.get("DEPSEAL_HOME")
    return Path(env) if env else Path.home() / ".depseal"


def load_config(config_path: Optional[Path] = None) -> Settings:
    """Load settings.

    ``config_path`` (CLI --config) replaces the default user config file; it
    must exist when given explicitly.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    # tests must not depend on a real ~/.depseal/config.json
    is_pytest = bool(os.environ.get("PYTEST_CURRENT_TEST")) and not os.environ.get("DEPSEAL_HOME")

    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(f"config file not found: {config_path}")
        config = _merge(config, _read_json(config_path))
        logger.debug("config loaded from %s", config_path)
    elif not is_pytest:
        user_path = depseal_home() / "config.json"
        if user_path.exists():
            config = _merge(config, _read_json(user_path))
            logger.debug("config loaded from %s", user_path)

    _apply_env_overrides(config)
    return _to_settings(config)


def _read_json(path: Path) -> Dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as exc:
        raise ConfigurationError(f"could not read config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"config {path} must be a JSON object")
    unknown = set(data) - set(DEFAULT_CONFIG)
    if unknown:
        raise ConfigurationError(f"unknown config keys in {path}: {', '.join(sorted(unknown))}")
    return data


def _merge(base: dict, override: dict) -> dict:
    """Deep merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


def _apply_env_overrides(config: dict) -> None:
    backend = os.environ.get("DEPSEAL_BACKEND")
    if backend:
        config["backend"] = backend

    engine_key = os.environ.get("DEPSEAL_ENGINE_KEY")
    if engine_key:
        config["engine_key"] = engine_key

    trusted = os.environ.get("DEPSEAL_TRUSTED_KEYS")
    if trusted:
        config["trusted_keys"] = [p for p in trusted.split(os.pathsep) if p]

    workers = os.environ.get("DEPSEAL_COMMIT_WORKERS")
    if workers:
        config["commit_workers"] = _to_int("DEPSEAL_COMMIT_WORKERS", workers)

    max_bytes = os.environ.get("DEPSEAL_MAX_MEMBER_BYTES")
    if max_bytes:
        config["max_member_bytes"] = _to_int("DEPSEAL_MAX_MEMBER_BYTES", max_bytes)

    level = os.environ.get("DEPSEAL_LOG_LEVEL")
    if level:
        config["log_level"] = level


def _to_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"invalid {name}={value!r}: expected an integer") from None


def _to_settings(config: dict) -> Settings:
    backend = config["backend"]
    if not isinstance(backend, str) or not backend:
        raise ConfigurationError(f"invalid backend {backend!r}")

    workers = config["commit_workers"]
    if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
        raise ConfigurationError(f"commit_workers must be a positive integer, got {workers!r}")

    max_bytes = config["max_member_bytes"]
    if isinstance(max_bytes, bool) or not isinstance(max_bytes, int) or max_bytes < 1:
        raise ConfigurationError(f"max_member_bytes must be a positive integer, got {max_bytes!r}")

    level = str(config["log_level"]).upper()
    if level not in _LOG_LEVELS:
        raise ConfigurationError(f"invalid log_level {config['log_level']!r}")

    trusted = config["trusted_keys"]
    if isinstance(trusted, str) or not isinstance(trusted, list):
        raise ConfigurationError("trusted_keys must be a list of paths")

    engine_key = config["engine_key"]
    return Settings(
        backend=backend.lower(),
        engine_key=Path(engine_key).expanduser() if engine_key else None,
        trusted_keys=[Path(p).expanduser() for p in trusted],
        commit_workers=workers,
        max_member_bytes=max_bytes,
        log_level=level,
        home=depseal_home(),
    )


__all__ = ["DEFAULT_CONFIG", "Settings", "depseal_home", "load_config"]
