"""Configuration: .env loading, environment lookups, and the YAML config file."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml

CONFIG_FILE_NAME = "gptxt.yaml"
CONFIG_TEMPLATE = 'key: ""\n# model: gpt-4o-mini\n# base_url: https://api.openai.com/v1\n# api_timeout: 90\n# exec_timeout: 30\n'

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_API_TIMEOUT = 90.0
DEFAULT_EXEC_TIMEOUT = 30.0

API_KEY_ENV = ["GPTXT_API_KEY", "OPENAI_API_KEY", "API_KEY"]
MODEL_ENV = ["GPTXT_MODEL", "OPENAI_MODEL", "MODEL"]
BASE_URL_ENV = ["OPENAI_BASE_URL", "BASE_URL", "OPENAI_API_BASE"]
API_TIMEOUT_ENV = ["GPTXT_API_TIMEOUT_SECONDS", "OPENAI_API_TIMEOUT_SECONDS", "OPENAI_API_TIMEOUT"]
EXEC_TIMEOUT_ENV = ["GPTXT_EXEC_TIMEOUT_SECONDS"]


class ConfigError(RuntimeError):
    """Config file is missing required values or cannot be parsed."""


def parse_env_text(text: str) -> dict[str, str]:
    """KEY=value pairs from .env text; ``export`` prefixes and surrounding quotes are allowed."""

    pairs = {}
    for line in text.splitlines():
        line = line.strip()
        if line.startswith("export "):
            line = line[len("export ") :]
        key, sep, value = line.partition("=")
        key, value = key.strip(), value.strip()
        if not sep or not key or key.startswith("#"):
            continue
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
            value = value[1:-1]
        pairs[key] = value
    return pairs


def load_env_file(path: str | None, override: bool = False) -> bool:
    """Export the pairs of a .env file into os.environ; existing values win unless ``override``."""

    if not path or not Path(path).is_file():
        return False

    pairs = parse_env_text(Path(path).read_text(encoding="utf-8"))
    for key, value in pairs.items():
        if override or key not in os.environ:
            os.environ[key] = value
    return bool(pairs)


def first_env(keys: Iterable[str]) -> Optional[str]:
    """Return first non-empty env value from candidate keys."""

    for key in keys:
        value = os.getenv(key)
        if value:
            return value
    return None


def env_float(keys: Iterable[str]) -> Optional[float]:
    """Parse first non-empty env value as a non-negative float; None if unset or invalid."""

    raw = first_env(keys)
    if raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if value >= 0 else None


def default_config_path() -> Path:
    base = os.getenv("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / CONFIG_FILE_NAME


def create_config_file(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(CONFIG_TEMPLATE, encoding="utf-8")


def read_config_file(path: Path) -> dict[str, Any]:
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Error reading config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Error parsing config file {path}: {exc}") from exc

    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ConfigError(f"Config file {path} must contain a mapping of settings.")
    return payload


def _as_float(value: Any, name: str, path: Path) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{name}' in {path} must be a number, got {value!r}") from None
    if parsed < 0:
        raise ConfigError(f"'{name}' in {path} must not be negative.")
    return parsed


@dataclass(frozen=True)
class Settings:
    api_key: str
    model: str = DEFAULT_MODEL
    base_url: Optional[str] = None
    api_timeout: float = DEFAULT_API_TIMEOUT
    exec_timeout: float = DEFAULT_EXEC_TIMEOUT
    config_path: Optional[Path] = None


class ConfigCreated(Exception):
    """A fresh config file was written; the user has to fill in the key."""

    def __init__(self, path: Path) -> None:
        super().__init__(str(path))
        self.path = path


def resolve_settings(
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    base_url: Optional[str] = None,
    exec_timeout: Optional[float] = None,
    config_path: Optional[str] = None,
) -> Settings:
    """Merge CLI values, environment and config file, in that order of precedence.

    Raises ConfigCreated when no key is available and the config file had to be
    created, and ConfigError when the key is still missing or the file is invalid.
    """

    path = Path(config_path).expanduser() if config_path else default_config_path()
    key = api_key or first_env(API_KEY_ENV)

    file_values: dict[str, Any] = {}
    if path.exists():
        file_values = read_config_file(path)
    elif not key:
        create_config_file(path)
        raise ConfigCreated(path)

    if not key:
        key = str(file_values.get("key") or "").strip()
    if not key:
        raise ConfigError(f"Set the 'key' value in the configuration file before using the program: {path}")

    api_timeout = env_float(API_TIMEOUT_ENV)
    if api_timeout is None:
        api_timeout = _as_float(file_values.get("api_timeout"), "api_timeout", path)

    if exec_timeout is None:
        exec_timeout = env_float(EXEC_TIMEOUT_ENV)
    if exec_timeout is None:
        exec_timeout = _as_float(file_values.get("exec_timeout"), "exec_timeout", path)

    return Settings(
        api_key=key,
        model=model or first_env(MODEL_ENV) or file_values.get("model") or DEFAULT_MODEL,
        base_url=base_url or first_env(BASE_URL_ENV) or file_values.get("base_url") or None,
        api_timeout=DEFAULT_API_TIMEOUT if api_timeout is None else api_timeout,
        exec_timeout=DEFAULT_EXEC_TIMEOUT if exec_timeout is None else exec_timeout,
        config_path=path,
    )
