"""Forge configuration: reads from forge.toml, env vars, and CLI args."""

import logging
import os
import re
import tomllib
from pathlib import Path
from typing import Any, Dict

from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger("rdfforge.config")

_ENV_REF = re.compile(r"\$\{([^}]+)\}")


class ForgeSettings(BaseSettings):
    """Daemon settings."""

    # Server
    host: str = "0.0.0.0"
    port: int = 8500
    log_level: str = "info"

    # Database (SQLite by default for zero-setup)
    database_url: str = "sqlite+aiosqlite:///forge.db"

    # Uploaded data sources
    storage_dir: str = "./forge-data"

    # Workers and scheduling
    workers: int = 4
    timezone: str = "UTC"
    cron_tick_seconds: int = 60

    # Retry policy for infrastructure faults
    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 10.0
    retry_on_timeout: bool = False

    default_step_timeout: float = 1800.0
    shutdown_grace_seconds: float = 30.0

    # Triplestore connections seeded at start-up (forge.toml [triplestores])
    triplestores: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    model_config = {"env_prefix": "FORGE_", "env_file": ".env", "extra": "ignore"}

    def get_storage_dir(self) -> Path:
        path = Path(self.storage_dir).expanduser()
        path.mkdir(parents=True, exist_ok=True)
        return path


class ClientSettings(BaseSettings):
    """CLI client settings."""

    host: str = "http://localhost:8500"

    model_config = {"env_prefix": "FORGE_", "extra": "ignore"}


def _read_toml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Ignoring unreadable config file {path}: {e}")
        return {}


def _load_toml_config() -> Dict[str, Any]:
    """Load configuration from forge.toml files.

    Searches for forge.toml in:
    1. FORGE_HOME (~/.forge/forge.toml by default)
    2. Current directory (./forge.toml), which takes precedence

    The [triplestores] tables are merged by name; other keys are replaced.
    """
    config: Dict[str, Any] = {}
    forge_home = Path(os.environ.get("FORGE_HOME", "~/.forge")).expanduser()

    for path in (forge_home / "forge.toml", Path("forge.toml")):
        if not path.exists():
            continue
        loaded = _read_toml(path)
        for key, value in loaded.items():
            if key == "triplestores":
                config.setdefault("triplestores", {}).update(value)
            elif key == "daemon" and isinstance(value, dict):
                config.update(value)
            else:
                config[key] = value
    return config


def resolve_env_refs(value: Any) -> Any:
    """Resolve ${ENV_VAR} and ${ENV_VAR:-default} references in config values.

    Raises:
        ValueError: If a referenced variable is unset and has no default
    """
    if isinstance(value, dict):
        return {k: resolve_env_refs(v) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_env_refs(v) for v in value]
    if not isinstance(value, str):
        return value

    def _replace(match: re.Match) -> str:
        ref = match.group(1)
        name, sep, default = ref.partition(":-")
        if name in os.environ:
            return os.environ[name]
        if sep:
            return default
        raise ValueError(f"Environment variable '{name}' is not set")

    return _ENV_REF.sub(_replace, value)


def get_settings() -> ForgeSettings:
    settings = ForgeSettings()
    toml_config = _load_toml_config()

    # Environment variables win over file values
    overrides = {}
    for key, value in toml_config.items():
        if key == "triplestores":
            continue
        if key in ForgeSettings.model_fields and f"FORGE_{key.upper()}" not in os.environ:
            overrides[key] = value
    if overrides:
        settings = settings.model_copy(update=overrides)

    if "triplestores" in toml_config:
        settings.triplestores = resolve_env_refs(toml_config["triplestores"])
    return settings


def get_client_settings() -> ClientSettings:
    return ClientSettings()
