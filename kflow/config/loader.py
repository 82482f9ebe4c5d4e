"""TOML configuration loader with deep merge support."""

import os
import tomllib
from pathlib import Path
from typing import Any

CONFIG_DIR_VAR = "KFLOW_CONFIG_DIR"
ENVIRONMENT_VAR = "KFLOW_ENV"
DEFAULT_ENVIRONMENT = "development"
PARENT_SEARCH_DEPTH = 5


def get_config_dir() -> Path:
    """Get the configuration directory path.

    The config directory can be overridden with KFLOW_CONFIG_DIR env var.
    Otherwise the nearest config/ directory from the working directory
    upwards is used, falling back to a relative 'config/'.

    Returns:
        Path of the configuration directory

    Raises:
        FileNotFoundError: If KFLOW_CONFIG_DIR names a missing directory
    """
    config_dir_env = os.environ.get(CONFIG_DIR_VAR)
    if config_dir_env:
        path = Path(config_dir_env)
        if not path.exists():
            raise FileNotFoundError(f"Config directory not found: {config_dir_env}")
        return path

    current = Path.cwd()
    for _ in range(PARENT_SEARCH_DEPTH):
        config_path = current / "config"
        if config_path.is_dir():
            return config_path
        current = current.parent

    return Path("config")


def get_environment() -> str:
    """Get the current environment from KFLOW_ENV.

    Returns:
        Environment name, 'development' if not set
    """
    return os.environ.get(ENVIRONMENT_VAR) or DEFAULT_ENVIRONMENT


def load_toml(file_path: Path) -> dict[str, Any]:
    """Load a TOML file and return its contents as a dictionary.

    Args:
        file_path: Path to the TOML file

    Returns:
        Dictionary containing the TOML data

    Raises:
        FileNotFoundError: If the file doesn't exist
        tomllib.TOMLDecodeError: If the TOML syntax is invalid
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    with file_path.open("rb") as f:
        return tomllib.load(f)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence.

    Nested tables such as [realtime] or [source] are merged key by key, so an
    environment file only needs the keys it changes. Lists, for example
    customer_types, are replaced whole.

    Args:
        base: Base dictionary
        override: Override dictionary (takes precedence)

    Returns:
        Merged dictionary; neither input is modified
    """
    result = base.copy()

    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = deep_merge(current, value)
        else:
            result[key] = value

    return result


def load_config(env: str | None = None) -> dict[str, Any]:
    """Load configuration from TOML files.

    Loading order:
    1. config/default.toml (required)
    2. config/{env}.toml (optional)

    Args:
        env: Environment overlay to apply; defaults to KFLOW_ENV

    Returns:
        Merged configuration dictionary

    Raises:
        FileNotFoundError: If default.toml is missing
    """
    config_dir = get_config_dir()
    env = env or get_environment()

    default_path = config_dir / "default.toml"
    if not default_path.exists():
        raise FileNotFoundError(
            f"Default configuration file not found: {default_path}. "
            f"Create config/default.toml or set {CONFIG_DIR_VAR}."
        )

    config = load_toml(default_path)

    env_path = config_dir / f"{env}.toml"
    if env_path.exists():
        config = deep_merge(config, load_toml(env_path))

    return config
