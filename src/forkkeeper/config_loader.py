"""Configuration loading and merging for forkkeeper.

Handles TOML loading, config discovery, deep merging, ``.env`` loading and
environment overlay.
"""

from __future__ import annotations

import os
import sys
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

# TOML loading: tomllib (3.11+) with tomli fallback
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib  # type: ignore

from dotenv import load_dotenv
from pydantic import ValidationError

from .config_schema import ForkkeeperConfig
from .errors import ConfigError


# Config file names
CONFIG_FILENAME = "config.toml"
ENV_FILENAME = ".env"

# Directory names
USER_CONFIG_DIR = ".forkkeeper"
PROJECT_CONFIG_DIR = ".forkkeeper"

# Environment variable -> (section, key). Later entries win when both are set.
ENV_MAPPING: Dict[str, tuple[str, str]] = {
    "BRANCH": ("fork", "default_branch"),
    "FORKKEEPER_FORK_DIR": ("fork", "path"),
    "FORKKEEPER_ORIGIN_URL": ("fork", "origin_url"),
    "FORKKEEPER_UPSTREAM_URL": ("fork", "upstream_url"),
    "FORKKEEPER_DEFAULT_BRANCH": ("fork", "default_branch"),
    "FORKKEEPER_MASTER_BRANCH": ("fork", "master_branch"),
    "FORKKEEPER_GIT_TIMEOUT": ("git", "timeout"),
    "FORKKEEPER_ON_DIVERGED": ("sync", "on_diverged"),
    "FORKKEEPER_LOG_LEVEL": ("logging", "level"),
    "FORKKEEPER_LOG_DIR": ("logging", "dir"),
    "FORKKEEPER_LOG_DISABLE_FILE": ("logging", "disable_file"),
}


def _get_user_config_dir() -> Path:
    """Get user-level config directory (~/.forkkeeper/)."""
    return Path.home() / USER_CONFIG_DIR


def _get_project_config_dir(project_path: Optional[Path] = None) -> Optional[Path]:
    """Get project-level config directory (.forkkeeper/).

    Searches upward from project_path to find .forkkeeper/ directory.
    The user-level directory is never treated as a project directory.
    """
    if project_path is None:
        project_path = Path.cwd()

    if not project_path.is_absolute():
        project_path = project_path.resolve()

    user_dir = _get_user_config_dir()
    current = project_path
    while current != current.parent:
        config_dir = current / PROJECT_CONFIG_DIR
        if config_dir.is_dir() and config_dir != user_dir:
            return config_dir
        current = current.parent

    return None


def _load_toml(path: Path) -> Dict[str, Any]:
    """Load a TOML file.

    Raises:
        ConfigError: If file cannot be loaded or parsed
    """
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}")
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries.

    Override values take precedence. Nested dicts are merged recursively.
    Lists are replaced, not merged.
    """
    result = base.copy()

    for key, value in override.items():
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _apply_env_overlay(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to config dict.

    Type conversion happens during Pydantic validation.
    """
    result = {
        key: dict(value) if isinstance(value, dict) else value
        for key, value in config_dict.items()
    }

    for env_var, (section, key_name) in ENV_MAPPING.items():
        value = os.getenv(env_var)
        if value is None or value == "":
            continue
        result.setdefault(section, {})[key_name] = value

    return result


def load_dotenv_file(project_path: Optional[Path] = None) -> bool:
    """Load ``.env`` from the project directory without overriding the environment.

    Returns True if a file was found and loaded.
    """
    env_path = (project_path or Path.cwd()) / ENV_FILENAME
    if not env_path.is_file():
        return False
    return load_dotenv(env_path, override=False)


def load_config(
    project_path: Optional[Path] = None,
    skip_env: bool = False,
) -> ForkkeeperConfig:
    """Load and merge forkkeeper configuration.

    Discovery order (later sources override earlier):
    1. Built-in defaults
    2. User config (~/.forkkeeper/config.toml)
    3. Project config (.forkkeeper/config.toml)
    4. .env in the project directory, then environment variables (unless skip_env=True)

    Raises:
        ConfigError: If the project config or merged values are invalid
    """
    config_dict: Dict[str, Any] = {}

    # 1. User config
    user_config_path = _get_user_config_dir() / CONFIG_FILENAME
    if user_config_path.exists():
        try:
            user_config = _load_toml(user_config_path)
            config_dict = _deep_merge(config_dict, user_config)
        except ConfigError as e:
            # User config is optional, warn but continue
            warnings.warn(
                f"Skipping invalid user config at {user_config_path}: {e}",
                UserWarning,
            )

    # 2. Project config
    project_config_dir = _get_project_config_dir(project_path)
    if project_config_dir:
        project_config_path = project_config_dir / CONFIG_FILENAME
        if project_config_path.exists():
            try:
                project_config = _load_toml(project_config_path)
                config_dict = _deep_merge(config_dict, project_config)
            except ConfigError as e:
                raise ConfigError(f"Invalid project config: {e}")

    # 3. .env + environment overlay
    if not skip_env:
        load_dotenv_file(project_path)
        config_dict = _apply_env_overlay(config_dict)

    # 4. Validate and create config object
    try:
        return ForkkeeperConfig.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigError(f"Config validation failed:\n{e}")


def get_config_paths(project_path: Optional[Path] = None) -> Dict[str, Optional[Path]]:
    """Get paths to all config sources.

    Returns dict with keys: user_config, project_config, env_file
    """
    project_dir = _get_project_config_dir(project_path)
    env_file = (project_path or Path.cwd()) / ENV_FILENAME

    return {
        "user_config": _get_user_config_dir() / CONFIG_FILENAME,
        "project_config": project_dir / CONFIG_FILENAME if project_dir else None,
        "env_file": env_file if env_file.is_file() else None,
    }
