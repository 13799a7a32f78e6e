"""Testing utilities for configuration.

Provides clean interfaces for injecting test configuration
without environment variable pollution.

Usage:
    from forkkeeper.testing import temp_config, mock_env_vars

    with mock_env_vars(FORKKEEPER_LOG_LEVEL="DEBUG"):
        # Test code with env vars set
        pass

    with temp_config(fork_dir=tmp_path / "fork") as cfg:
        workspace = ForkWorkspace(cfg)
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Optional

from .config_loader import ENV_MAPPING
from .config_schema import ForkkeeperConfig


@contextmanager
def mock_env_vars(**env_vars):
    """Temporarily set environment variables for testing.

    Saves current env vars, sets new values, then restores
    originals on exit. Setting value to None deletes the var.
    """
    old_env: Dict[str, Optional[str]] = {}

    try:
        for key, value in env_vars.items():
            old_env[key] = os.environ.get(key)
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = str(value)

        yield

    finally:
        for key, old_value in old_env.items():
            if old_value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = old_value


@contextmanager
def temp_config(
    fork_dir: Optional[Path] = None,
    config_dict: Optional[Dict[str, Any]] = None,
):
    """Build an isolated config with every forkkeeper env var cleared.

    Args:
        fork_dir: Override fork.path
        config_dict: Dictionary to construct ForkkeeperConfig from

    Yields:
        ForkkeeperConfig with overrides applied
    """
    cleared = {name: None for name in ENV_MAPPING}
    with mock_env_vars(**cleared):
        cfg = ForkkeeperConfig.model_validate(config_dict or {})
        if fork_dir is not None:
            cfg.fork.path = str(fork_dir)
        yield cfg
