from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import pytest
from git import Repo

from repo_helpers import AUTHOR, seed_bare_remote


def pytest_sessionstart(session):  # type: ignore[override]
    root = Path(__file__).resolve().parents[1]
    src = root / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))
    # Ensure console scripts load in editable style as well
    os.environ.setdefault("PYTHONPATH", str(src))


def _reset_logging() -> None:
    """Drop handlers bound to streams captured by the finished test."""
    from forkkeeper import observability

    logger = logging.getLogger(observability.LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    observability._logger_initialized = False
    observability._overrides.clear()


_ENV_TO_CLEAR = [
    "BRANCH",
    "FORKKEEPER_FORK_DIR",
    "FORKKEEPER_ORIGIN_URL",
    "FORKKEEPER_UPSTREAM_URL",
    "FORKKEEPER_DEFAULT_BRANCH",
    "FORKKEEPER_MASTER_BRANCH",
    "FORKKEEPER_GIT_TIMEOUT",
    "FORKKEEPER_ON_DIVERGED",
    "FORKKEEPER_LOG_LEVEL",
    "FORKKEEPER_LOG_DIR",
]


@pytest.fixture(autouse=True)
def isolated_env(tmp_path_factory, monkeypatch):
    """Isolate HOME, git identity and forkkeeper env vars for every test."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", AUTHOR.name)
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", AUTHOR.email)
    monkeypatch.setenv("GIT_COMMITTER_NAME", AUTHOR.name)
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", AUTHOR.email)
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")
    monkeypatch.setenv("FORKKEEPER_LOG_DISABLE_FILE", "1")
    for name in _ENV_TO_CLEAR:
        monkeypatch.delenv(name, raising=False)
    yield home
    _reset_logging()


# ----------------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------------


@pytest.fixture
def upstream_remote(tmp_path: Path) -> Path:
    """Bare 'upstream' repository with a seeded master."""
    return seed_bare_remote(tmp_path / "upstream.git")


@pytest.fixture
def origin_remote(tmp_path: Path, upstream_remote: Path) -> Path:
    """Bare 'origin' repository forked from upstream (same history)."""
    origin = tmp_path / "origin.git"
    Repo.clone_from(upstream_remote.as_posix(), origin, bare=True)
    return origin


@pytest.fixture
def fork_path(tmp_path: Path, origin_remote: Path) -> Path:
    """Working copy cloned from origin, on master, without an upstream remote."""
    path = tmp_path / "fork"
    Repo.clone_from(origin_remote.as_posix(), path)
    return path


@pytest.fixture
def fork_repo(fork_path: Path) -> Repo:
    return Repo(fork_path)
