"""Tests for forkkeeper.testing module (testing utilities)."""

from __future__ import annotations

import os

import pytest

from forkkeeper.config_schema import DivergencePolicy, ForkkeeperConfig
from forkkeeper.testing import mock_env_vars, temp_config


class TestMockEnvVars:
    """Tests for mock_env_vars context manager."""

    def test_sets_and_removes(self):
        os.environ.pop("FK_NEW_TEST_VAR", None)

        with mock_env_vars(FK_NEW_TEST_VAR="temporary"):
            assert os.getenv("FK_NEW_TEST_VAR") == "temporary"

        assert os.getenv("FK_NEW_TEST_VAR") is None

    def test_restores_original(self, monkeypatch):
        monkeypatch.setenv("FK_TEST_VAR_RESTORE", "original")

        with mock_env_vars(FK_TEST_VAR_RESTORE="modified"):
            assert os.getenv("FK_TEST_VAR_RESTORE") == "modified"

        assert os.getenv("FK_TEST_VAR_RESTORE") == "original"

    def test_none_deletes_var(self, monkeypatch):
        monkeypatch.setenv("FK_DELETE_ME", "value")

        with mock_env_vars(FK_DELETE_ME=None):
            assert os.getenv("FK_DELETE_ME") is None

        assert os.getenv("FK_DELETE_ME") == "value"

    def test_restores_after_exception(self, monkeypatch):
        monkeypatch.setenv("FK_ERR_VAR", "before")

        with pytest.raises(RuntimeError):
            with mock_env_vars(FK_ERR_VAR="during"):
                raise RuntimeError("boom")

        assert os.getenv("FK_ERR_VAR") == "before"

    def test_values_stringified(self):
        with mock_env_vars(FK_NUMBER=42):
            assert os.getenv("FK_NUMBER") == "42"


class TestTempConfig:
    """Tests for temp_config context manager."""

    def test_yields_defaults(self):
        with temp_config() as cfg:
            assert isinstance(cfg, ForkkeeperConfig)
            assert cfg.fork.path == "kubespray-fork"

    def test_fork_dir_override(self, tmp_path):
        with temp_config(fork_dir=tmp_path / "fork") as cfg:
            assert cfg.fork.resolved_path() == tmp_path / "fork"

    def test_config_dict(self):
        with temp_config(config_dict={"sync": {"on_diverged": "fail"}}) as cfg:
            assert cfg.sync.on_diverged is DivergencePolicy.FAIL

    def test_forkkeeper_env_cleared_inside(self, monkeypatch):
        monkeypatch.setenv("FORKKEEPER_FORK_DIR", "/from/env")
        monkeypatch.setenv("BRANCH", "develop")

        with temp_config():
            assert os.getenv("FORKKEEPER_FORK_DIR") is None
            assert os.getenv("BRANCH") is None

        assert os.getenv("FORKKEEPER_FORK_DIR") == "/from/env"
        assert os.getenv("BRANCH") == "develop"
