"""Workspace housekeeping against local bare remotes."""
from __future__ import annotations

import pytest

from forkkeeper.errors import RemoteNotFoundError, WorkingCopyNotFoundError
from forkkeeper.testing import temp_config
from forkkeeper.workspace import DEFAULT_SEQUENCE, BranchScope, ForkWorkspace

from repo_helpers import push_commit


@pytest.fixture
def workspace_config(tmp_path, origin_remote, upstream_remote):
    fork_dir = tmp_path / "ws-fork"
    with temp_config(
        fork_dir=fork_dir,
        config_dict={
            "fork": {
                "origin_url": origin_remote.as_posix(),
                "upstream_url": upstream_remote.as_posix(),
            }
        },
    ) as cfg:
        yield cfg


@pytest.fixture
def workspace(workspace_config):
    return ForkWorkspace(workspace_config)


def test_clone_then_skip(workspace):
    assert workspace.exists is False
    assert workspace.clone() is True
    assert workspace.exists
    assert workspace.backend().current_branch() == "master"

    assert workspace.clone() is False


def test_clone_skips_existing_directory_without_checking_it(workspace):
    workspace.path.mkdir()
    assert workspace.clone() is False
    with pytest.raises(WorkingCopyNotFoundError):
        workspace.backend()


def test_clean(workspace):
    workspace.clone()
    assert workspace.clean() is True
    assert not workspace.path.exists()
    assert workspace.clean() is False


def test_operations_require_clone(workspace):
    with pytest.raises(WorkingCopyNotFoundError):
        workspace.list_remotes()
    with pytest.raises(WorkingCopyNotFoundError):
        workspace.list_branches("local")


def test_add_upstream_idempotent(workspace, upstream_remote, origin_remote):
    workspace.clone()

    assert workspace.add_upstream() is True
    assert workspace.add_upstream() is False
    assert workspace.list_remotes() == [
        ("origin", origin_remote.as_posix(), "fetch"),
        ("origin", origin_remote.as_posix(), "push"),
        ("upstream", upstream_remote.as_posix(), "fetch"),
        ("upstream", upstream_remote.as_posix(), "push"),
    ]


def test_upstream_operations_require_remote(workspace):
    workspace.clone()

    with pytest.raises(RemoteNotFoundError) as excinfo:
        workspace.fetch("upstream")
    assert "add-upstream" in str(excinfo.value)

    with pytest.raises(RemoteNotFoundError):
        workspace.list_branches(BranchScope.UPSTREAM)


def test_listing_reflects_last_fetch(workspace, origin_remote, upstream_remote):
    workspace.clone()
    workspace.add_upstream()
    push_commit(origin_remote, "feature-x", "f.txt", "f\n", "feature")
    push_commit(upstream_remote, "release-2.24", "r.txt", "r\n", "release")

    assert workspace.list_branches("origin") == ["master"]
    assert workspace.list_branches("upstream") == []

    workspace.fetch("origin")
    workspace.fetch("upstream")

    assert workspace.list_branches("origin") == ["feature-x", "master"]
    assert workspace.list_branches("upstream") == ["master", "release-2.24"]
    assert workspace.list_branches(BranchScope.LOCAL) == ["master"]


def test_unknown_scope_rejected(workspace):
    workspace.clone()
    with pytest.raises(ValueError):
        workspace.list_branches("tags")


def test_reconciler_uses_config(workspace_config):
    workspace_config.fork.default_branch = "develop"
    workspace_config.fork.master_branch = "main"
    ws = ForkWorkspace(workspace_config)
    ws.clone()

    reconciler = ws.reconciler()

    assert reconciler.default_branch == "develop"
    assert reconciler.master_branch == "main"


def test_relative_path_resolved_against_base_dir(tmp_path):
    with temp_config(fork_dir="relative-fork") as cfg:
        ws = ForkWorkspace(cfg, base_dir=tmp_path)
    assert ws.path == tmp_path / "relative-fork"


def test_default_sequence_order():
    assert DEFAULT_SEQUENCE[0] == "clone"
    assert DEFAULT_SEQUENCE[-1] == "checkout-branch"
    assert DEFAULT_SEQUENCE.index("fetch-origin") < DEFAULT_SEQUENCE.index("list-origin-branches")
    assert DEFAULT_SEQUENCE.index("add-upstream") < DEFAULT_SEQUENCE.index("fetch-upstream")
