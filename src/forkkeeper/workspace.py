"""Fork working-copy housekeeping: clone, clean, remotes, listings, fetches."""

from __future__ import annotations

import shutil
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from .config_schema import ForkkeeperConfig
from .errors import RemoteNotFoundError
from .git_backend import GitBackend
from .observability import log_action, log_debug
from .reconciler import ORIGIN, UPSTREAM, BranchReconciler


# Steps of `forkkeeper all`, in order
DEFAULT_SEQUENCE = (
    "clone",
    "add-upstream",
    "list-remotes",
    "fetch-origin",
    "list-origin-branches",
    "fetch-upstream",
    "list-upstream-branches",
    "list-local-branches",
    "checkout-branch",
)


class BranchScope(str, Enum):
    LOCAL = "local"
    ORIGIN = ORIGIN
    UPSTREAM = UPSTREAM


class ForkWorkspace:
    """Operations on the fork working copy described by a ``ForkkeeperConfig``."""

    def __init__(self, config: ForkkeeperConfig, *, base_dir: Optional[Path] = None):
        self.config = config
        self.path = config.fork.resolved_path(base_dir)
        self._backend: Optional[GitBackend] = None

    @property
    def exists(self) -> bool:
        return self.path.is_dir()

    def backend(self) -> GitBackend:
        """Open the working copy (cached).

        Raises:
            WorkingCopyNotFoundError: If the fork has not been cloned
        """
        if self._backend is None:
            self._backend = GitBackend.open(self.path, timeout=self.config.git.timeout)
        return self._backend

    def reconciler(self) -> BranchReconciler:
        fork = self.config.fork
        return BranchReconciler(
            self.backend(),
            upstream_url=fork.upstream_url,
            default_branch=fork.default_branch,
            master_branch=fork.master_branch,
            on_diverged=self.config.sync.on_diverged,
        )

    def clone(self) -> bool:
        """Clone the fork unless its directory exists. Returns True if cloned."""
        if self.exists:
            log_debug("clone skipped; directory exists", path=str(self.path))
            return False
        self._backend = GitBackend.clone(
            self.config.fork.origin_url, self.path, timeout=self.config.git.timeout
        )
        log_action("workspace.clone", url=self.config.fork.origin_url, path=str(self.path))
        return True

    def clean(self) -> bool:
        """Remove the fork directory. Returns True if something was removed."""
        if not self.exists:
            return False
        shutil.rmtree(self.path)
        self._backend = None
        log_action("workspace.clean", path=str(self.path))
        return True

    def list_remotes(self) -> List[Tuple[str, str, str]]:
        """Fetch and push URL rows, as printed by ``git remote -v``."""
        return self.backend().remote_urls()

    def add_upstream(self) -> bool:
        """Register the upstream remote if missing. Returns True if added."""
        added = self.reconciler().ensure_upstream_remote()
        if added:
            log_action("workspace.add_upstream", url=self.config.fork.upstream_url)
        return added

    def _require_remote(self, remote: str) -> GitBackend:
        backend = self.backend()
        if not backend.has_remote(remote):
            raise RemoteNotFoundError(remote)
        return backend

    def list_branches(self, scope: BranchScope | str) -> List[str]:
        """Local branches, or remote-tracking branches from the last fetch."""
        scope = BranchScope(scope)
        if scope is BranchScope.LOCAL:
            return self.backend().local_branches()
        return self._require_remote(scope.value).tracked_remote_branches(scope.value)

    def fetch(self, remote: str) -> None:
        self._require_remote(remote).fetch(remote)
        log_action("workspace.fetch", remote=remote)

