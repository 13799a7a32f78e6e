"""Branch reconciliation for a fork working copy.

Two operations:

- ``ensure_branch``: get the working copy onto a branch, pulling from origin
  when already on it, switching to a local branch, or creating a tracking
  branch from origin.
- ``sync_master_from_upstream``: bring the fork's master in line with
  ``upstream/master`` (fast-forward, else rebase per policy) and push it to
  origin.

Both are fail-fast: the first fatal condition raises and nothing already done
is undone. A conflicting rebase is left in progress for manual resolution.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .config_schema import DivergencePolicy
from .errors import (
    BranchNotFoundError,
    DivergedHistoryError,
    ExternalToolError,
    NoMasterBranchError,
    RebaseConflictError,
    RemoteNotFoundError,
    UpstreamBranchNotFoundError,
)
from .git_backend import VersionControl
from .observability import log_debug, log_warning, timeit

ORIGIN = "origin"
UPSTREAM = "upstream"


class MasterSource(str, Enum):
    """Where the local master branch comes from, in priority order."""

    USE_LOCAL = "use_local"
    TRACK_ORIGIN = "track_origin"
    TRACK_UPSTREAM = "track_upstream"
    NOT_FOUND = "not_found"


class EnsureOutcome(str, Enum):
    PULLED = "pulled"  # Already on branch; fetched + pulled from origin
    NOT_ON_ORIGIN = "not_on_origin"  # Already on branch; origin has no copy
    SWITCHED = "switched"  # Checked out existing local branch
    CREATED_TRACKING = "created_tracking"  # New local branch tracking origin


class SyncOutcome(str, Enum):
    FAST_FORWARD = "fast_forward"
    REBASED = "rebased"


@dataclass
class EnsureResult:
    branch: str
    outcome: EnsureOutcome
    previous_branch: Optional[str]


@dataclass
class SyncResult:
    branch: str
    source: MasterSource
    outcome: SyncOutcome
    upstream_added: bool


def resolve_master_source(vcs: VersionControl, branch: str = "master") -> MasterSource:
    """Pick the seed for the local master: local, origin, upstream, else not found.

    Uses remote-tracking refs, so both remotes must have been fetched first.
    """
    if vcs.has_local_branch(branch):
        return MasterSource.USE_LOCAL
    if vcs.has_tracking_ref(ORIGIN, branch):
        return MasterSource.TRACK_ORIGIN
    if vcs.has_tracking_ref(UPSTREAM, branch):
        return MasterSource.TRACK_UPSTREAM
    return MasterSource.NOT_FOUND


class BranchReconciler:
    """Decision procedures for switching and synchronizing fork branches."""

    def __init__(
        self,
        vcs: VersionControl,
        *,
        upstream_url: str,
        default_branch: str = "master",
        master_branch: str = "master",
        on_diverged: DivergencePolicy = DivergencePolicy.REBASE,
    ):
        self.vcs = vcs
        self.upstream_url = upstream_url
        self.default_branch = default_branch
        self.master_branch = master_branch
        self.on_diverged = DivergencePolicy(on_diverged)

    def ensure_branch(self, requested: Optional[str] = None) -> EnsureResult:
        """Get the working copy onto ``requested`` (default branch if omitted).

        Raises:
            BranchNotFoundError: Branch is neither current, local nor on origin
            ExternalToolError: Any git invocation failed
        """
        branch = requested or self.default_branch
        with timeit("reconcile.ensure_branch", branch=branch) as info:
            self._require_origin()
            current = self.vcs.current_branch()
            log_debug("ensure_branch", target=branch, current=current)

            if current == branch:
                if self.vcs.has_remote_branch(ORIGIN, branch):
                    self.vcs.fetch(ORIGIN, branch)
                    self.vcs.pull(ORIGIN, branch)
                    outcome = EnsureOutcome.PULLED
                else:
                    outcome = EnsureOutcome.NOT_ON_ORIGIN
            elif self.vcs.has_local_branch(branch):
                self.vcs.checkout(branch)
                outcome = EnsureOutcome.SWITCHED
            elif self.vcs.has_remote_branch(ORIGIN, branch):
                if not self.vcs.has_tracking_ref(ORIGIN, branch):
                    self.vcs.fetch(ORIGIN, branch)
                self.vcs.checkout(branch, create=True, track=f"{ORIGIN}/{branch}")
                outcome = EnsureOutcome.CREATED_TRACKING
            else:
                raise BranchNotFoundError(branch)

            info["result"] = outcome.value
            return EnsureResult(branch=branch, outcome=outcome, previous_branch=current)

    def _require_origin(self) -> None:
        if not self.vcs.has_remote(ORIGIN):
            raise RemoteNotFoundError(ORIGIN)

    def ensure_upstream_remote(self) -> bool:
        """Add the upstream remote if missing. Returns True if it was added."""
        if self.vcs.has_remote(UPSTREAM):
            return False
        self.vcs.add_remote(UPSTREAM, self.upstream_url)
        return True

    def sync_master_from_upstream(self) -> SyncResult:
        """Fast-forward (or rebase) master onto upstream/master and push to origin.

        Raises:
            NoMasterBranchError: No local master and neither remote has one
            UpstreamBranchNotFoundError: Upstream has no branch of that name
            RebaseConflictError: Rebase stopped on conflicts (left in progress)
            DivergedHistoryError: Histories diverged and policy is ``fail``
            ExternalToolError: Any other git invocation failed
        """
        branch = self.master_branch
        onto = f"{UPSTREAM}/{branch}"
        with timeit("reconcile.sync_master", branch=branch) as info:
            self._require_origin()
            added = self.ensure_upstream_remote()

            self.vcs.fetch(UPSTREAM)
            self.vcs.fetch(ORIGIN)

            source = resolve_master_source(self.vcs, branch)
            info["source"] = source.value
            if source is MasterSource.NOT_FOUND:
                raise NoMasterBranchError(branch)
            if not self.vcs.has_tracking_ref(UPSTREAM, branch):
                raise UpstreamBranchNotFoundError(branch)

            if source is MasterSource.USE_LOCAL:
                self.vcs.checkout(branch)
            elif source is MasterSource.TRACK_ORIGIN:
                self.vcs.checkout(branch, create=True, track=f"{ORIGIN}/{branch}")
            else:
                self.vcs.checkout(branch, create=True, track=onto)

            outcome = self._integrate(branch, onto)
            info["result"] = outcome.value

            self.vcs.push(ORIGIN, branch)
            return SyncResult(
                branch=branch,
                source=source,
                outcome=outcome,
                upstream_added=added,
            )

    def _integrate(self, branch: str, onto: str) -> SyncOutcome:
        """Fast-forward onto ``onto``; rebase only when the histories diverged.

        A refused fast-forward where HEAD is still an ancestor of ``onto``
        (dirty working tree, locked index, ...) is re-raised as is.
        """
        try:
            self.vcs.merge_ff_only(onto)
            return SyncOutcome.FAST_FORWARD
        except ExternalToolError as exc:
            log_debug("fast-forward refused", branch=branch, onto=onto, stderr=exc.stderr)
            if self.vcs.is_ancestor("HEAD", onto):
                raise

        if self.on_diverged is DivergencePolicy.FAIL:
            raise DivergedHistoryError(branch, onto)

        log_warning(
            f"'{branch}' diverged from '{onto}'; rebasing (rewrites local history)",
            policy=self.on_diverged.value,
        )
        try:
            self.vcs.rebase(onto)
        except ExternalToolError as exc:
            if not self.vcs.is_rebase_in_progress():
                raise
            raise RebaseConflictError(branch, onto, exc.stderr) from exc
        return SyncOutcome.REBASED
