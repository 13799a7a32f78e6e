"""Exception hierarchy for forkkeeper.

Every failure is terminal for the current invocation: nothing is retried and
completed steps are not rolled back. The CLI maps any ``ForkkeeperError`` to
exit status 1.
"""

from __future__ import annotations

from typing import Optional, Sequence


class ForkkeeperError(Exception):
    """Base exception for all forkkeeper failures."""
    pass


class PreconditionError(ForkkeeperError):
    """A required working copy or remote is missing; nothing was attempted."""
    pass


class WorkingCopyNotFoundError(PreconditionError):
    """The fork directory does not exist or is not a git repository."""

    def __init__(self, path, reason: str = "does not exist"):
        self.path = path
        super().__init__(
            f"{path} {reason}. Run 'forkkeeper clone' first."
        )


class RemoteNotFoundError(PreconditionError):
    """A named remote is not configured on the working copy."""

    def __init__(self, remote: str):
        self.remote = remote
        hint = "Run 'forkkeeper add-upstream' first." if remote == "upstream" else ""
        super().__init__(f"Remote '{remote}' not found. {hint}".rstrip())


class UpstreamBranchNotFoundError(PreconditionError):
    """Upstream has no branch to sync master from."""

    def __init__(self, branch: str):
        self.branch = branch
        super().__init__(
            f"upstream/{branch} not found after fetching upstream; nothing to sync from."
        )


class BranchNotFoundError(ForkkeeperError):
    """Requested branch exists neither locally nor on origin."""

    def __init__(self, branch: str):
        self.branch = branch
        super().__init__(f"Branch {branch} not found locally or on origin.")


class NoMasterBranchError(ForkkeeperError):
    """No local master and neither remote has one to seed from."""

    def __init__(self, branch: str = "master"):
        self.branch = branch
        super().__init__(
            f"No local '{branch}' branch and neither origin/{branch} "
            f"nor upstream/{branch} exists."
        )


class RebaseConflictError(ForkkeeperError):
    """Rebase onto upstream stopped on conflicts; the rebase is left in progress."""

    def __init__(self, branch: str, onto: str, detail: str = ""):
        self.branch = branch
        self.onto = onto
        self.detail = detail
        message = (
            f"Rebase of '{branch}' onto '{onto}' stopped on conflicts. "
            "Manual resolution required: fix the conflicts, then run "
            "'git rebase --continue' (or 'git rebase --abort') in the fork "
            "and re-run 'forkkeeper sync-master'."
        )
        if detail:
            message += f"\n{detail}"
        super().__init__(message)


class DivergedHistoryError(ForkkeeperError):
    """Fast-forward impossible and the divergence policy forbids rebasing."""

    def __init__(self, branch: str, onto: str):
        self.branch = branch
        self.onto = onto
        super().__init__(
            f"'{branch}' has diverged from '{onto}' and cannot be fast-forwarded. "
            "Rebase is disabled (sync.on_diverged = \"fail\"); reconcile manually."
        )


class ExternalToolError(ForkkeeperError):
    """An underlying command exited non-zero (or was killed on timeout)."""

    def __init__(
        self,
        command: Sequence[str] | str,
        status: Optional[int | str] = None,
        stderr: str = "",
    ):
        if isinstance(command, str):
            self.command = command
        else:
            self.command = " ".join(str(part) for part in command)
        self.status = status
        self.stderr = (stderr or "").strip()
        message = f"Command failed ({status}): {self.command}"
        if self.stderr:
            message += f"\n{self.stderr}"
        super().__init__(message)


class ConfigError(ForkkeeperError):
    """Configuration loading or validation error."""
    pass
