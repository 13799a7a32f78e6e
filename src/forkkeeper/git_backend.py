"""Version-control backend used by the reconciler and workspace commands.

``GitBackend`` is the only place that starts git processes. Each method is a
single blocking git invocation run through GitPython, bounded by
``kill_after_timeout`` when a timeout is configured. Failures surface as
``ExternalToolError``; nothing is retried.

``VersionControl`` is the narrow surface the branch reconciler depends on, so
its decision logic can be exercised with an in-memory fake.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple, runtime_checkable

from git import Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from .errors import ExternalToolError, WorkingCopyNotFoundError
from .observability import log_debug


@runtime_checkable
class VersionControl(Protocol):
    """Operations the branch reconciler needs from a working copy."""

    def current_branch(self) -> Optional[str]:
        """Name of the checked-out branch, or None on a detached HEAD."""
        ...

    def has_local_branch(self, name: str) -> bool:
        ...

    def has_remote(self, remote: str) -> bool:
        ...

    def add_remote(self, remote: str, url: str) -> None:
        ...

    def has_remote_branch(self, remote: str, name: str) -> bool:
        """Live query of the remote (not the locally fetched refs)."""
        ...

    def has_tracking_ref(self, remote: str, name: str) -> bool:
        """Whether ``refs/remotes/<remote>/<name>`` exists locally."""
        ...

    def fetch(self, remote: str, branch: Optional[str] = None) -> None:
        ...

    def checkout(self, branch: str, *, create: bool = False, track: Optional[str] = None) -> None:
        ...

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """Whether ``ancestor`` is reachable from ``descendant``."""
        ...

    def merge_ff_only(self, ref: str) -> None:
        ...

    def rebase(self, ref: str) -> None:
        ...

    def is_rebase_in_progress(self) -> bool:
        ...

    def push(self, remote: str, branch: str) -> None:
        ...

    def pull(self, remote: str, branch: str) -> None:
        ...


def _timeout_kwargs(timeout: float) -> dict:
    return {"kill_after_timeout": timeout} if timeout and timeout > 0 else {}


_STDERR_PREFIX = "\n  stderr: '"


def _raw_stderr(exc: GitCommandError) -> str:
    """Text git wrote to stderr, without GitPython's ``stderr: '...'`` wrapper."""
    text = exc.stderr or ""
    if text.startswith(_STDERR_PREFIX) and text.endswith("'"):
        text = text[len(_STDERR_PREFIX):-1]
    return text


class GitBackend:
    """GitPython-backed implementation of ``VersionControl`` plus listing helpers."""

    def __init__(self, repo: Repo, *, timeout: float = 0):
        self._repo = repo
        self._timeout = timeout

    @classmethod
    def open(cls, path: Path, *, timeout: float = 0) -> "GitBackend":
        """Open an existing working copy.

        Raises:
            WorkingCopyNotFoundError: If path is missing or not a git repository
        """
        path = Path(path)
        if not path.is_dir():
            raise WorkingCopyNotFoundError(path)
        try:
            repo = Repo(path)
        except (InvalidGitRepositoryError, NoSuchPathError):
            raise WorkingCopyNotFoundError(path, "is not a git repository")
        return cls(repo, timeout=timeout)

    @classmethod
    def clone(cls, url: str, path: Path, *, timeout: float = 0) -> "GitBackend":
        """Clone ``url`` into ``path`` and open the result."""
        log_debug(f"GIT_OP_START: clone {url} {path}")
        try:
            repo = Repo.clone_from(url, str(path), **_timeout_kwargs(timeout))
        except GitCommandError as exc:
            raise ExternalToolError(exc.command, exc.status, _raw_stderr(exc)) from exc
        log_debug(f"GIT_OP_END: clone {url} {path}")
        return cls(repo, timeout=timeout)

    @property
    def path(self) -> Path:
        return Path(self._repo.working_tree_dir)

    @property
    def repo(self) -> Repo:
        return self._repo

    # ------------------------------------------------------------------
    # Process boundary
    # ------------------------------------------------------------------

    def run_git(self, *args: str) -> str:
        """Run ``git <args>`` in the working copy and return stripped stdout."""
        cmd = ["git", *args]
        label = " ".join(args)
        log_debug(f"GIT_OP_START: {label}", cwd=str(self.path))
        try:
            out = self._repo.git.execute(cmd, **_timeout_kwargs(self._timeout))
        except GitCommandError as exc:
            log_debug(f"GIT_OP_FAIL: {label}", status=exc.status)
            raise ExternalToolError(cmd, exc.status, _raw_stderr(exc)) from exc
        log_debug(f"GIT_OP_END: {label}")
        return out if isinstance(out, str) else ""

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def current_branch(self) -> Optional[str]:
        return self.run_git("branch", "--show-current") or None

    def local_branches(self) -> List[str]:
        return sorted(head.name for head in self._repo.heads)

    def has_local_branch(self, name: str) -> bool:
        return name in self.local_branches()

    def remotes(self) -> Dict[str, str]:
        """Configured remotes mapped to their URLs."""
        result: Dict[str, str] = {}
        for remote in self._repo.remotes:
            urls = list(remote.urls)
            result[remote.name] = urls[0] if urls else ""
        return result

    def has_remote(self, remote: str) -> bool:
        return remote in [r.name for r in self._repo.remotes]

    def remote_branches(self, remote: str, pattern: Optional[str] = None) -> List[str]:
        """Branch names currently published on ``remote`` (``ls-remote --heads``)."""
        args = ["ls-remote", "--heads", remote]
        if pattern:
            args.append(pattern)
        names = []
        for line in self.run_git(*args).splitlines():
            _, _, ref = line.partition("\t")
            if ref.startswith("refs/heads/"):
                names.append(ref[len("refs/heads/"):])
        return sorted(names)

    def has_remote_branch(self, remote: str, name: str) -> bool:
        return name in self.remote_branches(remote, f"refs/heads/{name}")

    def tracked_remote_branches(self, remote: str) -> List[str]:
        """Remote-tracking branches for ``remote`` as of the last fetch."""
        prefix = f"refs/remotes/{remote}/"
        out = self.run_git("for-each-ref", "--format=%(refname)", prefix)
        names = []
        for ref in out.splitlines():
            name = ref[len(prefix):] if ref.startswith(prefix) else ""
            if name and name != "HEAD":
                names.append(name)
        return sorted(names)

    def has_tracking_ref(self, remote: str, name: str) -> bool:
        return name in self.tracked_remote_branches(remote)

    def remote_urls(self) -> List[Tuple[str, str, str]]:
        """``(name, url, kind)`` rows of ``git remote -v``; kind is fetch or push."""
        rows = []
        for line in self.run_git("remote", "-v").splitlines():
            name, _, rest = line.partition("\t")
            url, _, kind = rest.rpartition(" (")
            rows.append((name, url, kind.rstrip(")")))
        return rows

    def commit_of(self, ref: str = "HEAD") -> str:
        return self._repo.commit(ref).hexsha

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        try:
            self.run_git("merge-base", "--is-ancestor", ancestor, descendant)
        except ExternalToolError as exc:
            # Exit status 1 means "not an ancestor"; anything else is a real failure
            if exc.status == 1:
                return False
            raise
        return True

    def is_rebase_in_progress(self) -> bool:
        git_dir = Path(self._repo.git_dir)
        return (git_dir / "rebase-merge").exists() or (git_dir / "rebase-apply").exists()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_remote(self, remote: str, url: str) -> None:
        self.run_git("remote", "add", remote, url)

    def fetch(self, remote: str, branch: Optional[str] = None) -> None:
        if branch:
            self.run_git("fetch", remote, branch)
        else:
            self.run_git("fetch", remote)

    def checkout(self, branch: str, *, create: bool = False, track: Optional[str] = None) -> None:
        if not create:
            self.run_git("checkout", branch)
        elif track:
            self.run_git("checkout", "-b", branch, "--track", track)
        else:
            self.run_git("checkout", "-b", branch)

    def merge_ff_only(self, ref: str) -> None:
        self.run_git("merge", "--ff-only", ref)

    def rebase(self, ref: str) -> None:
        self.run_git("rebase", ref)

    def push(self, remote: str, branch: str) -> None:
        self.run_git("push", remote, branch)

    def pull(self, remote: str, branch: str) -> None:
        self.run_git("pull", "--ff-only", remote, branch)
