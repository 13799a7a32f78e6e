"""Configuration schema for forkkeeper.

Defines all configuration options with types, defaults, and validation.
Uses Pydantic for schema enforcement and clear error messages.
"""

from __future__ import annotations

import re
import warnings
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DivergencePolicy(str, Enum):
    """What sync-master does when master cannot be fast-forwarded."""

    REBASE = "rebase"  # Rebase master onto upstream (rewrites local history)
    FAIL = "fail"  # Stop and leave reconciliation to the operator


_REMOTE_URL_PATTERN = re.compile(r"^(https?://|ssh://|git@|file://|/|\.)")


class ForkConfig(BaseModel):
    """Location of the fork working copy and its remotes."""

    path: str = Field(
        default="kubespray-fork",
        description="Fork working copy directory (relative to the current directory)",
    )
    origin_url: str = Field(
        default="https://github.com/c-romeo/kubespray.git",
        description="URL the fork is cloned from (becomes 'origin')",
    )
    upstream_url: str = Field(
        default="https://github.com/kubernetes-sigs/kubespray.git",
        description="URL registered as the 'upstream' remote",
    )
    default_branch: str = Field(
        default="master",
        min_length=1,
        description="Branch used by ensure-branch when none is given",
    )
    master_branch: str = Field(
        default="master",
        min_length=1,
        description="Branch kept in step with upstream by sync-master",
    )

    @field_validator("origin_url", "upstream_url")
    @classmethod
    def validate_remote_url(cls, v: str) -> str:
        """Warn on URLs that do not look like anything git can clone."""
        if v and not _REMOTE_URL_PATTERN.match(v):
            warnings.warn(f"Remote URL looks unusual: {v}", UserWarning)
        return v

    @field_validator("default_branch", "master_branch")
    @classmethod
    def validate_branch_name(cls, v: str) -> str:
        if v.startswith("-") or any(ch.isspace() for ch in v) or ".." in v:
            raise ValueError(f"invalid branch name: {v!r}")
        return v

    def resolved_path(self, base: Path | None = None) -> Path:
        path = Path(self.path).expanduser()
        if not path.is_absolute():
            path = (base or Path.cwd()) / path
        return path


class GitConfig(BaseModel):
    """Git process settings."""

    timeout: float = Field(
        default=0,
        ge=0,
        description="Seconds before a git process is killed (0 = no limit)",
    )


class SyncConfig(BaseModel):
    """sync-master behavior settings."""

    on_diverged: DivergencePolicy = Field(
        default=DivergencePolicy.REBASE,
        description="Action when master cannot be fast-forwarded: rebase or fail",
    )

    @field_validator("on_diverged", mode="before")
    @classmethod
    def normalize_policy(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level",
    )
    dir: str = Field(
        default="",
        description="Log directory (empty = ~/.forkkeeper/logs)",
    )
    disable_file: bool = Field(
        default=False,
        description="Disable file logging (stderr only)",
    )

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("dir")
    @classmethod
    def validate_log_dir(cls, v: str) -> str:
        """Warn if log path exists but is not a directory."""
        if v:
            path = Path(v).expanduser()
            if path.exists() and not path.is_dir():
                warnings.warn(
                    f"Log path exists but is not a directory: {v}",
                    UserWarning,
                )
        return v


class ForkkeeperConfig(BaseModel):
    """Root configuration model."""

    model_config = ConfigDict(extra="forbid")

    version: int = Field(
        default=1,
        ge=1,
        description="Config schema version",
    )

    fork: ForkConfig = Field(default_factory=ForkConfig)
    git: GitConfig = Field(default_factory=GitConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> "ForkkeeperConfig":
        """Create config with all defaults."""
        return cls()
