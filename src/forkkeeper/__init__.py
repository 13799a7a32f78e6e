"""forkkeeper: keep a git fork in step with its upstream."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("forkkeeper")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"  # Fallback for editable installs without metadata

from .errors import (  # noqa: F401
    BranchNotFoundError,
    ForkkeeperError,
    NoMasterBranchError,
    RebaseConflictError,
)
from .reconciler import BranchReconciler, MasterSource, resolve_master_source  # noqa: F401

__all__ = [
    "BranchReconciler",
    "BranchNotFoundError",
    "ForkkeeperError",
    "MasterSource",
    "NoMasterBranchError",
    "RebaseConflictError",
    "resolve_master_source",
    "__version__",
]
