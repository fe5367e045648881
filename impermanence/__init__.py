"""impermanence: Keep selected paths across reboots of an ephemeral root.

Declared files and directories are created both under a persistent root and
at their runtime location, with ownership and permissions copied from the
persistent side, so that the runtime path can be bind mounted from the
persistent copy.

Example:
    >>> from impermanence import StorageMapping, plan, provision
    >>> mappings = [StorageMapping("/persist", directories=("/var/lib/iwd",))]
    >>> [entry.source_device for entry in plan(mappings)]
    ['/persist/var/lib/iwd']
    >>> report = provision(mappings)
    >>> report.ok
    True

Main Components:
    - plan: Build the bind mount list from storage mappings
    - provision: Create and synchronize both endpoints of every mount
    - TreeProvisioner: Provision a single file or directory
    - ProvisionReport: Per-entry outcome of a provisioning run
"""

from .api import check, plan, provision
from .config import ImpermanenceConfig, load_config
from .exceptions import (
    AmbiguousKindError,
    ConfigurationError,
    DuplicateTargetError,
    ImpermanenceError,
    InvalidPathError,
    IOFailure,
    PathConflictError,
    PlanningError,
    PreflightError,
    ProvisionError,
)
from .mounts import EntryKind, MountEntry, StorageMapping, build_mount_plan
from .provision import TreeProvisioner, provision_entries
from .result import ProvisionReport, ProvisionResult

__version__ = "0.1.0"

__all__ = [
    "plan",
    "check",
    "provision",
    "build_mount_plan",
    "provision_entries",
    "load_config",
    "TreeProvisioner",
    "EntryKind",
    "StorageMapping",
    "MountEntry",
    "ImpermanenceConfig",
    "ProvisionResult",
    "ProvisionReport",
    "ImpermanenceError",
    "ConfigurationError",
    "InvalidPathError",
    "PlanningError",
    "DuplicateTargetError",
    "AmbiguousKindError",
    "PreflightError",
    "ProvisionError",
    "PathConflictError",
    "IOFailure",
]
