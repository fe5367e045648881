import logging
from typing import Iterable, List, Mapping, Optional

from .fs import Filesystem
from .mounts import MountEntry, StorageMapping, build_mount_plan
from .preflight import assert_needed_for_boot
from .provision import TreeProvisioner, provision_entries
from .result import ProvisionReport

logger = logging.getLogger(__name__)


def plan(mappings: Iterable[StorageMapping]) -> List[MountEntry]:
    """Compute the bind mounts for a set of storage mappings.

    Args:
        mappings: Storage mappings in declaration order

    Returns:
        One MountEntry per declared file and directory

    Raises:
        ConfigurationError: If the mappings are malformed (duplicate roots,
            duplicate targets, or paths declared as both file and directory)
    """
    return build_mount_plan(mappings)


def check(
    mappings: Iterable[StorageMapping],
    *,
    filesystems: Optional[Mapping[str, bool]] = None,
) -> List[MountEntry]:
    """Validate mappings without touching the filesystem.

    Args:
        mappings: Storage mappings in declaration order
        filesystems: Mount point -> needed_for_boot; skipped if None

    Returns:
        The validated mount plan

    Raises:
        ConfigurationError: If planning fails
        PreflightError: If a persistent root is not needed for boot
    """
    mappings = list(mappings)
    entries = build_mount_plan(mappings)
    if filesystems is not None:
        assert_needed_for_boot(mappings, filesystems)
    return entries


def provision(
    mappings: Iterable[StorageMapping],
    *,
    filesystems: Optional[Mapping[str, bool]] = None,
    runtime_root: str = "/",
    workers: int = 1,
    fs: Optional[Filesystem] = None,
) -> ProvisionReport:
    """Create both endpoints of every bind mount and mirror their metadata.

    Planning and preflight failures abort before anything is created.
    Failures provisioning one entry are recorded in the report and do not
    stop the remaining entries.

    Args:
        mappings: Storage mappings in declaration order
        filesystems: Mount point -> needed_for_boot; preflight skipped if None
        runtime_root: Root of the runtime tree ("/" on a booted system)
        workers: Threads to provision disjoint top-level trees in parallel
        fs: Filesystem implementation (defaults to the real filesystem)

    Returns:
        ProvisionReport with one result per mount entry

    Raises:
        ConfigurationError: If planning fails
        PreflightError: If a persistent root is not needed for boot
    """
    entries = check(mappings, filesystems=filesystems)
    provisioner = TreeProvisioner(fs=fs, runtime_root=runtime_root)

    logger.debug("Provisioning %d entries under %s", len(entries), provisioner.runtime_root)
    report = provision_entries(entries, provisioner=provisioner, workers=max(1, workers))

    if not report.ok:
        logger.error(
            "%d of %d entries failed; persistence is not guaranteed for them",
            len(report.failed), len(report.results),
        )
    return report