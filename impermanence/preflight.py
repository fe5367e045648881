from typing import Iterable, List, Mapping

from .exceptions import PreflightError
from .mounts import StorageMapping
from .paths import normalize_path


def unavailable_roots(
    mappings: Iterable[StorageMapping],
    filesystems: Mapping[str, bool],
) -> List[str]:
    """Persistent roots whose filesystem is not marked as needed for boot.

    Args:
        mappings: Storage mappings to check
        filesystems: Mount point -> needed_for_boot flag

    Returns:
        Offending persistent roots, in mapping order
    """
    needed = {
        normalize_path(mount_point, allow_root=True): flag
        for mount_point, flag in filesystems.items()
    }
    return [
        mapping.persistent_root
        for mapping in mappings
        if needed.get(mapping.persistent_root) is not True
    ]


def assert_needed_for_boot(
    mappings: Iterable[StorageMapping],
    filesystems: Mapping[str, bool],
) -> None:
    """Ensure every persistent root is mounted before provisioning runs.

    Raises:
        PreflightError: Listing every root that is missing from ``filesystems``
            or not flagged ``needed_for_boot``
    """
    offenders = unavailable_roots(mappings, filesystems)
    if offenders:
        listing = "\n  ".join(offenders)
        raise PreflightError(
            "All filesystems backing persistent storage must be marked "
            "needed_for_boot.\n"
            f"Please fix / remove the following paths:\n  {listing}"
        )
