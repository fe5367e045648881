import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .exceptions import IOFailure, PathConflictError, ProvisionError
from .fs import Filesystem, OsFilesystem
from .mounts import EntryKind, MountEntry
from .paths import ancestors, build_path_plan, join_root, normalize_path, parent
from .result import ProvisionReport, ProvisionResult

logger = logging.getLogger(__name__)


class TreeProvisioner:
    """Create both endpoints of a bind mount and mirror their metadata.

    Every missing directory from the top of the target down to the target
    (or its parent, for files) is created under the persistent root and under
    the runtime root. Ownership and permission bits are copied from the
    persistent side onto the runtime side at each level, whether or not
    anything was created. Existing file contents are never touched.

    Args:
        fs: Filesystem operations (defaults to the real filesystem)
        runtime_root: Prefix for every runtime-side path, "/" on a booted system
    """

    def __init__(self, fs: Optional[Filesystem] = None, runtime_root: str = "/"):
        self.fs = fs if fs is not None else OsFilesystem()
        self.runtime_root = normalize_path(runtime_root, allow_root=True)

    def provision(
        self,
        persistent_root: str,
        target: str,
        kind: Union[EntryKind, str],
    ) -> List[str]:
        """Provision ``target`` under ``persistent_root``.

        Returns:
            Paths created by this call, in creation order

        Raises:
            PathConflictError: If a path that must be a directory (or the
                file itself) exists with another type; nothing is modified
            IOFailure: If creating a path or copying metadata fails
        """
        kind = EntryKind(kind)
        target = normalize_path(target)
        walk_to = target if kind is EntryKind.DIRECTORY else parent(target)
        plan = build_path_plan(persistent_root, walk_to)

        levels = [
            (source, join_root(self.runtime_root, level)) for level, source in plan.levels
        ]
        leaf = None
        if kind is EntryKind.FILE:
            leaf = (
                join_root(plan.persistent_root, target),
                join_root(self.runtime_root, target),
            )

        self._check_conflicts(levels, leaf)

        created = []
        for source, runtime in levels:
            self._ensure_directory(source, created, announce=True)
            self._ensure_directory(runtime, created)
            self._copy_metadata(source, runtime)

        if leaf is not None:
            source, runtime = leaf
            self._ensure_file(source, created, announce=True)
            self._ensure_file(runtime, created)
            self._copy_metadata(source, runtime)

        return created

    def _check_conflicts(
        self,
        levels: List[Tuple[str, str]],
        leaf: Optional[Tuple[str, str]],
    ) -> None:
        for pair in levels:
            for path in pair:
                if self.fs.lexists(path) and not self.fs.is_dir(path):
                    raise PathConflictError(path, "directory")
        if leaf is not None:
            for path in leaf:
                if self.fs.lexists(path) and not self.fs.is_file(path):
                    raise PathConflictError(path, "regular file")

    def _ensure_directory(self, path: str, created: List[str], announce: bool = False) -> None:
        if self.fs.is_dir(path):
            return
        if announce:
            logger.info("Bind source '%s' does not exist, creating it", path)
        try:
            self.fs.mkdir(path)
        except FileExistsError:
            # Lost a race with another creator; fine as long as it is a directory
            if not self.fs.is_dir(path):
                raise PathConflictError(path, "directory") from None
            return
        except OSError as exc:
            raise IOFailure(path, "create directory", exc) from exc
        created.append(path)

    def _ensure_file(self, path: str, created: List[str], announce: bool = False) -> None:
        if self.fs.is_file(path):
            return
        if announce:
            logger.info("Bind source '%s' does not exist, creating it", path)
        try:
            self.fs.create_file(path)
        except FileExistsError:
            if not self.fs.is_file(path):
                raise PathConflictError(path, "regular file") from None
            return
        except OSError as exc:
            raise IOFailure(path, "create file", exc) from exc
        created.append(path)

    def _copy_metadata(self, source: str, target: str) -> None:
        # chown before chmod: chown clears setuid/setgid bits
        try:
            meta = self.fs.metadata(source)
        except OSError as exc:
            raise IOFailure(source, "read metadata of", exc) from exc
        try:
            self.fs.chown(target, meta.uid, meta.gid)
        except OSError as exc:
            raise IOFailure(target, "change ownership of", exc) from exc
        try:
            self.fs.chmod(target, meta.mode)
        except OSError as exc:
            raise IOFailure(target, "change permissions of", exc) from exc
        logger.debug(
            "Synchronized %s -> %s (uid=%d gid=%d mode=%04o)",
            source, target, meta.uid, meta.gid, meta.mode,
        )


def provision_entries(
    entries: Iterable[MountEntry],
    provisioner: Optional[TreeProvisioner] = None,
    workers: int = 1,
) -> ProvisionReport:
    """Provision every entry, isolating failures to the entry they occur in.

    Args:
        entries: Mount plan from build_mount_plan()
        provisioner: Provisioner to use (defaults to the real filesystem at "/")
        workers: Number of threads. Entries whose runtime or persistent
                 trees overlap always run sequentially, in plan order, on
                 the same thread (see group_overlapping()).

    Returns:
        ProvisionReport with one result per entry, in plan order
    """
    provisioner = provisioner if provisioner is not None else TreeProvisioner()
    entries = list(entries)

    if workers <= 1 or len(entries) < 2:
        return ProvisionReport([_provision_one(provisioner, entry) for entry in entries])

    results: List[Optional[ProvisionResult]] = [None] * len(entries)
    groups = group_overlapping(entries, provisioner.runtime_root)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ProvisionWorker") as executor:
        tasks = [executor.submit(_provision_group, provisioner, group) for group in groups]
        for future in as_completed(tasks):
            for index, result in future.result():
                results[index] = result

    return ProvisionReport(results)


def group_overlapping(
    entries: List[MountEntry],
    runtime_root: str = "/",
) -> List[List[Tuple[int, MountEntry]]]:
    """Partition entries so that any two touching the same directories share a group.

    An entry modifies the runtime tree below the top-level directory of its
    target and the persistent tree below the same directory under its root.
    Entries whose modified trees nest in or equal one another, directly or
    through other entries, run in one group. Each group keeps plan order and
    remembers the original position of every entry.
    """
    regions = []
    for entry in entries:
        top = ancestors(entry.target_path)[0]
        regions.append((join_root(runtime_root, top), join_root(entry.persistent_root, top)))

    owner = list(range(len(entries)))

    def find(index: int) -> int:
        while owner[index] != index:
            owner[index] = owner[owner[index]]
            index = owner[index]
        return index

    for i in range(len(entries)):
        for j in range(i + 1, len(entries)):
            if any(_nested(a, b) for a in regions[i] for b in regions[j]):
                owner[find(j)] = find(i)

    groups: Dict[int, List[Tuple[int, MountEntry]]] = {}
    for index, entry in enumerate(entries):
        groups.setdefault(find(index), []).append((index, entry))
    return list(groups.values())


def _nested(a: str, b: str) -> bool:
    return a == b or a.startswith(b + "/") or b.startswith(a + "/")


def _provision_group(
    provisioner: TreeProvisioner,
    group: List[Tuple[int, MountEntry]],
) -> List[Tuple[int, ProvisionResult]]:
    return [(index, _provision_one(provisioner, entry)) for index, entry in group]


def _provision_one(provisioner: TreeProvisioner, entry: MountEntry) -> ProvisionResult:
    try:
        created = provisioner.provision(entry.persistent_root, entry.target_path, entry.kind)
    except ProvisionError as exc:
        logger.error(
            "Failed to provision %s %s from %s: %s",
            entry.kind.value, entry.target_path, entry.persistent_root, exc,
        )
        return ProvisionResult(entry=entry, ok=False, error=exc)
    return ProvisionResult(entry=entry, created=created)
