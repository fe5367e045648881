from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Sequence, Tuple

from .exceptions import AmbiguousKindError, ConfigurationError, DuplicateTargetError
from .paths import join_root, normalize_path


class EntryKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class StorageMapping:
    """Paths persisted under a single persistent root.

    Attributes:
        persistent_root: Durable storage location, e.g. "/persist"
        files: Absolute runtime paths of files to persist
        directories: Absolute runtime paths of directories to persist
    """

    persistent_root: str
    files: Tuple[str, ...] = ()
    directories: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(
            self, "persistent_root", normalize_path(self.persistent_root, allow_root=True)
        )
        object.__setattr__(self, "files", tuple(normalize_path(p) for p in self.files))
        object.__setattr__(
            self, "directories", tuple(normalize_path(p) for p in self.directories)
        )


@dataclass(frozen=True)
class MountEntry:
    """A single bind mount from the persistent copy onto the runtime path."""

    target_path: str
    source_device: str
    kind: EntryKind
    persistent_root: str
    options: Tuple[str, ...] = ("bind",)
    no_check: bool = True

    def fstab_line(self) -> str:
        """Render as an fstab(5) line; whitespace in paths is octal-escaped."""
        options = ",".join(self.options)
        passno = 0 if self.no_check else 2
        return (
            f"{_fstab_escape(self.source_device)} {_fstab_escape(self.target_path)} "
            f"none {options} 0 {passno}"
        )


def build_mount_plan(mappings: Iterable[StorageMapping]) -> List[MountEntry]:
    """Build and validate the mount plan for a set of storage mappings.

    Args:
        mappings: Storage mappings in declaration order

    Returns:
        One MountEntry per declared file and directory, ordered by mapping,
        then files, then directories

    Raises:
        ConfigurationError: If a persistent root is declared twice
        AmbiguousKindError: If a path is both a file and a directory of one mapping
        DuplicateTargetError: If two entries share a target path
    """
    entries = []
    for mapping in _unique_roots(mappings):
        validate_mapping(mapping)
        root = mapping.persistent_root
        for kind, paths in (
            (EntryKind.FILE, mapping.files),
            (EntryKind.DIRECTORY, mapping.directories),
        ):
            for path in paths:
                entries.append(
                    MountEntry(
                        target_path=path,
                        source_device=join_root(root, path),
                        kind=kind,
                        persistent_root=root,
                    )
                )

    validate_mounts(entries)
    return entries


def validate_mapping(mapping: StorageMapping) -> None:
    """Reject paths declared both as a file and a directory.

    Raises:
        AmbiguousKindError: On the first path found in both sets
    """
    directories = set(mapping.directories)
    for path in mapping.files:
        if path in directories:
            raise AmbiguousKindError(mapping.persistent_root, path)


def validate_mounts(entries: Sequence[MountEntry]) -> None:
    """Ensure no two entries claim the same target path.

    Raises:
        DuplicateTargetError: Naming the target and both persistent roots
    """
    claimed: Dict[str, MountEntry] = {}
    for entry in entries:
        previous = claimed.get(entry.target_path)
        if previous is not None:
            raise DuplicateTargetError(
                entry.target_path, previous.persistent_root, entry.persistent_root
            )
        claimed[entry.target_path] = entry


def render_fstab(entries: Iterable[MountEntry]) -> str:
    return "".join(entry.fstab_line() + "\n" for entry in entries)


def _unique_roots(mappings: Iterable[StorageMapping]) -> List[StorageMapping]:
    seen = set()
    result = []
    for mapping in mappings:
        if mapping.persistent_root in seen:
            raise ConfigurationError(
                f"Persistent root {mapping.persistent_root!r} is declared more than once"
            )
        seen.add(mapping.persistent_root)
        result.append(mapping)
    return result


def _fstab_escape(path: str) -> str:
    return (
        path.replace("\\", "\\134")
        .replace(" ", "\\040")
        .replace("\t", "\\011")
        .replace("\n", "\\012")
    )
