from dataclasses import dataclass
from typing import List, Tuple

from .exceptions import InvalidPathError

SEPARATOR = "/"


@dataclass(frozen=True)
class PathPlan:
    """Ordered walk from the top-most component of a target down to the target.

    Unlike a plain ancestor list, ``levels`` ends with the target itself.

    Attributes:
        target: Normalized runtime path
        persistent_root: Normalized persistent root
        levels: (target_ancestor, source_ancestor) pairs, root-to-leaf,
                including the target itself
    """

    target: str
    persistent_root: str
    levels: Tuple[Tuple[str, str], ...]


def normalize_path(path: str, *, allow_root: bool = False) -> str:
    """Normalize an absolute path.

    Trailing and repeated separators are dropped, so ``/var/lib/iwd/`` and
    ``/var//lib/iwd`` both become ``/var/lib/iwd``.

    Args:
        path: Absolute path to normalize
        allow_root: Accept ``/`` itself (persistent roots may be ``/``)

    Raises:
        InvalidPathError: If the path is empty, relative, contains ``.`` or
            ``..`` components, or is ``/`` when not allowed
    """
    if not isinstance(path, str) or not path:
        raise InvalidPathError(f"Path must be a non-empty string, got {path!r}")
    if not path.startswith(SEPARATOR):
        raise InvalidPathError(f"Path must be absolute: {path!r}")

    parts = [part for part in path.split(SEPARATOR) if part]
    for part in parts:
        if part in (".", ".."):
            raise InvalidPathError(f"Path must not contain {part!r} components: {path!r}")

    if not parts:
        if allow_root:
            return SEPARATOR
        raise InvalidPathError("The filesystem root itself cannot be persisted")

    return SEPARATOR + SEPARATOR.join(parts)


def ancestors(path: str) -> List[str]:
    """Incremental prefixes of ``path``, e.g. ``/var/lib`` -> ``[/var, /var/lib]``."""
    result = []
    current = ""
    for part in path.split(SEPARATOR):
        if not part:
            continue
        current = f"{current}{SEPARATOR}{part}"
        result.append(current)
    return result


def parent(path: str) -> str:
    head, _, _ = path.rstrip(SEPARATOR).rpartition(SEPARATOR)
    return head or SEPARATOR


def join_root(root: str, path: str) -> str:
    """Place absolute ``path`` below ``root`` (``/persist`` + ``/var`` -> ``/persist/var``)."""
    if root == SEPARATOR:
        return path
    return root + path


def build_path_plan(persistent_root: str, target: str) -> PathPlan:
    root = normalize_path(persistent_root, allow_root=True)
    target = normalize_path(target, allow_root=True)
    levels = tuple((level, join_root(root, level)) for level in ancestors(target))
    return PathPlan(target=target, persistent_root=root, levels=levels)
