import os
import stat
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class Metadata:
    """Ownership and permission bits of a path."""

    uid: int
    gid: int
    mode: int


class Filesystem(Protocol):
    """Filesystem operations used by the provisioner.

    All paths are absolute. ``is_dir``/``is_file`` follow symlinks, ``lexists``
    does not. Failures surface as ``OSError``.
    """

    def lexists(self, path: str) -> bool: ...

    def is_dir(self, path: str) -> bool: ...

    def is_file(self, path: str) -> bool: ...

    def mkdir(self, path: str) -> None: ...

    def create_file(self, path: str) -> None: ...

    def metadata(self, path: str) -> Metadata: ...

    def chown(self, path: str, uid: int, gid: int) -> None: ...

    def chmod(self, path: str, mode: int) -> None: ...


class OsFilesystem:
    """Filesystem backed by the ``os`` module."""

    def lexists(self, path: str) -> bool:
        return os.path.lexists(path)

    def is_dir(self, path: str) -> bool:
        return os.path.isdir(path)

    def is_file(self, path: str) -> bool:
        return os.path.isfile(path)

    def mkdir(self, path: str) -> None:
        os.mkdir(path)

    def create_file(self, path: str) -> None:
        # O_EXCL: never open, and so never truncate, an existing file
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o666)
        os.close(fd)

    def metadata(self, path: str) -> Metadata:
        st = os.stat(path)
        return Metadata(uid=st.st_uid, gid=st.st_gid, mode=stat.S_IMODE(st.st_mode))

    def chown(self, path: str, uid: int, gid: int) -> None:
        os.chown(path, uid, gid)

    def chmod(self, path: str, mode: int) -> None:
        os.chmod(path, mode)
