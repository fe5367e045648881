import errno
import os
import posixpath
import sys
from dataclasses import dataclass

import pytest

from impermanence.fs import Metadata

POSIX_ONLY = pytest.mark.skipif(sys.platform == "win32", reason="POSIX-only")
IS_ROOT = hasattr(os, "geteuid") and os.geteuid() == 0
ROOT_ONLY = pytest.mark.skipif(not IS_ROOT, reason="requires root to change ownership")


@dataclass
class Node:
    kind: str
    uid: int
    gid: int
    mode: int
    content: bytes = b""


class FakeFilesystem:
    """In-memory filesystem implementing the provisioner's Filesystem protocol.

    New paths are owned by ``uid``/``gid``. Paths under a ``deny()``-ed prefix
    reject every mutation with EACCES. Every successful mutation is appended
    to ``mutations``.
    """

    def __init__(self, uid=0, gid=0):
        self.uid = uid
        self.gid = gid
        self.nodes = {"/": Node("dir", 0, 0, 0o755)}
        self.denied = set()
        self.mutations = []

    # setup helpers

    def add_dir(self, path, uid=0, gid=0, mode=0o755):
        self._add_parents(path)
        self.nodes[path] = Node("dir", uid, gid, mode)

    def add_file(self, path, content=b"", uid=0, gid=0, mode=0o644):
        self._add_parents(path)
        self.nodes[path] = Node("file", uid, gid, mode, content)

    def deny(self, prefix):
        self.denied.add(prefix)

    def _add_parents(self, path):
        parent = posixpath.dirname(path)
        if parent not in self.nodes:
            self.add_dir(parent)

    def _check_writable(self, path):
        for prefix in self.denied:
            if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
                raise PermissionError(errno.EACCES, "Permission denied", path)

    def _check_parent(self, path):
        parent = self.nodes.get(posixpath.dirname(path))
        if parent is None:
            raise FileNotFoundError(errno.ENOENT, "No such file or directory", path)
        if parent.kind != "dir":
            raise NotADirectoryError(errno.ENOTDIR, "Not a directory", path)

    def _node(self, path):
        node = self.nodes.get(path)
        if node is None:
            raise FileNotFoundError(errno.ENOENT, "No such file or directory", path)
        return node

    # Filesystem protocol

    def lexists(self, path):
        return path in self.nodes

    def is_dir(self, path):
        node = self.nodes.get(path)
        return node is not None and node.kind == "dir"

    def is_file(self, path):
        node = self.nodes.get(path)
        return node is not None and node.kind == "file"

    def mkdir(self, path):
        if path in self.nodes:
            raise FileExistsError(errno.EEXIST, "File exists", path)
        self._check_parent(path)
        self._check_writable(path)
        self.nodes[path] = Node("dir", self.uid, self.gid, 0o755)
        self.mutations.append(("mkdir", path))

    def create_file(self, path):
        if path in self.nodes:
            raise FileExistsError(errno.EEXIST, "File exists", path)
        self._check_parent(path)
        self._check_writable(path)
        self.nodes[path] = Node("file", self.uid, self.gid, 0o644)
        self.mutations.append(("create", path))

    def metadata(self, path):
        node = self._node(path)
        return Metadata(uid=node.uid, gid=node.gid, mode=node.mode)

    def chown(self, path, uid, gid):
        node = self._node(path)
        self._check_writable(path)
        node.uid, node.gid = uid, gid
        self.mutations.append(("chown", path, uid, gid))

    def chmod(self, path, mode):
        node = self._node(path)
        self._check_writable(path)
        node.mode = mode
        self.mutations.append(("chmod", path, mode))

    def snapshot(self):
        return {
            path: (node.kind, node.uid, node.gid, node.mode, node.content)
            for path, node in self.nodes.items()
        }


class RacingFilesystem(FakeFilesystem):
    """Fake filesystem where another writer wins selected create calls.

    For every path in ``racers``, ``mkdir``/``create_file`` first creates the
    path with the given kind ("dir" or "file"), owned by uid/gid 4242, and
    then fails with EEXIST.
    """

    def __init__(self, racers, **kwargs):
        super().__init__(**kwargs)
        self.racers = dict(racers)

    def _lose_race(self, path):
        kind = self.racers.pop(path, None)
        if kind is not None:
            self.nodes[path] = Node(kind, 4242, 4242, 0o700)
            raise FileExistsError(errno.EEXIST, "File exists", path)

    def mkdir(self, path):
        self._lose_race(path)
        super().mkdir(path)

    def create_file(self, path):
        self._lose_race(path)
        super().create_file(path)


@pytest.fixture
def fake_fs():
    """Fake filesystem with an empty persistent root at /persist."""
    fs = FakeFilesystem()
    fs.add_dir("/persist")
    return fs


@pytest.fixture
def real_roots(tmp_path):
    """Persistent root and runtime root as real directories under tmp_path."""
    persist = tmp_path / "persist"
    runtime = tmp_path / "root"
    persist.mkdir()
    runtime.mkdir()
    return persist, runtime


def tree_snapshot(*roots):
    """Kind, owner, mode and content of every path below the given roots."""
    snapshot = {}
    for root in roots:
        for dirpath, dirnames, filenames in os.walk(str(root)):
            for name in dirnames + filenames:
                path = os.path.join(dirpath, name)
                st = os.lstat(path)
                content = None
                if name in filenames:
                    with open(path, "rb") as f:
                        content = f.read()
                snapshot[path] = (st.st_uid, st.st_gid, st.st_mode, content)
    return snapshot
