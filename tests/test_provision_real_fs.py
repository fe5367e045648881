import os
import stat

import pytest

from conftest import POSIX_ONLY, ROOT_ONLY, tree_snapshot
from impermanence import StorageMapping, provision
from impermanence.exceptions import PathConflictError
from impermanence.mounts import EntryKind
from impermanence.provision import TreeProvisioner


def _mode(path):
    return stat.S_IMODE(os.stat(str(path)).st_mode)


@POSIX_ONLY
class TestRealFilesystem:
    def test_ancestor_completeness(self, real_roots):
        persist, runtime = real_roots
        TreeProvisioner(runtime_root=str(runtime)).provision(
            str(persist), "/a/b/c", EntryKind.DIRECTORY
        )

        for base in (persist, runtime):
            assert (base / "a").is_dir()
            assert (base / "a" / "b").is_dir()
            assert (base / "a" / "b" / "c").is_dir()

    def test_idempotence(self, real_roots):
        persist, runtime = real_roots
        provisioner = TreeProvisioner(runtime_root=str(runtime))

        provisioner.provision(str(persist), "/var/lib/iwd", EntryKind.DIRECTORY)
        provisioner.provision(str(persist), "/etc/machine-id", EntryKind.FILE)
        first = tree_snapshot(persist, runtime)

        provisioner.provision(str(persist), "/var/lib/iwd", EntryKind.DIRECTORY)
        provisioner.provision(str(persist), "/etc/machine-id", EntryKind.FILE)

        assert tree_snapshot(persist, runtime) == first

    def test_modes_follow_persistent_side(self, real_roots):
        persist, runtime = real_roots
        (persist / "srv").mkdir()
        os.chmod(str(persist / "srv"), 0o750)
        (persist / "srv" / "app.conf").write_text("key = value\n")
        os.chmod(str(persist / "srv" / "app.conf"), 0o640)
        (runtime / "srv").mkdir()
        os.chmod(str(runtime / "srv"), 0o777)
        (runtime / "srv" / "app.conf").write_text("stale\n")
        os.chmod(str(runtime / "srv" / "app.conf"), 0o644)

        TreeProvisioner(runtime_root=str(runtime)).provision(
            str(persist), "/srv/app.conf", EntryKind.FILE
        )

        assert _mode(runtime / "srv") == 0o750
        assert _mode(runtime / "srv" / "app.conf") == 0o640
        assert (runtime / "srv" / "app.conf").read_text() == "stale\n"
        assert (persist / "srv" / "app.conf").read_text() == "key = value\n"

    def test_content_preserved_when_source_missing(self, real_roots):
        persist, runtime = real_roots
        (runtime / "etc").mkdir()
        (runtime / "etc" / "machine-id").write_text("0123456789abcdef\n")

        TreeProvisioner(runtime_root=str(runtime)).provision(
            str(persist), "/etc/machine-id", EntryKind.FILE
        )

        assert (persist / "etc" / "machine-id").read_text() == ""
        assert (runtime / "etc" / "machine-id").read_text() == "0123456789abcdef\n"

    def test_conflict_leaves_tree_untouched(self, real_roots):
        persist, runtime = real_roots
        (runtime / "a").write_text("not a directory")
        before = tree_snapshot(persist, runtime)

        with pytest.raises(PathConflictError) as exc_info:
            TreeProvisioner(runtime_root=str(runtime)).provision(
                str(persist), "/a/b", EntryKind.DIRECTORY
            )

        assert exc_info.value.path == str(runtime / "a")
        assert tree_snapshot(persist, runtime) == before

    def test_dangling_symlink_is_a_conflict(self, real_roots):
        persist, runtime = real_roots
        (runtime / "etc").mkdir()
        os.symlink(str(runtime / "nowhere"), str(runtime / "etc" / "hostid"))

        with pytest.raises(PathConflictError):
            TreeProvisioner(runtime_root=str(runtime)).provision(
                str(persist), "/etc/hostid", EntryKind.FILE
            )

    def test_provision_api_reports_per_entry(self, real_roots, tmp_path):
        persist, runtime = real_roots
        mappings = [
            StorageMapping(str(tmp_path / "missing"), directories=("/x",)),
            StorageMapping(str(persist), directories=("/y",), files=("/etc/hostid",)),
        ]

        report = provision(mappings, runtime_root=str(runtime))

        assert not report.ok
        assert [r.entry.target_path for r in report.failed] == ["/x"]
        assert (runtime / "y").is_dir()
        assert (runtime / "etc" / "hostid").is_file()
        assert not (runtime / "x").exists()


@POSIX_ONLY
@ROOT_ONLY
class TestOwnership:
    def test_owner_follows_persistent_side(self, real_roots):
        persist, runtime = real_roots
        (persist / "home").mkdir()
        (persist / "home" / "alice").mkdir()
        os.chown(str(persist / "home" / "alice"), 1000, 1000)
        os.chmod(str(persist / "home" / "alice"), 0o700)

        TreeProvisioner(runtime_root=str(runtime)).provision(
            str(persist), "/home/alice", EntryKind.DIRECTORY
        )

        st = os.stat(str(runtime / "home" / "alice"))
        assert (st.st_uid, st.st_gid) == (1000, 1000)
        assert stat.S_IMODE(st.st_mode) == 0o700
