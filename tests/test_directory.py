"""
Tests for restricted directories.
"""

import logging
import os
import re
import stat
import tarfile
import tempfile
from pathlib import Path

import pytest

from phoundation_fs.filesystem import (
    DirectoryNotMountedException,
    FileExistsException,
    FileNotReadableException,
    FileSystemConfig,
    FsDirectory,
    FsFile,
    MountState,
    OutOfBoundsException,
    PathNotDirectoryException,
    Restrictions,
    RestrictionsException,
    WriteRestrictionsException,
)
from phoundation_fs.filesystem import mounts


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def restrictions(temp_dir):
    """Create writable restrictions covering the temporary directory."""
    return Restrictions(temp_dir, write=True, label="test")


def make_file(path: Path, content: str = "x") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


class TestFsDirectoryEnsure:
    """Test directory creation."""

    def test_ensure_creates_ancestors(self, temp_dir, restrictions):
        """Test that missing ancestors are created with the given mode."""
        directory = FsDirectory(temp_dir / "a" / "b" / "c", restrictions).ensure("0700")

        assert directory.is_directory()
        for path in (temp_dir / "a", temp_dir / "a" / "b", temp_dir / "a" / "b" / "c"):
            assert stat.S_IMODE(os.stat(path).st_mode) == 0o700

    def test_ensure_default_mode(self, temp_dir, restrictions):
        """Test the configured default mode."""
        config = FileSystemConfig(directory_mode="0751")
        FsDirectory(temp_dir / "a", restrictions, config=config).ensure()
        assert stat.S_IMODE(os.stat(temp_dir / "a").st_mode) == 0o751

    def test_ensure_existing(self, temp_dir, restrictions):
        """Test that ensuring an existing directory keeps its content."""
        make_file(temp_dir / "a" / "keep.txt")
        FsDirectory(temp_dir / "a", restrictions).ensure()
        assert (temp_dir / "a" / "keep.txt").exists()

    def test_ensure_replaces_file_in_the_way(self, temp_dir, restrictions):
        """Test that a file blocking a component is deleted."""
        make_file(temp_dir / "a")
        FsDirectory(temp_dir / "a" / "b", restrictions).ensure()
        assert (temp_dir / "a" / "b").is_dir()

    def test_ensure_outside_restrictions(self, restrictions):
        """Test that directories outside the restrictions are refused."""
        with pytest.raises(RestrictionsException):
            FsDirectory("/phoundation-fs-test-missing/dir", restrictions).ensure()
        assert not os.path.exists("/phoundation-fs-test-missing")

    def test_ensure_checks_each_component(self, temp_dir):
        """Test that every created ancestor must be covered by the restrictions."""
        restrictions = Restrictions(temp_dir / "a" / "b", write=True)
        with pytest.raises(RestrictionsException):
            FsDirectory(temp_dir / "a" / "b", restrictions).ensure()
        assert not (temp_dir / "a").exists()

    def test_ensure_clear(self, temp_dir, restrictions):
        """Test that clear recreates an empty directory."""
        make_file(temp_dir / "a" / "sub" / "file")
        directory = FsDirectory(temp_dir / "a", restrictions).ensure(clear=True)
        assert directory.is_empty()

    def test_ensure_clear_readonly_subtree(self, temp_dir):
        """Test that clear refuses trees containing a read-only restriction."""
        make_file(temp_dir / "a" / "ro" / "file")
        restrictions = Restrictions({temp_dir: True, temp_dir / "a" / "ro": False})

        with pytest.raises(WriteRestrictionsException):
            FsDirectory(temp_dir / "a", restrictions).ensure(clear=True)
        assert (temp_dir / "a" / "ro" / "file").exists()

    def test_ensure_writable_creates_directory(self, temp_dir, restrictions):
        """Test that ensure_writable creates a missing directory, not a file."""
        directory = FsDirectory(temp_dir / "a" / "b", restrictions).ensure_writable("0700")

        assert directory.is_directory()
        assert stat.S_IMODE(os.stat(temp_dir / "a" / "b").st_mode) == 0o700

    def test_ensure_readable_default_directory_mode(self, temp_dir, restrictions):
        """Test the configured directory mode is used by default."""
        config = FileSystemConfig(directory_mode="0751")
        FsDirectory(temp_dir / "a", restrictions, config=config).ensure_readable()
        assert stat.S_IMODE(os.stat(temp_dir / "a").st_mode) == 0o751


class TestFsDirectoryClear:
    """Test clear_directory and is_empty."""

    def test_clear_empty_chain(self, temp_dir, restrictions):
        """Test that empty ancestors are removed up to the restriction prefix."""
        (temp_dir / "a" / "b" / "c").mkdir(parents=True)
        FsDirectory(temp_dir / "a" / "b" / "c", restrictions).clear_directory()

        assert not (temp_dir / "a").exists()
        assert temp_dir.exists()

    def test_clear_until_directory(self, temp_dir, restrictions):
        """Test that until_directory is kept."""
        (temp_dir / "a" / "b" / "c").mkdir(parents=True)
        FsDirectory(temp_dir / "a" / "b" / "c", restrictions).clear_directory(temp_dir / "a")

        assert not (temp_dir / "a" / "b").exists()
        assert (temp_dir / "a").is_dir()

    def test_clear_stops_at_non_empty(self, temp_dir, restrictions):
        """Test that non-empty directories are kept."""
        make_file(temp_dir / "a" / "b" / "file")
        FsDirectory(temp_dir / "a" / "b", restrictions).clear_directory()
        assert (temp_dir / "a" / "b" / "file").exists()

    def test_clear_not_a_directory(self, temp_dir, restrictions):
        """Test that files cannot be cleared."""
        make_file(temp_dir / "file")
        with pytest.raises(PathNotDirectoryException):
            FsDirectory(temp_dir / "file", restrictions).clear_directory()

    def test_is_empty(self, temp_dir, restrictions):
        """Test is_empty counts hidden entries."""
        (temp_dir / "a").mkdir()
        directory = FsDirectory(temp_dir / "a", restrictions)
        assert directory.is_empty()

        make_file(temp_dir / "a" / ".hidden")
        assert not directory.is_empty()

    def test_clear_tree_symlinks(self, temp_dir, restrictions):
        """Test removing dead symlinks and the directories they leave empty."""
        make_file(temp_dir / "live")
        (temp_dir / "sub").mkdir()
        os.symlink(temp_dir / "missing", temp_dir / "sub" / "dead")
        os.symlink(temp_dir / "live", temp_dir / "alive")

        count = FsDirectory(temp_dir, restrictions).clear_tree_symlinks(clean=True)

        assert count == 1
        assert not (temp_dir / "sub").exists()
        assert (temp_dir / "alive").is_symlink()


class TestFsDirectoryScan:
    """Test scanning and listing."""

    @pytest.fixture
    def populated(self, temp_dir):
        """Directory with visible, hidden and nested entries."""
        for name in ("a.jpg", "b.png", "c.txt", "Upper.TXT", ".hidden.jpg"):
            make_file(temp_dir / name)
        (temp_dir / "sub").mkdir()
        return temp_dir

    def test_scan_braces(self, populated, restrictions):
        """Test brace expansion in patterns."""
        files = FsDirectory(populated, restrictions).scan("*.{jpg,png}")
        assert files.get_basenames() == ["a.jpg", "b.png"]

    def test_scan_hidden(self, populated, restrictions):
        """Test hidden entries need hidden or an explicit dot pattern."""
        directory = FsDirectory(populated, restrictions)
        assert directory.scan("*.jpg", hidden=True).get_basenames() == [".hidden.jpg", "a.jpg"]
        assert directory.scan(".*").get_basenames() == [".hidden.jpg"]

    def test_scan_case_insensitive(self, populated, restrictions):
        """Test case insensitive matching."""
        directory = FsDirectory(populated, restrictions)
        assert directory.scan("*.txt").get_basenames() == ["c.txt"]
        assert directory.scan("*.txt", case_sensitive=False).get_basenames() == ["Upper.TXT", "c.txt"]

    def test_scan_types(self, populated, restrictions):
        """Test that entries are wrapped as files and directories."""
        files = FsDirectory(populated, restrictions).scan()
        by_name = {entry.basename: entry for entry in files}
        assert isinstance(by_name["sub"], FsDirectory)
        assert isinstance(by_name["a.jpg"], FsFile)
        assert by_name["a.jpg"].restrictions is restrictions

    def test_scan_regex(self, populated, restrictions):
        """Test regex scanning."""
        files = FsDirectory(populated, restrictions).scan_regex(r"\.(png|txt)$")
        assert files.get_basenames() == ["b.png", "c.txt"]

    def test_get_files_object_reload(self, populated, restrictions):
        """Test the cached listing is only refreshed on reload."""
        directory = FsDirectory(populated, restrictions)
        first = directory.get_files_object()
        make_file(populated / "new.txt")

        assert directory.get_files_object() is first
        assert len(directory.get_files_object(reload=True)) == len(first) + 1

    def test_list_tree(self, temp_dir, restrictions):
        """Test recursive listing with filters."""
        make_file(temp_dir / "z.txt")
        make_file(temp_dir / "a" / "x.log")
        make_file(temp_dir / "a" / "b" / "y.log")
        directory = FsDirectory(temp_dir, restrictions)

        assert directory.list_tree([r"\.log$"]) == [
            str(temp_dir / "a" / "x.log"),
            str(temp_dir / "a" / "b" / "y.log"),
        ]
        assert directory.list_tree(recursive=False) == [str(temp_dir / "z.txt")]

    def test_has_file_and_count(self, populated, restrictions):
        """Test has_file and get_count."""
        make_file(populated / "sub" / "inner.txt")
        directory = FsDirectory(populated, restrictions)

        assert directory.has_file("a.jpg")
        assert not directory.has_file("missing.jpg")
        assert directory.get_count() == 6
        assert directory.get_count(recursive=True) == 7

    def test_scan_upwards_for_file(self, temp_dir, restrictions):
        """Test finding a file in an ancestor directory."""
        make_file(temp_dir / ".project")
        (temp_dir / "a" / "b").mkdir(parents=True)

        found = FsDirectory(temp_dir / "a" / "b", restrictions).scan_upwards_for_file(".project")
        assert found.path == str(temp_dir / ".project")
        assert FsDirectory(temp_dir / "a", restrictions).scan_upwards_for_file("nowhere") is None


class TestFsDirectorySums:
    """Test tree sizes and counts."""

    def test_size_and_count_are_additive(self, temp_dir, restrictions):
        """Test that the tree total equals the sum of its parts."""
        make_file(temp_dir / "root.bin", "1234")
        make_file(temp_dir / "a" / "one.bin", "12")
        make_file(temp_dir / "a" / "two.bin", "123")
        make_file(temp_dir / "b" / "c" / "three.bin", "1")

        total = FsDirectory(temp_dir, restrictions)
        parts = [FsDirectory(temp_dir / name, restrictions) for name in ("a", "b")]

        assert total.tree_file_size() == 10
        assert total.tree_file_size() == 4 + sum(part.tree_file_size() for part in parts)
        assert total.tree_file_count() == 4
        assert total.tree_file_count() == 1 + sum(part.tree_file_count() for part in parts)

    def test_dead_symlinks_are_skipped(self, temp_dir, restrictions, caplog):
        """Test dead symlinks contribute nothing and are logged."""
        make_file(temp_dir / "a.bin", "12345")
        os.symlink(temp_dir / "missing", temp_dir / "dead")

        with caplog.at_level(logging.WARNING):
            directory = FsDirectory(temp_dir, restrictions)
            assert directory.tree_file_size() == 5
            assert directory.tree_file_count() == 1

        assert "dead symlink" in caplog.text

    @staticmethod
    def fail_scandir(monkeypatch, failing: Path, error: type):
        original = os.scandir

        def scandir(path="."):
            if os.fspath(path) == str(failing):
                raise error(13, "Permission denied", os.fspath(path))
            return original(path)

        monkeypatch.setattr(os, "scandir", scandir)

    def test_unreadable_subdirectory_raises(self, temp_dir, restrictions, monkeypatch):
        """Test that an unreadable subdirectory fails the walk instead of undercounting."""
        make_file(temp_dir / "a.bin", "12345")
        make_file(temp_dir / "locked" / "b.bin", "123")
        self.fail_scandir(monkeypatch, temp_dir / "locked", PermissionError)
        directory = FsDirectory(temp_dir, restrictions)

        with pytest.raises(FileNotReadableException) as exc_info:
            directory.tree_file_size()
        assert exc_info.value.path == str(temp_dir / "locked")
        assert isinstance(exc_info.value.__cause__, PermissionError)

        with pytest.raises(FileNotReadableException):
            directory.tree_file_count()
        with pytest.raises(FileNotReadableException):
            directory.list_tree()
        with pytest.raises(FileNotReadableException):
            directory.get_count(recursive=True)

    def test_vanished_subdirectory_is_skipped(self, temp_dir, restrictions, monkeypatch, caplog):
        """Test that a directory disappearing during the walk is logged and skipped."""
        make_file(temp_dir / "a.bin", "12345")
        make_file(temp_dir / "gone" / "b.bin", "123")
        self.fail_scandir(monkeypatch, temp_dir / "gone", FileNotFoundError)

        with caplog.at_level(logging.WARNING):
            assert FsDirectory(temp_dir, restrictions).tree_file_size() == 5

        assert "disappeared" in caplog.text

    @pytest.mark.skipif(os.geteuid() == 0, reason="root ignores permission bits")
    def test_chmod_000_subdirectory_raises(self, temp_dir, restrictions):
        """Test a real unreadable subdirectory."""
        make_file(temp_dir / "locked" / "b.bin", "123")
        os.chmod(temp_dir / "locked", 0)
        try:
            with pytest.raises(FileNotReadableException):
                FsDirectory(temp_dir, restrictions).tree_file_size()
        finally:
            os.chmod(temp_dir / "locked", 0o755)

    def test_sums_require_directory(self, temp_dir, restrictions):
        """Test sums on a file raise."""
        make_file(temp_dir / "file")
        with pytest.raises(PathNotDirectoryException):
            FsDirectory(temp_dir / "file", restrictions).tree_file_size()

    def test_get_duplicate_files(self, temp_dir, restrictions):
        """Test grouping identical files."""
        make_file(temp_dir / "a.txt", "same")
        make_file(temp_dir / "d.txt", "diff")
        make_file(temp_dir / "b" / "c.txt", "same")
        directory = FsDirectory(temp_dir, restrictions)

        assert directory.get_duplicate_files() == [
            [str(temp_dir / "a.txt"), str(temp_dir / "b" / "c.txt")]
        ]
        assert directory.get_duplicate_files(max_size=3) == []


class TestFsDirectorySingle:
    """Test get_single_file and get_single_directory."""

    def test_single_file(self, temp_dir, restrictions):
        """Test the only file is returned, ignoring dot entries."""
        make_file(temp_dir / "only.txt")
        make_file(temp_dir / ".hidden")
        (temp_dir / "sub").mkdir()
        directory = FsDirectory(temp_dir, restrictions)

        assert directory.get_single_file().path == str(temp_dir / "only.txt")
        assert directory.get_single_directory().path == str(temp_dir / "sub")

    def test_single_file_multiple(self, temp_dir, restrictions):
        """Test multiple matches raise unless allowed."""
        make_file(temp_dir / "b.txt")
        make_file(temp_dir / "a.txt")
        directory = FsDirectory(temp_dir, restrictions)

        with pytest.raises(OutOfBoundsException):
            directory.get_single_file()
        assert directory.get_single_file(allow_multiple=True).basename == "a.txt"
        assert directory.get_single_file(r"^b").basename == "b.txt"

    def test_single_file_none(self, temp_dir, restrictions):
        """Test no match raises."""
        with pytest.raises(OutOfBoundsException):
            FsDirectory(temp_dir, restrictions).get_single_file()


class TestFsDirectoryCopies:
    """Test copies, targets and archives."""

    def test_create_target(self, temp_dir, restrictions):
        """Test random nested and flat target directories."""
        base = FsDirectory(temp_dir / "store", restrictions)

        nested = base.create_target(length=3)
        flat = base.create_target(single=True, length=5)

        assert re.fullmatch(r"[0-9a-f]/[0-9a-f]/[0-9a-f]", os.path.relpath(nested.path, base.path))
        assert re.fullmatch(r"[0-9a-f]{5}", os.path.relpath(flat.path, base.path))
        assert nested.is_directory()
        assert flat.is_directory()

    def test_copy_keeps_symlinks(self, temp_dir, restrictions):
        """Test recursive copies keep symlinks as symlinks."""
        make_file(temp_dir / "src" / "a.txt", "A")
        make_file(temp_dir / "src" / "sub" / "b.txt", "B")
        os.symlink("a.txt", temp_dir / "src" / "link")

        copy = FsDirectory(temp_dir / "src", restrictions).copy(temp_dir / "dst")

        assert copy.path == str(temp_dir / "dst")
        assert (temp_dir / "dst" / "sub" / "b.txt").read_text() == "B"
        assert os.readlink(temp_dir / "dst" / "link") == "a.txt"

    def test_copy_into_itself(self, temp_dir, restrictions):
        """Test copying a directory into itself is refused."""
        (temp_dir / "src").mkdir()
        with pytest.raises(OutOfBoundsException):
            FsDirectory(temp_dir / "src", restrictions).copy(temp_dir / "src" / "inner")

    def test_tar(self, temp_dir, restrictions):
        """Test archiving a directory next to itself."""
        make_file(temp_dir / "src" / "a.txt", "A")
        archive = FsDirectory(temp_dir / "src", restrictions).tar()

        assert archive.path == str(temp_dir / "src.tar.gz")
        with tarfile.open(archive.path) as tar:
            assert sorted(tar.getnames()) == ["src", "src/a.txt"]


class TestFsDirectorySymlinkTree:
    """Test mirroring trees with symlinks."""

    @pytest.fixture
    def source(self, temp_dir):
        make_file(temp_dir / "src" / "a.txt", "A")
        make_file(temp_dir / "src" / "sub" / "b.txt", "B")
        return temp_dir / "src"

    def test_mirror(self, temp_dir, restrictions, source):
        """Test directories are real and files are links back to the source."""
        target = FsDirectory(source, restrictions).symlink_tree_to_target(temp_dir / "mirror")

        mirror = temp_dir / "mirror"
        assert target.path == str(mirror)
        assert (mirror / "sub").is_dir() and not (mirror / "sub").is_symlink()
        assert (mirror / "a.txt").is_symlink()
        assert os.path.realpath(mirror / "a.txt") == str(source / "a.txt")
        assert os.path.realpath(mirror / "sub" / "b.txt") == str(source / "sub" / "b.txt")

    def test_mirror_twice(self, temp_dir, restrictions, source):
        """Test that mirroring again accepts the existing links."""
        directory = FsDirectory(source, restrictions)
        directory.symlink_tree_to_target(temp_dir / "mirror")
        directory.symlink_tree_to_target(temp_dir / "mirror")
        assert (temp_dir / "mirror" / "a.txt").read_text() == "A"

    def test_mirror_conflict(self, temp_dir, restrictions, source):
        """Test a regular file in the way raises."""
        make_file(temp_dir / "mirror" / "a.txt", "occupied")
        with pytest.raises(FileExistsException):
            FsDirectory(source, restrictions).symlink_tree_to_target(temp_dir / "mirror")

    def test_mirror_rename(self, temp_dir, restrictions, source):
        """Test conflicting links are moved aside with rename."""
        make_file(temp_dir / "other.txt", "other")
        (temp_dir / "mirror").mkdir()
        os.symlink(temp_dir / "other.txt", temp_dir / "mirror" / "a.txt")

        FsDirectory(source, restrictions).symlink_tree_to_target(temp_dir / "mirror", rename=True)

        assert os.path.realpath(temp_dir / "mirror" / "a.txt") == str(source / "a.txt")
        assert os.path.realpath(temp_dir / "mirror" / "a.txt~1") == str(temp_dir / "other.txt")


class TestFsDirectoryMounts:
    """Test mount state queries and mount commands."""

    @pytest.fixture
    def mount_point(self, temp_dir):
        (temp_dir / "mnt").mkdir()
        return temp_dir / "mnt"

    def make_directory(self, temp_dir, restrictions, mount_point, lines):
        table = temp_dir / "mounts"
        table.write_text("".join(f"{line}\n" for line in lines))
        config = FileSystemConfig(mount_table=table)
        return FsDirectory(mount_point, restrictions, config=config)

    def test_mounted(self, temp_dir, restrictions, mount_point):
        """Test a listed mount point."""
        directory = self.make_directory(
            temp_dir, restrictions, mount_point,
            ["proc /proc proc rw 0 0", f"/dev/sdb1 {mount_point} ext4 rw,relatime 0 0"],
        )
        assert directory.is_mounted() is MountState.MOUNTED
        assert directory.is_mounted("/dev/sdb1") is MountState.MOUNTED
        assert directory.is_mounted(["/dev/sdc1"]) is MountState.MOUNTED_WITH_ISSUES

    def test_mounted_with_not_mounted_marker(self, temp_dir, restrictions, mount_point):
        """Test a visible .isnotmounted marker on a listed mount point."""
        make_file(mount_point / ".isnotmounted")
        directory = self.make_directory(
            temp_dir, restrictions, mount_point, [f"/dev/sdb1 {mount_point} ext4 rw 0 0"]
        )
        assert directory.is_mounted() is MountState.MOUNTED_WITH_ISSUES

    def test_not_mounted(self, temp_dir, restrictions, mount_point):
        """Test an unlisted directory, with and without the .ismounted marker."""
        directory = self.make_directory(temp_dir, restrictions, mount_point, ["proc /proc proc rw 0 0"])
        assert directory.is_mounted() is MountState.NOT_MOUNTED

        make_file(mount_point / ".ismounted")
        assert directory.is_mounted() is MountState.MOUNTED_WITH_ISSUES

    def test_is_mounted_is_stable(self, temp_dir, restrictions, mount_point):
        """Test repeated queries return the same value and change nothing."""
        directory = self.make_directory(
            temp_dir, restrictions, mount_point, [f"/dev/sdb1 {mount_point} ext4 rw 0 0"]
        )
        before = sorted(os.listdir(mount_point))

        results = {directory.is_mounted(["/dev/sdb1"]) for _ in range(100)}

        assert results == {MountState.MOUNTED}
        assert sorted(os.listdir(mount_point)) == before

    def test_check_mounted(self, temp_dir, restrictions, mount_point):
        """Test check_mounted raises for unmounted directories."""
        directory = self.make_directory(temp_dir, restrictions, mount_point, [])
        with pytest.raises(DirectoryNotMountedException):
            directory.check_mounted()

    def test_mount_commands(self, temp_dir, restrictions, mount_point, monkeypatch):
        """Test the commands issued by mount, bind and unmount."""
        calls = []
        monkeypatch.setattr(mounts, "run_command", lambda args, **kwargs: calls.append((args, kwargs)))
        source = temp_dir / "source"
        source.mkdir()

        directory = self.make_directory(temp_dir, restrictions, mount_point, [])
        directory.mount("/dev/sdb1", "ext4", ["ro", "noexec"])
        directory.bind(source)
        directory.unmount(lazy=True)

        assert [args for args, _ in calls] == [
            ["mount", "-t", "ext4", "-o", "ro,noexec", "/dev/sdb1", str(mount_point)],
            ["mount", "--bind", str(source), str(mount_point)],
            ["umount", "-l", str(mount_point)],
        ]
        assert all(kwargs["sudo"] is False for _, kwargs in calls)

    def test_ensure_mounted_skips_mounted(self, temp_dir, restrictions, mount_point, monkeypatch):
        """Test ensure_mounted does nothing when already mounted."""
        calls = []
        monkeypatch.setattr(mounts, "run_command", lambda args, **kwargs: calls.append(args))

        directory = self.make_directory(
            temp_dir, restrictions, mount_point, [f"/dev/sdb1 {mount_point} ext4 rw 0 0"]
        )
        directory.ensure_mounted("/dev/sdb1")

        assert calls == []
