"""
Restricted directory access.

FsDirectory adds tree operations to FsPath: ensure/clear, scanning,
recursive listing and sums, target directory generation, symlink
trees and mount management.
"""

import fnmatch
import hashlib
import logging
import os
import re
import secrets
import shutil
import tarfile
from typing import Callable, Optional, Union

from phoundation_fs.filesystem import mounts
from phoundation_fs.filesystem.commands import run_command
from phoundation_fs.filesystem.exceptions import (
    DirectoryNotMountedException,
    FileActionFailedException,
    FileExistsException,
    FileNotExistException,
    OutOfBoundsException,
    PathNotDirectoryException,
    WriteRestrictionsException,
)
from phoundation_fs.filesystem.file import FsFile
from phoundation_fs.filesystem.files import FsFiles
from phoundation_fs.filesystem.models import MountState, PathType
from phoundation_fs.filesystem.path import FsPath, parse_mode, walk_tree
from phoundation_fs.filesystem.pathutils import PathLike, is_within, normalize_path
from phoundation_fs.filesystem.restrictions import Restrictions

logger = logging.getLogger(__name__)


def _expand_braces(pattern: str) -> list[str]:
    """Expand ``name.{jpg,png}`` into ``["name.jpg", "name.png"]``."""
    match = re.search(r"\{([^{}]*)\}", pattern)
    if not match:
        return [pattern]

    expanded = []
    for option in match.group(1).split(","):
        expanded.extend(_expand_braces(pattern[: match.start()] + option + pattern[match.end():]))
    return expanded


class FsDirectory(FsPath):
    """
    A restricted directory.

    Tree operations walk the directory as it is at call time. Entries
    that disappear during a walk are logged and skipped.

    Usage:
        restrictions = Restrictions("/var/lib/app", write=True)
        uploads = FsDirectory("/var/lib/app/uploads", restrictions).ensure()

        total = uploads.tree_file_size()
        images = uploads.scan("*.{jpg,png}")
        logs = uploads.list_tree([r"\\.log$"])
    """

    kind = PathType.DIRECTORY

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._files: Optional[FsFiles] = None

    def invalidate(self) -> "FsDirectory":
        super().invalidate()
        self._files = None
        return self

    def _force_create(self) -> None:
        self.ensure()

    def _default_mode(self) -> int:
        return self.config.directory_mode

    def _create_with_mode(self, mode: int) -> None:
        self.ensure(mode)

    def _child(self, name: str, cls=None):
        name = name.strip("/")
        if not name or name in (".", "..") or "/" in name and ".." in name.split("/"):
            raise OutOfBoundsException(f"Invalid child name '{name}'", path=self.path)
        return self._derive(os.path.join(self.path, name), cls)

    def add_directory(self, name: str) -> "FsDirectory":
        """Return an FsDirectory for ``name`` inside this directory (not created)."""
        return self._child(name, FsDirectory)

    def add_file(self, name: str) -> FsFile:
        """Return an FsFile for ``name`` inside this directory (not created)."""
        return self._child(name, FsFile)

    def _check_is_directory(self) -> None:
        if not self.exists():
            raise FileNotExistException(self.path, "Directory does not exist")
        if not self.is_directory():
            raise PathNotDirectoryException(self.path)

    # -- Creation and removal -----------------------------------------------

    def _check_subtree_writable(self) -> None:
        for directory, write in self.restrictions.directories.items():
            if not write and is_within(directory, self.path):
                raise WriteRestrictionsException(
                    directory,
                    f"Cannot clear '{self.path}', it contains a read-only restriction",
                    label=self.restrictions.label,
                )

    def ensure(
        self, mode: Optional[Union[int, str]] = None, clear: bool = False, sudo: bool = False
    ) -> "FsDirectory":
        """
        Create the directory and any missing ancestors.

        Files that are in the way of a directory component are deleted,
        if the restrictions allow it.

        Args:
            mode: Mode for created directories (None = configured default)
            clear: Delete and recreate the directory if it exists
            sudo: Create with ``sudo mkdir -p``

        Raises:
            RestrictionsException: If a component to create is not writable
        """
        mode = parse_mode(mode) if mode is not None else self.config.directory_mode
        self.check_restrictions(True)

        if clear and os.path.lexists(self.path):
            self._check_subtree_writable()
            logger.info(f"Clearing directory {self.path}")
            self.delete(clean_path=False, sudo=sudo)

        if os.path.isdir(self.path):
            return self

        if sudo:
            run_command(["mkdir", "-p", "-m", f"{mode:o}", "--", self.path], sudo=True, path=self.path)
            self.invalidate()
            return self

        missing = []
        current = self.path
        while not os.path.isdir(current):
            missing.append(current)
            current = os.path.dirname(current)
        missing.reverse()

        for component in missing:
            self.restrictions.check(component, True)

            if os.path.lexists(component):
                logger.warning(f"Deleting {component}, it is in the way of directory {self.path}")
                os.unlink(component)

            try:
                os.mkdir(component, mode)
                os.chmod(component, mode)
            except FileExistsError:
                # Created concurrently
                if not os.path.isdir(component):
                    raise PathNotDirectoryException(component)
            except OSError as e:
                self._derive(component, FsDirectory).check_writable(
                    previous_error=FileActionFailedException(
                        f"Failed to create directory: {e}", path=component
                    )
                )

            logger.debug(f"Created directory {component} with mode {mode:04o}")

        logger.info(f"Ensured directory {self.path}")
        self.invalidate()
        return self

    def is_empty(self) -> bool:
        self.check_restrictions(False)
        self._check_is_directory()
        with os.scandir(self.path) as entries:
            return next(entries, None) is None

    def clear_directory(
        self,
        until_directory: Optional[Union[PathLike, FsPath, bool]] = None,
        sudo: bool = False,
        use_run_file: bool = True,
    ) -> "FsDirectory":
        """
        Remove this directory if empty, then each ancestor that became empty.

        Stops at the first non-empty directory, at ``until_directory`` (which
        is kept) if given as a path, and at the restrictions boundary. A
        restriction prefix itself is never removed. Missing directories are
        skipped.

        Raises:
            PathNotDirectoryException: If a component exists but is not a directory
        """
        if isinstance(until_directory, FsPath):
            until = until_directory.path
        elif isinstance(until_directory, bool) or until_directory is None:
            until = None
        else:
            until = normalize_path(until_directory, self.dirname)

        roots = set(self.restrictions.directories)
        current = self.path

        while current != "/":
            if self.restrictions.is_restricted(current, True) is not None or current in roots:
                break

            if until and current == until:
                break

            if not os.path.lexists(current):
                current = os.path.dirname(current)
                continue

            if os.path.islink(current) or not os.path.isdir(current):
                raise PathNotDirectoryException(current, "Cannot clear path, it is not a directory")

            if os.listdir(current):
                break

            directory = self._derive(current, FsDirectory)
            with directory._run_file("clear", use_run_file) as acquired:
                if not acquired:
                    break

                try:
                    if sudo:
                        run_command(["rmdir", "--", current], sudo=True, path=current)
                    else:
                        os.rmdir(current)
                except (OSError, FileActionFailedException) as e:
                    logger.warning(f"Failed to clear directory {current}, stopping: {e}")
                    break

            logger.debug(f"Cleared empty directory {current}")
            current = os.path.dirname(current)

        self.invalidate()
        return self

    def clear_tree_symlinks(self, clean: bool = False) -> int:
        """
        Delete dead symlinks in the tree.

        Args:
            clean: Also remove directories that became empty

        Returns:
            Number of symlinks removed
        """
        self.check_restrictions(True)
        self._check_is_directory()
        count = 0

        for root, directories, files in walk_tree(self.path, topdown=False):
            for name in files + directories:
                entry = os.path.join(root, name)
                if os.path.islink(entry) and not os.path.exists(entry):
                    os.unlink(entry)
                    count += 1
                    logger.debug(f"Removed dead symlink {entry}")

            if clean and root != self.path and not os.listdir(root):
                os.rmdir(root)

        self.invalidate()
        return count

    # -- Listing ------------------------------------------------------------

    def _scandir(self) -> list[os.DirEntry]:
        self.check_restrictions(False)
        self._check_is_directory()
        with os.scandir(self.path) as entries:
            return sorted(entries, key=lambda entry: entry.name)

    def list_entries(self, hidden: bool = True) -> list[str]:
        """Names of all entries in this directory, sorted."""
        return [
            entry.name for entry in self._scandir() if hidden or not entry.name.startswith(".")
        ]

    def get_files_object(self, reload: bool = False) -> FsFiles:
        """Return the cached listing of this directory, rescanning if ``reload`` is set."""
        if self._files is None or reload:
            self._files = self.scan(hidden=True)
        return self._files

    def _wrap(self, entry: os.DirEntry) -> FsPath:
        cls = FsDirectory if entry.is_dir() else FsFile
        return self._derive(entry.path, cls)

    def scan(
        self,
        file_patterns: Optional[Union[str, list[str]]] = None,
        hidden: bool = False,
        case_sensitive: bool = True,
    ) -> FsFiles:
        """
        List the entries of this directory matching glob patterns.

        Patterns support ``*``, ``?``, ``[...]`` and ``{a,b}``. Not recursive.

        Args:
            file_patterns: Pattern or list of patterns (None = everything)
            hidden: Include dot entries even if the pattern does not start with a dot
            case_sensitive: Match case sensitively
        """
        if isinstance(file_patterns, str):
            file_patterns = [file_patterns]

        patterns = []
        for pattern in file_patterns or ["*"]:
            patterns.extend(_expand_braces(pattern))

        match = fnmatch.fnmatchcase if case_sensitive else (
            lambda name, pattern: fnmatch.fnmatchcase(name.lower(), pattern.lower())
        )

        files = FsFiles(restrictions=self.restrictions, parent=self)
        for entry in self._scandir():
            for pattern in patterns:
                if entry.name.startswith(".") and not hidden and not pattern.startswith("."):
                    continue
                if match(entry.name, pattern):
                    files.add(self._wrap(entry))
                    break

        return files

    def scan_regex(self, regex: Optional[Union[str, re.Pattern]] = None, hidden: bool = False) -> FsFiles:
        """List the entries of this directory whose name matches ``regex``. Not recursive."""
        pattern = re.compile(regex) if regex else None

        files = FsFiles(restrictions=self.restrictions, parent=self)
        for entry in self._scandir():
            if entry.name.startswith(".") and not hidden:
                continue
            if pattern is None or pattern.search(entry.name):
                files.add(self._wrap(entry))

        return files

    def each(self, callback: Callable[[FsPath], object]) -> "FsDirectory":
        self.scan().each(callback)
        return self

    def has_file(self, name: str) -> bool:
        return os.path.lexists(self.add_file(name).path)

    def list_tree(
        self, filters: Optional[Union[str, list[str]]] = None, recursive: bool = True
    ) -> list[str]:
        """
        List file paths in the tree, directories excluded.

        Args:
            filters: Regular expressions matched against file names (not
                full paths). A file is listed if any filter matches.
            recursive: Descend into subdirectories

        Returns:
            Sorted absolute file paths
        """
        if isinstance(filters, str):
            filters = [filters]
        patterns = [re.compile(f) for f in filters or []]

        self.check_restrictions(False)
        self._check_is_directory()
        result = []

        for root, directories, files in walk_tree(self.path):
            directories.sort()
            for name in sorted(files):
                if not patterns or any(p.search(name) for p in patterns):
                    result.append(os.path.join(root, name))
            if not recursive:
                break

        return result

    def _walk_file_stats(self):
        self.check_restrictions(False)
        self._check_is_directory()

        for root, _, files in walk_tree(self.path):
            for name in files:
                entry = os.path.join(root, name)
                try:
                    yield os.stat(entry)
                except FileNotFoundError:
                    if os.path.islink(entry):
                        logger.warning(f"Ignoring dead symlink {entry}")
                    else:
                        logger.warning(f"Ignoring {entry}, it disappeared during the walk")

    def tree_file_size(self) -> int:
        """Sum of the sizes of all files in the tree."""
        return sum(result.st_size for result in self._walk_file_stats())

    def tree_file_count(self) -> int:
        """Number of files in the tree, directories excluded."""
        return sum(1 for _ in self._walk_file_stats())

    def get_size(self, recursive: bool = True) -> int:
        if recursive:
            return self.tree_file_size()
        return sum(entry.stat().st_size for entry in self._scandir() if entry.is_file())

    def get_count(self, recursive: bool = False) -> int:
        """Number of entries (files and directories)."""
        if not recursive:
            return len(self._scandir())

        self.check_restrictions(False)
        self._check_is_directory()
        return sum(len(directories) + len(files) for _, directories, files in walk_tree(self.path))

    def contains_files(self) -> bool:
        """True if any file exists anywhere in the tree."""
        self.check_restrictions(False)
        self._check_is_directory()
        return any(files for _, _, files in walk_tree(self.path))

    def _get_single(self, regex, directory: bool, allow_multiple: bool):
        pattern = re.compile(regex) if regex else None
        matches = [
            entry
            for entry in self._scandir()
            if not entry.name.startswith(".")
            and entry.is_dir() == directory
            and (pattern is None or pattern.search(entry.name))
        ]

        kind = "directory" if directory else "file"
        if not matches:
            raise OutOfBoundsException(
                f"No {kind} matching '{regex or '*'}' found", path=self.path
            )
        if len(matches) > 1 and not allow_multiple:
            raise OutOfBoundsException(
                f"Found {len(matches)} entries matching '{regex or '*'}', expected a single {kind}",
                path=self.path,
            )

        return self._derive(matches[0].path, FsDirectory if directory else FsFile)

    def get_single_file(self, regex: Optional[str] = None, allow_multiple: bool = False) -> FsFile:
        """
        Return the only file in this directory matching ``regex``.

        Raises:
            OutOfBoundsException: If no file, or more than one file while
                allow_multiple is not set, matches
        """
        return self._get_single(regex, False, allow_multiple)

    def get_single_directory(
        self, regex: Optional[str] = None, allow_multiple: bool = False
    ) -> "FsDirectory":
        """Like ``get_single_file``, for subdirectories."""
        return self._get_single(regex, True, allow_multiple)

    def scan_upwards_for_file(self, name: str) -> Optional[FsFile]:
        """Look for ``name`` in this directory and its ancestors, within the restrictions."""
        current = self.path
        while True:
            if self.restrictions.is_restricted(current, False) is not None:
                return None
            candidate = os.path.join(current, name)
            if os.path.exists(candidate):
                return self._derive(candidate, FsFile)
            if current == "/":
                return None
            current = os.path.dirname(current)

    def get_duplicate_files(self, max_size: Optional[int] = None) -> list[list[str]]:
        """
        Find files with identical content.

        Files are grouped by size first and only same-size files are hashed.

        Args:
            max_size: Ignore files larger than this

        Returns:
            Groups of paths with identical content
        """
        by_size: dict[int, list[str]] = {}

        for path in self.list_tree():
            if os.path.islink(path):
                continue
            size = os.path.getsize(path)
            if max_size is None or size <= max_size:
                by_size.setdefault(size, []).append(path)

        groups = []
        for paths in by_size.values():
            if len(paths) < 2:
                continue
            by_hash: dict[str, list[str]] = {}
            for path in paths:
                digest = hashlib.sha256()
                with open(path, "rb") as f:
                    for chunk in iter(lambda: f.read(self.config.buffer_size), b""):
                        digest.update(chunk)
                by_hash.setdefault(digest.hexdigest(), []).append(path)
            groups.extend(group for group in by_hash.values() if len(group) > 1)

        return groups

    def execute(self, options=None):
        """Return an FsExecute tree walker for this directory."""
        from phoundation_fs.filesystem.execute import FsExecute

        return FsExecute(self, options)

    # -- Copies and targets -------------------------------------------------

    def copy(self, target: Union[PathLike, FsPath], recursive: bool = True) -> "FsDirectory":
        """
        Copy the directory to ``target``, keeping symlinks as symlinks.

        Args:
            target: Destination directory (merged if it exists)
            recursive: Copy the whole tree instead of the top level files only
        """
        self.check_restrictions(False)
        self._check_is_directory()
        target = target if isinstance(target, FsDirectory) else self._derive(
            target.path if isinstance(target, FsPath) else target, FsDirectory
        )
        target.check_restrictions(True)

        if is_within(target.path, self.path):
            raise OutOfBoundsException(
                f"Cannot copy directory into itself: {target.path}", path=self.path
            )

        try:
            if recursive:
                shutil.copytree(self.path, target.path, symlinks=True, dirs_exist_ok=True)
            else:
                target.ensure()
                for entry in self._scandir():
                    if entry.is_file(follow_symlinks=False):
                        shutil.copy2(entry.path, os.path.join(target.path, entry.name))
        except (OSError, shutil.Error) as e:
            raise FileActionFailedException(
                f"Failed to copy directory to '{target.path}': {e}", path=self.path
            ) from e

        logger.info(f"Copied {self.path} to {target.path}")
        self.target = target.path
        return target.invalidate()

    def create_target(self, single: Optional[bool] = None, length: Optional[int] = None) -> "FsDirectory":
        """
        Create a random hex subdirectory.

        Args:
            single: Flat (``abcd``) instead of nested (``a/b/c/d``) directories
                (None = configured default)
            length: Number of hex characters (None = configured default)

        Returns:
            The ensured target directory
        """
        single = self.config.target_directory_single if single is None else single
        length = self.config.target_directory_length if length is None else length

        if length < 1:
            raise OutOfBoundsException(f"Invalid target length '{length}'", path=self.path)

        self.ensure()
        characters = secrets.token_hex((length + 1) // 2)[:length]

        if single:
            relative = characters
        else:
            relative = "/".join(characters)

        return self._derive(os.path.join(self.path, relative), FsDirectory).ensure()

    def tar(self, target: Optional[PathLike] = None, compression: Optional[str] = "gz") -> FsFile:
        """Create a tar archive of this directory next to it (default ``<dir>.tar.gz``)."""
        if compression not in (None, "gz", "bz2", "xz"):
            raise OutOfBoundsException(f"Unsupported tar compression '{compression}'", path=self.path)

        self.check_restrictions(False)
        self._check_is_directory()

        suffix = ".tar" + (f".{compression}" if compression else "")
        archive = self._derive(str(target) if target else self.path + suffix, FsFile)
        archive.check_restrictions(True)

        if os.path.lexists(archive.path):
            raise FileExistsException(archive.path, "Cannot create archive, the target exists")
        if is_within(archive.path, self.path):
            raise OutOfBoundsException("Cannot create archive inside the archived directory", path=archive.path)

        try:
            with tarfile.open(archive.path, f"w:{compression or ''}") as tar:
                tar.add(self.path, arcname=self.basename)
        except (OSError, tarfile.TarError) as e:
            raise FileActionFailedException(f"Failed to tar directory: {e}", path=self.path, command="tar") from e

        logger.info(f"Created tar archive {archive.path}")
        return archive

    def symlink_tree_to_target(
        self,
        target: Union[PathLike, FsPath],
        alternate_path: Optional[Union[PathLike, FsPath]] = None,
        restrictions: Optional[Restrictions] = None,
        rename: bool = False,
    ) -> "FsDirectory":
        """
        Mirror this tree at ``target`` with real directories and file symlinks.

        Every subdirectory is created as a real directory at the target,
        every file becomes a symlink pointing back to the original.

        Args:
            target: Root of the mirror
            alternate_path: Let the symlinks point into this tree instead,
                at the same relative location
            restrictions: Restrictions for the target (None = this directory's)
            rename: Move existing conflicting symlinks aside (``name~1``)
                instead of raising

        Returns:
            The target directory

        Raises:
            FileExistsException: If a non symlink entry is in the way, or a
                conflicting symlink exists and rename is not set
        """
        self.check_restrictions(False)
        self._check_is_directory()

        restrictions = restrictions or self.restrictions
        target = FsDirectory(
            target.path if isinstance(target, FsPath) else target,
            restrictions,
            absolute_prefix=self.dirname,
            config=self.config,
        ).ensure()

        points_base = self.path
        if alternate_path is not None:
            points_base = alternate_path.path if isinstance(alternate_path, FsPath) else normalize_path(alternate_path, self.dirname)

        for entry in self._scandir():
            destination = os.path.join(target.path, entry.name)
            points_to = os.path.join(points_base, entry.name)

            if entry.is_dir(follow_symlinks=False):
                FsDirectory(entry.path, self.restrictions, config=self.config).symlink_tree_to_target(
                    destination, points_to if alternate_path is not None else None, restrictions, rename
                )
                continue

            link = FsPath(destination, restrictions, config=self.config)

            if rename and os.path.islink(destination):
                value = os.readlink(destination)
                if normalize_path(value, target.path) != normalize_path(points_to):
                    self._move_aside(link)

            source = FsPath(points_to, restrictions.merge(self.restrictions), config=self.config)
            source.symlink_target_from_this(link)

        return target

    def _move_aside(self, link: FsPath) -> None:
        number = 1
        while os.path.lexists(f"{link.path}~{number}"):
            number += 1
        aside = f"{link.path}~{number}"
        logger.info(f"Moving existing symlink {link.path} to {aside}")
        os.rename(link.path, aside)
        link.invalidate()

    # -- Mounts -------------------------------------------------------------

    def _mount_table(self) -> mounts.MountTable:
        return mounts.MountTable(self.config.mount_table)

    def is_mounted(self, sources: Optional[Union[str, list[str]]] = None) -> MountState:
        """
        Query whether something is mounted on this directory.

        Never changes anything, and re-reads the OS mount table every call.

        Returns:
            MOUNTED if the mount table lists this directory and the source
            matches one of ``sources`` (if given).
            MOUNTED_WITH_ISSUES if the mount table lists it but the source
            does not match or a ``.isnotmounted`` marker is visible, or if
            it is not listed but a ``.ismounted`` marker is present.
            NOT_MOUNTED otherwise.
        """
        self.check_restrictions(False)

        if isinstance(sources, str):
            sources = [sources]

        entry = self._mount_table().find(self.path)
        mounted_marker = os.path.exists(os.path.join(self.path, mounts.MOUNTED_MARKER))
        not_mounted_marker = os.path.exists(os.path.join(self.path, mounts.NOT_MOUNTED_MARKER))

        if entry is None:
            if mounted_marker:
                logger.warning(f"{self.path} is not mounted but contains a {mounts.MOUNTED_MARKER} marker")
                return MountState.MOUNTED_WITH_ISSUES
            return MountState.NOT_MOUNTED

        if not_mounted_marker:
            logger.warning(f"{self.path} is mounted but shows a {mounts.NOT_MOUNTED_MARKER} marker")
            return MountState.MOUNTED_WITH_ISSUES

        if sources:
            accepted = set(sources) | {normalize_path(s) for s in sources if s.startswith("/")}
            if entry.source not in accepted:
                logger.warning(f"{self.path} is mounted from {entry.source}, expected one of {sources}")
                return MountState.MOUNTED_WITH_ISSUES

        return MountState.MOUNTED

    def check_mounted(self, sources: Optional[Union[str, list[str]]] = None) -> "FsDirectory":
        """
        Raises:
            DirectoryNotMountedException: If nothing is mounted on this directory
        """
        state = self.is_mounted(sources)
        if state is MountState.NOT_MOUNTED:
            raise DirectoryNotMountedException(self.path)
        if state is MountState.MOUNTED_WITH_ISSUES:
            logger.warning(f"Directory {self.path} is mounted with issues")
        return self

    def ensure_mounted(
        self,
        source: str,
        filesystem: Optional[str] = None,
        options: Optional[list[str]] = None,
        sudo: bool = False,
    ) -> "FsDirectory":
        """Mount ``source`` here unless something is mounted already."""
        if self.is_mounted() is MountState.NOT_MOUNTED:
            self.mount(source, filesystem, options, sudo)
        return self

    def mount(
        self,
        source: str,
        filesystem: Optional[str] = None,
        options: Optional[list[str]] = None,
        sudo: bool = False,
        timeout: Optional[float] = None,
    ) -> "FsDirectory":
        self.check_restrictions(True)
        self.ensure()
        mounts.mount(source, self.path, filesystem, options, sudo=sudo, timeout=timeout)
        return self.invalidate()

    def bind(self, source: Union[PathLike, FsPath], sudo: bool = False) -> "FsDirectory":
        """Bind mount the directory ``source`` on this directory."""
        source = source if isinstance(source, FsPath) else FsDirectory(source, self.restrictions, config=self.config)
        source.check_restrictions(False)
        self.check_restrictions(True)
        self.ensure()
        mounts.mount(source.path, self.path, bind=True, sudo=sudo)
        return self.invalidate()

    def unmount(self, sudo: bool = False, lazy: bool = False) -> "FsDirectory":
        self.check_restrictions(True)
        mounts.unmount(self.path, sudo=sudo, lazy=lazy)
        return self.invalidate()

    def unbind(self, sudo: bool = False) -> "FsDirectory":
        return self.unmount(sudo)
