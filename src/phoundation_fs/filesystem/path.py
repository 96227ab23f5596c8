"""
Restricted filesystem path.

FsPath is the base of FsFile and FsDirectory. It holds a single
normalized absolute path, the Restrictions it is bound to, an optional
open stream and cached stat data. Every method that touches the real
filesystem checks the restrictions first.
"""

import contextlib
import csv
import grp
import logging
import os
import pwd
import shutil
import stat
import time
import tempfile
from pathlib import Path
from typing import Any, Iterator, Optional, Union

import magic

from phoundation_fs.filesystem import mounts
from phoundation_fs.filesystem.commands import run_command
from phoundation_fs.filesystem.config import FileSystemConfig, get_config
from phoundation_fs.filesystem.exceptions import (
    FileActionFailedException,
    FileExistsException,
    FileNotExistException,
    FileNotOpenException,
    FileNotReadableException,
    FileNotWritableException,
    FileOpenException,
    FileSystemError,
    NotASymlinkException,
    OutOfBoundsException,
    PathNotFoundException,
    SymlinkBrokenException,
)
from phoundation_fs.filesystem.models import (
    ModeInfo,
    OpenMode,
    PathType,
    StatInfo,
    mode_to_human_readable,
)
from phoundation_fs.filesystem.pathutils import (
    PathLike,
    absolute_path,
    get_extension,
    is_within,
    normalize_path,
    relative_path,
)
from phoundation_fs.filesystem.restrictions import Restrictions

logger = logging.getLogger(__name__)

RestrictionsInput = Union[Restrictions, str, Path, list, None]

DIRECTORY_MIMETYPE = "directory/directory"

# Non text/* mimetypes whose content is text
TEXT_MIMETYPE_SUBTYPES = frozenset(
    {"json", "ld+json", "svg+xml", "x-csh", "x-sh", "x-shellscript", "xhtml+xml", "xml", "vnd.mozilla.xul+xml"}
)

COMPRESSED_MIMETYPE_SUBTYPES = frozenset(
    {"zip", "x-7z-compressed", "rar", "vnd.rar", "x-bzip", "x-bzip2", "gzip", "x-gzip", "x-xz", "zstd"}
)


def parse_mode(mode: Union[int, str]) -> int:
    """Convert a mode given as int or octal string (``"0750"``) to an int."""
    if isinstance(mode, str):
        try:
            return int(mode, 8)
        except ValueError as e:
            raise OutOfBoundsException(f"Invalid mode '{mode}', must be an octal number") from e
    if mode < 0 or mode > 0o7777:
        raise OutOfBoundsException(f"Invalid mode '{mode:o}', must be between 0 and 7777")
    return mode


def _lookup_id(name: Optional[Union[str, int]], lookup, attribute: str) -> int:
    """Resolve a user or group name to its id. None maps to -1 (unchanged)."""
    if name is None:
        return -1
    if isinstance(name, int):
        return name
    return getattr(lookup(name), attribute)


def walk_tree(path: str, **kwargs) -> Iterator[tuple[str, list[str], list[str]]]:
    """
    ``os.walk`` that fails on unreadable directories.

    Directories that disappear during the walk are skipped with a
    warning. Any other error raises FileNotReadableException.
    """

    def onerror(error: OSError) -> None:
        if isinstance(error, FileNotFoundError):
            logger.warning(f"Ignoring {error.filename}, it disappeared during the walk")
            return
        raise FileNotReadableException(
            error.filename or path, f"Cannot read directory during the walk: {error.strerror}"
        ) from error

    return os.walk(path, onerror=onerror, **kwargs)


class FsPath:
    """
    A single filesystem path bound to a Restrictions instance.

    The path is made absolute and normalized on construction, relative
    paths are resolved against ``absolute_prefix``. The Restrictions
    instance is shared, never copied, and never modified.

    At most one stream can be open at a time. Streams are never closed
    implicitly, callers must call ``close()`` or use the path as a
    context manager after ``open()``.

    Usage:
        restrictions = Restrictions("/var/lib/app", write=True)
        path = FsPath("cache/item.bin", restrictions, absolute_prefix="/var/lib/app")

        if path.exists():
            data = path.read_bytes(16)

        with path.open(OpenMode.READ_ONLY):
            header = path.read(512)
    """

    kind: Optional[PathType] = None

    def __init__(
        self,
        path: Union[PathLike, "FsPath"],
        restrictions: RestrictionsInput = None,
        absolute_prefix: Optional[PathLike] = None,
        must_exist: bool = False,
        config: Optional[FileSystemConfig] = None,
    ):
        """
        Initialize the path.

        Args:
            path: Path string, pathlib.Path or another FsPath
            restrictions: Restrictions, or directories to build read-only
                restrictions from (None = inherit from an FsPath argument,
                else the system restrictions)
            absolute_prefix: Prefix for relative paths
            must_exist: Raise FileNotExistException if the path does not exist
            config: Configuration (None = process wide configuration)
        """
        if isinstance(path, FsPath):
            restrictions = restrictions if restrictions is not None else path.restrictions
            config = config or path.config
            path = path.path

        self.config = config or get_config()
        self.source = str(path).strip() if path is not None else ""
        self.path = absolute_path(self.source, absolute_prefix)
        self.restrictions = Restrictions.ensure(restrictions) or Restrictions.get_system(self.config)
        self.target: Optional[str] = None

        self._stream = None
        self._open_mode: Optional[OpenMode] = None
        self._stat_cache: dict[bool, tuple[float, Optional[StatInfo]]] = {}

        if must_exist:
            self.check_exists()

    @classmethod
    def new(
        cls,
        path: Union[PathLike, "FsPath"],
        restrictions: RestrictionsInput = None,
        absolute_prefix: Optional[PathLike] = None,
        must_exist: bool = False,
        config: Optional[FileSystemConfig] = None,
    ):
        return cls(path, restrictions, absolute_prefix, must_exist, config)

    def _derive(self, path: PathLike, cls=None, restrictions: Optional[Restrictions] = None):
        """Create another path object sharing this path's restrictions and config."""
        cls = cls or FsPath
        return cls(
            path,
            restrictions if restrictions is not None else self.restrictions,
            absolute_prefix=self.dirname,
            config=self.config,
        )

    def __str__(self) -> str:
        return self.path

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.path!r})"

    def __fspath__(self) -> str:
        return self.path

    def __eq__(self, other) -> bool:
        if isinstance(other, FsPath):
            return self.path == other.path
        if isinstance(other, (str, Path)):
            return self.path == normalize_path(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.path)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -- Names --------------------------------------------------------------

    def is_set(self) -> bool:
        return bool(self.source)

    @property
    def basename(self) -> str:
        return os.path.basename(self.path)

    @property
    def dirname(self) -> str:
        return os.path.dirname(self.path)

    def as_path(self) -> Path:
        return Path(self.path)

    def is_absolute(self) -> bool:
        """Whether the path was given as an absolute path."""
        return self.source.startswith("/")

    def is_relative(self) -> bool:
        return not self.is_absolute()

    def get_extension(self) -> str:
        return get_extension(self.path)

    def has_extension(self, extensions: Union[str, list[str]]) -> bool:
        """Check the extension against one or more extensions (with or without dot)."""
        if isinstance(extensions, str):
            extensions = [extensions]
        extension = self.get_extension().lower()
        return any(extension == e.lower().lstrip(".") for e in extensions)

    def get_parent_directory(self, restrictions: Optional[Restrictions] = None):
        """Return the containing directory as an FsDirectory."""
        from phoundation_fs.filesystem.directory import FsDirectory

        return self._derive(self.dirname, FsDirectory, restrictions)

    def is_in_directory(self, directory: Union[PathLike, "FsPath"]) -> bool:
        """Check whether this path lies below ``directory``."""
        directory = directory.path if isinstance(directory, FsPath) else normalize_path(directory)
        return self.path != directory and is_within(self.path, directory)

    def as_file(self):
        from phoundation_fs.filesystem.file import FsFile

        return FsFile(self)

    def as_directory(self):
        from phoundation_fs.filesystem.directory import FsDirectory

        return FsDirectory(self)

    def get_normalized_path(self) -> str:
        return self.path

    def get_real_path(
        self, absolute_prefix: Optional[PathLike] = None, must_exist: bool = False
    ) -> str:
        """
        Resolve ``.``, ``..`` and symlinks.

        Args:
            absolute_prefix: Prefix used if the original source was relative
            must_exist: Raise PathNotFoundException if the path does not exist

        Returns:
            The real path. Missing trailing components are kept as is.
        """
        self.check_restrictions(False)
        path = absolute_path(self.source, absolute_prefix) if absolute_prefix else self.path
        real = os.path.realpath(path)

        if must_exist and not os.path.exists(real):
            raise PathNotFoundException(path, "Cannot resolve real path, it does not exist")

        return real

    def get_relative_path_to(self, target: Union[PathLike, "FsPath"]) -> str:
        """Return ``target`` relative to the directory containing this path."""
        target = target.path if isinstance(target, FsPath) else normalize_path(target, self.dirname)
        return relative_path(self.path, target)

    # -- Restrictions and existence -----------------------------------------

    def check_restrictions(self, write: bool = False) -> "FsPath":
        """
        Check this path against the bound restrictions.

        Raises:
            RestrictionsException: If access is not allowed
        """
        self.restrictions.check(self.path, write)
        return self

    def exists(self, check_dead_symlink: bool = False, auto_mount: bool = True) -> bool:
        """
        Check whether the path exists.

        Args:
            check_dead_symlink: Also return True for a symlink whose target
                does not exist
            auto_mount: If the path is absent and lies below a declared but
                unmounted mount point, mount it and check again
        """
        if not self.is_set():
            return False

        self.check_restrictions(False)

        if os.path.exists(self.path):
            return True

        if check_dead_symlink and os.path.islink(self.path):
            return True

        if auto_mount and mounts.auto_mount(self.path, self.config):
            self.invalidate()
            return self.exists(check_dead_symlink, auto_mount=False)

        return False

    def check_exists(
        self, force: bool = False, check_dead_symlink: bool = False, auto_mount: bool = True
    ) -> "FsPath":
        """
        Ensure the path exists.

        Args:
            force: Create the path instead of raising
            check_dead_symlink: Accept dead symlinks as existing
            auto_mount: Attempt auto-mounting first

        Raises:
            FileNotExistException: If the path does not exist and force is not set
        """
        if not self.exists(check_dead_symlink, auto_mount):
            if not force:
                raise FileNotExistException(self.path)

            logger.warning(f"Path {self.path} does not exist, creating it because force is set")
            self._force_create()

        return self

    def _force_create(self) -> None:
        self.touch()

    def check_not_exists(
        self, force: bool = False, check_dead_symlink: bool = False, auto_mount: bool = True
    ) -> "FsPath":
        """
        Ensure the path does not exist.

        Args:
            force: Delete the existing path instead of raising

        Raises:
            FileExistsException: If the path exists and force is not set
        """
        if self.exists(check_dead_symlink, auto_mount):
            if not force:
                raise FileExistsException(self.path)

            logger.warning(f"Path {self.path} exists, deleting it because force is set")
            self.delete(clean_path=False)

        return self

    # -- Stat ---------------------------------------------------------------

    def invalidate(self) -> "FsPath":
        """Drop cached stat data."""
        self._stat_cache.clear()
        return self

    def _try_stat(self, follow_symlinks: bool = False) -> Optional[StatInfo]:
        self.check_restrictions(False)

        cached = self._stat_cache.get(follow_symlinks)
        if cached and self.config.stat_cache_seconds > 0:
            taken, info = cached
            if time.monotonic() - taken < self.config.stat_cache_seconds:
                return info

        try:
            result = os.stat(self.path, follow_symlinks=follow_symlinks)
            info = StatInfo.from_stat(result)
        except FileNotFoundError:
            info = None
        except NotADirectoryError:
            info = None

        self._stat_cache[follow_symlinks] = (time.monotonic(), info)
        return info

    def get_stat(self, follow_symlinks: bool = False) -> StatInfo:
        """
        Return stat data, from cache if still valid.

        Raises:
            FileNotExistException: If the path does not exist
        """
        info = self._try_stat(follow_symlinks)
        if info is None:
            raise FileNotExistException(self.path, "Cannot stat path, it does not exist")
        return info

    def _is_type(self, path_type: PathType, follow_symlinks: bool = True) -> bool:
        info = self._try_stat(follow_symlinks)
        return info is not None and info.type is path_type

    def is_link(self) -> bool:
        """True if the path is a symlink, whether its target exists or not."""
        return self._is_type(PathType.SYMLINK, follow_symlinks=False)

    def is_link_and_target_exists(self) -> bool:
        return self.is_link() and self._try_stat(follow_symlinks=True) is not None

    def is_directory(self) -> bool:
        return self._is_type(PathType.DIRECTORY)

    def is_file(self) -> bool:
        """True for regular files (following symlinks)."""
        return self._is_type(PathType.FILE)

    is_reg = is_file

    def is_fifo(self) -> bool:
        return self._is_type(PathType.FIFO)

    def is_chr(self) -> bool:
        return self._is_type(PathType.CHARACTER_DEVICE)

    def is_blk(self) -> bool:
        return self._is_type(PathType.BLOCK_DEVICE)

    def is_sock(self) -> bool:
        return self._is_type(PathType.SOCKET)

    def get_type(self) -> PathType:
        return self.get_stat().type

    def get_type_name(self) -> str:
        return self.get_type().value

    def get_human_readable_file_type(self) -> str:
        return self.get_type().description

    def get_mode(self) -> int:
        """Permission bits of the path (symlinks not followed)."""
        return self.get_stat().permissions

    def get_octal_mode(self) -> str:
        return f"{self.get_mode():04o}"

    def get_mode_human_readable(self) -> str:
        return mode_to_human_readable(self.get_stat().mode)

    def get_mode_info(self) -> ModeInfo:
        return ModeInfo.from_mode(self.get_stat().mode)

    def get_owner_uid(self) -> int:
        return self.get_stat().uid

    def get_group_uid(self) -> int:
        return self.get_stat().gid

    def get_owner_name(self) -> str:
        uid = self.get_owner_uid()
        try:
            return pwd.getpwuid(uid).pw_name
        except KeyError:
            return str(uid)

    def get_group_name(self) -> str:
        gid = self.get_group_uid()
        try:
            return grp.getgrgid(gid).gr_name
        except KeyError:
            return str(gid)

    def get_size(self) -> int:
        """Size in bytes as reported by stat."""
        return self.get_stat(follow_symlinks=True).size

    def get_mount_device(self) -> Optional[str]:
        """Return the source of the filesystem this path lives on."""
        self.check_restrictions(False)
        entry = mounts.MountTable(self.config.mount_table).find_for_path(self.path)
        return entry.source if entry else None

    # -- Content type -------------------------------------------------------

    def get_mimetype(self) -> str:
        """
        Detect the mimetype from the content, e.g. ``text/plain``.

        Directories are reported as ``directory/directory``.

        Raises:
            FileNotExistException: If the path does not exist
            FileNotReadableException: If the path cannot be read
        """
        self.check_restrictions(False)

        if self.is_directory():
            return DIRECTORY_MIMETYPE

        self.check_exists()

        try:
            return magic.from_file(self.path, mime=True)
        except (OSError, magic.MagicException) as e:
            failure = FileActionFailedException(
                f"Failed to get mimetype information: {e}", path=self.path
            )
            self.check_readable(previous_error=failure)
            raise failure from e

    def _get_mimetype_parts(self) -> tuple[str, str]:
        primary, _, secondary = self.get_mimetype().partition("/")
        return primary, secondary

    def is_binary(self) -> bool:
        """True unless the mimetype is text/* or a known textual application type."""
        primary, secondary = self._get_mimetype_parts()
        return primary != "text" and secondary not in TEXT_MIMETYPE_SUBTYPES

    def is_text(self) -> bool:
        return not self.is_binary()

    def is_compressed(self) -> bool:
        return self._get_mimetype_parts()[1] in COMPRESSED_MIMETYPE_SUBTYPES

    # -- Permission checks --------------------------------------------------

    def is_readable(self) -> bool:
        return self.restrictions.is_restricted(self.path, False) is None and os.access(
            self.path, os.R_OK
        )

    def is_writable(self) -> bool:
        if self.restrictions.is_restricted(self.path, True) is not None:
            return False
        if os.path.lexists(self.path):
            return os.access(self.path, os.W_OK)
        return os.access(self.dirname, os.W_OK)

    def check_readable(
        self, type_name: Optional[str] = None, previous_error: Optional[BaseException] = None
    ) -> "FsPath":
        """
        Check that restrictions and OS permissions allow reading.

        If ``previous_error`` is given it becomes the cause of any raised
        exception. If all checks pass, ``previous_error`` itself is raised,
        since the path is not the reason for it.

        Args:
            type_name: Description used in messages, e.g. "configuration"
            previous_error: Failure to explain

        Raises:
            RestrictionsException: If the restrictions deny reading
            FileNotExistException: If the path (or its parent) does not exist
            FileNotReadableException: If the OS denies reading
        """
        label = f"{type_name} " if type_name else ""

        try:
            self.check_restrictions(False)
        except FileSystemError as e:
            raise e from previous_error

        if not os.path.exists(self.path):
            if not os.path.isdir(self.dirname):
                raise FileNotExistException(
                    self.path,
                    f"Cannot read {label}path, its parent directory does not exist",
                ) from previous_error
            raise FileNotExistException(
                self.path, f"Cannot read {label}path, it does not exist"
            ) from previous_error

        if not os.access(self.path, os.R_OK):
            raise FileNotReadableException(
                self.path, f"Cannot read {label}path, permission denied"
            ) from previous_error

        if previous_error is not None:
            raise previous_error

        return self

    def check_writable(
        self, type_name: Optional[str] = None, previous_error: Optional[BaseException] = None
    ) -> "FsPath":
        """
        Check that restrictions and OS permissions allow writing.

        Behaves like ``check_readable``. A path that does not exist yet is
        writable if its parent directory exists and is writable.
        """
        label = f"{type_name} " if type_name else ""

        try:
            self.check_restrictions(True)
        except FileSystemError as e:
            raise e from previous_error

        if os.path.lexists(self.path):
            if not os.access(self.path, os.W_OK):
                raise FileNotWritableException(
                    self.path, f"Cannot write {label}path, permission denied"
                ) from previous_error
        elif not os.path.isdir(self.dirname):
            raise FileNotExistException(
                self.path,
                f"Cannot write {label}path, its parent directory does not exist",
            ) from previous_error
        elif not os.access(self.dirname, os.W_OK):
            raise FileNotWritableException(
                self.path,
                f"Cannot write {label}path, its parent directory is not writable",
            ) from previous_error

        if previous_error is not None:
            raise previous_error

        return self

    def _default_mode(self) -> int:
        return self.config.file_mode

    def _create_with_mode(self, mode: int) -> None:
        self.touch()
        self.chmod(mode)

    def _ensure_access(self, write: bool, mode: Optional[Union[int, str]]) -> "FsPath":
        mode = parse_mode(mode) if mode is not None else self._default_mode()
        self.check_restrictions(write)

        if os.access(self.path, os.W_OK if write else os.R_OK):
            return self

        if os.path.exists(self.path):
            bit = stat.S_IWUSR if write else stat.S_IRUSR
            logger.warning(
                f"Path {self.path} is not {'writable' if write else 'readable'}, adding the owner permission"
            )
            try:
                self.chmod(self.get_mode() | bit)
            except FileActionFailedException as e:
                if write:
                    raise FileNotWritableException(
                        self.path, "Path is not writable and could not be made writable"
                    ) from e
                raise FileNotReadableException(
                    self.path, "Path is not readable and could not be made readable"
                ) from e
            return self

        self.ensure_parent_directory()
        logger.info(f"Creating missing path {self.path} with mode {mode:04o}")
        self._create_with_mode(mode)
        return self

    def ensure_readable(self, mode: Optional[Union[int, str]] = None) -> "FsPath":
        """
        Make sure the path exists and can be read.

        Missing paths are created with ``mode`` (default: the configured
        file or directory mode). Existing unreadable paths get the owner
        read bit added.
        """
        return self._ensure_access(False, mode)

    def ensure_writable(self, mode: Optional[Union[int, str]] = None) -> "FsPath":
        """Like ``ensure_readable``, for write access."""
        return self._ensure_access(True, mode)

    # -- Symlinks -----------------------------------------------------------

    def read_link(self, absolute: bool = False) -> str:
        """
        Return the symlink value.

        Args:
            absolute: Return the value resolved against the link's directory

        Raises:
            NotASymlinkException: If the path is not a symlink
        """
        if not self.is_link():
            raise NotASymlinkException(self.path)

        value = os.readlink(self.path)
        if absolute:
            return normalize_path(value, self.dirname)
        return value

    def follow_link(self, force: bool = False, all: bool = False) -> "FsPath":
        """
        Return the path the symlink points to.

        Args:
            force: Return self instead of raising for non symlinks
            all: Follow the chain of links up to the final target

        Raises:
            NotASymlinkException: If the path is not a symlink and force is not set
            SymlinkBrokenException: If the link target does not exist
        """
        if not self.is_link():
            if force:
                return self
            raise NotASymlinkException(self.path)

        target = self._derive(self.read_link(absolute=True), type(self))

        if not os.path.lexists(target.path):
            raise SymlinkBrokenException(self.path, target.path)

        if all and target.is_link():
            return target.follow_link(all=True)

        return target

    def _link_value(self, link: str, points_to: str, make_relative: bool) -> str:
        if not make_relative:
            return points_to

        common = os.path.commonpath([link, points_to])
        if common != "/" and self.restrictions.is_restricted(common, False) is None:
            return relative_path(link, points_to)

        return points_to

    def _create_symlink(self, link: "FsPath", points_to: str, make_relative: bool) -> None:
        link.check_restrictions(True)
        value = self._link_value(link.path, points_to, make_relative)

        if os.path.lexists(link.path):
            if os.path.islink(link.path) and os.readlink(link.path) in (value, points_to):
                logger.debug(f"Symlink {link.path} -> {value} already exists")
                return
            raise FileExistsException(
                link.path, f"Cannot create symlink to '{value}', the path already exists"
            )

        link.ensure_parent_directory()

        try:
            os.symlink(value, link.path)
        except OSError as e:
            raise FileActionFailedException(
                f"Failed to create symlink to '{value}': {e}", path=link.path
            ) from e

        link.invalidate()
        logger.info(f"Created symlink {link.path} -> {value}")

    def symlink_target_from_this(
        self, target: Union[PathLike, "FsPath"], make_relative: bool = True
    ) -> "FsPath":
        """
        Create a symlink at ``target`` that points to this path.

        Args:
            target: Where the symlink is created
            make_relative: Use a relative link value if both paths share a
                common ancestor covered by the restrictions

        Returns:
            The symlink path

        Raises:
            FileExistsException: If ``target`` exists and is not already a
                link to this path
        """
        link = target if isinstance(target, FsPath) else self._derive(target)
        self._create_symlink(link, self.path, make_relative)
        return link

    def symlink_this_to_target(
        self, target: Union[PathLike, "FsPath"], make_relative: bool = True
    ) -> "FsPath":
        """Turn this path into a symlink pointing to ``target``."""
        target_path = target.path if isinstance(target, FsPath) else normalize_path(target, self.dirname)
        self._create_symlink(self, target_path, make_relative)
        return self

    # -- Mutations ----------------------------------------------------------

    def touch(self) -> "FsPath":
        """Create the file if absent, else update its timestamps."""
        self.check_restrictions(True)
        self.ensure_parent_directory()

        try:
            with open(self.path, "ab"):
                pass
            os.utime(self.path)
        except OSError as e:
            self.check_writable(previous_error=FileActionFailedException(
                f"Failed to touch path: {e}", path=self.path
            ))

        self.invalidate()
        return self

    def create(self, force: bool = False) -> "FsPath":
        """
        Create an empty file.

        Raises:
            FileExistsException: If the path exists and force is not set
        """
        if self.exists():
            if not force:
                raise FileExistsException(self.path, "Cannot create file, it already exists")
            logger.warning(f"Truncating existing file {self.path} because force is set")

        if self.is_open():
            if not force:
                raise FileOpenException(self.path, "Cannot create file, it is open")
            self.close()

        self.check_restrictions(True)
        self.ensure_parent_directory()

        with open(self.path, "wb"):
            pass

        self.invalidate()
        return self

    def ensure_parent_directory(self, mode: Optional[int] = None):
        """Create the parent directory if needed and return it."""
        return self.get_parent_directory().ensure(mode)

    def rename(self, target: Union[PathLike, "FsPath"]) -> "FsPath":
        """
        Rename this path, after which this object refers to ``target``.

        Raises:
            RestrictionsException: If either path is not writable
            FileNotExistException: If this path does not exist
        """
        target = target if isinstance(target, FsPath) else self._derive(target)

        self.check_restrictions(True)
        target.check_restrictions(True)

        if not os.path.lexists(self.path):
            raise FileNotExistException(self.path, "Cannot rename path, it does not exist")

        if self.is_open():
            raise FileOpenException(self.path, "Cannot rename path, it is open")

        if os.path.isdir(target.path) and not os.path.islink(target.path):
            raise FileExistsException(target.path, "Cannot rename to an existing directory")

        try:
            shutil.move(self.path, target.path)
        except OSError as e:
            target.check_writable(previous_error=FileActionFailedException(
                f"Failed to rename path to '{target.path}': {e}", path=self.path
            ))

        logger.info(f"Renamed {self.path} to {target.path}")

        self.target = target.path
        self.path = target.path
        self.source = target.path
        self.invalidate()
        target.invalidate()
        return self

    def move_path(
        self, target: Union[PathLike, "FsPath"], restrictions: Optional[Restrictions] = None
    ) -> "FsPath":
        """
        Move this path, creating the target's parent directory first.

        Args:
            target: New location
            restrictions: Restrictions for the target (None = this path's)
        """
        if not isinstance(target, FsPath):
            target = self._derive(target, restrictions=restrictions)
        elif restrictions is not None:
            target = FsPath(target, restrictions)

        target.check_restrictions(True)
        target.ensure_parent_directory()

        if restrictions is not None:
            self.restrictions = self.restrictions.merge(restrictions)

        return self.rename(target)

    def _run_file_path(self, action: str) -> str:
        directory = str(self.config.run_file_directory or self.dirname)
        return os.path.join(directory, f".{self.basename}.{action}.run")

    @contextlib.contextmanager
    def _run_file(self, action: str, enabled: bool = True) -> Iterator[bool]:
        """
        Hold an advisory marker file while ``action`` runs.

        Yields False if another process already holds the marker. The
        marker is best effort, it is not created atomically with the action.
        """
        if not enabled:
            yield True
            return

        marker = self._run_file_path(action)

        if self.restrictions.is_restricted(marker, True) is not None:
            logger.debug(f"Not using run file {marker}, it is outside the restrictions")
            yield True
            return

        try:
            fd = os.open(marker, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
        except FileExistsError:
            logger.warning(f"Skipping {action} of {self.path}, run file {marker} exists")
            yield False
            return
        except OSError as e:
            logger.debug(f"Cannot create run file {marker}: {e}")
            yield True
            return

        try:
            os.write(fd, str(os.getpid()).encode())
            os.close(fd)
            yield True
        finally:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(marker)

    def _remove(self, sudo: bool) -> None:
        if sudo:
            run_command(["rm", "-rf", "--", self.path], sudo=True, path=self.path)
            return

        try:
            if os.path.isdir(self.path) and not os.path.islink(self.path):
                shutil.rmtree(self.path)
            else:
                os.unlink(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            self.check_writable(previous_error=FileActionFailedException(
                f"Failed to delete path: {e}", path=self.path
            ))

    def delete(
        self, clean_path: bool = True, sudo: bool = False, use_run_file: bool = True
    ) -> "FsPath":
        """
        Delete the path, recursively for directories.

        Deleting a path that does not exist is not an error.

        Args:
            clean_path: Also remove parent directories that became empty,
                up to the restrictions boundary
            sudo: Delete with ``sudo rm -rf``
            use_run_file: Hold a run file marker while deleting
        """
        self.check_restrictions(True)

        if self.is_open():
            self.close()

        if os.path.lexists(self.path):
            with self._run_file("delete", use_run_file) as acquired:
                if acquired:
                    self._remove(sudo)
                    logger.info(f"Deleted {self.path}")
        else:
            logger.debug(f"Not deleting {self.path}, it does not exist")

        self.invalidate()

        if clean_path:
            self.get_parent_directory().clear_directory(sudo=sudo, use_run_file=False)

        return self

    def shred(self, passes: Optional[int] = None, sudo: bool = False) -> "FsPath":
        """
        Overwrite file content in place.

        Random data is written ``passes`` times, followed by a pass of
        zeros. Each pass is synced to disk. Copy-on-write or journaling
        filesystems may still keep the original blocks.
        """
        passes = passes or self.config.shred_passes
        if passes < 1:
            raise OutOfBoundsException(f"Invalid shred passes '{passes}', must be 1 or higher")

        self.check_restrictions(True)

        if sudo:
            run_command(["shred", "-n", str(passes), "-z", "--", self.path], sudo=True, path=self.path)
            return self

        if not self.is_file() or self.is_link():
            raise FileActionFailedException("Cannot shred path, it is not a regular file", path=self.path)

        size = os.path.getsize(self.path)
        chunk = self.config.buffer_size

        try:
            with open(self.path, "r+b") as f:
                for i in range(passes + 1):
                    f.seek(0)
                    remaining = size
                    while remaining > 0:
                        count = min(chunk, remaining)
                        f.write(bytes(count) if i == passes else os.urandom(count))
                        remaining -= count
                    f.flush()
                    os.fsync(f.fileno())
        except OSError as e:
            raise FileActionFailedException(f"Failed to shred file: {e}", path=self.path) from e

        logger.debug(f"Shredded {self.path} with {passes} passes")
        return self

    def secure_delete(
        self,
        clean_path: bool = True,
        sudo: bool = False,
        use_run_file: bool = True,
        passes: Optional[int] = None,
    ) -> "FsPath":
        """Shred every regular file in the path, then delete it."""
        self.check_restrictions(True)

        if self.is_directory() and not self.is_link():
            for root, _, files in walk_tree(self.path):
                for name in files:
                    child = self._derive(os.path.join(root, name))
                    if not child.is_link():
                        child.shred(passes, sudo)
        elif self.is_file() and not self.is_link():
            self.shred(passes, sudo)

        return self.delete(clean_path, sudo, use_run_file)

    def chmod(self, mode: Union[int, str], recursive: bool = False, sudo: bool = False) -> "FsPath":
        """
        Change permission bits.

        Recursive changes are applied depth first and stop at the first
        failure. Symlinks are skipped.
        """
        mode = parse_mode(mode)
        self.check_restrictions(True)

        if sudo:
            args = ["chmod"] + (["-R"] if recursive else []) + [f"{mode:o}", "--", self.path]
            run_command(args, sudo=True, path=self.path)
        else:
            targets = []
            if recursive and self.is_directory() and not self.is_link():
                for root, directories, files in walk_tree(self.path, topdown=False):
                    for name in files + directories:
                        child = os.path.join(root, name)
                        if not os.path.islink(child):
                            targets.append(child)
            if self.is_link():
                logger.warning(f"Not changing mode of symlink {self.path}")
            else:
                targets.append(self.path)

            for target in targets:
                try:
                    os.chmod(target, mode)
                except OSError as e:
                    raise FileActionFailedException(
                        f"Failed to chmod '{target}' to {mode:o}: {e}", path=target
                    ) from e

        logger.info(f"Changed mode of {self.path} to {mode:04o}{' recursively' if recursive else ''}")
        self.invalidate()
        return self

    def chown(
        self,
        user: Optional[Union[str, int]] = None,
        group: Optional[Union[str, int]] = None,
        recursive: bool = False,
        sudo: bool = False,
    ) -> "FsPath":
        """
        Change owner and/or group, depth first when recursive.

        Symlinks are never followed: a link gets the new owner itself and
        the path it points to is left untouched.
        """
        if user is None and group is None:
            raise OutOfBoundsException("No user or group specified for chown", path=self.path)

        self.check_restrictions(True)

        if sudo:
            owner = f"{user if user is not None else ''}{':' + str(group) if group is not None else ''}"
            args = ["chown", "-h"] + (["-R", "-P"] if recursive else []) + [owner, "--", self.path]
            run_command(args, sudo=True, path=self.path)
        else:
            try:
                uid = _lookup_id(user, pwd.getpwnam, "pw_uid")
                gid = _lookup_id(group, grp.getgrnam, "gr_gid")
            except KeyError as e:
                raise FileActionFailedException(
                    f"Failed to chown '{self.path}' to {user}:{group}: unknown user or group {e}",
                    path=self.path,
                ) from e

            targets = []
            if recursive and self.is_directory() and not self.is_link():
                for root, directories, files in walk_tree(self.path, topdown=False):
                    targets.extend(os.path.join(root, name) for name in files + directories)
            targets.append(self.path)

            for target in targets:
                try:
                    os.chown(target, uid, gid, follow_symlinks=False)
                except OSError as e:
                    raise FileActionFailedException(
                        f"Failed to chown '{target}' to {user}:{group}: {e}", path=target
                    ) from e

        logger.info(f"Changed owner of {self.path} to {user}:{group}")
        self.invalidate()
        return self

    def switch_mode(self, mode: Optional[Union[int, str]]) -> Optional[int]:
        """
        Apply ``mode`` and return the previous mode.

        Returns None and does nothing if ``mode`` is None.
        """
        if mode is None:
            return None
        previous = self.get_mode()
        self.chmod(mode)
        return previous

    # -- Streams ------------------------------------------------------------

    def is_open(self) -> bool:
        return self._stream is not None

    def get_open_mode(self) -> Optional[OpenMode]:
        return self._open_mode

    def _check_open(self, action: str) -> None:
        if self._stream is None:
            raise FileNotOpenException(self.path, action)

    def _check_closed(self, action: str) -> None:
        if self._stream is not None:
            raise FileOpenException(self.path, f"Cannot {action} path, it is open")

    def open(self, mode: Union[OpenMode, str] = OpenMode.READ_ONLY) -> "FsPath":
        """
        Open a binary stream on the path.

        Raises:
            FileOpenException: If a stream is already open
            RestrictionsException: If the mode needs write access that is denied
        """
        mode = OpenMode(mode)
        self.check_restrictions(mode.is_writable)
        self._check_closed("open")

        if not os.path.exists(self.path):
            mounts.auto_mount(self.path, self.config)

        try:
            self._stream = open(self.path, mode.python_mode)
        except OSError as e:
            error = FileActionFailedException(f"Failed to open path: {e}", path=self.path)
            if mode is OpenMode.READ_ONLY:
                self.check_readable(previous_error=error)
            self.check_writable(previous_error=error)

        self._open_mode = mode
        logger.debug(f"Opened {self.path} with mode {mode.value}")
        return self

    def close(self, force: bool = False) -> "FsPath":
        """
        Close the stream. Closing a closed path does nothing.

        Raises:
            FileNotOpenException: If force is set and the path is not open
        """
        if self._stream is None:
            if force:
                raise FileNotOpenException(self.path, "close")
            return self

        try:
            self._stream.close()
        finally:
            self._stream = None
            self._open_mode = None
            self.invalidate()

        return self

    def read(self, length: Optional[int] = None, seek: Optional[int] = None) -> bytes:
        """Read up to ``length`` bytes (default: the buffer size). Returns b"" at EOF."""
        self._check_open("read")
        if seek is not None:
            self.seek(seek)
        return self._stream.read(length or self.config.buffer_size)

    def read_line(self, max_length: Optional[int] = None) -> bytes:
        """Read one line including its line ending. Returns b"" at EOF."""
        self._check_open("read line from")
        return self._stream.readline(max_length or -1)

    def read_csv(
        self, separator: str = ",", enclosure: str = '"', encoding: str = "utf-8"
    ) -> Optional[list[str]]:
        """Read one line and parse it as CSV. Returns None at EOF."""
        self._check_open("read CSV from")
        line = self._stream.readline()
        if not line:
            return None
        rows = list(csv.reader([line.decode(encoding)], delimiter=separator, quotechar=enclosure))
        return rows[0] if rows else []

    def read_character(self) -> bytes:
        self._check_open("read character from")
        return self._stream.read(1)

    def read_bytes(self, length: int, start: int = 0) -> bytes:
        """
        Read ``length`` bytes starting at ``start`` from a closed file.

        Opens, reads and closes the file. Does not touch the streaming state.

        Raises:
            FileOpenException: If the path is open
            OutOfBoundsException: If length or start is negative
        """
        if length < 0 or start < 0:
            raise OutOfBoundsException(
                f"Invalid length '{length}' or start '{start}', must be 0 or higher",
                path=self.path,
            )

        self.check_restrictions(False)
        self._check_closed("read bytes from")

        self.open(OpenMode.READ_ONLY)
        try:
            self._stream.seek(start)
            data = self._stream.read(length)
        finally:
            self.close()

        return data

    def write(self, data: Union[bytes, str], length: Optional[int] = None) -> "FsPath":
        """Write to the open stream, truncating to ``length`` bytes if given."""
        self._check_open("write to")
        if isinstance(data, str):
            data = data.encode("utf-8")
        if length is not None:
            data = data[:length]
        self._stream.write(data)
        return self

    def append_data(self, data: Union[bytes, str]) -> "FsPath":
        """Append to the file. A closed path is opened and closed again."""
        if self.is_open():
            self._stream.seek(0, os.SEEK_END)
            return self.write(data)

        self.check_restrictions(True)
        self.open(OpenMode.WRITE_APPEND)
        try:
            self.write(data)
        finally:
            self.close()
        return self

    def put_contents(self, data: Union[bytes, str], append: bool = False) -> "FsPath":
        """
        Replace the file content.

        The data is written to a temporary file in the same directory,
        which then replaces the target, so readers never see a partial
        write. With ``append`` the data is appended in place instead.
        """
        self.check_restrictions(True)
        self._check_closed("put contents in")
        self.ensure_parent_directory()

        if append:
            return self.append_data(data)

        if isinstance(data, str):
            data = data.encode("utf-8")

        mode = self.get_mode() if os.path.exists(self.path) else self.config.file_mode
        fd, temp_path = tempfile.mkstemp(prefix=f".{self.basename}.", dir=self.dirname)

        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(temp_path, mode)
            os.replace(temp_path, self.path)
        except OSError as e:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(temp_path)
            self.check_writable(previous_error=FileActionFailedException(
                f"Failed to write contents: {e}", path=self.path
            ))

        self.invalidate()
        return self

    def get_contents(self) -> bytes:
        """Return the whole file content. The path must be closed."""
        self.check_restrictions(False)
        self._check_closed("get contents of")

        try:
            with open(self.path, "rb") as f:
                return f.read()
        except OSError as e:
            self.check_readable(previous_error=FileActionFailedException(
                f"Failed to read contents: {e}", path=self.path
            ))

    def get_contents_as_string(self, encoding: str = "utf-8") -> str:
        return self.get_contents().decode(encoding)

    def get_contents_as_list(self, encoding: str = "utf-8") -> list[str]:
        """Return the lines of the file without line endings."""
        return self.get_contents_as_string(encoding).splitlines()

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> "FsPath":
        self._check_open("seek in")
        if whence == os.SEEK_SET and offset < 0:
            raise OutOfBoundsException(f"Invalid seek offset '{offset}'", path=self.path)
        try:
            self._stream.seek(offset, whence)
        except OSError as e:
            raise FileActionFailedException(f"Failed to seek: {e}", path=self.path) from e
        return self

    def tell(self) -> int:
        self._check_open("tell position in")
        try:
            return self._stream.tell()
        except OSError as e:
            raise FileActionFailedException(f"Failed to tell position: {e}", path=self.path) from e

    def rewind(self) -> "FsPath":
        return self.seek(0)

    def is_eof(self) -> bool:
        """True if the stream position is at the end of the file."""
        self._check_open("test EOF of")
        return self.tell() >= os.fstat(self._stream.fileno()).st_size

    def truncate(self, size: int = 0) -> "FsPath":
        self._check_open("truncate")
        if size < 0:
            raise OutOfBoundsException(f"Invalid truncate size '{size}'", path=self.path)
        try:
            self._stream.truncate(size)
        except OSError as e:
            raise FileActionFailedException(f"Failed to truncate: {e}", path=self.path) from e
        self.invalidate()
        return self

    def sync(self) -> "FsPath":
        """Flush the stream and sync it to disk."""
        self._check_open("sync")
        try:
            self._stream.flush()
            os.fsync(self._stream.fileno())
        except OSError as e:
            raise FileActionFailedException(f"Failed to sync: {e}", path=self.path) from e
        return self

    def to_dict(self) -> dict[str, Any]:
        """Summary of the path suitable for display."""
        info = self._try_stat(follow_symlinks=False)
        return {
            "path": self.path,
            "exists": info is not None,
            "type": info.type.value if info else None,
            "mode": mode_to_human_readable(info.mode) if info else None,
            "size": info.size if info else None,
            "restrictions": str(self.restrictions),
        }
