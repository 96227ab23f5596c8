"""
Filesystem restrictions.

A Restrictions object is an allow-list of directory prefixes, each
tagged read-only or read-write. Every path object checks its bound
restrictions before touching the real filesystem.
"""

import logging
import os
from pathlib import Path
from typing import Iterable, Optional, Union

from phoundation_fs.filesystem.config import FileSystemConfig, get_config
from phoundation_fs.filesystem.exceptions import (
    NoRestrictionsError,
    OutOfBoundsException,
    RestrictionsException,
    WriteRestrictionsException,
)
from phoundation_fs.filesystem.pathutils import is_within, normalize_path

logger = logging.getLogger(__name__)

DirectoriesInput = Union[str, Path, Iterable[Union[str, Path]], dict, None]


class Restrictions:
    """
    Allow-list of directory prefixes with a read/write flag per prefix.

    Instances are never modified after construction. All derivation
    methods (``get_parent``, ``get_child``, ``get_these_writable``, ...)
    return new instances.

    Matching is done longest prefix first and respects path component
    boundaries, so ``/data`` does not cover ``/database``. A path is
    readable if any prefix covers it, and writable if the longest
    covering prefix allows writing.

    Usage:
        restrictions = Restrictions(["/var/lib/app"], write=True, label="app")

        restrictions.check("/var/lib/app/cache/item", write=True)  # passes
        restrictions.check("/etc/passwd", write=False)  # RestrictionsException

        uploads = restrictions.get_child("uploads")
        readonly_parent = restrictions.get_parent()
    """

    def __init__(
        self,
        directories: DirectoriesInput = None,
        write: bool = False,
        label: Optional[str] = None,
    ):
        """
        Initialize restrictions.

        Args:
            directories: A path, a list of paths, or a mapping of path to
                write flag
            write: Write flag for paths not given as a mapping
            label: Name used in error messages
        """
        self._directories: dict[str, bool] = {}
        self.label = label

        if directories is None:
            return

        if isinstance(directories, dict):
            items = directories.items()
        elif isinstance(directories, (str, Path)):
            items = [(directories, write)]
        else:
            items = [(directory, write) for directory in directories]

        for directory, allow_write in items:
            directory = str(directory).strip()
            if not directory:
                continue
            self._directories[normalize_path(directory)] = bool(allow_write)

    @classmethod
    def new_writable(
        cls, directories: DirectoriesInput, label: Optional[str] = None
    ) -> "Restrictions":
        """Create restrictions where every prefix allows writing."""
        return cls(directories, write=True, label=label)

    @classmethod
    def new_readonly(
        cls, directories: DirectoriesInput, label: Optional[str] = None
    ) -> "Restrictions":
        """Create restrictions where every prefix is read-only."""
        return cls(directories, write=False, label=label)

    @classmethod
    def ensure(
        cls,
        value: Union["Restrictions", DirectoriesInput],
        write: bool = False,
        label: Optional[str] = None,
    ) -> Optional["Restrictions"]:
        """
        Normalize caller supplied restriction configuration.

        Args:
            value: Existing Restrictions (returned as is), a path string,
                a list of paths, or None
            write: Write flag when building from paths
            label: Label when building from paths

        Returns:
            Restrictions instance, or None if nothing was specified
        """
        if value is None:
            return None
        if isinstance(value, Restrictions):
            return value
        if isinstance(value, (str, Path)) and not str(value).strip():
            return None
        return cls(value, write=write, label=label)

    @classmethod
    def get_system(cls, config: Optional[FileSystemConfig] = None) -> "Restrictions":
        """
        Return the process wide default restrictions.

        The covered directories come from the configuration
        (``system_directories``), not from the core itself.
        """
        config = config or get_config()
        return cls(
            config.system_directories,
            write=config.system_writable,
            label=config.system_label,
        )

    @classmethod
    def get_restrictions_or_default(
        cls, *candidates: Optional["Restrictions"]
    ) -> "Restrictions":
        """Return the first candidate that is not None, or the system restrictions."""
        for candidate in candidates:
            if candidate is not None:
                return candidate
        return cls.get_system()

    @property
    def directories(self) -> dict[str, bool]:
        """Copy of the prefix to write flag mapping."""
        return dict(self._directories)

    def is_empty(self) -> bool:
        return not self._directories

    def is_restricted(self, path: Union[str, Path], write: bool = False) -> Optional[str]:
        """
        Check a single path without raising.

        Args:
            path: Path to check (normalized before comparison)
            write: Whether write access is required

        Returns:
            None if allowed, ``"write"`` if only read access is allowed
            but write was requested, ``"pattern"`` if no prefix covers it
        """
        path = normalize_path(path)

        for directory in sorted(self._directories, key=len, reverse=True):
            if is_within(path, directory):
                if write and not self._directories[directory]:
                    return "write"
                return None

        return "pattern"

    def check(
        self,
        paths: Union[str, Path, Iterable[Union[str, Path]]],
        write: bool = False,
    ) -> "Restrictions":
        """
        Check that every given path is allowed.

        Args:
            paths: One path or a list of paths
            write: Whether write access is required

        Returns:
            self, for chaining

        Raises:
            NoRestrictionsError: If no prefixes are configured
            RestrictionsException: If a path is not covered by any prefix
            WriteRestrictionsException: If write access was requested on a
                read-only prefix
        """
        if isinstance(paths, (str, Path)):
            paths = [paths]

        for path in paths:
            path = str(path)

            if not self._directories:
                raise NoRestrictionsError(path, label=self.label)

            result = self.is_restricted(path, write)

            if result == "write":
                logger.warning(f"Write access to {path} denied by restrictions {self}")
                raise WriteRestrictionsException(
                    path,
                    "Write access denied by restrictions",
                    label=self.label,
                    data={"restrictions": self.directories},
                )

            if result == "pattern":
                logger.warning(f"Access to {path} denied by restrictions {self}")
                raise RestrictionsException(
                    path,
                    "Path is outside the allowed restrictions",
                    label=self.label,
                    data={"restrictions": self.directories},
                )

        return self

    def get_parent(self, levels: int = 1) -> "Restrictions":
        """
        Return restrictions covering the ``levels``-th ancestor of every prefix.

        Raises:
            OutOfBoundsException: If levels is smaller than 1
        """
        if levels < 1:
            raise OutOfBoundsException(f"Invalid parent levels '{levels}', must be 1 or higher")

        directories = {}

        for directory, write in self._directories.items():
            for _ in range(levels):
                directory = os.path.dirname(directory)
            directories[directory] = directories.get(directory, False) or write

        return Restrictions(directories, label=self.label)

    def get_child(
        self,
        children: Union[str, Path, Iterable[Union[str, Path]]],
        write: Optional[bool] = None,
    ) -> "Restrictions":
        """
        Return restrictions with every child appended to every prefix.

        Args:
            children: One child path or a list of them, relative to the prefixes
            write: Write flag of the new prefixes (None = inherit)

        Raises:
            OutOfBoundsException: If a child escapes its prefix
        """
        if isinstance(children, (str, Path)):
            children = [children]

        children = [str(child).strip().strip("/") for child in children]
        directories = {}

        for directory, allow_write in self._directories.items():
            for child in children:
                joined = normalize_path(directory + "/" + child)

                if not is_within(joined, directory):
                    raise OutOfBoundsException(
                        f"Child directory '{child}' escapes restriction '{directory}'",
                        path=joined,
                    )

                directories[joined] = allow_write if write is None else write

        return Restrictions(directories, label=self.label)

    def get_these_writable(self) -> "Restrictions":
        """Return a copy where every prefix allows writing."""
        return Restrictions(
            {directory: True for directory in self._directories},
            label=self.label,
        )

    def with_directory(self, directory: Union[str, Path], write: bool = False) -> "Restrictions":
        """Return a copy with one more prefix."""
        directories = self.directories
        directories[normalize_path(directory)] = write
        return Restrictions(directories, label=self.label)

    def merge(self, other: "Restrictions") -> "Restrictions":
        """Return restrictions holding the prefixes of both instances."""
        directories = self.directories
        for directory, write in other._directories.items():
            directories[directory] = directories.get(directory, False) or write

        labels = [label for label in (self.label, other.label) if label]
        return Restrictions(directories, label="+".join(labels) or None)

    def __contains__(self, path) -> bool:
        return self.is_restricted(path, write=False) is None

    def __eq__(self, other) -> bool:
        if not isinstance(other, Restrictions):
            return NotImplemented
        return self._directories == other._directories

    def __hash__(self) -> int:
        return hash(tuple(sorted(self._directories.items())))

    def __repr__(self) -> str:
        return f"Restrictions({self._directories!r}, label={self.label!r})"

    def __str__(self) -> str:
        entries = ", ".join(
            f"{directory} ({'rw' if write else 'ro'})"
            for directory, write in self._directories.items()
        )
        if self.label:
            return f"{self.label}: {entries or '-'}"
        return entries or "-"
