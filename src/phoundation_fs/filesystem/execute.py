"""
Callback driven tree walker.

FsExecute applies a callback to every file below a directory, filtered
by extension lists, hidden file and symlink policies and skip paths.
"""

import logging
import os
from typing import Callable, Iterator, Optional, Union

from pydantic import BaseModel, Field, field_validator

from phoundation_fs.filesystem.directory import FsDirectory
from phoundation_fs.filesystem.file import FsFile
from phoundation_fs.filesystem.path import FsPath, parse_mode
from phoundation_fs.filesystem.pathutils import PathLike, get_extension, is_within, normalize_path

logger = logging.getLogger(__name__)


def _normalize_extensions(v):
    if v is None:
        return []
    if isinstance(v, str):
        v = [v]
    return [ext.strip().lstrip(".").lower() for ext in v if ext.strip()]


class WalkOptions(BaseModel):
    """
    Options for a tree walk.

    A file is visited only if the whitelist is empty or contains its
    extension, and the blacklist does not contain it. The blacklist
    always wins.
    """

    model_config = {"extra": "forbid"}

    recurse: bool = Field(default=False, description="Descend into subdirectories")
    mode: Optional[int] = Field(
        default=None,
        description="Mode applied to every visited file before the callback runs",
    )
    whitelist_extensions: list[str] = Field(
        default_factory=list,
        description="Only visit files with these extensions (empty = all)",
    )
    blacklist_extensions: list[str] = Field(
        default_factory=list,
        description="Never visit files with these extensions",
    )
    skip_paths: list[str] = Field(
        default_factory=list,
        description="Paths below these directories are not visited",
    )
    follow_symlinks: bool = Field(default=False, description="Visit symlinked entries")
    follow_hidden: bool = Field(default=False, description="Visit dot entries")
    ignore_exceptions: bool = Field(
        default=False,
        description="Log callback failures and continue instead of aborting",
    )

    @field_validator("whitelist_extensions", "blacklist_extensions", mode="before")
    @classmethod
    def normalize_extensions(cls, v):
        """Lowercase extensions and strip leading dots."""
        return _normalize_extensions(v)

    @field_validator("skip_paths", mode="before")
    @classmethod
    def normalize_skip_paths(cls, v):
        if not v:
            return []
        if isinstance(v, str):
            v = [v]
        return [normalize_path(p) for p in v]

    @field_validator("mode", mode="before")
    @classmethod
    def validate_mode(cls, v):
        return None if v is None else parse_mode(v)

    def accepts_extension(self, path: str) -> bool:
        extension = get_extension(path).lower()
        if extension in self.blacklist_extensions:
            return False
        return not self.whitelist_extensions or extension in self.whitelist_extensions


class FsExecute:
    """
    Apply a callback to the files below a directory.

    Configuration methods return new FsExecute objects, the walker
    itself is never modified.

    Usage:
        walker = (
            FsExecute(directory)
            .set_recurse(True)
            .set_whitelist_extensions(["log"])
            .set_ignore_exceptions(True)
        )
        count = walker.on_files(lambda file: file.gzip())
    """

    def __init__(
        self,
        directory: Union[FsDirectory, PathLike],
        options: Optional[WalkOptions] = None,
    ):
        self.directory = directory if isinstance(directory, FsDirectory) else FsDirectory(directory)
        self.options = options or WalkOptions()

    def _with(self, **changes) -> "FsExecute":
        data = self.options.model_dump()
        data.update(changes)
        return FsExecute(self.directory, WalkOptions(**data))

    def set_recurse(self, recurse: bool) -> "FsExecute":
        return self._with(recurse=recurse)

    def set_mode(self, mode: Optional[Union[int, str]]) -> "FsExecute":
        return self._with(mode=mode)

    def set_whitelist_extensions(self, extensions: Optional[list[str]]) -> "FsExecute":
        return self._with(whitelist_extensions=extensions)

    def set_blacklist_extensions(self, extensions: Optional[list[str]]) -> "FsExecute":
        return self._with(blacklist_extensions=extensions)

    def set_skip_paths(self, paths: Optional[list[str]]) -> "FsExecute":
        return self._with(skip_paths=paths)

    def set_follow_symlinks(self, follow: bool) -> "FsExecute":
        return self._with(follow_symlinks=follow)

    def set_follow_hidden(self, follow: bool) -> "FsExecute":
        return self._with(follow_hidden=follow)

    def set_ignore_exceptions(self, ignore: bool) -> "FsExecute":
        return self._with(ignore_exceptions=ignore)

    def _walk(self, path: str, visited: Optional[set] = None) -> Iterator[str]:
        options = self.options

        if visited is None:
            visited = set()
        try:
            info = os.stat(path)
        except FileNotFoundError:
            logger.warning(f"Directory {path} disappeared during the walk")
            return
        key = (info.st_dev, info.st_ino)
        if key in visited:
            logger.warning(f"Skipping {path}, directory was already visited (symlink loop)")
            return
        visited.add(key)

        try:
            with os.scandir(path) as iterator:
                entries = sorted(iterator, key=lambda entry: entry.name)
        except FileNotFoundError:
            logger.warning(f"Directory {path} disappeared during the walk")
            return

        for entry in entries:
            if entry.name.startswith(".") and not options.follow_hidden:
                logger.debug(f"Skipping hidden entry {entry.path}")
                continue

            if entry.is_symlink():
                if not options.follow_symlinks:
                    logger.debug(f"Skipping symlink {entry.path}")
                    continue
                if not os.path.exists(entry.path):
                    logger.warning(f"Skipping dead symlink {entry.path}")
                    continue

            if any(is_within(entry.path, skip) for skip in options.skip_paths):
                logger.debug(f"Skipping {entry.path}, it is in a skipped path")
                continue

            if entry.is_dir():
                if options.recurse:
                    yield from self._walk(entry.path, visited)
                continue

            if not options.accepts_extension(entry.name):
                logger.debug(f"Skipping {entry.path}, extension filtered")
                continue

            yield entry.path

    def on_files(self, callback: Callable[[FsFile], object]) -> int:
        """
        Run ``callback`` for every matching file.

        The callback's return value is ignored.

        Returns:
            Number of callback invocations

        Raises:
            Exception: The first callback failure, unless ignore_exceptions is set
        """
        directory = self.directory
        directory.check_restrictions(self.options.mode is not None)
        directory._check_is_directory()

        count = 0

        for path in self._walk(directory.path):
            file = FsFile(path, directory.restrictions, config=directory.config)
            count += 1

            try:
                if self.options.mode is not None:
                    file.chmod(self.options.mode)
                callback(file)
            except Exception as e:
                if not self.options.ignore_exceptions:
                    raise
                logger.warning(f"Ignoring exception for {path}: {e}")

        logger.debug(f"Executed callback on {count} files in {directory.path}")
        return count

    def on_path_only(self, callback: Callable[[FsPath], object]) -> None:
        """
        Run ``callback`` once on the directory itself.

        If a mode is configured it is applied before the callback and the
        original mode is restored afterwards.
        """
        directory = self.directory
        directory.check_restrictions(self.options.mode is not None)

        previous = directory.switch_mode(self.options.mode)
        try:
            callback(directory)
        except Exception as e:
            if not self.options.ignore_exceptions:
                raise
            logger.warning(f"Ignoring exception for {directory.path}: {e}")
        finally:
            if previous is not None:
                directory.chmod(previous)
