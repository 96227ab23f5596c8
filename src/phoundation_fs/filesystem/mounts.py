"""
Mount table access and mount/unmount operations.

The OS mount table is re-read on every query, mount state is never
cached between calls.
"""

import logging
import re
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field

from phoundation_fs.filesystem.commands import run_command
from phoundation_fs.filesystem.config import FileSystemConfig, MountDeclaration, get_config
from phoundation_fs.filesystem.exceptions import FileActionFailedException, MountsException
from phoundation_fs.filesystem.pathutils import is_within, normalize_path

logger = logging.getLogger(__name__)

# Marker files placed in mount targets by administrators. ".ismounted" lives on
# the mounted filesystem, ".isnotmounted" in the bare directory underneath.
MOUNTED_MARKER = ".ismounted"
NOT_MOUNTED_MARKER = ".isnotmounted"


def _unescape(value: str) -> str:
    """Decode the octal escapes (``\\040`` for space) used in mount tables."""
    return re.sub(r"\\([0-7]{3})", lambda m: chr(int(m.group(1), 8)), value)


class MountEntry(BaseModel):
    """A single line of the OS mount table."""

    source: str = Field(description="Mounted device or source")
    target: str = Field(description="Directory the source is mounted on")
    filesystem: str = Field(description="Filesystem type")
    options: list[str] = Field(default_factory=list, description="Mount options")

    @classmethod
    def parse(cls, line: str) -> Optional["MountEntry"]:
        """Parse a mount table line, returning None for blank or comment lines."""
        line = line.strip()
        if not line or line.startswith("#"):
            return None

        fields = line.split()
        if len(fields) < 4:
            raise MountsException(f"Invalid mount table line: {line!r}")

        return cls(
            source=_unescape(fields[0]),
            target=normalize_path(_unescape(fields[1])),
            filesystem=fields[2],
            options=fields[3].split(","),
        )


class MountTable:
    """
    Read-only view of the OS mount table.

    Usage:
        table = MountTable()
        entry = table.find("/mnt/backups")
        if entry:
            print(entry.source, entry.filesystem)
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else get_config().mount_table

    def entries(self) -> list[MountEntry]:
        """Read and parse the mount table."""
        try:
            content = self.path.read_text()
        except OSError as e:
            raise MountsException(f"Cannot read mount table {self.path}: {e}") from e

        entries = []
        for line in content.splitlines():
            entry = MountEntry.parse(line)
            if entry:
                entries.append(entry)
        return entries

    def find(self, target: Union[str, Path]) -> Optional[MountEntry]:
        """Return the entry mounted exactly on ``target`` (the topmost one if stacked)."""
        target = normalize_path(target)
        found = None
        for entry in self.entries():
            if entry.target == target:
                found = entry
        return found

    def find_for_path(self, path: Union[str, Path]) -> Optional[MountEntry]:
        """Return the entry of the filesystem that contains ``path``."""
        path = normalize_path(path)
        found = None
        for entry in self.entries():
            if is_within(path, entry.target):
                if found is None or len(entry.target) >= len(found.target):
                    found = entry
        return found

    def is_mount_point(self, target: Union[str, Path]) -> bool:
        return self.find(target) is not None


def get_declaration_for_path(
    path: Union[str, Path], config: Optional[FileSystemConfig] = None
) -> Optional[MountDeclaration]:
    """Return the declared mount whose target contains ``path``, longest target first."""
    config = config or get_config()
    path = normalize_path(path)

    for declaration in sorted(config.mounts, key=lambda d: len(d.target_path), reverse=True):
        if is_within(path, normalize_path(declaration.target_path)):
            return declaration
    return None


def mount(
    source: str,
    target: Union[str, Path],
    filesystem: Optional[str] = None,
    options: Optional[list[str]] = None,
    *,
    bind: bool = False,
    sudo: bool = False,
    timeout: Optional[float] = None,
) -> None:
    """
    Mount ``source`` on ``target`` using the OS mount command.

    Raises:
        FileActionFailedException: If mount exits non-zero
    """
    target = normalize_path(target)
    args = ["mount"]

    if bind:
        args.append("--bind")
    if filesystem:
        args.extend(["-t", filesystem])
    if options:
        args.extend(["-o", ",".join(options)])

    args.extend([source, target])

    logger.info(f"Mounting {source} on {target}{' (bind)' if bind else ''}")
    run_command(args, sudo=sudo, timeout=timeout, path=target)


def unmount(
    target: Union[str, Path],
    *,
    sudo: bool = False,
    lazy: bool = False,
    timeout: Optional[float] = None,
) -> None:
    """
    Unmount whatever is mounted on ``target``.

    Raises:
        FileActionFailedException: If umount exits non-zero
    """
    target = normalize_path(target)
    args = ["umount"]
    if lazy:
        args.append("-l")
    args.append(target)

    logger.info(f"Unmounting {target}")
    run_command(args, sudo=sudo, timeout=timeout, path=target)


def auto_mount(
    path: Union[str, Path],
    config: Optional[FileSystemConfig] = None,
    table: Optional[MountTable] = None,
) -> Optional[MountDeclaration]:
    """
    Mount the declared mount point containing ``path`` if it is not mounted yet.

    Does nothing unless auto-mounting is enabled in the configuration and
    the matching declaration has ``auto_mount`` set.

    Returns:
        The declaration that was mounted, or None if nothing was done
    """
    config = config or get_config()

    if not config.automounts_enabled or not config.mounts:
        return None

    declaration = get_declaration_for_path(path, config)
    if declaration is None or not declaration.auto_mount:
        return None

    table = table or MountTable(config.mount_table)
    if table.is_mount_point(declaration.target_path):
        return None

    logger.info(f"Auto mounting {declaration.source_path} on {declaration.target_path} for {path}")

    try:
        mount(
            declaration.source_path,
            declaration.target_path,
            declaration.filesystem,
            declaration.options,
            timeout=declaration.timeout,
        )
    except FileActionFailedException as e:
        logger.error(f"Auto mount of {declaration.target_path} failed: {e}")
        raise

    return declaration
