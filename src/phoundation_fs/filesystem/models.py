"""
Filesystem data models.

This module defines the enums and Pydantic models exposed by path
objects: path types, stream open modes, mount states and stat data.
"""

import stat
from enum import Enum

from pydantic import BaseModel, Field


class PathType(str, Enum):
    """Type of a filesystem entry."""

    SOCKET = "socket"
    SYMLINK = "symlink"
    FILE = "file"
    BLOCK_DEVICE = "block device"
    DIRECTORY = "directory"
    CHARACTER_DEVICE = "character device"
    FIFO = "fifo"
    UNKNOWN = "unknown"

    @property
    def code(self) -> str:
        """Single character type code as shown by ``ls -l``."""
        return _TYPE_CODES[self]

    @property
    def description(self) -> str:
        """Long human readable name of this type."""
        return _TYPE_DESCRIPTIONS[self]

    @classmethod
    def from_mode(cls, mode: int) -> "PathType":
        """Determine the path type from a raw ``st_mode`` value."""
        if stat.S_ISSOCK(mode):
            return cls.SOCKET
        if stat.S_ISLNK(mode):
            return cls.SYMLINK
        if stat.S_ISREG(mode):
            return cls.FILE
        if stat.S_ISBLK(mode):
            return cls.BLOCK_DEVICE
        if stat.S_ISDIR(mode):
            return cls.DIRECTORY
        if stat.S_ISCHR(mode):
            return cls.CHARACTER_DEVICE
        if stat.S_ISFIFO(mode):
            return cls.FIFO
        return cls.UNKNOWN


_TYPE_CODES = {
    PathType.SOCKET: "s",
    PathType.SYMLINK: "l",
    PathType.FILE: "-",
    PathType.BLOCK_DEVICE: "b",
    PathType.DIRECTORY: "d",
    PathType.CHARACTER_DEVICE: "c",
    PathType.FIFO: "p",
    PathType.UNKNOWN: "u",
}

_TYPE_DESCRIPTIONS = {
    PathType.SOCKET: "socket",
    PathType.SYMLINK: "symbolic link",
    PathType.FILE: "regular file",
    PathType.BLOCK_DEVICE: "block device",
    PathType.DIRECTORY: "directory",
    PathType.CHARACTER_DEVICE: "character device",
    PathType.FIFO: "fifo pipe",
    PathType.UNKNOWN: "unknown",
}


class OpenMode(str, Enum):
    """Stream open modes. Streams are always opened in binary mode."""

    READ_ONLY = "r"
    READ_WRITE = "r+"
    WRITE_ONLY = "w"
    WRITE_READ = "w+"
    WRITE_APPEND = "a"
    READ_APPEND = "a+"
    CREATE_WRITE = "x"
    CREATE_READ_WRITE = "x+"

    @property
    def is_readable(self) -> bool:
        return self.value == "r" or "+" in self.value

    @property
    def is_writable(self) -> bool:
        return self.value != "r"

    @property
    def python_mode(self) -> str:
        """Mode string suitable for the builtin ``open()``."""
        return self.value[0] + "b" + self.value[1:]


class MountState(str, Enum):
    """Result of a mount point query."""

    MOUNTED = "mounted"
    NOT_MOUNTED = "not_mounted"
    MOUNTED_WITH_ISSUES = "mounted_with_issues"

    @property
    def as_bool(self):
        """Legacy tri-state value: True, False or None for inconsistencies."""
        if self is MountState.MOUNTED:
            return True
        if self is MountState.NOT_MOUNTED:
            return False
        return None


def mode_to_human_readable(mode: int) -> str:
    """
    Convert a raw ``st_mode`` into an ``ls -l`` style string.

    Args:
        mode: Raw mode including the file type bits

    Returns:
        Ten character string such as ``drwxr-x---``
    """
    chars = [PathType.from_mode(mode).code]

    for read, write, execute, special, special_char in (
        (stat.S_IRUSR, stat.S_IWUSR, stat.S_IXUSR, stat.S_ISUID, "s"),
        (stat.S_IRGRP, stat.S_IWGRP, stat.S_IXGRP, stat.S_ISGID, "s"),
        (stat.S_IROTH, stat.S_IWOTH, stat.S_IXOTH, stat.S_ISVTX, "t"),
    ):
        chars.append("r" if mode & read else "-")
        chars.append("w" if mode & write else "-")

        if mode & special:
            chars.append(special_char if mode & execute else special_char.upper())
        else:
            chars.append("x" if mode & execute else "-")

    return "".join(chars)


class ModeInfo(BaseModel):
    """Permission information of a path in both numeric and text form."""

    mode: int = Field(description="Permission bits including setuid/setgid/sticky")
    octal: str = Field(description="Permission bits as four digit octal string")
    human_readable: str = Field(description="ls -l style representation")
    type: PathType = Field(description="Type of the path")
    setuid: bool = Field(default=False)
    setgid: bool = Field(default=False)
    sticky: bool = Field(default=False)

    @classmethod
    def from_mode(cls, mode: int) -> "ModeInfo":
        permissions = stat.S_IMODE(mode)
        return cls(
            mode=permissions,
            octal=f"{permissions:04o}",
            human_readable=mode_to_human_readable(mode),
            type=PathType.from_mode(mode),
            setuid=bool(mode & stat.S_ISUID),
            setgid=bool(mode & stat.S_ISGID),
            sticky=bool(mode & stat.S_ISVTX),
        )


class StatInfo(BaseModel):
    """Cached stat data of a path."""

    mode: int = Field(description="Raw st_mode value")
    type: PathType = Field(description="Type of the path")
    size: int = Field(default=0, description="Size in bytes")
    uid: int = Field(default=0, description="Owner user id")
    gid: int = Field(default=0, description="Owner group id")
    inode: int = Field(default=0)
    device: int = Field(default=0)
    nlink: int = Field(default=1)
    atime: float = Field(default=0.0)
    mtime: float = Field(default=0.0)
    ctime: float = Field(default=0.0)

    @classmethod
    def from_stat(cls, result) -> "StatInfo":
        """Create from an ``os.stat_result``."""
        return cls(
            mode=result.st_mode,
            type=PathType.from_mode(result.st_mode),
            size=result.st_size,
            uid=result.st_uid,
            gid=result.st_gid,
            inode=result.st_ino,
            device=result.st_dev,
            nlink=result.st_nlink,
            atime=result.st_atime,
            mtime=result.st_mtime,
            ctime=result.st_ctime,
        )

    @property
    def permissions(self) -> int:
        return stat.S_IMODE(self.mode)
