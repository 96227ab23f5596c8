"""
Restricted filesystem access layer.

This module provides capability checked access to POSIX filesystems:
restriction scoped paths, files and directories, tree walking and
mount management.
"""

from phoundation_fs.filesystem.config import (
    FileSystemConfig,
    MountDeclaration,
    configure,
    get_config,
)
from phoundation_fs.filesystem.directory import FsDirectory
from phoundation_fs.filesystem.exceptions import (
    DirectoryNotMountedException,
    FileActionFailedException,
    FileExistsException,
    FileNotExistException,
    FileNotOpenException,
    FileNotReadableException,
    FileNotWritableException,
    FileOpenException,
    FileSha256MismatchException,
    FileSystemError,
    MountsException,
    NoRestrictionsError,
    NotASymlinkException,
    OutOfBoundsException,
    PathNotDirectoryException,
    PathNotFoundException,
    RestrictionsException,
    SymlinkBrokenException,
    WriteRestrictionsException,
)
from phoundation_fs.filesystem.execute import FsExecute, WalkOptions
from phoundation_fs.filesystem.file import FsFile
from phoundation_fs.filesystem.files import FsFiles
from phoundation_fs.filesystem.models import (
    ModeInfo,
    MountState,
    OpenMode,
    PathType,
    StatInfo,
)
from phoundation_fs.filesystem.mounts import MountEntry, MountTable
from phoundation_fs.filesystem.path import FsPath
from phoundation_fs.filesystem.pathutils import absolute_path, normalize_path, relative_path
from phoundation_fs.filesystem.restrictions import Restrictions

__all__ = [
    # Config
    "FileSystemConfig",
    "MountDeclaration",
    "configure",
    "get_config",
    # Paths
    "Restrictions",
    "FsPath",
    "FsFile",
    "FsDirectory",
    "FsFiles",
    "FsExecute",
    "WalkOptions",
    "absolute_path",
    "normalize_path",
    "relative_path",
    # Models
    "ModeInfo",
    "MountState",
    "OpenMode",
    "PathType",
    "StatInfo",
    "MountEntry",
    "MountTable",
    # Exceptions
    "FileSystemError",
    "RestrictionsException",
    "WriteRestrictionsException",
    "NoRestrictionsError",
    "PathNotFoundException",
    "FileNotExistException",
    "FileExistsException",
    "FileNotOpenException",
    "FileOpenException",
    "FileNotReadableException",
    "FileNotWritableException",
    "FileActionFailedException",
    "FileSha256MismatchException",
    "PathNotDirectoryException",
    "NotASymlinkException",
    "SymlinkBrokenException",
    "DirectoryNotMountedException",
    "MountsException",
    "OutOfBoundsException",
]
