"""
Phoundation FS - restricted filesystem access.

This package provides a restriction scoped abstraction over POSIX file
operations: path normalization, symlink handling, recursive tree
operations, mount management and allow-list based sandboxing.
"""

__version__ = "0.1.0"

from phoundation_fs.filesystem import (
    FileSystemConfig,
    FileSystemError,
    FsDirectory,
    FsExecute,
    FsFile,
    FsFiles,
    FsPath,
    MountState,
    OpenMode,
    PathType,
    Restrictions,
    RestrictionsException,
    WalkOptions,
    configure,
    get_config,
)

__all__ = [
    # Version
    "__version__",
    # Config
    "FileSystemConfig",
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
    # Models
    "MountState",
    "OpenMode",
    "PathType",
    # Exceptions
    "FileSystemError",
    "RestrictionsException",
]
