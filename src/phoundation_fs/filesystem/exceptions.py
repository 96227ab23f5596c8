"""
Exceptions for filesystem operations.

Every failure raised by the filesystem core derives from FileSystemError,
so callers can catch the whole family or a single kind.
"""

from typing import Any, Optional


class FileSystemError(Exception):
    """Base exception for filesystem operations."""

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.path = path
        self.data = data or {}

    def __str__(self) -> str:
        return self.message


class RestrictionsException(FileSystemError):
    """Raised when a path falls outside the allowed restrictions."""

    def __init__(
        self,
        path: str,
        reason: str = "Access denied by restrictions",
        *,
        label: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ):
        self.reason = reason
        self.label = label
        message = f"{reason}: {path}"
        if label:
            message = f"{message} (restrictions '{label}')"
        super().__init__(message, path=path, data=data)


class WriteRestrictionsException(RestrictionsException):
    """Raised when write access is requested on a read-only restriction."""

    pass


class NoRestrictionsError(RestrictionsException):
    """Raised when an operation is attempted with an empty restriction set."""

    def __init__(self, path: str, *, label: Optional[str] = None):
        super().__init__(path, "No restrictions specified", label=label)


class PathNotFoundException(FileSystemError):
    """Raised when a path could not be found or resolved."""

    def __init__(self, path: str, reason: str = "Path does not exist", **kwargs):
        self.reason = reason
        super().__init__(f"{reason}: {path}", path=path, **kwargs)


class FileNotExistException(PathNotFoundException):
    """Raised when a path must exist but does not."""

    pass


class FileExistsException(FileSystemError):
    """Raised when a path must not exist but does."""

    def __init__(self, path: str, reason: str = "Path already exists", **kwargs):
        self.reason = reason
        super().__init__(f"{reason}: {path}", path=path, **kwargs)


class FileNotOpenException(FileSystemError):
    """Raised when a stream operation is attempted on a closed path."""

    def __init__(self, path: str, action: str = "access"):
        self.action = action
        super().__init__(
            f"Cannot {action} path, it is not open: {path}", path=path
        )


class FileOpenException(FileSystemError):
    """Raised when a path is already open and must be closed first."""

    def __init__(self, path: str, reason: str = "Path is already open"):
        self.reason = reason
        super().__init__(f"{reason}: {path}", path=path)


class FileNotReadableException(FileSystemError):
    """Raised when a path exists but cannot be read."""

    def __init__(self, path: str, reason: str = "Path is not readable"):
        self.reason = reason
        super().__init__(f"{reason}: {path}", path=path)


class FileNotWritableException(FileSystemError):
    """Raised when a path exists but cannot be written."""

    def __init__(self, path: str, reason: str = "Path is not writable"):
        self.reason = reason
        super().__init__(f"{reason}: {path}", path=path)


class FileActionFailedException(FileSystemError):
    """Raised when an underlying OS call or external command fails."""

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        command: Optional[str] = None,
        return_code: Optional[int] = None,
        stderr: Optional[str] = None,
    ):
        super().__init__(message, path=path)
        self.command = command
        self.return_code = return_code
        self.stderr = stderr

    def __str__(self) -> str:
        parts = [self.message]
        if self.command:
            parts.append(f"command='{self.command}'")
        if self.return_code is not None:
            parts.append(f"return_code={self.return_code}")
        return " ".join(parts)


class FileSha256MismatchException(FileSystemError):
    """Raised when the SHA-256 digest of a file does not match."""

    def __init__(self, path: str, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"SHA256 mismatch for {path}: expected {expected}, got {actual}",
            path=path,
        )


class PathNotDirectoryException(FileSystemError):
    """Raised when a directory was expected but the path is something else."""

    def __init__(self, path: str, reason: str = "Path is not a directory"):
        self.reason = reason
        super().__init__(f"{reason}: {path}", path=path)


class NotASymlinkException(FileSystemError):
    """Raised when a symlink was expected but the path is not one."""

    def __init__(self, path: str):
        super().__init__(f"Path is not a symlink: {path}", path=path)


class SymlinkBrokenException(PathNotFoundException):
    """Raised when a symlink target does not exist."""

    def __init__(self, path: str, target: str):
        self.target = target
        super().__init__(path, f"Symlink target '{target}' does not exist")


class DirectoryNotMountedException(FileSystemError):
    """Raised when a directory was expected to be a mount point."""

    def __init__(self, path: str, reason: str = "Directory is not mounted"):
        self.reason = reason
        super().__init__(f"{reason}: {path}", path=path)


class MountsException(FileSystemError):
    """Raised when mount configuration or the mount table is invalid."""

    pass


class OutOfBoundsException(FileSystemError, ValueError):
    """Raised when a parameter violates a stated precondition."""

    def __init__(self, message: str, *, path: Optional[str] = None):
        super().__init__(message, path=path)
