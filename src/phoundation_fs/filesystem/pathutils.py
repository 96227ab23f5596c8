"""
Pure path string helpers.

These functions never touch restrictions. They only transform path
strings, and ``absolute_path`` optionally checks for existence.
"""

import os
from pathlib import Path
from typing import Optional, Union

from phoundation_fs.filesystem.exceptions import (
    FileNotExistException,
    OutOfBoundsException,
)

# Taken once at import, os.getcwd() may change while the process runs
START_DIRECTORY = os.getcwd()

PathLike = Union[str, Path]


def normalize_path(path: PathLike, absolute_prefix: Optional[PathLike] = None) -> str:
    """
    Resolve ``.`` and ``..`` segments and collapse duplicate slashes.

    Symlinks are not resolved. Relative paths are first made absolute
    with ``absolute_path``.

    Args:
        path: Path to normalize
        absolute_prefix: Prefix for relative paths

    Returns:
        Absolute path without trailing slash (``/`` for the root)

    Raises:
        OutOfBoundsException: If ``..`` segments pass beyond the root directory
    """
    path = str(path).strip()

    if not path.startswith("/"):
        path = absolute_path(path, absolute_prefix)

    parts: list[str] = []

    for part in path.replace("\\", "/").split("/"):
        if not part or part == ".":
            continue

        if part == "..":
            if not parts:
                raise OutOfBoundsException(
                    f"Cannot normalize path '{path}', it passes beyond the root directory",
                    path=path,
                )
            parts.pop()
            continue

        parts.append(part)

    return "/" + "/".join(parts)


def absolute_path(
    path: Optional[PathLike],
    absolute_prefix: Optional[PathLike] = None,
    must_exist: bool = False,
) -> str:
    """
    Convert a path into a normalized absolute path.

    Rules:
        - ``/...`` is already absolute
        - ``~`` and ``~/...`` start at the home directory of the process user
        - ``./...`` starts at the directory the process was started in
        - anything else is appended to ``absolute_prefix`` (default: the
          start directory)

    Args:
        path: Path to convert (empty = the absolute prefix itself)
        absolute_prefix: Prefix for relative paths
        must_exist: Raise if the resulting path does not exist

    Returns:
        Normalized absolute path

    Raises:
        FileNotExistException: If must_exist is set and the path is absent
        OutOfBoundsException: If the path passes beyond the root directory
    """
    path = str(path).strip() if path is not None else ""
    prefix = str(absolute_prefix).strip() if absolute_prefix else START_DIRECTORY

    if not prefix.startswith("/"):
        prefix = normalize_path(prefix, START_DIRECTORY)

    if not path:
        result = normalize_path(prefix)
    elif path.startswith("/"):
        result = normalize_path(path)
    elif path == "~" or path.startswith("~/"):
        home = os.path.expanduser("~")
        if home == "~":
            raise OutOfBoundsException(
                "Cannot use '~' paths, cannot determine the home directory of this user",
                path=path,
            )
        result = normalize_path(home + "/" + path[1:])
    elif path.startswith("./"):
        result = normalize_path(START_DIRECTORY + "/" + path[2:])
    else:
        result = normalize_path(prefix + "/" + path)

    if must_exist and not os.path.lexists(result):
        raise FileNotExistException(result, "The resolved path does not exist")

    return result


def relative_path(source: PathLike, target: PathLike) -> str:
    """
    Return the path of ``target`` relative to the directory containing ``source``.

    This is the value a symlink at ``source`` needs to point to ``target``.

    Args:
        source: Path the relative value is used from (e.g. the symlink)
        target: Path to reach

    Returns:
        Relative path, or ``.`` if both paths are equal
    """
    source = normalize_path(source)
    target = normalize_path(target)

    if source == target:
        return "."

    return os.path.relpath(target, os.path.dirname(source))


def is_within(path: str, directory: str) -> bool:
    """Check whether ``path`` equals or lies below ``directory`` on component boundaries."""
    if directory == "/":
        return path.startswith("/")
    return path == directory or path.startswith(directory + "/")


def get_extension(path: PathLike) -> str:
    """Return the last extension of the basename without the dot, or an empty string."""
    name = os.path.basename(str(path).rstrip("/"))
    if "." not in name.lstrip("."):
        return ""
    return name.rsplit(".", 1)[1]
