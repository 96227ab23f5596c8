"""
Restricted file access.

FsFile adds content operations to FsPath: streamed counting, grep,
hashing, compression and target directory placement.
"""

import gzip
import hashlib
import logging
import os
import re
import shutil
import tarfile
import zipfile
from collections import Counter
from datetime import datetime
from typing import Iterator, Optional, Union

from phoundation_fs.filesystem.exceptions import (
    FileActionFailedException,
    FileExistsException,
    FileSha256MismatchException,
    OutOfBoundsException,
)
from phoundation_fs.filesystem.models import OpenMode, PathType
from phoundation_fs.filesystem.path import FsPath
from phoundation_fs.filesystem.pathutils import PathLike, normalize_path

logger = logging.getLogger(__name__)

# Lines longer than this are returned in pieces by grep()
GREP_MAX_LINE_LENGTH = 8192

_WORD_SPLIT = re.compile(rb"\s+")


class FsFile(FsPath):
    """
    A restricted regular file.

    Content operations stream the file in ``buffer_size`` chunks so that
    very large files never have to fit in memory. Operations that need
    content fail if the path is a directory.

    Usage:
        restrictions = Restrictions("/var/lib/app", write=True)
        log = FsFile("/var/lib/app/logs/import.log", restrictions)

        lines = log.get_line_count()
        errors = log.grep(["ERROR", "CRITICAL"])
        log.check_sha256(expected_hash)
    """

    kind = PathType.FILE

    def __init__(self, *args, buffer_size: Optional[int] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.buffer_size = buffer_size or self.config.buffer_size

    def set_buffer_size(self, buffer_size: int) -> "FsFile":
        if buffer_size < 1:
            raise OutOfBoundsException(f"Invalid buffer size '{buffer_size}'", path=self.path)
        self.buffer_size = buffer_size
        return self

    def _check_not_directory(self, action: str) -> None:
        if self.is_directory():
            raise FileActionFailedException(
                f"Cannot {action}, the path is a directory", path=self.path
            )

    def iter_chunks(self, buffer: Optional[int] = None) -> Iterator[bytes]:
        """
        Yield the file content in chunks of ``buffer`` bytes.

        Uses its own file handle, the path must be closed.
        """
        buffer = buffer or self.buffer_size
        if buffer < 1:
            raise OutOfBoundsException(f"Invalid buffer size '{buffer}'", path=self.path)

        self.check_restrictions(False)
        self._check_closed("read chunks from")
        self._check_not_directory("read chunks")

        try:
            f = open(self.path, "rb")
        except OSError as e:
            self.check_readable(previous_error=FileActionFailedException(
                f"Failed to open file: {e}", path=self.path
            ))

        with f:
            while True:
                chunk = f.read(buffer)
                if not chunk:
                    break
                yield chunk

    def read_lines(self, encoding: str = "utf-8") -> Iterator[str]:
        """Yield lines without line endings, streaming the file."""
        remainder = b""
        for chunk in self.iter_chunks():
            lines = (remainder + chunk).split(b"\n")
            remainder = lines.pop()
            for line in lines:
                yield line.decode(encoding, errors="replace")
        if remainder:
            yield remainder.decode(encoding, errors="replace")

    # -- Counting -----------------------------------------------------------

    def get_line_count(self, buffer: Optional[int] = None) -> int:
        """
        Count lines, streaming the file in ``buffer`` sized chunks.

        A trailing line without newline counts as a line.
        """
        count = 0
        last = b""

        for chunk in self.iter_chunks(buffer):
            count += chunk.count(b"\n")
            last = chunk

        if last and not last.endswith(b"\n"):
            count += 1

        return count

    def _iter_words(self, buffer: Optional[int] = None) -> Iterator[bytes]:
        carry = b""

        for chunk in self.iter_chunks(buffer):
            words = _WORD_SPLIT.split(carry + chunk)
            # The last piece may continue in the next chunk
            carry = words.pop()
            for word in words:
                if word:
                    yield word

        if carry:
            yield carry

    def get_word_count(self, buffer: Optional[int] = None) -> int:
        """Count whitespace separated words."""
        return sum(1 for _ in self._iter_words(buffer))

    def get_word_frequency(self, buffer: Optional[int] = None, encoding: str = "utf-8") -> dict[str, int]:
        """Return how often each whitespace separated word occurs."""
        return dict(
            Counter(word.decode(encoding, errors="replace") for word in self._iter_words(buffer))
        )

    def grep(self, filters: Union[str, list[str]], until_line: Optional[int] = None) -> dict[str, list[str]]:
        """
        Find lines containing any of the filter strings.

        Args:
            filters: Substring or list of substrings
            until_line: Stop after this many lines

        Returns:
            Mapping of filter to the matching lines (without line endings).
            Filters without matches are not included.
        """
        if isinstance(filters, str):
            filters = [filters]

        for filter in filters:
            if not isinstance(filter, str) or not filter:
                raise OutOfBoundsException(f"Invalid grep filter '{filter}'", path=self.path)

        if until_line is not None and until_line < 1:
            raise OutOfBoundsException(f"Invalid until_line '{until_line}'", path=self.path)

        self._check_not_directory("grep")
        self.open(OpenMode.READ_ONLY)

        results: dict[str, list[str]] = {}
        count = 0

        try:
            while True:
                line = self.read_line(GREP_MAX_LINE_LENGTH)
                if not line:
                    break

                text = line.decode("utf-8", errors="replace").rstrip("\r\n")
                for filter in filters:
                    if filter in text:
                        results.setdefault(filter, []).append(text)

                if line.endswith(b"\n"):
                    count += 1
                if until_line and count >= until_line:
                    break
        finally:
            self.close()

        return results

    # -- Hashing ------------------------------------------------------------

    def get_sha256(self, buffer: Optional[int] = None) -> str:
        digest = hashlib.sha256()
        for chunk in self.iter_chunks(buffer):
            digest.update(chunk)
        return digest.hexdigest()

    def check_sha256(self, sha256: str, ignore_failure: bool = False) -> "FsFile":
        """
        Compare the file's SHA-256 digest, case insensitive.

        Raises:
            FileSha256MismatchException: On mismatch, unless ignore_failure is set
        """
        actual = self.get_sha256()

        if actual != sha256.strip().lower():
            if not ignore_failure:
                raise FileSha256MismatchException(self.path, sha256, actual)

            logger.warning(
                f"SHA256 of {self.path} does not match {sha256}, continuing because failures are ignored"
            )

        return self

    # -- Content changes ----------------------------------------------------

    def append(self, data: Union[bytes, str]) -> "FsFile":
        self._check_not_directory("append")
        self.append_data(data)
        return self

    def append_files(self, sources: list[Union[PathLike, FsPath]]) -> "FsFile":
        """
        Append the content of other files.

        Sources are checked against this file's restrictions. If this file
        was closed on entry it is closed again afterwards.
        """
        self._check_not_directory("append files")
        self.check_restrictions(True)

        sources = [
            source if isinstance(source, FsFile) else FsFile(source, self.restrictions, config=self.config)
            for source in sources
        ]
        for source in sources:
            source.check_readable("source")

        was_open = self.is_open()
        if not was_open:
            self.ensure_parent_directory()
            self.open(OpenMode.WRITE_APPEND)

        try:
            for source in sources:
                for chunk in source.iter_chunks(self.buffer_size):
                    self.write(chunk)
                logger.debug(f"Appended {source.path} to {self.path}")
        finally:
            if not was_open:
                self.close()

        self.invalidate()
        return self

    def replace(
        self,
        replaces: dict[str, str],
        target: Optional[Union[PathLike, FsPath]] = None,
        regex: bool = False,
    ) -> "FsFile":
        """
        Replace text in the file.

        Args:
            replaces: Mapping of search to replacement
            target: Write the result here instead of in place
            regex: Treat the search keys as regular expressions

        Returns:
            The file holding the result
        """
        content = self.get_contents_as_string()

        for search, replacement in replaces.items():
            if regex:
                content = re.sub(search, replacement, content)
            else:
                content = content.replace(search, replacement)

        destination = self if target is None else (
            target if isinstance(target, FsFile) else self._derive(target, FsFile)
        )
        destination.put_contents(content)
        return destination

    def ensure_line_endings(self, ending: str = "\n") -> "FsFile":
        """Convert all line endings to ``ending``."""
        if ending not in ("\n", "\r\n", "\r"):
            raise OutOfBoundsException(f"Invalid line ending {ending!r}", path=self.path)

        content = self.get_contents()
        normalized = content.replace(b"\r\n", b"\n").replace(b"\r", b"\n")
        if ending != "\n":
            normalized = normalized.replace(b"\n", ending.encode())

        if normalized != content:
            self.put_contents(normalized)

        return self

    def path_contains_symlink(self, prefix: Optional[PathLike] = None) -> bool:
        """
        Check whether any component of the path is a symlink.

        Args:
            prefix: Only check components below this directory
        """
        self.check_restrictions(False)
        start = normalize_path(prefix) if prefix else "/"
        current = start.rstrip("/")

        for part in self.path[len(current):].strip("/").split("/"):
            current = f"{current}/{part}"
            if os.path.islink(current):
                return True

        return False

    # -- Copies -------------------------------------------------------------

    def copy(self, target: Union[PathLike, FsPath], overwrite: bool = False) -> "FsFile":
        """
        Copy the file, keeping its mode.

        Raises:
            FileExistsException: If the target exists and overwrite is not set
        """
        self.check_restrictions(False)
        target = target if isinstance(target, FsFile) else self._derive(
            target.path if isinstance(target, FsPath) else target, FsFile
        )
        target.check_restrictions(True)

        if target.is_directory():
            target = target._derive(os.path.join(target.path, self.basename), FsFile)

        if os.path.lexists(target.path) and not overwrite:
            raise FileExistsException(target.path, "Cannot copy file, the target exists")

        target.ensure_parent_directory()

        try:
            shutil.copy2(self.path, target.path)
        except OSError as e:
            self.check_readable(previous_error=FileActionFailedException(
                f"Failed to copy file to '{target.path}': {e}", path=self.path
            ))

        logger.info(f"Copied {self.path} to {target.path}")
        target.invalidate()
        self.target = target.path
        return target

    def backup(self, move: bool = False) -> "FsFile":
        """Copy (or move) the file to a timestamped sibling, ``name~20240101-120000``."""
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        target = self._derive(f"{self.path}~{stamp}", FsFile)

        if move:
            original = self.path
            self.rename(target)
            logger.info(f"Moved {original} to backup {target.path}")
            return self

        return self.copy(target)

    def _place_in_target(
        self,
        directory: Union[PathLike, FsPath],
        extension: Optional[str],
        single_dir: Optional[bool],
        length: Optional[int],
        copy: bool,
    ) -> str:
        from phoundation_fs.filesystem.directory import FsDirectory

        self.check_restrictions(not copy)
        self.check_exists()

        base = directory if isinstance(directory, FsDirectory) else self._derive(
            directory.path if isinstance(directory, FsPath) else directory, FsDirectory
        )

        stem = self.basename
        if "." in stem.lstrip("."):
            stem = stem.rsplit(".", 1)[0]
        stem = stem.lower()

        if extension is None:
            extension = self.get_extension()
        extension = extension.lstrip(".")
        name = f"{stem}.{extension}" if extension else stem

        for attempt in range(100):
            target_directory = base.create_target(single_dir, length) if length != 0 else base.ensure()
            target = target_directory._derive(os.path.join(target_directory.path, name), FsFile)

            if not os.path.lexists(target.path):
                break

            logger.debug(f"Target {target.path} exists, generating another one")
        else:
            raise FileExistsException(
                base.path, f"Failed to find a free target for '{name}' after 100 attempts"
            )

        if copy:
            self.copy(target)
        else:
            self.rename(target)

        return target.path

    def copy_to_target(
        self,
        directory: Union[PathLike, FsPath],
        extension: Optional[str] = None,
        single_dir: Optional[bool] = None,
        length: Optional[int] = None,
    ) -> str:
        """
        Copy the file into a generated target directory below ``directory``.

        The target directory consists of ``length`` random hex characters,
        nested (``a/b/c/d/``) or flat (``abcd/``). The file name is the
        lowercased name without extension plus ``extension``. A new target
        is generated until one is found that does not exist yet.

        Args:
            directory: Base directory
            extension: Extension for the target (None = keep the current one)
            single_dir: Flat instead of nested directories (None = configured default)
            length: Number of hex characters (None = configured default, 0 = none)

        Returns:
            Path of the copy
        """
        return self._place_in_target(directory, extension, single_dir, length, copy=True)

    def move_to_target(
        self,
        directory: Union[PathLike, FsPath],
        extension: Optional[str] = None,
        single_dir: Optional[bool] = None,
        length: Optional[int] = None,
        copy: bool = False,
    ) -> str:
        """Like ``copy_to_target`` but moves the file unless ``copy`` is set."""
        return self._place_in_target(directory, extension, single_dir, length, copy)

    # -- Compression --------------------------------------------------------

    def _compressed_target(self, path: str) -> "FsFile":
        target = self._derive(path, FsFile)
        target.check_restrictions(True)
        if os.path.lexists(target.path):
            raise FileExistsException(target.path, "Cannot create archive, the target exists")
        return target

    def tar(self, target: Optional[PathLike] = None, compression: Optional[str] = "gz") -> "FsFile":
        """
        Create a tar archive containing this file.

        Args:
            target: Archive path (default: ``<file>.tar`` plus compression suffix)
            compression: None, "gz", "bz2" or "xz"
        """
        if compression not in (None, "gz", "bz2", "xz"):
            raise OutOfBoundsException(f"Unsupported tar compression '{compression}'", path=self.path)

        self.check_exists()
        suffix = ".tar" + (f".{compression}" if compression else "")
        archive = self._compressed_target(str(target) if target else self.path + suffix)

        try:
            with tarfile.open(archive.path, f"w:{compression or ''}") as tar:
                tar.add(self.path, arcname=self.basename)
        except (OSError, tarfile.TarError) as e:
            raise FileActionFailedException(f"Failed to tar file: {e}", path=self.path, command="tar") from e

        logger.info(f"Created tar archive {archive.path}")
        return archive

    def untar(self, target_directory: Optional[PathLike] = None):
        """
        Extract this tar archive.

        Returns:
            FsDirectory the archive was extracted in (default: the archive's directory)
        """
        from phoundation_fs.filesystem.directory import FsDirectory

        self.check_exists()
        directory = self._derive(target_directory or self.dirname, FsDirectory)
        directory.check_restrictions(True)
        directory.ensure()

        try:
            with tarfile.open(self.path, "r:*") as tar:
                tar.extractall(directory.path, filter="data")
        except (OSError, tarfile.TarError) as e:
            raise FileActionFailedException(f"Failed to untar file: {e}", path=self.path, command="untar") from e

        logger.info(f"Extracted {self.path} into {directory.path}")
        return directory.invalidate()

    def gzip(self, keep: bool = False) -> "FsFile":
        """Compress to ``<file>.gz`` and remove the original unless ``keep`` is set."""
        self.check_restrictions(True)
        self.check_exists()
        self._check_not_directory("gzip")
        archive = self._compressed_target(self.path + ".gz")

        try:
            with open(self.path, "rb") as source, gzip.open(archive.path, "wb") as destination:
                shutil.copyfileobj(source, destination, self.buffer_size)
        except OSError as e:
            raise FileActionFailedException(f"Failed to gzip file: {e}", path=self.path, command="gzip") from e

        if not keep:
            self.delete(clean_path=False, use_run_file=False)

        logger.info(f"Compressed {self.path} to {archive.path}")
        return archive

    def gunzip(self, keep: bool = False) -> "FsFile":
        """Decompress a ``.gz`` file and remove it unless ``keep`` is set."""
        if not self.path.endswith(".gz"):
            raise OutOfBoundsException("Cannot gunzip file, it has no .gz extension", path=self.path)

        self.check_restrictions(True)
        self.check_exists()
        target = self._compressed_target(self.path[:-3])

        try:
            with gzip.open(self.path, "rb") as source, open(target.path, "wb") as destination:
                shutil.copyfileobj(source, destination, self.buffer_size)
        except (OSError, EOFError) as e:
            if os.path.exists(target.path):
                os.unlink(target.path)
            raise FileActionFailedException(f"Failed to gunzip file: {e}", path=self.path, command="gunzip") from e

        if not keep:
            self.delete(clean_path=False, use_run_file=False)

        logger.info(f"Decompressed {self.path} to {target.path}")
        return target

    def unzip(self, target_directory: Optional[PathLike] = None):
        """Extract this zip archive, returning the FsDirectory it was extracted in."""
        from phoundation_fs.filesystem.directory import FsDirectory

        self.check_exists()
        directory = self._derive(target_directory or self.dirname, FsDirectory)
        directory.check_restrictions(True)
        directory.ensure()

        try:
            with zipfile.ZipFile(self.path) as archive:
                archive.extractall(directory.path)
        except (OSError, zipfile.BadZipFile) as e:
            raise FileActionFailedException(f"Failed to unzip file: {e}", path=self.path, command="unzip") from e

        logger.info(f"Extracted {self.path} into {directory.path}")
        return directory.invalidate()
