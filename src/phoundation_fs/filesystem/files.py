"""
Collection of restricted paths.
"""

from typing import Callable, Iterable, Iterator, Optional, Union

from phoundation_fs.filesystem.path import FsPath
from phoundation_fs.filesystem.restrictions import Restrictions


class FsFiles:
    """
    Ordered collection of FsPath entries sharing one Restrictions instance.

    The ``.`` and ``..`` pseudo entries are never part of the collection.
    ``parent`` is the directory the entries were listed from, if any.
    """

    def __init__(
        self,
        entries: Iterable[Union[str, FsPath]] = (),
        restrictions: Optional[Restrictions] = None,
        parent: Optional[FsPath] = None,
    ):
        self.parent = parent
        self.restrictions = restrictions or (parent.restrictions if parent else Restrictions.get_system())
        self._entries: list[FsPath] = []

        for entry in entries:
            self.add(entry)

    def add(self, entry: Union[str, FsPath]) -> "FsFiles":
        """Add an entry. Strings are converted to FsPath objects."""
        name = entry.basename if isinstance(entry, FsPath) else str(entry).rstrip("/").rsplit("/", 1)[-1]
        if name in (".", ".."):
            return self

        if not isinstance(entry, FsPath):
            entry = FsPath(
                entry,
                self.restrictions,
                absolute_prefix=self.parent.path if self.parent else None,
                config=self.parent.config if self.parent else None,
            )

        self._entries.append(entry)
        return self

    def __iter__(self) -> Iterator[FsPath]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> FsPath:
        return self._entries[index]

    def __contains__(self, item) -> bool:
        return any(entry == item for entry in self._entries)

    def __repr__(self) -> str:
        return f"FsFiles({[entry.path for entry in self._entries]!r})"

    def get_paths(self) -> list[str]:
        return [entry.path for entry in self._entries]

    def get_basenames(self) -> list[str]:
        return [entry.basename for entry in self._entries]

    def first(self) -> Optional[FsPath]:
        return self._entries[0] if self._entries else None

    def filter(self, predicate: Callable[[FsPath], bool]) -> "FsFiles":
        """Return a new collection with the entries matching ``predicate``."""
        return FsFiles(
            [entry for entry in self._entries if predicate(entry)],
            self.restrictions,
            self.parent,
        )

    def each(self, callback: Callable[[FsPath], object]) -> "FsFiles":
        for entry in self._entries:
            callback(entry)
        return self
