"""In-memory filesystem used to hold extracted archives.

Two layers are involved.  :class:`Dir` is the mutable builder the archive
downloader fills one entry at a time; :meth:`Dir.finish` converts it into a
sorted, parent-linked :class:`ReadonlyDir`.  :class:`InMemoryFS` is the
read-only view handed to callers, anchored at a logical root path.

Paths passed to :class:`InMemoryFS` are ``/``-separated and relative to the
view's current directory; ``..`` walks to the parent.
"""

from __future__ import annotations

import posixpath
from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterator, Optional, Tuple, Union

from .errors import FileSystemConflictError, FileSystemPathError
from .jsonutils import parse_json

__all__ = ["Dir", "ReadonlyDir", "InMemoryFS", "Entry"]


class ReadonlyDir(Mapping[str, "Entry"]):
    """Immutable directory node produced by :meth:`Dir.finish`."""

    __slots__ = ("name", "parent", "_entries")

    def __init__(self, name: str, parent: Optional["ReadonlyDir"]) -> None:
        self.name = name
        self.parent = parent
        self._entries: Dict[str, Entry] = {}

    def __getitem__(self, key: str) -> "Entry":
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"ReadonlyDir({self.name!r}, entries={list(self._entries)!r})"


Entry = Union[ReadonlyDir, str]


def _check_name(name: str) -> None:
    if not name or "/" in name or name in {".", ".."}:
        raise FileSystemPathError(f"Invalid file system entry name {name!r}")


class Dir:
    """Mutable directory tree built while an archive is being decoded."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._children: Dict[str, Union[Dir, str]] = {}

    def subdir(self, name: str) -> "Dir":
        """Return the child directory ``name``, creating it if necessary."""
        _check_name(name)
        existing = self._children.get(name)
        if existing is None:
            child = Dir(name)
            self._children[name] = child
            return child
        if not isinstance(existing, Dir):
            raise FileSystemConflictError(
                f"Cannot create directory {name!r}: a file with that name exists"
            )
        return existing

    def set(self, name: str, content: str) -> None:
        """Insert or replace the file ``name``."""
        _check_name(name)
        if isinstance(self._children.get(name), Dir):
            raise FileSystemConflictError(
                f"Cannot write file {name!r}: a directory with that name exists"
            )
        self._children[name] = content

    def insert_file(self, path: str, content: str) -> None:
        """Insert ``content`` at the ``/``-separated ``path``, creating parents."""
        *components, base_name = path.split("/")
        directory = self
        for component in components:
            directory = directory.subdir(component)
        directory.set(base_name, content)

    def finish(self, parent: Optional[ReadonlyDir] = None) -> ReadonlyDir:
        """Freeze this tree into a :class:`ReadonlyDir` with sorted entries."""
        frozen = ReadonlyDir(self.name, parent)
        for name in sorted(self._children):
            child = self._children[name]
            frozen._entries[name] = child.finish(frozen) if isinstance(child, Dir) else child
        return frozen


def _validate_path(path: str) -> None:
    if path.startswith(".") and path != ".editorconfig" and not path.startswith("../"):
        raise FileSystemPathError(f"{path}: filesystem doesn't support paths of the form './x'.")
    if path.startswith("/"):
        raise FileSystemPathError(f"{path}: filesystem doesn't support paths of the form '/xxx'.")
    if path.endswith("/"):
        raise FileSystemPathError(f"{path}: filesystem doesn't support paths of the form 'xxx/'.")


class InMemoryFS:
    """Read-only filesystem view over a finished :class:`ReadonlyDir`."""

    def __init__(self, cur_dir: ReadonlyDir, path_to_root: str) -> None:
        self.cur_dir = cur_dir
        self.path_to_root = path_to_root

    def _try_get_entry(self, path: str) -> Optional[Entry]:
        _validate_path(path)
        if path == "":
            return self.cur_dir
        *components, base_name = path.split("/")
        directory = self.cur_dir
        for component in components:
            entry = directory.parent if component == ".." else directory.get(component)
            if entry is None:
                return None
            if not isinstance(entry, ReadonlyDir):
                raise FileSystemPathError(
                    f"No file system entry at {self.real_path(path)}. "
                    f"Siblings are: {', '.join(directory)}"
                )
            directory = entry
        if base_name == "..":
            return directory.parent
        return directory.get(base_name)

    def _get_entry(self, path: str) -> Entry:
        entry = self._try_get_entry(path)
        if entry is None:
            raise FileSystemPathError(f"No file system entry at {self.real_path(path)}")
        return entry

    def _get_dir(self, path: str) -> ReadonlyDir:
        entry = self._get_entry(path)
        if not isinstance(entry, ReadonlyDir):
            raise FileSystemPathError(f"{self.real_path(path)} is a file, not a directory")
        return entry

    def read_file(self, path: str) -> str:
        entry = self._get_entry(path)
        if not isinstance(entry, str):
            raise FileSystemPathError(f"{self.real_path(path)} is a directory, not a file")
        return entry

    def read_json(self, path: str, predicate: Optional[Callable[[Any], bool]] = None) -> Any:
        return parse_json(self.read_file(path), predicate)

    def read_dir(self, dir_path: str = "") -> Tuple[str, ...]:
        """Return the sorted entry names of ``dir_path``."""
        return tuple(self._get_dir(dir_path))

    def is_directory(self, path: str) -> bool:
        return isinstance(self._get_entry(path), ReadonlyDir)

    def exists(self, path: str) -> bool:
        return self._try_get_entry(path) is not None

    def sub_dir(self, path: str) -> "InMemoryFS":
        return InMemoryFS(self._get_dir(path), self.real_path(path))

    def debug_path(self) -> str:
        return self.path_to_root

    def real_path(self, path: str) -> str:
        return posixpath.normpath(posixpath.join(self.path_to_root, path))

    def iter_files(self) -> Iterator[Tuple[str, str]]:
        """Yield ``(relative_path, content)`` for every file, depth first."""

        def _walk(directory: ReadonlyDir, prefix: str) -> Iterator[Tuple[str, str]]:
            for name, entry in directory.items():
                path = f"{prefix}{name}"
                if isinstance(entry, ReadonlyDir):
                    yield from _walk(entry, f"{path}/")
                else:
                    yield path, entry

        yield from _walk(self.cur_dir, "")

    def __repr__(self) -> str:
        return f"InMemoryFS({self.path_to_root!r})"
