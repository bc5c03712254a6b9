"""Pack a directory into a gzip tarball.

The archive is rooted at the directory's parent, so the directory itself is
the single top-level entry.  Every directory entry is made searchable wherever
it is readable (see :func:`add_execute_permissions_from_read_permissions`);
archives produced on platforms that do not record execute bits therefore still
extract into traversable trees.
"""

from __future__ import annotations

import asyncio
import gzip
import logging
import tarfile
from pathlib import Path
from typing import Callable, Iterator, List, Union

from ..errors import PackError

PathLike = Union[str, Path]
ErrorCallback = Callable[[BaseException], None]

logger = logging.getLogger(__name__)

__all__ = ["add_execute_permissions_from_read_permissions", "create_tgz", "write_tgz"]

_ALL_EXECUTE_PERMISSIONS = 0o111


def add_execute_permissions_from_read_permissions(mode: int) -> int:
    """Grant execute permission to every class that can read.

    Shifting right by two moves each read bit onto the execute bit of the same
    class (``0o444 >> 2 == 0o111``).  Applying the transform twice is the same
    as applying it once.

    Examples:
        >>> oct(add_execute_permissions_from_read_permissions(0o644))
        '0o755'
    """
    return mode | ((mode >> 2) & _ALL_EXECUTE_PERMISSIONS)


def _add_directory_executable_permission(tarinfo: tarfile.TarInfo) -> tarfile.TarInfo:
    if tarinfo.isdir():
        tarinfo.mode = add_execute_permissions_from_read_permissions(tarinfo.mode)
    return tarinfo


class _ChunkSink:
    """Write-only file object that hands written bytes back in chunks."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def write(self, data: bytes) -> int:
        self._buffer += data
        return len(data)

    def drain(self) -> bytes:
        data = bytes(self._buffer)
        self._buffer.clear()
        return data


def _walk(path: Path) -> Iterator[Path]:
    yield path
    if path.is_dir() and not path.is_symlink():
        for child in sorted(path.iterdir()):
            yield from _walk(child)


def create_tgz(directory: PathLike, on_error: ErrorCallback) -> Iterator[bytes]:
    """Yield a gzip-compressed tar stream of ``directory``.

    Failures while reading the tree are passed to ``on_error`` and end the
    stream early; they are never raised from the iterator itself.  The gzip
    member is still completed, so the bytes yielded so far stay decodable.
    """
    root = Path(directory).resolve()
    sink = _ChunkSink()
    try:
        # No file name and a zero mtime keep the gzip header reproducible.
        with gzip.GzipFile(filename="", mode="wb", fileobj=sink, mtime=0) as compressed:
            with tarfile.open(fileobj=compressed, mode="w|") as archive:
                for path in _walk(root):
                    archive.add(
                        str(path),
                        arcname=path.relative_to(root.parent).as_posix(),
                        recursive=False,
                        filter=_add_directory_executable_permission,
                    )
                    chunk = sink.drain()
                    if chunk:
                        yield chunk
    except (OSError, tarfile.TarError) as exc:
        on_error(exc)
    chunk = sink.drain()
    if chunk:
        yield chunk


def _write_tgz_sync(directory: Path, out_file: Path) -> None:
    errors: List[BaseException] = []
    try:
        with out_file.open("wb") as handle:
            for chunk in create_tgz(directory, errors.append):
                handle.write(chunk)
    except OSError as exc:
        out_file.unlink(missing_ok=True)
        raise PackError(f"Failed to write {out_file}: {exc}") from exc
    if errors:
        out_file.unlink(missing_ok=True)
        raise PackError(f"Failed to pack {directory}: {errors[0]}") from errors[0]
    logger.info(
        "packed directory",
        extra={"stage": "pack", "directory": str(directory), "archive": str(out_file)},
    )


async def write_tgz(directory: PathLike, out_file: PathLike) -> None:
    """Pack ``directory`` into the gzip tarball ``out_file``.

    The tree walk, compression and file writes run on a worker thread.

    Raises:
        PackError: The directory could not be read or the output not written.
            No partial output file is left behind.
    """
    await asyncio.to_thread(_write_tgz_sync, Path(directory), Path(out_file))
