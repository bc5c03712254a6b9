# === NAVMAP v1 ===
# {
#   "module": "PkgTools.TransferIO.io.tar_stream",
#   "purpose": "Async entry-by-entry tar.gz decoding over libarchive",
#   "sections": [
#     {"id": "kinds", "name": "EntryKind", "anchor": "class-entrykind", "kind": "class"},
#     {"id": "source", "name": "_AsyncByteSource", "anchor": "class-asyncbytesource", "kind": "class"},
#     {"id": "entry", "name": "ArchiveEntry", "anchor": "class-archiveentry", "kind": "class"},
#     {"id": "stream", "name": "TarEntryStream", "anchor": "class-tarentrystream", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Streaming tar.gz decoding.

:class:`TarEntryStream` turns an async iterable of archive bytes (typically
``httpx.Response.aiter_bytes()``) into an async iterator of
:class:`ArchiveEntry` objects, one at a time.  Decoding is delegated to
libarchive: gzip detection, ustar/PAX/GNU headers, PAX global records and the
end-of-archive marker are all handled by ``libarchive.stream_reader``.

libarchive is blocking, so the reader runs on a dedicated single-worker
thread.  When it needs more input it pulls the next chunk from the event loop
with :func:`asyncio.run_coroutine_threadsafe`; nothing is buffered beyond the
chunk in hand, so a multi-hundred-megabyte archive can be consumed straight
off the network.

The iterator is finite and not restartable.  Entries must be consumed in
order: advancing to the next entry skips whatever is left of the current
entry's content.
"""

from __future__ import annotations

import asyncio
import enum
import stat
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import ExitStack
from typing import Any, AsyncIterable, AsyncIterator, Callable, Iterator, Optional

import libarchive

from ..errors import ArchiveFormatError

__all__ = ["EntryKind", "ArchiveEntry", "TarEntryStream"]

_READ_SIZE = 64 * 1024


class EntryKind(str, enum.Enum):
    """Kind of a decoded archive entry."""

    FILE = "file"
    LINK = "link"
    SYMLINK = "symlink"
    CHARACTER_DEVICE = "character-device"
    BLOCK_DEVICE = "block-device"
    DIRECTORY = "directory"
    FIFO = "fifo"
    UNKNOWN = "unknown"


def _entry_kind(entry: Any) -> EntryKind:
    # Hard links carry a regular-file type, so they are checked first.
    if entry.islnk:
        return EntryKind.LINK
    if entry.issym:
        return EntryKind.SYMLINK
    if entry.isdir:
        return EntryKind.DIRECTORY
    if entry.isreg:
        return EntryKind.FILE
    if entry.ischr:
        return EntryKind.CHARACTER_DEVICE
    if entry.isblk:
        return EntryKind.BLOCK_DEVICE
    if entry.isfifo:
        return EntryKind.FIFO
    return EntryKind.UNKNOWN


class _AsyncByteSource:
    """Blocking ``readinto`` over an async chunk iterator owned by ``loop``.

    Called from the libarchive worker thread only.  Exceptions cannot cross the
    C callback boundary, so a failure is recorded in :attr:`error` and reported
    to libarchive as a read error; :class:`TarEntryStream` re-raises it.
    """

    def __init__(self, chunks: AsyncIterable[bytes], loop: asyncio.AbstractEventLoop) -> None:
        self._iterator = chunks.__aiter__()
        self._loop = loop
        self._lock = threading.Lock()
        self._pending = None
        self._closed = False
        self._leftover = b""
        self.error: Optional[BaseException] = None

    async def _next_chunk(self) -> Optional[bytes]:
        try:
            return await self._iterator.__anext__()
        except StopAsyncIteration:
            return None

    def _fetch(self) -> Optional[bytes]:
        with self._lock:
            if self._closed:
                raise ArchiveFormatError("Archive stream closed while reading")
            self._pending = asyncio.run_coroutine_threadsafe(self._next_chunk(), self._loop)
        try:
            return self._pending.result()
        finally:
            with self._lock:
                self._pending = None

    def seekable(self) -> bool:
        return False

    def readinto(self, buffer) -> int:
        if self.error is not None:
            return -1
        try:
            while not self._leftover:
                chunk = self._fetch()
                if chunk is None:
                    return 0
                self._leftover = chunk
            size = min(len(buffer), len(self._leftover))
            buffer[:size] = self._leftover[:size]
            self._leftover = self._leftover[size:]
            return size
        except BaseException as exc:
            self.error = exc
            return -1

    def close(self) -> None:
        """Stop feeding the reader and abandon any chunk being awaited."""
        with self._lock:
            self._closed = True
            pending = self._pending
        if pending is not None:
            pending.cancel()


class ArchiveEntry:
    """One decoded tar entry.

    ``name`` is the full archive path; directory names always end in ``/``.
    Content is exposed through :meth:`iter_bytes`/:meth:`read` and can be read
    once, before the owning stream advances.
    """

    __slots__ = ("name", "kind", "size", "mode", "_stream", "_blocks", "_remaining")

    def __init__(
        self,
        name: str,
        kind: EntryKind,
        size: int,
        mode: int,
        stream: "TarEntryStream",
        blocks: Iterator[bytes],
    ) -> None:
        self.name = name
        self.kind = kind
        self.size = size
        self.mode = mode
        self._stream = stream
        self._blocks = blocks
        self._remaining = size

    @property
    def remaining(self) -> int:
        return self._remaining

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        if not self.size:
            return
        while True:
            block = await self._stream._call(next, self._blocks, None)
            if block is None:
                return
            self._remaining -= len(block)
            yield block

    async def read(self) -> bytes:
        return b"".join([chunk async for chunk in self.iter_bytes()])

    def __repr__(self) -> str:
        return f"ArchiveEntry({self.name!r}, kind={self.kind.value}, size={self.size})"


class TarEntryStream:
    """Async iterator of :class:`ArchiveEntry` decoded from tar or tar.gz bytes.

    Use as an async context manager (or call :meth:`aclose`) when iteration
    may stop before the end of the archive; reaching the end closes the
    reader automatically.
    """

    def __init__(
        self,
        chunks: AsyncIterable[bytes],
        *,
        encoding: str = "utf-8",
        block_size: int = _READ_SIZE,
    ) -> None:
        self._chunks = chunks
        self._encoding = encoding
        self._block_size = block_size
        self._source: Optional[_AsyncByteSource] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._resources = ExitStack()
        self._entries: Optional[Iterator[Any]] = None
        self._finished = False

    async def __aenter__(self) -> "TarEntryStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def __aiter__(self) -> "TarEntryStream":
        return self

    async def __anext__(self) -> ArchiveEntry:
        entry = await self.next_entry()
        if entry is None:
            raise StopAsyncIteration
        return entry

    async def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        if self._executor is None:
            raise ArchiveFormatError("Archive stream is closed")
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, func, *args)
        except libarchive.ArchiveError as exc:
            if self._source is not None and self._source.error is not None:
                raise self._source.error from exc
            raise ArchiveFormatError(f"Invalid tar.gz stream: {exc}") from exc

    def _open(self) -> Iterator[Any]:
        archive = self._resources.enter_context(
            libarchive.stream_reader(
                self._source,
                format_name="tar",
                filter_name="gzip",
                block_size=self._block_size,
                header_codec=self._encoding,
            )
        )
        return iter(archive)

    async def next_entry(self) -> Optional[ArchiveEntry]:
        """Advance to the next entry, or return ``None`` at end of archive."""
        if self._finished:
            return None
        if self._executor is None:
            self._source = _AsyncByteSource(self._chunks, asyncio.get_running_loop())
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tar-stream")
            self._entries = await self._call(self._open)

        raw = await self._call(next, self._entries, None)
        if raw is None:
            await self.aclose()
            return None

        kind = _entry_kind(raw)
        name = raw.pathname
        # V7 archives mark directories only by a trailing slash.
        if kind is EntryKind.FILE and name.endswith("/"):
            kind = EntryKind.DIRECTORY
        if kind is EntryKind.DIRECTORY and not name.endswith("/"):
            name += "/"
        size = raw.size if kind is EntryKind.FILE else 0
        blocks = raw.get_blocks(self._block_size) if size else iter(())
        return ArchiveEntry(name, kind, size, stat.S_IMODE(raw.mode), self, blocks)

    async def aclose(self) -> None:
        """Release the reader thread and the libarchive handle."""
        self._finished = True
        executor, self._executor = self._executor, None
        if executor is None:
            return
        self._source.close()
        try:
            await asyncio.get_running_loop().run_in_executor(executor, self._resources.close)
        finally:
            executor.shutdown(wait=False)
