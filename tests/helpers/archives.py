"""Builders for in-memory tarballs and HTTPX mock servers used by the transfer tests.

Archives are produced with :mod:`tarfile` so the libarchive-backed decoder is
checked against an independent encoder.
"""

from __future__ import annotations

import io
import tarfile
from typing import AsyncIterator, Callable, Dict, Iterable, Optional, Tuple, Union

import httpx

from PkgTools.TransferIO.settings import ArchiveSettings, TransferSettings

PREFIX = "DefinitelyTyped-master/"
ARCHIVE_URL = "https://github.com/DefinitelyTyped/DefinitelyTyped/tarball/master"

# (name, content) for files, (name, None) for directories,
# or (name, tarinfo_type, linkname) for anything else.
EntrySpec = Union[Tuple[str, Optional[bytes]], Tuple[str, bytes, str]]


def build_tarball(
    entries: Iterable[EntrySpec],
    *,
    compress: bool = True,
    format: int = tarfile.PAX_FORMAT,
    pax_headers: Optional[Dict[str, str]] = None,
) -> bytes:
    """Return a (gzip) tar archive holding ``entries`` in order.

    ``pax_headers`` become a PAX global header ahead of the first entry, the
    way GitHub records the commit id in its tarballs.
    """

    buffer = io.BytesIO()
    mode = "w:gz" if compress else "w"
    with tarfile.open(
        fileobj=buffer, mode=mode, format=format, pax_headers=pax_headers
    ) as archive:
        for entry in entries:
            info = tarfile.TarInfo(entry[0])
            if len(entry) == 3:
                info.type = entry[1]
                info.linkname = entry[2]
                archive.addfile(info)
            elif entry[1] is None:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                archive.addfile(info)
            else:
                info.size = len(entry[1])
                info.mode = 0o644
                archive.addfile(info, io.BytesIO(entry[1]))
    return buffer.getvalue()


def scenario_entries() -> list:
    """Two files, one nested, under the usual top-level directory."""

    return [
        (PREFIX, None),
        (PREFIX + "a.txt", b"hi"),
        (PREFIX + "sub", None),
        (PREFIX + "sub/b.txt", b"yo"),
    ]


def serving(body: bytes, status: int = 200) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, content=body)

    return handler


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def small_timeouts(connect: float, overall: float) -> TransferSettings:
    return TransferSettings(
        archive=ArchiveSettings(connection_timeout=connect, download_timeout=overall)
    )


async def aiter_chunks(data: bytes, size: int) -> AsyncIterator[bytes]:
    """Yield ``data`` in ``size``-byte slices."""

    for start in range(0, len(data), size):
        yield data[start : start + size]
