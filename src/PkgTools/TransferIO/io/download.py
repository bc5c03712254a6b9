# === NAVMAP v1 ===
# {
#   "module": "PkgTools.TransferIO.io.download",
#   "purpose": "Stream a remote tar.gz archive straight into an in-memory filesystem snapshot",
#   "sections": [
#     {"id": "prefix", "name": "strip_prefix", "anchor": "function-strip-prefix", "kind": "function"},
#     {"id": "download", "name": "download_and_extract_file", "anchor": "function-download-and-extract-file", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Download-and-extract pipeline for repository archives.

The pipeline is a single GET whose body flows through the libarchive-backed
streaming decoder (gzip detection included) without touching disk::

    response.aiter_bytes() -> TarEntryStream -> Dir -> InMemoryFS

Entries are handled strictly in order.  Each file entry is decoded to text and
inserted into the mutable :class:`~PkgTools.TransferIO.vfs.Dir` before the next
entry is requested.  The three log milestones of one download share a
correlation id.  Directory entries create nothing by themselves; the tree
grows implicitly as files arrive.  Any other entry kind aborts the download.

Two scoped guards bound the operation: one around connecting and receiving the
response headers, and one around the whole download.  Both are released on
every exit path.  Expiry of either raises
:class:`~PkgTools.TransferIO.errors.DownloadTimeoutError`.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Optional, Union

import httpx

from ..errors import ArchiveFormatError, DownloadFailure, DownloadTimeoutError, MissingPrefixError
from ..logging_config import generate_correlation_id
from ..settings import ArchiveSettings, TransferSettings, get_settings
from ..vfs import Dir, InMemoryFS
from .streams import string_of_stream
from .tar_stream import EntryKind, TarEntryStream

__all__ = ["download_and_extract_file", "strip_prefix"]

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]


def strip_prefix(name: str, prefix: str) -> str:
    """Remove ``prefix`` from an archive entry name; a missing prefix is fatal."""
    if not name.startswith(prefix):
        raise MissingPrefixError(name, prefix)
    return name[len(prefix) :]


async def download_and_extract_file(
    url: str,
    log: LoggerLike,
    *,
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[TransferSettings] = None,
) -> InMemoryFS:
    """Download the gzip tarball at ``url`` and return its contents as a snapshot.

    Args:
        url: Archive location. Must answer ``200`` with a gzip tar body whose
            entries all live under the configured top-level prefix.
        log: Receives ``Requesting``/``Getting``/``Done receiving`` milestones.
            Each record carries ``stage``, ``url`` and a per-call
            ``correlation_id`` in its extras.
        client: Optional client to issue the request with. When omitted a
            client is created and closed around the download.
        settings: Settings override; defaults to :func:`get_settings`.

    Returns:
        Read-only snapshot rooted at ``settings.archive.snapshot_root`` whose
        paths have the prefix removed.

    Raises:
        DownloadFailure: The server answered with a non-200 status or the
            connection failed mid-transfer.
        DownloadTimeoutError: The connect or overall guard expired.
        ArchiveFormatError: The body is not a valid gzip tar, an entry lacks the
            prefix, or an entry is neither a file nor a directory.
        TextDecodeError: A file's content is not valid UTF-8.
    """
    archive = (settings or get_settings()).archive
    guard = asyncio.timeout(archive.download_timeout)
    try:
        async with guard:
            return await _download(url, log, client, archive)
    except TimeoutError as exc:
        if not guard.expired():
            raise
        raise DownloadTimeoutError(
            f"Download of {url} did not complete within {archive.download_timeout}s",
            phase="download",
            timeout=archive.download_timeout,
        ) from exc


async def _download(
    url: str,
    log: LoggerLike,
    client: Optional[httpx.AsyncClient],
    archive: ArchiveSettings,
) -> InMemoryFS:
    context = {"stage": "download", "url": url, "correlation_id": generate_correlation_id()}
    async with AsyncExitStack() as stack:
        if client is None:
            client = await stack.enter_async_context(
                httpx.AsyncClient(
                    timeout=httpx.Timeout(
                        archive.download_timeout, connect=archive.connection_timeout
                    ),
                    follow_redirects=False,
                )
            )

        log.info("Requesting %s", url, extra=context)
        response = await _open(client, url, archive.connection_timeout)
        stack.push_async_callback(response.aclose)

        if response.status_code != 200:
            raise DownloadFailure(
                f"Download of {url} failed with status code {response.status_code}",
                status_code=response.status_code,
            )

        log.info("Getting %s", url, extra=context)
        root = Dir()
        entries = await stack.enter_async_context(TarEntryStream(response.aiter_bytes()))
        try:
            await _extract(entries, root, archive)
        except httpx.HTTPError as exc:
            raise DownloadFailure(f"Error while receiving {url}: {exc}") from exc
        log.info("Done receiving %s", url, extra=context)

    return InMemoryFS(root.finish(), archive.snapshot_root)


async def _open(client: httpx.AsyncClient, url: str, timeout: float) -> httpx.Response:
    request = client.build_request("GET", url)
    guard = asyncio.timeout(timeout)
    try:
        async with guard:
            return await client.send(request, stream=True)
    except TimeoutError as exc:
        if not guard.expired():
            raise
        raise DownloadTimeoutError(
            f"No response from {url} within {timeout}s", phase="connect", timeout=timeout
        ) from exc
    except httpx.HTTPError as exc:
        raise DownloadFailure(f"Request for {url} failed: {exc}") from exc


async def _extract(entries: TarEntryStream, root: Dir, archive: ArchiveSettings) -> None:
    async for entry in entries:
        name = strip_prefix(entry.name, archive.top_level_prefix)
        if entry.kind is EntryKind.FILE:
            root.insert_file(name, await string_of_stream(entry.iter_bytes(), name))
        elif entry.kind is not EntryKind.DIRECTORY:
            raise ArchiveFormatError(f"Unexpected file system entry kind {entry.kind.value}")
