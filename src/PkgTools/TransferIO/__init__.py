# === NAVMAP v1 ===
# {
#   "module": "PkgTools.TransferIO",
#   "purpose": "Package initialization for PkgTools.TransferIO",
#   "sections": []
# }
# === /NAVMAP ===

"""Public API for the PkgTools transfer layer.

This facade exposes the I/O plumbing shared by the package-metadata tools:
encoding-safe file helpers, JSON parsing with type guards, a keep-alive HTTP
fetcher with bounded retry, streaming download of repository tarballs into an
in-memory filesystem, and packing of directories into tarballs.
"""

from __future__ import annotations

from .errors import (
    ArchiveFormatError,
    BadResponseError,
    DownloadFailure,
    DownloadTimeoutError,
    FetchError,
    MissingPrefixError,
    PackError,
    TextDecodeError,
    TransferIOError,
    TransientErrorKind,
    TransientNetworkError,
)
from .io import (
    add_execute_permissions_from_read_permissions,
    create_tgz,
    download_and_extract_file,
    is_directory,
    read_file,
    read_file_and_warn,
    read_json,
    try_read_json,
    write_file,
    write_json,
    write_tgz,
)
from .jsonutils import is_object, parse_json, try_parse_json
from .network import FetchOptions, Fetcher, make_http_request
from .settings import TransferSettings, get_settings
from .vfs import Dir, InMemoryFS

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ArchiveFormatError",
    "BadResponseError",
    "DownloadFailure",
    "DownloadTimeoutError",
    "FetchError",
    "MissingPrefixError",
    "PackError",
    "TextDecodeError",
    "TransferIOError",
    "TransientErrorKind",
    "TransientNetworkError",
    "add_execute_permissions_from_read_permissions",
    "create_tgz",
    "download_and_extract_file",
    "is_directory",
    "read_file",
    "read_file_and_warn",
    "read_json",
    "try_read_json",
    "write_file",
    "write_json",
    "write_tgz",
    "is_object",
    "parse_json",
    "try_parse_json",
    "FetchOptions",
    "Fetcher",
    "make_http_request",
    "TransferSettings",
    "get_settings",
    "Dir",
    "InMemoryFS",
]
