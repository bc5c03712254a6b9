"""Exception hierarchy shared across fetching, archive transfer, and file I/O.

The transfer layer spans HTTP retrieval, gzip/tar decoding, in-memory
filesystem construction, and local file helpers.  Failures are grouped so that
callers can react to broad categories (network vs. archive vs. text decoding)
while still having access to the specialised subclasses and the structured
attributes they carry.
"""

from __future__ import annotations

import enum
from typing import Any, Mapping, Optional

__all__ = [
    "TransferIOError",
    "UserConfigError",
    "TransientErrorKind",
    "FetchError",
    "TransientNetworkError",
    "BadResponseError",
    "DownloadFailure",
    "DownloadTimeoutError",
    "ArchiveFormatError",
    "MissingPrefixError",
    "PackError",
    "TextDecodeError",
    "JsonParseError",
    "JsonTypeError",
    "FileSystemConflictError",
    "FileSystemPathError",
]


class TransferIOError(RuntimeError):
    """Base exception for every failure raised by the transfer layer."""


class UserConfigError(TransferIOError):
    """Raised when CLI arguments or environment settings are invalid."""


class TransientErrorKind(str, enum.Enum):
    """Network failure classes that are safe to retry."""

    DNS_TEMPORARY_FAILURE = "dns-temporary-failure"
    TIMEOUT = "timeout"
    CONNECTION_RESET = "connection-reset"


class FetchError(TransferIOError):
    """Raised when an HTTP request cannot be completed."""


class TransientNetworkError(FetchError):
    """Fetch failure classified as transient at the transport boundary."""

    def __init__(self, message: str, *, kind: TransientErrorKind) -> None:
        super().__init__(message)
        self.kind = kind


class BadResponseError(FetchError):
    """Raised when a response body cannot be parsed as JSON."""

    def __init__(self, message: str, *, options: Mapping[str, Any], body: str) -> None:
        super().__init__(message)
        self.options = dict(options)
        self.body = body


class DownloadFailure(TransferIOError):
    """Raised when an archive download attempt fails."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DownloadTimeoutError(DownloadFailure):
    """Raised when a download guard (connect or overall) expires."""

    def __init__(self, message: str, *, phase: str, timeout: float) -> None:
        super().__init__(message)
        self.phase = phase
        self.timeout = timeout


class ArchiveFormatError(TransferIOError):
    """Raised when a gzip or tar stream is corrupt or carries unsupported entries."""


class MissingPrefixError(ArchiveFormatError):
    """Raised when an archive entry is not rooted under the expected prefix."""

    def __init__(self, name: str, prefix: str) -> None:
        super().__init__(f"Archive entry {name!r} does not start with {prefix!r}")
        self.name = name
        self.prefix = prefix


class PackError(TransferIOError):
    """Raised when a directory cannot be packed into an archive."""


class TextDecodeError(TransferIOError):
    """Raised when decoded text contains the Unicode replacement character."""

    def __init__(self, message: str, *, source: str) -> None:
        super().__init__(message)
        self.source = source


class JsonParseError(TransferIOError, ValueError):
    """Raised when text is not valid JSON."""


class JsonTypeError(TransferIOError, TypeError):
    """Raised when parsed JSON is rejected by a type guard."""


class FileSystemConflictError(TransferIOError):
    """Raised when a file and a directory would share a name in one parent."""


class FileSystemPathError(TransferIOError, LookupError):
    """Raised when an in-memory filesystem path is malformed or missing."""
