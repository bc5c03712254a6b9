"""Filesystem and archive I/O: text/JSON files, byte streams, tar.gz transfer."""

from .download import download_and_extract_file, strip_prefix
from .pack import add_execute_permissions_from_read_permissions, create_tgz, write_tgz
from .streams import stream_of_string, string_of_stream
from .tar_stream import ArchiveEntry, EntryKind, TarEntryStream
from .text import (
    is_directory,
    read_file,
    read_file_and_warn,
    read_json,
    try_read_json,
    write_file,
    write_json,
)

__all__ = [
    "download_and_extract_file",
    "strip_prefix",
    "add_execute_permissions_from_read_permissions",
    "create_tgz",
    "write_tgz",
    "stream_of_string",
    "string_of_stream",
    "ArchiveEntry",
    "EntryKind",
    "TarEntryStream",
    "is_directory",
    "read_file",
    "read_file_and_warn",
    "read_json",
    "try_read_json",
    "write_file",
    "write_json",
]
