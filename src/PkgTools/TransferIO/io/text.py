"""Encoding-safe file reads and writes, plus JSON file helpers."""

from __future__ import annotations

import json
import logging
import stat
from pathlib import Path
from typing import Any, Optional, Union

from ..jsonutils import Predicate, is_object, parse_json, try_parse_json
from .streams import ensure_clean_text

PathLike = Union[str, Path]

logger = logging.getLogger(__name__)

__all__ = [
    "read_file",
    "write_file",
    "read_json",
    "try_read_json",
    "write_json",
    "read_file_and_warn",
    "is_directory",
]


def read_file(path: PathLike) -> str:
    """Read ``path`` as UTF-8, rejecting undecodable content."""
    text = Path(path).read_text(encoding="utf-8", errors="replace")
    return ensure_clean_text(text, f"Bad character in {path}", str(path))


def write_file(path: PathLike, content: str) -> None:
    Path(path).write_text(content, encoding="utf-8")


def read_json(path: PathLike, predicate: Optional[Predicate[Any]] = None) -> Any:
    return parse_json(read_file(path), predicate)


def try_read_json(path: PathLike, predicate: Optional[Predicate[Any]] = None) -> Optional[Any]:
    """Return the parsed JSON at ``path``, or ``None`` if it is invalid or rejected.

    A missing or unreadable file still raises.
    """
    return try_parse_json(read_file(path), predicate)


def write_json(path: PathLike, content: Any, formatted: bool = True) -> None:
    """Write ``content`` as JSON: four-space indented, or compact."""
    if formatted:
        text = json.dumps(content, indent=4, ensure_ascii=False)
    else:
        text = json.dumps(content, separators=(",", ":"), ensure_ascii=False)
    write_file(path, text + "\n")


def read_file_and_warn(generated_by: str, file_path: PathLike) -> dict:
    """Read a JSON object produced by an earlier step, naming it on failure."""
    try:
        return read_json(file_path, is_object)
    except Exception:
        logger.error(
            f"Run {generated_by} first!",
            extra={"stage": "read", "path": str(file_path)},
        )
        raise


def is_directory(path: PathLike) -> bool:
    """Return ``True`` if ``path`` is a directory; a missing path raises."""
    return stat.S_ISDIR(Path(path).stat().st_mode)
