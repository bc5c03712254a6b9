"""Byte-stream adapters for text decoding.

Streams are modelled as iterables (or async iterables) of ``bytes`` chunks, the
shape produced by ``httpx.Response.aiter_bytes`` and consumed by file writes.
"""

from __future__ import annotations

import codecs
from typing import AsyncIterable, AsyncIterator

from ..errors import TextDecodeError

__all__ = [
    "REPLACEMENT_CHARACTER",
    "ensure_clean_text",
    "string_of_stream",
    "stream_of_string",
]

REPLACEMENT_CHARACTER = "\ufffd"


def ensure_clean_text(text: str, message: str, source: str) -> str:
    """Return ``text`` unless it carries a replacement character."""
    if REPLACEMENT_CHARACTER in text:
        raise TextDecodeError(message, source=source)
    return text


async def string_of_stream(chunks: AsyncIterable[bytes], description: str) -> str:
    """Decode an async byte stream as UTF-8, rejecting corrupted input.

    Multi-byte sequences split across chunk boundaries are handled by an
    incremental decoder.  Invalid bytes decode to U+FFFD, which is treated as
    corruption and reported with ``description``.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    parts = []
    async for chunk in chunks:
        parts.append(decoder.decode(chunk))
    parts.append(decoder.decode(b"", final=True))
    return ensure_clean_text("".join(parts), f"Bad character decode in {description}", description)


async def stream_of_string(text: str) -> AsyncIterator[bytes]:
    """Yield ``text`` as a single UTF-8 chunk."""
    yield text.encode("utf-8")

