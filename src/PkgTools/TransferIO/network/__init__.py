"""Network subsystem: keep-alive HTTP fetching with bounded retry.

This package provides the small-call HTTP client used for metadata lookups:
- HTTPX: async client with keep-alive connection reuse
- Tenacity: fixed-delay retry over structurally classified transient errors

Modules:
- fetcher: ``FetchOptions``, ``Fetcher``, ``classify_transport_error`` and the
  single-shot ``make_http_request``

Example:
    >>> from PkgTools.TransferIO.network import Fetcher, FetchOptions
    >>>
    >>> async with Fetcher() as fetcher:
    ...     info = await fetcher.fetch_json(
    ...         FetchOptions(hostname="registry.npmjs.org", path="react", retries=True)
    ...     )
"""

from PkgTools.TransferIO.network.fetcher import (
    FetchOptions,
    Fetcher,
    classify_transport_error,
    make_http_request,
)

__all__ = [
    "FetchOptions",
    "Fetcher",
    "classify_transport_error",
    "make_http_request",
]
