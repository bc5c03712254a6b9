# === NAVMAP v1 ===
# {
#   "module": "PkgTools.TransferIO.network.fetcher",
#   "purpose": "Keep-alive HTTPX fetcher with a fixed-delay Tenacity retry budget",
#   "sections": [
#     {"id": "options", "name": "FetchOptions", "anchor": "class-fetchoptions", "kind": "class"},
#     {"id": "classify", "name": "classify_transport_error", "anchor": "function-classify-transport-error", "kind": "function"},
#     {"id": "fetcher", "name": "Fetcher", "anchor": "class-fetcher", "kind": "class"},
#     {"id": "plain-http", "name": "make_http_request", "anchor": "function-make-http-request", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Small-call HTTP fetcher with bounded retry.

:class:`Fetcher` issues short metadata requests (registry lookups, search
endpoints) over one keep-alive :class:`httpx.AsyncClient` and returns the whole
body as text.  Requests may opt into retries:

- ``retries=False`` or unset: exactly one attempt
- ``retries=True``: the default budget (10 attempts)
- ``retries=n``: ``n`` attempts in total

Only transient failures are retried, with a fixed pause between attempts.
Transience is decided at the transport boundary by
:func:`classify_transport_error`, which inspects the HTTPX exception type and
its cause chain for DNS temporary failures, timeouts, and connection resets.
Anything else is raised on the first attempt.

Example:
    >>> async with Fetcher() as fetcher:
    ...     text = await fetcher.fetch(FetchOptions(hostname="registry.npmjs.org", path="react"))
"""

from __future__ import annotations

import asyncio
import json
import logging
import socket
from dataclasses import dataclass, fields
from typing import Any, Awaitable, Callable, Dict, Iterator, Mapping, Optional, Union

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ..errors import (
    BadResponseError,
    FetchError,
    JsonParseError,
    TransientErrorKind,
    TransientNetworkError,
)
from ..jsonutils import parse_json
from ..logging_config import mask_sensitive_data
from ..settings import TransferSettings, get_settings

logger = logging.getLogger(__name__)

__all__ = ["FetchOptions", "Fetcher", "classify_transport_error", "make_http_request"]


@dataclass(frozen=True, kw_only=True)
class FetchOptions:
    """Description of one request issued through :class:`Fetcher`."""

    hostname: str
    port: Optional[int] = None
    path: str
    method: str = "GET"
    headers: Optional[Mapping[str, str]] = None
    body: Optional[str] = None
    timeout: Optional[float] = None
    retries: Union[bool, int, None] = None

    def max_attempts(self, default_attempts: int) -> int:
        """Return the total number of attempts this request allows."""
        if self.retries is None or self.retries is False:
            return 1
        if self.retries is True:
            return default_attempts
        return max(int(self.retries), 1)

    def url(self, scheme: str = "https") -> str:
        """Return the request URL; ``path`` always gets exactly one leading slash."""
        netloc = self.hostname if self.port is None else f"{self.hostname}:{self.port}"
        return f"{scheme}://{netloc}/{self.path.lstrip('/')}"

    def to_dict(self) -> Dict[str, Any]:
        """Return a plain dict of the options with sensitive headers masked.

        Fields are copied shallowly so read-only header mappings (for example
        :class:`types.MappingProxyType`) serialize like plain dicts.
        """
        data = {field.name: getattr(self, field.name) for field in fields(self)}
        if self.headers is not None:
            data["headers"] = mask_sensitive_data(dict(self.headers))
        return data


def _iter_causes(exc: BaseException) -> Iterator[BaseException]:
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def classify_transport_error(exc: BaseException) -> Optional[TransientErrorKind]:
    """Return the transient class of ``exc``, or ``None`` if it is not retryable."""
    for cause in _iter_causes(exc):
        if isinstance(cause, (httpx.TimeoutException, TimeoutError)):
            return TransientErrorKind.TIMEOUT
        if isinstance(cause, socket.gaierror) and cause.errno == socket.EAI_AGAIN:
            return TransientErrorKind.DNS_TEMPORARY_FAILURE
        if isinstance(cause, ConnectionResetError):
            return TransientErrorKind.CONNECTION_RESET
    return None


async def _do_request(
    client: httpx.AsyncClient,
    options: FetchOptions,
    *,
    scheme: str,
    default_timeout: float,
) -> str:
    url = options.url(scheme)
    timeout = options.timeout if options.timeout is not None else default_timeout
    content = options.body.encode("utf-8") if options.body is not None else None
    try:
        response = await client.request(
            options.method,
            url,
            headers=options.headers,
            content=content,
            timeout=httpx.Timeout(timeout),
        )
    except httpx.HTTPError as exc:
        kind = classify_transport_error(exc)
        if kind is not None:
            raise TransientNetworkError(
                f"{options.method} {url} failed ({kind.value}): {exc}", kind=kind
            ) from exc
        raise FetchError(f"{options.method} {url} failed: {exc}") from exc

    logger.debug(
        "fetch complete",
        extra={"stage": "fetch", "url": url, "status": response.status_code},
    )
    return response.text


class Fetcher:
    """Issue small HTTPS requests over one reused keep-alive connection pool."""

    def __init__(
        self,
        *,
        settings: Optional[TransferSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings or get_settings()
        http = self._settings.http
        self._client = httpx.AsyncClient(
            transport=transport,
            limits=httpx.Limits(
                max_connections=http.max_connections,
                max_keepalive_connections=http.max_keepalive_connections,
                keepalive_expiry=http.keepalive_expiry,
            ),
            headers={"User-Agent": http.user_agent},
            follow_redirects=False,
        )
        self._sleep = sleep

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "Fetcher":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def fetch_json(self, options: FetchOptions) -> Any:
        """Fetch ``options`` and parse the body as JSON."""
        text = await self.fetch(options)
        try:
            return parse_json(text)
        except JsonParseError as exc:
            echoed = options.to_dict()
            raise BadResponseError(
                f"Bad response from server:\noptions: {json.dumps(echoed, default=str)}\n\n{text}",
                options=echoed,
                body=text,
            ) from exc

    async def fetch(self, options: FetchOptions) -> str:
        """Fetch ``options`` and return the body text, retrying transient failures."""
        retry = self._settings.retry
        retrying = AsyncRetrying(
            stop=stop_after_attempt(options.max_attempts(retry.default_attempts)),
            wait=wait_fixed(retry.delay_seconds),
            retry=retry_if_exception_type(TransientNetworkError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )
        return await retrying(
            _do_request,
            self._client,
            options,
            scheme="https",
            default_timeout=self._settings.http.timeout,
        )


async def make_http_request(
    options: FetchOptions,
    *,
    settings: Optional[TransferSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """Issue one plain-HTTP request without retries (local servers and tests)."""
    settings = settings or get_settings()
    async with httpx.AsyncClient(transport=transport, follow_redirects=False) as client:
        return await _do_request(
            client, options, scheme="http", default_timeout=settings.http.timeout
        )
