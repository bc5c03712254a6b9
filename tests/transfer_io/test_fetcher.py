"""HTTPX MockTransport coverage for the retrying fetcher."""

from __future__ import annotations

import asyncio
import errno
import socket
from types import MappingProxyType

import httpx
import pytest

from PkgTools.TransferIO.errors import (
    BadResponseError,
    FetchError,
    TransientErrorKind,
    TransientNetworkError,
)
from PkgTools.TransferIO.network import (
    FetchOptions,
    Fetcher,
    classify_transport_error,
    make_http_request,
)
from PkgTools.TransferIO.settings import TransferSettings


class _Recorder:
    """Mock transport handler that records requests and replays scripted outcomes."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if callable(outcome):
            return outcome(request)
        return outcome


class _Sleeps:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def _connect_timeout(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectTimeout("timed out", request=request)


def _connection_refused(request: httpx.Request) -> httpx.Response:
    try:
        raise ConnectionRefusedError(errno.ECONNREFUSED, "Connection refused")
    except ConnectionRefusedError as exc:
        raise httpx.ConnectError("Connection refused", request=request) from exc


def _dns_again(request: httpx.Request) -> httpx.Response:
    try:
        raise socket.gaierror(socket.EAI_AGAIN, "Temporary failure in name resolution")
    except socket.gaierror as exc:
        raise httpx.ConnectError("Temporary failure in name resolution", request=request) from exc


def _run_fetch(recorder, options, *, sleeps=None, json_body=False):
    async def _go():
        async with Fetcher(
            settings=TransferSettings(),
            transport=httpx.MockTransport(recorder),
            sleep=sleeps or _Sleeps(),
        ) as fetcher:
            if json_body:
                return await fetcher.fetch_json(options)
            return await fetcher.fetch(options)

    return asyncio.run(_go())


def _options(**overrides) -> FetchOptions:
    values = {"hostname": "registry.example.org", "path": "left-pad"}
    values.update(overrides)
    return FetchOptions(**values)


@pytest.mark.parametrize(
    ("retries", "expected"),
    [(None, 1), (False, 1), (True, 10), (3, 3), (1, 1), (0, 1), (-4, 1)],
)
def test_max_attempts_follows_retry_setting(retries, expected):
    assert _options(retries=retries).max_attempts(10) == expected


def test_url_always_carries_single_leading_slash():
    assert _options(path="a/b?x=1").url() == "https://registry.example.org/a/b?x=1"
    assert _options(path="/a", port=8443).url("http") == "http://registry.example.org:8443/a"


def test_fetch_returns_body_text_regardless_of_status():
    recorder = _Recorder(httpx.Response(500, text="server exploded"))

    assert _run_fetch(recorder, _options()) == "server exploded"
    assert len(recorder.requests) == 1
    request = recorder.requests[0]
    assert str(request.url) == "https://registry.example.org/left-pad"
    assert request.method == "GET"
    assert request.headers["User-Agent"].startswith("PkgTools-TransferIO/")


def test_fetch_sends_method_headers_and_body():
    recorder = _Recorder(httpx.Response(200, text="ok"))
    options = _options(
        method="POST", headers={"Content-Type": "application/json"}, body='{"q": 1}', port=8080
    )

    _run_fetch(recorder, options)

    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.url.port == 8080
    assert request.headers["Content-Type"] == "application/json"
    assert request.content == b'{"q": 1}'


def test_fetch_applies_per_call_timeout():
    recorder = _Recorder(httpx.Response(200, text="ok"))

    _run_fetch(recorder, _options(timeout=5.0))

    assert recorder.requests[0].extensions["timeout"]["read"] == 5.0


def test_default_timeout_comes_from_settings():
    recorder = _Recorder(httpx.Response(200, text="ok"))

    _run_fetch(recorder, _options())

    assert recorder.requests[0].extensions["timeout"]["connect"] == 1000.0


def test_disabled_retries_make_exactly_one_attempt():
    recorder = _Recorder(_connect_timeout)
    sleeps = _Sleeps()

    with pytest.raises(TransientNetworkError) as excinfo:
        _run_fetch(recorder, _options(retries=False), sleeps=sleeps)

    assert excinfo.value.kind is TransientErrorKind.TIMEOUT
    assert len(recorder.requests) == 1
    assert sleeps.delays == []


def test_default_budget_makes_ten_attempts_on_persistent_transient_failure():
    recorder = _Recorder(_connect_timeout)
    sleeps = _Sleeps()

    with pytest.raises(TransientNetworkError):
        _run_fetch(recorder, _options(retries=True), sleeps=sleeps)

    assert len(recorder.requests) == 10
    assert sleeps.delays == [1.0] * 9


def test_transient_failures_recover_within_budget():
    recorder = _Recorder(_dns_again, _dns_again, httpx.Response(200, text="recovered"))

    assert _run_fetch(recorder, _options(retries=3)) == "recovered"
    assert len(recorder.requests) == 3


def test_numeric_budget_bounds_attempts():
    recorder = _Recorder(_dns_again)

    with pytest.raises(TransientNetworkError) as excinfo:
        _run_fetch(recorder, _options(retries=4))

    assert excinfo.value.kind is TransientErrorKind.DNS_TEMPORARY_FAILURE
    assert len(recorder.requests) == 4


def test_non_transient_failure_is_not_retried():
    recorder = _Recorder(_connection_refused, httpx.Response(200, text="never reached"))

    with pytest.raises(FetchError) as excinfo:
        _run_fetch(recorder, _options(retries=True))

    assert not isinstance(excinfo.value, TransientNetworkError)
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)
    assert len(recorder.requests) == 1


def test_fetch_json_parses_body():
    recorder = _Recorder(httpx.Response(200, json={"name": "left-pad", "versions": ["1.0.0"]}))

    assert _run_fetch(recorder, _options(), json_body=True) == {
        "name": "left-pad",
        "versions": ["1.0.0"],
    }


def test_fetch_json_reports_options_and_body_on_bad_json():
    recorder = _Recorder(httpx.Response(502, text="<html>Bad Gateway</html>"))
    options = _options(headers={"Authorization": "Bearer hunter2"})

    with pytest.raises(BadResponseError) as excinfo:
        _run_fetch(recorder, options, json_body=True)

    message = str(excinfo.value)
    assert message.startswith("Bad response from server:\noptions: ")
    assert '"hostname": "registry.example.org"' in message
    assert message.endswith("\n\n<html>Bad Gateway</html>")
    assert "hunter2" not in message
    assert excinfo.value.body == "<html>Bad Gateway</html>"
    assert excinfo.value.options["path"] == "left-pad"


def test_read_only_headers_are_masked_in_bad_response_report():
    recorder = _Recorder(httpx.Response(200, text="not json"))
    headers = MappingProxyType({"Authorization": "Bearer hunter2", "Accept": "*/*"})
    options = _options(headers=headers)

    with pytest.raises(BadResponseError) as excinfo:
        _run_fetch(recorder, options, json_body=True)

    assert excinfo.value.options["headers"] == {
        "Authorization": "***masked***",
        "Accept": "*/*",
    }
    assert "hunter2" not in str(excinfo.value)
    assert recorder.requests[0].headers["Authorization"] == "Bearer hunter2"


def test_to_dict_copies_every_field():
    headers = MappingProxyType({"Accept": "*/*"})

    data = _options(port=8443, retries=True, headers=headers).to_dict()

    assert data == {
        "hostname": "registry.example.org",
        "port": 8443,
        "path": "left-pad",
        "method": "GET",
        "headers": {"Accept": "*/*"},
        "body": None,
        "timeout": None,
        "retries": True,
    }


def test_fetcher_reuses_one_client_until_closed():
    recorder = _Recorder(lambda request: httpx.Response(200, text="ok"))

    async def _go():
        fetcher = Fetcher(settings=TransferSettings(), transport=httpx.MockTransport(recorder))
        client = fetcher.client
        await fetcher.fetch(_options())
        await fetcher.fetch(_options(path="other"))
        assert fetcher.client is client
        await fetcher.aclose()
        return client

    client = asyncio.run(_go())
    assert client.is_closed
    assert len(recorder.requests) == 2


def test_make_http_request_is_plain_http_and_single_shot():
    recorder = _Recorder(_connect_timeout)

    async def _go():
        return await make_http_request(
            _options(hostname="localhost", port=3000, retries=True),
            settings=TransferSettings(),
            transport=httpx.MockTransport(recorder),
        )

    with pytest.raises(TransientNetworkError):
        asyncio.run(_go())

    assert len(recorder.requests) == 1
    assert str(recorder.requests[0].url) == "http://localhost:3000/left-pad"


class TestClassifyTransportError:
    """Structured transience classification over exception cause chains."""

    @staticmethod
    def _chain(outer: BaseException, cause: BaseException) -> BaseException:
        outer.__cause__ = cause
        return outer

    def test_httpx_timeouts_are_transient(self):
        assert classify_transport_error(httpx.ReadTimeout("slow")) is TransientErrorKind.TIMEOUT
        assert classify_transport_error(httpx.PoolTimeout("busy")) is TransientErrorKind.TIMEOUT

    def test_builtin_timeout_in_cause_chain(self):
        exc = self._chain(httpx.ConnectError("failed"), TimeoutError())
        assert classify_transport_error(exc) is TransientErrorKind.TIMEOUT

    def test_temporary_dns_failure(self):
        exc = self._chain(
            httpx.ConnectError("failed"), socket.gaierror(socket.EAI_AGAIN, "try again")
        )
        assert classify_transport_error(exc) is TransientErrorKind.DNS_TEMPORARY_FAILURE

    def test_permanent_dns_failure_is_not_transient(self):
        exc = self._chain(
            httpx.ConnectError("failed"), socket.gaierror(socket.EAI_NONAME, "unknown host")
        )
        assert classify_transport_error(exc) is None

    def test_connection_reset_nested_in_context(self):
        inner = ConnectionResetError(errno.ECONNRESET, "reset by peer")
        middle = OSError("read failed")
        middle.__context__ = inner
        exc = self._chain(httpx.ReadError("read failed"), middle)
        assert classify_transport_error(exc) is TransientErrorKind.CONNECTION_RESET

    def test_message_text_alone_is_ignored(self):
        assert classify_transport_error(httpx.ConnectError("ECONNRESET ETIMEDOUT EAI_AGAIN")) is None

    def test_cyclic_chain_terminates(self):
        first = httpx.ConnectError("first")
        second = OSError("second")
        first.__cause__ = second
        second.__context__ = first
        assert classify_transport_error(first) is None
