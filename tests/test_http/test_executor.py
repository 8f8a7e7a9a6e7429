"""Tests for restexec.http.executor -- the Http execution pipeline.

Every test drives a real :class:`httpx.AsyncClient` over an
:class:`httpx.MockTransport`; handlers may be sync or async.
"""

from __future__ import annotations

import asyncio
from typing import Any, BinaryIO

import httpx
import pytest

from restexec import __version__
from restexec.exceptions import BodyWriteError, InvalidRequestError
from restexec.http import Http
from restexec.models import (
    Credentials,
    ExecutorConfig,
    FilePart,
    Parameter,
    RequestPhase,
    RequestSpec,
    ResponseStatus,
    TransportCapabilities,
)


URL = "https://api.example.com/items"

P = RequestPhase


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class Recorder:
    """Handler that records every request and answers with a fixed response."""

    def __init__(self, status_code: int = 200, **response_kwargs: Any) -> None:
        self.requests: list[httpx.Request] = []
        self._status_code = status_code
        self._kwargs = response_kwargs

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self._status_code, **self._kwargs)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


class ChunkedBody(httpx.AsyncByteStream):
    """A response body that arrives in chunks, as it would off the network."""

    def __init__(self, *chunks: bytes) -> None:
        self._chunks = chunks

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk


class SlowClosingTransport(httpx.MockTransport):
    """Mock transport whose shutdown takes longer than a short timeout."""

    async def aclose(self) -> None:
        await asyncio.sleep(0.2)


def _slow_handler(delay: float = 5.0, started: asyncio.Event | None = None):
    async def handler(request: httpx.Request) -> httpx.Response:
        if started is not None:
            started.set()
        await asyncio.sleep(delay)
        return httpx.Response(200, text="late")

    return handler


# ---------------------------------------------------------------------------
# GET-style
# ---------------------------------------------------------------------------


class TestGetStyle:
    @pytest.mark.asyncio
    async def test_get_completes(self, mock_factory, record_phases, phases) -> None:
        recorder = Recorder(200, json={"id": 1})
        http = Http(transport_factory=mock_factory(recorder), on_transition=record_phases)

        response = await http.get(RequestSpec(url=URL))

        assert response.response_status == ResponseStatus.COMPLETED
        assert response.status_code == 200
        assert response.is_successful
        assert phases == [
            P.CONFIGURING,
            P.GET_STYLE,
            P.REQUESTING,
            P.AWAITING_RESPONSE,
            P.COMPLETED,
        ]
        assert recorder.last.method == "GET"
        assert recorder.last.headers["User-Agent"] == f"restexec/{__version__}"

    @pytest.mark.asyncio
    async def test_http_error_status_is_completed(self, mock_factory) -> None:
        http = Http(transport_factory=mock_factory(Recorder(500, text="boom")))

        response = await http.delete(RequestSpec(url=URL))

        assert response.response_status == ResponseStatus.COMPLETED
        assert response.status_code == 500
        assert response.text == "boom"

    @pytest.mark.asyncio
    async def test_streamed_body_is_read(self, mock_factory) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=ChunkedBody(b"hello ", b"world"))

        http = Http(transport_factory=mock_factory(handler))

        response = await http.get(RequestSpec(url=URL))

        assert response.response_status == ResponseStatus.COMPLETED
        assert response.content == b"hello world"
        assert response.content_length == 11

    @pytest.mark.asyncio
    async def test_string_body_is_not_sent(self, mock_factory, record_phases, phases) -> None:
        recorder = Recorder()
        http = Http(transport_factory=mock_factory(recorder), on_transition=record_phases)

        await http.get(RequestSpec(url=URL, body="ignored"))

        assert recorder.last.content == b""
        assert recorder.last.headers["Content-Length"] == "0"
        assert P.WRITING_BODY not in phases

    @pytest.mark.asyncio
    async def test_forced_multipart_writes_body(self, mock_factory, record_phases, phases) -> None:
        recorder = Recorder()
        http = Http(transport_factory=mock_factory(recorder), on_transition=record_phases)
        spec = RequestSpec(
            url=URL,
            always_multipart_form_data=True,
            parameters=[Parameter(name="q", value="search")],
        )

        response = await http.get(spec)

        assert response.response_status == ResponseStatus.COMPLETED
        assert phases == [
            P.CONFIGURING,
            P.GET_STYLE,
            P.REQUESTING,
            P.WRITING_BODY,
            P.AWAITING_RESPONSE,
            P.COMPLETED,
        ]
        content_type = recorder.last.headers["Content-Type"]
        assert content_type.startswith("multipart/form-data; boundary=")
        boundary = content_type.split("boundary=", 1)[1]
        body = recorder.last.content
        assert body.endswith(f"--{boundary}--\r\n".encode())
        assert b'name="q"\r\n\r\nsearch\r\n' in body
        assert recorder.last.headers["Content-Length"] == str(len(body))

    @pytest.mark.asyncio
    async def test_as_get_upper_cases_verb(self, mock_factory) -> None:
        recorder = Recorder()
        http = Http(transport_factory=mock_factory(recorder))
        await http.as_get(RequestSpec(url=URL), "propfind")
        assert recorder.last.method == "PROPFIND"


# ---------------------------------------------------------------------------
# POST-style
# ---------------------------------------------------------------------------


class TestPostStyle:
    @pytest.mark.asyncio
    async def test_post_string_body(self, mock_factory, record_phases, phases) -> None:
        recorder = Recorder(201)
        http = Http(transport_factory=mock_factory(recorder), on_transition=record_phases)
        spec = RequestSpec(url=URL, body='{"name": "widget"}', content_type="application/json")

        response = await http.post(spec)

        assert response.status_code == 201
        assert recorder.last.content == b'{"name": "widget"}'
        assert recorder.last.headers["Content-Type"] == "application/json"
        assert recorder.last.headers["Content-Length"] == "18"
        assert phases == [
            P.CONFIGURING,
            P.POST_STYLE,
            P.REQUESTING,
            P.WRITING_BODY,
            P.AWAITING_RESPONSE,
            P.COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_post_without_body_skips_body_phase(
        self, mock_factory, record_phases, phases
    ) -> None:
        recorder = Recorder()
        http = Http(transport_factory=mock_factory(recorder), on_transition=record_phases)

        await http.post(RequestSpec(url=URL))

        assert P.WRITING_BODY not in phases
        assert recorder.last.headers["Content-Length"] == "0"

    @pytest.mark.asyncio
    async def test_put_raw_bytes(self, mock_factory) -> None:
        recorder = Recorder()
        http = Http(transport_factory=mock_factory(recorder))

        await http.put(RequestSpec(url=URL, body_bytes=b"\x00\x01\x02"))

        assert recorder.last.method == "PUT"
        assert recorder.last.content == b"\x00\x01\x02"

    @pytest.mark.asyncio
    async def test_patch_form_parameters(self, mock_factory) -> None:
        recorder = Recorder()
        http = Http(transport_factory=mock_factory(recorder))
        spec = RequestSpec(
            url=URL,
            parameters=[Parameter(name="a", value="1 2"), Parameter(name="b", value="x")],
        )

        await http.patch(spec)

        assert recorder.last.content == b"a=1%202&b=x"
        assert recorder.last.headers["Content-Type"] == "application/x-www-form-urlencoded"

    @pytest.mark.asyncio
    async def test_files_and_fields(self, mock_factory) -> None:
        recorder = Recorder()
        http = Http(transport_factory=mock_factory(recorder))
        spec = RequestSpec(
            url=URL,
            files=[FilePart.from_bytes("doc", b"file-bytes", "a.txt", "text/plain")],
            parameters=[Parameter(name="title", value="Notes")],
        )

        response = await http.post(spec)

        assert response.response_status == ResponseStatus.COMPLETED
        body = recorder.last.content
        assert body.index(b'filename="a.txt"') < body.index(b'name="title"')
        assert b"file-bytes\r\n" in body
        assert recorder.last.headers["Content-Length"] == str(len(body))

    @pytest.mark.asyncio
    async def test_chunked_when_length_not_settable(self, mock_factory) -> None:
        recorder = Recorder()
        config = ExecutorConfig(capabilities=TransportCapabilities(content_length_settable=False))
        http = Http(config, transport_factory=mock_factory(recorder))

        await http.post(RequestSpec(url=URL, body="abc"))

        assert "Content-Length" not in recorder.last.headers
        assert recorder.last.headers["Transfer-Encoding"] == "chunked"
        assert recorder.last.content == b"abc"

    @pytest.mark.asyncio
    async def test_basic_auth(self, mock_factory) -> None:
        recorder = Recorder()
        http = Http(transport_factory=mock_factory(recorder))
        spec = RequestSpec(url=URL, credentials=Credentials(username="u", password="p"))

        await http.post(spec)

        assert recorder.last.headers["Authorization"] == "Basic dTpw"


# ---------------------------------------------------------------------------
# execute() family selection
# ---------------------------------------------------------------------------


class TestExecute:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method, expected",
        [
            ("POST", P.POST_STYLE),
            ("put", P.POST_STYLE),
            ("GET", P.GET_STYLE),
            ("OPTIONS", P.GET_STYLE),
        ],
    )
    async def test_standard_methods(
        self, method: str, expected: RequestPhase, mock_factory, record_phases, phases
    ) -> None:
        http = Http(transport_factory=mock_factory(Recorder()), on_transition=record_phases)
        await http.execute(RequestSpec(url=URL, method=method))
        assert phases[1] == expected

    @pytest.mark.asyncio
    async def test_custom_verb_with_body_is_post_style(
        self, mock_factory, record_phases, phases
    ) -> None:
        recorder = Recorder()
        http = Http(transport_factory=mock_factory(recorder), on_transition=record_phases)

        await http.execute(RequestSpec(url=URL, method="report", body="<q/>"))

        assert phases[1] == P.POST_STYLE
        assert recorder.last.method == "REPORT"
        assert recorder.last.content == b"<q/>"

    @pytest.mark.asyncio
    async def test_custom_verb_without_body_is_get_style(
        self, mock_factory, record_phases, phases
    ) -> None:
        http = Http(transport_factory=mock_factory(Recorder()), on_transition=record_phases)
        await http.execute(RequestSpec(url=URL, method="PURGE"))
        assert phases[1] == P.GET_STYLE


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.asyncio
    async def test_invalid_url_is_error(self, mock_factory, record_phases, phases) -> None:
        recorder = Recorder()
        http = Http(transport_factory=mock_factory(recorder), on_transition=record_phases)

        response = await http.get(RequestSpec(url="ftp://example.com/x"))

        assert response.response_status == ResponseStatus.ERROR
        assert isinstance(response.error_exception, InvalidRequestError)
        assert phases == [P.CONFIGURING, P.ERROR]
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_short_body_write_never_awaits_response(
        self, mock_factory, record_phases, phases
    ) -> None:
        recorder = Recorder()
        http = Http(transport_factory=mock_factory(recorder), on_transition=record_phases)

        def short_writer(stream: BinaryIO) -> None:
            stream.write(b"abc")

        spec = RequestSpec(
            url=URL,
            files=[FilePart(name="f", file_name="f.bin", content_length=10, writer=short_writer)],
        )

        response = await http.post(spec)

        assert response.response_status == ResponseStatus.ERROR
        assert isinstance(response.error_exception, BodyWriteError)
        assert response.error_exception.expected > response.error_exception.written
        assert P.WRITING_BODY in phases
        assert P.AWAITING_RESPONSE not in phases
        assert phases[-1] == P.ERROR
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_writer_exception_is_error(self, mock_factory) -> None:
        def failing_writer(stream: BinaryIO) -> None:
            raise OSError("disk gone")

        http = Http(transport_factory=mock_factory(Recorder()))
        spec = RequestSpec(
            url=URL,
            files=[FilePart(name="f", file_name="f.bin", content_length=1, writer=failing_writer)],
        )

        response = await http.post(spec)

        assert response.response_status == ResponseStatus.ERROR
        assert response.error_message == "disk gone"

    @pytest.mark.asyncio
    async def test_transport_exception_is_error(self, mock_factory) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        http = Http(transport_factory=mock_factory(handler))

        response = await http.get(RequestSpec(url=URL))

        assert response.response_status == ResponseStatus.ERROR
        assert "connection refused" in response.error_message
        assert response.status_code == 0

    @pytest.mark.asyncio
    async def test_status_error_from_event_hook_is_completed(self, mock_factory) -> None:
        async def raise_on_4xx(response: httpx.Response) -> None:
            response.raise_for_status()

        http = Http(
            transport_factory=mock_factory(Recorder(404, text="missing")),
            event_hooks={"response": [raise_on_4xx]},
        )

        response = await http.get(RequestSpec(url=URL))

        assert response.response_status == ResponseStatus.COMPLETED
        assert response.status_code == 404
        assert response.content == b"missing"

    @pytest.mark.asyncio
    async def test_status_error_from_event_hook_keeps_streamed_body(self, mock_factory) -> None:
        async def raise_on_4xx(response: httpx.Response) -> None:
            response.raise_for_status()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, stream=ChunkedBody(b"mis", b"sing"))

        http = Http(
            transport_factory=mock_factory(handler),
            event_hooks={"response": [raise_on_4xx]},
        )

        response = await http.get(RequestSpec(url=URL))

        assert response.response_status == ResponseStatus.COMPLETED
        assert response.status_code == 404
        assert response.content == b"missing"
        assert response.text == "missing"

    @pytest.mark.asyncio
    async def test_too_many_redirects_is_error(self, mock_factory) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(302, headers={"Location": "/loop"})

        http = Http(transport_factory=mock_factory(handler))

        response = await http.get(RequestSpec(url=URL, max_redirects=2))

        assert response.response_status == ResponseStatus.ERROR
        assert isinstance(response.error_exception, httpx.TooManyRedirects)


# ---------------------------------------------------------------------------
# Redirects
# ---------------------------------------------------------------------------


class TestRedirects:
    @staticmethod
    def _handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/start":
            return httpx.Response(302, headers={"Location": "/final"})
        return httpx.Response(200, text="arrived")

    @pytest.mark.asyncio
    async def test_follows_redirects(self, mock_factory) -> None:
        http = Http(transport_factory=mock_factory(self._handler))

        response = await http.get(RequestSpec(url="https://api.example.com/start"))

        assert response.status_code == 200
        assert response.response_uri == "https://api.example.com/final"

    @pytest.mark.asyncio
    async def test_no_follow_returns_redirect(self, mock_factory) -> None:
        http = Http(transport_factory=mock_factory(self._handler))

        response = await http.get(
            RequestSpec(url="https://api.example.com/start", follow_redirects=False)
        )

        assert response.response_status == ResponseStatus.COMPLETED
        assert response.status_code == 302
        assert response.headers["location"] == "/final"

    @pytest.mark.asyncio
    async def test_config_disables_redirects(self, mock_factory) -> None:
        http = Http(
            ExecutorConfig(follow_redirects=False), transport_factory=mock_factory(self._handler)
        )

        response = await http.get(RequestSpec(url="https://api.example.com/start"))

        assert response.status_code == 302

    @pytest.mark.asyncio
    async def test_spec_overrides_config_redirects(self, mock_factory) -> None:
        http = Http(
            ExecutorConfig(follow_redirects=False), transport_factory=mock_factory(self._handler)
        )

        response = await http.get(
            RequestSpec(url="https://api.example.com/start", follow_redirects=True)
        )

        assert response.status_code == 200
        assert response.text == "arrived"


# ---------------------------------------------------------------------------
# Timeouts, abort, and cancellation
# ---------------------------------------------------------------------------


class TestTimeoutAndAbort:
    @pytest.mark.asyncio
    async def test_timeout_resolves_timed_out(self, mock_factory, record_phases, phases) -> None:
        http = Http(transport_factory=mock_factory(_slow_handler()), on_transition=record_phases)

        response = await asyncio.wait_for(http.get(RequestSpec(url=URL, timeout=50)), 2)

        assert response.response_status == ResponseStatus.TIMED_OUT
        assert response.status_code == 0
        assert phases[-1] == P.TIMED_OUT

    @pytest.mark.asyncio
    async def test_fast_response_beats_timeout(self, mock_factory) -> None:
        http = Http(transport_factory=mock_factory(Recorder(200, text="ok")))

        response = await http.get(RequestSpec(url=URL, timeout=1000))

        assert response.response_status == ResponseStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_config_timeout_applies(self, mock_factory) -> None:
        http = Http(ExecutorConfig(timeout_ms=50), transport_factory=mock_factory(_slow_handler()))

        response = await asyncio.wait_for(http.get(RequestSpec(url=URL)), 2)

        assert response.response_status == ResponseStatus.TIMED_OUT

    @pytest.mark.asyncio
    async def test_slow_transport_close_is_not_a_timeout(self) -> None:
        http = Http(
            transport_factory=lambda transport_request: SlowClosingTransport(
                Recorder(200, text="ok")
            )
        )

        response = await asyncio.wait_for(http.get(RequestSpec(url=URL, timeout=50)), 2)

        assert response.response_status == ResponseStatus.COMPLETED
        assert response.text == "ok"

    @pytest.mark.asyncio
    async def test_concurrent_calls_are_isolated(self, mock_factory) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/slow":
                await asyncio.sleep(5)
            return httpx.Response(200, text=request.url.path)

        http = Http(transport_factory=mock_factory(handler))

        slow, fast = await asyncio.wait_for(
            asyncio.gather(
                http.get(RequestSpec(url="https://api.example.com/slow", timeout=50)),
                http.get(RequestSpec(url="https://api.example.com/fast", timeout=2000)),
            ),
            3,
        )

        assert slow.response_status == ResponseStatus.TIMED_OUT
        assert fast.response_status == ResponseStatus.COMPLETED
        assert fast.text == "/fast"

    @pytest.mark.asyncio
    async def test_abort_resolves_aborted(self, mock_factory, record_phases, phases) -> None:
        started = asyncio.Event()
        http = Http(
            transport_factory=mock_factory(_slow_handler(started=started)),
            on_transition=record_phases,
        )

        task = asyncio.create_task(http.get(RequestSpec(url=URL, timeout=5000)))
        await asyncio.wait_for(started.wait(), 2)
        aborted = http.abort()
        response = await asyncio.wait_for(task, 2)

        assert aborted == 1
        assert response.response_status == ResponseStatus.ABORTED
        assert phases[-1] == P.ABORTED
        assert http.abort() == 0

    @pytest.mark.asyncio
    async def test_caller_cancellation_propagates(self, mock_factory) -> None:
        started = asyncio.Event()
        http = Http(transport_factory=mock_factory(_slow_handler(started=started)))

        task = asyncio.create_task(http.get(RequestSpec(url=URL)))
        await asyncio.wait_for(started.wait(), 2)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert http.abort() == 0
