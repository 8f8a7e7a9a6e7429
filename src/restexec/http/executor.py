"""The asynchronous execution pipeline.

:class:`Http` runs one :class:`~restexec.models.RequestSpec` through these
states, reporting each transition to an optional observer::

    CONFIGURING -> GET_STYLE | POST_STYLE -> REQUESTING
        -> [WRITING_BODY] -> AWAITING_RESPONSE
        -> COMPLETED | TIMED_OUT | ABORTED | ERROR

``WRITING_BODY`` happens for POST-style calls that carry a body, files, or
form parameters, and for any call that forces ``multipart/form-data``.  A
failure while configuring or writing the body goes straight to ``ERROR``; the
response phase is never started.  Every call gets its own
:class:`~restexec.http.timeout.TimeoutState`, armed when ``REQUESTING``
begins, so concurrent calls on one executor never interfere.

Nothing is retried and nothing is raised to the caller: every outcome comes
back as an :class:`~restexec.models.HttpResponse` whose ``response_status``
says how the call ended.  The one exception is cancellation of the calling
coroutine itself, which cancels the transport operation and propagates.

Example::

    http = Http(ExecutorConfig(verify_ssl=False))
    response = await http.post(
        RequestSpec(url="https://api.example.com/items", body='{"a": 1}',
                    content_type="application/json", timeout=2000)
    )
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

import httpx

from restexec.exceptions import BodyWriteError
from restexec.http.body import body_kind, generate_boundary, open_request_stream, write_body
from restexec.http.classify import classify, classify_exception, timed_out_response
from restexec.http.configurator import RequestConfigurator, TransportRequest
from restexec.http.timeout import TimeoutGuard, TimeoutState
from restexec.models import (
    ExecutorConfig,
    HttpResponse,
    RequestPhase,
    RequestSpec,
    ResponseStatus,
)
from restexec.output import get_output

TransportFactory = Callable[[TransportRequest], httpx.AsyncBaseTransport]
TransitionObserver = Callable[[RequestPhase, RequestSpec], None]

GET_STYLE_METHODS = frozenset({"GET", "HEAD", "DELETE", "OPTIONS"})
POST_STYLE_METHODS = frozenset({"POST", "PUT", "PATCH"})

_TERMINAL_PHASE = {
    ResponseStatus.COMPLETED: RequestPhase.COMPLETED,
    ResponseStatus.TIMED_OUT: RequestPhase.TIMED_OUT,
    ResponseStatus.ABORTED: RequestPhase.ABORTED,
    ResponseStatus.ERROR: RequestPhase.ERROR,
}


def default_transport_factory(transport_request: TransportRequest) -> httpx.AsyncBaseTransport:
    """Build a real network transport honouring the request's TLS and proxy settings."""
    return httpx.AsyncHTTPTransport(
        verify=transport_request.verify,
        proxy=transport_request.proxy,
        retries=0,
    )


async def _read_body(response: httpx.Response) -> None:
    await response.aread()


class Http:
    """Asynchronous HTTP request executor.

    Args:
        config: Executor-wide defaults and transport capabilities.
        transport_factory: Builds the httpx transport for each call.  Tests
            pass one returning :class:`httpx.MockTransport`.
        event_hooks: httpx event hooks (``{"request": [...], "response": [...]}``)
            installed on every call.  A response hook that raises
            :class:`httpx.HTTPStatusError` still yields a ``COMPLETED`` response.
        on_transition: Called with ``(phase, spec)`` on every state change.
    """

    def __init__(
        self,
        config: Optional[ExecutorConfig] = None,
        transport_factory: Optional[TransportFactory] = None,
        event_hooks: Optional[dict[str, list[Callable[..., Any]]]] = None,
        on_transition: Optional[TransitionObserver] = None,
    ) -> None:
        self._config = config or ExecutorConfig()
        self._configurator = RequestConfigurator(self._config)
        self._transport_factory = transport_factory or default_transport_factory
        self._event_hooks = event_hooks
        self._on_transition = on_transition
        self._in_flight: set[TimeoutState] = set()

    @property
    def config(self) -> ExecutorConfig:
        return self._config

    # ------------------------------------------------------------------ #
    # GET-style
    # ------------------------------------------------------------------ #

    async def get(self, spec: RequestSpec) -> HttpResponse:
        return await self._run(spec, "GET", post_style=False)

    async def head(self, spec: RequestSpec) -> HttpResponse:
        return await self._run(spec, "HEAD", post_style=False)

    async def delete(self, spec: RequestSpec) -> HttpResponse:
        return await self._run(spec, "DELETE", post_style=False)

    async def options(self, spec: RequestSpec) -> HttpResponse:
        return await self._run(spec, "OPTIONS", post_style=False)

    async def as_get(self, spec: RequestSpec, method: str) -> HttpResponse:
        """Execute a GET-style request with an arbitrary verb (upper-cased)."""
        return await self._run(spec, method.upper(), post_style=False)

    # ------------------------------------------------------------------ #
    # POST-style
    # ------------------------------------------------------------------ #

    async def post(self, spec: RequestSpec) -> HttpResponse:
        return await self._run(spec, "POST", post_style=True)

    async def put(self, spec: RequestSpec) -> HttpResponse:
        return await self._run(spec, "PUT", post_style=True)

    async def patch(self, spec: RequestSpec) -> HttpResponse:
        return await self._run(spec, "PATCH", post_style=True)

    async def as_post(self, spec: RequestSpec, method: str) -> HttpResponse:
        """Execute a POST-style request with an arbitrary verb (upper-cased)."""
        return await self._run(spec, method.upper(), post_style=True)

    # ------------------------------------------------------------------ #
    # Dispatch and cancellation
    # ------------------------------------------------------------------ #

    async def execute(self, spec: RequestSpec) -> HttpResponse:
        """Execute *spec* with its own method, picking the method family.

        POST, PUT and PATCH are POST-style; GET, HEAD, DELETE and OPTIONS are
        GET-style.  Any other verb is POST-style when the request carries a body,
        files, or forced multipart, and GET-style otherwise.
        """
        method = spec.method
        if method in POST_STYLE_METHODS:
            post_style = True
        elif method in GET_STYLE_METHODS:
            post_style = False
        else:
            post_style = spec.has_body or spec.is_multipart
        return await self._run(spec, method, post_style=post_style)

    def abort(self) -> int:
        """Cancel every in-flight call of this executor.

        Aborted calls resolve to ``ResponseStatus.ABORTED``.

        Returns:
            The number of calls that were cancelled.
        """
        states = list(self._in_flight)
        for state in states:
            state.abort()
        if states:
            get_output().debug(f"Aborted {len(states)} in-flight request(s)")
        return len(states)

    # ------------------------------------------------------------------ #
    # Pipeline
    # ------------------------------------------------------------------ #

    async def _run(self, spec: RequestSpec, method: str, post_style: bool) -> HttpResponse:
        state: Optional[TimeoutState] = None
        try:
            self._transition(RequestPhase.CONFIGURING, spec)
            transport_request = self._configurator.configure(spec, method)
            self._transition(
                RequestPhase.POST_STYLE if post_style else RequestPhase.GET_STYLE, spec
            )

            writes_body = spec.is_multipart or (post_style and body_kind(spec) is not None)
            if not writes_body and (spec.has_body or spec.has_parameters):
                get_output().debug(f"{method} is GET-style; request body not sent")
            boundary = generate_boundary() if spec.is_multipart else None
            expected_length = 0
            if writes_body:
                expected_length = self._configurator.prepare_body_headers(
                    transport_request, spec, boundary
                )

            self._transition(RequestPhase.REQUESTING, spec)
            state = TimeoutState()
            self._in_flight.add(state)
            try:
                operation: Optional[asyncio.Future] = None
                with TimeoutGuard(transport_request.timeout_ms, state) as guard:
                    if writes_body:
                        self._transition(RequestPhase.WRITING_BODY, spec)
                        await self._write_body(transport_request, spec, boundary, expected_length)
                    if not state.timed_out:
                        self._transition(RequestPhase.AWAITING_RESPONSE, spec)
                        operation = await self._await_response(transport_request, state, guard)
                if operation is None:
                    response = timed_out_response()
                else:
                    response = await classify(operation, state)
            finally:
                self._in_flight.discard(state)
        except Exception as exc:
            response = await classify_exception(exc, state)

        get_output().debug(
            f"{method} {spec.url} -> {response.response_status.value}"
            + (f" ({response.status_code})" if response.status_code else "")
        )
        self._transition(_TERMINAL_PHASE[response.response_status], spec)
        return response

    async def _write_body(
        self,
        transport_request: TransportRequest,
        spec: RequestSpec,
        boundary: Optional[str],
        expected_length: int,
    ) -> None:
        async with open_request_stream(transport_request) as stream:
            write_body(stream, spec, boundary)
            written = stream.tell()
            if written != expected_length:
                raise BodyWriteError(
                    f"Wrote {written} body bytes but declared {expected_length}",
                    expected=expected_length,
                    written=written,
                )

    async def _await_response(
        self, transport_request: TransportRequest, state: TimeoutState, guard: TimeoutGuard
    ) -> asyncio.Future:
        """Issue the request and wait until the transport operation settles.

        The guard is superseded as soon as the operation settles, so closing
        the client afterwards is not timed.  Returns the settled future; it is
        cancelled when the timer fired or the call was aborted.
        """
        transport = self._transport_factory(transport_request)
        async with httpx.AsyncClient(
            transport=transport,
            timeout=transport_request.timeout,
            max_redirects=transport_request.max_redirects,
            event_hooks=self._client_event_hooks(),
            trust_env=False,
        ) as client:
            operation = asyncio.ensure_future(
                client.send(
                    transport_request.request,
                    auth=transport_request.auth,
                    follow_redirects=transport_request.follow_redirects,
                )
            )
            state.attach(operation)
            try:
                await asyncio.wait({operation})
            except asyncio.CancelledError:
                operation.cancel()
                await asyncio.gather(operation, return_exceptions=True)
                raise
            finally:
                guard.supersede()
        return operation

    def _client_event_hooks(self) -> dict[str, list[Callable[..., Any]]]:
        # httpx closes the response unread when a response hook raises, so the
        # body is read ahead of the caller's hooks.
        hooks = self._event_hooks or {}
        return {
            "request": list(hooks.get("request", [])),
            "response": [_read_body, *hooks.get("response", [])],
        }

    def _transition(self, phase: RequestPhase, spec: RequestSpec) -> None:
        get_output().debug(f"{spec.url}: {phase.value}")
        if self._on_transition is not None:
            self._on_transition(phase, spec)
