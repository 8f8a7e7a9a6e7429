"""Maps a finished transport operation to a normalised :class:`HttpResponse`.

Classification order, first match wins:

1. The call's :class:`~restexec.http.timeout.TimeoutState` is timed out
   -> ``TIMED_OUT``, whatever the operation itself reported.
2. The operation was cancelled -> ``ABORTED``.
3. It failed with :class:`httpx.HTTPStatusError` -> ``COMPLETED`` with the
   status, headers, and body of the response the error carries.  An HTTP
   error status is data, not a failure.
4. It failed with anything else -> ``ERROR`` with the message and the
   original exception.
5. It succeeded -> ``COMPLETED``.

The transport response is closed on every path before a result is returned.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import httpx

from restexec.http.timeout import TimeoutState
from restexec.models import HttpCookie, HttpResponse, ResponseStatus


def timed_out_response() -> HttpResponse:
    return HttpResponse(
        response_status=ResponseStatus.TIMED_OUT,
        error_message="The request timed out",
    )


def aborted_response() -> HttpResponse:
    return HttpResponse(
        response_status=ResponseStatus.ABORTED,
        error_message="The request was aborted",
    )


def error_response(exc: BaseException) -> HttpResponse:
    """Wrap *exc* in an ``ERROR`` response, keeping it as the cause."""
    message = str(exc) or type(exc).__name__
    return HttpResponse(
        response_status=ResponseStatus.ERROR,
        error_message=message,
        error_exception=exc,
    )


async def classify(operation: asyncio.Future, state: TimeoutState) -> HttpResponse:
    """Classify the finished transport *operation* of one call.

    Args:
        operation: The completed (or cancelled) future that produced the
            :class:`httpx.Response`.
        state: The call's timeout state.
    """
    if state.timed_out:
        await _discard(operation)
        return timed_out_response()
    if operation.cancelled():
        return aborted_response()
    exc = operation.exception()
    if exc is not None:
        return await classify_exception(exc, state)
    return await extract_response(operation.result())


async def classify_exception(
    exc: BaseException, state: Optional[TimeoutState] = None
) -> HttpResponse:
    """Classify a failure raised while configuring, writing, or receiving."""
    if state is not None and state.timed_out:
        if isinstance(exc, httpx.HTTPStatusError):
            await exc.response.aclose()
        return timed_out_response()
    if isinstance(exc, asyncio.CancelledError):
        return aborted_response()
    if isinstance(exc, httpx.HTTPStatusError):
        return await extract_response(exc.response)
    return error_response(exc)


async def extract_response(raw: httpx.Response) -> HttpResponse:
    """Copy status, headers, cookies, and body out of *raw*, then close it."""
    try:
        content = await raw.aread()
        headers = raw.headers
        declared_length = headers.get("content-length", "")
        length = int(declared_length) if declared_length.isdigit() else len(content)
        return HttpResponse(
            response_status=ResponseStatus.COMPLETED,
            status_code=raw.status_code,
            status_description=raw.reason_phrase,
            headers=dict(headers),
            cookies=_response_cookies(raw),
            content=content,
            content_type=headers.get("content-type", ""),
            content_encoding=headers.get("content-encoding", ""),
            content_length=length,
            response_uri=_response_uri(raw),
            server=headers.get("server", ""),
        )
    finally:
        await raw.aclose()


# ------------------------------------------------------------------ #
# Private helpers
# ------------------------------------------------------------------ #


async def _discard(operation: asyncio.Future) -> None:
    """Close the response of an operation whose result is being ignored."""
    if operation.done() and not operation.cancelled() and operation.exception() is None:
        await operation.result().aclose()


def _response_uri(raw: httpx.Response) -> str:
    try:
        return str(raw.url)
    except RuntimeError:
        return ""


def _response_cookies(raw: httpx.Response) -> list[HttpCookie]:
    try:
        jar = raw.cookies.jar
    except RuntimeError:
        return []
    return [
        HttpCookie(
            name=cookie.name,
            value=cookie.value or "",
            domain=cookie.domain,
            path=cookie.path,
            secure=cookie.secure,
            expires=cookie.expires,
        )
        for cookie in jar
    ]
