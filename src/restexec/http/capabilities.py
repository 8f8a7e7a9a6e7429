"""Header setters resolved against the transport's capabilities.

Most headers are copied onto the outgoing :class:`httpx.Request` as-is.  A
few need dedicated handling:

* ``Content-Length`` -- validated as a non-negative integer, and replaced by
  ``Transfer-Encoding: chunked`` when the transport cannot take an explicit
  length.
* ``Content-Type``, ``Host``, ``User-Agent`` -- single-valued; a new value
  replaces whatever the transport filled in.
* ``Cookie`` -- merged with cookies already on the request.

:class:`HeaderSetters` holds the lookup table.  It is built once per executor
from a :class:`~restexec.models.TransportCapabilities`, so the choice of
setter never depends on anything but the header name at request time.
"""

from __future__ import annotations

from typing import Callable

import httpx

from restexec.exceptions import InvalidRequestError
from restexec.models import TransportCapabilities
from restexec.output import get_output

HeaderSetter = Callable[[httpx.Request, str, str], None]


def set_generic(request: httpx.Request, name: str, value: str) -> None:
    request.headers[name] = value


def set_content_length(request: httpx.Request, name: str, value: str) -> None:
    try:
        length = int(value)
    except ValueError as exc:
        raise InvalidRequestError(f"Invalid Content-Length header: {value!r}") from exc
    if length < 0:
        raise InvalidRequestError(f"Invalid Content-Length header: {value!r}")
    request.headers.pop("Transfer-Encoding", None)
    request.headers["Content-Length"] = str(length)


def set_chunked_instead_of_length(request: httpx.Request, name: str, value: str) -> None:
    request.headers.pop("Content-Length", None)
    if value != "0":
        request.headers["Transfer-Encoding"] = "chunked"


def set_single_valued(request: httpx.Request, name: str, value: str) -> None:
    request.headers.pop(name, None)
    request.headers[name] = value


def merge_cookie(request: httpx.Request, name: str, value: str) -> None:
    existing = request.headers.get("Cookie")
    request.headers["Cookie"] = f"{existing}; {value}" if existing else value


class HeaderSetters:
    """Maps lower-cased header names to the function that applies them.

    Args:
        capabilities: What the transport supports.

    Example::

        setters = HeaderSetters(TransportCapabilities())
        setters.apply(request, "Content-Length", "42")
    """

    def __init__(self, capabilities: TransportCapabilities) -> None:
        self._setters: dict[str, HeaderSetter] = {
            "content-type": set_single_valued,
            "host": set_single_valued,
            "user-agent": set_single_valued,
            "cookie": merge_cookie,
        }
        if capabilities.content_length_settable:
            self._setters["content-length"] = set_content_length
        else:
            self._setters["content-length"] = set_chunked_instead_of_length

    def setter_for(self, name: str) -> HeaderSetter:
        """Return the setter for *name*, falling back to :func:`set_generic`."""
        return self._setters.get(name.lower(), set_generic)

    def apply(self, request: httpx.Request, name: str, value: str) -> None:
        setter = self.setter_for(name)
        if setter is not set_generic:
            get_output().debug(f"Header {name} uses {setter.__name__}")
        setter(request, name, value)
