"""Request body preparation, length calculation, and serialisation.

Three body strategies exist, chosen by :func:`body_kind`:

* ``MULTIPART`` -- files and form fields framed as ``multipart/form-data``.
* ``RAW`` -- ``RequestSpec.body_bytes`` written verbatim.
* ``TEXT`` -- ``RequestSpec.body`` (or the URL-encoded parameters when no
  body was given) encoded with ``RequestSpec.encoding``.

:func:`content_length` predicts the exact number of bytes that
:func:`write_body` produces for the same spec and boundary; the executor
checks the two agree before sending anything.

Multipart framing is always UTF-8 with CRLF line breaks::

    --<boundary>\\r\\n
    Content-Disposition: form-data; name="doc"; filename="a.txt"\\r\\n
    Content-Type: text/plain\\r\\n
    \\r\\n
    <file bytes>\\r\\n
    --<boundary>\\r\\n
    Content-Disposition: form-data; name="title"\\r\\n
    \\r\\n
    Notes\\r\\n
    --<boundary>--\\r\\n
"""

from __future__ import annotations

import enum
import io
import secrets
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, BinaryIO, Optional
from urllib.parse import quote

from restexec.models import FilePart, Parameter, RequestSpec

if TYPE_CHECKING:
    from restexec.http.configurator import TransportRequest

LINE_BREAK = "\r\n"
MULTIPART_ENCODING = "utf-8"
DEFAULT_FILE_CONTENT_TYPE = "application/octet-stream"
FORM_URLENCODED = "application/x-www-form-urlencoded"

_BOUNDARY_PREFIX = "-" * 27


class BodyKind(str, enum.Enum):
    """How a request body is serialised."""

    MULTIPART = "multipart"
    RAW = "raw"
    TEXT = "text"


def generate_boundary() -> str:
    """Return a fresh multipart boundary token, unique per request."""
    return f"{_BOUNDARY_PREFIX}{secrets.token_hex(12)}"


def body_kind(spec: RequestSpec) -> Optional[BodyKind]:
    """Pick the body strategy for *spec*, or ``None`` when there is no body."""
    if spec.is_multipart:
        return BodyKind.MULTIPART
    if spec.body_bytes is not None:
        return BodyKind.RAW
    if spec.body or spec.has_parameters:
        return BodyKind.TEXT
    return None


def encode_parameters(parameters: list[Parameter]) -> str:
    """Encode parameters as ``application/x-www-form-urlencoded`` (``%20`` for spaces)."""
    return "&".join(
        f"{quote(p.name, safe='')}={quote(p.value, safe='')}" for p in parameters
    )


def body_text(spec: RequestSpec) -> str:
    """The string written for a ``TEXT`` body."""
    if spec.body:
        return spec.body
    return encode_parameters(spec.parameters)


def body_content_type(spec: RequestSpec, boundary: Optional[str]) -> Optional[str]:
    """The ``Content-Type`` header value announced for *spec*'s body."""
    kind = body_kind(spec)
    if kind == BodyKind.MULTIPART:
        return f"multipart/form-data; boundary={boundary}"
    if kind == BodyKind.TEXT and not spec.body:
        return FORM_URLENCODED
    return spec.content_type


# --- Multipart framing ---


def multipart_file_header(boundary: str, file: FilePart) -> str:
    content_type = file.content_type or DEFAULT_FILE_CONTENT_TYPE
    return (
        f"--{boundary}{LINE_BREAK}"
        f'Content-Disposition: form-data; name="{file.name}"; filename="{file.file_name}"{LINE_BREAK}'
        f"Content-Type: {content_type}{LINE_BREAK}{LINE_BREAK}"
    )


def multipart_form_field(boundary: str, param: Parameter) -> str:
    return (
        f"--{boundary}{LINE_BREAK}"
        f'Content-Disposition: form-data; name="{param.name}"{LINE_BREAK}{LINE_BREAK}'
        f"{param.value}{LINE_BREAK}"
    )


def multipart_footer(boundary: str) -> str:
    return f"--{boundary}--{LINE_BREAK}"


def _byte_count(text: str, encoding: str = MULTIPART_ENCODING) -> int:
    return len(text.encode(encoding))


# --- Length ---


def content_length(spec: RequestSpec, boundary: Optional[str] = None) -> int:
    """Compute the exact body length for *spec* without writing anything.

    Args:
        spec: The request being sent.
        boundary: The multipart boundary; required for multipart bodies.

    Returns:
        The number of bytes :func:`write_body` will produce, 0 when there is
        no body.
    """
    kind = body_kind(spec)
    if kind is None:
        return 0
    if kind == BodyKind.RAW:
        return len(spec.body_bytes or b"")
    if kind == BodyKind.TEXT:
        return _byte_count(body_text(spec), spec.encoding)

    if boundary is None:
        raise ValueError("a boundary is required to size a multipart body")
    length = 0
    for file in spec.files:
        length += _byte_count(multipart_file_header(boundary, file))
        length += file.content_length
        length += _byte_count(LINE_BREAK)
    for param in spec.parameters:
        length += _byte_count(multipart_form_field(boundary, param))
    length += _byte_count(multipart_footer(boundary))
    return length


# --- Writing ---


def write_multipart(stream: BinaryIO, spec: RequestSpec, boundary: str) -> None:
    """Serialise files, then parameters, then the closing footer to *stream*."""
    line_break = LINE_BREAK.encode(MULTIPART_ENCODING)
    for file in spec.files:
        stream.write(multipart_file_header(boundary, file).encode(MULTIPART_ENCODING))
        file.write_to(stream)
        stream.write(line_break)
    for param in spec.parameters:
        stream.write(multipart_form_field(boundary, param).encode(MULTIPART_ENCODING))
    stream.write(multipart_footer(boundary).encode(MULTIPART_ENCODING))


def write_body(stream: BinaryIO, spec: RequestSpec, boundary: Optional[str] = None) -> None:
    """Write *spec*'s body to *stream* using the strategy from :func:`body_kind`."""
    kind = body_kind(spec)
    if kind == BodyKind.MULTIPART:
        if boundary is None:
            raise ValueError("a boundary is required to write a multipart body")
        write_multipart(stream, spec, boundary)
    elif kind == BodyKind.RAW:
        stream.write(spec.body_bytes or b"")
    elif kind == BodyKind.TEXT:
        stream.write(body_text(spec).encode(spec.encoding))


@asynccontextmanager
async def open_request_stream(transport_request: TransportRequest) -> AsyncIterator[BinaryIO]:
    """Acquire a writable body stream for *transport_request*.

    The bytes written inside the ``async with`` block become the request's
    body when the block exits cleanly.  The buffer is released on every path,
    including write failures, in which case the request is left untouched.
    """
    buffer = io.BytesIO()
    try:
        yield buffer
        transport_request.attach_body(buffer.getvalue())
    finally:
        buffer.close()
