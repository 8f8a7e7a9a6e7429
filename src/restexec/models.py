"""Canonical Pydantic models shared across all restexec modules.

This is the single source of truth for data shapes in the project.  The
models fall into three groups:

**Request models** -- the fully specified description of one outgoing call:
    :class:`HttpCookie`, :class:`Parameter`, :class:`FilePart`,
    :class:`Credentials`, :class:`ClientCertificate`, and
    :class:`RequestSpec`.

**Outcome models** -- what the pipeline hands back:
    :class:`ResponseStatus`, :class:`RequestPhase`, and
    :class:`HttpResponse`.

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`TransportCapabilities` and :class:`ExecutorConfig`.

Request and response models are frozen: a :class:`RequestSpec` is built once
by the caller and never mutated by the pipeline, and an :class:`HttpResponse`
is produced exactly once per call.
"""

from __future__ import annotations

import codecs
import enum
import mimetypes
import shutil
from pathlib import Path
from typing import Any, BinaryIO, Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from restexec import __version__


# --- Request models ---


class HttpCookie(BaseModel):
    """A single cookie, either sent with a request or received in a response."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: str
    domain: str = ""
    path: str = "/"
    secure: bool = False
    expires: Optional[int] = Field(
        default=None, description="Expiry as a Unix timestamp, None for session cookies"
    )


class Parameter(BaseModel):
    """A name/value pair sent as a form field."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: str


class FilePart(BaseModel):
    """A file attached to a ``multipart/form-data`` body.

    The content comes either from ``content`` (bytes held in memory) or from
    ``writer``, a callable that writes exactly ``content_length`` bytes to the
    binary stream it is given.  With in-memory content the length is derived
    automatically.

    Example::

        FilePart.from_bytes("avatar", b"\\x89PNG...", file_name="me.png",
                            content_type="image/png")
        FilePart.from_path("report", "/tmp/report.pdf")
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Form field name")
    file_name: str
    content_type: Optional[str] = None
    content_length: int = Field(default=-1, description="Byte length of the content")
    content: Optional[bytes] = None
    writer: Optional[Callable[[BinaryIO], None]] = Field(default=None, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _derive_length(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("content") is not None:
            if data.get("content_length", -1) in (-1, None):
                data = {**data, "content_length": len(data["content"])}
        return data

    @model_validator(mode="after")
    def _check_source(self) -> FilePart:
        if (self.content is None) == (self.writer is None):
            raise ValueError("exactly one of 'content' or 'writer' must be given")
        if self.content_length < 0:
            raise ValueError("'content_length' is required when using a writer")
        return self

    def write_to(self, stream: BinaryIO) -> None:
        """Write the file content to *stream*."""
        if self.content is not None:
            stream.write(self.content)
        elif self.writer is not None:
            self.writer(stream)

    @classmethod
    def from_bytes(
        cls,
        name: str,
        data: bytes,
        file_name: str,
        content_type: Optional[str] = None,
    ) -> FilePart:
        """Create a file part from in-memory bytes."""
        return cls(name=name, file_name=file_name, content_type=content_type, content=data)

    @classmethod
    def from_path(
        cls,
        name: str,
        path: str | Path,
        content_type: Optional[str] = None,
    ) -> FilePart:
        """Create a file part that streams *path* from disk when the body is written.

        The content type is guessed from the file extension when not given.
        The file is only opened while the body is being written.
        """
        file_path = Path(path)
        if content_type is None:
            content_type, _ = mimetypes.guess_type(file_path.name)

        def _copy(stream: BinaryIO) -> None:
            with file_path.open("rb") as source:
                shutil.copyfileobj(source, stream)

        return cls(
            name=name,
            file_name=file_path.name,
            content_type=content_type,
            content_length=file_path.stat().st_size,
            writer=_copy,
        )


class Credentials(BaseModel):
    """Username/password credentials, sent with HTTP Basic or Digest auth."""

    model_config = ConfigDict(frozen=True)

    username: str
    password: str = ""
    scheme: Literal["basic", "digest"] = "basic"


class ClientCertificate(BaseModel):
    """A TLS client certificate chain loaded into the transport's SSL context."""

    model_config = ConfigDict(frozen=True)

    cert_file: str
    key_file: Optional[str] = None
    password: Optional[str] = None


class RequestSpec(BaseModel):
    """Fully specified description of one outgoing HTTP request.

    Built by the caller and never mutated by the pipeline.  Exactly one body
    source decides how the body is written, checked in this order:

    1. ``files`` non-empty or ``always_multipart_form_data`` -- a
       ``multipart/form-data`` body made of the files and then ``parameters``.
    2. ``body_bytes`` -- written verbatim.
    3. ``body`` -- encoded with ``encoding``.
    4. ``parameters`` alone -- encoded as
       ``application/x-www-form-urlencoded`` and written as a string body.

    ``timeout`` is in milliseconds; 0 falls back to the executor's
    ``timeout_ms``, and the local timeout is off when both are 0.
    ``follow_redirects`` left as ``None`` takes the executor's setting.

    Example::

        RequestSpec(
            url="https://api.example.com/upload",
            method="POST",
            files=[FilePart.from_path("doc", "notes.txt")],
            parameters=[Parameter(name="title", value="Notes")],
            timeout=5000,
        )
    """

    model_config = ConfigDict(frozen=True)

    url: str
    method: str = "GET"
    headers: dict[str, str] = Field(
        default_factory=dict, description="Header name -> value, in insertion order"
    )
    cookies: list[HttpCookie] = Field(default_factory=list)
    body_bytes: Optional[bytes] = None
    body: Optional[str] = None
    encoding: str = "utf-8"
    content_type: Optional[str] = Field(
        default=None, description="Content type of a raw or string body"
    )
    parameters: list[Parameter] = Field(default_factory=list)
    files: list[FilePart] = Field(default_factory=list)
    always_multipart_form_data: bool = False
    credentials: Optional[Credentials] = None
    user_agent: str = ""
    timeout: int = Field(
        default=0, ge=0, description="Timeout in milliseconds, 0 = executor default"
    )
    proxy: Optional[str] = None
    client_certificates: list[ClientCertificate] = Field(default_factory=list)
    follow_redirects: Optional[bool] = None
    max_redirects: Optional[int] = Field(default=None, ge=0)

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        value = value.strip().upper()
        if not value:
            raise ValueError("method must not be empty")
        return value

    @field_validator("encoding")
    @classmethod
    def _known_encoding(cls, value: str) -> str:
        try:
            codecs.lookup(value)
        except LookupError as exc:
            raise ValueError(f"unknown text encoding: {value}") from exc
        return value

    @property
    def has_body(self) -> bool:
        """Whether a raw or string body was supplied."""
        return self.body_bytes is not None or bool(self.body)

    @property
    def has_files(self) -> bool:
        return bool(self.files)

    @property
    def has_parameters(self) -> bool:
        return bool(self.parameters)

    @property
    def is_multipart(self) -> bool:
        """Whether the body must be encoded as ``multipart/form-data``."""
        return self.has_files or self.always_multipart_form_data


# --- Outcome models ---


class ResponseStatus(str, enum.Enum):
    """Outcome classification of a call.

    Callers must branch on this before trusting ``status_code`` or
    ``content``: only ``COMPLETED`` responses carry meaningful HTTP data.
    ``COMPLETED`` includes HTTP error statuses such as 404 or 500.
    """

    NONE = "none"
    COMPLETED = "completed"
    ERROR = "error"
    TIMED_OUT = "timed_out"
    ABORTED = "aborted"


class RequestPhase(str, enum.Enum):
    """States of the execution pipeline, in the order a call moves through them."""

    CONFIGURING = "configuring"
    GET_STYLE = "get_style"
    POST_STYLE = "post_style"
    REQUESTING = "requesting"
    WRITING_BODY = "writing_body"
    AWAITING_RESPONSE = "awaiting_response"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    ABORTED = "aborted"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_PHASES


_TERMINAL_PHASES = frozenset(
    {RequestPhase.COMPLETED, RequestPhase.TIMED_OUT, RequestPhase.ABORTED, RequestPhase.ERROR}
)


class HttpResponse(BaseModel):
    """Normalised result of one call through the pipeline.

    For ``TIMED_OUT``, ``ABORTED`` and ``ERROR`` outcomes the HTTP fields keep
    their defaults; ``ERROR`` additionally carries ``error_message`` and the
    original exception in ``error_exception``.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    response_status: ResponseStatus = ResponseStatus.NONE
    status_code: int = 0
    status_description: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    cookies: list[HttpCookie] = Field(default_factory=list)
    content: bytes = b""
    content_type: str = ""
    content_encoding: str = ""
    content_length: Optional[int] = None
    response_uri: str = ""
    server: str = ""
    error_message: Optional[str] = None
    error_exception: Optional[BaseException] = Field(default=None, exclude=True)

    @property
    def text(self) -> str:
        """The body decoded with the charset from ``Content-Type`` (UTF-8 by default)."""
        charset = "utf-8"
        for param in self.content_type.split(";")[1:]:
            key, _, value = param.strip().partition("=")
            if key.lower() == "charset" and value:
                charset = value.strip('"')
        try:
            return self.content.decode(charset, errors="replace")
        except LookupError:
            return self.content.decode("utf-8", errors="replace")

    @property
    def is_successful(self) -> bool:
        """``True`` for completed calls with a 2xx status code."""
        return self.response_status == ResponseStatus.COMPLETED and 200 <= self.status_code < 300


# --- Configuration models ---


class TransportCapabilities(BaseModel):
    """What the underlying transport can be asked to do.

    Resolved once per :class:`~restexec.http.Http` executor and consulted by
    the request configurator instead of branching on the platform at every
    call site.
    """

    content_length_settable: bool = Field(
        default=True,
        description="Send an explicit Content-Length; otherwise bodies use chunked encoding",
    )
    automatic_redirects: bool = Field(
        default=True, description="Let the transport follow redirects itself"
    )
    client_certificates: bool = Field(
        default=True, description="Load client certificates into the SSL context"
    )
    proxy: bool = Field(default=True, description="Route requests through a proxy when asked")
    automatic_decompression: bool = Field(
        default=True, description="Advertise and decode gzip/deflate responses"
    )


class ExecutorConfig(BaseModel):
    """Executor-wide defaults persisted at ``~/.config/restexec/config.json``.

    Loaded by :func:`~restexec.config.load_global_config` and merged with
    project config, environment variables, and CLI flags by
    :func:`~restexec.config.resolve_config`.
    """

    timeout_ms: int = Field(default=0, ge=0, description="Default timeout in milliseconds")
    follow_redirects: bool = True
    max_redirects: Optional[int] = Field(default=None, ge=0)
    verify_ssl: bool = Field(default=True, description="Verify server TLS certificates")
    user_agent: str = Field(
        default_factory=lambda: f"restexec/{__version__}",
        description="User agent used when a request does not set one",
    )
    proxy: Optional[str] = None
    capabilities: TransportCapabilities = Field(default_factory=TransportCapabilities)
