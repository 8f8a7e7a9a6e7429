"""restexec -- asynchronous HTTP request execution core built on httpx.

Given a fully specified :class:`~restexec.models.RequestSpec` (method, URL,
headers, cookies, body or files, credentials, timeout, redirect policy),
:class:`~restexec.http.Http` drives the transport asynchronously, writes the
body (including ``multipart/form-data`` encoding), races the call against a
local timeout, and returns a normalised :class:`~restexec.models.HttpResponse`.

Typical use::

    from restexec import Http, RequestSpec

    response = await Http().get(RequestSpec(url="https://example.com/"))
    if response.response_status == ResponseStatus.COMPLETED:
        print(response.status_code, response.text)

Modules:
    models: Pydantic models for requests, responses, and configuration.
    http: The execution pipeline and its collaborators.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes used by the CLI.
    output: stdout/stderr formatting system with Rich support.
    app: Typer application and CLI entry point.
"""

__version__ = "0.1.0"

from restexec.http import Http  # noqa: E402
from restexec.models import (  # noqa: E402
    ClientCertificate,
    Credentials,
    ExecutorConfig,
    FilePart,
    HttpCookie,
    HttpResponse,
    Parameter,
    RequestPhase,
    RequestSpec,
    ResponseStatus,
    TransportCapabilities,
)

__all__ = [
    "ClientCertificate",
    "Credentials",
    "ExecutorConfig",
    "FilePart",
    "Http",
    "HttpCookie",
    "HttpResponse",
    "Parameter",
    "RequestPhase",
    "RequestSpec",
    "ResponseStatus",
    "TransportCapabilities",
]
