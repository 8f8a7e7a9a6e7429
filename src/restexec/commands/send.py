"""The ``send`` command -- execute one HTTP request from the command line.

Builds a :class:`~restexec.models.RequestSpec` from curl-like options, runs it
through :meth:`Http.execute <restexec.http.Http.execute>`, prints the response
body to stdout, and exits with a code derived from the outcome:

=========================  ===========================
Outcome                    Exit code
=========================  ===========================
``COMPLETED``              0 (4 with ``--fail`` and a status >= 400)
``ERROR``                  6
``TIMED_OUT``              7
``ABORTED``                8
=========================  ===========================
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import ValidationError

from restexec.exceptions import InvalidUsageError, RestexecError
from restexec.exit_codes import (
    EXIT_ABORTED,
    EXIT_HTTP_ERROR,
    EXIT_SUCCESS,
    EXIT_TIMED_OUT,
    EXIT_TRANSPORT_ERROR,
)
from restexec.models import (
    ClientCertificate,
    Credentials,
    FilePart,
    HttpCookie,
    HttpResponse,
    Parameter,
    RequestSpec,
    ResponseStatus,
)
from restexec.output import error, format_body, get_output, info


# ------------------------------------------------------------------ #
# Option parsing
# ------------------------------------------------------------------ #


def parse_header(raw: str) -> tuple[str, str]:
    """Parse ``"Name: value"`` into a ``(name, value)`` pair."""
    name, sep, value = raw.partition(":")
    if not sep or not name.strip():
        raise InvalidUsageError(f"Invalid header {raw!r}; expected 'Name: value'")
    return name.strip(), value.strip()


def _split_pair(raw: str, option: str) -> tuple[str, str]:
    name, sep, value = raw.partition("=")
    if not sep or not name:
        raise InvalidUsageError(f"Invalid {option} {raw!r}; expected 'name=value'")
    return name, value


def parse_cookie(raw: str) -> HttpCookie:
    name, value = _split_pair(raw, "--cookie")
    return HttpCookie(name=name, value=value)


def parse_field(raw: str) -> Parameter:
    name, value = _split_pair(raw, "--field")
    return Parameter(name=name, value=value)


def parse_file(raw: str) -> FilePart:
    """Parse ``name=@path`` (optionally ``name=@path;type=mime/type``).

    Raises:
        InvalidUsageError: If the syntax is wrong or the file does not exist.
    """
    name, value = _split_pair(raw, "--file")
    path_str, _, type_part = value.lstrip("@").partition(";type=")
    path = Path(path_str).expanduser()
    if not path.is_file():
        raise InvalidUsageError(f"File not found for --file {name}: {path}")
    return FilePart.from_path(name, path, content_type=type_part or None)


def parse_user(raw: str, digest: bool) -> Credentials:
    username, _, password = raw.partition(":")
    if not username:
        raise InvalidUsageError(f"Invalid --user {raw!r}; expected 'user:password'")
    return Credentials(
        username=username,
        password=password,
        scheme="digest" if digest else "basic",
    )


def exit_code_for(response: HttpResponse, fail: bool = False) -> int:
    """Map an outcome to the CLI exit code."""
    status = response.response_status
    if status == ResponseStatus.COMPLETED:
        if fail and response.status_code >= 400:
            return EXIT_HTTP_ERROR
        return EXIT_SUCCESS
    if status == ResponseStatus.TIMED_OUT:
        return EXIT_TIMED_OUT
    if status == ResponseStatus.ABORTED:
        return EXIT_ABORTED
    return EXIT_TRANSPORT_ERROR


def build_spec(
    method: str,
    url: str,
    headers: list[str],
    cookies: list[str],
    data: Optional[str],
    data_file: Optional[Path],
    fields: list[str],
    files: list[str],
    multipart: bool,
    user: Optional[str],
    digest: bool,
    timeout: int,
    follow_redirects: bool,
    max_redirects: Optional[int],
    cert: Optional[Path],
    key: Optional[Path],
) -> RequestSpec:
    """Turn raw CLI option values into a :class:`RequestSpec`."""
    if data is not None and data_file is not None:
        raise InvalidUsageError("--data and --data-file cannot be combined")
    if key is not None and cert is None:
        raise InvalidUsageError("--key requires --cert")

    body_bytes = None
    if data_file is not None:
        try:
            body_bytes = data_file.read_bytes()
        except OSError as exc:
            raise InvalidUsageError(f"Cannot read --data-file {data_file}: {exc}") from exc

    spec: dict[str, Any] = {
        "url": url,
        "method": method,
        "headers": dict(parse_header(h) for h in headers),
        "cookies": [parse_cookie(c) for c in cookies],
        "body": data,
        "body_bytes": body_bytes,
        "parameters": [parse_field(f) for f in fields],
        "files": [parse_file(f) for f in files],
        "always_multipart_form_data": multipart,
        "credentials": parse_user(user, digest) if user else None,
        "timeout": timeout,
        "follow_redirects": follow_redirects,
        "max_redirects": max_redirects,
    }
    if cert is not None:
        spec["client_certificates"] = [
            ClientCertificate(cert_file=str(cert), key_file=str(key) if key else None)
        ]
    return RequestSpec.model_validate(spec)


def _print_head(response: HttpResponse) -> None:
    info(f"HTTP {response.status_code} {response.status_description}".rstrip())
    for name, value in response.headers.items():
        info(f"{name}: {value}")
    info("")


# ------------------------------------------------------------------ #
# Command
# ------------------------------------------------------------------ #


def send_command(
    method: str = typer.Argument(help="HTTP method, e.g. GET, POST or a custom verb."),
    url: str = typer.Argument(help="Absolute http(s) URL."),
    header: Optional[list[str]] = typer.Option(
        None, "--header", "-H", help="Request header 'Name: value'. Repeatable."
    ),
    cookie: Optional[list[str]] = typer.Option(
        None, "--cookie", help="Cookie 'name=value'. Repeatable."
    ),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="String request body."),
    data_file: Optional[Path] = typer.Option(
        None, "--data-file", help="Send the file's bytes as the request body."
    ),
    field: Optional[list[str]] = typer.Option(
        None, "--field", "-F", help="Form field 'name=value'. Repeatable."
    ),
    file: Optional[list[str]] = typer.Option(
        None, "--file", help="File part 'name=@path[;type=mime]'. Repeatable."
    ),
    multipart: bool = typer.Option(
        False, "--multipart", help="Always send multipart/form-data."
    ),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Credentials 'user:password'."),
    digest: bool = typer.Option(False, "--digest", help="Use HTTP Digest instead of Basic."),
    timeout: Optional[int] = typer.Option(
        None, "--timeout", min=0, help="Timeout in milliseconds (0 = none)."
    ),
    no_follow: bool = typer.Option(False, "--no-follow", help="Do not follow redirects."),
    max_redirects: Optional[int] = typer.Option(
        None, "--max-redirects", min=0, help="Maximum redirects to follow."
    ),
    proxy: Optional[str] = typer.Option(None, "--proxy", help="Proxy URL."),
    insecure: bool = typer.Option(
        False, "--insecure", "-k", help="Skip TLS certificate verification."
    ),
    cert: Optional[Path] = typer.Option(None, "--cert", help="Client certificate (PEM)."),
    key: Optional[Path] = typer.Option(None, "--key", help="Client certificate key (PEM)."),
    user_agent: Optional[str] = typer.Option(None, "--user-agent", help="User-Agent header."),
    include: bool = typer.Option(
        False, "--include", "-i", help="Print status line and headers to stderr."
    ),
    fail: bool = typer.Option(False, "--fail", help="Exit 4 on HTTP status >= 400."),
) -> None:
    """Send one HTTP request and print the response body.

    Example::

        restexec send GET https://httpbin.org/get
        restexec send POST https://httpbin.org/post -d '{"a": 1}' -H 'Content-Type: application/json'
        restexec send PUT https://example.com/upload --file doc=@notes.txt -F title=Notes
    """
    from restexec.config import resolve_config
    from restexec.http import Http

    try:
        config = resolve_config(
            {
                "timeout_ms": timeout,
                "max_redirects": max_redirects,
                "proxy": proxy,
                "user_agent": user_agent,
                "verify_ssl": False if insecure else None,
                "follow_redirects": False if no_follow else None,
            }
        )
        spec = build_spec(
            method=method,
            url=url,
            headers=header or [],
            cookies=cookie or [],
            data=data,
            data_file=data_file,
            fields=field or [],
            files=file or [],
            multipart=multipart,
            user=user,
            digest=digest,
            timeout=config.timeout_ms,
            follow_redirects=config.follow_redirects,
            max_redirects=config.max_redirects,
            cert=cert,
            key=key,
        )
    except RestexecError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    except ValidationError as exc:
        error(str(exc))
        raise typer.Exit(code=InvalidUsageError.exit_code) from None

    get_output().debug(f"Sending {spec.method} {spec.url}")
    response = asyncio.run(Http(config).execute(spec))

    if response.response_status != ResponseStatus.COMPLETED:
        error(response.error_message or response.response_status.value)
        raise typer.Exit(code=exit_code_for(response, fail))

    if include:
        _print_head(response)
    if response.content:
        format_body(response.content, response.content_type)

    code = exit_code_for(response, fail)
    if code != EXIT_SUCCESS:
        error(f"HTTP {response.status_code} {response.status_description}".rstrip())
        raise typer.Exit(code=code)
