"""Turns a :class:`~restexec.models.RequestSpec` into a transport request.

:class:`RequestConfigurator` performs no network I/O.  It builds the
:class:`httpx.Request` (method, URL, headers, cookies, user agent, default
``Content-Length``) and gathers the settings that httpx takes at the client or
transport level (auth, redirects, proxy, TLS context, timeout) into a
:class:`TransportRequest`.  Anything invalid -- a malformed URL, an unsupported
scheme, a client certificate that does not load -- raises
:class:`~restexec.exceptions.InvalidRequestError` immediately.
"""

from __future__ import annotations

import ssl
from dataclasses import dataclass, field
from typing import Optional, Union

import httpx

from restexec.exceptions import InvalidRequestError
from restexec.http.body import body_content_type, content_length
from restexec.http.capabilities import HeaderSetters
from restexec.models import ClientCertificate, Credentials, ExecutorConfig, RequestSpec
from restexec.output import get_output

DEFAULT_MAX_REDIRECTS = 20

_SUPPORTED_SCHEMES = ("http", "https")


@dataclass
class TransportRequest:
    """Everything the transport needs to issue one request.

    ``request`` is replaced (not mutated) when a body is attached, because
    httpx only computes a request's content at construction time.
    """

    request: httpx.Request
    auth: Optional[httpx.Auth] = None
    follow_redirects: bool = True
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    timeout_ms: int = 0
    timeout: httpx.Timeout = field(default_factory=lambda: httpx.Timeout(None))
    proxy: Optional[str] = None
    verify: Union[ssl.SSLContext, bool] = True

    def attach_body(self, data: bytes) -> None:
        """Make *data* the request body, keeping method, URL, headers, and extensions."""
        old = self.request
        self.request = httpx.Request(
            old.method,
            old.url,
            headers=old.headers,
            stream=httpx.ByteStream(data),
            extensions=old.extensions,
        )


class RequestConfigurator:
    """Builds :class:`TransportRequest` objects for one executor.

    Args:
        config: Executor-wide defaults; its ``capabilities`` decide which
            header setters and transport features are used.
    """

    def __init__(self, config: ExecutorConfig) -> None:
        self._config = config
        self._capabilities = config.capabilities
        self._header_setters = HeaderSetters(config.capabilities)

    @property
    def header_setters(self) -> HeaderSetters:
        return self._header_setters

    def configure(self, spec: RequestSpec, method: str) -> TransportRequest:
        """Build the transport request for *spec* sent with *method*.

        Raises:
            InvalidRequestError: If the URL or TLS material is unusable.
        """
        request = self._new_request(method, spec.url)
        output = get_output()

        for name, value in spec.headers.items():
            self._header_setters.apply(request, name, value)

        if spec.cookies:
            cookie_str = "; ".join(f"{c.name}={c.value}" for c in spec.cookies)
            self._header_setters.apply(request, "Cookie", cookie_str)

        # Replaced by prepare_body_headers when a body is written.
        self._header_setters.apply(request, "Content-Length", "0")

        user_agent = spec.user_agent or self._config.user_agent
        if user_agent:
            self._header_setters.apply(request, "User-Agent", user_agent)

        if "Accept-Encoding" not in request.headers:
            accept_encoding = (
                "gzip, deflate" if self._capabilities.automatic_decompression else "identity"
            )
            request.headers["Accept-Encoding"] = accept_encoding

        timeout_ms = spec.timeout or self._config.timeout_ms
        timeout = httpx.Timeout(timeout_ms / 1000) if timeout_ms else httpx.Timeout(None)
        request.extensions["timeout"] = timeout.as_dict()

        follow_redirects = spec.follow_redirects
        if follow_redirects is None:
            follow_redirects = self._config.follow_redirects
        if follow_redirects and not self._capabilities.automatic_redirects:
            output.debug("Transport cannot follow redirects; returning 3xx responses as-is")
            follow_redirects = False
        max_redirects = spec.max_redirects
        if max_redirects is None:
            max_redirects = self._config.max_redirects
        if max_redirects is None:
            max_redirects = DEFAULT_MAX_REDIRECTS

        proxy = spec.proxy or self._config.proxy
        if proxy and not self._capabilities.proxy:
            output.warning(f"Transport does not support proxies; ignoring {proxy}")
            proxy = None

        return TransportRequest(
            request=request,
            auth=_build_auth(spec.credentials),
            follow_redirects=follow_redirects,
            max_redirects=max_redirects,
            timeout_ms=timeout_ms,
            timeout=timeout,
            proxy=proxy,
            verify=self._build_verify(spec.client_certificates),
        )

    def prepare_body_headers(
        self,
        transport_request: TransportRequest,
        spec: RequestSpec,
        boundary: Optional[str],
    ) -> int:
        """Set ``Content-Length`` and ``Content-Type`` for *spec*'s body.

        Returns:
            The computed content length.
        """
        length = content_length(spec, boundary)
        request = transport_request.request
        self._header_setters.apply(request, "Content-Length", str(length))
        content_type = body_content_type(spec, boundary)
        if content_type:
            self._header_setters.apply(request, "Content-Type", content_type)
        return length

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _new_request(method: str, url: str) -> httpx.Request:
        try:
            request = httpx.Request(method, url)
        except httpx.InvalidURL as exc:
            raise InvalidRequestError(f"Invalid URL {url!r}: {exc}") from exc
        if request.url.scheme not in _SUPPORTED_SCHEMES:
            raise InvalidRequestError(
                f"Unsupported URL scheme in {url!r}; expected http or https"
            )
        if not request.url.host:
            raise InvalidRequestError(f"URL {url!r} has no host")
        return request

    def _build_verify(
        self, certificates: list[ClientCertificate]
    ) -> Union[ssl.SSLContext, bool]:
        if not certificates:
            return self._config.verify_ssl
        if not self._capabilities.client_certificates:
            get_output().warning("Transport does not support client certificates; ignoring them")
            return self._config.verify_ssl

        context = ssl.create_default_context()
        if not self._config.verify_ssl:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        for cert in certificates:
            try:
                context.load_cert_chain(cert.cert_file, cert.key_file, cert.password)
            except (OSError, ssl.SSLError) as exc:
                raise InvalidRequestError(
                    f"Cannot load client certificate {cert.cert_file}: {exc}"
                ) from exc
        return context


def _build_auth(credentials: Optional[Credentials]) -> Optional[httpx.Auth]:
    if credentials is None:
        return None
    if credentials.scheme == "digest":
        return httpx.DigestAuth(credentials.username, credentials.password)
    return httpx.BasicAuth(credentials.username, credentials.password)
