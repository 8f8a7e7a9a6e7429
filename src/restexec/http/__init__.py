"""HTTP request execution: configuration, body writing, timeouts, classification.

The public entry point is :class:`Http`.  Its collaborators are exposed for
callers that need to size or serialise a body themselves:

* :mod:`restexec.http.body` -- content length and ``multipart/form-data`` writer.
* :mod:`restexec.http.configurator` -- ``RequestSpec`` -> transport request.
* :mod:`restexec.http.capabilities` -- per-header setter registry.
* :mod:`restexec.http.timeout` -- per-call timeout state and timer.
* :mod:`restexec.http.classify` -- outcome -> ``HttpResponse``.
"""

from restexec.http.configurator import RequestConfigurator, TransportRequest
from restexec.http.executor import Http, default_transport_factory

__all__ = ["Http", "RequestConfigurator", "TransportRequest", "default_transport_factory"]
