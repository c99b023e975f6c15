"""
=============================================================================
HTTPLISTEN - asyncio HTTP/1.1 Listener Server
=============================================================================

Accepts connections on plain TCP or TLS listeners, frames them as HTTP/1.1
request/response exchanges and hands every request to one handler
function. Handlers run concurrently; responses still go out in request
order.

=============================================================================
PACKAGE LAYOUT
=============================================================================

    httplisten/
    ├── __init__.py          # Public API (this file)
    ├── __main__.py          # CLI: python -m httplisten
    ├── config.py            # ServerConfig
    ├── errors.py            # ServerClosed, TlsConfigMissing, ...
    ├── server.py            # Server, serve(), serve_tls(), serve_listener()
    ├── core/
    │   ├── listener.py      # Listener, listen(), listen_tls()
    │   ├── connection.py    # HttpConnection, RequestEvent
    │   └── backoff.py       # Accept backoff
    └── http/
        ├── request.py       # Request head parsing
        ├── response.py      # HTTPResponse, ResponseBuilder
        └── status_codes.py  # HTTPStatus

=============================================================================
QUICK START
=============================================================================

    import asyncio
    from httplisten import serve, ok

    def handler(request, conn_info):
        return ok("Hello world!")

    asyncio.run(serve(handler, port=8000))

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .errors import (
    ConnectionClosedError,
    ListenerClosedError,
    ServerClosed,
    TlsConfigMissing,
)
from .core import ConnInfo, Listener, listen, listen_tls
from .http import HTTPRequest, HTTPResponse, HTTPStatus, ResponseBuilder, ok, internal_error
from .server import ListenInfo, Server, serve, serve_listener, serve_tls

__all__ = [
    "Server",
    "ServerConfig",
    "serve",
    "serve_tls",
    "serve_listener",
    "ListenInfo",
    "ConnInfo",
    "Listener",
    "listen",
    "listen_tls",
    "HTTPRequest",
    "HTTPResponse",
    "HTTPStatus",
    "ResponseBuilder",
    "ok",
    "internal_error",
    "ServerClosed",
    "TlsConfigMissing",
    "ListenerClosedError",
    "ConnectionClosedError",
    "__version__",
]
