"""
=============================================================================
HTTP LISTENER SERVER
=============================================================================

The orchestrator: owns the listeners, accepts connections, runs one read
loop per connection and dispatches every request to the user's handler.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         Server                                      │
    │                                                                     │
    │   serve(listener)                                                   │
    │     └── accept loop ──► Conn ──► serve_http() ──► HttpConnection    │
    │           │   ▲                                        │            │
    │           │   └── backoff on transient errors          │ task       │
    │           ▼                                            ▼            │
    │     (other listeners,                       per-connection loop     │
    │      each its own loop)                       next_request() ──┐    │
    │                                                    ▲           │    │
    │                                                    │      task │    │
    │                                                    │           ▼    │
    │                                                    │       dispatch │
    │                                                    │   handler(req) │
    │                                                    │   respond_with │
    └─────────────────────────────────────────────────────────────────────┘

Nothing on the accept path waits for a handler, and nothing on the
connection path waits for a dispatch: every arrow marked "task" is an
asyncio task the server spawns and keeps a reference to.

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    1. CLIENT CONNECTS
       └── Listener.accept() returns a Conn
    2. PROMOTE
       └── serve_http(conn) frames it as HTTP/1.1 exchanges
    3. READ
       └── next_request() parses head and body
    4. DISPATCH (own task)
       └── handler(request, conn_info) → HTTPResponse
           handler raises → on_error(exc) → fallback HTTPResponse
    5. RESPOND
       └── event.respond_with(response), in request order
    6. KEEP-ALIVE OR CLOSE
       └── back to 3, or next_request() returns None

=============================================================================
QUESTIONS ABOUT THIS SERVER
=============================================================================

Q: "How does close() stop an accept loop that is blocked in accept()?"
A: "close() closes the listener, which cancels the pending accept. The
   loop sees ListenerClosedError and returns normally."

Q: "What happens to a request that is still in its handler at close()?"
A: "The handler runs to completion; its respond_with() then finds the
   connection closed and the response is dropped without an error."

Q: "Why can close() be called from a signal handler?"
A: "It never awaits. It only flips the flag and closes sockets."

=============================================================================
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional, Union

from .config import ServerConfig
from .core.backoff import AcceptBackoff
from .core.connection import ConnInfo, HttpConnection, RequestEvent, serve_http
from .core.listener import Listener, listen, listen_tls
from .errors import (
    ListenerClosedError,
    ConnectionClosedError,
    ServerClosed,
    TlsConfigMissing,
    is_transient_accept_error,
)
from .http.request import HTTPRequest
from .http.response import HTTPResponse, internal_error


logger = logging.getLogger(__name__)
access_logger = logging.getLogger("httplisten.access")


ResponseLike = Union[HTTPResponse, Awaitable[HTTPResponse]]
Handler = Callable[[HTTPRequest, ConnInfo], ResponseLike]
ErrorHandler = Callable[[BaseException], ResponseLike]


@dataclass(frozen=True)
class ListenInfo:
    """Where a server ended up listening; passed to on_listen callbacks."""

    hostname: str
    port: int


class Server:
    """
    HTTP/1.1 server over one or more listeners.

    Usage:
        def handler(request, conn_info):
            return ok("Hello world!")

        server = Server(handler)
        await server.listen_and_serve()     # until server.close()

    Args:
        handler: Called as handler(request, conn_info); may be a plain
            function or a coroutine function. Must return an HTTPResponse.
        config: Bind address, limits and logging options.
        on_error: Called as on_error(exc) when the handler fails; its
            return value is sent instead. Defaults to logging the error
            and answering 500 Internal Server Error.
    """

    def __init__(
        self,
        handler: Handler,
        *,
        config: Optional[ServerConfig] = None,
        on_error: Optional[ErrorHandler] = None,
    ):
        self.config = config or ServerConfig()
        self.config.validate()

        self._handler = handler
        self._on_error = on_error or _default_on_error

        self._closed = False
        self._listeners: set = set()
        self._http_connections: set = set()

        # Strong references to spawned tasks until they finish.
        self._tasks: set = set()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def addrs(self) -> list:
        """Bound (host, port) of every listener currently being served."""
        return [listener.addr for listener in self._listeners]

    # =========================================================================
    # SERVING
    # =========================================================================

    async def serve(self, listener: Listener) -> None:
        """
        Accept connections on the listener until it or the server closes.

        The listener is closed when this returns or raises.

        Raises:
            ServerClosed: The server was closed before the call.
            OSError: accept() failed with a non-transient error.
        """
        if self._closed:
            raise ServerClosed()

        self._track_listener(listener)
        try:
            await self._accept(listener)
        finally:
            self._untrack_listener(listener)
            listener.close()

    def listen(self, hostname: Optional[str] = None, port: Optional[int] = None) -> Listener:
        """
        Bind a plain TCP listener (configured address unless overridden).

        Raises:
            ServerClosed: Nothing is bound on a closed server.
        """
        if self._closed:
            raise ServerClosed()

        return listen(
            hostname or self.config.hostname,
            port if port is not None else self.config.resolve_port(),
            backlog=self.config.backlog,
        )

    def listen_tls(
        self,
        cert_file: Optional[str] = None,
        key_file: Optional[str] = None,
        hostname: Optional[str] = None,
        port: Optional[int] = None,
    ) -> Listener:
        """
        Bind a TLS listener.

        Raises:
            ServerClosed: Nothing is bound on a closed server.
            TlsConfigMissing: No key file or no certificate file.
        """
        if self._closed:
            raise ServerClosed()

        cert_file = cert_file or self.config.cert_file
        key_file = key_file or self.config.key_file
        _check_tls_files(cert_file, key_file)

        return listen_tls(
            hostname or self.config.hostname,
            port if port is not None else self.config.resolve_port(tls=True),
            cert_file=cert_file,
            key_file=key_file,
            backlog=self.config.backlog,
        )

    async def listen_and_serve(self) -> None:
        """Bind the configured address and serve it."""
        await self.serve(self.listen())

    async def listen_and_serve_tls(
        self,
        cert_file: Optional[str] = None,
        key_file: Optional[str] = None,
    ) -> None:
        """Bind the configured address with TLS and serve it."""
        await self.serve(self.listen_tls(cert_file, key_file))

    def close(self) -> None:
        """
        Close every listener and connection. Never awaits.

        Raises:
            ServerClosed: close() was already called.
        """
        if self._closed:
            raise ServerClosed()
        self._closed = True

        for listener in list(self._listeners):
            listener.close()
            self._untrack_listener(listener)

        for http_conn in list(self._http_connections):
            self._close_http_conn(http_conn)

        logger.info("Server closed")

    # =========================================================================
    # ACCEPT LOOP
    # =========================================================================

    async def _accept(self, listener: Listener) -> None:
        """
        Accept until closed.

        ┌─────────────────────────────────────────────────────────────────┐
        │   while not closed:                                             │
        │       accept()                                                  │
        │         ├── ListenerClosedError  → return                       │
        │         ├── transient error      → sleep 5, 10, ... 1000 ms     │
        │         ├── other error          → raise                        │
        │         └── conn                 → reset backoff,               │
        │                                    promote, track, spawn loop   │
        └─────────────────────────────────────────────────────────────────┘
        """
        backoff = AcceptBackoff()

        while not self._closed:
            try:
                conn = await listener.accept()
            except ListenerClosedError:
                break
            except Exception as exc:
                if self._closed:
                    break
                if not is_transient_accept_error(exc):
                    logger.error(f"Accept failed on {listener!r}: {exc}")
                    raise

                delay = backoff.next_delay()
                logger.warning(f"Accept failed: {exc}; retrying in {delay} ms")
                await asyncio.sleep(delay / 1000)
                continue

            backoff.reset()

            if self._closed:
                conn.close()
                break

            try:
                http_conn = serve_http(conn, self.config)
            except OSError as e:
                logger.debug(f"Could not promote connection from {conn.remote_addr}: {e}")
                conn.close()
                continue

            self._track_connection(http_conn)
            self._spawn(self._serve_http(http_conn))

    # =========================================================================
    # PER-CONNECTION LOOP
    # =========================================================================

    async def _serve_http(self, http_conn: HttpConnection) -> None:
        conn_info = http_conn.conn_info()
        try:
            while not self._closed:
                try:
                    event = await http_conn.next_request()
                except (ConnectionError, EOFError, OSError) as e:
                    # Resets, TLS handshake failures, writes on a dead socket.
                    logger.debug(f"[{http_conn.id}] Connection error: {e}")
                    break
                except Exception as e:
                    logger.exception(f"[{http_conn.id}] Unexpected connection error: {e}")
                    break

                if event is None:
                    break

                self._spawn(self._respond(http_conn, event, conn_info))
        finally:
            self._close_http_conn(http_conn)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    async def _respond(
        self,
        http_conn: HttpConnection,
        event: RequestEvent,
        conn_info: ConnInfo,
    ) -> None:
        request = event.request

        try:
            response = await _call(self._handler, request, conn_info)
            if not isinstance(response, HTTPResponse):
                raise TypeError(
                    f"Handler returned {type(response).__name__}, expected HTTPResponse"
                )
        except Exception as exc:
            response = await self._handle_error(exc)

        try:
            await event.respond_with(response)
        except ConnectionClosedError as e:
            logger.debug(f"[{http_conn.id}] Response dropped: {e}")
            self._close_http_conn(http_conn)
            return
        except Exception as e:
            logger.exception(f"[{http_conn.id}] Failed to send response: {e}")
            self._close_http_conn(http_conn)
            return

        if self.config.access_log:
            _log_access(request, response)

    async def _handle_error(self, exc: Exception) -> HTTPResponse:
        """Turn a handler failure into the fallback response."""
        try:
            response = await _call(self._on_error, exc)
            if isinstance(response, HTTPResponse):
                return response
            logger.error(
                f"Error handler returned {type(response).__name__}, expected HTTPResponse"
            )
        except Exception as e:
            logger.exception(f"Error handler failed: {e}")
        return internal_error()

    # =========================================================================
    # BOOKKEEPING
    # =========================================================================

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _track_listener(self, listener: Listener) -> None:
        self._listeners.add(listener)

    def _untrack_listener(self, listener: Listener) -> None:
        self._listeners.discard(listener)

    def _track_connection(self, http_conn: HttpConnection) -> None:
        self._http_connections.add(http_conn)

    def _close_http_conn(self, http_conn: HttpConnection) -> None:
        http_conn.close()
        self._http_connections.discard(http_conn)


# =============================================================================
# HELPERS
# =============================================================================

async def _call(func: Callable[..., Any], *args: Any) -> Any:
    """Call a sync or async callable and return its result."""
    result = func(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def _default_on_error(exc: BaseException) -> HTTPResponse:
    logger.error("Request handler failed", exc_info=exc)
    return internal_error()


def _log_access(request: HTTPRequest, response: HTTPResponse) -> None:
    """Apache-style line: 127.0.0.1 "GET / HTTP/1.1" 200 2"""
    client = request.client_address[0] if request.client_address else "-"
    target = request.target or request.path
    access_logger.info(
        f'{client} "{request.method} {target} {request.version}" '
        f"{int(response.status)} {len(response.body)}"
    )


def _check_tls_files(cert_file: Optional[str], key_file: Optional[str]) -> None:
    if not key_file:
        raise TlsConfigMissing("TLS config is given, but 'key_file' is missing.")
    if not cert_file:
        raise TlsConfigMissing("TLS config is given, but 'cert_file' is missing.")


def display_hostname(hostname: str) -> str:
    """
    Hostname for "Listening on ..." messages.

        0.0.0.0  →  localhost
        ::1      →  [::1]
    """
    if hostname == "0.0.0.0":
        return "localhost"
    if ":" in hostname:
        return f"[{hostname}]"
    return hostname


# =============================================================================
# ENTRY POINTS
# =============================================================================

_DEFAULT_ON_LISTEN = object()


def _announce(on_listen: Any, config: ServerConfig, listener: Listener, scheme: str) -> None:
    info = ListenInfo(hostname=listener.addr[0], port=listener.addr[1])
    if on_listen is _DEFAULT_ON_LISTEN:
        if not config.quiet:
            print(f"Listening on {scheme}://{display_hostname(info.hostname)}:{info.port}/")
    elif on_listen is not None:
        on_listen(info)


async def _serve_until_closed(
    server: Server,
    listener: Listener,
    signal: Optional[asyncio.Event],
) -> None:
    """Serve the listener; setting the signal closes the server."""
    watcher = None
    if signal is not None:
        watcher = asyncio.ensure_future(_close_on_signal(server, signal))
    try:
        await server.serve(listener)
    finally:
        if watcher is not None:
            watcher.cancel()


async def _close_on_signal(server: Server, signal: asyncio.Event) -> None:
    await signal.wait()
    if not server.closed:
        logger.info("Abort signal received")
        server.close()


async def serve_listener(
    listener: Listener,
    handler: Handler,
    *,
    on_error: Optional[ErrorHandler] = None,
    signal: Optional[asyncio.Event] = None,
    config: Optional[ServerConfig] = None,
) -> None:
    """Serve an already-bound listener until it closes or signal is set."""
    server = Server(handler, config=config, on_error=on_error)
    await _serve_until_closed(server, listener, signal)


async def serve(
    handler: Handler,
    *,
    hostname: Optional[str] = None,
    port: Optional[int] = None,
    on_error: Optional[ErrorHandler] = None,
    signal: Optional[asyncio.Event] = None,
    on_listen: Any = _DEFAULT_ON_LISTEN,
    config: Optional[ServerConfig] = None,
) -> None:
    """
    Serve HTTP on hostname:port (default 0.0.0.0:8000).

    After binding, on_listen(ListenInfo) is called; by default this prints
    "Listening on http://localhost:8000/". Pass on_listen=None to stay
    silent. Returns once the server is closed through signal.

        stop = asyncio.Event()
        await serve(handler, port=3000, signal=stop)
    """
    config = _with_address(config, hostname, port)
    server = Server(handler, config=config, on_error=on_error)
    listener = server.listen()
    _announce(on_listen, config, listener, "http")
    await _serve_until_closed(server, listener, signal)


async def serve_tls(
    handler: Handler,
    *,
    cert_file: Optional[str] = None,
    key_file: Optional[str] = None,
    hostname: Optional[str] = None,
    port: Optional[int] = None,
    on_error: Optional[ErrorHandler] = None,
    signal: Optional[asyncio.Event] = None,
    on_listen: Any = _DEFAULT_ON_LISTEN,
    config: Optional[ServerConfig] = None,
) -> None:
    """
    Serve HTTPS on hostname:port (default 0.0.0.0:8443).

    Raises:
        TlsConfigMissing: key_file or cert_file missing. Checked before
            any socket is opened.
    """
    config = _with_address(config, hostname, port)
    cert_file = cert_file or config.cert_file
    key_file = key_file or config.key_file
    _check_tls_files(cert_file, key_file)

    server = Server(handler, config=config, on_error=on_error)
    listener = server.listen_tls(cert_file, key_file)
    _announce(on_listen, config, listener, "https")
    await _serve_until_closed(server, listener, signal)


def _with_address(
    config: Optional[ServerConfig],
    hostname: Optional[str],
    port: Optional[int],
) -> ServerConfig:
    config = config or ServerConfig()
    if hostname is not None:
        config = replace(config, hostname=hostname)
    if port is not None:
        config = replace(config, port=port)
    return config
