"""
=============================================================================
LISTENERS
=============================================================================

A Listener is a bound, listening TCP socket driven by the asyncio event
loop. Listener.accept() suspends the calling task until a client
connects, without blocking any other task.

=============================================================================
SOCKET LIFECYCLE (Server Side)
=============================================================================

    1. socket()    Create the socket
    2. setsockopt  SO_REUSEADDR so restarts don't hit "Address in use"
    3. bind()      Reserve HOST:PORT
    4. listen()    Kernel starts queueing connections (backlog)
    5. accept()    Hand out one queued connection as a NEW socket
    6. close()     Release the port

                    ┌───────────────────────┐
                    │   Listener            │ ◄── listen() / listen_tls()
                    │   (listening socket)  │
                    └───────────┬───────────┘
                                │ accept()
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    ┌───────────┐         ┌───────────┐         ┌───────────┐
    │  Conn 1   │         │  Conn 2   │         │  Conn 3   │
    └───────────┘         └───────────┘         └───────────┘

TLS listeners carry an ssl.SSLContext; the handshake runs later, when the
connection is promoted to an HttpConnection, so a slow or broken client
never holds up the accept loop.

=============================================================================
CLOSING A LISTENER WHILE SOMEONE WAITS IN accept()
=============================================================================

close() cancels the pending accept future before closing the socket, so
the waiting task wakes up with ListenerClosedError instead of hanging on
a file descriptor that no longer exists.

=============================================================================
"""

import asyncio
import logging
import socket
import ssl
from dataclasses import dataclass
from typing import Optional

from ..errors import ListenerClosedError


logger = logging.getLogger(__name__)


@dataclass
class Conn:
    """
    An accepted transport connection, not yet speaking HTTP.

    Attributes:
        socket: The client socket (non-blocking).
        local_addr: Our end of the connection.
        remote_addr: The client's (ip, port).
        ssl_context: Server-side TLS context, or None for plain TCP.
    """

    socket: socket.socket
    local_addr: tuple
    remote_addr: tuple
    ssl_context: Optional[ssl.SSLContext] = None

    def close(self) -> None:
        try:
            self.socket.close()
        except OSError:
            pass  # Already closed


class Listener:
    """
    A listening socket that accepts connections cooperatively.

    Usage:
        listener = listen("127.0.0.1", 0)
        conn = await listener.accept()
        ...
        listener.close()
    """

    def __init__(self, sock: socket.socket, ssl_context: Optional[ssl.SSLContext] = None):
        sock.setblocking(False)
        self._socket = sock
        self._ssl_context = ssl_context
        self._closed = False
        self._waiter: Optional[asyncio.Future] = None
        self.addr = sock.getsockname()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def transport(self) -> str:
        return "tls" if self._ssl_context is not None else "tcp"

    async def accept(self) -> Conn:
        """
        Wait for the next connection.

        Raises:
            ListenerClosedError: The listener is, or became, closed.
            OSError: accept() itself failed (see errors.is_transient_accept_error).
        """
        if self._closed:
            raise ListenerClosedError()

        loop = asyncio.get_running_loop()
        self._waiter = asyncio.ensure_future(loop.sock_accept(self._socket))
        try:
            client_socket, remote_addr = await self._waiter
        except asyncio.CancelledError:
            # Cancelled by close() rather than by our own caller.
            if self._closed:
                raise ListenerClosedError() from None
            raise
        finally:
            self._waiter = None

        client_socket.setblocking(False)
        try:
            # HTTP wants responses on the wire immediately, not batched
            # by Nagle's algorithm.
            client_socket.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            local_addr = client_socket.getsockname()
        except OSError:
            client_socket.close()
            raise

        logger.debug(f"Accepted connection from {remote_addr[0]}:{remote_addr[1]}")

        return Conn(
            socket=client_socket,
            local_addr=local_addr,
            remote_addr=remote_addr,
            ssl_context=self._ssl_context,
        )

    def close(self) -> None:
        """Stop listening. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        if self._waiter is not None and not self._waiter.done():
            self._waiter.cancel()

        try:
            self._socket.close()
        except OSError:
            pass  # Already closed

        logger.debug(f"Listener on {self.addr[0]}:{self.addr[1]} closed")

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<Listener {self.transport} {self.addr[0]}:{self.addr[1]} {state}>"


# =============================================================================
# FACTORIES
# =============================================================================

def _create_socket(hostname: str, port: int, backlog: int, reuse_port: bool) -> socket.socket:
    """Create, configure, bind and listen a TCP socket."""
    family = socket.AF_INET6 if ":" in hostname else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        # Avoid "Address already in use" while old connections sit in
        # TIME_WAIT after a restart.
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        if reuse_port and hasattr(socket, "SO_REUSEPORT"):
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)

        sock.bind((hostname, port))
        sock.listen(backlog)
    except OSError as e:
        sock.close()
        logger.error(f"Failed to bind to {hostname}:{port}: {e}")
        raise
    return sock


def listen(
    hostname: str,
    port: int,
    *,
    backlog: int = 128,
    reuse_port: bool = False,
) -> Listener:
    """
    Bind a plain TCP listener.

    Args:
        hostname: Address to bind ("0.0.0.0", "127.0.0.1", "::" ...).
        port: Port to bind; 0 lets the OS pick one (see Listener.addr).
        backlog: Kernel accept queue length.
        reuse_port: Set SO_REUSEPORT where the platform has it.
    """
    return Listener(_create_socket(hostname, port, backlog, reuse_port))


def make_ssl_context(cert_file: str, key_file: str) -> ssl.SSLContext:
    """Server-side TLS context for the given certificate chain and key."""
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    context.load_cert_chain(cert_file, key_file)
    if ssl.HAS_ALPN:
        context.set_alpn_protocols(["http/1.1"])
    return context


def listen_tls(
    hostname: str,
    port: int,
    *,
    cert_file: str,
    key_file: str,
    backlog: int = 128,
    reuse_port: bool = False,
) -> Listener:
    """
    Bind a TLS listener.

    The certificate and key are loaded before the socket is created, so
    a bad path fails without ever opening the port.
    """
    context = make_ssl_context(cert_file, key_file)
    return Listener(_create_socket(hostname, port, backlog, reuse_port), ssl_context=context)
