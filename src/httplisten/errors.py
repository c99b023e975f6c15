"""
=============================================================================
SERVER ERRORS
=============================================================================

Exceptions raised by the listener server, and the classification of
accept() failures into "transient" (retry after a backoff) and "fatal"
(stop the accept loop and propagate).

=============================================================================
WHO SEES WHICH ERROR?
=============================================================================

    ┌──────────────────────────┬──────────────────────────────────────────┐
    │  Error                   │  Where it ends up                        │
    ├──────────────────────────┼──────────────────────────────────────────┤
    │  ServerClosed            │  Caller of serve() / close() / listen()  │
    │  TlsConfigMissing        │  Caller of serve_tls(), before binding   │
    │  transient accept error  │  Swallowed, accept retried with backoff  │
    │  fatal accept error      │  Propagates out of Server.serve()        │
    │  ListenerClosedError     │  Ends the accept loop quietly            │
    │  handler exception       │  Turned into a fallback response         │
    │  ConnectionClosedError   │  Closes that one connection              │
    └──────────────────────────┴──────────────────────────────────────────┘

=============================================================================
"""

import errno
import ssl


ERROR_SERVER_CLOSED = "Server closed"


class ServerClosed(Exception):
    """Raised when an operation is attempted on a closed server."""

    def __init__(self, message: str = ERROR_SERVER_CLOSED):
        super().__init__(message)


class TlsConfigMissing(ValueError):
    """Raised when TLS is requested without both a certificate and a key."""


class ListenerClosedError(OSError):
    """Raised by Listener.accept() once the listener has been closed."""

    def __init__(self, message: str = "Listener is closed"):
        super().__init__(errno.EBADF, message)


class ConnectionClosedError(ConnectionError):
    """Raised when a response cannot be sent because the connection is gone."""


# ─────────────────────────────────────────────────────────────────────────────
# TRANSIENT ACCEPT ERRORS
# ─────────────────────────────────────────────────────────────────────────────
# accept() can fail for reasons that have nothing to do with the listening
# socket itself: the process ran out of file descriptors, the kernel ran
# out of buffers, or the peer reset the connection before we picked it up.
# Those clear up on their own, so the accept loop sleeps and tries again.
# Anything else means the listener is unusable.

TRANSIENT_ACCEPT_ERRNOS = frozenset(
    code
    for code in (
        getattr(errno, name, None)
        for name in (
            "EMFILE",        # Process fd limit reached
            "ENFILE",        # System-wide fd limit reached
            "ENOBUFS",       # No buffer space
            "ENOMEM",        # Out of kernel memory
            "ECONNABORTED",  # Peer gave up before accept() returned
            "ECONNRESET",
            "EPROTO",
            "EPERM",         # Firewall rules (Linux reports this from accept)
            "ETIMEDOUT",
            "EINTR",
            "EAGAIN",
            "EWOULDBLOCK",
        )
    )
    if code is not None
)


def is_transient_accept_error(exc: BaseException) -> bool:
    """
    Decide whether an accept() failure should be retried.

    Args:
        exc: The exception raised by Listener.accept().

    Returns:
        True if the accept loop should back off and retry, False if the
        error must end the loop.
    """
    if isinstance(exc, ListenerClosedError):
        return False

    # TLS handshake failures and peers vanishing mid-accept.
    if isinstance(exc, (ssl.SSLError, ConnectionResetError,
                        ConnectionAbortedError, EOFError)):
        return True

    if isinstance(exc, OSError):
        return exc.errno in TRANSIENT_ACCEPT_ERRNOS

    return False
