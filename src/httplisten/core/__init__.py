"""
Networking core: listeners, HTTP-framed connections and accept backoff.

    listener.py     Listener, Conn, listen(), listen_tls()
    connection.py   HttpConnection, RequestEvent, serve_http()
    backoff.py      AcceptBackoff (5 ms doubling to 1000 ms)
"""

from .backoff import AcceptBackoff, INITIAL_ACCEPT_BACKOFF_DELAY, MAX_ACCEPT_BACKOFF_DELAY
from .connection import ConnInfo, ConnectionState, HttpConnection, RequestEvent, serve_http
from .listener import Conn, Listener, listen, listen_tls, make_ssl_context

__all__ = [
    "AcceptBackoff",      # Exponential backoff for failed accept()
    "INITIAL_ACCEPT_BACKOFF_DELAY",
    "MAX_ACCEPT_BACKOFF_DELAY",
    "Conn",               # Accepted socket, not yet HTTP
    "Listener",           # Listening socket with async accept()
    "listen",
    "listen_tls",
    "make_ssl_context",
    "ConnInfo",           # Addresses handed to request handlers
    "ConnectionState",    # NEW → OPEN → FINISHED → CLOSED
    "HttpConnection",     # Conn framed as request/response exchanges
    "RequestEvent",       # One exchange: request + respond_with()
    "serve_http",
]
