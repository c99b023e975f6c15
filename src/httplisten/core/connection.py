"""
=============================================================================
FRAMED HTTP CONNECTIONS
=============================================================================

An accepted Conn is just a byte stream. HttpConnection frames it into a
sequence of request/response exchanges:

    conn = await listener.accept()
    http_conn = serve_http(conn, config)        # "promote" the connection

    while (event := await http_conn.next_request()) is not None:
        ...                                      # event.request
        await event.respond_with(response)

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL
=============================================================================

A read can return half a request line, or two requests at once. The
asyncio StreamReader buffers for us:

    1. readuntil(b"\\r\\n\\r\\n")     → the request head
    2. Content-Length: N          → readexactly(N)
       Transfer-Encoding: chunked → size line, data, CRLF ... until 0
    3. leftover bytes stay buffered for the next request (pipelining)

=============================================================================
PIPELINING: CONCURRENT HANDLERS, ORDERED RESPONSES
=============================================================================

next_request() does not wait for the previous request's response. A
client that pipelines three requests gets three RequestEvents straight
away, and the server runs three handlers concurrently. HTTP/1.1 still
requires the responses in request order, so every RequestEvent waits for
its predecessor's response before writing its own:

    ┌───────────────────────────────────────────────────────────────────┐
    │  time ──►                                                         │
    │                                                                   │
    │  req 1  ├── handler (slow) ──────────────┤ write 1                │
    │  req 2     ├── handler (fast) ──┤ . . . . . . . . . write 2       │
    │  req 3        ├── handler ──┤ . . . . . . . . . . . . . write 3   │
    │                                          ▲                        │
    │                              write 2 waits for write 1            │
    └───────────────────────────────────────────────────────────────────┘

When the stream ends (client EOF, "Connection: close", parse error),
next_request() waits for the outstanding responses before returning None,
so the caller can close the connection without cutting them off.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► OPEN ──► (exchanges ...) ──► FINISHED ──► CLOSED
     │        │                              │           ▲
     └────────┴──────────────────────────────┴───────────┘
                        close() from anywhere

=============================================================================
"""

import asyncio
import errno
import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..config import ServerConfig
from ..errors import ConnectionClosedError
from ..http.request import HTTPParseError, HTTPRequest, RequestParser, parse_chunk_size
from ..http.response import HTTPResponse, error_response, internal_error
from ..http.status_codes import HTTPStatus
from .listener import Conn


logger = logging.getLogger(__name__)


HEADER_TERMINATOR = b"\r\n\r\n"
CONTINUE_RESPONSE = b"HTTP/1.1 100 Continue\r\n\r\n"
MAX_CHUNK_LINE = 4096


class ConnectionState(Enum):
    NEW = "new"              # Accepted, streams not opened yet
    OPEN = "open"            # Streams open, exchanging requests
    FINISHED = "finished"    # No more requests will be read
    CLOSED = "closed"        # Transport closed


@dataclass(frozen=True)
class ConnInfo:
    """Connection metadata handed to request handlers."""

    local_addr: tuple
    remote_addr: tuple


class RequestEvent:
    """
    One request/response exchange on an HttpConnection.

    Attributes:
        request: The parsed request, body included.
        keep_alive: Whether the connection may stay open after the
            response (client's wish and server config combined).
    """

    def __init__(
        self,
        request: HTTPRequest,
        connection: "HttpConnection",
        previous: Optional[asyncio.Future],
        keep_alive: bool,
    ):
        self.request = request
        self.keep_alive = keep_alive
        self._connection = connection
        self._previous = previous
        self._sent = asyncio.get_running_loop().create_future()
        self._responded = False

    @property
    def responded(self) -> bool:
        return self._responded

    async def respond_with(self, response: HTTPResponse) -> None:
        """
        Send the response for this request.

        Waits until every earlier exchange on the connection has written
        its response.

        Raises:
            RuntimeError: A response was already sent for this request.
            ConnectionClosedError: The connection is gone.
        """
        if self._responded:
            raise RuntimeError("Response already sent for this request")
        self._responded = True

        try:
            if self._previous is not None:
                await asyncio.shield(self._previous)
            await self._connection._write_response(self, response)
        finally:
            self._release()

    def _release(self) -> None:
        """Let the next exchange write; also used by close()."""
        if not self._sent.done():
            self._sent.set_result(None)
        self._connection._pending.discard(self)


class HttpConnection:
    """
    An accepted connection framed as HTTP/1.1 request/response exchanges.

    Created by serve_http(). Opening the asyncio streams (and, for TLS
    listeners, the handshake) happens on the first next_request() call.
    """

    def __init__(self, conn: Conn, config: Optional[ServerConfig] = None):
        self.conn = conn
        self.config = config or ServerConfig()
        self.id = str(uuid.uuid4())[:8]
        self.state = ConnectionState.NEW
        self.created_at = time.time()
        self.requests_handled = 0

        self._parser = RequestParser()
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._opener: Optional[asyncio.Future] = None

        # Future resolved once the most recent exchange has responded.
        self._tail: Optional[asyncio.Future] = None
        self._pending: set = set()

    @property
    def local_addr(self) -> tuple:
        return self.conn.local_addr

    @property
    def remote_addr(self) -> tuple:
        return self.conn.remote_addr

    @property
    def closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    def conn_info(self) -> ConnInfo:
        return ConnInfo(local_addr=self.local_addr, remote_addr=self.remote_addr)

    # =========================================================================
    # OPENING
    # =========================================================================

    async def _open(self) -> None:
        """Wrap the socket in asyncio streams (TLS handshake included)."""
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=self.config.max_header_size)

        self._opener = asyncio.ensure_future(loop.connect_accepted_socket(
            lambda: asyncio.StreamReaderProtocol(reader),
            sock=self.conn.socket,
            ssl=self.conn.ssl_context,
        ))
        try:
            transport, protocol = await self._opener
        except BaseException:
            # A cancelled opener may never have reached the socket.
            self.conn.close()
            if self.closed:
                raise ConnectionClosedError("Connection closed during setup") from None
            raise
        finally:
            self._opener = None

        if self.closed:
            transport.close()
            raise ConnectionClosedError("Connection closed during setup")

        self._reader = reader
        self._writer = asyncio.StreamWriter(transport, protocol, reader, loop)
        self.state = ConnectionState.OPEN

    # =========================================================================
    # READING
    # =========================================================================

    async def next_request(self) -> Optional[RequestEvent]:
        """
        Read the next request.

        Returns:
            A RequestEvent, or None when no more requests will come on
            this connection. Before returning None, waits for the
            responses to the requests already handed out.

        Raises:
            ConnectionError / OSError / ssl.SSLError: The transport failed.
        """
        if self.closed:
            return None

        if self.state is ConnectionState.FINISHED:
            await self._wait_pending()
            return None

        if self.state is ConnectionState.NEW:
            await self._open()

        try:
            head = await self._read_head()
            if head is None:
                self._finish()
                await self._wait_pending()
                return None

            request = self._parser.parse_head(head, self.remote_addr)
            request.body = await self._read_body(request)

        except HTTPParseError as exc:
            logger.debug(f"[{self.id}] Rejecting request: {exc}")
            await self._reject(exc)
            return None

        except asyncio.IncompleteReadError:
            # Client went away halfway through a request.
            logger.debug(f"[{self.id}] Connection closed mid-request")
            self._finish()
            await self._wait_pending()
            return None

        if self.closed:
            return None

        self.requests_handled += 1
        keep_alive = self.config.keep_alive and request.is_keep_alive
        if not keep_alive:
            self._finish()

        event = RequestEvent(request, self, self._tail, keep_alive)
        self._tail = event._sent
        self._pending.add(event)
        return event

    async def _read_head(self) -> Optional[bytes]:
        """The next request head, or None on clean EOF / idle timeout."""
        timeout = self.config.keep_alive_timeout
        try:
            if timeout is not None and self.requests_handled > 0:
                return await asyncio.wait_for(
                    self._reader.readuntil(HEADER_TERMINATOR), timeout
                )
            return await self._reader.readuntil(HEADER_TERMINATOR)

        except asyncio.IncompleteReadError as exc:
            if exc.partial.strip():
                logger.debug(f"[{self.id}] Truncated request head ({len(exc.partial)} bytes)")
            return None

        except asyncio.LimitOverrunError:
            raise HTTPParseError(
                "Request header too large",
                status_code=HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE,
            )

        except asyncio.TimeoutError:
            logger.debug(f"[{self.id}] Keep-alive timeout")
            return None

    async def _read_body(self, request: HTTPRequest) -> bytes:
        """
        Read the body framed by Content-Length or chunked coding.

        Both at once is a classic request smuggling vector, so it is
        rejected outright.
        """
        codings = request.transfer_encodings
        content_length = request.content_length

        if codings and content_length is not None:
            raise HTTPParseError("Both Transfer-Encoding and Content-Length present")

        if codings:
            if codings[-1] != "chunked" or any(c != "chunked" for c in codings[:-1]):
                raise HTTPParseError(
                    f"Unsupported transfer coding: {', '.join(codings)}",
                    status_code=HTTPStatus.NOT_IMPLEMENTED,
                )
            await self._send_continue(request)
            return await self._read_chunked_body()

        if not content_length:
            return b""

        if content_length > self.config.max_request_size:
            raise HTTPParseError(
                f"Request body too large: {content_length} bytes",
                status_code=HTTPStatus.PAYLOAD_TOO_LARGE,
            )

        await self._send_continue(request)
        return await self._reader.readexactly(content_length)

    async def _read_chunked_body(self) -> bytes:
        """
        Decode a chunked body:

            4\\r\\n
            Wiki\\r\\n
            0\\r\\n
            \\r\\n
        """
        chunks = []
        total = 0

        while True:
            line = await self._read_line()
            size = parse_chunk_size(line)
            if size == 0:
                break

            total += size
            if total > self.config.max_request_size:
                raise HTTPParseError(
                    f"Request body too large: over {self.config.max_request_size} bytes",
                    status_code=HTTPStatus.PAYLOAD_TOO_LARGE,
                )

            chunks.append(await self._reader.readexactly(size))
            if await self._reader.readexactly(2) != b"\r\n":
                raise HTTPParseError("Missing CRLF after chunk data")

        # Trailer section: ignored, read up to the blank line.
        while await self._read_line():
            pass

        return b"".join(chunks)

    async def _read_line(self) -> bytes:
        try:
            line = await self._reader.readuntil(b"\r\n")
        except asyncio.LimitOverrunError:
            raise HTTPParseError("Chunk line too long")
        if len(line) > MAX_CHUNK_LINE:
            raise HTTPParseError("Chunk line too long")
        return line[:-2]

    async def _send_continue(self, request: HTTPRequest) -> None:
        """Answer "Expect: 100-continue" once earlier responses are out."""
        if not request.expects_continue:
            return
        await self._wait_pending()
        if self.closed:
            raise ConnectionClosedError("Connection is closed")
        self._writer.write(CONTINUE_RESPONSE)
        await self._writer.drain()

    async def _wait_pending(self) -> None:
        if self._tail is not None:
            await asyncio.shield(self._tail)

    async def _reject(self, exc: HTTPParseError) -> None:
        """Answer a request we could not parse, then stop reading."""
        self._finish()
        await self._wait_pending()
        if self.closed:
            return

        response = error_response(exc.status_code, str(exc))
        try:
            self._writer.write(response.to_bytes(self.config.server_name, keep_alive=False))
            await self._writer.drain()
        except (ConnectionError, OSError) as e:
            logger.debug(f"[{self.id}] Could not send error response: {e}")

    # =========================================================================
    # WRITING
    # =========================================================================

    async def _write_response(self, event: RequestEvent, response: HTTPResponse) -> None:
        if self.closed or self._writer is None:
            raise ConnectionClosedError("Connection is closed")

        keep_alive = event.keep_alive
        if "close" in (response.get_header("Connection") or "").lower():
            keep_alive = False
            self._finish()

        include_body = event.request.method != "HEAD"
        try:
            data = response.to_bytes(
                self.config.server_name,
                keep_alive=keep_alive,
                include_body=include_body,
            )
        except Exception as e:
            # e.g. a str body, or a header value outside latin-1
            logger.error(f"[{self.id}] Could not serialize response: {e!r}")
            data = internal_error().to_bytes(
                self.config.server_name,
                keep_alive=keep_alive,
                include_body=include_body,
            )

        try:
            self._writer.write(data)
            await self._writer.drain()
        except (ConnectionError, OSError) as e:
            raise ConnectionClosedError(f"Send failed: {e}") from e

        if not keep_alive:
            self.close()

    def _finish(self) -> None:
        """Stop reading new requests; responses still in flight are written."""
        if not self.closed:
            self.state = ConnectionState.FINISHED

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self) -> None:
        """
        Close the connection. Safe to call more than once.

        Pending read/write calls see end-of-stream or ConnectionClosedError
        on their next I/O, and exchanges waiting for their turn to write
        are released so they can fail fast.
        """
        if self.closed:
            return
        self.state = ConnectionState.CLOSED

        if self._opener is not None and not self._opener.done():
            self._opener.cancel()
        elif self._writer is not None:
            self._writer.close()
        else:
            self.conn.close()

        for event in list(self._pending):
            event._release()
        self._pending.clear()

        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __repr__(self) -> str:
        peer = f"{self.remote_addr[0]}:{self.remote_addr[1]}" if self.remote_addr else "?"
        return f"<HttpConnection {self.id} {peer} {self.state.value}>"


def serve_http(conn: Conn, config: Optional[ServerConfig] = None) -> HttpConnection:
    """
    Promote an accepted connection to an HTTP-framed connection.

    Raises:
        OSError: The socket is already closed.
    """
    if conn.socket.fileno() == -1:
        raise OSError(errno.EBADF, "Socket is closed")
    return HttpConnection(conn, config)
