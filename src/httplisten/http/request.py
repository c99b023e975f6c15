"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses the head of an HTTP/1.1 request (request line + headers) into an
HTTPRequest. The body is read separately by the framed connection, since
its length is only known once the headers have been parsed.

=============================================================================
HTTP REQUEST ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  REQUEST LINE    POST /items?draft=1 HTTP/1.1\r\n                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │  HEADERS         Host: localhost:8000\r\n                           │
    │                  Content-Length: 13\r\n                             │
    │                  \r\n                  ← end of head                │
    ├─────────────────────────────────────────────────────────────────────┤
    │  BODY            {"name":"a"}          ← Content-Length bytes, or   │
    │                                          chunked transfer coding    │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, unquote, urlparse


class HTTPParseError(Exception):
    """
    Raised when a request cannot be framed or parsed.

    Carries the status code to answer with before the connection is
    dropped:

        400 Bad Request                     - Malformed syntax
        405 Method Not Allowed              - Unknown method
        413 Payload Too Large               - Body over the limit
        431 Request Header Fields Too Large - Head over the limit
        501 Not Implemented                 - Unknown transfer coding
        505 HTTP Version Not Supported      - Not HTTP/1.0 or HTTP/1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Header names are stored lowercase; HTTP header names are
    case-insensitive, so normalizing once at parse time avoids .lower()
    at every lookup.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""

    client_address: tuple = ("", 0)
    target: str = ""                     # Request-target exactly as sent

    _body_json: Optional[Any] = field(default=None, repr=False)

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters, e.g. "application/json"."""
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def content_length(self) -> Optional[int]:
        """
        The declared Content-Length, or None if the header is absent.

        Raises:
            HTTPParseError: If the header is present but not a
                non-negative integer.
        """
        value = self.headers.get("content-length")
        if value is None:
            return None
        # Duplicate headers were comma-joined; they must all agree.
        values = {v.strip() for v in value.split(",")}
        if len(values) != 1:
            raise HTTPParseError(f"Conflicting Content-Length: {value}")
        text = values.pop()
        if not text.isdigit():
            raise HTTPParseError(f"Invalid Content-Length: {value}")
        return int(text)

    @property
    def transfer_encodings(self) -> list[str]:
        """Transfer codings in the order they were applied."""
        value = self.headers.get("transfer-encoding", "")
        return [c.strip().lower() for c in value.split(",") if c.strip()]

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def expects_continue(self) -> bool:
        """True if the client waits for "100 Continue" before the body."""
        return (
            self.version == "HTTP/1.1"
            and self.headers.get("expect", "").lower() == "100-continue"
        )

    @property
    def json(self) -> Any:
        """
        Parse the body as JSON (cached after the first call).

        Raises:
            HTTPParseError: If the body is not valid JSON.
        """
        if self._body_json is None and self.body:
            try:
                self._body_json = json.loads(self.body.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise HTTPParseError(f"Invalid JSON body: {e}")
        return self._body_json

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the client allows the connection to stay open.

        =====================================================================
        KEEP-ALIVE LOGIC
        =====================================================================

        HTTP/1.1 (default: keep-alive):
            Connection: close      → close after response
            (missing)              → keep alive

        HTTP/1.0 (default: close):
            Connection: keep-alive → keep alive
            (missing)              → close after response

        =====================================================================
        """
        tokens = {
            t.strip().lower()
            for t in self.headers.get("connection", "").split(",")
        }
        if self.version == "HTTP/1.1":
            return "close" not in tokens
        return "keep-alive" in tokens

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default


class RequestParser:
    """
    Parses raw request heads into HTTPRequest objects.

    The parser never sees the body: the framed connection reads it after
    looking at Content-Length / Transfer-Encoding.

        head bytes
            │
            ├──► strip leading CRLFs (RFC 7230 §3.5)
            ├──► request line    METHOD SP TARGET SP VERSION
            ├──► header lines    name ":" OWS value OWS
            ▼
        HTTPRequest (body = b"")
    """

    VALID_METHODS = {
        "GET",
        "POST",
        "PUT",
        "DELETE",
        "PATCH",
        "HEAD",
        "OPTIONS",
        "TRACE",
        "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([!#$%&'*+\-.^_`|~0-9A-Za-z]+):[ \t]*(.*?)[ \t]*$")

    def parse_head(
        self,
        data: bytes,
        client_address: tuple = ("", 0),
    ) -> HTTPRequest:
        """
        Parse a request head.

        Args:
            data: Bytes up to and including the blank line.
            client_address: Peer address, kept on the request for logging.

        Returns:
            HTTPRequest with an empty body.

        Raises:
            HTTPParseError: If the head is malformed.
        """
        # Header bytes are ISO-8859-1 on the wire; latin-1 decodes any byte.
        text = data.lstrip(b"\r\n").decode("latin-1")

        lines = text.rstrip("\r\n").split("\r\n")
        if not lines or not lines[0]:
            raise HTTPParseError("Empty request")

        method, target, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            client_address=client_address,
            target=target,
        )

    def _parse_request_line(self, line: str):
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line[:100]}")

        method, target, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        # "*" (OPTIONS) and authority-form (CONNECT) have no path to parse.
        if target == "*" or method == "CONNECT":
            return method, target, target, {}, version

        parsed = urlparse(target)
        path = unquote(parsed.path) or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        # Path traversal: "GET /../../etc/passwd HTTP/1.1"
        if ".." in path.split("/"):
            raise HTTPParseError("Invalid path: contains ..")

        return method, target, path, query_params, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict with lowercase names.

        Repeated headers are joined with ", " (RFC 7230 §3.2.2). Obsolete
        line folding is rejected, as RFC 7230 §3.2.4 requires of servers.
        """
        headers: Dict[str, str] = {}

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                raise HTTPParseError("Obsolete header line folding")

            match = self.HEADER_PATTERN.match(line)
            if not match:
                raise HTTPParseError(f"Invalid header line: {line[:100]}")

            name, value = match.groups()
            name = name.lower()

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_chunk_size(line: bytes) -> int:
    """
    Parse a chunk-size line of the chunked transfer coding.

        1a;name=value\r\n   →  26

    Raises:
        HTTPParseError: If the size is not hexadecimal.
    """
    size = line.split(b";", 1)[0].strip()
    try:
        if not size or size.startswith((b"-", b"+", b"0x", b"0X")):
            raise ValueError(size)
        return int(size, 16)
    except ValueError:
        raise HTTPParseError(f"Invalid chunk size: {size[:20]!r}")


def parse_request_head(data: bytes, client_address: tuple = ("", 0)) -> HTTPRequest:
    """Convenience wrapper around RequestParser().parse_head()."""
    return RequestParser().parse_head(data, client_address)
