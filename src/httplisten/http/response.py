"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

The response type handlers return, and its serialization to HTTP/1.1
bytes.

    HTTP/1.1 200 OK\r\n                 ← status line
    Content-Type: text/plain\r\n
    Content-Length: 2\r\n               ← added automatically
    Date: Mon, 19 Oct 2026 ...\r\n      ← added automatically
    Server: httplisten/1.0\r\n          ← added automatically
    Connection: close\r\n               ← added when the connection ends
    \r\n
    ok

=============================================================================
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from .status_codes import HTTPStatus, reason_phrase


# Responses to these statuses never carry a body (RFC 7230 §3.3.3).
_BODYLESS_STATUSES = {HTTPStatus.NO_CONTENT, HTTPStatus.NOT_MODIFIED}


@dataclass
class HTTPResponse:
    """
    A response produced by a request handler.

        return HTTPResponse(status=HTTPStatus.OK, body=b"ok")

    Use ResponseBuilder or the helpers at the bottom of this module for
    the common cases.
    """

    status: int = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. "HTTP/1.1 404 Not Found"."""
        return f"{self.version} {int(self.status)} {reason_phrase(self.status)}"

    @property
    def has_body(self) -> bool:
        return not (100 <= self.status < 200 or self.status in _BODYLESS_STATUSES)

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    def to_bytes(
        self,
        server_name: str = "httplisten/1.0",
        keep_alive: bool = True,
        include_body: bool = True,
    ) -> bytes:
        """
        Serialize the response for the wire.

        Args:
            server_name: Value for the Server header if the handler
                didn't set one.
            keep_alive: False adds "Connection: close".
            include_body: False for responses to HEAD requests. The
                Content-Length still describes the body a GET would get.
        """
        response_headers = dict(self.headers)
        present = {name.lower() for name in response_headers}

        if self.has_body:
            if "content-length" not in present and "transfer-encoding" not in present:
                response_headers["Content-Length"] = str(len(self.body))
        else:
            for name in list(response_headers):
                if name.lower() in ("content-length", "transfer-encoding"):
                    del response_headers[name]

        if "date" not in present:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "server" not in present:
            response_headers["Server"] = server_name

        if not keep_alive:
            for name in list(response_headers):
                if name.lower() in ("connection", "keep-alive"):
                    del response_headers[name]
            response_headers["Connection"] = "close"

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in response_headers.items())
        head = ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")

        if include_body and self.has_body:
            return head + self.body
        return head


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

        response = (ResponseBuilder()
            .status(HTTPStatus.CREATED)
            .header("Location", "/items/1")
            .json({"id": 1})
            .build())
    """

    def __init__(self):
        self._status: int = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: int) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._headers["Content-Type"] = content_type
        return self.body(text)

    def html(self, html: str) -> "ResponseBuilder":
        return self.text(html, "text/html; charset=utf-8")

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        self._headers["Content-Type"] = "application/json; charset=utf-8"
        indent = 2 if pretty else None
        return self.body(json.dumps(data, indent=indent, default=str))

    def close_connection(self) -> "ResponseBuilder":
        """Ask the server to close the connection after this response."""
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

_DAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def format_http_date(dt: datetime) -> str:
    """
    Format a UTC datetime as an IMF-fixdate (RFC 7231 §7.1.1.1).

        Thu, 15 Jan 2026 12:30:45 GMT

    Built by hand because strftime's %a/%b follow the process locale.
    """
    return (
        f"{_DAYS[dt.weekday()]}, "
        f"{dt.day:02d} {_MONTHS[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def ok(body: Union[str, bytes, dict, list] = "", content_type: Optional[str] = None) -> HTTPResponse:
    """
    200 OK. dict/list bodies become JSON, str bodies plain text.
    """
    builder = ResponseBuilder().status(HTTPStatus.OK)

    if isinstance(body, (dict, list)):
        builder.json(body)
    elif isinstance(body, str):
        builder.text(body, content_type or "text/plain; charset=utf-8")
    else:
        builder.body(body)
        if content_type:
            builder.header("Content-Type", content_type)

    return builder.build()


def error_response(status: int, message: Optional[str] = None) -> HTTPResponse:
    """Plain-text error response; the message defaults to the reason phrase."""
    return (ResponseBuilder()
        .status(status)
        .text(message if message is not None else reason_phrase(status))
        .build())


def bad_request(message: str = "Bad Request") -> HTTPResponse:
    return error_response(HTTPStatus.BAD_REQUEST, message)


def not_found(message: str = "Not Found") -> HTTPResponse:
    return error_response(HTTPStatus.NOT_FOUND, message)


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    """
    500 Internal Server Error.

    This is the fallback a failed request handler turns into, so keep the
    message generic: it goes straight to the client.
    """
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, message)
