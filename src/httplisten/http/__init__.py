"""
HTTP/1.1 message types: request parsing, response building, status codes.
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_chunk_size, parse_request_head
from .response import (
    HTTPResponse,
    ResponseBuilder,
    format_http_date,
    ok,             # 200 OK
    error_response,
    bad_request,    # 400 Bad Request
    not_found,      # 404 Not Found
    internal_error, # 500 Internal Server Error
)
from .status_codes import HTTPStatus, reason_phrase

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_chunk_size",
    "parse_request_head",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "format_http_date",
    "ok",
    "error_response",
    "bad_request",
    "not_found",
    "internal_error",

    # Status codes
    "HTTPStatus",
    "reason_phrase",
]
