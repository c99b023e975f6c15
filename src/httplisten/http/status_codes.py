"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this server produces itself, plus the common ones a
handler is likely to return. Handlers may also pass any integer status;
responses fall back to a generic reason phrase for codes not listed here.

    1xx  Informational      100 Continue
    2xx  Success            200 OK, 201 Created, 204 No Content
    3xx  Redirection        301, 302, 304
    4xx  Client error       400, 404, 405, 413, 431 ...
    5xx  Server error       500, 501, 503, 505

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes with reason phrases.

        >>> HTTPStatus.OK == 200
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    CONTINUE = 100
    SWITCHING_PROTOCOLS = 101

    OK = 200
    CREATED = 201
    ACCEPTED = 202
    NO_CONTENT = 204

    MOVED_PERMANENTLY = 301
    FOUND = 302
    NOT_MODIFIED = 304

    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    LENGTH_REQUIRED = 411
    PAYLOAD_TOO_LARGE = 413
    URI_TOO_LONG = 414
    TOO_MANY_REQUESTS = 429
    REQUEST_HEADER_FIELDS_TOO_LARGE = 431

    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503
    GATEWAY_TIMEOUT = 504
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """Reason phrase used in the status line."""
        return _PHRASES.get(self, self.name.replace("_", " ").title())

    @property
    def is_informational(self) -> bool:
        return 100 <= self < 200

    @property
    def is_success(self) -> bool:
        return 200 <= self < 300

    @property
    def is_client_error(self) -> bool:
        return 400 <= self < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self < 600

    @property
    def is_error(self) -> bool:
        return self >= 400


# Phrases that don't come out right from the enum name.
_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.URI_TOO_LONG: "URI Too Long",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}


def reason_phrase(status: int) -> str:
    """Reason phrase for any integer status code."""
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Unknown"
