"""
Unit tests for HTTP response building.
"""

import pytest
import json
from datetime import datetime, timezone

from httplisten.http.response import (
    HTTPResponse,
    ResponseBuilder,
    ok,
    error_response,
    not_found,
    bad_request,
    internal_error,
    format_http_date,
)
from httplisten.http.status_codes import HTTPStatus, reason_phrase


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        """Test status line generation."""
        response = HTTPResponse(status=HTTPStatus.OK)
        assert response.status_line == "HTTP/1.1 200 OK"

        response = HTTPResponse(status=HTTPStatus.NOT_FOUND)
        assert response.status_line == "HTTP/1.1 404 Not Found"

    def test_to_bytes_includes_headers(self):
        """Test that to_bytes includes all headers."""
        response = HTTPResponse(
            status=HTTPStatus.OK,
            headers={"X-Custom": "value"},
            body=b"test",
        )

        result = response.to_bytes()

        assert result.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"X-Custom: value\r\n" in result
        assert b"Content-Length: 4\r\n" in result
        assert b"Server: httplisten/1.0\r\n" in result
        assert b"Date: " in result
        assert result.endswith(b"\r\n\r\ntest")

    def test_handler_headers_win(self):
        """Headers set by the handler are not overwritten."""
        response = HTTPResponse(headers={"Server": "custom", "Content-Length": "4"}, body=b"test")
        result = response.to_bytes(server_name="ignored")

        assert b"Server: custom\r\n" in result
        assert b"ignored" not in result
        assert result.count(b"Content-Length") == 1

    def test_connection_close(self):
        """keep_alive=False announces the close."""
        result = HTTPResponse(headers={"Connection": "keep-alive"}).to_bytes(keep_alive=False)

        assert b"Connection: close\r\n" in result
        assert b"keep-alive" not in result

    def test_head_response_keeps_length(self):
        """A HEAD response has the GET's Content-Length but no body."""
        result = HTTPResponse(body=b"hello world").to_bytes(include_body=False)

        assert b"Content-Length: 11\r\n" in result
        assert result.endswith(b"\r\n\r\n")

    @pytest.mark.parametrize("status", [HTTPStatus.NO_CONTENT, HTTPStatus.NOT_MODIFIED])
    def test_bodyless_statuses(self, status):
        """204 and 304 never carry a body or a Content-Length."""
        result = HTTPResponse(status=status, body=b"ignored").to_bytes()

        assert b"Content-Length" not in result
        assert result.endswith(b"\r\n\r\n")

    def test_set_header_chaining(self):
        """Test method chaining for headers."""
        response = (HTTPResponse()
            .set_header("X-One", "1")
            .set_header("X-Two", "2"))

        assert response.headers["X-One"] == "1"
        assert response.get_header("x-two") == "2"
        assert response.get_header("X-Three") is None


class TestResponseBuilder:
    """Tests for ResponseBuilder class."""

    def test_status(self):
        """Test setting status code."""
        response = ResponseBuilder().status(HTTPStatus.CREATED).build()
        assert response.status == HTTPStatus.CREATED

    def test_json_body(self):
        """Test JSON body encoding."""
        data = {"name": "John", "age": 30}
        response = ResponseBuilder().json(data).build()

        assert response.headers["Content-Type"] == "application/json; charset=utf-8"
        assert json.loads(response.body) == data

    def test_html_body(self):
        html = "<html><body>Hello</body></html>"
        response = ResponseBuilder().html(html).build()

        assert response.headers["Content-Type"] == "text/html; charset=utf-8"
        assert response.body == html.encode()

    def test_text_body(self):
        text = "Hello, World!"
        response = ResponseBuilder().text(text).build()

        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert response.body == text.encode()

    def test_close_connection(self):
        """Test connection close header."""
        response = ResponseBuilder().close_connection().build()
        assert response.headers["Connection"] == "close"

    def test_method_chaining(self):
        """Test fluent API chaining."""
        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .header("X-Custom", "value")
            .json({"key": "value"})
            .build())

        assert response.status == HTTPStatus.OK
        assert response.headers["X-Custom"] == "value"
        assert b'"key"' in response.body


class TestConvenienceFunctions:
    """Tests for convenience response functions."""

    def test_ok(self):
        """Test ok() function."""
        response = ok("Hello")
        assert response.status == HTTPStatus.OK
        assert response.body == b"Hello"

        response = ok({"msg": "hello"})
        assert b'"msg"' in response.body

        response = ok(b"\x00\x01", content_type="application/octet-stream")
        assert response.headers["Content-Type"] == "application/octet-stream"

    def test_error_response_defaults_to_phrase(self):
        response = error_response(HTTPStatus.PAYLOAD_TOO_LARGE)

        assert response.status == 413
        assert response.body == b"Payload Too Large"

    def test_not_found(self):
        response = not_found("Resource not found")
        assert response.status == HTTPStatus.NOT_FOUND
        assert b"Resource not found" in response.body

    def test_bad_request(self):
        response = bad_request("Invalid input")
        assert response.status == HTTPStatus.BAD_REQUEST
        assert b"Invalid input" in response.body

    def test_internal_error(self):
        """The fallback response for failed handlers."""
        response = internal_error()
        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert response.body == b"Internal Server Error"


class TestHTTPStatus:
    """Tests for HTTPStatus enum."""

    def test_status_phrases(self):
        assert HTTPStatus.OK.phrase == "OK"
        assert HTTPStatus.NOT_FOUND.phrase == "Not Found"
        assert HTTPStatus.INTERNAL_SERVER_ERROR.phrase == "Internal Server Error"
        assert HTTPStatus.HTTP_VERSION_NOT_SUPPORTED.phrase == "HTTP Version Not Supported"
        assert HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE.phrase == "Request Header Fields Too Large"

    def test_unknown_code(self):
        assert reason_phrase(299) == "Unknown"
        assert reason_phrase(418 + 1000) == "Unknown"

    def test_status_categories(self):
        """Test status category helpers."""
        assert HTTPStatus.CONTINUE.is_informational
        assert HTTPStatus.OK.is_success
        assert HTTPStatus.NOT_FOUND.is_client_error
        assert HTTPStatus.INTERNAL_SERVER_ERROR.is_server_error

        assert HTTPStatus.NOT_FOUND.is_error
        assert HTTPStatus.INTERNAL_SERVER_ERROR.is_error
        assert not HTTPStatus.OK.is_error


class TestFormatHTTPDate:
    """Tests for HTTP date formatting."""

    def test_format(self):
        dt = datetime(2026, 1, 15, 12, 30, 45, tzinfo=timezone.utc)

        assert format_http_date(dt) == "Thu, 15 Jan 2026 12:30:45 GMT"
