"""
Unit tests for HTTP request head parsing.
"""

import pytest

from httplisten.http.request import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
    parse_chunk_size,
    parse_request_head,
)


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        """Test parsing a simple GET request."""
        parser = RequestParser()
        request = parser.parse_head(sample_get_request, ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.path == "/api/users"
        assert request.target == "/api/users?page=1&limit=10"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)
        assert request.body == b""

    def test_parse_headers(self, sample_get_request: bytes):
        """Test that headers are parsed correctly."""
        request = parse_request_head(sample_get_request)

        assert request.host == "localhost:8000"
        assert request.user_agent == "pytest"
        assert request.headers["accept"] == "application/json"
        assert request.is_keep_alive is True

    def test_parse_query_params(self, sample_get_request: bytes):
        """Test query parameter parsing."""
        request = parse_request_head(sample_get_request)

        assert request.get_query("page") == "1"
        assert request.get_query("limit") == "10"
        assert request.get_query("missing") is None
        assert request.get_query("missing", "default") == "default"

    def test_parse_post_head(self, sample_post_request: bytes):
        """Test the body-related properties of a POST head."""
        request = parse_request_head(sample_post_request)

        assert request.method == "POST"
        assert request.content_type == "application/json"
        assert request.content_length == 45
        assert request.is_keep_alive is False

    def test_leading_empty_lines_ignored(self):
        """Stray CRLFs before the request line are skipped."""
        request = parse_request_head(b"\r\n\r\nGET / HTTP/1.1\r\nHost: test\r\n\r\n")

        assert request.method == "GET"
        assert request.path == "/"

    def test_parse_path_with_special_chars(self):
        """Test URL-encoded path and query parsing."""
        raw = b"GET /a%20b/search?q=hello%20world HTTP/1.1\r\nHost: test\r\n\r\n"
        request = parse_request_head(raw)

        assert request.path == "/a b/search"
        assert request.get_query("q") == "hello world"

    def test_parse_invalid_method(self):
        """Test that unknown methods are rejected with 405."""
        raw = b"BREW /pot HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request_head(raw)

        assert exc_info.value.status_code == 405

    def test_parse_invalid_request_line(self):
        """Test handling of malformed request line."""
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request_head(b"GET\r\nHost: test\r\n\r\n")

        assert exc_info.value.status_code == 400

    def test_unsupported_version(self):
        """HTTP/2.0 over an HTTP/1 parser is a 505."""
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request_head(b"GET / HTTP/2.0\r\n\r\n")

        assert exc_info.value.status_code == 505

    def test_parse_missing_headers(self):
        """Test parsing request with no headers."""
        request = parse_request_head(b"GET / HTTP/1.1\r\n\r\n")

        assert request.method == "GET"
        assert request.path == "/"
        assert len(request.headers) == 0

    def test_parse_path_traversal_blocked(self):
        """Test that path traversal attempts are blocked."""
        raw = b"GET /../../../etc/passwd HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request_head(raw)

        assert "path" in str(exc_info.value).lower()

    def test_asterisk_and_authority_targets(self):
        """OPTIONS * and CONNECT host:port keep their raw target."""
        options = parse_request_head(b"OPTIONS * HTTP/1.1\r\n\r\n")
        connect = parse_request_head(b"CONNECT example.com:443 HTTP/1.1\r\n\r\n")

        assert options.path == "*"
        assert connect.path == "example.com:443"

    def test_obsolete_line_folding_rejected(self):
        raw = b"GET / HTTP/1.1\r\nX-Long: one\r\n two\r\n\r\n"

        with pytest.raises(HTTPParseError):
            parse_request_head(raw)

    def test_malformed_header_rejected(self):
        with pytest.raises(HTTPParseError):
            parse_request_head(b"GET / HTTP/1.1\r\nNo colon here\r\n\r\n")

    def test_duplicate_headers_joined(self):
        """Repeated headers are combined into one comma-separated value."""
        raw = b"GET / HTTP/1.1\r\nAccept: text/html\r\nAccept: text/plain\r\n\r\n"
        request = parse_request_head(raw)

        assert request.headers["accept"] == "text/html, text/plain"

    def test_case_insensitive_headers(self):
        """Test that header names are case-insensitive."""
        raw = b"GET / HTTP/1.1\r\nCONTENT-TYPE: text/html\r\n\r\n"
        request = parse_request_head(raw)

        assert request.content_type == "text/html"
        assert request.get_header("Content-Type") == "text/html"
        assert request.get_header("content-type") == "text/html"

    def test_http_version_keep_alive(self):
        """Test HTTP/1.0 and HTTP/1.1 keep-alive defaults."""
        # HTTP/1.0 (Connection: close by default)
        request_10 = parse_request_head(b"GET / HTTP/1.0\r\nHost: test\r\n\r\n")
        assert request_10.version == "HTTP/1.0"
        assert request_10.is_keep_alive is False

        # HTTP/1.0 opting in
        request_10_ka = parse_request_head(
            b"GET / HTTP/1.0\r\nConnection: Keep-Alive\r\n\r\n"
        )
        assert request_10_ka.is_keep_alive is True

        # HTTP/1.1 (keep-alive by default)
        request_11 = parse_request_head(b"GET / HTTP/1.1\r\nHost: test\r\n\r\n")
        assert request_11.version == "HTTP/1.1"
        assert request_11.is_keep_alive is True


class TestHTTPRequest:
    """Tests for HTTPRequest dataclass."""

    def test_get_header_default(self):
        """Test get_header with default value."""
        request = HTTPRequest(method="GET", path="/")

        assert request.get_header("X-Missing") == ""
        assert request.get_header("X-Missing", "default") == "default"

    def test_query_first_value(self):
        """get_query returns the first of repeated values."""
        request = HTTPRequest(
            method="GET",
            path="/",
            query_params={"tags": ["python", "http", "server"]},
        )

        assert request.get_query("tags") == "python"

    def test_content_length_absent(self):
        assert HTTPRequest(method="GET", path="/").content_length is None

    def test_content_length_invalid(self):
        request = HTTPRequest(method="POST", path="/", headers={"content-length": "-1"})

        with pytest.raises(HTTPParseError):
            request.content_length

    def test_content_length_conflicting_duplicates(self):
        request = HTTPRequest(method="POST", path="/", headers={"content-length": "5, 6"})

        with pytest.raises(HTTPParseError):
            request.content_length

    def test_content_length_agreeing_duplicates(self):
        request = HTTPRequest(method="POST", path="/", headers={"content-length": "5, 5"})

        assert request.content_length == 5

    def test_transfer_encodings(self):
        request = HTTPRequest(
            method="POST",
            path="/",
            headers={"transfer-encoding": "gzip, Chunked"},
        )

        assert request.transfer_encodings == ["gzip", "chunked"]

    def test_expects_continue(self):
        request = HTTPRequest(method="POST", path="/", headers={"expect": "100-Continue"})
        assert request.expects_continue is True

        request.version = "HTTP/1.0"
        assert request.expects_continue is False

    def test_json_body(self):
        request = HTTPRequest(method="POST", path="/", body=b'{"name": "John"}')

        assert request.json == {"name": "John"}

    def test_invalid_json_body(self):
        request = HTTPRequest(method="POST", path="/", body=b"{not json")

        with pytest.raises(HTTPParseError):
            request.json


class TestParseChunkSize:
    """Tests for chunk-size line parsing."""

    def test_hex_sizes(self):
        assert parse_chunk_size(b"0") == 0
        assert parse_chunk_size(b"1a") == 26
        assert parse_chunk_size(b"FF") == 255

    def test_extensions_ignored(self):
        assert parse_chunk_size(b"10;name=value") == 16

    @pytest.mark.parametrize("line", [b"", b"xyz", b"-5", b"0x10"])
    def test_invalid_sizes(self, line: bytes):
        with pytest.raises(HTTPParseError):
            parse_chunk_size(line)
