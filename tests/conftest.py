"""
pytest configuration and fixtures.
"""

import socket
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from httplisten import ServerConfig


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request head."""
    return (
        b"GET /api/users?page=1&limit=10 HTTP/1.1\r\n"
        b"Host: localhost:8000\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request head announcing a JSON body."""
    return (
        b"POST /api/users HTTP/1.1\r\n"
        b"Host: localhost:8000\r\n"
        b"Content-Type: application/json; charset=utf-8\r\n"
        b"Content-Length: 45\r\n"
        b"Connection: close\r\n"
        b"\r\n"
    )


@pytest.fixture
def config() -> ServerConfig:
    """Loopback configuration on an OS-assigned port."""
    return ServerConfig(
        hostname="127.0.0.1",
        port=0,  # Let OS pick a free port
        log_level="WARNING",
        access_log=False,
        quiet=True,
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]
