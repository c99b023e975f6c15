"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the listener server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m httplisten --port 3000                          │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── HTTP_PORT=3000 python -m httplisten                       │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A port of None means "use the default for the transport": 8000 for plain
HTTP, 8443 for HTTPS.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


DEFAULT_HOSTNAME = "0.0.0.0"
DEFAULT_HTTP_PORT = 8000
DEFAULT_HTTPS_PORT = 8443

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class ServerConfig:
    """
    Configuration for the listener server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - hostname, port, backlog

    HTTP SETTINGS
    - max_header_size, max_request_size, keep_alive, keep_alive_timeout,
      server_name

    TLS
    - cert_file, key_file

    LOGGING
    - log_level, access_log, quiet

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    hostname: str = DEFAULT_HOSTNAME
    """
    The address to bind to.
    - "0.0.0.0" - All IPv4 interfaces
    - "127.0.0.1" - Localhost only
    - "::" - All IPv6 interfaces
    """

    port: Optional[int] = None
    """
    The port to listen on. None picks 8000 (HTTP) or 8443 (HTTPS).
    0 lets the OS choose a free port.
    """

    backlog: int = 128
    """Maximum number of connections queued by the kernel before accept()."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    max_header_size: int = 64 * 1024
    """Largest request head (request line + headers) accepted, in bytes."""

    max_request_size: int = 10 * 1024 * 1024  # 10 MB
    """Largest request body accepted, in bytes."""

    keep_alive: bool = True
    """Allow several requests per connection."""

    keep_alive_timeout: Optional[float] = None
    """
    Seconds an idle keep-alive connection may wait for its next request.
    None disables the timeout (connections live until the client or
    close() ends them).
    """

    server_name: str = "httplisten/1.0"
    """Value of the Server response header."""

    # ─────────────────────────────────────────────────────────────────────
    # TLS
    # ─────────────────────────────────────────────────────────────────────

    cert_file: Optional[str] = None
    key_file: Optional[str] = None

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    access_log: bool = True
    """Write one line per response to the httplisten.access logger."""

    quiet: bool = False
    """Suppress the "Listening on ..." startup message."""

    @property
    def tls_enabled(self) -> bool:
        """True when either TLS file is configured."""
        return bool(self.cert_file or self.key_file)

    def resolve_port(self, tls: bool = False) -> int:
        """Return the configured port, or the transport default."""
        if self.port is not None:
            return self.port
        return DEFAULT_HTTPS_PORT if tls else DEFAULT_HTTP_PORT

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        HTTP_HOST       Bind address (default: 0.0.0.0)
        HTTP_PORT       Port (default: 8000, or 8443 with TLS)
        HTTP_BACKLOG    Listen backlog (default: 128)
        HTTP_CERT_FILE  TLS certificate file
        HTTP_KEY_FILE   TLS private key file
        HTTP_LOG_LEVEL  Logging level (default: INFO)
        HTTP_QUIET      "1"/"true" suppresses the startup message

        =====================================================================
        """
        port = os.getenv("HTTP_PORT")
        return cls(
            hostname=os.getenv("HTTP_HOST", DEFAULT_HOSTNAME),
            port=int(port) if port else None,
            backlog=int(os.getenv("HTTP_BACKLOG", "128")),
            cert_file=os.getenv("HTTP_CERT_FILE") or None,
            key_file=os.getenv("HTTP_KEY_FILE") or None,
            log_level=os.getenv("HTTP_LOG_LEVEL", "INFO"),
            quiet=os.getenv("HTTP_QUIET", "").lower() in _TRUTHY,
        )

    def validate(self) -> None:
        """Fail fast on values that would only blow up later."""
        if self.port is not None and not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.max_header_size < 1024:
            raise ValueError("max_header_size must be >= 1024")

        if self.max_request_size < 0:
            raise ValueError("max_request_size must be >= 0")

        if self.keep_alive_timeout is not None and self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be > 0")

        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {self.log_level}")
