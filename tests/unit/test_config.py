"""
Unit tests for ServerConfig.
"""

import pytest

from httplisten.config import ServerConfig, DEFAULT_HTTP_PORT, DEFAULT_HTTPS_PORT


class TestServerConfig:
    """Tests for defaults and validation."""

    def test_defaults(self):
        config = ServerConfig()

        assert config.hostname == "0.0.0.0"
        assert config.port is None
        assert config.keep_alive is True
        assert config.keep_alive_timeout is None
        assert config.tls_enabled is False

    def test_resolve_port(self):
        """None means 8000 for HTTP and 8443 for HTTPS."""
        assert ServerConfig().resolve_port() == DEFAULT_HTTP_PORT == 8000
        assert ServerConfig().resolve_port(tls=True) == DEFAULT_HTTPS_PORT == 8443
        assert ServerConfig(port=0).resolve_port(tls=True) == 0

    def test_tls_enabled_with_either_file(self):
        assert ServerConfig(cert_file="cert.pem").tls_enabled
        assert ServerConfig(key_file="key.pem").tls_enabled

    def test_validate_accepts_defaults(self):
        ServerConfig().validate()
        ServerConfig(port=0, keep_alive_timeout=5.0).validate()

    @pytest.mark.parametrize("overrides", [
        {"port": -1},
        {"port": 65536},
        {"backlog": 0},
        {"max_header_size": 100},
        {"max_request_size": -1},
        {"keep_alive_timeout": 0},
        {"log_level": "LOUD"},
    ])
    def test_validate_rejects(self, overrides):
        with pytest.raises(ValueError):
            ServerConfig(**overrides).validate()


class TestFromEnv:
    """Tests for ServerConfig.from_env()."""

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("HTTP_HOST", "127.0.0.1")
        monkeypatch.setenv("HTTP_PORT", "3000")
        monkeypatch.setenv("HTTP_BACKLOG", "16")
        monkeypatch.setenv("HTTP_CERT_FILE", "cert.pem")
        monkeypatch.setenv("HTTP_KEY_FILE", "key.pem")
        monkeypatch.setenv("HTTP_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("HTTP_QUIET", "true")

        config = ServerConfig.from_env()

        assert config.hostname == "127.0.0.1"
        assert config.port == 3000
        assert config.backlog == 16
        assert config.cert_file == "cert.pem"
        assert config.key_file == "key.pem"
        assert config.log_level == "DEBUG"
        assert config.quiet is True

    def test_empty_environment(self, monkeypatch):
        for name in ("HTTP_HOST", "HTTP_PORT", "HTTP_BACKLOG", "HTTP_CERT_FILE",
                     "HTTP_KEY_FILE", "HTTP_LOG_LEVEL", "HTTP_QUIET"):
            monkeypatch.delenv(name, raising=False)

        config = ServerConfig.from_env()

        assert config == ServerConfig()
