"""
Unit tests for ServerConfig.
"""

import pytest

from fixtureserver.config import ServerConfig


class TestDefaults:

    def test_fixed_ports_and_keystore(self):
        config = ServerConfig()

        assert config.http_port == 3000
        assert config.https_port == 3001
        assert config.pfx_path == "https.pfx"
        assert config.pfx_passphrase == ""
        assert config.host == ""

    def test_enough_workers_for_fifty_clients(self):
        assert ServerConfig().max_workers >= 50

    def test_defaults_are_valid(self):
        ServerConfig().validate()


class TestFromEnv:

    def test_no_environment(self, monkeypatch):
        for name in ("FIXTURE_HOST", "FIXTURE_HTTP_PORT", "FIXTURE_HTTPS_PORT",
                     "FIXTURE_PFX", "FIXTURE_PFX_PASSPHRASE", "FIXTURE_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        assert ServerConfig.from_env() == ServerConfig()

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("FIXTURE_HOST", "127.0.0.1")
        monkeypatch.setenv("FIXTURE_HTTP_PORT", "4000")
        monkeypatch.setenv("FIXTURE_HTTPS_PORT", "4001")
        monkeypatch.setenv("FIXTURE_PFX", "/tmp/other.pfx")
        monkeypatch.setenv("FIXTURE_PFX_PASSPHRASE", "pw")
        monkeypatch.setenv("FIXTURE_LOG_LEVEL", "DEBUG")

        config = ServerConfig.from_env()

        assert config.host == "127.0.0.1"
        assert config.http_port == 4000
        assert config.https_port == 4001
        assert config.pfx_path == "/tmp/other.pfx"
        assert config.pfx_passphrase == "pw"
        assert config.log_level == "DEBUG"

    def test_bad_port(self, monkeypatch):
        monkeypatch.setenv("FIXTURE_HTTP_PORT", "three thousand")

        with pytest.raises(ValueError):
            ServerConfig.from_env()


class TestValidate:

    @pytest.mark.parametrize("changes", [
        {"http_port": -1},
        {"https_port": 70000},
        {"http_port": 4000, "https_port": 4000},
        {"min_workers": 0},
        {"min_workers": 10, "max_workers": 5},
        {"buffer_size": 10},
        {"timeout": 0},
        {"max_request_size": -1},
    ])
    def test_rejected(self, changes):
        with pytest.raises(ValueError):
            ServerConfig(**changes).validate()

    def test_both_ports_zero_allowed(self):
        ServerConfig(http_port=0, https_port=0).validate()

    def test_no_timeout_allowed(self):
        ServerConfig(timeout=None).validate()
