"""Tests for configuration models and ConfigManager."""

import json

import pytest
from pydantic import ValidationError

from leadstitch_sync.config import (
    API_URL_ENV,
    SOCKET_URL_ENV,
    ConfigManager,
    PollingConfig,
    PushConfig,
    ServerConfig,
    SyncConfig,
)


class TestConfigModels:
    """Defaults and validation."""

    def test_defaults(self):
        config = SyncConfig()
        assert config.server.api_url == "http://localhost:5000/api"
        assert config.polling.interval == 2.0
        assert config.push.reconnection_attempts == 5
        assert config.push.reconnection_delay == 1.0
        assert config.push.reconnection_delay_max == 5.0
        assert config.push.connect_timeout == 20.0
        assert config.completion.enrich_settle_delay == 2.0

    @pytest.mark.parametrize(
        "api_url,socket_url",
        [
            ("http://localhost:5000/api", "http://localhost:5000"),
            ("https://app.example.com/api/", "https://app.example.com"),
            ("https://app.example.com", "https://app.example.com"),
        ],
    )
    def test_socket_url_strips_api_prefix(self, api_url, socket_url):
        assert ServerConfig(api_url=api_url).resolved_socket_url() == socket_url

    def test_explicit_socket_url_wins(self):
        server = ServerConfig(api_url="http://a/api", socket_url="http://sockets.example.com/")
        assert server.resolved_socket_url() == "http://sockets.example.com"

    def test_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            PollingConfig(interval=0)

    def test_negative_reconnection_attempts_rejected(self):
        with pytest.raises(ValidationError):
            PushConfig(reconnection_attempts=-1)


class TestConfigManager:
    """Loading, saving and environment overrides."""

    def test_load_missing_file_gives_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv(API_URL_ENV, raising=False)
        monkeypatch.delenv(SOCKET_URL_ENV, raising=False)
        manager = ConfigManager(tmp_path / ".leadstitch" / "config.json")
        assert manager.load() == SyncConfig()

    def test_save_and_reload(self, tmp_path, monkeypatch):
        monkeypatch.delenv(API_URL_ENV, raising=False)
        path = tmp_path / ".leadstitch" / "config.json"
        manager = ConfigManager(path)
        config = SyncConfig(polling=PollingConfig(interval=5.0))

        manager.save(config)

        assert json.loads(path.read_text())["polling"]["interval"] == 5.0
        assert ConfigManager(path).load().polling.interval == 5.0

    def test_invalid_file_raises_value_error(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{broken")
        with pytest.raises(ValueError):
            ConfigManager(path).load()

    def test_env_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv(API_URL_ENV, "https://prod.example.com/api")
        monkeypatch.setenv(SOCKET_URL_ENV, "https://ws.example.com")

        config = ConfigManager(tmp_path / "config.json").load()

        assert config.server.api_url == "https://prod.example.com/api"
        assert config.server.resolved_socket_url() == "https://ws.example.com"

    def test_find_config_path_walks_up(self, tmp_path):
        config_dir = tmp_path / ".leadstitch"
        config_dir.mkdir()
        (config_dir / "config.json").write_text("{}")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)

        assert ConfigManager.find_config_path(nested) == config_dir / "config.json"

    def test_update_config(self, tmp_path, monkeypatch):
        monkeypatch.delenv(API_URL_ENV, raising=False)
        monkeypatch.delenv(SOCKET_URL_ENV, raising=False)
        path = tmp_path / "config.json"
        manager = ConfigManager(path)

        updated = manager.update_config(polling={"interval": 0.5})

        assert updated.polling.interval == 0.5
        assert path.exists()
