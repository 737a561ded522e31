"""Tests for client configuration."""

from pathlib import Path

import pytest
from ghostchat.config import DEFAULT_SERVER_URL, GhostChatConfig


class TestGhostChatConfig:
    """Test configuration defaults and environment loading."""

    def test_defaults(self) -> None:
        config = GhostChatConfig.local()
        assert config.server_url == DEFAULT_SERVER_URL == "ws://localhost:3001"
        assert config.reconnect_initial_delay == 1.0
        assert config.reconnect_max_delay == 30.0
        assert config.heartbeat_interval == 25.0
        assert config.key_path("keys") is None

    def test_from_env(self) -> None:
        config = GhostChatConfig.from_env({
            "GHOSTCHAT_SERVER_URL": "wss://chat.example.com",
            "GHOSTCHAT_RECONNECT_INITIAL": "0.5",
            "GHOSTCHAT_RECONNECT_MAX": "10",
            "GHOSTCHAT_HEARTBEAT_INTERVAL": "0",
            "GHOSTCHAT_KEY_DIR": "/tmp/ghost",
        })
        assert config.server_url == "wss://chat.example.com"
        assert config.reconnect_initial_delay == 0.5
        assert config.reconnect_max_delay == 10.0
        assert config.heartbeat_interval is None
        assert config.key_path("rooms") == Path("/tmp/ghost/rooms")

    def test_empty_env_keeps_defaults(self) -> None:
        assert GhostChatConfig.from_env({}) == GhostChatConfig()

    def test_bad_number(self) -> None:
        with pytest.raises(ValueError):
            GhostChatConfig.from_env({"GHOSTCHAT_RECONNECT_MAX": "soon"})

    def test_transport_config(self) -> None:
        config = GhostChatConfig(server_url="ws://a", reconnect_initial_delay=2.0, reconnect_max_delay=8.0)
        transport = config.transport_config()
        assert transport.url == "ws://a"
        assert transport.initial_delay == 2.0
        assert transport.max_delay == 8.0
