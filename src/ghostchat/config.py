"""Client configuration for GhostChat."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .transport import TransportConfig

DEFAULT_SERVER_URL = "ws://localhost:3001"


@dataclass
class GhostChatConfig:
    """Configuration for a GhostChat client."""

    server_url: str = DEFAULT_SERVER_URL
    """WebSocket URL of the chat server."""

    reconnect_initial_delay: float = 1.0
    """First reconnection delay in seconds."""

    reconnect_max_delay: float = 30.0
    """Ceiling for the reconnection delay in seconds."""

    heartbeat_interval: Optional[float] = 25.0
    """Seconds between heartbeat frames (None disables)."""

    key_directory: Optional[Path] = None
    """Directory for sealed key files (None: ~/.ghostchat)."""

    @classmethod
    def local(cls) -> "GhostChatConfig":
        """Configuration for a server on this machine."""
        return cls()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "GhostChatConfig":
        """
        Build a configuration from GHOSTCHAT_* environment variables.

        Variables:
            GHOSTCHAT_SERVER_URL, GHOSTCHAT_RECONNECT_INITIAL,
            GHOSTCHAT_RECONNECT_MAX, GHOSTCHAT_HEARTBEAT_INTERVAL
            (0 disables), GHOSTCHAT_KEY_DIR

        Raises:
            ValueError: If a numeric variable does not parse
        """
        env = os.environ if environ is None else environ
        config = cls()

        if env.get("GHOSTCHAT_SERVER_URL"):
            config.server_url = env["GHOSTCHAT_SERVER_URL"]
        if env.get("GHOSTCHAT_RECONNECT_INITIAL"):
            config.reconnect_initial_delay = float(env["GHOSTCHAT_RECONNECT_INITIAL"])
        if env.get("GHOSTCHAT_RECONNECT_MAX"):
            config.reconnect_max_delay = float(env["GHOSTCHAT_RECONNECT_MAX"])
        if env.get("GHOSTCHAT_HEARTBEAT_INTERVAL"):
            interval = float(env["GHOSTCHAT_HEARTBEAT_INTERVAL"])
            config.heartbeat_interval = interval if interval > 0 else None
        if env.get("GHOSTCHAT_KEY_DIR"):
            config.key_directory = Path(env["GHOSTCHAT_KEY_DIR"]).expanduser()

        return config

    def transport_config(self) -> TransportConfig:
        """The transport settings for this configuration."""
        return TransportConfig(
            url=self.server_url,
            initial_delay=self.reconnect_initial_delay,
            max_delay=self.reconnect_max_delay,
        )

    def key_path(self, name: str) -> Optional[Path]:
        """Subdirectory of key_directory, or None for the storage default."""
        if self.key_directory is None:
            return None
        return self.key_directory / name
