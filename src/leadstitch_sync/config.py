"""Configuration management for LeadStitch Sync."""

import json
import logging
import os
from pathlib import Path
from typing import List, Optional, Any

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

API_URL_ENV = "LEADSTITCH_API_URL"
SOCKET_URL_ENV = "LEADSTITCH_SOCKET_URL"


class ServerConfig(BaseModel):
    """Configuration for the LeadStitch backend."""

    api_url: str = Field(
        default="http://localhost:5000/api", description="REST API base URL"
    )
    socket_url: Optional[str] = Field(
        default=None,
        description="Socket.IO server URL (derived from api_url when unset)",
    )
    connect_timeout: float = Field(
        default=10.0, description="HTTP connect timeout in seconds"
    )
    read_timeout: float = Field(default=30.0, description="HTTP read timeout in seconds")

    @field_validator("api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def resolved_socket_url(self) -> str:
        """Socket.IO is mounted at the server root, not under /api."""
        if self.socket_url:
            return self.socket_url.rstrip("/")
        base = self.api_url
        if base.endswith("/api"):
            base = base[: -len("/api")]
        return base.rstrip("/")


class PollingConfig(BaseModel):
    """Configuration for status polling."""

    interval: float = Field(default=2.0, description="Polling interval in seconds")

    @field_validator("interval")
    @classmethod
    def interval_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("interval must be positive")
        return v


class PushConfig(BaseModel):
    """Configuration for the Socket.IO push channel."""

    enabled: bool = Field(default=True, description="Use the push channel at all")
    reconnection_attempts: int = Field(
        default=5, description="Maximum reconnection attempts after a drop"
    )
    reconnection_delay: float = Field(
        default=1.0, description="Initial reconnection delay in seconds"
    )
    reconnection_delay_max: float = Field(
        default=5.0, description="Maximum reconnection delay in seconds"
    )
    connect_timeout: float = Field(
        default=20.0, description="Connection establishment timeout in seconds"
    )
    join_event: str = Field(default="join-room", description="Room join event")
    leave_event: str = Field(default="leave-room", description="Room leave event")
    snapshot_events: List[str] = Field(
        default=["progress", "stats", "item-update", "status-change"],
        description="Server events carrying status snapshots",
    )

    @field_validator("reconnection_attempts")
    @classmethod
    def attempts_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("reconnection_attempts must be non-negative")
        return v


class StorageConfig(BaseModel):
    """Configuration for durable job handle storage."""

    handle_store_path: Path = Field(
        default=Path(".leadstitch/job-handles.json"),
        description="JSON file holding in-flight job handles",
    )
    lock_timeout: float = Field(
        default=5.0, description="File lock timeout in seconds"
    )


class CompletionConfig(BaseModel):
    """Configuration for completion follow-up actions."""

    enrich_settle_delay: float = Field(
        default=2.0,
        description="Seconds to wait for scraped profiles to be saved before enrichment",
    )


class SyncConfig(BaseModel):
    """Main configuration for LeadStitch Sync."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    push: PushConfig = Field(default_factory=PushConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    completion: CompletionConfig = Field(default_factory=CompletionConfig)


class ConfigManager:
    """Manages configuration loading, saving, and environment overrides."""

    DEFAULT_CONFIG_PATH = Path(".leadstitch/config.json")

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or self.DEFAULT_CONFIG_PATH
        self._config: Optional[SyncConfig] = None

    def load(self) -> SyncConfig:
        """Load configuration from file or create default, then apply env overrides."""
        if self.config_path.exists():
            try:
                with open(self.config_path, "r") as f:
                    data = json.load(f)
                self._config = SyncConfig(**data)
            except Exception as e:
                raise ValueError(f"Failed to load config from {self.config_path}: {e}")
        else:
            self._config = SyncConfig()

        self._config = self._apply_env_overrides(self._config)
        return self._config

    def save(self, config: Optional[SyncConfig] = None) -> None:
        """Save configuration to file."""
        if config is None:
            config = self._config

        if config is None:
            raise ValueError("No configuration to save")

        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, "w") as f:
            json.dump(config.model_dump(mode="json"), f, indent=2)

    def get_config(self) -> SyncConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            self.load()
        if self._config is None:
            raise RuntimeError("Failed to load configuration")
        return self._config

    def update_config(self, **kwargs: Any) -> SyncConfig:
        """Update top-level configuration sections with new values."""
        config = self.get_config()

        config_dict = config.model_dump()
        config_dict.update(kwargs)

        new_config = SyncConfig(**config_dict)
        self._config = new_config
        self.save()
        return new_config

    @staticmethod
    def _apply_env_overrides(config: SyncConfig) -> SyncConfig:
        api_url = os.environ.get(API_URL_ENV)
        socket_url = os.environ.get(SOCKET_URL_ENV)
        if not api_url and not socket_url:
            return config

        server = config.server.model_dump()
        if api_url:
            logger.debug(f"Using API URL from {API_URL_ENV}")
            server["api_url"] = api_url
        if socket_url:
            logger.debug(f"Using socket URL from {SOCKET_URL_ENV}")
            server["socket_url"] = socket_url
        return config.model_copy(update={"server": ServerConfig(**server)})

    @staticmethod
    def find_config_path(start_dir: Optional[Path] = None) -> Optional[Path]:
        """Find .leadstitch/config.json by walking up the directory tree.

        Args:
            start_dir: Directory to start searching from (default: current directory)

        Returns:
            Path to config.json if found, None otherwise
        """
        current = start_dir or Path.cwd()

        for path in [current] + list(current.parents):
            config_path = path / ".leadstitch" / "config.json"
            if config_path.exists():
                return config_path

        return None

    @classmethod
    def create_with_backtrack(cls, start_dir: Optional[Path] = None) -> "ConfigManager":
        """Create ConfigManager by finding config through directory backtracking."""
        config_path = cls.find_config_path(start_dir)
        if config_path is None:
            start = start_dir or Path.cwd()
            config_path = start / ".leadstitch" / "config.json"
        return cls(config_path)
