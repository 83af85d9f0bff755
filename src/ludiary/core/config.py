"""Shared configuration classes for ludiary.

This module defines configuration classes used by both client and server components.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# Owner of records written before the client registers with a server
LOCAL_USER_ID = "local"


class AppMode(str, Enum):
    """Composition selected at process start.

    LOCAL keeps everything on this machine (no remote store).
    ONLINE reconciles with a ludiary server.
    """

    LOCAL = "local"
    ONLINE = "online"


@dataclass
class ServerConfig:
    """Configuration for connecting to a ludiary server.

    Attributes:
        server_url: Base URL of the server (e.g., "https://ludiary.example.com").
        token: Bearer token identifying the user.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    server_url: str
    token: str
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS.

        Returns:
            True if server uses HTTPS.
        """
        return self.server_url.startswith("https://")


@dataclass
class ClientConfig:
    """Persisted client settings.

    Attributes:
        mode: Local-only or online composition.
        user_id: Identity the local data is partitioned under.
        server_url: Server base URL (online mode only).
        auth_token: Bearer token (online mode only).
        friend_code: This user's shareable friend code, if registered.
        sync_interval_minutes: Period of the automatic sync job.
        auto_sync: Whether the periodic job is enabled.
    """

    mode: AppMode = AppMode.LOCAL
    user_id: str = LOCAL_USER_ID
    server_url: str | None = None
    auth_token: str | None = None
    friend_code: str | None = None
    sync_interval_minutes: int = 360
    auto_sync: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> ClientConfig:
        """Build from the JSON config file contents."""
        return cls(
            mode=AppMode(str(data.get("mode", AppMode.LOCAL.value))),
            user_id=str(data.get("user_id") or LOCAL_USER_ID),
            server_url=data.get("server_url") or None,  # type: ignore[arg-type]
            auth_token=data.get("auth_token") or None,  # type: ignore[arg-type]
            friend_code=data.get("friend_code") or None,  # type: ignore[arg-type]
            sync_interval_minutes=int(data.get("sync_interval_minutes", 360)),  # type: ignore[call-overload]
            auto_sync=bool(data.get("auto_sync", True)),
        )

    def to_dict(self) -> dict[str, object]:
        """Serialize for the JSON config file."""
        return {
            "mode": self.mode.value,
            "user_id": self.user_id,
            "server_url": self.server_url,
            "auth_token": self.auth_token,
            "friend_code": self.friend_code,
            "sync_interval_minutes": self.sync_interval_minutes,
            "auto_sync": self.auto_sync,
        }

    def server_config(self) -> ServerConfig | None:
        """Connection settings, or None when not registered."""
        if not self.server_url or not self.auth_token:
            return None
        return ServerConfig(server_url=self.server_url, token=self.auth_token)
