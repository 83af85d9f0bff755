"""HTTP client for the ludiary server API.

This module provides:
- HTTPClient: HTTP client for communicating with the server
- Record sync operations (put, delete, changes since)
- Relationship operations (friends, groups) and notification stats

The client is constructed explicitly and owned by whoever builds it
(see ``ludiary.client.mode``); it is never a process-wide singleton.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ludiary.core.config import ServerConfig
from ludiary.core.errors import (
    AuthError,
    TransientNetworkError,
    error_from_code,
)
from ludiary.core.types import Domain

logger = logging.getLogger(__name__)

# Statuses worth retrying later: rate limiting and gateway/availability errors
TRANSIENT_STATUS_CODES = frozenset({408, 429, 502, 503, 504})


@dataclass
class RemoteEntry:
    """One change returned by the records API.

    Attributes:
        id: Record id.
        is_deleted: True if the record is a server-side tombstone.
        updated_at_remote: Server timestamp (epoch millis).
        payload: Domain fields (empty for tombstones).
        version: Server-side version counter.
    """

    id: str
    is_deleted: bool
    updated_at_remote: int
    payload: dict[str, Any]
    version: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteEntry:
        """Create from API response dictionary."""
        return cls(
            id=data["id"],
            is_deleted=bool(data.get("isDeleted", False)),
            updated_at_remote=int(data["updatedAt"]),
            payload=dict(data.get("payload") or {}),
            version=int(data.get("version", 0)),
        )


@dataclass
class RecordsPage:
    """Result of a changes-since call."""

    entries: list[RemoteEntry]
    has_more: bool
    latest: int | None
    purged_through: int | None = None
    resync_required: bool = False


@dataclass
class RegisteredUser:
    """Identity returned by user registration."""

    uid: str
    token: str
    friend_code: str
    display_name: str | None = None


class HTTPClient:
    """HTTP client for the ludiary server API."""

    def __init__(
        self,
        config: ServerConfig,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Server connection settings.
            client: Optional pre-built httpx client (tests pass a
                FastAPI TestClient here). Its headers get the bearer token.
        """
        self._config = config
        if client is None:
            client = httpx.Client(
                base_url=config.server_url,
                timeout=config.timeout,
                verify=config.verify_ssl,
            )
        if config.token:
            client.headers["Authorization"] = f"Bearer {config.token}"
        self._client = client

    @property
    def config(self) -> ServerConfig:
        """Connection settings."""
        return self._config

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> HTTPClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, mapping transport failures to TransientNetworkError."""
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise TransientNetworkError(f"{method} {url} failed: {e}") from e
        return self._handle_response(response)

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code < 400:
            return response

        detail = "Unknown error"
        code: str | None = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            detail = str(body.get("detail", detail))
            code = body.get("code")

        status_code = response.status_code
        if status_code == 401:
            raise AuthError(detail, status_code=status_code)
        if status_code in TRANSIENT_STATUS_CODES:
            raise TransientNetworkError(detail, status_code=status_code)
        if code is None and status_code >= 500:
            raise TransientNetworkError(detail, status_code=status_code)
        if code is None and status_code in (400, 422):
            code = "invalid-argument"
        raise error_from_code(code, detail, status_code=status_code)

    # === Health check ===

    def health_check(self) -> bool:
        """Check if the server is reachable and healthy.

        Returns:
            True if server is healthy.
        """
        try:
            response = self._client.get("/health")
            return response.status_code == 200
        except httpx.RequestError:
            return False

    # === Users ===

    def register_user(self, display_name: str) -> RegisteredUser:
        """Create a new user on the server.

        Does not require a token; the returned token authenticates
        subsequent calls.
        """
        response = self._request(
            "POST", "/api/users/register", json={"displayName": display_name}
        )
        data = response.json()
        return RegisteredUser(
            uid=data["uid"],
            token=data["token"],
            friend_code=data["friendCode"],
            display_name=data.get("displayName"),
        )

    # === Records ===

    def put_record(
        self,
        domain: Domain,
        owner_id: str,
        record_id: str,
        payload: dict[str, Any],
        version: int,
    ) -> int:
        """Upsert a record.

        Returns:
            The server's updated_at (epoch millis).
        """
        response = self._request(
            "PUT",
            f"/api/records/{domain.value}/{owner_id}/{record_id}",
            json={"payload": payload, "version": version},
        )
        return int(response.json()["updatedAt"])

    def delete_record(self, domain: Domain, owner_id: str, record_id: str) -> int:
        """Soft-delete a record.

        Returns:
            The tombstone's updated_at (epoch millis).
        """
        response = self._request(
            "DELETE", f"/api/records/{domain.value}/{owner_id}/{record_id}"
        )
        return int(response.json()["updatedAt"])

    def get_records(
        self,
        domain: Domain,
        owner_id: str,
        since: int | None,
        limit: int = 1000,
    ) -> RecordsPage:
        """Get records changed strictly after ``since``.

        Args:
            domain: Collection to read.
            owner_id: Owner partition.
            since: Watermark (epoch millis); None for a full read.
            limit: Page size.

        Returns:
            RecordsPage ordered by updated_at ascending.
        """
        params: dict[str, str] = {"limit": str(limit)}
        if since is not None:
            params["since"] = str(since)
        response = self._request(
            "GET", f"/api/records/{domain.value}/{owner_id}", params=params
        )
        data = response.json()
        return RecordsPage(
            entries=[RemoteEntry.from_dict(e) for e in data["entries"]],
            has_more=bool(data["hasMore"]),
            latest=data.get("latest"),
            purged_through=data.get("purgedThrough"),
            resync_required=bool(data.get("resyncRequired", False)),
        )

    # === Relationship operations ===

    def call(self, path: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
        """POST a relationship operation and return its JSON result."""
        response = self._request("POST", path, json=data or {})
        result: dict[str, Any] = response.json()
        return result

    # === Notifications ===

    def get_unread_count(self) -> int:
        """Get the caller's unread notification counter."""
        response = self._request("GET", "/api/notifications/stats")
        return int(response.json()["unreadCount"])


__all__ = [
    "HTTPClient",
    "RecordsPage",
    "RegisteredUser",
    "RemoteEntry",
]
