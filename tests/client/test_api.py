"""Tests for the ludiary HTTP client."""

import httpx
import pytest

from ludiary.client.api import HTTPClient, RemoteEntry
from ludiary.core.config import ServerConfig
from ludiary.core.errors import (
    AuthError,
    InternalError,
    NotFoundError,
    PreconditionError,
    TransientNetworkError,
    ValidationError,
)
from ludiary.core.types import Domain


def make_config(
    server_url: str = "http://test", token: str = "token123"
) -> ServerConfig:
    """Create a ServerConfig for testing."""
    return ServerConfig(server_url=server_url, token=token)


class TestRemoteEntry:
    """Tests for RemoteEntry dataclass."""

    def test_from_dict(self) -> None:
        """Should create RemoteEntry from a camelCase dictionary."""
        entry = RemoteEntry.from_dict(
            {
                "id": "g1",
                "isDeleted": False,
                "updatedAt": 1700000000123,
                "payload": {"title": "Azul"},
                "version": 3,
            }
        )
        assert entry.id == "g1"
        assert not entry.is_deleted
        assert entry.updated_at_remote == 1700000000123
        assert entry.payload == {"title": "Azul"}
        assert entry.version == 3

    def test_from_dict_tombstone(self) -> None:
        """Tombstones may come without payload."""
        entry = RemoteEntry.from_dict({"id": "g1", "isDeleted": True, "updatedAt": 5})
        assert entry.is_deleted
        assert entry.payload == {}
        assert entry.version == 0


class TestHTTPClient:
    """Tests for HTTPClient."""

    def test_health_check_success(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return True when server is healthy."""
        httpx_mock.add_response(url="http://test/health", json={"status": "ok"})

        with HTTPClient(make_config()) as client:
            assert client.health_check() is True

    def test_health_check_failure(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return False when server is down."""
        httpx_mock.add_response(url="http://test/health", status_code=500)

        with HTTPClient(make_config()) as client:
            assert client.health_check() is False

    def test_health_check_unreachable(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return False when the connection fails."""
        httpx_mock.add_exception(httpx.ConnectError("refused"))

        with HTTPClient(make_config()) as client:
            assert client.health_check() is False

    def test_sends_bearer_token(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Requests should carry the bearer token."""
        httpx_mock.add_response(
            url="http://test/api/notifications/stats",
            match_headers={"Authorization": "Bearer token123"},
            json={"unreadCount": 4},
        )

        with HTTPClient(make_config()) as client:
            assert client.get_unread_count() == 4

    def test_register_user(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should parse the registration response."""
        httpx_mock.add_response(
            method="POST",
            url="http://test/api/users/register",
            status_code=201,
            json={
                "uid": "u1",
                "token": "ld_abc",
                "friendCode": "ABCD2345",
                "displayName": "Alice",
            },
        )

        with HTTPClient(ServerConfig(server_url="http://test", token="")) as client:
            user = client.register_user("Alice")

        assert user.uid == "u1"
        assert user.token == "ld_abc"
        assert user.friend_code == "ABCD2345"

    def test_put_record(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should PUT the record and return the server timestamp."""
        httpx_mock.add_response(
            method="PUT",
            url="http://test/api/records/games/u1/g1",
            match_json={"payload": {"title": "Azul"}, "version": 2},
            json={"updatedAt": 1234},
        )

        with HTTPClient(make_config()) as client:
            assert client.put_record(Domain.GAMES, "u1", "g1", {"title": "Azul"}, 2) == 1234

    def test_delete_record(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should DELETE the record and return the tombstone timestamp."""
        httpx_mock.add_response(
            method="DELETE",
            url="http://test/api/records/sessions/grp/s1",
            json={"updatedAt": 99},
        )

        with HTTPClient(make_config()) as client:
            assert client.delete_record(Domain.SESSIONS, "grp", "s1") == 99

    def test_get_records(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should pass since/limit and parse the page."""
        httpx_mock.add_response(
            method="GET",
            url="http://test/api/records/games/u1?since=10&limit=50",
            json={
                "entries": [
                    {"id": "g1", "isDeleted": False, "updatedAt": 11, "payload": {}, "version": 1},
                    {"id": "g2", "isDeleted": True, "updatedAt": 12, "payload": {}, "version": 2},
                ],
                "hasMore": True,
                "latest": 12,
            },
        )

        with HTTPClient(make_config()) as client:
            page = client.get_records(Domain.GAMES, "u1", since=10, limit=50)

        assert [e.id for e in page.entries] == ["g1", "g2"]
        assert page.entries[1].is_deleted
        assert page.has_more
        assert page.latest == 12

    def test_get_records_without_since(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """A full read should omit the since parameter."""
        httpx_mock.add_response(
            url="http://test/api/records/games/u1?limit=1000",
            json={"entries": [], "hasMore": False, "latest": None},
        )

        with HTTPClient(make_config()) as client:
            page = client.get_records(Domain.GAMES, "u1", since=None)

        assert page.entries == []
        assert page.latest is None
        assert not page.resync_required

    def test_get_records_resync_flag(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """The purge watermark and resync flag are read from the page."""
        httpx_mock.add_response(
            url="http://test/api/records/games/u1?since=5&limit=1000",
            json={
                "entries": [],
                "hasMore": False,
                "latest": None,
                "purgedThrough": 9,
                "resyncRequired": True,
            },
        )

        with HTTPClient(make_config()) as client:
            page = client.get_records(Domain.GAMES, "u1", since=5)

        assert page.resync_required
        assert page.purged_through == 9


class TestErrorMapping:
    """Tests for HTTP error to typed error mapping."""

    def test_401_is_auth_error(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """401 should raise AuthError."""
        httpx_mock.add_response(
            status_code=401, json={"detail": "Invalid token", "code": "unauthenticated"}
        )

        with HTTPClient(make_config()) as client:
            with pytest.raises(AuthError, match="Invalid token"):
                client.get_unread_count()

    def test_code_is_used(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """The wire code should select the error class."""
        httpx_mock.add_response(
            status_code=409,
            json={"detail": "Cannot invite yourself", "code": "failed-precondition"},
        )

        with HTTPClient(make_config()) as client:
            with pytest.raises(PreconditionError) as exc_info:
                client.call("/api/friends/invite-by-code", {"code": "X"})
        assert exc_info.value.status_code == 409

    def test_not_found(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """404 with not-found code should raise NotFoundError."""
        httpx_mock.add_response(
            status_code=404, json={"detail": "Friend code not found", "code": "not-found"}
        )

        with HTTPClient(make_config()) as client:
            with pytest.raises(NotFoundError):
                client.call("/api/friends/invite-by-code", {"code": "X"})

    def test_422_without_code(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Validation failures without a code should raise ValidationError."""
        httpx_mock.add_response(status_code=422, json={"detail": "bad body"})

        with HTTPClient(make_config()) as client:
            with pytest.raises(ValidationError):
                client.call("/api/groups", {})

    @pytest.mark.parametrize("status_code", [429, 502, 503, 504])
    def test_transient_statuses(self, httpx_mock, status_code: int) -> None:  # type: ignore[no-untyped-def]
        """Availability errors should raise TransientNetworkError."""
        httpx_mock.add_response(status_code=status_code, text="busy")

        with HTTPClient(make_config()) as client:
            with pytest.raises(TransientNetworkError):
                client.get_unread_count()

    def test_500_with_code_is_internal(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """A coded 500 is a server bug, not a transient failure."""
        httpx_mock.add_response(status_code=500, json={"detail": "broken", "code": "internal"})

        with HTTPClient(make_config()) as client:
            with pytest.raises(InternalError):
                client.get_unread_count()

    def test_transport_error(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Connection failures should raise TransientNetworkError."""
        httpx_mock.add_exception(httpx.ConnectError("refused"))

        with HTTPClient(make_config()) as client:
            with pytest.raises(TransientNetworkError):
                client.put_record(Domain.GAMES, "u1", "g1", {}, 1)
