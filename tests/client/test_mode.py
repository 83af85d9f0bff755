"""Tests for local/online composition."""

from collections.abc import Generator
from pathlib import Path

import httpx
import pytest

from ludiary.client.mode import SYNCED_DOMAINS, build_sync_components
from ludiary.client.store import LocalRecordStore
from ludiary.core.config import AppMode, ClientConfig
from ludiary.core.errors import AuthError, UnsupportedInOfflineMode
from ludiary.core.types import Domain, SyncStatus


@pytest.fixture
def store(tmp_path: Path) -> Generator[LocalRecordStore, None, None]:
    """Create a test store."""
    s = LocalRecordStore(tmp_path / "records.db")
    yield s
    s.close()


class TestLocalMode:
    """Tests for the local-only composition."""

    def test_components(self, store: LocalRecordStore) -> None:
        """Local mode should have no HTTP client."""
        components = build_sync_components(ClientConfig(), store)
        try:
            assert components.mode is AppMode.LOCAL
            assert not components.online
            assert components.http is None
            assert not components.social.online
            assert set(components.coordinators) == set(SYNCED_DOMAINS)
        finally:
            components.close()

    def test_pass_keeps_local_writes_pending(self, store: LocalRecordStore) -> None:
        """Nothing acknowledges a local-mode write, so it stays queued."""
        components = build_sync_components(ClientConfig(), store)
        try:
            games = components.coordinator(Domain.GAMES)
            games.save("local", {"title": "Azul"})

            report = components.scheduler.run_now()

            assert report.ok
            assert report.flushed == 0
            assert components.scheduler.count_pending() == 1
            stored = games.list("local")[0]
            assert stored.sync_status is SyncStatus.PENDING
            assert stored.updated_at_remote is None
        finally:
            components.close()

    def test_local_writes_and_deletes(self, store: LocalRecordStore) -> None:
        """Local mode supports writes and deletes of known records."""
        components = build_sync_components(ClientConfig(), store)
        try:
            games = components.coordinator(Domain.GAMES)
            record = games.save("local", {"title": "Azul"})
            assert games.list("local")[0].sync_status is SyncStatus.PENDING

            games.delete("local", record.id)
            assert games.list("local") == []

            with pytest.raises(UnsupportedInOfflineMode):
                games.delete("local", "unknown")
        finally:
            components.close()

    def test_close_is_idempotent(self, store: LocalRecordStore) -> None:
        """close() can be called more than once."""
        components = build_sync_components(ClientConfig(), store)
        components.close()
        components.close()


class TestOnlineMode:
    """Tests for the online composition."""

    def test_requires_registration(self, store: LocalRecordStore) -> None:
        """Online mode without a token cannot be built."""
        config = ClientConfig(mode=AppMode.ONLINE, server_url="http://test")
        with pytest.raises(AuthError):
            build_sync_components(config, store)

    def test_components_own_http_client(self, store: LocalRecordStore) -> None:
        """The HTTP client is built once and closed with the components."""
        config = ClientConfig(
            mode=AppMode.ONLINE, user_id="u1", server_url="http://test", auth_token="tok"
        )
        http_client = httpx.Client(base_url="http://test")
        components = build_sync_components(
            config, store, http_client=http_client, is_online=lambda: True
        )

        assert components.online
        assert components.http is not None
        assert components.social.online
        assert http_client.headers["Authorization"] == "Bearer tok"

        components.close()
        assert http_client.is_closed
