"""Pytest fixtures for integration tests.

Clients talk to a real server application through FastAPI's TestClient,
each device with its own local store and HTTP client.
"""

from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ludiary.client.api import HTTPClient
from ludiary.client.mode import SyncComponents, build_sync_components
from ludiary.client.store import LocalRecordStore
from ludiary.core.config import AppMode, ClientConfig, ServerConfig
from ludiary.core.types import Domain
from ludiary.server.app import create_app
from ludiary.server.database import Database

SERVER_URL = "http://testserver"


@dataclass
class TestServer:
    """Container for test server resources."""

    db: Database
    app: FastAPI

    def register(self, display_name: str) -> ClientConfig:
        """Register a user and return a ready online config."""
        with HTTPClient(
            ServerConfig(server_url=SERVER_URL, token=""), client=TestClient(self.app)
        ) as client:
            user = client.register_user(display_name)
        return ClientConfig(
            mode=AppMode.ONLINE,
            user_id=user.uid,
            server_url=SERVER_URL,
            auth_token=user.token,
            friend_code=user.friend_code,
        )


@dataclass
class Device:
    """One client installation of a user."""

    name: str
    config: ClientConfig
    store: LocalRecordStore
    components: SyncComponents

    @property
    def uid(self) -> str:
        return self.config.user_id

    def sync(self) -> Any:
        report = self.components.scheduler.run_now()
        assert report.ok, report
        return report

    def records(self, domain: Domain, owner_id: str | None = None) -> dict[str, dict]:
        """Visible payloads of a collection keyed by record id."""
        coordinator = self.components.coordinator(domain)
        return {r.id: r.payload for r in coordinator.list(owner_id or self.uid)}


@pytest.fixture
def test_server(tmp_path: Path) -> Generator[TestServer, None, None]:
    """Create a server application on a fresh database."""
    db_path = tmp_path / "server" / "test.db"
    db = Database(db_path)
    yield TestServer(db=db, app=create_app(db))
    db.close()


@pytest.fixture
def device_factory(
    tmp_path: Path, test_server: TestServer
) -> Generator[Any, None, None]:
    """Factory fixture to create devices for registered users."""
    devices: list[Device] = []

    def _create_device(name: str, config: ClientConfig) -> Device:
        store = LocalRecordStore(tmp_path / "clients" / f"{name}.db")
        components = build_sync_components(
            config,
            store,
            http_client=TestClient(test_server.app),
            is_online=lambda: True,
        )
        device = Device(name=name, config=config, store=store, components=components)
        devices.append(device)
        return device

    yield _create_device

    for device in devices:
        device.components.close()
        device.store.close()
