"""Shared fixtures for server tests."""

from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from ludiary.server.app import create_app
from ludiary.server.database import Database


@pytest.fixture
def db(tmp_path: Path) -> Generator[Database, None, None]:
    """Create a test database."""
    database = Database(tmp_path / "test.db")
    yield database
    database.close()


@pytest.fixture
def client(db: Database) -> Generator[TestClient, None, None]:
    """Test client on an app using the test database."""
    with TestClient(create_app(db)) as test_client:
        yield test_client


@pytest.fixture
def register(client: TestClient) -> Callable[[str], dict]:
    """Register a user through the API.

    Returns the registration body plus ready-made auth headers.
    """

    def _register(name: str) -> dict:
        response = client.post("/api/users/register", json={"displayName": name})
        assert response.status_code == 201
        body = response.json()
        body["headers"] = {"Authorization": f"Bearer {body['token']}"}
        return body

    return _register
