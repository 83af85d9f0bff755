"""Remote store adapters.

This module provides:
- RemoteStore: Protocol every remote store implementation satisfies
- NullRemoteStore: Local-only mode; nothing is sent anywhere
- HTTPRemoteStore: Online mode; talks to the ludiary server records API

Both implementations are bound to one domain. The coordinator only
distinguishes two push failures: TransientNetworkError (retry later,
keep the queue order) and RejectedError (the server will never accept
this write as it is).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from ludiary.core.errors import (
    AuthError,
    LudiaryError,
    RejectedError,
    ResyncRequiredError,
    TransientError,
    UnsupportedInOfflineMode,
)
from ludiary.core.types import Domain

if TYPE_CHECKING:
    from ludiary.client.api import HTTPClient, RemoteEntry
    from ludiary.client.store import Record

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 500


class RemoteStore(Protocol):
    """Authoritative backend for one domain."""

    domain: Domain

    def push(self, owner_id: str, record: Record) -> int:
        """Upsert a record. Returns the server's updated_at."""
        ...

    def push_delete(self, owner_id: str, record_id: str) -> int:
        """Soft-delete a record. Returns the tombstone's updated_at."""
        ...

    def pull_changed_since(self, owner_id: str, since: int | None) -> list[RemoteEntry]:
        """Entries changed strictly after ``since``, oldest first.

        ``since=None`` reads the whole collection. Raises
        ResyncRequiredError when deletes after ``since`` were purged.
        """
        ...


class NullRemoteStore:
    """Remote store used in local-only mode.

    Pulls return nothing. Pushes are refused: there is no server to
    acknowledge them, so local writes stay PENDING and go out with the
    first online pass.
    """

    def __init__(self, domain: Domain) -> None:
        self.domain = domain

    def push(self, owner_id: str, record: Record) -> int:
        raise UnsupportedInOfflineMode(f"Cannot push {self.domain.value} records in local mode")

    def push_delete(self, owner_id: str, record_id: str) -> int:
        raise UnsupportedInOfflineMode(f"Cannot push {self.domain.value} deletes in local mode")

    def pull_changed_since(self, owner_id: str, since: int | None) -> list[RemoteEntry]:
        return []


class HTTPRemoteStore:
    """Remote store backed by the server's ``/api/records`` routes."""

    def __init__(
        self,
        client: HTTPClient,
        domain: Domain,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        """Initialize the adapter.

        Args:
            client: Shared HTTP client (owned by the caller).
            domain: Collection this adapter reads and writes.
            page_size: Number of entries requested per page when pulling.
        """
        self.domain = domain
        self._client = client
        self._page_size = page_size

    def push(self, owner_id: str, record: Record) -> int:
        try:
            return self._client.put_record(
                self.domain, owner_id, record.id, record.payload, record.version
            )
        except (TransientError, AuthError):
            raise
        except LudiaryError as e:
            raise RejectedError(e.message, status_code=e.status_code) from e

    def push_delete(self, owner_id: str, record_id: str) -> int:
        try:
            return self._client.delete_record(self.domain, owner_id, record_id)
        except (TransientError, AuthError):
            raise
        except LudiaryError as e:
            raise RejectedError(e.message, status_code=e.status_code) from e

    def pull_changed_since(self, owner_id: str, since: int | None) -> list[RemoteEntry]:
        """Read every page of changes after ``since``.

        Pages are chained on the last entry's timestamp; the server
        assigns strictly increasing timestamps per collection, so no
        entry can be skipped between two pages.

        Raises:
            ResyncRequiredError: Deletes after ``since`` were purged.
        """
        entries: list[RemoteEntry] = []
        cursor = since
        while True:
            page = self._client.get_records(
                self.domain, owner_id, cursor, limit=self._page_size
            )
            if page.resync_required and since is not None:
                raise ResyncRequiredError(
                    f"{self.domain.value} deletes after {since} were purged",
                    purged_through=page.purged_through,
                )
            entries.extend(page.entries)
            if not page.has_more or not page.entries:
                break
            cursor = page.entries[-1].updated_at_remote
            logger.debug(
                "Fetching next %s page for %s after %d", self.domain.value, owner_id, cursor
            )
        return entries
