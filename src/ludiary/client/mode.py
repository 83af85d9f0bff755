"""Local-only or online composition of the sync components.

This module provides:
- SyncComponents: Everything the application needs, built once per process
- build_sync_components: Picks the remote store implementation from config

The mode is decided at startup and never changes while the process runs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ludiary.client.api import HTTPClient
from ludiary.client.observe import UnreadCountObserver
from ludiary.client.remote import HTTPRemoteStore, NullRemoteStore, RemoteStore
from ludiary.client.social import InviteOutbox, SocialClient
from ludiary.client.sync.coordinator import SyncCoordinator
from ludiary.client.sync.scheduler import SyncScheduler
from ludiary.core.config import AppMode, ClientConfig
from ludiary.core.errors import AuthError
from ludiary.core.types import Domain, now_millis

if TYPE_CHECKING:
    import httpx

    from ludiary.client.store import LocalRecordStore

logger = logging.getLogger(__name__)

SYNCED_DOMAINS = (Domain.GAMES, Domain.SESSIONS, Domain.FRIENDS, Domain.GROUPS)


@dataclass
class SyncComponents:
    """Wired client components for one mode."""

    mode: AppMode
    user_id: str
    coordinators: dict[Domain, SyncCoordinator]
    social: SocialClient
    outbox: InviteOutbox
    unread: UnreadCountObserver
    scheduler: SyncScheduler
    http: HTTPClient | None = None
    _closed: bool = field(default=False, repr=False)

    @property
    def online(self) -> bool:
        return self.mode is AppMode.ONLINE

    def coordinator(self, domain: Domain) -> SyncCoordinator:
        """Coordinator for a domain."""
        return self.coordinators[domain]

    def close(self) -> None:
        """Stop background jobs and release the HTTP client."""
        if self._closed:
            return
        self._closed = True
        self.scheduler.stop()
        if self.http is not None:
            self.http.close()


def build_sync_components(
    config: ClientConfig,
    store: LocalRecordStore,
    http_client: httpx.Client | None = None,
    is_online: Callable[[], bool] | None = None,
    clock: Callable[[], int] = now_millis,
) -> SyncComponents:
    """Build the components for the configured mode.

    Args:
        config: Client settings.
        store: Local record store.
        http_client: Optional pre-built httpx client (tests).
        is_online: Availability signal; defaults to a server health check
            in online mode. The null store of local mode is always available.
        clock: Local clock.

    Raises:
        AuthError: Online mode without a server URL or token.
    """
    http: HTTPClient | None = None

    if config.mode is AppMode.ONLINE:
        server_config = config.server_config()
        if server_config is None:
            raise AuthError("Online mode requires a registered server (run 'ludiary register')")
        http = HTTPClient(server_config, client=http_client)
        remotes: dict[Domain, RemoteStore] = {
            d: HTTPRemoteStore(http, d) for d in SYNCED_DOMAINS
        }
        if is_online is None:
            is_online = http.health_check
    else:
        remotes = {d: NullRemoteStore(d) for d in SYNCED_DOMAINS}
        if is_online is None:
            is_online = lambda: True  # noqa: E731

    offline_by_design = config.mode is AppMode.LOCAL
    coordinators = {
        d: SyncCoordinator(
            d, store, remotes[d], clock=clock, offline_by_design=offline_by_design
        )
        for d in SYNCED_DOMAINS
    }
    social = SocialClient(http)
    outbox = InviteOutbox(store, social, config.user_id, clock=clock)
    unread = UnreadCountObserver(http.get_unread_count if http is not None else None)
    scheduler = SyncScheduler(
        coordinators,
        store,
        config.user_id,
        outbox=outbox,
        is_online=is_online,
        interval_minutes=config.sync_interval_minutes,
        clock=clock,
    )

    logger.info("Sync components built in %s mode for %s", config.mode.value, config.user_id)
    return SyncComponents(
        mode=config.mode,
        user_id=config.user_id,
        coordinators=coordinators,
        social=social,
        outbox=outbox,
        unread=unread,
        scheduler=scheduler,
        http=http,
    )
