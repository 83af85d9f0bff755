"""Client-side sync scheduling.

This module provides:
- SyncScheduler: "Run now" and "run periodically" entry points that
  drive every domain coordinator in turn

A pass runs, for each domain and owner:
1. initial_sync_if_needed
2. sync_down_incremental
3. sync_pending

The pull runs before the push, so a pending local edit older than a
remote write is overwritten rather than pushed over it.

Domains are isolated: a failure in one is logged and reported, the
others still run. Only one pass runs at a time in the process; a run
requested while another is active is skipped.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ludiary.client.sync.types import DomainReport, SyncReport
from ludiary.core.errors import AuthError, LudiaryError, SyncCancelledError
from ludiary.core.types import Domain, SyncState, now_millis

if TYPE_CHECKING:
    from ludiary.client.social import InviteOutbox
    from ludiary.client.store import LocalRecordStore
    from ludiary.client.sync.coordinator import SyncCoordinator

logger = logging.getLogger(__name__)

# Pull relationships first so group-scoped sessions see current groups
DOMAIN_ORDER = (Domain.FRIENDS, Domain.GROUPS, Domain.GAMES, Domain.SESSIONS)


class SyncScheduler:
    """Runs sync passes on demand or on an interval."""

    def __init__(
        self,
        coordinators: dict[Domain, SyncCoordinator],
        store: LocalRecordStore,
        user_id: str,
        outbox: InviteOutbox | None = None,
        is_online: Callable[[], bool] = lambda: True,
        interval_minutes: int = 360,
        clock: Callable[[], int] = now_millis,
    ) -> None:
        """Initialize the scheduler.

        Args:
            coordinators: One coordinator per synced domain.
            store: Local store (sync state and group lookup).
            user_id: Current user.
            outbox: Offline friend invites to send before pulling.
            is_online: Availability signal checked before each pass.
            interval_minutes: Period of the automatic job.
            clock: Clock used for the last-sync timestamp.
        """
        self._coordinators = coordinators
        self._store = store
        self._user_id = user_id
        self._outbox = outbox
        self._is_online = is_online
        self._interval_minutes = interval_minutes
        self._clock = clock
        self._run_lock = threading.Lock()
        self._cancel_event = threading.Event()
        self._scheduler: BackgroundScheduler | None = None

    @property
    def is_running(self) -> bool:
        """True while a pass is in progress."""
        return self._run_lock.locked()

    def owners_for(self, domain: Domain) -> list[str]:
        """Owner partitions synced for a domain.

        Sessions are also synced for every group the user belongs to.
        """
        owners = [self._user_id]
        if domain is Domain.SESSIONS:
            for group in self._store.list_records(Domain.GROUPS, self._user_id):
                if group.id not in owners:
                    owners.append(group.id)
        return owners

    def count_pending(self) -> int:
        """Pending writes across all domains (badge value)."""
        total = 0
        for domain, coordinator in self._coordinators.items():
            for owner_id in self.owners_for(domain):
                total += coordinator.count_pending(owner_id)
        if self._outbox is not None:
            total += len(self._outbox.pending())
        return total

    def cancel(self) -> None:
        """Ask the running pass to stop at the next entry."""
        self._cancel_event.set()

    def run_now(self) -> SyncReport:
        """Run one pass immediately.

        Returns:
            SyncReport; ``skipped`` is set when a pass was already running
            or the device is offline.
        """
        if not self._run_lock.acquire(blocking=False):
            logger.debug("Sync already running, skipping")
            return SyncReport(skipped=True, reason="already running")

        try:
            if not self._is_online():
                logger.info("Offline, skipping sync")
                self._store.set_state("state", SyncState.OFFLINE.value)
                return SyncReport(skipped=True, reason="offline")

            self._cancel_event.clear()
            self._store.set_state("state", SyncState.SYNCING.value)
            report = self._run_pass()

            if report.ok:
                self._store.set_last_sync_at(self._clock())
                self._store.set_state("state", SyncState.IDLE.value)
            else:
                self._store.set_state("state", SyncState.ERROR.value)
            logger.info(
                "Sync pass done: %d pushed, %d applied, %d warnings",
                report.flushed, report.applied, len(report.warnings),
            )
            return report
        finally:
            self._run_lock.release()

    def _run_pass(self) -> SyncReport:
        report = SyncReport()
        cancel_check = self._cancel_event.is_set

        if self._outbox is not None:
            invites = DomainReport(domain=Domain.INVITES, owner_id=self._user_id)
            report.reports.append(invites)
            try:
                invites.flush = self._outbox.flush(cancel_check)
            except SyncCancelledError:
                invites.error = "cancelled"
                report.reason = "cancelled"
                return report
            except AuthError as e:
                invites.error = e.message
                report.reason = "unauthenticated"
                return report
            except LudiaryError as e:
                logger.warning("Invite outbox failed: %s", e)
                invites.error = e.message

        for domain in DOMAIN_ORDER:
            coordinator = self._coordinators.get(domain)
            if coordinator is None:
                continue
            for owner_id in self.owners_for(domain):
                domain_report = DomainReport(domain=domain, owner_id=owner_id)
                report.reports.append(domain_report)
                try:
                    domain_report.initial = coordinator.initial_sync_if_needed(
                        owner_id, cancel_check=cancel_check
                    )
                    domain_report.pull = coordinator.sync_down_incremental(
                        owner_id, cancel_check=cancel_check
                    )
                    domain_report.flush = coordinator.sync_pending(
                        owner_id, cancel_check=cancel_check
                    )
                except SyncCancelledError:
                    logger.info("Sync cancelled during %s", domain.value)
                    domain_report.error = "cancelled"
                    report.reason = "cancelled"
                    return report
                except AuthError as e:
                    # Every domain shares the token; no point trying the others
                    logger.error("Authentication failed: %s", e.message)
                    domain_report.error = e.message
                    report.reason = "unauthenticated"
                    return report
                except LudiaryError as e:
                    logger.warning("Sync of %s/%s failed: %s", domain.value, owner_id, e)
                    domain_report.error = e.message
                except Exception as e:
                    logger.exception("Unexpected error syncing %s/%s", domain.value, owner_id)
                    domain_report.error = str(e)
        return report

    # === Periodic job ===

    def _scheduled_job(self) -> None:
        """Job function for the periodic sync."""
        if not self._store.is_auto_sync_enabled():
            logger.debug("Auto-sync disabled, skipping scheduled pass")
            return
        try:
            self.run_now()
        except Exception:
            logger.exception("Error during scheduled sync")

    def start(self) -> None:
        """Start the periodic job."""
        if self._scheduler is not None:
            return

        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self._scheduled_job,
            trigger=IntervalTrigger(minutes=self._interval_minutes),
            id="periodic_sync",
            name="Periodic sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info("Sync scheduler started (every %d minutes)", self._interval_minutes)

    def stop(self) -> None:
        """Stop the periodic job and cancel a running pass."""
        if self._scheduler is not None:
            self.cancel()
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Sync scheduler stopped")
