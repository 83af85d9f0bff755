"""Sync coordinator for one domain.

This module provides:
- SyncCoordinator: Keeps the local record store consistent with the
  remote store for one domain, and pushes local pending writes outward

The coordinator never schedules itself and holds no locks: callers must
not run two passes for the same (domain, owner) at once. The
SyncScheduler takes care of that for the process.

Conflict policy (last writer wins, by timestamp):

    | Local record     | Remote entry          | Action                      |
    |------------------|-----------------------|-----------------------------|
    | absent           | upsert                | insert CLEAN                |
    | absent           | delete                | nothing                     |
    | CLEAN            | newer than local copy | overwrite / purge           |
    | PENDING/DELETED  | newer than local edit | overwrite / purge           |
    | PENDING/DELETED  | same age or older     | keep local, pushed later    |

The initial full pull skips the table: remote state always wins.

When the server has purged deletes newer than the cursor, the pull turns
into a full read under the same table, and CLEAN records the server no
longer has are dropped.

Cursor rule: the cursor is advanced once per batch, to the highest
updated_at of the entries processed so far, and only after they were
written. A cancelled or failed batch advances it to the last entry that
was fully applied and no further.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from ludiary.client.store import Record
from ludiary.client.sync.types import CancelCheck, FlushResult, PullResult, PushWarning
from ludiary.core.errors import (
    NotFoundError,
    RejectedError,
    ResyncRequiredError,
    SyncCancelledError,
    TransientError,
    UnsupportedInOfflineMode,
    UnsupportedOperationError,
)
from ludiary.core.types import Domain, SyncStatus, now_millis

if TYPE_CHECKING:
    from ludiary.client.api import RemoteEntry
    from ludiary.client.remote import RemoteStore
    from ludiary.client.store import LocalRecordStore

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """Per-domain sync driver.

    Usage:
        coordinator = SyncCoordinator(Domain.GAMES, store, remote)

        coordinator.save(uid, {"title": "Carcassonne"})
        coordinator.initial_sync_if_needed(uid)
        coordinator.sync_pending(uid)
        coordinator.sync_down_incremental(uid)
    """

    def __init__(
        self,
        domain: Domain,
        store: LocalRecordStore,
        remote: RemoteStore,
        clock: Callable[[], int] = now_millis,
        offline_by_design: bool = False,
    ) -> None:
        """Initialize the coordinator.

        Args:
            domain: Collection handled by this coordinator.
            store: Local record store.
            remote: Remote store for the same domain.
            clock: Local clock in epoch millis.
            offline_by_design: True in local-only mode.
        """
        self._domain = domain
        self._store = store
        self._remote = remote
        self._clock = clock
        self._offline_by_design = offline_by_design

    @property
    def domain(self) -> Domain:
        """Domain handled by this coordinator."""
        return self._domain

    # === Local writes ===

    def save(
        self,
        owner_id: str,
        payload: dict[str, Any],
        record_id: str | None = None,
    ) -> Record:
        """Create or edit a record locally and queue it for push.

        Args:
            owner_id: Owner partition.
            payload: Domain fields.
            record_id: Existing id, or None to create a new record.

        Returns:
            The stored PENDING record.

        Raises:
            UnsupportedOperationError: For server-managed domains.
        """
        if self._domain.server_managed:
            raise UnsupportedOperationError(
                f"{self._domain.value} records are written by the relationship service"
            )

        record_id = record_id or str(uuid.uuid4())
        existing = self._store.get(self._domain, owner_id, record_id)
        record = Record(
            id=record_id,
            owner_id=owner_id,
            payload=dict(payload),
            sync_status=SyncStatus.PENDING,
            updated_at_local=self._next_local_ts(existing),
            updated_at_remote=existing.updated_at_remote if existing else None,
            version=(existing.version + 1) if existing else 1,
        )
        self._store.upsert(self._domain, record)
        logger.debug("Queued %s/%s v%d", self._domain.value, record_id, record.version)
        return record

    def delete(self, owner_id: str, record_id: str) -> None:
        """Delete a record locally.

        Records the server has never seen are removed at once. Others
        become tombstones until the delete is acknowledged, in local mode
        too, so the server copy is deleted once the client goes online.

        Raises:
            UnsupportedInOfflineMode: Local mode, id unknown locally (there
                is no remote to look it up in).
            NotFoundError: Online mode, id unknown locally.
        """
        existing = self._store.get(self._domain, owner_id, record_id)
        if existing is None or existing.is_deleted:
            if self._offline_by_design:
                raise UnsupportedInOfflineMode(
                    f"Cannot delete unknown {self._domain.value} record {record_id} "
                    "in local mode"
                )
            raise NotFoundError(f"{self._domain.value} record {record_id} not found")

        if existing.updated_at_remote is None:
            self._store.purge(self._domain, owner_id, record_id)
            logger.debug("Purged never-synced %s/%s", self._domain.value, record_id)
            return

        self._store.soft_delete(
            self._domain, owner_id, record_id, self._next_local_ts(existing)
        )

    def list(self, owner_id: str) -> list[Record]:
        """Visible (non-tombstoned) records of an owner."""
        return self._store.list_records(self._domain, owner_id)

    def count_pending(self, owner_id: str) -> int:
        """Number of records still to push (for badges)."""
        return self._store.count_pending(self._domain, owner_id)

    # === Pull ===

    def initial_sync_if_needed(
        self,
        owner_id: str,
        cancel_check: CancelCheck | None = None,
    ) -> PullResult:
        """Run a full pull if this (domain, owner) was never synced.

        Returns:
            PullResult; applied=0 and the existing cursor if a cursor
            already exists.
        """
        cursor = self._store.get_cursor(self._domain, owner_id)
        if cursor is not None:
            return PullResult(cursor=cursor)

        self._check_cancel(cancel_check)
        entries = self._remote.pull_changed_since(owner_id, None)
        logger.info(
            "Initial %s sync for %s: %d entries", self._domain.value, owner_id, len(entries)
        )
        return self._apply_batch(
            owner_id, entries, floor=None, cancel_check=cancel_check, remote_wins=True
        )

    def sync_down_incremental(
        self,
        owner_id: str,
        since_override: int | None = None,
        cancel_check: CancelCheck | None = None,
    ) -> PullResult:
        """Pull and apply changes newer than the cursor.

        Args:
            owner_id: Owner partition.
            since_override: Watermark to use instead of the stored cursor.
            cancel_check: Optional cancellation callback.

        Returns:
            PullResult with the number of applied entries and new cursor.
        """
        since = since_override
        if since is None:
            since = self._store.get_cursor(self._domain, owner_id)

        self._check_cancel(cancel_check)
        try:
            entries = self._remote.pull_changed_since(owner_id, since)
        except ResyncRequiredError as e:
            logger.warning("Resyncing %s for %s: %s", self._domain.value, owner_id, e.message)
            return self._resync(owner_id, e.purged_through, cancel_check)
        if entries:
            logger.info(
                "Pulled %d %s changes for %s since %s",
                len(entries), self._domain.value, owner_id, since,
            )
        return self._apply_batch(owner_id, entries, floor=since, cancel_check=cancel_check)

    def _resync(
        self,
        owner_id: str,
        purged_through: int | None,
        cancel_check: CancelCheck | None,
    ) -> PullResult:
        """Read the whole collection again after the server purged deletes.

        Pending local writes keep the usual conflict policy and are pushed
        later. CLEAN records missing from the server were deleted while
        this client was behind and are dropped.
        """
        entries = self._remote.pull_changed_since(owner_id, None)
        # The cursor only moves once the stale records are gone
        result = self._apply_batch(
            owner_id, entries, floor=None, cancel_check=cancel_check, advance_cursor=False
        )

        present = {entry.id for entry in entries}
        for record in self._store.list_records(self._domain, owner_id):
            if record.sync_status is SyncStatus.CLEAN and record.id not in present:
                self._store.purge(self._domain, owner_id, record.id)
                result.applied += 1
                logger.debug("Dropped purged %s/%s", self._domain.value, record.id)

        marks = [entry.updated_at_remote for entry in entries]
        if purged_through is not None:
            marks.append(purged_through)
        if marks:
            result.cursor = self._store.set_cursor(self._domain, owner_id, max(marks))
        return result

    def _apply_batch(
        self,
        owner_id: str,
        entries: list[RemoteEntry],
        floor: int | None,
        cancel_check: CancelCheck | None,
        remote_wins: bool = False,
        advance_cursor: bool = True,
    ) -> PullResult:
        """Apply entries oldest first, then advance the cursor."""
        result = PullResult(cursor=self._store.get_cursor(self._domain, owner_id))
        processed_max: int | None = None

        ordered = sorted(entries, key=lambda e: e.updated_at_remote)
        try:
            for entry in ordered:
                self._check_cancel(cancel_check)

                if floor is not None and entry.updated_at_remote <= floor:
                    result.skipped += 1
                    continue

                if self._apply_entry(owner_id, entry, remote_wins):
                    result.applied += 1
                else:
                    result.skipped += 1
                processed_max = entry.updated_at_remote
        finally:
            if processed_max is not None and advance_cursor:
                result.cursor = self._store.set_cursor(
                    self._domain, owner_id, processed_max
                )

        return result

    def _apply_entry(self, owner_id: str, entry: RemoteEntry, remote_wins: bool = False) -> bool:
        """Apply one remote entry under the conflict policy.

        With remote_wins (initial sync) the entry always replaces local state.

        Returns:
            True if the local store was changed.
        """
        local = self._store.get(self._domain, owner_id, entry.id)

        if local is not None and not remote_wins:
            if local.sync_status.is_pending:
                # Ties favor the pending local write
                if entry.updated_at_remote <= local.updated_at_local:
                    logger.debug(
                        "Keeping pending %s/%s (local %d >= remote %d)",
                        self._domain.value, entry.id,
                        local.updated_at_local, entry.updated_at_remote,
                    )
                    return False
            elif (
                local.updated_at_remote is not None
                and entry.updated_at_remote <= local.updated_at_remote
            ):
                return False

        if entry.is_deleted:
            if local is None:
                return False
            self._store.purge(self._domain, owner_id, entry.id)
            logger.debug("Applied remote delete %s/%s", self._domain.value, entry.id)
            return True

        self._store.upsert(
            self._domain,
            Record(
                id=entry.id,
                owner_id=owner_id,
                payload=entry.payload,
                sync_status=SyncStatus.CLEAN,
                updated_at_local=entry.updated_at_remote,
                updated_at_remote=entry.updated_at_remote,
                version=max(entry.version, local.version if local else 0),
            ),
        )
        logger.debug("Applied remote %s/%s", self._domain.value, entry.id)
        return True

    # === Push ===

    def sync_pending(
        self,
        owner_id: str,
        cancel_check: CancelCheck | None = None,
    ) -> FlushResult:
        """Push PENDING and DELETED_PENDING records in queue order.

        A transient failure stops the pass (later records are not
        attempted). A rejection is reported as a warning and the pass
        moves on; the rejected record stays PENDING.

        In local mode nothing is pushed: writes stay PENDING until the
        client switches to online mode.

        Returns:
            FlushResult with the number of acknowledged records.
        """
        result = FlushResult()
        if self._domain.server_managed:
            return result
        if self._offline_by_design:
            logger.debug(
                "Local mode, keeping %d %s writes pending",
                self.count_pending(owner_id), self._domain.value,
            )
            return result

        for record in self._store.list_pending(self._domain, owner_id):
            self._check_cancel(cancel_check)
            try:
                if record.is_deleted:
                    self._remote.push_delete(owner_id, record.id)
                    current = self._store.get(self._domain, owner_id, record.id)
                    if current is not None and current.updated_at_local == record.updated_at_local:
                        self._store.purge(self._domain, owner_id, record.id)
                else:
                    remote_ts = self._remote.push(owner_id, record)
                    self._store.mark_clean(
                        self._domain,
                        owner_id,
                        record.id,
                        remote_ts,
                        record.version,
                        pushed_local_ts=record.updated_at_local,
                    )
            except TransientError as e:
                logger.warning(
                    "Stopping %s flush for %s at %s: %s",
                    self._domain.value, owner_id, record.id, e,
                )
                result.interrupted = True
                break
            except RejectedError as e:
                logger.warning(
                    "Server rejected %s/%s, keeping it pending: %s",
                    self._domain.value, record.id, e.message,
                )
                result.warnings.append(PushWarning(record_id=record.id, reason=e.message))
                continue
            result.flushed += 1

        if result.flushed:
            logger.info(
                "Flushed %d %s records for %s", result.flushed, self._domain.value, owner_id
            )
        return result

    # === Helpers ===

    def _next_local_ts(self, existing: Record | None) -> int:
        """Local timestamp that never goes backwards for a record."""
        now = self._clock()
        if existing is not None and now <= existing.updated_at_local:
            return existing.updated_at_local + 1
        return now

    def _check_cancel(self, cancel_check: CancelCheck | None) -> None:
        if cancel_check is not None and cancel_check():
            raise SyncCancelledError(f"{self._domain.value} sync cancelled")
