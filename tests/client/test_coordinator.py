"""Tests for the per-domain sync coordinator."""

from collections.abc import Generator
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from ludiary.client.api import RemoteEntry
from ludiary.client.store import LocalRecordStore, Record
from ludiary.client.sync.coordinator import SyncCoordinator
from ludiary.core.errors import (
    LudiaryError,
    NotFoundError,
    RejectedError,
    ResyncRequiredError,
    SyncCancelledError,
    TransientNetworkError,
    UnsupportedInOfflineMode,
    UnsupportedOperationError,
)
from ludiary.core.types import Domain, SyncStatus

OWNER = "u1"


class Clock:
    """Manually advanced clock in epoch millis."""

    def __init__(self, now: int = 1000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


class FakeRemoteStore:
    """In-memory remote store assigning increasing timestamps."""

    def __init__(self, domain: Domain = Domain.GAMES, start: int = 10_000) -> None:
        self.domain = domain
        self.ts = start
        self.entries: dict[str, RemoteEntry] = {}
        self.failures: dict[str, LudiaryError] = {}
        self.attempted: list[str] = []
        self.pull_calls: list[int | None] = []

    def _tick(self) -> int:
        self.ts += 1
        return self.ts

    def write(self, record_id: str, payload: dict, deleted: bool = False) -> RemoteEntry:
        """Simulate a write made by another device."""
        entry = RemoteEntry(
            id=record_id,
            is_deleted=deleted,
            updated_at_remote=self._tick(),
            payload={} if deleted else payload,
            version=1,
        )
        self.entries[record_id] = entry
        return entry

    def push(self, owner_id: str, record: Record) -> int:
        self.attempted.append(record.id)
        if record.id in self.failures:
            raise self.failures[record.id]
        return self.write(record.id, dict(record.payload)).updated_at_remote

    def push_delete(self, owner_id: str, record_id: str) -> int:
        self.attempted.append(record_id)
        if record_id in self.failures:
            raise self.failures[record_id]
        return self.write(record_id, {}, deleted=True).updated_at_remote

    def pull_changed_since(self, owner_id: str, since: int | None) -> list[RemoteEntry]:
        self.pull_calls.append(since)
        return sorted(
            (e for e in self.entries.values() if since is None or e.updated_at_remote > since),
            key=lambda e: e.updated_at_remote,
        )


class PurgingRemoteStore(FakeRemoteStore):
    """Fake remote whose tombstones up to ``purged_through`` are gone."""

    def __init__(self) -> None:
        super().__init__()
        self.purged_through = 0

    def purge(self, record_id: str) -> None:
        """Simulate a delete by another device, later purged by the server."""
        del self.entries[record_id]
        self.purged_through = self._tick()

    def pull_changed_since(self, owner_id: str, since: int | None) -> list[RemoteEntry]:
        if since is not None and since < self.purged_through:
            self.pull_calls.append(since)
            raise ResyncRequiredError("purged", purged_through=self.purged_through)
        return super().pull_changed_since(owner_id, since)


def remote_entry(record_id: str, ts: int, deleted: bool = False, **payload: object) -> RemoteEntry:
    return RemoteEntry(
        id=record_id, is_deleted=deleted, updated_at_remote=ts, payload=dict(payload), version=1
    )


@pytest.fixture
def store(tmp_path: Path) -> Generator[LocalRecordStore, None, None]:
    """Create a test store."""
    s = LocalRecordStore(tmp_path / "records.db")
    yield s
    s.close()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def coordinator(store: LocalRecordStore, remote: FakeRemoteStore, clock: Clock) -> SyncCoordinator:
    return SyncCoordinator(Domain.GAMES, store, remote, clock=clock)


def with_static_remote(
    store: LocalRecordStore, entries: list[RemoteEntry], clock: Clock
) -> SyncCoordinator:
    """Coordinator whose remote returns ``entries`` whatever the watermark."""
    remote = MagicMock()
    remote.pull_changed_since.return_value = entries
    return SyncCoordinator(Domain.GAMES, store, remote, clock=clock)


class TestSave:
    """Tests for local writes."""

    def test_save_creates_pending_record(
        self, coordinator: SyncCoordinator, store: LocalRecordStore
    ) -> None:
        """A new record should be PENDING, version 1, with a generated id."""
        record = coordinator.save(OWNER, {"title": "Azul"})

        assert record.id
        stored = store.get(Domain.GAMES, OWNER, record.id)
        assert stored is not None
        assert stored.sync_status is SyncStatus.PENDING
        assert stored.version == 1
        assert stored.updated_at_local == 1000
        assert stored.updated_at_remote is None

    def test_edit_bumps_version_and_keeps_remote_ts(
        self, coordinator: SyncCoordinator, store: LocalRecordStore, clock: Clock
    ) -> None:
        """Editing a synced record should keep its remote timestamp."""
        record = coordinator.save(OWNER, {"title": "Azul"})
        store.mark_clean(Domain.GAMES, OWNER, record.id, 5000, 1)
        clock.now = 2000

        edited = coordinator.save(OWNER, {"title": "Azul 2"}, record_id=record.id)

        assert edited.version == 2
        assert edited.updated_at_remote == 5000
        assert edited.updated_at_local == 2000
        assert edited.sync_status is SyncStatus.PENDING

    def test_local_timestamp_never_goes_backwards(
        self, coordinator: SyncCoordinator, clock: Clock
    ) -> None:
        """Two edits within the same millisecond should still be ordered."""
        record = coordinator.save(OWNER, {"n": 1})
        edited = coordinator.save(OWNER, {"n": 2}, record_id=record.id)
        clock.now = 500
        again = coordinator.save(OWNER, {"n": 3}, record_id=record.id)

        assert edited.updated_at_local == 1001
        assert again.updated_at_local == 1002

    def test_server_managed_domain_is_read_only(
        self, store: LocalRecordStore, remote: FakeRemoteStore
    ) -> None:
        """friends/groups records cannot be written locally."""
        coordinator = SyncCoordinator(Domain.FRIENDS, store, remote)
        with pytest.raises(UnsupportedOperationError):
            coordinator.save(OWNER, {"status": "ACCEPTED"})


class TestDelete:
    """Tests for local deletes."""

    def test_never_synced_record_is_purged(
        self, coordinator: SyncCoordinator, store: LocalRecordStore
    ) -> None:
        """A record the server never saw should disappear at once."""
        record = coordinator.save(OWNER, {"title": "Azul"})
        coordinator.delete(OWNER, record.id)
        assert store.get(Domain.GAMES, OWNER, record.id) is None
        assert coordinator.count_pending(OWNER) == 0

    def test_synced_record_becomes_tombstone(
        self, coordinator: SyncCoordinator, store: LocalRecordStore
    ) -> None:
        """A synced record should wait for the delete acknowledgement."""
        record = coordinator.save(OWNER, {"title": "Azul"})
        store.mark_clean(Domain.GAMES, OWNER, record.id, 5000, 1)

        coordinator.delete(OWNER, record.id)

        stored = store.get(Domain.GAMES, OWNER, record.id)
        assert stored is not None
        assert stored.sync_status is SyncStatus.DELETED_PENDING
        assert coordinator.list(OWNER) == []
        assert coordinator.count_pending(OWNER) == 1

    def test_unknown_id_online(self, coordinator: SyncCoordinator) -> None:
        """Online mode should report an unknown id as not found."""
        with pytest.raises(NotFoundError):
            coordinator.delete(OWNER, "missing")

    def test_unknown_id_local_mode(self, store: LocalRecordStore, clock: Clock) -> None:
        """Local mode cannot look up unknown ids anywhere."""
        coordinator = SyncCoordinator(
            Domain.GAMES, store, FakeRemoteStore(), clock=clock, offline_by_design=True
        )
        with pytest.raises(UnsupportedInOfflineMode):
            coordinator.delete(OWNER, "missing")

    def test_local_mode_keeps_tombstone_of_synced_record(
        self, store: LocalRecordStore, clock: Clock
    ) -> None:
        """A record the server has must be deleted there once back online."""
        coordinator = SyncCoordinator(
            Domain.GAMES, store, FakeRemoteStore(), clock=clock, offline_by_design=True
        )
        synced = coordinator.save(OWNER, {"title": "Azul"})
        store.mark_clean(Domain.GAMES, OWNER, synced.id, 1000, 1)
        local_only = coordinator.save(OWNER, {"title": "Catan"})

        coordinator.delete(OWNER, synced.id)
        coordinator.delete(OWNER, local_only.id)

        tombstone = store.get(Domain.GAMES, OWNER, synced.id)
        assert tombstone is not None
        assert tombstone.sync_status is SyncStatus.DELETED_PENDING
        assert store.get(Domain.GAMES, OWNER, local_only.id) is None


class TestInitialSync:
    """Tests for the initial full pull."""

    def test_pulls_everything_and_sets_cursor(
        self, coordinator: SyncCoordinator, store: LocalRecordStore, remote: FakeRemoteStore
    ) -> None:
        """Three remote records should land CLEAN with the cursor at the max."""
        e1 = remote.write("a", {"title": "A"})
        e2 = remote.write("b", {"title": "B"})
        e3 = remote.write("c", {"title": "C"})

        result = coordinator.initial_sync_if_needed(OWNER)

        assert result.applied == 3
        assert result.cursor == max(e1.updated_at_remote, e2.updated_at_remote, e3.updated_at_remote)
        assert store.get_cursor(Domain.GAMES, OWNER) == e3.updated_at_remote
        records = store.list_records(Domain.GAMES, OWNER)
        assert [r.id for r in records] == ["a", "b", "c"]
        assert all(r.sync_status is SyncStatus.CLEAN for r in records)
        assert records[0].updated_at_remote == e1.updated_at_remote
        assert remote.pull_calls == [None]

    def test_empty_remote_leaves_cursor_unset(
        self, coordinator: SyncCoordinator, store: LocalRecordStore
    ) -> None:
        """Nothing to apply means nothing to remember."""
        result = coordinator.initial_sync_if_needed(OWNER)
        assert result.applied == 0
        assert result.cursor is None
        assert store.get_cursor(Domain.GAMES, OWNER) is None

    def test_skipped_when_cursor_exists(
        self, coordinator: SyncCoordinator, store: LocalRecordStore, remote: FakeRemoteStore
    ) -> None:
        """An owner already synced should not be pulled in full again."""
        store.set_cursor(Domain.GAMES, OWNER, 42)
        remote.write("a", {})

        result = coordinator.initial_sync_if_needed(OWNER)

        assert result.applied == 0
        assert result.cursor == 42
        assert remote.pull_calls == []

    def test_remote_wins_over_pending_local(
        self, coordinator: SyncCoordinator, store: LocalRecordStore, remote: FakeRemoteStore,
        clock: Clock,
    ) -> None:
        """During the initial pull the server copy always wins."""
        clock.now = 99_999
        record = coordinator.save(OWNER, {"title": "local"})
        remote.write(record.id, {"title": "remote"})

        coordinator.initial_sync_if_needed(OWNER)

        stored = store.get(Domain.GAMES, OWNER, record.id)
        assert stored is not None
        assert stored.payload == {"title": "remote"}
        assert stored.sync_status is SyncStatus.CLEAN


class TestIncrementalSync:
    """Tests for the incremental pull and the conflict policy."""

    def test_older_remote_keeps_offline_edit(self, store: LocalRecordStore) -> None:
        """A pending edit at 100 should survive a remote change at 50."""
        coordinator = with_static_remote(store, [remote_entry("g1", 50, title="remote")], Clock(100))
        coordinator.save(OWNER, {"title": "local"}, record_id="g1")

        result = coordinator.sync_down_incremental(OWNER)

        stored = store.get(Domain.GAMES, OWNER, "g1")
        assert stored is not None
        assert stored.payload == {"title": "local"}
        assert stored.sync_status is SyncStatus.PENDING
        assert result.applied == 0
        assert result.skipped == 1
        assert result.cursor == 50

    @pytest.mark.parametrize(
        ("remote_ts", "overwritten"),
        [(50, False), (100, False), (150, True)],
    )
    def test_last_writer_wins(
        self, store: LocalRecordStore, remote_ts: int, overwritten: bool
    ) -> None:
        """The remote entry replaces a pending edit only when strictly newer."""
        coordinator = with_static_remote(
            store, [remote_entry("g1", remote_ts, title="remote")], Clock(100)
        )
        coordinator.save(OWNER, {"title": "local"}, record_id="g1")

        coordinator.sync_down_incremental(OWNER)

        stored = store.get(Domain.GAMES, OWNER, "g1")
        assert stored is not None
        if overwritten:
            assert stored.payload == {"title": "remote"}
            assert stored.sync_status is SyncStatus.CLEAN
            assert stored.updated_at_remote == remote_ts
        else:
            assert stored.payload == {"title": "local"}
            assert stored.sync_status is SyncStatus.PENDING

    def test_newer_remote_delete_beats_pending_edit(self, store: LocalRecordStore) -> None:
        """A newer remote tombstone should purge a pending edit."""
        coordinator = with_static_remote(store, [remote_entry("g1", 200, deleted=True)], Clock(100))
        coordinator.save(OWNER, {"title": "local"}, record_id="g1")

        result = coordinator.sync_down_incremental(OWNER)

        assert store.get(Domain.GAMES, OWNER, "g1") is None
        assert result.applied == 1

    def test_remote_delete_of_unknown_record(self, store: LocalRecordStore) -> None:
        """Tombstones for records never seen locally change nothing."""
        coordinator = with_static_remote(store, [remote_entry("g1", 200, deleted=True)], Clock())

        result = coordinator.sync_down_incremental(OWNER)

        assert result.applied == 0
        assert result.cursor == 200

    def test_clean_record_updated_by_newer_entry(
        self, coordinator: SyncCoordinator, store: LocalRecordStore, remote: FakeRemoteStore
    ) -> None:
        """Changes from another device should replace clean copies."""
        remote.write("g1", {"title": "v1"})
        coordinator.initial_sync_if_needed(OWNER)
        remote.write("g1", {"title": "v2"})

        result = coordinator.sync_down_incremental(OWNER)

        stored = store.get(Domain.GAMES, OWNER, "g1")
        assert stored is not None
        assert stored.payload == {"title": "v2"}
        assert result.applied == 1

    def test_clean_record_ignores_stale_entry(self, store: LocalRecordStore) -> None:
        """A clean copy should not be replaced by an entry it already has."""
        store.upsert(
            Domain.GAMES,
            Record(
                id="g1", owner_id=OWNER, payload={"title": "current"},
                sync_status=SyncStatus.CLEAN, updated_at_local=300, updated_at_remote=300,
                version=2,
            ),
        )
        coordinator = with_static_remote(store, [remote_entry("g1", 250, title="old")], Clock())

        coordinator.sync_down_incremental(OWNER)

        stored = store.get(Domain.GAMES, OWNER, "g1")
        assert stored is not None
        assert stored.payload == {"title": "current"}

    def test_uses_cursor_as_watermark(
        self, coordinator: SyncCoordinator, store: LocalRecordStore, remote: FakeRemoteStore
    ) -> None:
        """The stored cursor should be sent as ``since``."""
        remote.write("a", {})
        coordinator.initial_sync_if_needed(OWNER)
        cursor = store.get_cursor(Domain.GAMES, OWNER)

        result = coordinator.sync_down_incremental(OWNER)

        assert remote.pull_calls[-1] == cursor
        assert result.applied == 0
        assert result.cursor == cursor

    def test_entries_at_or_below_cursor_are_skipped(self, store: LocalRecordStore) -> None:
        """Entries not strictly after the cursor are never re-applied."""
        store.set_cursor(Domain.GAMES, OWNER, 100)
        coordinator = with_static_remote(
            store,
            [remote_entry("old", 90), remote_entry("same", 100), remote_entry("new", 110)],
            Clock(),
        )

        result = coordinator.sync_down_incremental(OWNER)

        assert result.applied == 1
        assert result.skipped == 2
        assert result.cursor == 110
        assert store.get(Domain.GAMES, OWNER, "old") is None
        assert store.get(Domain.GAMES, OWNER, "same") is None

    def test_cursor_never_decreases(self, store: LocalRecordStore) -> None:
        """An older override should not move the cursor back."""
        store.set_cursor(Domain.GAMES, OWNER, 500)
        coordinator = with_static_remote(store, [remote_entry("a", 60)], Clock())

        result = coordinator.sync_down_incremental(OWNER, since_override=50)

        assert result.applied == 1
        assert result.cursor == 500
        assert store.get_cursor(Domain.GAMES, OWNER) == 500

    def test_entries_applied_in_timestamp_order(self, store: LocalRecordStore) -> None:
        """Out-of-order entries should be applied oldest first."""
        coordinator = with_static_remote(
            store,
            [remote_entry("g1", 30, title="new"), remote_entry("g1", 20, title="old")],
            Clock(),
        )

        result = coordinator.sync_down_incremental(OWNER)

        stored = store.get(Domain.GAMES, OWNER, "g1")
        assert stored is not None
        assert stored.payload == {"title": "new"}
        assert result.cursor == 30

    def test_cancel_stops_after_applied_prefix(self, store: LocalRecordStore) -> None:
        """A cancelled batch advances the cursor to the last applied entry only."""
        coordinator = with_static_remote(
            store,
            [remote_entry("a", 10), remote_entry("b", 20), remote_entry("c", 30)],
            Clock(),
        )
        calls = {"n": 0}

        def cancel_check() -> bool:
            calls["n"] += 1
            # 1: before the pull, 2: entry a, 3: entry b
            return calls["n"] >= 3

        with pytest.raises(SyncCancelledError):
            coordinator.sync_down_incremental(OWNER, cancel_check=cancel_check)

        assert store.get_cursor(Domain.GAMES, OWNER) == 10
        assert store.get(Domain.GAMES, OWNER, "a") is not None
        assert store.get(Domain.GAMES, OWNER, "b") is None

    def test_cancel_before_pull(self, coordinator: SyncCoordinator, remote: FakeRemoteStore) -> None:
        """A pass cancelled up front should not reach the remote."""
        with pytest.raises(SyncCancelledError):
            coordinator.sync_down_incremental(OWNER, cancel_check=lambda: True)
        assert remote.pull_calls == []


class TestSyncPending:
    """Tests for the pending-write flush."""

    def test_flush_marks_records_clean(
        self, coordinator: SyncCoordinator, store: LocalRecordStore, remote: FakeRemoteStore,
        clock: Clock,
    ) -> None:
        """Acknowledged records should be CLEAN with the server timestamp."""
        first = coordinator.save(OWNER, {"title": "A"})
        clock.now += 1
        second = coordinator.save(OWNER, {"title": "B"})

        result = coordinator.sync_pending(OWNER)

        assert result.flushed == 2
        assert not result.interrupted
        assert remote.attempted == [first.id, second.id]
        stored = store.get(Domain.GAMES, OWNER, first.id)
        assert stored is not None
        assert stored.sync_status is SyncStatus.CLEAN
        assert stored.updated_at_remote == remote.entries[first.id].updated_at_remote
        assert coordinator.count_pending(OWNER) == 0

    def test_transient_error_stops_the_pass(
        self, coordinator: SyncCoordinator, store: LocalRecordStore, remote: FakeRemoteStore,
        clock: Clock,
    ) -> None:
        """The failing record stays PENDING and later ones are not attempted."""
        failing = coordinator.save(OWNER, {"title": "A"})
        clock.now += 1
        later = coordinator.save(OWNER, {"title": "B"})
        remote.failures[failing.id] = TransientNetworkError("timeout")

        result = coordinator.sync_pending(OWNER)

        assert result.flushed == 0
        assert result.interrupted
        assert remote.attempted == [failing.id]
        for record_id in (failing.id, later.id):
            stored = store.get(Domain.GAMES, OWNER, record_id)
            assert stored is not None
            assert stored.sync_status is SyncStatus.PENDING

    def test_rejection_is_a_warning(
        self, coordinator: SyncCoordinator, store: LocalRecordStore, remote: FakeRemoteStore,
        clock: Clock,
    ) -> None:
        """A rejected record is reported and the pass moves on."""
        rejected = coordinator.save(OWNER, {"title": "A"})
        clock.now += 1
        later = coordinator.save(OWNER, {"title": "B"})
        remote.failures[rejected.id] = RejectedError("payload too large")

        result = coordinator.sync_pending(OWNER)

        assert result.flushed == 1
        assert result.has_warnings
        assert result.warnings[0].record_id == rejected.id
        assert result.warnings[0].reason == "payload too large"
        stored = store.get(Domain.GAMES, OWNER, rejected.id)
        assert stored is not None
        assert stored.sync_status is SyncStatus.PENDING
        pushed = store.get(Domain.GAMES, OWNER, later.id)
        assert pushed is not None
        assert pushed.sync_status is SyncStatus.CLEAN

    def test_acknowledged_delete_is_purged(
        self, coordinator: SyncCoordinator, store: LocalRecordStore, remote: FakeRemoteStore
    ) -> None:
        """A tombstone should be removed once the server has it."""
        record = coordinator.save(OWNER, {"title": "A"})
        coordinator.sync_pending(OWNER)
        coordinator.delete(OWNER, record.id)

        result = coordinator.sync_pending(OWNER)

        assert result.flushed == 1
        assert store.get(Domain.GAMES, OWNER, record.id) is None
        assert remote.entries[record.id].is_deleted

    def test_server_managed_domain_has_nothing_to_push(
        self, store: LocalRecordStore, remote: FakeRemoteStore
    ) -> None:
        """friends/groups flushes should be empty."""
        coordinator = SyncCoordinator(Domain.GROUPS, store, remote)
        result = coordinator.sync_pending(OWNER)
        assert result.flushed == 0
        assert remote.attempted == []

    def test_pushed_record_not_reapplied_by_pull(
        self, coordinator: SyncCoordinator, store: LocalRecordStore, remote: FakeRemoteStore
    ) -> None:
        """Our own write coming back through the pull is already known."""
        record = coordinator.save(OWNER, {"title": "A"})
        coordinator.sync_pending(OWNER)

        result = coordinator.sync_down_incremental(OWNER)

        assert result.applied == 0
        stored = store.get(Domain.GAMES, OWNER, record.id)
        assert stored is not None
        assert stored.sync_status is SyncStatus.CLEAN

    def test_stale_edit_is_not_pushed_after_pull(
        self, coordinator: SyncCoordinator, store: LocalRecordStore, remote: FakeRemoteStore
    ) -> None:
        """A newer remote write pulled first replaces the pending edit, so nothing is pushed."""
        record = coordinator.save(OWNER, {"title": "old offline edit"})
        remote.write(record.id, {"title": "newer remote edit"})

        coordinator.sync_down_incremental(OWNER)
        result = coordinator.sync_pending(OWNER)

        assert result.flushed == 0
        assert remote.attempted == []
        stored = store.get(Domain.GAMES, OWNER, record.id)
        assert stored is not None
        assert stored.payload == {"title": "newer remote edit"}
        assert stored.sync_status is SyncStatus.CLEAN

    def test_local_mode_pushes_nothing(self, store: LocalRecordStore, clock: Clock) -> None:
        """Local-mode writes wait, PENDING, for the first online pass."""
        remote = FakeRemoteStore()
        coordinator = SyncCoordinator(
            Domain.GAMES, store, remote, clock=clock, offline_by_design=True
        )
        record = coordinator.save(OWNER, {"title": "Azul"})

        result = coordinator.sync_pending(OWNER)

        assert result.flushed == 0
        assert remote.attempted == []
        stored = store.get(Domain.GAMES, OWNER, record.id)
        assert stored is not None
        assert stored.sync_status is SyncStatus.PENDING
        assert coordinator.count_pending(OWNER) == 1


class TestResync:
    """Tests for the full re-read after the server purged tombstones."""

    def test_stale_clean_records_are_dropped(self, store: LocalRecordStore, clock: Clock) -> None:
        """A delete this client never saw is applied by the full re-read."""
        remote = PurgingRemoteStore()
        coordinator = SyncCoordinator(Domain.GAMES, store, remote, clock=clock)
        remote.write("a", {"title": "A"})
        kept = remote.write("b", {"title": "B"})
        coordinator.initial_sync_if_needed(OWNER)
        local_edit = coordinator.save(OWNER, {"title": "C"})
        remote.purge("a")

        result = coordinator.sync_down_incremental(OWNER)

        assert store.get(Domain.GAMES, OWNER, "a") is None
        stored = store.get(Domain.GAMES, OWNER, "b")
        assert stored is not None
        assert stored.updated_at_remote == kept.updated_at_remote
        pending = store.get(Domain.GAMES, OWNER, local_edit.id)
        assert pending is not None
        assert pending.sync_status is SyncStatus.PENDING
        assert result.applied == 1
        assert result.cursor == remote.purged_through
        assert remote.pull_calls == [None, kept.updated_at_remote, None]

    def test_cursor_passes_the_watermark(self, store: LocalRecordStore, clock: Clock) -> None:
        """After one re-read the next pull is incremental again."""
        remote = PurgingRemoteStore()
        coordinator = SyncCoordinator(Domain.GAMES, store, remote, clock=clock)
        remote.write("a", {"title": "A"})
        coordinator.initial_sync_if_needed(OWNER)
        remote.purge("a")
        coordinator.sync_down_incremental(OWNER)
        remote.pull_calls.clear()

        result = coordinator.sync_down_incremental(OWNER)

        assert result.applied == 0
        assert remote.pull_calls == [remote.purged_through]
        assert coordinator.list(OWNER) == []
