"""Tests for the tombstone purge scheduler."""

from datetime import timedelta

import pytest

from ludiary.server import database as database_module
from ludiary.server.database import Database
from ludiary.server.scheduler import TombstonePurgeScheduler, purge_tombstones

DAY_MS = int(timedelta(days=1).total_seconds() * 1000)


@pytest.fixture
def old_tombstone(db: Database, monkeypatch: pytest.MonkeyPatch) -> list[int]:
    """A live record and a tombstone written at t=1_000_000.

    Returns the mutable clock; append to move it.
    """
    clock = [1_000_000]
    monkeypatch.setattr(database_module, "now_millis", lambda: clock[-1])
    db.put_record("games", "u1", "kept", {"title": "Azul"}, 1)
    db.put_record("games", "u1", "gone", {"title": "Catan"}, 1)
    db.delete_record("games", "u1", "gone")
    return clock


def ids(db: Database) -> list[str]:
    records, _ = db.get_changes_since("games", "u1", None)
    return [r.id for r in records]


class TestPurgeTombstones:
    def test_recent_tombstones_stay(self, db: Database, old_tombstone: list[int]) -> None:
        assert purge_tombstones(db, 30) == 0
        assert ids(db) == ["kept", "gone"]

    def test_old_tombstones_go(self, db: Database, old_tombstone: list[int]) -> None:
        """Only tombstones past retention are deleted, live records stay."""
        old_tombstone.append(1_000_000 + 31 * DAY_MS)

        assert purge_tombstones(db, 30) == 1
        assert ids(db) == ["kept"]

    def test_purge_records_watermark(self, db: Database, old_tombstone: list[int]) -> None:
        """The newest purged tombstone becomes the collection's watermark."""
        assert db.get_purge_watermark("games", "u1") is None
        old_tombstone.append(1_000_000 + 31 * DAY_MS)

        purge_tombstones(db, 30)

        assert db.get_purge_watermark("games", "u1") == 1_000_002
        assert db.get_purge_watermark("games", "u2") is None

    def test_watermark_keeps_timestamps_increasing(
        self, db: Database, old_tombstone: list[int]
    ) -> None:
        """Writes after a purge stay above the purged tombstones."""
        old_tombstone.append(1_000_000 + 31 * DAY_MS)
        purge_tombstones(db, 30)
        old_tombstone.append(1_000_001)

        assert db.put_record("games", "u1", "new", {}, 1) == 1_000_003


class TestTombstonePurgeScheduler:
    """Tests for TombstonePurgeScheduler."""

    def test_start_stop(self, db: Database) -> None:
        scheduler = TombstonePurgeScheduler(db, retention_days=7)
        assert not scheduler.running

        scheduler.start()
        scheduler.start()
        assert scheduler.running

        scheduler.stop()
        scheduler.stop()
        assert not scheduler.running

    def test_run_now_uses_retention(self, db: Database, old_tombstone: list[int]) -> None:
        """run_now purges with the configured retention."""
        old_tombstone.append(1_000_000 + 8 * DAY_MS)

        assert TombstonePurgeScheduler(db, retention_days=30).run_now() == 0
        assert TombstonePurgeScheduler(db, retention_days=7).run_now() == 1

    def test_job_errors_are_logged(
        self, db: Database, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A failing scheduled purge does not escape the job."""

        def boom(older_than_days: int) -> int:
            raise RuntimeError("disk full")

        monkeypatch.setattr(db, "purge_tombstones", boom)
        scheduler = TombstonePurgeScheduler(db)

        scheduler._purge_job()

        assert "Error during scheduled tombstone purge" in caplog.text
