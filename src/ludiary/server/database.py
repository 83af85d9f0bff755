"""Server database using SQLAlchemy with SQLite.

This module provides:
- User registration and token-based authentication
- Transaction runner with optimistic retry
- Sync record storage (put, soft delete, changes since, tombstone purge
  with a per-collection purge watermark)
- Notification storage and unread counters
"""

from __future__ import annotations

import hashlib
import json
import logging
import secrets
import uuid
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy import create_engine, delete, event, func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ludiary.core.errors import TransientError
from ludiary.core.types import now_millis
from ludiary.server.models import (
    Base,
    FriendCode,
    GroupMember,
    Notification,
    NotificationStats,
    PurgeWatermark,
    SyncRecord,
    Token,
    User,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5

# No 0/O or 1/I, codes are read aloud and typed by hand
FRIEND_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
FRIEND_CODE_LENGTH = 8


def hash_token(token: str) -> str:
    """Hash a token using SHA-256.

    Args:
        token: Raw token string.

    Returns:
        Hex-encoded SHA-256 hash.
    """
    return hashlib.sha256(token.encode()).hexdigest()


def generate_friend_code() -> str:
    """Random shareable friend code."""
    return "".join(secrets.choice(FRIEND_CODE_ALPHABET) for _ in range(FRIEND_CODE_LENGTH))


def _is_retryable(error: Exception) -> bool:
    if isinstance(error, (StaleDataError, IntegrityError)):
        return True
    return isinstance(error, OperationalError) and "locked" in str(error).lower()


# === Helpers usable inside a transaction ===


def next_record_timestamp(session: Session, domain: str, owner_id: str, now: int) -> int:
    """Timestamp for the next write to a collection.

    Strictly greater than every timestamp already in the collection, so
    clients reading with ``updated_at > cursor`` never miss a write that
    landed within the same millisecond.
    """
    latest = session.execute(
        select(func.max(SyncRecord.updated_at)).where(
            SyncRecord.domain == domain, SyncRecord.owner_id == owner_id
        )
    ).scalar()
    watermark = session.get(PurgeWatermark, (domain, owner_id))
    if watermark is not None and (latest is None or watermark.purged_through > latest):
        # Purged tombstones still count
        latest = watermark.purged_through
    if latest is not None and latest >= now:
        return int(latest) + 1
    return now


def write_sync_record(
    session: Session,
    domain: str,
    owner_id: str,
    record_id: str,
    payload: dict[str, Any] | None,
    now: int,
    version: int | None = None,
) -> int:
    """Upsert a record, or tombstone it when ``payload`` is None.

    Returns:
        The record's new updated_at.
    """
    record = session.get(SyncRecord, (domain, owner_id, record_id))
    ts = next_record_timestamp(session, domain, owner_id, now)

    if record is None:
        record = SyncRecord(domain=domain, owner_id=owner_id, id=record_id, version=0)
        session.add(record)

    if payload is None:
        record.payload = "{}"
        record.deleted_at = ts
    else:
        record.payload = json.dumps(payload)
        record.deleted_at = None
    if version is not None:
        record.version = max(record.version or 0, version)
    else:
        record.version = (record.version or 0) + 1
    record.updated_at = ts
    session.flush()
    return ts


def add_notification(
    session: Session,
    user_uid: str,
    kind: str,
    payload: dict[str, Any],
    now: int,
) -> str:
    """Create an unread notification and bump the user's counter."""
    notification_id = str(uuid.uuid4())
    session.add(
        Notification(
            id=notification_id,
            user_uid=user_uid,
            kind=kind,
            payload=json.dumps(payload),
            is_read=False,
            created_at=now,
        )
    )
    stats = session.get(NotificationStats, user_uid)
    if stats is None:
        session.add(NotificationStats(user_uid=user_uid, unread_count=1))
    else:
        stats.unread_count += 1
    return notification_id


class Database:
    """SQLAlchemy database for server data.

    Uses SQLite with WAL mode for better concurrency with multiple readers.
    Every session runs in an explicit transaction so that a write based on
    stale reads fails and can be retried.
    """

    def __init__(self, db_path: Path, busy_timeout: float = 30.0) -> None:
        """Initialize the database.

        Args:
            db_path: Path to the SQLite database file.
            busy_timeout: Seconds to wait on a locked database.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # Create engine with check_same_thread=False for multi-threaded access
        self._engine: Engine = create_engine(
            f"sqlite:///{self._db_path}",
            connect_args={"check_same_thread": False, "timeout": busy_timeout},
            echo=False,
        )

        @event.listens_for(self._engine, "connect")
        def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
            # Let SQLAlchemy emit BEGIN itself (pysqlite defers it until the first write)
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(self._engine, "begin")
        def _on_begin(conn: Any) -> None:
            conn.exec_driver_sql("BEGIN")

        # Create tables if they don't exist
        Base.metadata.create_all(self._engine)

    def close(self) -> None:
        """Close the database connection."""
        self._engine.dispose()

    def _session(self) -> Session:
        """Create a new database session."""
        return Session(self._engine, expire_on_commit=False)

    # === Transactions ===

    def run_transaction(
        self,
        fn: Callable[[Session], T],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> T:
        """Run ``fn`` in one all-or-nothing transaction.

        The whole function is re-executed when the commit loses a race
        (stale version, duplicate key, locked database). Domain errors
        raised by ``fn`` roll back and propagate unchanged.

        Args:
            fn: Reads and writes through the given session. Must return
                plain data, not ORM objects.
            max_attempts: Attempts before giving up.

        Raises:
            TransientError: If every attempt lost a race.
        """
        last_error: Exception | None = None
        for attempt in range(1, max_attempts + 1):
            try:
                with self._session() as session, session.begin():
                    return fn(session)
            except (StaleDataError, IntegrityError, OperationalError) as e:
                if not _is_retryable(e):
                    raise
                last_error = e
                logger.debug("Transaction attempt %d/%d lost a race: %s", attempt, max_attempts, e)
        logger.warning("Transaction gave up after %d attempts: %s", max_attempts, last_error)
        raise TransientError(f"Too much contention, retry later ({last_error})")

    # === User operations ===

    def register_user(self, display_name: str | None) -> tuple[User, str]:
        """Create a user with a fresh friend code and token.

        Returns:
            Tuple of (User, raw_token).
        """
        raw_token = "ld_" + secrets.token_urlsafe(32)

        def create(session: Session) -> User:
            user = User(
                uid=str(uuid.uuid4()),
                display_name=display_name,
                friend_code=generate_friend_code(),
            )
            session.add(user)
            session.add(FriendCode(code=user.friend_code, uid=user.uid))
            session.add(Token(user_uid=user.uid, token_hash=hash_token(raw_token)))
            session.add(NotificationStats(user_uid=user.uid, unread_count=0))
            session.flush()
            session.expunge(user)
            return user

        # A friend code collision raises IntegrityError and is retried with a new code
        user = self.run_transaction(create)
        logger.info("Registered user %s (%s)", user.uid, user.friend_code)
        return user, raw_token

    def get_user(self, uid: str) -> User | None:
        """Get a user by uid."""
        with self._session() as session:
            user = session.get(User, uid)
            if user:
                session.expunge(user)
            return user

    def validate_token(self, raw_token: str) -> str | None:
        """Validate a token.

        Returns:
            The owning user's uid, None if unknown or revoked.
        """
        token_hash = hash_token(raw_token)
        with self._session() as session:
            stmt = select(Token.user_uid).where(
                Token.token_hash == token_hash, Token.revoked == False  # noqa: E712
            )
            return session.execute(stmt).scalar_one_or_none()

    def revoke_tokens(self, uid: str) -> int:
        """Revoke every token of a user."""
        with self._session() as session, session.begin():
            tokens = list(
                session.execute(select(Token).where(Token.user_uid == uid)).scalars()
            )
            for token in tokens:
                token.revoked = True
            return len(tokens)

    def is_group_member(self, group_id: str, uid: str) -> bool:
        """Check membership of a user in a group."""
        with self._session() as session:
            return session.get(GroupMember, (group_id, uid)) is not None

    # === Sync record operations ===

    def put_record(
        self,
        domain: str,
        owner_id: str,
        record_id: str,
        payload: dict[str, Any],
        version: int,
    ) -> int:
        """Upsert a record.

        Returns:
            The assigned updated_at (epoch millis).
        """
        return self.run_transaction(
            lambda s: write_sync_record(
                s, domain, owner_id, record_id, payload, now_millis(), version=version
            )
        )

    def delete_record(self, domain: str, owner_id: str, record_id: str) -> int:
        """Soft-delete a record.

        Deleting an existing tombstone is a no-op returning its timestamp.

        Returns:
            The tombstone's updated_at (epoch millis).
        """

        def tombstone(session: Session) -> int:
            record = session.get(SyncRecord, (domain, owner_id, record_id))
            if record is not None and record.deleted_at is not None:
                return record.updated_at
            return write_sync_record(session, domain, owner_id, record_id, None, now_millis())

        return self.run_transaction(tombstone)

    def get_changes_since(
        self,
        domain: str,
        owner_id: str,
        since: int | None,
        limit: int = 1000,
    ) -> tuple[list[SyncRecord], bool]:
        """Get records changed strictly after ``since``.

        Args:
            domain: Collection.
            owner_id: Owner partition.
            since: Watermark; None for the whole collection.
            limit: Maximum number of records to return.

        Returns:
            Tuple of (records ordered by updated_at, has_more).
        """
        with self._session() as session:
            stmt = select(SyncRecord).where(
                SyncRecord.domain == domain, SyncRecord.owner_id == owner_id
            )
            if since is not None:
                stmt = stmt.where(SyncRecord.updated_at > since)
            stmt = stmt.order_by(SyncRecord.updated_at.asc()).limit(limit + 1)
            records = list(session.execute(stmt).scalars().all())
            for record in records:
                session.expunge(record)
        return records[:limit], len(records) > limit

    def get_latest_timestamp(self, domain: str, owner_id: str) -> int | None:
        """Get the newest updated_at of a collection."""
        with self._session() as session:
            stmt = select(func.max(SyncRecord.updated_at)).where(
                SyncRecord.domain == domain, SyncRecord.owner_id == owner_id
            )
            return session.execute(stmt).scalar()

    def purge_tombstones(self, older_than_days: int = 30) -> int:
        """Delete tombstones older than the retention period.

        The newest purged tombstone of each collection is kept as its purge
        watermark, see ``get_purge_watermark``.

        Args:
            older_than_days: Delete tombstones older than this many days.

        Returns:
            Number of tombstones deleted.
        """
        cutoff = now_millis() - int(timedelta(days=older_than_days).total_seconds() * 1000)
        expired = (SyncRecord.deleted_at.is_not(None), SyncRecord.deleted_at < cutoff)
        with self._session() as session, session.begin():
            newest = session.execute(
                select(SyncRecord.domain, SyncRecord.owner_id, func.max(SyncRecord.deleted_at))
                .where(*expired)
                .group_by(SyncRecord.domain, SyncRecord.owner_id)
            ).all()
            for domain, owner_id, purged_through in newest:
                watermark = session.get(PurgeWatermark, (domain, owner_id))
                if watermark is None:
                    session.add(
                        PurgeWatermark(
                            domain=domain, owner_id=owner_id, purged_through=purged_through
                        )
                    )
                elif purged_through > watermark.purged_through:
                    watermark.purged_through = purged_through
            session.flush()
            result = session.execute(delete(SyncRecord).where(*expired))
            if newest:
                logger.debug("Purge watermarks moved for %d collections", len(newest))
            return result.rowcount or 0

    def get_purge_watermark(self, domain: str, owner_id: str) -> int | None:
        """Newest purged tombstone timestamp of a collection.

        A client reading from a cursor below it may have missed deletes.
        It has to read the whole collection and drop what it holds that
        is no longer there.
        """
        with self._session() as session:
            watermark = session.get(PurgeWatermark, (domain, owner_id))
            return watermark.purged_through if watermark else None

    # === Notification operations ===

    def get_unread_count(self, uid: str) -> int:
        """Get the unread notification counter of a user."""
        with self._session() as session:
            stats = session.get(NotificationStats, uid)
            return stats.unread_count if stats else 0

    def list_notifications(self, uid: str, limit: int = 50) -> list[Notification]:
        """List a user's notifications, newest first."""
        with self._session() as session:
            stmt = (
                select(Notification)
                .where(Notification.user_uid == uid)
                .order_by(Notification.created_at.desc())
                .limit(limit)
            )
            notifications = list(session.execute(stmt).scalars().all())
            for notification in notifications:
                session.expunge(notification)
            return notifications
