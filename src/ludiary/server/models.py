"""SQLAlchemy models for the ludiary server.

This module defines the database schema using SQLAlchemy ORM.

Relationship timestamps (created_at / updated_at on friends, groups and
invites, and every sync record) are epoch milliseconds, the unit shared
with clients. Rows mutated by relationship transactions carry a
``version`` column used for optimistic concurrency.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


class User(Base):
    """Represents a registered user."""

    __tablename__ = "users"

    uid: Mapped[str] = mapped_column(String(36), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    friend_code: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    # Relationships
    tokens: Mapped[list[Token]] = relationship(
        "Token", back_populates="user", cascade="all, delete-orphan"
    )


class Token(Base):
    """Represents an authentication token."""

    __tablename__ = "tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_uid: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.uid", ondelete="CASCADE"), nullable=False
    )
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Relationships
    user: Mapped[User] = relationship("User", back_populates="tokens")

    # Indexes
    __table_args__ = (Index("idx_tokens_hash", "token_hash"),)


class FriendCode(Base):
    """Lookup index from a friend code to its user.

    Kept apart from ``users`` so the invite path resolves a code with a
    single primary key read.
    """

    __tablename__ = "friend_codes"

    code: Mapped[str] = mapped_column(String(16), primary_key=True)
    uid: Mapped[str] = mapped_column(String(36), nullable=False)


class FriendRelation(Base):
    """One side of a friendship, owned by ``owner_uid``.

    Every row has a mirrored row with owner and friend swapped.
    """

    __tablename__ = "friend_relations"

    owner_uid: Mapped[str] = mapped_column(String(36), primary_key=True)
    friend_uid: Mapped[str] = mapped_column(String(36), primary_key=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    friend_code: Mapped[str | None] = mapped_column(String(16), nullable=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    nickname: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class Group(Base):
    """Represents a group of users sharing sessions."""

    __tablename__ = "groups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_uid: Mapped[str] = mapped_column(String(36), nullable=False)
    members_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Relationships
    members: Mapped[list[GroupMember]] = relationship(
        "GroupMember", back_populates="group", cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version}


class GroupMember(Base):
    """Membership of a user in a group."""

    __tablename__ = "group_members"

    group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True
    )
    user_uid: Mapped[str] = mapped_column(String(36), primary_key=True)
    joined_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Relationships
    group: Mapped[Group] = relationship("Group", back_populates="members")


class UserGroup(Base):
    """Per-user index of the groups a user belongs to."""

    __tablename__ = "user_groups"

    user_uid: Mapped[str] = mapped_column(String(36), primary_key=True)
    group_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name_snapshot: Mapped[str] = mapped_column(String(255), nullable=False)
    joined_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)


class GroupInvite(Base):
    """Invitation of a user into a group. Id is ``{group_id}_{to_uid}``."""

    __tablename__ = "group_invites"

    id: Mapped[str] = mapped_column(String(80), primary_key=True)
    group_id: Mapped[str] = mapped_column(String(36), nullable=False)
    group_name_snapshot: Mapped[str] = mapped_column(String(255), nullable=False)
    from_uid: Mapped[str] = mapped_column(String(36), nullable=False)
    to_uid: Mapped[str] = mapped_column(String(36), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    responded_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Indexes
    __table_args__ = (Index("idx_group_invites_to", "to_uid"),)


class SyncRecord(Base):
    """Server copy of a synced record.

    ``updated_at`` is strictly increasing within a (domain, owner_id)
    collection. Deleted records are kept as tombstones (``deleted_at``
    set) until the retention period is over.
    """

    __tablename__ = "sync_records"

    domain: Mapped[str] = mapped_column(String(20), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    id: Mapped[str] = mapped_column(String(80), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    deleted_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # Indexes
    __table_args__ = (
        Index("idx_sync_records_changes", "domain", "owner_id", "updated_at"),
        Index("idx_sync_records_deleted", "deleted_at"),
    )


class PurgeWatermark(Base):
    """Newest tombstone timestamp purged from a collection.

    A client whose cursor is below it may have missed deletes and has to
    read the whole collection again.
    """

    __tablename__ = "purge_watermarks"

    domain: Mapped[str] = mapped_column(String(20), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    purged_through: Mapped[int] = mapped_column(BigInteger, nullable=False)


class Notification(Base):
    """In-app notification addressed to a user."""

    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_uid: Mapped[str] = mapped_column(String(36), nullable=False)
    kind: Mapped[str] = mapped_column(String(40), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    read_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # Indexes
    __table_args__ = (Index("idx_notifications_user", "user_uid", "created_at"),)


class NotificationStats(Base):
    """Unread counter per user."""

    __tablename__ = "notification_stats"

    user_uid: Mapped[str] = mapped_column(String(36), primary_key=True)
    unread_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
