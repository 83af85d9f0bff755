"""Shared types for ludiary.

This module defines types and enums used by both client and server.
"""

from __future__ import annotations

import time
from enum import Enum


class SyncStatus(str, Enum):
    """Sync state tag carried by every locally stored record.

    CLEAN records mirror the last value observed on the server.
    PENDING and DELETED_PENDING records are queued for push.
    """

    CLEAN = "CLEAN"
    PENDING = "PENDING"
    DELETED_PENDING = "DELETED_PENDING"

    @property
    def is_pending(self) -> bool:
        """True for states that still have to be pushed."""
        return self is not SyncStatus.CLEAN


class Domain(str, Enum):
    """Synchronized collections.

    Each domain is stored, pulled and flushed per owner independently.
    """

    GAMES = "games"
    SESSIONS = "sessions"
    FRIENDS = "friends"
    GROUPS = "groups"
    INVITES = "invites"

    @property
    def server_managed(self) -> bool:
        """Domains only written by the relationship service on the server."""
        return self in (Domain.FRIENDS, Domain.GROUPS)


class RelationStatus(str, Enum):
    """Status of one side of a friend relationship."""

    PENDING_INCOMING = "PENDING_INCOMING"
    PENDING_OUTGOING = "PENDING_OUTGOING"
    ACCEPTED = "ACCEPTED"

    def mirror(self) -> RelationStatus:
        """Status the counterpart's document must hold."""
        if self is RelationStatus.PENDING_INCOMING:
            return RelationStatus.PENDING_OUTGOING
        if self is RelationStatus.PENDING_OUTGOING:
            return RelationStatus.PENDING_INCOMING
        return RelationStatus.ACCEPTED


class InviteStatus(str, Enum):
    """Status of a group invite."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    CANCELLED = "CANCELLED"


class SyncState(str, Enum):
    """Overall sync state reported by the client scheduler."""

    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    OFFLINE = "offline"


def now_millis() -> int:
    """Current wall clock time in epoch milliseconds."""
    return int(time.time() * 1000)
