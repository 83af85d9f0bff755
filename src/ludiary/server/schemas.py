"""Pydantic schemas for API request/response models.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ludiary.server.models import Notification, SyncRecord
from ludiary.server.relationships import InviteSnapshot


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# === Error schema ===


class ErrorResponse(CamelModel):
    """Body of every error response."""

    detail: str
    code: str


# === User schemas ===


class RegisterRequest(CamelModel):
    """Request body for user registration."""

    display_name: str | None = None


class RegisterResponse(CamelModel):
    """Response for user registration."""

    uid: str
    token: str
    friend_code: str
    display_name: str | None


# === Friend schemas ===


class FriendInviteRequest(CamelModel):
    """Request body for an invite by friend code."""

    code: str
    client_created_at: int | None = None


class FriendInviteResponse(CamelModel):
    """Resolved invite target."""

    friend_uid: str
    friend_code: str
    display_name: str | None


class FriendRequest(CamelModel):
    """Request body naming the other side of a friendship."""

    friend_uid: str


class NicknameRequest(CamelModel):
    """Request body for a nickname change."""

    friend_uid: str
    nickname: str | None = None


class OkResponse(CamelModel):
    """Acknowledgement of an operation without result data."""

    ok: bool = True


# === Group schemas ===


class GroupCreateRequest(CamelModel):
    """Request body for group creation."""

    name: str


class GroupCreateResponse(CamelModel):
    """Response for group creation."""

    group_id: str
    name: str
    now: int
    members_count: int


class GroupInviteRequest(CamelModel):
    """Request body for a group invite."""

    group_id: str
    to_uid: str
    group_name_snapshot: str | None = None
    client_created_at: int | None = None


class GroupInviteResponse(CamelModel):
    """Group invite snapshot."""

    invite_id: str
    group_id: str
    group_name_snapshot: str
    from_uid: str
    to_uid: str
    status: str
    created_at: int
    responded_at: int | None


# === Record schemas ===


class RecordPutRequest(CamelModel):
    """Request body for a record upsert."""

    payload: dict[str, Any] = Field(default_factory=dict)
    version: int = Field(default=0, ge=0)


class RecordWriteResponse(CamelModel):
    """Timestamp assigned by the server."""

    updated_at: int


class RecordEntry(CamelModel):
    """Single record in a changes response."""

    id: str
    is_deleted: bool
    updated_at: int
    payload: dict[str, Any]
    version: int


class RecordsResponse(CamelModel):
    """Response for a changes-since read."""

    entries: list[RecordEntry]
    has_more: bool
    latest: int | None
    purged_through: int | None = None
    resync_required: bool = False


# === Notification schemas ===


class UnreadCountResponse(CamelModel):
    """Unread notification counter."""

    unread_count: int


class NotificationResponse(CamelModel):
    """Notification in responses."""

    id: str
    kind: str
    payload: dict[str, Any]
    is_read: bool
    created_at: int


# === Health schema ===


class HealthResponse(BaseModel):
    """Health check response."""

    status: str


# === Converters ===


def record_to_entry(record: SyncRecord) -> RecordEntry:
    """Convert SyncRecord to response model."""
    return RecordEntry(
        id=record.id,
        is_deleted=record.deleted_at is not None,
        updated_at=record.updated_at,
        payload=json.loads(record.payload) if record.deleted_at is None else {},
        version=record.version,
    )


def invite_to_response(invite: InviteSnapshot) -> GroupInviteResponse:
    """Convert InviteSnapshot to response model."""
    return GroupInviteResponse(
        invite_id=invite.invite_id,
        group_id=invite.group_id,
        group_name_snapshot=invite.group_name_snapshot,
        from_uid=invite.from_uid,
        to_uid=invite.to_uid,
        status=invite.status,
        created_at=invite.created_at,
        responded_at=invite.responded_at,
    )


def notification_to_response(notification: Notification) -> NotificationResponse:
    """Convert Notification to response model."""
    return NotificationResponse(
        id=notification.id,
        kind=notification.kind,
        payload=json.loads(notification.payload or "{}"),
        is_read=notification.is_read,
        created_at=notification.created_at,
    )
