"""Notification API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ludiary.server.api.deps import get_current_user, get_db, get_relationships
from ludiary.server.database import Database
from ludiary.server.relationships import RelationshipService
from ludiary.server.schemas import (
    NotificationResponse,
    OkResponse,
    UnreadCountResponse,
    notification_to_response,
)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationResponse])
def list_notifications(
    limit: int = Query(default=50, ge=1, le=500),
    db: Database = Depends(get_db),
    uid: str = Depends(get_current_user),
) -> list[NotificationResponse]:
    """List the caller's notifications, newest first."""
    return [notification_to_response(n) for n in db.list_notifications(uid, limit=limit)]


@router.get("/stats", response_model=UnreadCountResponse)
def get_stats(
    db: Database = Depends(get_db),
    uid: str = Depends(get_current_user),
) -> UnreadCountResponse:
    """Get the caller's unread counter."""
    return UnreadCountResponse(unread_count=db.get_unread_count(uid))


@router.post("/{notification_id}/read", response_model=OkResponse)
def mark_read(
    notification_id: str,
    service: RelationshipService = Depends(get_relationships),
    uid: str = Depends(get_current_user),
) -> OkResponse:
    """Mark a notification read."""
    service.mark_notification_read(uid, notification_id)
    return OkResponse()
