"""Friend relationship API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ludiary.server.api.deps import get_current_user, get_relationships
from ludiary.server.relationships import RelationshipService
from ludiary.server.schemas import (
    FriendInviteRequest,
    FriendInviteResponse,
    FriendRequest,
    NicknameRequest,
    OkResponse,
)

router = APIRouter(prefix="/api/friends", tags=["friends"])


@router.post("/invite-by-code", response_model=FriendInviteResponse)
def invite_by_code(
    request: FriendInviteRequest,
    service: RelationshipService = Depends(get_relationships),
    uid: str = Depends(get_current_user),
) -> FriendInviteResponse:
    """Send a friend invite to the owner of a friend code."""
    result = service.send_invite_by_code(uid, request.code, request.client_created_at)
    return FriendInviteResponse(
        friend_uid=result.friend_uid,
        friend_code=result.friend_code,
        display_name=result.display_name,
    )


@router.post("/accept", response_model=OkResponse)
def accept(
    request: FriendRequest,
    service: RelationshipService = Depends(get_relationships),
    uid: str = Depends(get_current_user),
) -> OkResponse:
    """Accept an incoming friend invite."""
    service.accept(uid, request.friend_uid)
    return OkResponse()


@router.post("/reject", response_model=OkResponse)
def reject(
    request: FriendRequest,
    service: RelationshipService = Depends(get_relationships),
    uid: str = Depends(get_current_user),
) -> OkResponse:
    """Reject a friend invite (either direction)."""
    service.reject(uid, request.friend_uid)
    return OkResponse()


@router.post("/remove", response_model=OkResponse)
def remove(
    request: FriendRequest,
    service: RelationshipService = Depends(get_relationships),
    uid: str = Depends(get_current_user),
) -> OkResponse:
    """Remove a friend."""
    service.remove(uid, request.friend_uid)
    return OkResponse()


@router.post("/nickname", response_model=OkResponse)
def update_nickname(
    request: NicknameRequest,
    service: RelationshipService = Depends(get_relationships),
    uid: str = Depends(get_current_user),
) -> OkResponse:
    """Set or clear the caller's nickname for a friend."""
    service.update_nickname(uid, request.friend_uid, request.nickname)
    return OkResponse()
