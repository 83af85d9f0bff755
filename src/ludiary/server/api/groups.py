"""Group API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ludiary.server.api.deps import get_current_user, get_relationships
from ludiary.server.relationships import RelationshipService
from ludiary.server.schemas import (
    GroupCreateRequest,
    GroupCreateResponse,
    GroupInviteRequest,
    GroupInviteResponse,
    OkResponse,
    invite_to_response,
)

router = APIRouter(prefix="/api/groups", tags=["groups"])


@router.post("", response_model=GroupCreateResponse)
def create_group(
    request: GroupCreateRequest,
    service: RelationshipService = Depends(get_relationships),
    uid: str = Depends(get_current_user),
) -> GroupCreateResponse:
    """Create a group owned by the caller."""
    result = service.create_group(uid, request.name)
    return GroupCreateResponse(
        group_id=result.group_id,
        name=result.name,
        now=result.now,
        members_count=result.members_count,
    )


@router.post("/invite", response_model=GroupInviteResponse)
def invite(
    request: GroupInviteRequest,
    service: RelationshipService = Depends(get_relationships),
    uid: str = Depends(get_current_user),
) -> GroupInviteResponse:
    """Invite a user into a group."""
    snapshot = service.invite_to_group(
        uid,
        request.group_id,
        request.to_uid,
        request.group_name_snapshot,
        request.client_created_at,
    )
    return invite_to_response(snapshot)


@router.post("/invites/{invite_id}/accept", response_model=OkResponse)
def accept_invite(
    invite_id: str,
    service: RelationshipService = Depends(get_relationships),
    uid: str = Depends(get_current_user),
) -> OkResponse:
    """Accept a group invite addressed to the caller."""
    service.accept_group_invite(uid, invite_id)
    return OkResponse()


@router.post("/invites/{invite_id}/cancel", response_model=OkResponse)
def cancel_invite(
    invite_id: str,
    service: RelationshipService = Depends(get_relationships),
    uid: str = Depends(get_current_user),
) -> OkResponse:
    """Cancel a group invite sent or received by the caller."""
    service.cancel_group_invite(uid, invite_id)
    return OkResponse()


@router.post("/invites/{invite_id}/reject", response_model=OkResponse)
def reject_invite(
    invite_id: str,
    service: RelationshipService = Depends(get_relationships),
    uid: str = Depends(get_current_user),
) -> OkResponse:
    """Reject a group invite addressed to the caller."""
    service.reject_group_invite(uid, invite_id)
    return OkResponse()


@router.post("/{group_id}/leave", response_model=OkResponse)
def leave(
    group_id: str,
    service: RelationshipService = Depends(get_relationships),
    uid: str = Depends(get_current_user),
) -> OkResponse:
    """Leave a group."""
    service.leave_group(uid, group_id)
    return OkResponse()
