"""User registration API route."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ludiary.server.api.deps import get_db
from ludiary.server.database import Database
from ludiary.server.schemas import RegisterRequest, RegisterResponse

router = APIRouter(prefix="/api/users", tags=["users"])


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
)
def register_user(
    request: RegisterRequest,
    db: Database = Depends(get_db),
) -> RegisterResponse:
    """Create a user and return its first token."""
    display_name = (request.display_name or "").strip() or None
    user, raw_token = db.register_user(display_name)
    return RegisterResponse(
        uid=user.uid,
        token=raw_token,
        friend_code=user.friend_code,
        display_name=user.display_name,
    )
