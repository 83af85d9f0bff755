"""FastAPI dependencies for API routes."""

from __future__ import annotations

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ludiary.core.errors import AuthError
from ludiary.server.database import Database
from ludiary.server.relationships import RelationshipService

# Security scheme
security = HTTPBearer(auto_error=False)


def get_db(request: Request) -> Database:
    """Get database from app state."""
    db: Database = request.app.state.db
    return db


def get_relationships(request: Request) -> RelationshipService:
    """Get the relationship service from app state."""
    service: RelationshipService = request.app.state.relationships
    return service


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> str:
    """Validate bearer token and return the caller's uid."""
    if credentials is None:
        raise AuthError("Missing authentication credentials")
    uid = get_db(request).validate_token(credentials.credentials)
    if uid is None:
        raise AuthError("Invalid or revoked token")
    return uid
