"""Core module - Shared types, configuration and errors."""

from ludiary.core.config import LOCAL_USER_ID, AppMode, ClientConfig, ServerConfig
from ludiary.core.errors import (
    AuthError,
    InternalError,
    LudiaryError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionError,
    RejectedError,
    ResyncRequiredError,
    SyncCancelledError,
    TransientError,
    TransientNetworkError,
    UnsupportedInOfflineMode,
    UnsupportedOperationError,
    ValidationError,
    error_from_code,
)
from ludiary.core.types import (
    Domain,
    InviteStatus,
    RelationStatus,
    SyncState,
    SyncStatus,
    now_millis,
)

__all__ = [
    # Config
    "LOCAL_USER_ID",
    "AppMode",
    "ClientConfig",
    "ServerConfig",
    # Errors
    "AuthError",
    "InternalError",
    "LudiaryError",
    "NotFoundError",
    "PermissionDeniedError",
    "PreconditionError",
    "RejectedError",
    "ResyncRequiredError",
    "SyncCancelledError",
    "TransientError",
    "TransientNetworkError",
    "UnsupportedInOfflineMode",
    "UnsupportedOperationError",
    "ValidationError",
    "error_from_code",
    # Types
    "Domain",
    "InviteStatus",
    "RelationStatus",
    "SyncState",
    "SyncStatus",
    "now_millis",
]
