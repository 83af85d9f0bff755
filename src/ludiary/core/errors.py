"""Error taxonomy shared by client and server.

Every error carries a wire ``code`` so that a failure raised by the
relationship service on the server can be rebuilt on the client side
with the same type.
"""

from __future__ import annotations


class LudiaryError(Exception):
    """Base exception for ludiary errors."""

    code = "internal"

    def __init__(
        self,
        message: str = "",
        code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.status_code = status_code
        if code is not None:
            self.code = code


class AuthError(LudiaryError):
    """Missing or invalid identity."""

    code = "unauthenticated"


class ValidationError(LudiaryError):
    """Malformed input."""

    code = "invalid-argument"


class PermissionDeniedError(LudiaryError):
    """Caller is authenticated but not allowed to touch the entity."""

    code = "permission-denied"


class NotFoundError(LudiaryError):
    """Referenced entity does not exist."""

    code = "not-found"


class PreconditionError(LudiaryError):
    """Entity exists but is in the wrong state for the transition."""

    code = "failed-precondition"


class InternalError(LudiaryError):
    """Server-side inconsistency."""

    code = "internal"


class TransientError(LudiaryError):
    """Network or storage temporarily unavailable. Retryable."""

    code = "unavailable"


class TransientNetworkError(TransientError):
    """Remote store could not be reached."""


class RejectedError(LudiaryError):
    """Remote store refused a write (validation, permissions). Not retryable."""

    code = "rejected"


class UnsupportedOperationError(LudiaryError):
    """Operation has no defined behavior in the current mode."""

    code = "unimplemented"


class UnsupportedInOfflineMode(UnsupportedOperationError):
    """Operation needs a remote store but the process runs in local mode."""


class SyncCancelledError(LudiaryError):
    """A sync pass was cancelled between two entries."""

    code = "cancelled"


class ResyncRequiredError(LudiaryError):
    """The server purged deletes newer than the client cursor.

    The collection has to be read again in full.
    """

    code = "resync-required"

    def __init__(self, message: str = "", purged_through: int | None = None) -> None:
        super().__init__(message)
        self.purged_through = purged_through


_BY_CODE: dict[str, type[LudiaryError]] = {
    AuthError.code: AuthError,
    ValidationError.code: ValidationError,
    PermissionDeniedError.code: PermissionDeniedError,
    NotFoundError.code: NotFoundError,
    PreconditionError.code: PreconditionError,
    InternalError.code: InternalError,
    TransientError.code: TransientError,
    UnsupportedOperationError.code: UnsupportedOperationError,
}


def error_from_code(
    code: str | None,
    message: str,
    status_code: int | None = None,
) -> LudiaryError:
    """Rebuild a typed error from a wire code.

    Unknown codes map to InternalError while keeping the original code.
    """
    if code is None:
        return InternalError(message, status_code=status_code)
    error_cls = _BY_CODE.get(code)
    if error_cls is None:
        return InternalError(message, code=code, status_code=status_code)
    return error_cls(message, status_code=status_code)
