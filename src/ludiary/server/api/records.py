"""Sync record API routes.

Records live in collections keyed by (domain, owner). The owner is the
caller's uid, or for sessions also a group the caller belongs to.
Friends and groups collections are written by the relationship service
only and are read-only here.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ludiary.core.errors import NotFoundError, PermissionDeniedError
from ludiary.core.types import Domain
from ludiary.server.api.deps import get_current_user, get_db
from ludiary.server.database import Database
from ludiary.server.schemas import (
    RecordPutRequest,
    RecordsResponse,
    RecordWriteResponse,
    record_to_entry,
)

router = APIRouter(prefix="/api/records", tags=["records"])

SERVER_DOMAINS = frozenset(d for d in Domain if d is not Domain.INVITES)


def _check_access(db: Database, domain: str, owner_id: str, uid: str, write: bool) -> Domain:
    """Resolve the domain and check the caller may use the collection."""
    try:
        resolved = Domain(domain)
    except ValueError:
        raise NotFoundError(f"Unknown domain: {domain}") from None
    if resolved not in SERVER_DOMAINS:
        raise NotFoundError(f"Unknown domain: {domain}")

    if write and resolved.server_managed:
        raise PermissionDeniedError(f"{resolved.value} records are managed by the server")

    if owner_id == uid:
        return resolved
    if resolved is Domain.SESSIONS and db.is_group_member(owner_id, uid):
        return resolved
    raise PermissionDeniedError("Not allowed to access this collection")


@router.put("/{domain}/{owner_id}/{record_id}", response_model=RecordWriteResponse)
def put_record(
    domain: str,
    owner_id: str,
    record_id: str,
    request: RecordPutRequest,
    db: Database = Depends(get_db),
    uid: str = Depends(get_current_user),
) -> RecordWriteResponse:
    """Create or replace a record."""
    resolved = _check_access(db, domain, owner_id, uid, write=True)
    updated_at = db.put_record(
        resolved.value, owner_id, record_id, request.payload, request.version
    )
    return RecordWriteResponse(updated_at=updated_at)


@router.delete("/{domain}/{owner_id}/{record_id}", response_model=RecordWriteResponse)
def delete_record(
    domain: str,
    owner_id: str,
    record_id: str,
    db: Database = Depends(get_db),
    uid: str = Depends(get_current_user),
) -> RecordWriteResponse:
    """Soft-delete a record (kept as a tombstone until purged)."""
    resolved = _check_access(db, domain, owner_id, uid, write=True)
    updated_at = db.delete_record(resolved.value, owner_id, record_id)
    return RecordWriteResponse(updated_at=updated_at)


@router.get("/{domain}/{owner_id}", response_model=RecordsResponse)
def get_records(
    domain: str,
    owner_id: str,
    since: int | None = Query(
        default=None,
        ge=0,
        description="Epoch millis. Get records changed strictly after this time.",
    ),
    limit: int = Query(
        default=1000,
        ge=1,
        le=10000,
        description="Maximum number of records to return.",
    ),
    db: Database = Depends(get_db),
    uid: str = Depends(get_current_user),
) -> RecordsResponse:
    """Get records changed since a timestamp, oldest first.

    Clients should:
    1. On first sync, omit ``since`` to read the whole collection
    2. Keep the updated_at of the last applied entry as cursor
    3. Page with that cursor while ``hasMore`` is true
    4. On ``resyncRequired``, read the whole collection again: deletes
       between ``since`` and ``purgedThrough`` were purged and are not in
       the entries. Pages of a full read ignore the flag
    """
    resolved = _check_access(db, domain, owner_id, uid, write=False)
    purged_through = db.get_purge_watermark(resolved.value, owner_id)
    records, has_more = db.get_changes_since(resolved.value, owner_id, since, limit=limit)
    return RecordsResponse(
        entries=[record_to_entry(r) for r in records],
        has_more=has_more,
        latest=records[-1].updated_at if records else None,
        purged_through=purged_through,
        resync_required=(
            since is not None and purged_through is not None and since < purged_through
        ),
    )
