"""Friends and groups operations from the client side.

This module provides:
- SocialClient: Thin wrapper over the relationship routes of the server
- FriendInvite, GroupInfo, GroupInviteInfo: Typed operation results
- InviteOutbox: Friend invites typed while offline, sent on the next pass

Relationship mutations are never applied locally: the server runs them as
one transaction and the resulting friends/groups records come back
through the regular pull.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ludiary.client.store import Record
from ludiary.client.sync.types import CancelCheck, FlushResult, PushWarning
from ludiary.core.errors import (
    AuthError,
    LudiaryError,
    SyncCancelledError,
    TransientError,
    UnsupportedInOfflineMode,
    ValidationError,
)
from ludiary.core.types import Domain, SyncStatus, now_millis

if TYPE_CHECKING:
    from ludiary.client.api import HTTPClient
    from ludiary.client.store import LocalRecordStore

logger = logging.getLogger(__name__)


@dataclass
class FriendInvite:
    """Result of an invite by friend code."""

    friend_uid: str
    friend_code: str
    display_name: str | None = None


@dataclass
class GroupInfo:
    """Result of group creation."""

    group_id: str
    name: str
    created_at: int
    members_count: int


@dataclass
class GroupInviteInfo:
    """Snapshot of a group invite."""

    invite_id: str
    group_id: str
    from_uid: str
    to_uid: str
    group_name: str
    status: str
    created_at: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GroupInviteInfo:
        """Create from API response dictionary."""
        return cls(
            invite_id=data["inviteId"],
            group_id=data["groupId"],
            from_uid=data["fromUid"],
            to_uid=data["toUid"],
            group_name=data.get("groupNameSnapshot", ""),
            status=data["status"],
            created_at=int(data["createdAt"]),
        )


class SocialClient:
    """Relationship operations.

    Built without an HTTP client in local mode, where every operation
    raises UnsupportedInOfflineMode.
    """

    def __init__(self, http: HTTPClient | None = None) -> None:
        self._http = http

    @property
    def online(self) -> bool:
        """True if operations can reach the server."""
        return self._http is not None

    def _call(self, path: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
        if self._http is None:
            raise UnsupportedInOfflineMode(f"{path} needs the server")
        return self._http.call(path, data)

    # === Friends ===

    def send_invite_by_code(
        self, code: str, client_created_at: int | None = None
    ) -> FriendInvite:
        """Invite the user owning ``code`` as a friend."""
        data = self._call(
            "/api/friends/invite-by-code",
            {"code": code, "clientCreatedAt": client_created_at or now_millis()},
        )
        return FriendInvite(
            friend_uid=data["friendUid"],
            friend_code=data["friendCode"],
            display_name=data.get("displayName"),
        )

    def accept_friend(self, friend_uid: str) -> None:
        self._call("/api/friends/accept", {"friendUid": friend_uid})

    def reject_friend(self, friend_uid: str) -> None:
        self._call("/api/friends/reject", {"friendUid": friend_uid})

    def remove_friend(self, friend_uid: str) -> None:
        self._call("/api/friends/remove", {"friendUid": friend_uid})

    def update_nickname(self, friend_uid: str, nickname: str | None) -> None:
        """Set or clear (None / blank) the private nickname of a friend."""
        self._call(
            "/api/friends/nickname", {"friendUid": friend_uid, "nickname": nickname}
        )

    # === Groups ===

    def create_group(self, name: str) -> GroupInfo:
        data = self._call("/api/groups", {"name": name})
        return GroupInfo(
            group_id=data["groupId"],
            name=data["name"],
            created_at=int(data["now"]),
            members_count=int(data["membersCount"]),
        )

    def invite_to_group(
        self,
        group_id: str,
        to_uid: str,
        group_name_snapshot: str = "",
        client_created_at: int | None = None,
    ) -> GroupInviteInfo:
        data = self._call(
            "/api/groups/invite",
            {
                "groupId": group_id,
                "toUid": to_uid,
                "groupNameSnapshot": group_name_snapshot,
                "clientCreatedAt": client_created_at or now_millis(),
            },
        )
        return GroupInviteInfo.from_dict(data)

    def accept_group_invite(self, invite_id: str) -> None:
        self._call(f"/api/groups/invites/{invite_id}/accept")

    def cancel_group_invite(self, invite_id: str) -> None:
        self._call(f"/api/groups/invites/{invite_id}/cancel")

    def reject_group_invite(self, invite_id: str) -> None:
        self._call(f"/api/groups/invites/{invite_id}/reject")

    def leave_group(self, group_id: str) -> None:
        self._call(f"/api/groups/{group_id}/leave")

    # === Notifications ===

    def mark_notification_read(self, notification_id: str) -> None:
        self._call(f"/api/notifications/{notification_id}/read")


def normalize_code(code: str) -> str:
    """Friend codes are case-insensitive and padded by copy/paste."""
    return code.strip().upper()


class InviteOutbox:
    """Queue of friend invites entered while offline.

    Invites live as PENDING records of the ``invites`` domain until the
    server accepts them. An accepted invite is removed; the relation
    comes back through the friends pull.
    """

    def __init__(
        self,
        store: LocalRecordStore,
        social: SocialClient,
        owner_id: str,
        clock: Callable[[], int] = now_millis,
    ) -> None:
        self._store = store
        self._social = social
        self._owner_id = owner_id
        self._clock = clock

    def queue(self, code: str) -> Record:
        """Store an invite to send later.

        Raises:
            ValidationError: If the code is blank.
        """
        normalized = normalize_code(code)
        if not normalized:
            raise ValidationError("Friend code is empty")

        now = self._clock()
        record = Record(
            id=str(uuid.uuid4()),
            owner_id=self._owner_id,
            payload={"code": normalized, "clientCreatedAt": now},
            sync_status=SyncStatus.PENDING,
            updated_at_local=now,
            version=1,
        )
        self._store.upsert(Domain.INVITES, record)
        logger.info("Queued friend invite for code %s", normalized)
        return record

    def pending(self) -> list[Record]:
        """Invites not yet sent."""
        return [
            r
            for r in self._store.list_pending(Domain.INVITES, self._owner_id)
            if not r.is_deleted
        ]

    def cancel(self, invite_id: str) -> bool:
        """Drop a queued invite before it is sent.

        Returns:
            True if a pending invite was removed.
        """
        record = self._store.get(Domain.INVITES, self._owner_id, invite_id)
        if record is None or not record.sync_status.is_pending:
            return False
        self._store.purge(Domain.INVITES, self._owner_id, invite_id)
        return True

    def flush(self, cancel_check: CancelCheck | None = None) -> FlushResult:
        """Send queued invites in the order they were typed.

        Sent invites are dropped from the store. Stops at the first
        transient error. Invites the server refuses (unknown code, own
        code) stay queued and are reported.
        """
        result = FlushResult()
        if not self._social.online:
            return result

        for record in self.pending():
            if cancel_check is not None and cancel_check():
                raise SyncCancelledError("invite flush cancelled")
            try:
                invite = self._social.send_invite_by_code(
                    record.payload["code"], record.payload.get("clientCreatedAt")
                )
            except (TransientError, UnsupportedInOfflineMode) as e:
                logger.warning("Stopping invite flush: %s", e)
                result.interrupted = True
                break
            except AuthError:
                raise
            except LudiaryError as e:
                logger.warning(
                    "Invite %s for code %s refused: %s",
                    record.id, record.payload.get("code"), e.message,
                )
                result.warnings.append(PushWarning(record_id=record.id, reason=e.message))
                continue

            # The friends projection now carries the relation
            self._store.purge(Domain.INVITES, self._owner_id, record.id)
            logger.debug("Invite %s sent to %s", record.id, invite.friend_uid)
            result.flushed += 1

        if result.flushed:
            logger.info("Sent %d queued friend invites", result.flushed)
        return result
