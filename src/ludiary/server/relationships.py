"""Friend and group relationship transactions.

This module provides:
- RelationshipService: Atomic, idempotent operations over paired
  relationship rows (two friend rows, or group + member + invite rows)

Every public operation is a single Database.run_transaction call: it
either commits every row it touches or none of them, and it is
re-executed from scratch when a concurrent writer wins the race.

Each relationship row written also updates the matching ``friends`` /
``groups`` sync record, which is how clients receive relationship
changes through the regular pull.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from ludiary.core.errors import (
    InternalError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionError,
    ValidationError,
)
from ludiary.core.types import Domain, InviteStatus, RelationStatus, now_millis
from ludiary.server.database import (
    DEFAULT_MAX_ATTEMPTS,
    add_notification,
    write_sync_record,
)
from ludiary.server.models import (
    FriendCode,
    FriendRelation,
    Group,
    GroupInvite,
    GroupMember,
    Notification,
    NotificationStats,
    SyncRecord,
    User,
    UserGroup,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from ludiary.server.database import Database

logger = logging.getLogger(__name__)

DEFAULT_GROUP_NAME = "Group"


@dataclass
class FriendInviteResult:
    """Resolved target of a friend invite."""

    friend_uid: str
    friend_code: str
    display_name: str | None


@dataclass
class GroupCreated:
    """Result of group creation."""

    group_id: str
    name: str
    now: int
    members_count: int


@dataclass
class InviteSnapshot:
    """State of a group invite after an invite call."""

    invite_id: str
    group_id: str
    group_name_snapshot: str
    from_uid: str
    to_uid: str
    status: str
    created_at: int
    responded_at: int | None


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def _require(value: str | None, name: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{name} required")
    return value


# === Projection helpers ===


def _friend_payload(rel: FriendRelation) -> dict[str, Any]:
    return {
        "friendUid": rel.friend_uid,
        "friendCode": rel.friend_code,
        "displayName": rel.display_name,
        "nickname": rel.nickname,
        "status": rel.status,
        "createdAt": rel.created_at,
        "updatedAt": rel.updated_at,
    }


def _project_friend(session: Session, rel: FriendRelation, now: int) -> None:
    write_sync_record(
        session, Domain.FRIENDS.value, rel.owner_uid, rel.friend_uid, _friend_payload(rel), now
    )


def _drop_projection(
    session: Session, domain: Domain, owner_id: str, record_id: str, now: int
) -> None:
    """Tombstone a projected record if clients may hold a copy."""
    record = session.get(SyncRecord, (domain.value, owner_id, record_id))
    if record is not None and record.deleted_at is None:
        write_sync_record(session, domain.value, owner_id, record_id, None, now)


def _project_group(session: Session, group: Group, now: int) -> None:
    """Refresh the group record of every member."""
    members = session.execute(
        select(UserGroup).where(UserGroup.group_id == group.id)
    ).scalars()
    for index in members:
        write_sync_record(
            session,
            Domain.GROUPS.value,
            index.user_uid,
            group.id,
            {
                "groupId": group.id,
                "name": group.name,
                "nameSnapshot": index.name_snapshot,
                "membersCount": group.members_count,
                "joinedAt": index.joined_at,
                "updatedAt": group.updated_at,
            },
            now,
        )


def _snapshot(invite: GroupInvite) -> InviteSnapshot:
    return InviteSnapshot(
        invite_id=invite.id,
        group_id=invite.group_id,
        group_name_snapshot=invite.group_name_snapshot,
        from_uid=invite.from_uid,
        to_uid=invite.to_uid,
        status=invite.status,
        created_at=invite.created_at,
        responded_at=invite.responded_at,
    )


class RelationshipService:
    """Transactional friend, group and notification operations."""

    def __init__(
        self,
        db: Database,
        clock: Callable[[], int] = now_millis,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._db = db
        self._clock = clock
        self._max_attempts = max_attempts

    def _run(self, fn: Callable[[Session], Any]) -> Any:
        return self._db.run_transaction(fn, max_attempts=self._max_attempts)

    # === Friends ===

    def send_invite_by_code(
        self,
        requester_id: str,
        code: str | None,
        client_created_at: int | None = None,
    ) -> FriendInviteResult:
        """Send a friend invite to the owner of a friend code.

        Writes the requester's row as PENDING_OUTGOING and the target's
        as PENDING_INCOMING. An existing invite in either direction is
        overwritten with this direction. Already friends is a no-op.

        Raises:
            ValidationError: Blank code.
            NotFoundError: Unknown code.
            PreconditionError: Own code.
            InternalError: Code index points to a missing user.
        """
        normalized = normalize_code(code)
        if not normalized:
            raise ValidationError("code required")

        def tx(session: Session) -> FriendInviteResult:
            index = session.get(FriendCode, normalized)
            if index is None:
                raise NotFoundError("Friend code not found")
            friend_uid = index.uid
            if friend_uid == requester_id:
                raise PreconditionError("Cannot invite yourself")

            friend = session.get(User, friend_uid)
            if friend is None:
                raise InternalError(f"Friend code {normalized} points to a missing user")
            me = session.get(User, requester_id)

            result = FriendInviteResult(friend_uid, normalized, friend.display_name)

            mine = session.get(FriendRelation, (requester_id, friend_uid))
            theirs = session.get(FriendRelation, (friend_uid, requester_id))
            if (
                mine is not None
                and theirs is not None
                and mine.status == RelationStatus.ACCEPTED.value
                and theirs.status == RelationStatus.ACCEPTED.value
            ):
                return result

            now = self._clock()
            created_at = client_created_at or now
            mine = self._set_relation(
                session, mine, requester_id, friend_uid, RelationStatus.PENDING_OUTGOING,
                now, created_at, friend_code=normalized, display_name=friend.display_name,
            )
            theirs = self._set_relation(
                session, theirs, friend_uid, requester_id, RelationStatus.PENDING_INCOMING,
                now, created_at,
                friend_code=me.friend_code if me else None,
                display_name=me.display_name if me else None,
            )
            session.flush()
            _project_friend(session, mine, now)
            _project_friend(session, theirs, now)
            add_notification(
                session,
                friend_uid,
                "friend_invite",
                {"fromUid": requester_id, "displayName": theirs.display_name},
                now,
            )
            return result

        result = self._run(tx)
        logger.info("Friend invite %s -> %s", requester_id, result.friend_uid)
        return result

    def _set_relation(
        self,
        session: Session,
        rel: FriendRelation | None,
        owner_uid: str,
        friend_uid: str,
        status: RelationStatus,
        now: int,
        created_at: int,
        friend_code: str | None = None,
        display_name: str | None = None,
    ) -> FriendRelation:
        if rel is None:
            rel = FriendRelation(
                owner_uid=owner_uid,
                friend_uid=friend_uid,
                status=status.value,
                friend_code=friend_code,
                display_name=display_name,
                created_at=created_at,
                updated_at=now,
            )
            session.add(rel)
            return rel
        rel.status = status.value
        rel.updated_at = now
        if friend_code is not None:
            rel.friend_code = friend_code
        if display_name is not None:
            rel.display_name = display_name
        return rel

    def accept(self, acceptor_id: str, counterpart_id: str) -> None:
        """Accept an incoming friend invite. Accepting twice is a no-op.

        Raises:
            NotFoundError: No relation with the counterpart.
            PreconditionError: The relation is not an incoming invite.
        """
        counterpart_id = _require(counterpart_id, "friendUid")

        def tx(session: Session) -> None:
            mine = session.get(FriendRelation, (acceptor_id, counterpart_id))
            if mine is None:
                raise NotFoundError("Friend relation not found")
            if mine.status == RelationStatus.ACCEPTED.value:
                return
            if mine.status != RelationStatus.PENDING_INCOMING.value:
                raise PreconditionError("Only an incoming invite can be accepted")

            now = self._clock()
            theirs = session.get(FriendRelation, (counterpart_id, acceptor_id))
            if theirs is None:
                # Reciprocity repair: the sender side went missing
                logger.warning("Missing mirror row %s -> %s, recreating", counterpart_id, acceptor_id)
                acceptor = session.get(User, acceptor_id)
                theirs = self._set_relation(
                    session, None, counterpart_id, acceptor_id, RelationStatus.ACCEPTED,
                    now, mine.created_at,
                    friend_code=acceptor.friend_code if acceptor else None,
                    display_name=acceptor.display_name if acceptor else None,
                )
            mine.status = RelationStatus.ACCEPTED.value
            mine.updated_at = now
            theirs.status = RelationStatus.ACCEPTED.value
            theirs.updated_at = now
            session.flush()
            _project_friend(session, mine, now)
            _project_friend(session, theirs, now)
            add_notification(
                session, counterpart_id, "friend_accepted", {"friendUid": acceptor_id}, now
            )

        self._run(tx)
        logger.info("Friend invite accepted: %s <-> %s", acceptor_id, counterpart_id)

    def reject(self, rejector_id: str, counterpart_id: str) -> None:
        """Drop a friend invite: both rows go in one transaction. Idempotent."""
        self._delete_pair(rejector_id, _require(counterpart_id, "friendUid"))
        logger.info("Friend invite rejected: %s / %s", rejector_id, counterpart_id)

    def remove(self, owner_id: str, counterpart_id: str) -> None:
        """Remove a friend: both rows go in one transaction. Idempotent."""
        self._delete_pair(owner_id, _require(counterpart_id, "friendUid"))
        logger.info("Friend removed: %s / %s", owner_id, counterpart_id)

    def _delete_pair(self, uid: str, counterpart_id: str) -> None:
        def tx(session: Session) -> None:
            now = self._clock()
            for owner, friend in ((uid, counterpart_id), (counterpart_id, uid)):
                rel = session.get(FriendRelation, (owner, friend))
                if rel is not None:
                    session.delete(rel)
                _drop_projection(session, Domain.FRIENDS, owner, friend, now)

        self._run(tx)

    def update_nickname(self, owner_id: str, counterpart_id: str, nickname: str | None) -> None:
        """Set the owner's private nickname for a friend. Blank clears it.

        Raises:
            NotFoundError: No relation with the counterpart.
        """
        counterpart_id = _require(counterpart_id, "friendUid")
        cleaned = (nickname or "").strip() or None

        def tx(session: Session) -> None:
            rel = session.get(FriendRelation, (owner_id, counterpart_id))
            if rel is None:
                raise NotFoundError("Friend relation not found")
            now = self._clock()
            rel.nickname = cleaned
            rel.updated_at = now
            session.flush()
            _project_friend(session, rel, now)

        self._run(tx)

    # === Groups ===

    def create_group(self, owner_id: str, name: str | None) -> GroupCreated:
        """Create a group with its owner as only member."""
        name = _require(name, "name")

        def tx(session: Session) -> GroupCreated:
            now = self._clock()
            group = Group(
                id=str(uuid.uuid4()),
                name=name,
                owner_uid=owner_id,
                members_count=1,
                created_at=now,
                updated_at=now,
            )
            session.add(group)
            session.add(GroupMember(group_id=group.id, user_uid=owner_id, joined_at=now))
            session.add(
                UserGroup(
                    user_uid=owner_id,
                    group_id=group.id,
                    name_snapshot=name,
                    joined_at=now,
                    updated_at=now,
                )
            )
            session.flush()
            _project_group(session, group, now)
            return GroupCreated(group_id=group.id, name=name, now=now, members_count=1)

        result = self._run(tx)
        logger.info("Group %s created by %s", result.group_id, owner_id)
        return result

    def invite_to_group(
        self,
        from_id: str,
        group_id: str,
        to_id: str,
        group_name_snapshot: str | None = None,
        client_created_at: int | None = None,
    ) -> InviteSnapshot:
        """Invite a user into a group.

        Inviting again while an invite is PENDING returns it unchanged.

        Raises:
            NotFoundError: Unknown group or user.
            PermissionDeniedError: Inviter is not a member.
            PreconditionError: Self invite, or invitee already a member.
        """
        group_id = _require(group_id, "groupId")
        to_id = _require(to_id, "toUid")

        def tx(session: Session) -> InviteSnapshot:
            group = session.get(Group, group_id)
            if group is None:
                raise NotFoundError("Group not found")
            if session.get(GroupMember, (group_id, from_id)) is None:
                raise PermissionDeniedError("Not a member of the group")
            if to_id == from_id:
                raise PreconditionError("Cannot invite yourself")
            if session.get(GroupMember, (group_id, to_id)) is not None:
                raise PreconditionError("User is already a member")
            if session.get(User, to_id) is None:
                raise NotFoundError("User not found")

            invite_id = f"{group_id}_{to_id}"
            invite = session.get(GroupInvite, invite_id)
            if invite is not None and invite.status == InviteStatus.PENDING.value:
                return _snapshot(invite)

            now = self._clock()
            name = (group_name_snapshot or "").strip() or group.name or DEFAULT_GROUP_NAME
            if invite is None:
                invite = GroupInvite(id=invite_id, group_id=group_id, to_uid=to_id)
                session.add(invite)
            invite.from_uid = from_id
            invite.group_name_snapshot = name
            invite.status = InviteStatus.PENDING.value
            invite.created_at = client_created_at or now
            invite.responded_at = None
            add_notification(
                session,
                to_id,
                "group_invite",
                {"inviteId": invite_id, "groupId": group_id, "groupName": name, "fromUid": from_id},
                now,
            )
            session.flush()
            return _snapshot(invite)

        snapshot = self._run(tx)
        logger.info("Group invite %s from %s", snapshot.invite_id, from_id)
        return snapshot

    def accept_group_invite(self, user_id: str, invite_id: str) -> None:
        """Join a group through an invite. Accepting twice is a no-op.

        The membership count only moves when the membership row is new,
        so an accepted invite always stands for exactly one membership.

        Raises:
            NotFoundError: Unknown invite or group gone.
            PermissionDeniedError: Invite addressed to someone else.
            PreconditionError: Invite cancelled.
        """
        invite_id = _require(invite_id, "inviteId")

        def tx(session: Session) -> None:
            invite = session.get(GroupInvite, invite_id)
            if invite is None:
                raise NotFoundError("Invite not found")
            if invite.to_uid != user_id:
                raise PermissionDeniedError("Invite is addressed to another user")
            if invite.status == InviteStatus.ACCEPTED.value:
                return
            if invite.status != InviteStatus.PENDING.value:
                raise PreconditionError("Invite is not pending")

            group = session.get(Group, invite.group_id)
            if group is None:
                raise NotFoundError("Group not found")

            now = self._clock()
            invite.status = InviteStatus.ACCEPTED.value
            invite.responded_at = now

            if session.get(GroupMember, (group.id, user_id)) is None:
                session.add(GroupMember(group_id=group.id, user_uid=user_id, joined_at=now))
                group.members_count += 1

            index = session.get(UserGroup, (user_id, group.id))
            if index is None:
                session.add(
                    UserGroup(
                        user_uid=user_id,
                        group_id=group.id,
                        name_snapshot=invite.group_name_snapshot,
                        joined_at=now,
                        updated_at=now,
                    )
                )
            else:
                index.name_snapshot = invite.group_name_snapshot
                index.updated_at = now
            group.updated_at = now
            session.flush()
            _project_group(session, group, now)
            add_notification(
                session,
                invite.from_uid,
                "group_invite_accepted",
                {"inviteId": invite.id, "groupId": group.id, "uid": user_id},
                now,
            )

        self._run(tx)
        logger.info("Group invite %s accepted by %s", invite_id, user_id)

    def cancel_group_invite(self, user_id: str, invite_id: str) -> None:
        """Cancel a pending invite (sender or addressee). Missing is a no-op.

        Raises:
            PermissionDeniedError: Caller is neither sender nor addressee.
            PreconditionError: Invite already accepted.
        """
        invite_id = _require(invite_id, "inviteId")

        def tx(session: Session) -> None:
            invite = session.get(GroupInvite, invite_id)
            if invite is None:
                return
            if user_id not in (invite.from_uid, invite.to_uid):
                raise PermissionDeniedError("Not authorized")
            if invite.status == InviteStatus.CANCELLED.value:
                return
            if invite.status == InviteStatus.ACCEPTED.value:
                raise PreconditionError("Invite already accepted")
            invite.status = InviteStatus.CANCELLED.value
            invite.responded_at = self._clock()

        self._run(tx)

    def reject_group_invite(self, user_id: str, invite_id: str) -> None:
        """Delete an invite addressed to the caller. Missing is a no-op.

        Raises:
            PermissionDeniedError: Invite addressed to someone else.
        """
        invite_id = _require(invite_id, "inviteId")

        def tx(session: Session) -> None:
            invite = session.get(GroupInvite, invite_id)
            if invite is None:
                return
            if invite.to_uid != user_id:
                raise PermissionDeniedError("Not authorized")
            session.delete(invite)

        self._run(tx)

    def leave_group(self, user_id: str, group_id: str) -> None:
        """Leave a group; the last member leaving deletes it.

        Leaving a group one is not part of is a no-op.
        """
        group_id = _require(group_id, "groupId")

        def tx(session: Session) -> None:
            group = session.get(Group, group_id)
            if group is None:
                return
            member = session.get(GroupMember, (group_id, user_id))
            if member is None:
                return

            now = self._clock()
            session.delete(member)
            index = session.get(UserGroup, (user_id, group_id))
            if index is not None:
                session.delete(index)
            _drop_projection(session, Domain.GROUPS, user_id, group_id, now)
            session.flush()

            remaining = session.execute(
                select(GroupMember.user_uid).where(GroupMember.group_id == group_id).limit(1)
            ).first()
            if remaining is None:
                invites = session.execute(
                    select(GroupInvite).where(GroupInvite.group_id == group_id)
                ).scalars()
                for invite in invites:
                    session.delete(invite)
                session.delete(group)
                logger.info("Group %s deleted (last member left)", group_id)
                return

            group.members_count = max(0, group.members_count - 1)
            group.updated_at = now
            session.flush()
            _project_group(session, group, now)

        self._run(tx)
        logger.info("User %s left group %s", user_id, group_id)

    # === Notifications ===

    def mark_notification_read(self, user_id: str, notification_id: str) -> None:
        """Flag a notification read and decrement the unread counter.

        Unknown ids and already-read notifications are no-ops.
        """
        notification_id = _require(notification_id, "notificationId")

        def tx(session: Session) -> None:
            notification = session.get(Notification, notification_id)
            if notification is None or notification.user_uid != user_id:
                return
            if notification.is_read:
                return
            notification.is_read = True
            notification.read_at = self._clock()
            stats = session.get(NotificationStats, user_id)
            if stats is None:
                session.add(NotificationStats(user_uid=user_id, unread_count=0))
            else:
                stats.unread_count = max(0, stats.unread_count - 1)

        self._run(tx)
