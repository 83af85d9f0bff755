"""Friends and groups commands for the ludiary CLI.

Commands:
- friends list/invite/accept/reject/remove/nickname
- groups list/create/invite/accept/cancel/reject/leave
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import click

from ludiary.client.cli.config import open_components

if TYPE_CHECKING:
    from ludiary.client.mode import SyncComponents


@contextmanager
def _social() -> Iterator[SyncComponents]:
    """Open the components, turning ludiary errors into CLI errors."""
    from ludiary.core.errors import LudiaryError, UnsupportedInOfflineMode

    with open_components() as components:
        try:
            yield components
        except UnsupportedInOfflineMode:
            click.echo("Error: This command needs online mode. Run 'ludiary register' first.", err=True)
            sys.exit(1)
        except LudiaryError as e:
            click.echo(f"Error: {e.message}", err=True)
            sys.exit(1)


def _run(action: Callable[[SyncComponents], None], done: str) -> None:
    with _social() as components:
        action(components)
        click.echo(done)


# === Friends ===


@click.group()
def friends() -> None:
    """Manage friends."""


@friends.command("list")
def list_friends() -> None:
    """List friends known locally (run 'ludiary sync' to refresh)."""
    from ludiary.core.types import Domain

    with _social() as components:
        records = components.coordinator(Domain.FRIENDS).list(components.user_id)
        if not records:
            click.echo("No friends yet.")
            return
        for record in records:
            p = record.payload
            name = p.get("nickname") or p.get("displayName") or p.get("friendCode") or record.id
            click.echo(f"  {name}  [{p.get('status', '?')}]  {record.id}")


@friends.command("invite")
@click.argument("code")
@click.option("--later", is_flag=True, help="Queue the invite and send it on the next sync.")
def invite_friend(code: str, later: bool) -> None:
    """Send a friend invite to the owner of CODE.

    If the server cannot be reached, the invite is queued and sent on
    the next sync.
    """
    from ludiary.core.errors import TransientError

    with _social() as components:
        if later or not components.online:
            record = components.outbox.queue(code)
            click.echo(f"Invite queued ({record.id}).")
            return
        try:
            invite = components.social.send_invite_by_code(code)
        except TransientError:
            record = components.outbox.queue(code)
            click.echo(f"Server unreachable, invite queued ({record.id}).")
            return
        click.echo(f"Invite sent to {invite.display_name or invite.friend_code} ({invite.friend_uid}).")


@friends.command("accept")
@click.argument("friend_uid")
def accept_friend(friend_uid: str) -> None:
    """Accept an incoming invite from FRIEND_UID."""
    _run(lambda c: c.social.accept_friend(friend_uid), "Invite accepted.")


@friends.command("reject")
@click.argument("friend_uid")
def reject_friend(friend_uid: str) -> None:
    """Reject an invite exchanged with FRIEND_UID."""
    _run(lambda c: c.social.reject_friend(friend_uid), "Invite rejected.")


@friends.command("remove")
@click.argument("friend_uid")
def remove_friend(friend_uid: str) -> None:
    """Remove FRIEND_UID from friends."""
    _run(lambda c: c.social.remove_friend(friend_uid), "Friend removed.")


@friends.command("nickname")
@click.argument("friend_uid")
@click.argument("nickname", required=False)
def nickname(friend_uid: str, nickname: str | None) -> None:
    """Set (or clear, without NICKNAME) a private nickname."""
    _run(lambda c: c.social.update_nickname(friend_uid, nickname), "Nickname updated.")


# === Groups ===


@click.group()
def groups() -> None:
    """Manage groups."""


@groups.command("list")
def list_groups() -> None:
    """List groups known locally (run 'ludiary sync' to refresh)."""
    from ludiary.core.types import Domain

    with _social() as components:
        records = components.coordinator(Domain.GROUPS).list(components.user_id)
        if not records:
            click.echo("No groups yet.")
            return
        for record in records:
            p = record.payload
            click.echo(f"  {p.get('name', '?')}  ({p.get('membersCount', '?')} members)  {record.id}")


@groups.command("create")
@click.argument("name")
def create_group(name: str) -> None:
    """Create a group called NAME."""
    with _social() as components:
        group = components.social.create_group(name)
        click.echo(f"Group created: {group.name} ({group.group_id})")


@groups.command("invite")
@click.argument("group_id")
@click.argument("user_uid")
def invite_to_group(group_id: str, user_uid: str) -> None:
    """Invite USER_UID into GROUP_ID."""
    with _social() as components:
        invite = components.social.invite_to_group(group_id, user_uid)
        click.echo(f"Invite {invite.invite_id}: {invite.status}")


@groups.command("accept")
@click.argument("invite_id")
def accept_invite(invite_id: str) -> None:
    """Accept group invite INVITE_ID."""
    _run(lambda c: c.social.accept_group_invite(invite_id), "Joined group.")


@groups.command("cancel")
@click.argument("invite_id")
def cancel_invite(invite_id: str) -> None:
    """Cancel group invite INVITE_ID."""
    _run(lambda c: c.social.cancel_group_invite(invite_id), "Invite cancelled.")


@groups.command("reject")
@click.argument("invite_id")
def reject_invite(invite_id: str) -> None:
    """Reject group invite INVITE_ID."""
    _run(lambda c: c.social.reject_group_invite(invite_id), "Invite rejected.")


@groups.command("leave")
@click.argument("group_id")
def leave_group(group_id: str) -> None:
    """Leave GROUP_ID."""
    _run(lambda c: c.social.leave_group(group_id), "Left group.")
