from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

WELCOME = "welcome"
STAFF_ALERTS = "staff-alerts"
FREE_GAMES = "free-games"

CONNECT_NOTICE = "✅ MoonBot has successfully connected to Skynet."
DISCONNECT_NOTICE = "❌ MoonBot has disconnected from Skynet."


@dataclass
class NotificationChannels:
    """Static mapping from notification purpose to channel id."""

    welcome: int
    staff_alerts: int
    free_games: int

    def channel_id(self, purpose: str) -> Optional[int]:
        return {
            WELCOME: self.welcome,
            STAFF_ALERTS: self.staff_alerts,
            FREE_GAMES: self.free_games,
        }.get(purpose)


def _format_date(value: Optional[datetime]) -> str:
    if value is None:
        return "unknown"
    return value.strftime("%a %b %d %Y")


def welcome_message(member: Any, invited_by: str) -> str:
    guild = member.guild
    return "\n".join(
        [
            f"**{member}** just joined **{guild.name}**, Welcome!",
            f"**Invited By:** {invited_by}",
            f"**Account Created On:** {_format_date(getattr(member, 'created_at', None))}",
            f"**Total Members:** {guild.member_count}",
        ]
    )


def goodbye_message(member: Any) -> str:
    return "\n".join(
        [
            f"Goodbye, {member}! We're sad to see you go.",
            f"**Total Members:** {member.guild.member_count}",
        ]
    )


def kick_message(member: Any, kicked_by: str) -> str:
    return f"⚠️ **{member}** was kicked by **{kicked_by}**."


def ban_message(user: Any, banned_by: str) -> str:
    return f"⚠️ **{user}** was banned by **{banned_by}**."


def unban_message(user: Any) -> str:
    return f"⚠️ **{user}** was unbanned."


def role_change_message(
    member: Any,
    updated_by: str,
    added: Iterable[Any],
    removed: Iterable[Any],
) -> Optional[str]:
    added_names = [role.name for role in added]
    removed_names = [role.name for role in removed]
    if not added_names and not removed_names:
        return None
    lines = [f"⬆️ **{member}** was updated by **{updated_by}**."]
    if removed_names:
        lines.append(f"Roles Removed: {', '.join(removed_names)}")
    if added_names:
        lines.append(f"Roles Added: {', '.join(added_names)}")
    return "\n".join(lines)


def role_diff(before: Iterable[Any], after: Iterable[Any]) -> tuple[list[Any], list[Any]]:
    before_roles = list(before)
    after_roles = list(after)
    before_ids = {role.id for role in before_roles}
    after_ids = {role.id for role in after_roles}
    added = [role for role in after_roles if role.id not in before_ids]
    removed = [role for role in before_roles if role.id not in after_ids]
    return added, removed
