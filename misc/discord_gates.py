from __future__ import annotations

from controller.models import ChannelInfo
from controller.models import ReactionEvent
from controller.models import ReactionTriggerConfig


def message_in_allowed_channels(channel: ChannelInfo, allowed_channel_ids: set[int]) -> bool:
    # Empty allowlist means every channel.
    if not allowed_channel_ids:
        return True
    if channel.is_dm or channel.guild_id is None:
        return True
    if int(channel.id) in allowed_channel_ids:
        return True
    # thread: allow if parent is allowed
    if channel.is_thread and channel.parent_id is not None:
        return int(channel.parent_id) in allowed_channel_ids
    return False


def is_monitored_forum_post(channel: ChannelInfo, parent: ChannelInfo | None, monitored_forum_ids: set[int]) -> bool:
    if not channel.is_thread or parent is None:
        return False
    return parent.kind == "forum" and int(parent.id) in monitored_forum_ids


async def user_shares_guild(gateway, user_id: int) -> bool:
    for guild_id in gateway.guild_ids():
        try:
            if await gateway.is_guild_member(guild_id, user_id):
                return True
        except Exception as e:
            print(f"[Gate] member lookup failed guild={guild_id} user={user_id}: {e}")
    return False


async def reactor_is_authorized(gateway, event: ReactionEvent, policy: ReactionTriggerConfig) -> bool:
    if int(event.user_id) in policy.approved_user_ids:
        return True
    if event.guild_id is None or not policy.approved_role_names:
        return False

    try:
        member_role_ids = await gateway.member_role_ids(event.guild_id, event.user_id)
        guild_roles = await gateway.guild_roles(event.guild_id)
    except Exception as e:
        print(f"[Gate] role lookup failed guild={event.guild_id} user={event.user_id}: {e}")
        return False

    approved = {name.strip().lower() for name in policy.approved_role_names}
    for role_id in member_role_ids:
        name = guild_roles.get(int(role_id))
        if name and name.strip().lower() in approved:
            return True
    return False
