from __future__ import annotations

from config.defaults import PARTICIPANT_SCAN_LIMIT
from controller.models import ChannelInfo
from controller.models import Classification
from controller.models import InboundMessage
from controller.models import ReactionEvent
from controller.models import ReactionTriggerConfig
from controller.models import TriggerKind
from misc.discord_gates import is_monitored_forum_post
from misc.discord_gates import reactor_is_authorized
from misc.mention_routes import extract_query_from_mention


async def resolve_channel(gateway, message: InboundMessage) -> ChannelInfo:
    try:
        return await gateway.fetch_channel(message.channel_id)
    except Exception as e:
        print(f"[Router] channel lookup failed channel={message.channel_id}: {e}")
        return ChannelInfo(id=int(message.channel_id), kind="text", guild_id=message.guild_id)


async def is_bot_mentioned(gateway, message: InboundMessage, bot_user_id: int) -> bool:
    if int(bot_user_id) in message.mention_user_ids:
        return True
    if not message.mention_role_ids or message.guild_id is None:
        return False
    try:
        bot_roles = await gateway.member_role_ids(message.guild_id, bot_user_id)
    except Exception as e:
        print(f"[Router] bot role lookup failed guild={message.guild_id}: {e}")
        return False
    return bool(set(message.mention_role_ids) & set(bot_roles))


async def count_thread_participants(
    gateway,
    thread_id: int,
    bot_user_id: int,
    limit: int = PARTICIPANT_SCAN_LIMIT,
) -> int:
    page = await gateway.fetch_history(thread_id, limit=limit)
    authors = {
        int(m.author_id)
        for m in page
        if not m.author_is_bot and int(m.author_id) != int(bot_user_id)
    }
    return len(authors)


async def should_auto_respond(gateway, registry, thread_id: int, author_id: int, bot_user_id: int) -> bool:
    try:
        record = await registry.get(thread_id)
        if record is None:
            return False
        if int(record.original_user_id) != int(author_id):
            return False
        if int(record.created_by_bot_id) != int(bot_user_id):
            return False
        participants = await count_thread_participants(gateway, thread_id, bot_user_id)
    except Exception as e:
        print(f"[Router] auto-response check failed thread={thread_id}: {e}")
        return False
    return participants == 1


async def fetch_referenced_message(gateway, message: InboundMessage) -> InboundMessage | None:
    if message.reference_message_id is None:
        return None
    channel_id = message.reference_channel_id or message.channel_id
    try:
        referenced = await gateway.fetch_message(channel_id, message.reference_message_id)
    except Exception as e:
        print(f"[Router] referenced message unavailable id={message.reference_message_id}: {e}")
        return None
    if referenced is None or referenced.author_is_bot:
        return None
    if not (referenced.content or "").strip():
        return None
    return referenced


async def classify_message(
    message: InboundMessage,
    *,
    gateway,
    bot_user_id: int,
    registry,
    monitored_forums: set[int],
    channel: ChannelInfo | None = None,
) -> Classification | None:
    """Decide whether and how to answer a message; ``None`` means ignore it.

    Exactly one kind is returned. Direct messages and monitored forum posts are
    recognised first; otherwise reply-mention outranks a plain mention, which
    outranks auto-response in a bot-owned thread.
    """
    if int(message.author_id) == int(bot_user_id):
        return None

    if channel is None:
        channel = await resolve_channel(gateway, message)

    if channel.is_dm:
        return Classification(kind=TriggerKind.DIRECT_MESSAGE, channel=channel, query=(message.content or "").strip())

    if channel.is_thread and channel.parent_id is not None and monitored_forums:
        parent = None
        try:
            parent = await gateway.fetch_channel(channel.parent_id)
        except Exception as e:
            print(f"[Router] parent lookup failed channel={channel.parent_id}: {e}")
        if is_monitored_forum_post(channel, parent, monitored_forums):
            query = (message.content or "").strip()
            if message.author_is_bot or not query:
                return None
            return Classification(
                kind=TriggerKind.FORUM_POST,
                channel=channel,
                query=query,
                forum_parent_id=int(channel.parent_id),
            )

    mentioned = await is_bot_mentioned(gateway, message, bot_user_id)

    if mentioned and message.has_reference:
        referenced = await fetch_referenced_message(gateway, message)
        if referenced is not None:
            return Classification(
                kind=TriggerKind.REPLY_MENTION,
                channel=channel,
                query=referenced.content.strip(),
                referenced=referenced,
            )

    if mentioned:
        query = extract_query_from_mention(message.content, bot_user_id)
        if not query:
            return None
        return Classification(kind=TriggerKind.MENTION, channel=channel, query=query)

    if channel.is_thread:
        query = (message.content or "").strip()
        if query and await should_auto_respond(gateway, registry, channel.id, message.author_id, bot_user_id):
            return Classification(kind=TriggerKind.AUTO_RESPONSE, channel=channel, query=query)

    return None


async def classify_reaction(
    event: ReactionEvent,
    *,
    gateway,
    bot_user_id: int,
    policy: ReactionTriggerConfig,
) -> bool:
    if not policy.enabled:
        return False
    if int(event.user_id) == int(bot_user_id):
        return False
    if event.emoji != policy.trigger_emoji:
        return False
    return await reactor_is_authorized(gateway, event, policy)
