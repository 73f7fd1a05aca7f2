from __future__ import annotations

import time
from collections import OrderedDict

from config.defaults import AI_ERROR_REPLY
from config.defaults import CHUNK_SEND_DELAY_SECONDS
from config.defaults import DEFAULT_RECOVERY_REPLAY_DELAY_SECONDS
from config.defaults import DM_CLEAR_CONFIRMATION
from config.defaults import DM_CLEAR_TIP
from config.defaults import DM_RESET_CACHE_SIZE
from config.defaults import HISTORY_FETCH_LIMIT
from config.defaults import NON_MEMBER_DM_REPLY
from config.defaults import THREAD_AUTO_ARCHIVE_MINUTES
from config.defaults import THREAD_CREATE_FAILED_PREFIX
from config.defaults import THREAD_POST_FAILED_PREFIX
from controller.classifier import classify_message
from controller.classifier import classify_reaction
from controller.classifier import resolve_channel
from controller.models import ChannelInfo
from controller.models import Classification
from controller.models import InboundMessage
from controller.models import ReactionEvent
from controller.models import ReactionTriggerConfig
from controller.models import ReplyMentionConfig
from controller.models import TriggerKind
from jobs.recovery import recover_missed_messages
from jobs.recovery import recover_thread_ownership
from misc.discord_delivery import DeliveryError
from misc.discord_delivery import send_response_in_chunks
from misc.discord_gates import message_in_allowed_channels
from misc.discord_gates import user_shares_guild
from misc.mention_routes import is_clear_command
from misc.mention_routes import reply_attribution
from misc.mention_routes import reply_fallback_attribution
from misc.mention_routes import reply_thread_title
from misc.mention_routes import thread_title_for
from retrieval.service import build_conversation_context

CONFIRMATION_EMOJI = "✅"


class MessageRouter:
    """Routes gateway events to the right conversation flow.

    Each event is classified once and handled by exactly one flow. Flows never raise
    to the caller; failures are printed and the event is considered consumed.
    """

    def __init__(
        self,
        *,
        gateway,
        ai_service,
        registry,
        store=None,
        monitored_forums: set[int] | None = None,
        reply_mention: ReplyMentionConfig | None = None,
        reaction_trigger: ReactionTriggerConfig | None = None,
        allowed_channel_ids: set[int] | None = None,
        chunk_delay_seconds: float = CHUNK_SEND_DELAY_SECONDS,
        dm_reset_cache_size: int = DM_RESET_CACHE_SIZE,
        clock=time.time,
    ):
        self.gateway = gateway
        self.ai_service = ai_service
        self.registry = registry
        self.store = store
        self._monitored_forums: set[int] = set(monitored_forums or set())
        self.reply_mention = reply_mention or ReplyMentionConfig()
        self.reaction_trigger = reaction_trigger or ReactionTriggerConfig()
        self.allowed_channel_ids: set[int] = set(allowed_channel_ids or set())
        self.chunk_delay_seconds = float(chunk_delay_seconds)
        self._clock = clock
        # LRU of DM channel -> /clear message id; misses fall back to the store.
        self._dm_history_floor: OrderedDict[int, int] = OrderedDict()
        self._dm_reset_cache_size = max(1, int(dm_reset_cache_size))

    @property
    def bot_user_id(self) -> int:
        return int(self.gateway.bot_user_id)

    # ---- configuration setters ----

    def set_monitored_forums(self, forum_ids) -> None:
        self._monitored_forums = {int(x) for x in forum_ids}

    def add_monitored_forum(self, forum_id: int) -> bool:
        before = len(self._monitored_forums)
        self._monitored_forums.add(int(forum_id))
        return len(self._monitored_forums) != before

    def remove_monitored_forum(self, forum_id: int) -> bool:
        if int(forum_id) not in self._monitored_forums:
            return False
        self._monitored_forums.discard(int(forum_id))
        return True

    def monitored_forums(self) -> set[int]:
        return set(self._monitored_forums)

    def set_reply_mention_config(self, config: ReplyMentionConfig) -> None:
        self.reply_mention = config

    def set_reaction_trigger_config(self, config: ReactionTriggerConfig) -> None:
        self.reaction_trigger = config

    def set_allowed_channel_ids(self, channel_ids) -> None:
        self.allowed_channel_ids = {int(x) for x in channel_ids}

    # ---- entry points ----

    async def handle_message(self, message: InboundMessage) -> None:
        try:
            await self._handle_message(message)
        except Exception as e:
            print(f"[Router] message={message.id} channel={message.channel_id} failed: {e}")

    async def handle_reaction(self, event: ReactionEvent) -> None:
        try:
            await self._handle_reaction(event)
        except Exception as e:
            print(f"[Router] reaction message={event.message_id} channel={event.channel_id} failed: {e}")

    async def recover_missed_messages(self, window_minutes: int, *, replay_delay_seconds: float | None = None) -> int:
        return await recover_missed_messages(
            store=self.store,
            gateway=self.gateway,
            replay=self.handle_message,
            bot_user_id=self.bot_user_id,
            window_minutes=window_minutes,
            replay_delay_seconds=(
                DEFAULT_RECOVERY_REPLAY_DELAY_SECONDS if replay_delay_seconds is None else replay_delay_seconds
            ),
            now=int(self._clock()),
        )

    async def recover_thread_ownership(self) -> int:
        return await recover_thread_ownership(store=self.store, registry=self.registry)

    # ---- message path ----

    async def _handle_message(self, message: InboundMessage) -> None:
        bot_id = self.bot_user_id
        if int(message.author_id) == bot_id:
            return

        channel = await resolve_channel(self.gateway, message)
        if not message_in_allowed_channels(channel, self.allowed_channel_ids):
            return

        classification = await classify_message(
            message,
            gateway=self.gateway,
            bot_user_id=bot_id,
            registry=self.registry,
            monitored_forums=self._monitored_forums,
            channel=channel,
        )
        if classification is None:
            return

        print(f"[Router] {classification.kind.value} message={message.id} channel={channel.id} author={message.author_id}")

        if classification.kind == TriggerKind.DIRECT_MESSAGE:
            await self._handle_direct_message(message, classification)
        elif classification.kind == TriggerKind.FORUM_POST:
            await self._handle_forum_post(message, classification)
        elif classification.kind == TriggerKind.REPLY_MENTION:
            await self._handle_reply_mention(message, classification)
        elif classification.in_thread:
            self._checkpoint(channel.id, channel.id, message)
            await self._answer_in_thread(classification.channel.id, classification.query, reply_to_id=message.id)
        else:
            self._checkpoint(channel.id, None, message)
            await self._answer_in_new_thread(
                origin_channel_id=channel.id,
                query=classification.query,
                owner_id=message.author_id,
                reply_to_id=message.id,
                title_for=lambda summary: thread_title_for(classification.query, summary),
            )

    async def _handle_reply_mention(self, message: InboundMessage, classification: Classification) -> None:
        referenced = classification.referenced
        channel = classification.channel
        reply_to_id: int | None = message.id

        if self.reply_mention.delete_reply_message:
            try:
                await self.gateway.delete_message(channel.id, message.id)
                reply_to_id = None
            except Exception as e:
                print(f"[Router] could not delete reply message={message.id}: {e}")

        if channel.is_thread:
            self._checkpoint(channel.id, channel.id, message)
            await self._answer_in_thread(
                channel.id,
                classification.query,
                reply_to_id=reply_to_id,
                prefix=reply_attribution(referenced.author_name, referenced.content),
            )
            return

        self._checkpoint(channel.id, None, message)
        await self._answer_in_new_thread(
            origin_channel_id=channel.id,
            query=classification.query,
            owner_id=message.author_id,
            reply_to_id=reply_to_id,
            title_for=lambda summary: reply_thread_title(referenced.author_name, summary, classification.query),
            body_prefix=reply_attribution(referenced.author_name, referenced.content),
            inline_prefix=reply_fallback_attribution(referenced.author_name),
        )

    async def _handle_direct_message(self, message: InboundMessage, classification: Classification) -> None:
        channel_id = classification.channel.id
        if not await user_shares_guild(self.gateway, message.author_id):
            print(f"[Router] DM from non-member user={message.author_id}")
            await self._send_plain(channel_id, NON_MEMBER_DM_REPLY)
            return

        self._checkpoint(channel_id, None, message)
        query = classification.query
        if not query:
            return

        if is_clear_command(query):
            self._remember_dm_floor(channel_id, int(message.id))
            if self.store is not None:
                self.store.record_dm_history_reset(channel_id, message.id)
            await self._send_plain(channel_id, DM_CLEAR_CONFIRMATION)
            return

        await self._answer_in_dm(channel_id, query)

    async def _answer_in_dm(self, channel_id: int, query: str, *, apologize: bool = True) -> None:
        floor = await self._dm_floor(channel_id)
        history, count = await build_conversation_context(
            self.gateway,
            channel_id,
            ai_service=self.ai_service,
            limit=HISTORY_FETCH_LIMIT,
            after_message_id=floor,
        )
        try:
            async with self.gateway.typing(channel_id):
                if history and count > 1:
                    answer = await self.ai_service.query_with_context(query, history)
                else:
                    answer = await self.ai_service.query_ai(query)
        except Exception as e:
            print(f"[Router] AI error in DM channel={channel_id}: {e}")
            if apologize:
                await self._send_plain(channel_id, AI_ERROR_REPLY)
            return

        await self._deliver(channel_id, answer + DM_CLEAR_TIP)

    def _remember_dm_floor(self, channel_id: int, message_id: int) -> None:
        self._dm_history_floor[channel_id] = message_id
        self._dm_history_floor.move_to_end(channel_id)
        while len(self._dm_history_floor) > self._dm_reset_cache_size:
            self._dm_history_floor.popitem(last=False)

    async def _dm_floor(self, channel_id: int) -> int | None:
        if channel_id in self._dm_history_floor:
            self._dm_history_floor.move_to_end(channel_id)
            return self._dm_history_floor[channel_id]
        if self.store is None:
            return None
        try:
            reset = await self.store.get_dm_history_reset(channel_id)
        except Exception as e:
            print(f"[Router] DM reset lookup failed channel={channel_id}: {e}")
            return None
        if reset is None:
            return None
        self._remember_dm_floor(channel_id, reset.message_id)
        return reset.message_id

    async def _handle_forum_post(self, message: InboundMessage, classification: Classification) -> None:
        post_id = classification.channel.id
        self._checkpoint(classification.forum_parent_id, post_id, message)

        history, count = await build_conversation_context(self.gateway, post_id, ai_service=self.ai_service)
        try:
            async with self.gateway.typing(post_id):
                if history and count > 1:
                    answer = await self.ai_service.query_with_context(classification.query, history)
                else:
                    answer = await self.ai_service.query_ai(classification.query)
        except Exception as e:
            print(f"[Router] AI error in forum post={post_id}: {e}")
            await self._send_plain(post_id, AI_ERROR_REPLY)
            return

        await self._deliver(post_id, answer)

    # ---- reaction path ----

    async def _handle_reaction(self, event: ReactionEvent) -> None:
        bot_id = self.bot_user_id
        policy = self.reaction_trigger
        if not await classify_reaction(event, gateway=self.gateway, bot_user_id=bot_id, policy=policy):
            return

        try:
            channel = await self.gateway.fetch_channel(event.channel_id)
        except Exception as e:
            print(f"[Router] channel lookup failed channel={event.channel_id}: {e}")
            channel = ChannelInfo(id=int(event.channel_id), kind="text", guild_id=event.guild_id)
        if not message_in_allowed_channels(channel, self.allowed_channel_ids):
            return

        if policy.require_confirmation_reaction:
            try:
                await self.gateway.add_reaction(event.channel_id, event.message_id, CONFIRMATION_EMOJI)
            except Exception as e:
                print(f"[Router] could not add confirmation reaction message={event.message_id}: {e}")
        if policy.remove_trigger_reaction:
            try:
                await self.gateway.remove_reaction(event.channel_id, event.message_id, event.emoji, event.user_id)
            except Exception as e:
                print(f"[Router] could not remove trigger reaction message={event.message_id}: {e}")

        try:
            target = await self.gateway.fetch_message(event.channel_id, event.message_id)
        except Exception as e:
            print(f"[Router] reacted message unavailable id={event.message_id}: {e}")
            return
        query = (target.content or "").strip()
        if target.author_is_bot or not query:
            return

        reactor = event.user_name or str(event.user_id)
        print(f"[Router] reaction message={target.id} channel={channel.id} reactor={reactor}")
        if channel.is_dm:
            await self._answer_in_dm(channel.id, query, apologize=False)
            return
        if channel.is_thread:
            await self._answer_in_thread(channel.id, query, apologize=False)
            return

        await self._answer_in_new_thread(
            origin_channel_id=channel.id,
            query=query,
            owner_id=target.author_id,
            reply_to_id=target.id,
            anchor_message_id=target.id,
            title_for=lambda summary: thread_title_for(query, summary),
            apologize=False,
        )

    # ---- shared flows ----

    async def _answer_in_thread(
        self,
        thread_id: int,
        query: str,
        *,
        reply_to_id: int | None = None,
        prefix: str = "",
        apologize: bool = True,
    ) -> None:
        history, _count = await build_conversation_context(self.gateway, thread_id, ai_service=self.ai_service)
        try:
            async with self.gateway.typing(thread_id):
                if history:
                    answer = await self.ai_service.query_with_context(query, history)
                else:
                    answer = await self.ai_service.query_ai(query)
        except Exception as e:
            print(f"[Router] AI error in thread={thread_id}: {e}")
            if apologize:
                await self._apologize(thread_id, reply_to_id)
            return

        await self._deliver(thread_id, prefix + answer)

    async def _answer_in_new_thread(
        self,
        *,
        origin_channel_id: int,
        query: str,
        owner_id: int,
        title_for,
        reply_to_id: int | None = None,
        anchor_message_id: int | None = None,
        body_prefix: str = "",
        inline_prefix: str = THREAD_CREATE_FAILED_PREFIX,
        apologize: bool = True,
    ) -> None:
        try:
            async with self.gateway.typing(origin_channel_id):
                answer, summary = await self.ai_service.query_ai_with_summary(query)
        except Exception as e:
            print(f"[Router] AI error in channel={origin_channel_id}: {e}")
            if apologize:
                await self._apologize(origin_channel_id, reply_to_id)
            return

        title = title_for(summary)
        try:
            thread = await self.gateway.start_thread(
                origin_channel_id,
                title,
                auto_archive_minutes=THREAD_AUTO_ARCHIVE_MINUTES,
                message_id=anchor_message_id,
            )
        except Exception as e:
            print(f"[Router] thread create failed channel={origin_channel_id} title={title!r}: {e}")
            await self._deliver(origin_channel_id, inline_prefix + answer, reply_to_id=reply_to_id)
            return

        await self.registry.put(thread.id, owner_id, self.bot_user_id)

        try:
            await send_response_in_chunks(
                self.gateway,
                thread.id,
                body_prefix + answer,
                delay_seconds=self.chunk_delay_seconds,
            )
        except DeliveryError as e:
            print(f"[Delivery] thread post failed thread={thread.id}: {e}")
            await self._deliver(
                origin_channel_id,
                THREAD_POST_FAILED_PREFIX + body_prefix + answer,
                reply_to_id=reply_to_id,
            )

    # ---- helpers ----

    def _checkpoint(self, channel_id: int, thread_id: int | None, message: InboundMessage) -> None:
        if self.store is None:
            return
        self.store.record_message_state(channel_id, thread_id, message.id, int(self._clock()))

    async def _deliver(self, channel_id: int, text: str, *, reply_to_id: int | None = None) -> bool:
        try:
            await send_response_in_chunks(
                self.gateway,
                channel_id,
                text,
                reply_to_message_id=reply_to_id,
                delay_seconds=self.chunk_delay_seconds,
            )
        except DeliveryError as e:
            print(f"[Delivery] {e}")
            return False
        return True

    async def _send_plain(self, channel_id: int, text: str) -> None:
        try:
            await self.gateway.send_message(channel_id, text)
        except Exception as e:
            print(f"[Delivery] send failed channel={channel_id}: {e}")

    async def _apologize(self, channel_id: int, reply_to_id: int | None) -> None:
        try:
            if reply_to_id is not None:
                await self.gateway.send_reply(channel_id, reply_to_id, AI_ERROR_REPLY)
            else:
                await self.gateway.send_message(channel_id, AI_ERROR_REPLY)
        except Exception as e:
            print(f"[Delivery] apology failed channel={channel_id}: {e}")
