from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


THREAD_KINDS = frozenset({"public_thread", "private_thread", "news_thread"})


@dataclass(slots=True, frozen=True)
class ThreadOwnership:
    thread_id: int
    original_user_id: int
    created_by_bot_id: int
    creation_time_unix: int


@dataclass(slots=True, frozen=True)
class MessageState:
    channel_id: int
    thread_id: int | None
    last_message_id: int
    last_seen_unix: int

    @property
    def target_channel_id(self) -> int:
        return self.thread_id if self.thread_id is not None else self.channel_id


@dataclass(slots=True, frozen=True)
class DmHistoryReset:
    channel_id: int
    message_id: int
    cleared_at_unix: int


@dataclass(slots=True)
class ReplyMentionConfig:
    delete_reply_message: bool = False


@dataclass(slots=True)
class ReactionTriggerConfig:
    enabled: bool = False
    trigger_emoji: str = "❓"
    approved_user_ids: set[int] = field(default_factory=set)
    approved_role_names: set[str] = field(default_factory=set)
    require_confirmation_reaction: bool = False
    remove_trigger_reaction: bool = False


@dataclass(slots=True, frozen=True)
class ChannelInfo:
    id: int
    kind: str = "text"
    parent_id: int | None = None
    guild_id: int | None = None
    name: str = ""

    @property
    def is_thread(self) -> bool:
        return self.kind in THREAD_KINDS

    @property
    def is_dm(self) -> bool:
        return self.kind == "dm"


@dataclass(slots=True)
class InboundMessage:
    id: int
    channel_id: int
    author_id: int
    author_name: str
    content: str = ""
    guild_id: int | None = None
    author_is_bot: bool = False
    mention_user_ids: set[int] = field(default_factory=set)
    mention_role_ids: set[int] = field(default_factory=set)
    reference_channel_id: int | None = None
    reference_message_id: int | None = None
    created_at_unix: int = 0

    @property
    def has_reference(self) -> bool:
        return self.reference_message_id is not None


@dataclass(slots=True, frozen=True)
class ReactionEvent:
    user_id: int
    channel_id: int
    message_id: int
    emoji: str
    guild_id: int | None = None
    user_name: str = ""


class TriggerKind(str, Enum):
    MENTION = "mention"
    AUTO_RESPONSE = "auto_response"
    REPLY_MENTION = "reply_mention"
    REACTION = "reaction"
    DIRECT_MESSAGE = "direct_message"
    FORUM_POST = "forum_post"


@dataclass(slots=True)
class Classification:
    kind: TriggerKind
    channel: ChannelInfo
    query: str = ""
    referenced: InboundMessage | None = None
    forum_parent_id: int | None = None

    @property
    def in_thread(self) -> bool:
        return self.channel.is_thread
