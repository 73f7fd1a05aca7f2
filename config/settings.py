from __future__ import annotations

import os
import re
from dataclasses import dataclass, field

from config.defaults import DEFAULT_DB_PATH
from config.defaults import DEFAULT_MAINTENANCE_INTERVAL_SECONDS
from config.defaults import DEFAULT_OPENAI_MODEL
from config.defaults import DEFAULT_OWNERSHIP_MAX_AGE_HOURS
from config.defaults import DEFAULT_REACTION_EMOJI
from config.defaults import DEFAULT_RECOVERY_REPLAY_DELAY_SECONDS
from config.defaults import DEFAULT_RECOVERY_WINDOW_MINUTES
from config.defaults import DEFAULT_STORE_WRITE_TIMEOUT_SECONDS
from controller.models import ReactionTriggerConfig
from controller.models import ReplyMentionConfig

_TRUE_TOKENS = {"1", "true", "yes", "on"}
_FALSE_TOKENS = {"0", "false", "no", "off"}


def parse_id_set(raw: str | None) -> set[int]:
    if not raw:
        return set()
    out: set[int] = set()
    for tok in re.split(r"[\s,;]+", raw.strip()):
        if not tok:
            continue
        if re.fullmatch(r"\d{8,22}", tok):
            out.add(int(tok))
    return out


def parse_str_set(raw: str | None) -> set[str]:
    if not raw:
        return set()
    return {tok.strip().lower() for tok in re.split(r"[,;]+", raw) if tok.strip()}


def parse_bool(raw: str | None, default: bool = False) -> bool:
    text = (raw or "").strip().lower()
    if text in _TRUE_TOKENS:
        return True
    if text in _FALSE_TOKENS:
        return False
    if text:
        print(f"[CFG] Unrecognized boolean value {raw!r}; using {default}")
    return default


def parse_int(raw: str | None, default: int, *, minimum: int | None = None) -> int:
    text = (raw or "").strip()
    if not text:
        return default
    try:
        value = int(text)
    except ValueError:
        print(f"[CFG] Invalid integer {raw!r}; using {default}")
        return default
    if minimum is not None and value < minimum:
        print(f"[CFG] Value {value} below minimum {minimum}; using {default}")
        return default
    return value


def parse_float(raw: str | None, default: float, *, minimum: float | None = None) -> float:
    text = (raw or "").strip()
    if not text:
        return default
    try:
        value = float(text)
    except ValueError:
        print(f"[CFG] Invalid number {raw!r}; using {default}")
        return default
    if minimum is not None and value < minimum:
        print(f"[CFG] Value {value} below minimum {minimum}; using {default}")
        return default
    return value


def load_reply_mention_config(env=None) -> ReplyMentionConfig:
    env = os.environ if env is None else env
    return ReplyMentionConfig(
        delete_reply_message=parse_bool(env.get("REPLY_MENTION_DELETE_MESSAGE"), False),
    )


def load_reaction_trigger_config(env=None) -> ReactionTriggerConfig:
    env = os.environ if env is None else env
    emoji = (env.get("REACTION_TRIGGER_EMOJI") or "").strip() or DEFAULT_REACTION_EMOJI
    return ReactionTriggerConfig(
        enabled=parse_bool(env.get("REACTION_TRIGGER_ENABLED"), False),
        trigger_emoji=emoji,
        approved_user_ids=parse_id_set(env.get("REACTION_TRIGGER_APPROVED_USER_IDS")),
        approved_role_names=parse_str_set(env.get("REACTION_TRIGGER_APPROVED_ROLE_NAMES")),
        require_confirmation_reaction=parse_bool(env.get("REACTION_TRIGGER_REQUIRE_REACTION"), False),
        remove_trigger_reaction=parse_bool(env.get("REACTION_TRIGGER_REMOVE_REACTION"), False),
    )


@dataclass(frozen=True)
class Settings:
    discord_token: str
    openai_api_key: str
    openai_model: str = DEFAULT_OPENAI_MODEL
    db_path: str = DEFAULT_DB_PATH
    recovery_window_minutes: int = DEFAULT_RECOVERY_WINDOW_MINUTES
    recovery_replay_delay_seconds: float = DEFAULT_RECOVERY_REPLAY_DELAY_SECONDS
    ownership_max_age_hours: int = DEFAULT_OWNERSHIP_MAX_AGE_HOURS
    maintenance_interval_seconds: int = DEFAULT_MAINTENANCE_INTERVAL_SECONDS
    store_write_timeout_seconds: float = DEFAULT_STORE_WRITE_TIMEOUT_SECONDS
    allowed_channel_ids: set[int] = field(default_factory=set)
    monitored_forum_ids: set[int] = field(default_factory=set)
    owner_user_ids: set[int] = field(default_factory=set)
    reply_mention: ReplyMentionConfig = field(default_factory=ReplyMentionConfig)
    reaction_trigger: ReactionTriggerConfig = field(default_factory=ReactionTriggerConfig)


def load_settings(env=None) -> Settings:
    env = os.environ if env is None else env

    discord_token = (env.get("DISCORD_TOKEN") or "").strip()
    openai_api_key = (env.get("OPENAI_API_KEY") or "").strip()
    if not discord_token:
        raise RuntimeError("Missing DISCORD_TOKEN env var")
    if not openai_api_key:
        raise RuntimeError("Missing OPENAI_API_KEY env var")

    # MESSAGE_RECOVERY_WINDOW_MINUTES is the older name for the same knob.
    window_raw = env.get("THREADWISE_RECOVERY_WINDOW_MINUTES") or env.get("MESSAGE_RECOVERY_WINDOW_MINUTES")

    return Settings(
        discord_token=discord_token,
        openai_api_key=openai_api_key,
        openai_model=(env.get("OPENAI_MODEL") or "").strip() or DEFAULT_OPENAI_MODEL,
        db_path=(env.get("THREADWISE_DB_PATH") or env.get("DATABASE_PATH") or "").strip() or DEFAULT_DB_PATH,
        recovery_window_minutes=parse_int(window_raw, DEFAULT_RECOVERY_WINDOW_MINUTES, minimum=0),
        recovery_replay_delay_seconds=parse_float(
            env.get("THREADWISE_RECOVERY_REPLAY_DELAY_SECONDS"),
            DEFAULT_RECOVERY_REPLAY_DELAY_SECONDS,
            minimum=0.0,
        ),
        ownership_max_age_hours=parse_int(
            env.get("THREADWISE_OWNERSHIP_MAX_AGE_HOURS"),
            DEFAULT_OWNERSHIP_MAX_AGE_HOURS,
            minimum=1,
        ),
        maintenance_interval_seconds=parse_int(
            env.get("THREADWISE_MAINTENANCE_INTERVAL_SECONDS"),
            DEFAULT_MAINTENANCE_INTERVAL_SECONDS,
            minimum=60,
        ),
        store_write_timeout_seconds=parse_float(
            env.get("THREADWISE_STORE_WRITE_TIMEOUT_SECONDS"),
            DEFAULT_STORE_WRITE_TIMEOUT_SECONDS,
            minimum=0.1,
        ),
        allowed_channel_ids=parse_id_set(env.get("THREADWISE_ALLOWED_CHANNEL_IDS")),
        monitored_forum_ids=parse_id_set(env.get("THREADWISE_MONITORED_FORUM_IDS")),
        owner_user_ids=parse_id_set(env.get("THREADWISE_OWNER_USER_IDS")),
        reply_mention=load_reply_mention_config(env),
        reaction_trigger=load_reaction_trigger_config(env),
    )
