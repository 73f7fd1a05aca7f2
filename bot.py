import asyncio
import os
import sqlite3

import discord
from discord.ext import commands
from openai import OpenAI

from config.settings import load_settings
from controller.ai_service import OpenAIQueryService
from controller.ownership import ThreadOwnershipRegistry
from controller.router import MessageRouter
from db.migrate import apply_sqlite_migrations
from db.migrate import list_schema_migrations_sync
from jobs.service import maintenance_loop as maintenance_loop_service
from misc.discord_gateway import DiscordGateway
from misc.runtime_wiring import run_bot
from misc.runtime_wiring import wire_bot_runtime
from storage.service import StateStore

# =========================
# ENV
# =========================
SETTINGS = load_settings()
print(
    f"[CFG] model={SETTINGS.openai_model} db={SETTINGS.db_path} "
    f"recovery_window={SETTINGS.recovery_window_minutes}m "
    f"forums={len(SETTINGS.monitored_forum_ids)} allowed_channels={len(SETTINGS.allowed_channel_ids) or 'all'} "
    f"reaction_trigger={'on' if SETTINGS.reaction_trigger.enabled else 'off'}"
)


# =========================
# SQLITE
# =========================
def init_db(db_path: str) -> sqlite3.Connection:
    parent = os.path.dirname(os.path.abspath(db_path))
    os.makedirs(parent, exist_ok=True)
    # check_same_thread=False because discord.py event loop + to_thread usage
    conn = sqlite3.connect(db_path, check_same_thread=False)
    cur = conn.cursor()
    cur.execute("PRAGMA journal_mode=WAL;")
    cur.execute("PRAGMA synchronous=NORMAL;")
    apply_sqlite_migrations(conn)
    conn.commit()
    return conn


db_conn = init_db(SETTINGS.db_path)
db_lock = asyncio.Lock()
print(f"[DB] Using DB_PATH={SETTINGS.db_path}")


def user_is_owner(user: discord.abc.User) -> bool:
    return int(getattr(user, "id", 0) or 0) in SETTINGS.owner_user_ids


# =========================
# BOT
# =========================
client = OpenAI(api_key=SETTINGS.openai_api_key)

intents = discord.Intents.default()
intents.message_content = True
intents.members = True
intents.reactions = True
intents.dm_messages = True
bot = commands.Bot(command_prefix="!", intents=intents)

store = StateStore(db_lock, db_conn, write_timeout=SETTINGS.store_write_timeout_seconds)
registry = ThreadOwnershipRegistry(store)
gateway = DiscordGateway(bot)
router = MessageRouter(
    gateway=gateway,
    ai_service=OpenAIQueryService(client, SETTINGS.openai_model),
    registry=registry,
    store=store,
    monitored_forums=SETTINGS.monitored_forum_ids,
    reply_mention=SETTINGS.reply_mention,
    reaction_trigger=SETTINGS.reaction_trigger,
    allowed_channel_ids=SETTINGS.allowed_channel_ids,
)


async def maintenance_loop() -> None:
    return await maintenance_loop_service(
        registry=registry,
        max_age_seconds=SETTINGS.ownership_max_age_hours * 3600,
        interval_seconds=SETTINGS.maintenance_interval_seconds,
    )


wire_bot_runtime(
    bot,
    router=router,
    registry=registry,
    db_lock=db_lock,
    db_conn=db_conn,
    allowed_channel_ids=SETTINGS.allowed_channel_ids,
    user_is_owner=user_is_owner,
    list_schema_migrations_sync=list_schema_migrations_sync,
    recovery_window_minutes=SETTINGS.recovery_window_minutes,
    recovery_replay_delay_seconds=SETTINGS.recovery_replay_delay_seconds,
    maintenance_loop_func=maintenance_loop,
)


discord.utils.setup_logging()
try:
    asyncio.run(run_bot(bot, SETTINGS.discord_token, store=store))
except KeyboardInterrupt:
    print("[Bot] interrupted, shutting down")
