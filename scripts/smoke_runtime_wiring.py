from __future__ import annotations

import asyncio
import importlib
import sqlite3
from types import SimpleNamespace


class _DummyCompletions:
    def create(self, *args, **kwargs):
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="Hello.\n[SUMMARY]: Greeting"))]
        )


class _DummyClient:
    def __init__(self):
        self.chat = SimpleNamespace(completions=_DummyCompletions())


async def _noop_async(*args, **kwargs):
    return None


def _try_import_or_skip(module_name: str, pip_name: str | None = None) -> bool:
    try:
        importlib.import_module(module_name)
        return True
    except ModuleNotFoundError:
        install_name = pip_name or module_name
        print(
            f"Smoke wiring check skipped: missing dependency '{module_name}'. "
            f"Install requirements and retry (e.g. `pip install {install_name}` "
            f"or `pip install -e .`)."
        )
        return False


def _main() -> int:
    if not _try_import_or_skip("discord", "discord.py"):
        return 0

    import discord
    from discord.ext import commands
    from controller.ai_service import OpenAIQueryService
    from controller.ownership import ThreadOwnershipRegistry
    from controller.router import MessageRouter
    from db.migrate import apply_sqlite_migrations
    from db.migrate import list_schema_migrations_sync
    from misc.discord_gateway import DiscordGateway
    from misc.runtime_wiring import wire_bot_runtime
    from storage.service import StateStore

    intents = discord.Intents.none()
    bot = commands.Bot(command_prefix="!", intents=intents)
    db_lock = asyncio.Lock()
    db_conn = sqlite3.connect(":memory:")
    apply_sqlite_migrations(db_conn)

    store = StateStore(db_lock, db_conn)
    registry = ThreadOwnershipRegistry(store)
    gateway = DiscordGateway(bot)
    router = MessageRouter(
        gateway=gateway,
        ai_service=OpenAIQueryService(_DummyClient(), "gpt-4o-mini"),
        registry=registry,
        store=store,
    )

    wire_bot_runtime(
        bot,
        router=router,
        registry=registry,
        db_lock=db_lock,
        db_conn=db_conn,
        allowed_channel_ids={123456789012345678},
        user_is_owner=lambda user: True,
        list_schema_migrations_sync=list_schema_migrations_sync,
        recovery_window_minutes=5,
        recovery_replay_delay_seconds=0.0,
        maintenance_loop_func=_noop_async,
    )

    expected_commands = {"forums", "ownership", "dbmigrations"}
    existing_commands = set(bot.all_commands.keys())
    missing = sorted(expected_commands - existing_commands)
    if missing:
        raise RuntimeError(f"Missing expected commands: {missing}")

    for event_name in ("on_ready", "on_message", "on_raw_reaction_add"):
        if getattr(bot, event_name, None) is None:
            raise RuntimeError(f"Runtime event {event_name} was not registered")

    print("Smoke wiring check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
