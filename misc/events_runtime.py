from __future__ import annotations

import asyncio

import discord
from discord.ext import commands

from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps


async def run_startup_recovery(deps: RuntimeDeps, boot: RuntimeBootDeps) -> tuple[int, int]:
    try:
        owned = await deps.router.recover_thread_ownership()
    except Exception as e:
        print(f"[Recovery] ownership recovery failed: {e}")
        owned = 0
    try:
        replayed = await deps.router.recover_missed_messages(
            boot.recovery_window_minutes,
            replay_delay_seconds=boot.recovery_replay_delay_seconds,
        )
    except Exception as e:
        print(f"[Recovery] message recovery failed: {e}")
        replayed = 0
    return owned, replayed


def register_runtime_events(
    bot: commands.Bot,
    *,
    deps: RuntimeDeps,
    boot: RuntimeBootDeps,
) -> None:
    @bot.event
    async def on_ready():
        print(f"Threadwise is online as {bot.user}")

        # on_ready fires again after reconnects; startup work runs once per process.
        if getattr(bot, "_startup_done", False):
            return
        bot._startup_done = True

        owned, replayed = await run_startup_recovery(deps, boot)
        print(f"[Recovery] startup complete ownership={owned} replayed={replayed}")

        if not getattr(bot, "_maintenance_task", None):
            bot._maintenance_task = asyncio.create_task(boot.maintenance_loop_func())
            print("[Maintenance] ownership cleanup loop started")

    @bot.event
    async def on_message(message: discord.Message):
        if bot.user and message.author.id == bot.user.id:
            return

        # Only registered commands are consumed; "!!" chatter still routes.
        if (message.content or "").lstrip().startswith("!"):
            ctx = await bot.get_context(message)
            if ctx.valid:
                await bot.invoke(ctx)
                return

        await deps.router.handle_message(deps.to_inbound(message))

    @bot.event
    async def on_raw_reaction_add(payload: discord.RawReactionActionEvent):
        if bot.user and payload.user_id == bot.user.id:
            return
        await deps.router.handle_reaction(deps.to_reaction(payload))
