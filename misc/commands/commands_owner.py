from __future__ import annotations

import asyncio
import re

from discord.ext import commands
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates


def _parse_channel_id_token(token: str) -> int | None:
    m = re.fullmatch(r"<#(\d{8,22})>|(\d{8,22})", (token or "").strip())
    if not m:
        return None
    return int(m.group(1) or m.group(2))


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    async def _owner_gate(ctx: commands.Context) -> bool:
        if not gates.in_allowed_channel(ctx):
            return False
        if not gates.user_is_owner(ctx.author):
            await ctx.send("This command is owner-only.")
            return False
        return True

    @bot.command(name="forums")
    async def cmd_forums(ctx: commands.Context, action: str = "list", channel: str = ""):
        if not await _owner_gate(ctx):
            return

        action_key = (action or "list").strip().lower()
        if action_key == "list":
            forums = sorted(deps.router.monitored_forums())
            if not forums:
                await ctx.send("No forum channels are monitored.")
                return
            lines = [f"Monitored forums ({len(forums)}):"] + [f"- <#{fid}> ({fid})" for fid in forums]
            await deps.send_chunked(ctx.channel, "\n".join(lines))
            return

        if action_key not in {"add", "remove"}:
            await ctx.send("Usage: `!forums [list|add <channel>|remove <channel>]`")
            return

        forum_id = _parse_channel_id_token(channel)
        if forum_id is None:
            await ctx.send("Give a forum channel mention or ID.")
            return

        if action_key == "add":
            changed = deps.router.add_monitored_forum(forum_id)
            await ctx.send(f"Now monitoring <#{forum_id}>." if changed else f"<#{forum_id}> was already monitored.")
        else:
            changed = deps.router.remove_monitored_forum(forum_id)
            await ctx.send(f"Stopped monitoring <#{forum_id}>." if changed else f"<#{forum_id}> was not monitored.")

    @bot.command(name="ownership")
    async def cmd_ownership(ctx: commands.Context, action: str = "count", hours: str = ""):
        if not await _owner_gate(ctx):
            return

        action_key = (action or "count").strip().lower()
        if action_key == "count":
            total = await deps.registry.count()
            await ctx.send(f"Tracking {total} bot-owned thread(s).")
            return

        if action_key == "purge":
            removed = await deps.registry.cleanup(-1)
            await ctx.send(f"Removed all {removed} thread ownership record(s).")
            return

        if action_key == "cleanup":
            try:
                max_age_hours = int(hours)
            except ValueError:
                await ctx.send("Usage: `!ownership cleanup <hours>`")
                return
            if max_age_hours < 0:
                await ctx.send("Hours must be zero or more; use `!ownership purge` to remove everything.")
                return
            removed = await deps.registry.cleanup(max_age_hours * 3600)
            await ctx.send(f"Removed {removed} thread ownership record(s) older than {max_age_hours}h.")
            return

        await ctx.send("Usage: `!ownership [count|cleanup <hours>|purge]`")

    @bot.command(name="dbmigrations")
    async def cmd_dbmigrations(ctx: commands.Context, limit: int = 30):
        if not await _owner_gate(ctx):
            return

        lim = max(1, min(int(limit or 30), 200))
        async with deps.db_lock:
            rows = await asyncio.to_thread(deps.list_schema_migrations_sync, deps.db_conn, lim)

        if not rows:
            await ctx.send("No schema migrations found.")
            return

        lines = [f"Applied schema migrations (latest {len(rows)}):"]
        for version, name, applied_at in rows:
            lines.append(f"- {version}_{name} @ {applied_at}")

        await deps.send_chunked(ctx.channel, "```\n" + "\n".join(lines)[:7000] + "\n```")
