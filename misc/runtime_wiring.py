from __future__ import annotations

from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.commands_owner import register as register_owner
from misc.discord_delivery import send_chunked
from misc.discord_gates import message_in_allowed_channels
from misc.discord_gateway import channel_info
from misc.discord_gateway import inbound_from_message
from misc.discord_gateway import reaction_from_payload
from misc.events_runtime import register_runtime_events
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps


def wire_bot_runtime(
    bot,
    *,
    router,
    registry,
    db_lock,
    db_conn,
    allowed_channel_ids: set[int],
    user_is_owner,
    list_schema_migrations_sync,
    recovery_window_minutes: int,
    recovery_replay_delay_seconds: float,
    maintenance_loop_func,
) -> None:
    def in_allowed_channel(ctx) -> bool:
        try:
            return message_in_allowed_channels(channel_info(ctx.channel), allowed_channel_ids)
        except Exception:
            return False

    register_owner(
        bot,
        deps=CommandDeps(
            db_lock=db_lock,
            db_conn=db_conn,
            send_chunked=send_chunked,
            router=router,
            registry=registry,
            list_schema_migrations_sync=list_schema_migrations_sync,
        ),
        gates=CommandGates(
            in_allowed_channel=in_allowed_channel,
            allowed_channel_ids=allowed_channel_ids,
            user_is_owner=user_is_owner,
        ),
    )

    register_runtime_events(
        bot,
        deps=RuntimeDeps(
            router=router,
            to_inbound=inbound_from_message,
            to_reaction=reaction_from_payload,
        ),
        boot=RuntimeBootDeps(
            recovery_window_minutes=recovery_window_minutes,
            recovery_replay_delay_seconds=recovery_replay_delay_seconds,
            maintenance_loop_func=maintenance_loop_func,
        ),
    )


async def run_bot(bot, token: str, *, store) -> None:
    """Run the client until it disconnects, then flush pending state writes."""
    async with bot:
        try:
            await bot.start(token)
        finally:
            if store is not None:
                await store.drain()
                print("[Store] pending writes flushed")
