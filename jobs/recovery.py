from __future__ import annotations

import asyncio
import time

from config.defaults import HISTORY_FETCH_LIMIT


async def recover_missed_messages(
    *,
    store,
    gateway,
    replay,
    bot_user_id: int,
    window_minutes: int,
    replay_delay_seconds: float = 0.5,
    fetch_limit: int = HISTORY_FETCH_LIMIT,
    now: int | None = None,
) -> int:
    """Replay messages that arrived while the bot was offline.

    Only checkpoints seen within the window are considered. Each message is
    replayed at most once per run, oldest first, through ``replay``.
    """
    if store is None:
        return 0

    now_ts = int(now if now is not None else time.time())
    window_seconds = max(0, int(window_minutes)) * 60
    cutoff = now_ts - window_seconds

    try:
        states = await store.message_states_within(window_seconds, now=now_ts)
    except Exception as e:
        print(f"[Recovery] could not load checkpoints: {e}")
        return 0

    if not states:
        print("[Recovery] no recent checkpoints")
        return 0

    replayed_ids: set[int] = set()
    replayed = 0
    for state in states:
        if state.last_seen_unix < cutoff:
            continue
        channel_id = state.target_channel_id
        try:
            page = await gateway.fetch_history(
                channel_id,
                limit=fetch_limit,
                after_message_id=state.last_message_id,
                oldest_first=True,
            )
        except Exception as e:
            print(f"[Recovery] fetch failed channel={channel_id}: {e}")
            continue

        pending = []
        for message in sorted(page, key=lambda m: (m.created_at_unix, m.id)):
            if message.author_is_bot or int(message.author_id) == int(bot_user_id):
                continue
            if message.created_at_unix < cutoff:
                continue
            if message.id in replayed_ids:
                continue
            pending.append(message)

        for message in pending:
            if replayed and replay_delay_seconds > 0:
                await asyncio.sleep(replay_delay_seconds)
            replayed_ids.add(message.id)
            await replay(message)
            replayed += 1

        if pending:
            print(f"[Recovery] channel={channel_id} replayed={len(pending)}")

    print(f"[Recovery] done checkpoints={len(states)} replayed={replayed}")
    return replayed


async def recover_thread_ownership(*, store, registry) -> int:
    if store is None:
        return 0
    try:
        records = await store.load_thread_ownerships()
    except Exception as e:
        print(f"[Recovery] could not load thread ownership: {e}")
        return 0
    loaded = await registry.load(records)
    print(f"[Recovery] thread ownership loaded={loaded}")
    return loaded
