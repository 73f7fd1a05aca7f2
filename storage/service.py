from __future__ import annotations

import asyncio
import time

from config.defaults import DEFAULT_STORE_WRITE_TIMEOUT_SECONDS
from controller.models import DmHistoryReset
from controller.models import MessageState
from controller.models import ThreadOwnership
from storage import store


class StateStore:
    """Async face of the sqlite state store.

    Reads are awaited by callers. Writes issued from the message path go through the
    ``record_*`` helpers, which spawn a detached task bounded by ``write_timeout`` and
    only print on failure; they are never retried.
    """

    def __init__(self, db_lock: asyncio.Lock, db_conn, *, write_timeout: float = DEFAULT_STORE_WRITE_TIMEOUT_SECONDS):
        self.db_lock = db_lock
        self.db_conn = db_conn
        self.write_timeout = float(write_timeout)
        self._pending: set[asyncio.Task] = set()

    async def _run(self, fn, *args):
        async with self.db_lock:
            return await asyncio.to_thread(fn, self.db_conn, *args)

    def _spawn(self, label: str, fn, *args) -> asyncio.Task:
        async def _write():
            try:
                await asyncio.wait_for(self._run(fn, *args), timeout=self.write_timeout)
            except asyncio.TimeoutError:
                print(f"[Store] {label} timed out after {self.write_timeout:.1f}s")
            except Exception as e:
                print(f"[Store] {label} failed: {e}")

        task = asyncio.create_task(_write())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ---- message checkpoints ----

    async def save_message_state(
        self,
        channel_id: int,
        thread_id: int | None,
        last_message_id: int,
        last_seen_unix: int | None = None,
    ) -> None:
        seen = int(last_seen_unix if last_seen_unix is not None else time.time())
        await self._run(store.upsert_message_state_sync, channel_id, thread_id, last_message_id, seen)

    def record_message_state(
        self,
        channel_id: int,
        thread_id: int | None,
        last_message_id: int,
        last_seen_unix: int | None = None,
    ) -> asyncio.Task:
        seen = int(last_seen_unix if last_seen_unix is not None else time.time())
        return self._spawn(
            f"checkpoint channel={channel_id} thread={thread_id}",
            store.upsert_message_state_sync,
            channel_id,
            thread_id,
            last_message_id,
            seen,
        )

    async def get_message_state(self, channel_id: int, thread_id: int | None) -> MessageState | None:
        return await self._run(store.get_message_state_sync, channel_id, thread_id)

    async def message_states_within(self, window_seconds: int, now: int | None = None) -> list[MessageState]:
        cutoff = int(now if now is not None else time.time()) - int(window_seconds)
        return await self._run(store.fetch_message_states_within_window_sync, cutoff)

    # ---- thread ownership ----

    async def save_thread_ownership(self, record: ThreadOwnership) -> None:
        await self._run(store.upsert_thread_ownership_sync, record)

    def record_thread_ownership(self, record: ThreadOwnership) -> asyncio.Task:
        return self._spawn(f"ownership thread={record.thread_id}", store.upsert_thread_ownership_sync, record)

    async def get_thread_ownership(self, thread_id: int) -> ThreadOwnership | None:
        return await self._run(store.get_thread_ownership_sync, thread_id)

    async def load_thread_ownerships(self) -> list[ThreadOwnership]:
        return await self._run(store.fetch_all_thread_ownerships_sync)

    def purge_thread_ownerships(self, max_age_seconds: int, now: int | None = None) -> asyncio.Task:
        now_ts = int(now if now is not None else time.time())
        return self._spawn(
            f"ownership cleanup max_age={max_age_seconds}",
            store.cleanup_thread_ownerships_sync,
            max_age_seconds,
            now_ts,
        )

    # ---- DM history resets ----

    def record_dm_history_reset(self, channel_id: int, message_id: int, cleared_unix: int | None = None) -> asyncio.Task:
        cleared = int(cleared_unix if cleared_unix is not None else time.time())
        return self._spawn(
            f"dm reset channel={channel_id}",
            store.set_dm_history_reset_sync,
            channel_id,
            message_id,
            cleared,
        )

    async def get_dm_history_reset(self, channel_id: int) -> DmHistoryReset | None:
        return await self._run(store.get_dm_history_reset_sync, channel_id)
