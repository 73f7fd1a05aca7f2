from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager

from controller.models import ThreadOwnership


class AsyncRWLock:
    """Many readers or one writer. Waiting writers block new readers."""

    def __init__(self):
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @asynccontextmanager
    async def read(self):
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._writers_waiting == 0)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self):
        async with self._cond:
            self._writers_waiting += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class ThreadOwnershipRegistry:
    """In-memory map of bot-created threads to the user the bot serves there.

    The map is authoritative at runtime. When a store is attached, new records and
    cleanups are mirrored to it without the caller waiting on the write.
    """

    def __init__(self, store=None, *, clock=time.time):
        self._records: dict[int, ThreadOwnership] = {}
        self._lock = AsyncRWLock()
        self._store = store
        self._clock = clock

    async def get(self, thread_id: int) -> ThreadOwnership | None:
        async with self._lock.read():
            return self._records.get(int(thread_id))

    async def put(
        self,
        thread_id: int,
        original_user_id: int,
        created_by_bot_id: int,
        creation_time: int | None = None,
    ) -> ThreadOwnership:
        async with self._lock.write():
            existing = self._records.get(int(thread_id))
            if existing is not None:
                return existing
            record = ThreadOwnership(
                thread_id=int(thread_id),
                original_user_id=int(original_user_id),
                created_by_bot_id=int(created_by_bot_id),
                creation_time_unix=int(creation_time if creation_time is not None else self._clock()),
            )
            self._records[record.thread_id] = record

        print(f"[Registry] thread={record.thread_id} owner={record.original_user_id}")
        if self._store is not None:
            self._store.record_thread_ownership(record)
        return record

    async def cleanup(self, max_age_seconds: int) -> int:
        now = int(self._clock())
        async with self._lock.write():
            if int(max_age_seconds) < 0:
                removed = len(self._records)
                self._records.clear()
            else:
                cutoff = now - int(max_age_seconds)
                stale = [tid for tid, rec in self._records.items() if rec.creation_time_unix < cutoff]
                for tid in stale:
                    del self._records[tid]
                removed = len(stale)

        if removed:
            print(f"[Registry] cleanup removed={removed} max_age={max_age_seconds}s")
        if self._store is not None:
            self._store.purge_thread_ownerships(max_age_seconds, now)
        return removed

    async def load(self, records) -> int:
        loaded = 0
        async with self._lock.write():
            for record in records:
                if record.thread_id in self._records:
                    continue
                self._records[record.thread_id] = record
                loaded += 1
        return loaded

    async def count(self) -> int:
        async with self._lock.read():
            return len(self._records)
