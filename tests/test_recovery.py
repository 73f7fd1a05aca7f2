from __future__ import annotations

import asyncio
import sqlite3
import unittest

from controller.models import InboundMessage
from controller.models import ThreadOwnership
from controller.ownership import ThreadOwnershipRegistry
from db.migrate import apply_sqlite_migrations
from jobs.recovery import recover_missed_messages
from jobs.recovery import recover_thread_ownership
from storage.service import StateStore
from storage.store import upsert_message_state_sync
from storage.store import upsert_thread_ownership_sync

BOT_ID = 999
NOW = 1_700_000_000


class _HistoryGateway:
    def __init__(self):
        self.history: dict[int, list[InboundMessage]] = {}
        self.fetches: list[tuple[int, int | None]] = []

    async def fetch_history(self, channel_id, *, limit, after_message_id=None, oldest_first=False):
        self.fetches.append((channel_id, after_message_id))
        rows = [m for m in self.history.get(channel_id, []) if after_message_id is None or m.id > after_message_id]
        page = rows[:limit] if oldest_first else rows[-limit:]
        return list(reversed(page))


def _msg(msg_id, channel_id, author_id, created_at_unix, content="hello"):
    return InboundMessage(
        id=msg_id,
        channel_id=channel_id,
        author_id=author_id,
        author_name=f"user{author_id}",
        author_is_bot=(author_id == BOT_ID),
        content=content,
        created_at_unix=created_at_unix,
    )


class RecoveryTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.conn = sqlite3.connect(":memory:", check_same_thread=False)
        apply_sqlite_migrations(self.conn)
        self.store = StateStore(asyncio.Lock(), self.conn)
        self.gateway = _HistoryGateway()
        self.replayed: list[int] = []

    def tearDown(self):
        self.conn.close()

    async def _replay(self, message):
        self.replayed.append(message.id)

    async def _recover(self, window_minutes=5):
        return await recover_missed_messages(
            store=self.store,
            gateway=self.gateway,
            replay=self._replay,
            bot_user_id=BOT_ID,
            window_minutes=window_minutes,
            replay_delay_seconds=0,
            now=NOW,
        )

    async def test_recent_checkpoint_replays_missed_messages_once_oldest_first(self):
        upsert_message_state_sync(self.conn, 100, None, 10, NOW - 120)
        self.gateway.history[100] = [
            _msg(9, 100, 10, NOW - 200),
            _msg(10, 100, 10, NOW - 120),
            _msg(11, 100, 10, NOW - 90),
            _msg(12, 100, BOT_ID, NOW - 80),
            _msg(13, 100, 20, NOW - 30),
        ]

        count = await self._recover()

        self.assertEqual(count, 2)
        self.assertEqual(self.replayed, [11, 13])
        self.assertEqual(self.gateway.fetches, [(100, 10)])

    async def test_checkpoint_outside_window_is_skipped(self):
        upsert_message_state_sync(self.conn, 100, None, 10, NOW - 600)
        self.gateway.history[100] = [_msg(11, 100, 10, NOW - 30)]

        self.assertEqual(await self._recover(), 0)
        self.assertEqual(self.gateway.fetches, [])

    async def test_messages_older_than_window_are_dropped(self):
        upsert_message_state_sync(self.conn, 100, None, 10, NOW - 60)
        self.gateway.history[100] = [_msg(11, 100, 10, NOW - 400), _msg(12, 100, 10, NOW - 10)]

        await self._recover()

        self.assertEqual(self.replayed, [12])

    async def test_thread_checkpoint_reads_thread_and_dedupes_shared_target(self):
        # Forum checkpoint (parent, post) and a thread checkpoint share the same post channel.
        upsert_message_state_sync(self.conn, 400, 401, 20, NOW - 100)
        upsert_message_state_sync(self.conn, 401, 401, 20, NOW - 90)
        self.gateway.history[401] = [_msg(21, 401, 10, NOW - 50), _msg(22, 401, 10, NOW - 40)]

        await self._recover()

        self.assertEqual(self.replayed, [21, 22])
        self.assertEqual({c for c, _ in self.gateway.fetches}, {401})

    async def test_large_backlog_replays_messages_right_after_checkpoint(self):
        upsert_message_state_sync(self.conn, 100, None, 10, NOW - 60)
        self.gateway.history[100] = [_msg(100 + i, 100, 10, NOW - 59 + i // 2) for i in range(60)]

        count = await recover_missed_messages(
            store=self.store,
            gateway=self.gateway,
            replay=self._replay,
            bot_user_id=BOT_ID,
            window_minutes=5,
            replay_delay_seconds=0,
            fetch_limit=50,
            now=NOW,
        )

        self.assertEqual(count, 50)
        self.assertEqual(self.replayed, list(range(100, 150)))

    async def test_fetch_failure_skips_checkpoint(self):
        upsert_message_state_sync(self.conn, 100, None, 10, NOW - 60)
        upsert_message_state_sync(self.conn, 101, None, 10, NOW - 60)
        self.gateway.history[101] = [_msg(11, 101, 10, NOW - 10)]

        async def flaky(channel_id, *, limit, after_message_id=None, oldest_first=False):
            if channel_id == 100:
                raise RuntimeError("missing access")
            return list(reversed(self.gateway.history.get(channel_id, [])))

        self.gateway.fetch_history = flaky

        self.assertEqual(await self._recover(), 1)
        self.assertEqual(self.replayed, [11])

    async def test_missing_store_is_a_no_op(self):
        count = await recover_missed_messages(
            store=None,
            gateway=self.gateway,
            replay=self._replay,
            bot_user_id=BOT_ID,
            window_minutes=5,
            now=NOW,
        )
        self.assertEqual(count, 0)

    async def test_ownership_recovery_loads_store_records(self):
        upsert_thread_ownership_sync(self.conn, ThreadOwnership(500, 10, BOT_ID, NOW - 10))
        upsert_thread_ownership_sync(self.conn, ThreadOwnership(501, 20, BOT_ID, NOW - 20))
        registry = ThreadOwnershipRegistry()

        loaded = await recover_thread_ownership(store=self.store, registry=registry)

        self.assertEqual(loaded, 2)
        record = await registry.get(501)
        self.assertEqual(record.original_user_id, 20)

    async def test_ownership_recovery_without_store(self):
        self.assertEqual(await recover_thread_ownership(store=None, registry=ThreadOwnershipRegistry()), 0)


if __name__ == "__main__":
    unittest.main()
