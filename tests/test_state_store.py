from __future__ import annotations

import asyncio
import sqlite3
import unittest
from unittest import mock

from controller.models import ThreadOwnership
from db.migrate import apply_sqlite_migrations
from db.migrate import list_schema_migrations_sync
from storage import store
from storage.service import StateStore


def _make_conn() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    apply_sqlite_migrations(conn)
    return conn


class SyncStoreTests(unittest.TestCase):
    def setUp(self):
        self.conn = _make_conn()

    def tearDown(self):
        self.conn.close()

    def test_migrations_are_recorded_and_idempotent(self):
        rows = list_schema_migrations_sync(self.conn)
        names = {f"{version}_{name}" for version, name, _ in rows}
        self.assertIn("0001_message_states", names)
        self.assertIn("0002_thread_ownership", names)
        self.assertEqual(apply_sqlite_migrations(self.conn), [])

    def test_checkpoint_upsert_keeps_one_row_per_channel_and_thread(self):
        store.upsert_message_state_sync(self.conn, 100, None, 1, 1000)
        store.upsert_message_state_sync(self.conn, 100, None, 2, 1010)
        store.upsert_message_state_sync(self.conn, 100, 200, 3, 1020)

        states = store.fetch_all_message_states_sync(self.conn)
        self.assertEqual(len(states), 2)
        main = store.get_message_state_sync(self.conn, 100, None)
        self.assertEqual((main.last_message_id, main.last_seen_unix, main.thread_id), (2, 1010, None))
        thread = store.get_message_state_sync(self.conn, 100, 200)
        self.assertEqual(thread.target_channel_id, 200)

    def test_window_query_filters_by_last_seen(self):
        store.upsert_message_state_sync(self.conn, 100, None, 1, 1000)
        store.upsert_message_state_sync(self.conn, 101, None, 1, 2000)

        states = store.fetch_message_states_within_window_sync(self.conn, 1500)

        self.assertEqual([s.channel_id for s in states], [101])

    def test_ownership_record_is_immutable(self):
        store.upsert_thread_ownership_sync(self.conn, ThreadOwnership(500, 10, 999, 1000))
        store.upsert_thread_ownership_sync(self.conn, ThreadOwnership(500, 20, 999, 2000))

        record = store.get_thread_ownership_sync(self.conn, 500)
        self.assertEqual((record.original_user_id, record.creation_time_unix), (10, 1000))

    def test_ownership_cleanup_by_age_and_forced(self):
        store.upsert_thread_ownership_sync(self.conn, ThreadOwnership(500, 10, 999, 1000))
        store.upsert_thread_ownership_sync(self.conn, ThreadOwnership(501, 10, 999, 5000))

        self.assertEqual(store.cleanup_thread_ownerships_sync(self.conn, 1000, now_ts=5500), 1)
        self.assertEqual([r.thread_id for r in store.fetch_all_thread_ownerships_sync(self.conn)], [501])
        self.assertEqual(store.cleanup_thread_ownerships_sync(self.conn, -1, now_ts=5500), 1)
        self.assertEqual(store.fetch_all_thread_ownerships_sync(self.conn), [])

    def test_dm_history_reset_moves_forward(self):
        self.assertIsNone(store.get_dm_history_reset_sync(self.conn, 300))
        store.set_dm_history_reset_sync(self.conn, 300, 10, 1000)
        store.set_dm_history_reset_sync(self.conn, 300, 25, 2000)

        reset = store.get_dm_history_reset_sync(self.conn, 300)
        self.assertEqual((reset.message_id, reset.cleared_at_unix), (25, 2000))


class StateStoreServiceTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.conn = _make_conn()
        self.state = StateStore(asyncio.Lock(), self.conn, write_timeout=2.0)

    def tearDown(self):
        self.conn.close()

    async def test_fire_and_forget_writes_land_after_drain(self):
        self.state.record_message_state(100, None, 7, 1234)
        self.state.record_thread_ownership(ThreadOwnership(500, 10, 999, 1000))
        self.state.record_dm_history_reset(300, 42, 1500)

        await self.state.drain()

        saved = await self.state.get_message_state(100, None)
        self.assertEqual(saved.last_message_id, 7)
        self.assertEqual((await self.state.get_thread_ownership(500)).original_user_id, 10)
        self.assertEqual((await self.state.get_dm_history_reset(300)).message_id, 42)

    async def test_failed_write_is_printed_not_raised(self):
        self.conn.execute("DROP TABLE message_states")
        with mock.patch("builtins.print") as printed:
            task = self.state.record_message_state(100, None, 7, 1234)
            await self.state.drain()

        self.assertTrue(task.done())
        self.assertIsNone(task.exception())
        self.assertTrue(any("[Store]" in str(call.args[0]) for call in printed.call_args_list))

    async def test_write_timeout_is_bounded(self):
        slow = StateStore(asyncio.Lock(), self.conn, write_timeout=0.05)
        await slow.db_lock.acquire()
        try:
            with mock.patch("builtins.print") as printed:
                task = slow.record_message_state(100, None, 7, 1234)
                await asyncio.wait_for(task, timeout=1.0)
        finally:
            slow.db_lock.release()

        self.assertTrue(any("timed out" in str(call.args[0]) for call in printed.call_args_list))
        self.assertIsNone(await slow.get_message_state(100, None))

    async def test_purge_and_window_reads(self):
        await self.state.save_thread_ownership(ThreadOwnership(500, 10, 999, 1000))
        await self.state.save_message_state(100, None, 3, 900)
        await self.state.save_message_state(101, None, 4, 990)

        self.state.purge_thread_ownerships(-1, now=2000)
        await self.state.drain()

        self.assertEqual(await self.state.load_thread_ownerships(), [])
        recent = await self.state.message_states_within(50, now=1000)
        self.assertEqual([s.channel_id for s in recent], [101])


if __name__ == "__main__":
    unittest.main()
