from __future__ import annotations

import sqlite3


def upgrade(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    # thread_key mirrors thread_id with 0 for "no thread" so the pair stays unique.
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS message_states (
            channel_id INTEGER NOT NULL,
            thread_key INTEGER NOT NULL DEFAULT 0,
            thread_id INTEGER,
            last_message_id INTEGER NOT NULL,
            last_seen_ts INTEGER NOT NULL,
            created_at_utc TEXT NOT NULL,
            updated_at_utc TEXT NOT NULL,
            PRIMARY KEY (channel_id, thread_key)
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_message_states_last_seen ON message_states(last_seen_ts)")
    conn.commit()
