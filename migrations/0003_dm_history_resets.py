from __future__ import annotations

import sqlite3


def upgrade(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS dm_history_resets (
            channel_id INTEGER PRIMARY KEY,
            message_id INTEGER NOT NULL,
            cleared_ts INTEGER NOT NULL,
            updated_at_utc TEXT NOT NULL
        )
        """
    )
    conn.commit()
