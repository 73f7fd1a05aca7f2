from __future__ import annotations

import sqlite3


def upgrade(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS thread_ownership (
            thread_id INTEGER PRIMARY KEY,
            original_user_id INTEGER NOT NULL,
            created_by_bot_id INTEGER NOT NULL,
            creation_ts INTEGER NOT NULL,
            created_at_utc TEXT NOT NULL
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_thread_ownership_creation_ts ON thread_ownership(creation_ts)")
    conn.commit()
