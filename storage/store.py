from __future__ import annotations

import sqlite3
from datetime import datetime, timezone

from controller.models import DmHistoryReset
from controller.models import MessageState
from controller.models import ThreadOwnership


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _state_from_row(row) -> MessageState:
    channel_id, thread_id, last_message_id, last_seen_ts = row
    return MessageState(
        channel_id=int(channel_id),
        thread_id=int(thread_id) if thread_id is not None else None,
        last_message_id=int(last_message_id),
        last_seen_unix=int(last_seen_ts),
    )


def _ownership_from_row(row) -> ThreadOwnership:
    thread_id, original_user_id, created_by_bot_id, creation_ts = row
    return ThreadOwnership(
        thread_id=int(thread_id),
        original_user_id=int(original_user_id),
        created_by_bot_id=int(created_by_bot_id),
        creation_time_unix=int(creation_ts),
    )


# ---- message checkpoints ----


def upsert_message_state_sync(
    conn: sqlite3.Connection,
    channel_id: int,
    thread_id: int | None,
    last_message_id: int,
    last_seen_ts: int,
) -> None:
    now = _utc_iso()
    conn.execute(
        """
        INSERT INTO message_states (
            channel_id, thread_key, thread_id, last_message_id, last_seen_ts, created_at_utc, updated_at_utc
        ) VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(channel_id, thread_key) DO UPDATE SET
            last_message_id=excluded.last_message_id,
            last_seen_ts=excluded.last_seen_ts,
            updated_at_utc=excluded.updated_at_utc
        """,
        (
            int(channel_id),
            int(thread_id or 0),
            int(thread_id) if thread_id is not None else None,
            int(last_message_id),
            int(last_seen_ts),
            now,
            now,
        ),
    )
    conn.commit()


def get_message_state_sync(conn: sqlite3.Connection, channel_id: int, thread_id: int | None) -> MessageState | None:
    row = conn.execute(
        """
        SELECT channel_id, thread_id, last_message_id, last_seen_ts
        FROM message_states
        WHERE channel_id = ? AND thread_key = ?
        LIMIT 1
        """,
        (int(channel_id), int(thread_id or 0)),
    ).fetchone()
    return _state_from_row(row) if row else None


def fetch_all_message_states_sync(conn: sqlite3.Connection) -> list[MessageState]:
    rows = conn.execute(
        "SELECT channel_id, thread_id, last_message_id, last_seen_ts FROM message_states ORDER BY last_seen_ts ASC"
    ).fetchall()
    return [_state_from_row(r) for r in rows]


def fetch_message_states_within_window_sync(conn: sqlite3.Connection, cutoff_ts: int) -> list[MessageState]:
    rows = conn.execute(
        """
        SELECT channel_id, thread_id, last_message_id, last_seen_ts
        FROM message_states
        WHERE last_seen_ts >= ?
        ORDER BY last_seen_ts ASC
        """,
        (int(cutoff_ts),),
    ).fetchall()
    return [_state_from_row(r) for r in rows]


# ---- thread ownership ----


def upsert_thread_ownership_sync(conn: sqlite3.Connection, record: ThreadOwnership) -> None:
    # Ownership records are immutable; a second write for the same thread is ignored.
    conn.execute(
        """
        INSERT OR IGNORE INTO thread_ownership (
            thread_id, original_user_id, created_by_bot_id, creation_ts, created_at_utc
        ) VALUES (?, ?, ?, ?, ?)
        """,
        (
            int(record.thread_id),
            int(record.original_user_id),
            int(record.created_by_bot_id),
            int(record.creation_time_unix),
            _utc_iso(),
        ),
    )
    conn.commit()


def get_thread_ownership_sync(conn: sqlite3.Connection, thread_id: int) -> ThreadOwnership | None:
    row = conn.execute(
        """
        SELECT thread_id, original_user_id, created_by_bot_id, creation_ts
        FROM thread_ownership
        WHERE thread_id = ?
        LIMIT 1
        """,
        (int(thread_id),),
    ).fetchone()
    return _ownership_from_row(row) if row else None


def fetch_all_thread_ownerships_sync(conn: sqlite3.Connection) -> list[ThreadOwnership]:
    rows = conn.execute(
        "SELECT thread_id, original_user_id, created_by_bot_id, creation_ts FROM thread_ownership"
    ).fetchall()
    return [_ownership_from_row(r) for r in rows]


def cleanup_thread_ownerships_sync(conn: sqlite3.Connection, max_age_seconds: int, now_ts: int) -> int:
    if int(max_age_seconds) < 0:
        cur = conn.execute("DELETE FROM thread_ownership")
    else:
        cur = conn.execute(
            "DELETE FROM thread_ownership WHERE creation_ts < ?",
            (int(now_ts) - int(max_age_seconds),),
        )
    conn.commit()
    return int(cur.rowcount or 0)


# ---- DM history resets ----


def set_dm_history_reset_sync(conn: sqlite3.Connection, channel_id: int, message_id: int, cleared_ts: int) -> None:
    conn.execute(
        """
        INSERT INTO dm_history_resets (channel_id, message_id, cleared_ts, updated_at_utc)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(channel_id) DO UPDATE SET
            message_id=excluded.message_id,
            cleared_ts=excluded.cleared_ts,
            updated_at_utc=excluded.updated_at_utc
        """,
        (int(channel_id), int(message_id), int(cleared_ts), _utc_iso()),
    )
    conn.commit()


def get_dm_history_reset_sync(conn: sqlite3.Connection, channel_id: int) -> DmHistoryReset | None:
    row = conn.execute(
        "SELECT channel_id, message_id, cleared_ts FROM dm_history_resets WHERE channel_id = ? LIMIT 1",
        (int(channel_id),),
    ).fetchone()
    if not row:
        return None
    return DmHistoryReset(channel_id=int(row[0]), message_id=int(row[1]), cleared_at_unix=int(row[2]))
