import asyncio
import sqlite3
import threading
from typing import Any, Optional

from mission_orders.core import config

# The sqlite3 connection is shared by every to_thread worker, so statements
# are serialized here rather than with an event-loop bound lock.
db_lock = threading.Lock()
db_conn: sqlite3.Connection | None = None


class DuplicateKeyError(sqlite3.IntegrityError):
    """A UNIQUE constraint rejected the write."""


def init_db(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        create table if not exists jobs (
          id text primary key,
          type text not null,
          status text not null,
          user_id text,
          payload_json text not null,
          dedupe_key text,
          priority integer not null default 100,
          progress integer not null default 0,
          attempts integer not null default 0,
          error_message text,
          artifact_path text,
          created_at text not null,
          updated_at text not null
        );
        """
    )
    # Failed jobs drop out of the index so they never block a fresh enqueue.
    conn.execute(
        """
        create unique index if not exists jobs_type_dedupe_key_idx
        on jobs (type, dedupe_key)
        where dedupe_key is not null and status != 'failed';
        """
    )
    conn.execute(
        """
        create index if not exists idx_jobs_status_updated
        on jobs (status, updated_at);
        """
    )
    conn.execute(
        """
        create table if not exists job_events (
          event_id integer primary key,
          job_id text not null,
          created_at text not null,
          level text not null,
          message text not null,
          meta_json text
        );
        """
    )
    conn.execute(
        """
        create table if not exists mission_orders (
          id text primary key,
          sequence_number integer not null unique,
          subject_key text not null,
          match_id text not null,
          official_id text not null,
          data_hash text not null,
          data_snapshot_json text not null,
          storage_path text,
          created_at text not null
        );
        """
    )
    conn.execute(
        """
        create index if not exists idx_mission_orders_subject
        on mission_orders (subject_key, sequence_number);
        """
    )
    conn.execute(
        """
        create table if not exists mission_order_batches (
          hash text primary key,
          orders_json text not null,
          status text not null,
          user_id text,
          artifact_path text,
          error text,
          created_at text not null,
          updated_at text not null
        );
        """
    )
    conn.execute(
        """
        create table if not exists counters (
          name text primary key,
          value integer not null
        );
        """
    )
    conn.commit()


async def connect_db(path: Optional[str] = None) -> None:
    global db_conn
    db_conn = sqlite3.connect(path or config.DB_PATH, check_same_thread=False)
    db_conn.row_factory = sqlite3.Row
    db_conn.execute("pragma journal_mode = wal")
    init_db(db_conn)


async def close_db() -> None:
    global db_conn
    if db_conn:
        db_conn.close()
        db_conn = None


def _ensure_conn() -> sqlite3.Connection:
    if db_conn is None:
        raise RuntimeError("database not initialized")
    return db_conn


async def execute(query: str, params: tuple[Any, ...] = ()) -> int:
    """Run a write and return the number of affected rows."""
    return await asyncio.to_thread(_execute_sync, query, params)


def _execute_sync(query: str, params: tuple[Any, ...]) -> int:
    with db_lock:
        conn = _ensure_conn()
        try:
            cur = conn.execute(query, params)
        except sqlite3.IntegrityError as exc:
            conn.rollback()
            if "UNIQUE constraint failed" in str(exc):
                raise DuplicateKeyError(str(exc)) from exc
            raise
        conn.commit()
        return cur.rowcount


async def fetchone(
    query: str, params: tuple[Any, ...] = ()
) -> Optional[sqlite3.Row]:
    return await asyncio.to_thread(_fetchone_sync, query, params)


def _fetchone_sync(
    query: str, params: tuple[Any, ...]
) -> Optional[sqlite3.Row]:
    with db_lock:
        conn = _ensure_conn()
        cur = conn.execute(query, params)
        return cur.fetchone()


async def fetchall(
    query: str, params: tuple[Any, ...] = ()
) -> list[sqlite3.Row]:
    return await asyncio.to_thread(_fetchall_sync, query, params)


def _fetchall_sync(
    query: str, params: tuple[Any, ...]
) -> list[sqlite3.Row]:
    with db_lock:
        conn = _ensure_conn()
        cur = conn.execute(query, params)
        return cur.fetchall()


async def next_sequence_value(name: str) -> int:
    """Atomically increment and return the named counter (first value is 1)."""
    return await asyncio.to_thread(_next_sequence_sync, name)


def _next_sequence_sync(name: str) -> int:
    with db_lock:
        conn = _ensure_conn()
        cur = conn.execute(
            """
            insert into counters (name, value) values (?, 1)
            on conflict (name) do update set value = value + 1
            returning value
            """,
            (name,),
        )
        value = cur.fetchone()[0]
        conn.commit()
        return int(value)
