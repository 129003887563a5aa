import json
from typing import Any, Dict, List, Optional

from mission_orders.db.connection import execute, fetchall, fetchone
from mission_orders.utils.time import utc_now


def _row_to_batch(row: Any) -> Dict[str, Any]:
    return {
        "hash": row["hash"],
        "orders": json.loads(row["orders_json"]),
        "status": row["status"],
        "user_id": row["user_id"],
        "artifact_path": row["artifact_path"],
        "error": row["error"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


async def insert_batch(
    batch_hash: str, orders: List[Dict[str, str]], user_id: Optional[str]
) -> None:
    now = utc_now()
    await execute(
        """
        insert into mission_order_batches (
          hash, orders_json, status, user_id, artifact_path, error, created_at, updated_at
        )
        values (?, ?, 'pending', ?, null, null, ?, ?)
        """,
        (batch_hash, json.dumps(orders), user_id, now, now),
    )


async def fetch_batch(batch_hash: str) -> Optional[Dict[str, Any]]:
    row = await fetchone(
        "select * from mission_order_batches where hash = ?", (batch_hash,)
    )
    if row is None:
        return None
    return _row_to_batch(row)


async def fetch_eligible_batches(stale_before: str, limit: int) -> List[Dict[str, Any]]:
    rows = await fetchall(
        """
        select * from mission_order_batches
        where status = 'pending'
           or (status = 'processing' and updated_at < ?)
        order by created_at asc
        limit ?
        """,
        (stale_before, limit),
    )
    return [_row_to_batch(row) for row in rows]


async def claim_batch(batch_hash: str, stale_before: str) -> bool:
    changed = await execute(
        """
        update mission_order_batches
        set status = 'processing', updated_at = ?
        where hash = ?
          and (status = 'pending' or (status = 'processing' and updated_at < ?))
        """,
        (utc_now(), batch_hash, stale_before),
    )
    return changed == 1


async def reset_batch(batch_hash: str) -> int:
    return await execute(
        """
        update mission_order_batches
        set status = 'pending', error = null, artifact_path = null, updated_at = ?
        where hash = ? and status = 'failed'
        """,
        (utc_now(), batch_hash),
    )


async def complete_batch(batch_hash: str, artifact_path: str) -> None:
    await execute(
        """
        update mission_order_batches
        set status = 'completed', artifact_path = ?, error = null, updated_at = ?
        where hash = ?
        """,
        (artifact_path, utc_now(), batch_hash),
    )


async def fail_batch(batch_hash: str, error: str) -> None:
    await execute(
        """
        update mission_order_batches
        set status = 'failed', error = ?, updated_at = ?
        where hash = ?
        """,
        (error, utc_now(), batch_hash),
    )


async def touch_batch(batch_hash: str) -> None:
    """Refresh the claim heartbeat of a batch that is still running."""
    await execute(
        """
        update mission_order_batches
        set updated_at = ?
        where hash = ? and status = 'processing'
        """,
        (utc_now(), batch_hash),
    )
