import json
import uuid
from typing import Any, Dict, List, Optional

from mission_orders.core.errors import RaceRecovered
from mission_orders.db.connection import DuplicateKeyError, execute, fetchall, fetchone
from mission_orders.utils.time import utc_now

REUSABLE_STATUSES = ("pending", "processing", "completed")


def _row_to_job(row: Any) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "type": row["type"],
        "status": row["status"],
        "user_id": row["user_id"],
        "payload": json.loads(row["payload_json"]) if row["payload_json"] else {},
        "dedupe_key": row["dedupe_key"],
        "priority": row["priority"],
        "progress": row["progress"],
        "attempts": row["attempts"],
        "error_message": row["error_message"],
        "artifact_path": row["artifact_path"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


async def create_job(
    job_type: str,
    payload: Dict[str, Any],
    user_id: Optional[str] = None,
    dedupe_key: Optional[str] = None,
    priority: int = 100,
) -> str:
    job_id = f"job_{uuid.uuid4().hex}"
    now = utc_now()
    try:
        await execute(
            """
            insert into jobs (
              id, type, status, user_id, payload_json, dedupe_key, priority,
              progress, attempts, error_message, artifact_path, created_at, updated_at
            )
            values (?, ?, 'pending', ?, ?, ?, ?, 0, 0, null, null, ?, ?)
            """,
            (
                job_id,
                job_type,
                user_id,
                json.dumps(payload),
                dedupe_key,
                priority,
                now,
                now,
            ),
        )
    except DuplicateKeyError as exc:
        if dedupe_key is None:
            raise
        raise RaceRecovered(job_type, dedupe_key) from exc
    return job_id


async def fetch_job(job_id: str) -> Optional[Dict[str, Any]]:
    row = await fetchone("select * from jobs where id = ?", (job_id,))
    if row is None:
        return None
    return _row_to_job(row)


async def fetch_jobs(
    user_id: Optional[str] = None, limit: int = 200
) -> List[Dict[str, Any]]:
    if user_id:
        rows = await fetchall(
            """
            select * from jobs where user_id = ?
            order by created_at desc, rowid desc limit ?
            """,
            (user_id, limit),
        )
    else:
        rows = await fetchall(
            "select * from jobs order by created_at desc, rowid desc limit ?",
            (limit,),
        )
    return [_row_to_job(row) for row in rows]


async def find_reusable_job(job_type: str, dedupe_key: str) -> Optional[Dict[str, Any]]:
    row = await fetchone(
        """
        select * from jobs
        where type = ? and dedupe_key = ? and status in (?, ?, ?)
        order by created_at desc, rowid desc
        limit 1
        """,
        (job_type, dedupe_key, *REUSABLE_STATUSES),
    )
    if row is None:
        return None
    return _row_to_job(row)


async def fetch_eligible_jobs(stale_before: str, limit: int) -> List[Dict[str, Any]]:
    rows = await fetchall(
        """
        select * from jobs
        where status = 'pending'
           or (status = 'processing' and updated_at < ?)
        order by priority asc, created_at asc, rowid asc
        limit ?
        """,
        (stale_before, limit),
    )
    return [_row_to_job(row) for row in rows]


async def claim_job(job_id: str, stale_before: str) -> bool:
    """Flip an eligible job to processing; False if another cycle got there first."""
    changed = await execute(
        """
        update jobs
        set status = 'processing', updated_at = ?, attempts = attempts + 1
        where id = ?
          and (status = 'pending' or (status = 'processing' and updated_at < ?))
        """,
        (utc_now(), job_id, stale_before),
    )
    return changed == 1


async def bump_progress(job_id: str, progress: int) -> None:
    await execute(
        """
        update jobs set progress = max(progress, ?), updated_at = ?
        where id = ? and status = 'processing'
        """,
        (progress, utc_now(), job_id),
    )


async def complete_job(job_id: str, artifact_path: str, progress: int) -> None:
    await execute(
        """
        update jobs
        set status = 'completed', artifact_path = ?, error_message = null,
            progress = max(progress, ?), updated_at = ?
        where id = ?
        """,
        (artifact_path, progress, utc_now(), job_id),
    )


async def fail_job(job_id: str, error_message: str) -> None:
    await execute(
        """
        update jobs
        set status = 'failed', error_message = ?, artifact_path = null, updated_at = ?
        where id = ?
        """,
        (error_message, utc_now(), job_id),
    )


async def reset_job(job_id: str, user_id: str) -> int:
    """Move a failed job owned by ``user_id`` back to pending."""
    return await execute(
        """
        update jobs
        set status = 'pending', progress = 0, error_message = null,
            artifact_path = null, updated_at = ?
        where id = ? and user_id = ? and status = 'failed'
        """,
        (utc_now(), job_id, user_id),
    )


async def record_event(
    job_id: str, level: str, message: str, meta: Optional[Dict[str, Any]] = None
) -> None:
    await execute(
        """
        insert into job_events (job_id, created_at, level, message, meta_json)
        values (?, ?, ?, ?, ?)
        """,
        (job_id, utc_now(), level, message, json.dumps(meta) if meta else None),
    )


async def fetch_events(job_id: str) -> List[Dict[str, Any]]:
    rows = await fetchall(
        "select * from job_events where job_id = ? order by event_id", (job_id,)
    )
    return [
        {
            "created_at": row["created_at"],
            "level": row["level"],
            "message": row["message"],
            "meta": json.loads(row["meta_json"]) if row["meta_json"] else None,
        }
        for row in rows
    ]


async def count_by_status() -> Dict[str, int]:
    rows = await fetchall("select status, count(*) as total from jobs group by status")
    return {row["status"]: row["total"] for row in rows}
