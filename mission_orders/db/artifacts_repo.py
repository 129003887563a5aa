import json
import uuid
from typing import Any, Dict, Optional

from mission_orders.db.connection import execute, fetchone
from mission_orders.utils.time import utc_now


def _row_to_artifact(row: Any) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "sequence_number": row["sequence_number"],
        "subject_key": row["subject_key"],
        "match_id": row["match_id"],
        "official_id": row["official_id"],
        "data_hash": row["data_hash"],
        "data_snapshot": json.loads(row["data_snapshot_json"]),
        "storage_path": row["storage_path"],
        "created_at": row["created_at"],
    }


async def create_artifact(
    subject_key: str,
    match_id: str,
    official_id: str,
    sequence_number: int,
    data_hash: str,
    data_snapshot: Dict[str, Any],
) -> Dict[str, Any]:
    artifact = {
        "id": str(uuid.uuid4()),
        "sequence_number": sequence_number,
        "subject_key": subject_key,
        "match_id": match_id,
        "official_id": official_id,
        "data_hash": data_hash,
        "data_snapshot": data_snapshot,
        "storage_path": None,
        "created_at": utc_now(),
    }
    await execute(
        """
        insert into mission_orders (
          id, sequence_number, subject_key, match_id, official_id,
          data_hash, data_snapshot_json, storage_path, created_at
        )
        values (?, ?, ?, ?, ?, ?, ?, null, ?)
        """,
        (
            artifact["id"],
            sequence_number,
            subject_key,
            match_id,
            official_id,
            data_hash,
            json.dumps(data_snapshot, ensure_ascii=False),
            artifact["created_at"],
        ),
    )
    return artifact


async def set_storage_path(artifact_id: str, storage_path: str) -> None:
    await execute(
        "update mission_orders set storage_path = ? where id = ?",
        (storage_path, artifact_id),
    )


async def fetch_latest_for_subject(subject_key: str) -> Optional[Dict[str, Any]]:
    row = await fetchone(
        """
        select * from mission_orders where subject_key = ?
        order by sequence_number desc limit 1
        """,
        (subject_key,),
    )
    if row is None:
        return None
    return _row_to_artifact(row)


async def fetch_artifact(artifact_id: str) -> Optional[Dict[str, Any]]:
    row = await fetchone("select * from mission_orders where id = ?", (artifact_id,))
    if row is None:
        return None
    return _row_to_artifact(row)
