from typing import Any, Dict, Iterable, List, Optional

from mission_orders.core.errors import Unauthorized
from mission_orders.db import batches_repo
from mission_orders.db.connection import DuplicateKeyError
from mission_orders.services.enqueue import normalize_items
from mission_orders.utils.hashing import sha256_hex
from mission_orders.websocket.manager import manager

BATCH_HASH_VERSION = 1


def compute_batch_hash(orders: List[Dict[str, str]]) -> str:
    return sha256_hex(
        {"v": BATCH_HASH_VERSION, "type": "mission_orders", "items": orders}
    )


def _status(batch: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "hash": batch["hash"],
        "status": batch["status"],
        "artifact_path": batch["artifact_path"],
        "error": batch["error"],
    }


async def start_batch(orders: Iterable[Any], user_id: Optional[str]) -> Dict[str, Any]:
    if not user_id:
        raise Unauthorized("caller is not identified")
    normalized = normalize_items(orders)
    batch_hash = compute_batch_hash(normalized)

    existing = await batches_repo.fetch_batch(batch_hash)
    if existing is None:
        try:
            await batches_repo.insert_batch(batch_hash, normalized, user_id)
            await manager.emit_log(
                "info", f"batch queued {batch_hash} ({len(normalized)} orders)"
            )
        except DuplicateKeyError:
            # a concurrent caller inserted it first
            pass
        existing = await batches_repo.fetch_batch(batch_hash)
    elif existing["status"] == "failed":
        if await batches_repo.reset_batch(batch_hash):
            await manager.emit_log("info", f"batch requeued {batch_hash}")
        existing = await batches_repo.fetch_batch(batch_hash)
    return _status(existing)


async def get_batch(batch_hash: str) -> Dict[str, Any]:
    batch = await batches_repo.fetch_batch(batch_hash)
    if batch is None:
        return {"hash": batch_hash, "status": "not_found", "artifact_path": None, "error": None}
    return _status(batch)
