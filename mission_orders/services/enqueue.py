from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from mission_orders.core.errors import (
    JobConflict,
    JobNotFound,
    RaceRecovered,
    Unauthorized,
    ValidationError,
)
from mission_orders.db import jobs_repo
from mission_orders.db.connection import DuplicateKeyError
from mission_orders.schemas.jobs import (
    JOB_PRIORITIES,
    SINGLE_ORDER_KINDS,
    BulkPdfPayload,
    JobKind,
    OrderRef,
    SingleEmailPayload,
    SinglePdfPayload,
)
from mission_orders.utils.hashing import sha256_b64
from mission_orders.websocket.manager import manager


@dataclass
class EnqueueResult:
    job_id: str
    reused: bool
    status: str
    progress: Optional[int] = None
    artifact_path: Optional[str] = None


def _field(item: Dict[str, Any], snake: str, camel: str) -> str:
    value = item.get(snake, item.get(camel))
    if value is None or isinstance(value, (dict, list, bool)):
        raise ValidationError(f"item is missing {snake}")
    text = str(value).strip()
    if not text:
        raise ValidationError(f"item has an empty {snake}")
    return text


def normalize_order(item: Any) -> Tuple[str, str]:
    if not isinstance(item, dict):
        raise ValidationError("items must be objects")
    return (
        _field(item, "match_id", "matchId"),
        _field(item, "official_id", "officialId"),
    )


def normalize_items(items: Iterable[Any]) -> List[Dict[str, str]]:
    """Trimmed order list in request order.

    Repeats are dropped case-insensitively; the first spelling wins and is
    what the worker sends upstream.
    """
    seen = set()
    result: List[Dict[str, str]] = []
    for item in items or []:
        match_id, official_id = normalize_order(item)
        key = (match_id.lower(), official_id.lower())
        if key in seen:
            continue
        seen.add(key)
        result.append({"match_id": match_id, "official_id": official_id})
    if not result:
        raise ValidationError("items must not be empty")
    return result


def canonical_items(items: Iterable[Dict[str, str]]) -> List[Dict[str, str]]:
    """Lower-cased, de-duplicated, sorted copy used only for the dedupe key."""
    pairs = {(item["match_id"].lower(), item["official_id"].lower()) for item in items}
    return [
        {"match_id": match_id, "official_id": official_id}
        for match_id, official_id in sorted(pairs)
    ]


def compute_dedupe_key(job_type: str, items: List[Dict[str, str]]) -> str:
    return sha256_b64({"type": job_type, "items": canonical_items(items)})


def build_payload(
    kind: JobKind,
    items: List[Dict[str, str]],
    user_id: str,
    file_name: Optional[str] = None,
) -> Dict[str, Any]:
    orders = [OrderRef(**item) for item in items]
    if kind == JobKind.bulk_pdf:
        payload = BulkPdfPayload(orders=orders, file_name=file_name, requested_by=user_id)
    elif kind == JobKind.single_pdf:
        payload = SinglePdfPayload(order=orders[0], requested_by=user_id)
    else:
        payload = SingleEmailPayload(order=orders[0], requested_by=user_id)
    return payload.model_dump(mode="json")


def _result(job: Dict[str, Any], reused: bool) -> EnqueueResult:
    return EnqueueResult(
        job_id=job["id"],
        reused=reused,
        status=job["status"],
        progress=job["progress"],
        artifact_path=job["artifact_path"],
    )


async def enqueue(
    job_type: str,
    items: Iterable[Any],
    user_id: Optional[str],
    dedupe: bool = True,
    file_name: Optional[str] = None,
) -> EnqueueResult:
    if not user_id:
        raise Unauthorized("caller is not identified")
    try:
        kind = JobKind(job_type)
    except ValueError as exc:
        raise ValidationError(f"unknown job type {job_type!r}") from exc
    normalized = normalize_items(items)
    if kind in SINGLE_ORDER_KINDS and len(normalized) != 1:
        raise ValidationError(f"{kind.value} takes exactly one item")

    dedupe_key = compute_dedupe_key(kind.value, normalized) if dedupe else None
    if dedupe_key:
        existing = await jobs_repo.find_reusable_job(kind.value, dedupe_key)
        if existing:
            await manager.emit_log(
                "info", f"job reused {existing['id']} ({kind.value}, {existing['status']})"
            )
            return _result(existing, reused=True)

    payload = build_payload(kind, normalized, user_id, file_name)
    try:
        job_id = await jobs_repo.create_job(
            kind.value,
            payload,
            user_id=user_id,
            dedupe_key=dedupe_key,
            priority=JOB_PRIORITIES[kind],
        )
    except RaceRecovered as exc:
        winner = await jobs_repo.find_reusable_job(exc.job_type, exc.dedupe_key)
        if winner is None:
            raise JobConflict(str(exc)) from exc
        await manager.emit_log("info", f"job race recovered {winner['id']}")
        return _result(winner, reused=True)

    job = await jobs_repo.fetch_job(job_id)
    await jobs_repo.record_event(job_id, "info", "job enqueued", {"items": len(normalized)})
    await manager.emit_log("info", f"job queued {job_id} ({kind.value})")
    return _result(job, reused=False)


async def retry(job_id: str, user_id: Optional[str]) -> Dict[str, Any]:
    """Put a failed job owned by ``user_id`` back in the queue."""
    if not user_id:
        raise Unauthorized("caller is not identified")
    job = await jobs_repo.fetch_job(job_id)
    if not job or job["user_id"] != user_id:
        raise JobNotFound(f"job {job_id} not found")
    if job["status"] != "failed":
        raise JobConflict(f"job {job_id} is {job['status']}, only failed jobs can be retried")
    try:
        changed = await jobs_repo.reset_job(job_id, user_id)
    except DuplicateKeyError as exc:
        raise JobConflict(f"an equivalent job is already active for {job_id}") from exc
    if not changed:
        raise JobConflict(f"job {job_id} changed state, retry again")
    await jobs_repo.record_event(job_id, "info", "job reset for retry")
    await manager.job_status(job_id, "pending")
    await manager.emit_log("info", f"job retried {job_id}")
    return await jobs_repo.fetch_job(job_id)
