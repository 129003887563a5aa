import time
from typing import Any, Dict

from fastapi import APIRouter, Depends

from mission_orders.api.deps import verify_token
from mission_orders.db import jobs_repo
from mission_orders.services.scheduler import scheduler_snapshot

router = APIRouter()
started_at = time.time()


@router.get("/status")
async def status(_: None = Depends(verify_token)) -> Dict[str, Any]:
    return {
        "uptime_sec": int(time.time() - started_at),
        "jobs": await jobs_repo.count_by_status(),
        "scheduler": scheduler_snapshot(),
    }
