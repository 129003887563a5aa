from typing import Any, Dict

from fastapi import APIRouter, Depends

from mission_orders.api.deps import verify_token
from mission_orders.core import config
from mission_orders.db.connection import fetchone
from mission_orders.utils.time import utc_now

router = APIRouter()


@router.get("/health")
async def health(_: None = Depends(verify_token)) -> Dict[str, Any]:
    row = await fetchone("select count(*) as pending from jobs where status = 'pending'")
    return {
        "status": "ok",
        "time": utc_now(),
        "pending_jobs": row["pending"],
        "storage_dir": config.STORAGE_DIR,
    }
