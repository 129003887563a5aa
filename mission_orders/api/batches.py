from typing import Optional

from fastapi import APIRouter, Depends

from mission_orders.api.deps import get_caller, to_http, verify_token
from mission_orders.core.errors import MissionOrderError
from mission_orders.schemas.documents import BatchRequest, BatchStatus
from mission_orders.services import batches

router = APIRouter()


@router.post("/batches", response_model=BatchStatus, response_model_by_alias=True)
async def start_batch(
    request: BatchRequest,
    caller: Optional[str] = Depends(get_caller),
    _: None = Depends(verify_token),
) -> BatchStatus:
    try:
        result = await batches.start_batch(request.orders, caller)
    except MissionOrderError as exc:
        raise to_http(exc) from exc
    return BatchStatus(**result)


@router.get("/batches/{batch_hash}", response_model=BatchStatus, response_model_by_alias=True)
async def get_batch(batch_hash: str, _: None = Depends(verify_token)) -> BatchStatus:
    return BatchStatus(**await batches.get_batch(batch_hash))
