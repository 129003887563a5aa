from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from mission_orders.api.deps import get_caller, get_worker, to_http, verify_token
from mission_orders.core.errors import MissionOrderError
from mission_orders.db import jobs_repo
from mission_orders.schemas.jobs import (
    CycleSummary,
    EnqueueRequest,
    EnqueueResponse,
    JobRecord,
    RetryResponse,
)
from mission_orders.services import enqueue as enqueue_service
from mission_orders.services.worker import JobWorker

router = APIRouter()


@router.post("/jobs/enqueue", response_model=EnqueueResponse)
async def enqueue_job(
    request: EnqueueRequest,
    caller: Optional[str] = Depends(get_caller),
    _: None = Depends(verify_token),
) -> EnqueueResponse:
    try:
        result = await enqueue_service.enqueue(
            request.type.value,
            request.items,
            caller,
            dedupe=request.dedupe,
            file_name=request.file_name,
        )
    except MissionOrderError as exc:
        raise to_http(exc) from exc
    return EnqueueResponse(
        job_id=result.job_id,
        reused=result.reused,
        status=result.status,
        progress=result.progress,
        artifact_path=result.artifact_path,
    )


@router.post("/jobs/run-cycle", response_model=CycleSummary)
async def run_cycle(
    max_batches: Optional[int] = Query(default=None, ge=1, le=50),
    worker: JobWorker = Depends(get_worker),
    _: None = Depends(verify_token),
) -> CycleSummary:
    return await worker.run_cycle(max_batches)


@router.post("/jobs/{job_id}/retry", response_model=RetryResponse)
async def retry_job(
    job_id: str,
    caller: Optional[str] = Depends(get_caller),
    _: None = Depends(verify_token),
) -> RetryResponse:
    try:
        job = await enqueue_service.retry(job_id, caller)
    except MissionOrderError as exc:
        raise to_http(exc) from exc
    return RetryResponse(success=True, job=JobRecord.from_job(job))


@router.get("/jobs")
async def list_jobs(
    caller: Optional[str] = Depends(get_caller),
    _: None = Depends(verify_token),
) -> Dict[str, Any]:
    jobs = await jobs_repo.fetch_jobs(user_id=caller)
    return {
        "jobs": [JobRecord.from_job(job).model_dump(mode="json", by_alias=True) for job in jobs]
    }


@router.get("/jobs/{job_id}")
async def get_job(job_id: str, _: None = Depends(verify_token)) -> Dict[str, Any]:
    job = await jobs_repo.fetch_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="job not found")
    record = JobRecord.from_job(job).model_dump(mode="json", by_alias=True)
    record["events"] = await jobs_repo.fetch_events(job_id)
    return record
