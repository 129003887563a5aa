from typing import Optional

from fastapi import HTTPException, Request, WebSocket

from mission_orders.core.config import BACKEND_TOKEN
from mission_orders.core.errors import (
    ArtifactNotFound,
    JobConflict,
    JobNotFound,
    MissionOrderError,
    Unauthorized,
    ValidationError,
)
from mission_orders.services.worker import JobWorker

ERROR_STATUS = {
    ValidationError: 400,
    Unauthorized: 401,
    JobNotFound: 404,
    ArtifactNotFound: 404,
    JobConflict: 409,
}


async def verify_token(request: Request) -> None:
    if BACKEND_TOKEN and request.headers.get("X-Backend-Token") != BACKEND_TOKEN:
        raise HTTPException(status_code=401, detail="unauthorized")


async def verify_ws_token(websocket: WebSocket) -> bool:
    if BACKEND_TOKEN and websocket.headers.get("x-backend-token") != BACKEND_TOKEN:
        await websocket.close(code=1008)
        return False
    return True


async def get_caller(request: Request) -> Optional[str]:
    caller = (request.headers.get("X-User-Id") or "").strip()
    return caller or None


def get_worker(request: Request) -> JobWorker:
    return request.app.state.worker


def to_http(exc: MissionOrderError) -> HTTPException:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))
