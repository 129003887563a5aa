from fastapi import APIRouter

from mission_orders.api.deps import to_http
from mission_orders.core.errors import ArtifactNotFound
from mission_orders.schemas.documents import VerificationSnapshot
from mission_orders.services import verification

router = APIRouter()


@router.get("/verify/{verification_id}", response_model=VerificationSnapshot)
async def verify(verification_id: str) -> VerificationSnapshot:
    try:
        return await verification.lookup(verification_id)
    except ArtifactNotFound as exc:
        raise to_http(exc) from exc
