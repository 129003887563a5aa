from mission_orders.core.errors import ArtifactNotFound
from mission_orders.db import artifacts_repo
from mission_orders.schemas.documents import VerificationSnapshot


async def lookup(verification_id: str) -> VerificationSnapshot:
    """Public view of an issued mission order; storage paths are never exposed."""
    record = await artifacts_repo.fetch_artifact(verification_id)
    if record is None:
        raise ArtifactNotFound(f"no mission order {verification_id}")
    snapshot = record["data_snapshot"]
    return VerificationSnapshot(
        name=snapshot.get("name", ""),
        position=snapshot.get("position", ""),
        mission_type=snapshot.get("mission_type", ""),
        mission_location=snapshot.get("mission_location", ""),
        departure_date=snapshot.get("departure_date", ""),
        order_number=str(snapshot.get("order_number") or record["sequence_number"]),
        issued_on=snapshot.get("issued_on"),
        created_at=record["created_at"],
    )
