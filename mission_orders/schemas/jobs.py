from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class JobKind(str, Enum):
    bulk_pdf = "mission_orders.bulk_pdf"
    single_pdf = "mission_orders.single_pdf"
    single_email = "mission_orders.single_email"


SINGLE_ORDER_KINDS = {JobKind.single_pdf, JobKind.single_email}

# Lower runs first.
JOB_PRIORITIES = {
    JobKind.bulk_pdf: 90,
    JobKind.single_pdf: 100,
    JobKind.single_email: 100,
}


class JobStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class OrderRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    match_id: str = Field(..., min_length=1, alias="matchId")
    official_id: str = Field(..., min_length=1, alias="officialId")

    @property
    def subject_key(self) -> str:
        return f"{self.match_id}:{self.official_id}"


class BulkPdfPayload(BaseModel):
    kind: Literal["mission_orders.bulk_pdf"] = "mission_orders.bulk_pdf"
    orders: List[OrderRef] = Field(..., min_length=1)
    file_name: Optional[str] = None
    requested_by: Optional[str] = None


class SinglePdfPayload(BaseModel):
    kind: Literal["mission_orders.single_pdf"] = "mission_orders.single_pdf"
    order: OrderRef
    requested_by: Optional[str] = None


class SingleEmailPayload(BaseModel):
    kind: Literal["mission_orders.single_email"] = "mission_orders.single_email"
    order: OrderRef
    requested_by: Optional[str] = None


JobPayload = Annotated[
    Union[BulkPdfPayload, SinglePdfPayload, SingleEmailPayload],
    Field(discriminator="kind"),
]

_payload_adapter: TypeAdapter = TypeAdapter(JobPayload)


def parse_payload(data: Dict[str, Any]) -> Union[BulkPdfPayload, SinglePdfPayload, SingleEmailPayload]:
    return _payload_adapter.validate_python(data)


class EnqueueRequest(BaseModel):
    type: JobKind
    items: List[Any] = Field(default_factory=list)
    dedupe: bool = True
    file_name: Optional[str] = Field(default=None, alias="fileName")

    model_config = ConfigDict(populate_by_name=True)


class EnqueueResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(..., alias="jobId")
    reused: bool
    status: JobStatus
    progress: Optional[int] = None
    artifact_path: Optional[str] = Field(default=None, alias="artifactPath")


class JobRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: str
    status: JobStatus
    progress: int = 0
    error_message: Optional[str] = Field(default=None, alias="errorMessage")
    artifact_path: Optional[str] = Field(default=None, alias="artifactPath")
    created_at: str = Field(..., alias="createdAt")
    updated_at: str = Field(..., alias="updatedAt")

    @classmethod
    def from_job(cls, job: Dict[str, Any]) -> "JobRecord":
        return cls(
            id=job["id"],
            type=job["type"],
            status=job["status"],
            progress=job["progress"],
            error_message=job["error_message"],
            artifact_path=job["artifact_path"],
            created_at=job["created_at"],
            updated_at=job["updated_at"],
        )


class RetryResponse(BaseModel):
    success: bool
    job: JobRecord


class CycleSummary(BaseModel):
    processed: int = 0
    completed: int = 0
    failed: int = 0
    batches: int = 0
