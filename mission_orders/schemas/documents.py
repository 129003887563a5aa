from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SourceDetails(BaseModel):
    """Match/official details as returned by the upstream data API."""

    model_config = ConfigDict(extra="ignore")

    official_full_name: str
    official_full_name_ar: Optional[str] = None
    official_email: Optional[str] = None
    assignment_role: str
    official_location: Optional[str] = None
    official_location_ar: Optional[str] = None
    stadium_name: Optional[str] = None
    stadium_name_ar: Optional[str] = None
    stadium_location: Optional[str] = None
    stadium_location_ar: Optional[str] = None
    match_date: Optional[str] = None
    match_time: Optional[str] = None
    home_team_name: Optional[str] = None
    home_team_name_ar: Optional[str] = None
    away_team_name: Optional[str] = None
    away_team_name_ar: Optional[str] = None


class MissionOrderData(BaseModel):
    """Canonical rendering input; its hash keys the document cache."""

    name: str
    position: str
    administrative_headquarters: str
    mission_location: str
    departure_date: str
    return_date: str
    mission_timing: str
    mission_type: str
    language: str


class VerificationSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    position: str
    mission_type: str = Field(..., alias="missionType")
    mission_location: str = Field(..., alias="missionLocation")
    departure_date: str = Field(..., alias="departureDate")
    order_number: str = Field(..., alias="orderNumber")
    issued_on: Optional[str] = Field(default=None, alias="issuedOn")
    created_at: str = Field(..., alias="createdAt")


class BatchRequest(BaseModel):
    orders: List[Any] = Field(default_factory=list)


class BatchStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    hash: Optional[str] = None
    status: str
    artifact_path: Optional[str] = Field(default=None, alias="artifactPath")
    error: Optional[str] = None
