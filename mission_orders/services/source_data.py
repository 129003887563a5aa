from typing import Optional, Protocol

import httpx
from pydantic import ValidationError as PydanticValidationError

from mission_orders.core import config
from mission_orders.core.errors import SourceDataUnavailable, UpstreamError
from mission_orders.schemas.documents import MissionOrderData, SourceDetails
from mission_orders.schemas.jobs import OrderRef
from mission_orders.services.http_client import (
    DEFAULT_TIMEOUT,
    build_auth_headers,
    request_json,
)

ROLE_TRANSLATIONS = {
    "Arbitre Assistant 1": "مساعد حكم 1",
    "Arbitre Assistant 2": "مساعد حكم 2",
    "Arbitre Central": "حكم ساحة",
    "Délégué Adjoint": "محافظ الأمن",
    "Délégué Principal": "محافظ اللقاء",
}

UNSPECIFIED_TIME = {"ar": "غير محدد", "fr": "Non précisé"}
VERSUS = {"ar": "ضد", "fr": "contre"}


class SourceDataClient(Protocol):
    async def fetch_details(self, order: OrderRef) -> SourceDetails: ...


class HttpSourceDataClient:
    """Reads match/official details from the scheduling API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or config.SOURCE_API_URL).rstrip("/")
        self.api_token = config.SOURCE_API_TOKEN if api_token is None else api_token
        self.transport = transport

    async def fetch_details(self, order: OrderRef) -> SourceDetails:
        url = f"{self.base_url}/mission-orders/{order.match_id}/{order.official_id}"
        try:
            async with httpx.AsyncClient(
                timeout=DEFAULT_TIMEOUT, transport=self.transport
            ) as client:
                data = await request_json(
                    client, "GET", url, build_auth_headers(self.api_token)
                )
        except (httpx.HTTPError, UpstreamError) as exc:
            raise SourceDataUnavailable(
                f"could not fetch details for {order.subject_key}: {exc}"
            ) from exc
        if not isinstance(data, dict):
            raise SourceDataUnavailable(f"empty details for {order.subject_key}")
        try:
            return SourceDetails.model_validate(data)
        except PydanticValidationError as exc:
            raise SourceDataUnavailable(
                f"malformed details for {order.subject_key}: {exc}"
            ) from exc


def _pick(language: str, arabic: Optional[str], latin: Optional[str]) -> str:
    if language == "ar":
        return arabic or latin or ""
    return latin or arabic or ""


def build_mission_data(details: SourceDetails, language: str = "ar") -> MissionOrderData:
    if language == "ar":
        role = ROLE_TRANSLATIONS.get(details.assignment_role, details.assignment_role)
    else:
        role = details.assignment_role
    stadium = _pick(language, details.stadium_name_ar, details.stadium_name)
    stadium_location = _pick(
        language, details.stadium_location_ar, details.stadium_location
    )
    separator = "، " if language == "ar" else ", "
    if details.match_date:
        when = f"{details.match_date}T{details.match_time or '00:00:00'}"
    else:
        when = ""
    home = _pick(language, details.home_team_name_ar, details.home_team_name)
    away = _pick(language, details.away_team_name_ar, details.away_team_name)
    return MissionOrderData(
        name=_pick(language, details.official_full_name_ar, details.official_full_name),
        position=role,
        administrative_headquarters=_pick(
            language, details.official_location_ar, details.official_location
        ),
        mission_location=separator.join(p for p in (stadium, stadium_location) if p),
        departure_date=when,
        return_date=when,
        mission_timing=details.match_time or UNSPECIFIED_TIME.get(language, ""),
        mission_type=f"{role} : {home} {VERSUS.get(language, '-')} {away}",
        language=language,
    )
