from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pytest

from mission_orders.core.errors import SourceDataUnavailable
from mission_orders.db import connection
from mission_orders.schemas.documents import SourceDetails
from mission_orders.schemas.jobs import OrderRef
from mission_orders.services.documents import DocumentGenerator
from mission_orders.services.render.assets import AssetCache, AssetManifest
from mission_orders.services.storage import LocalStorage


def make_details(order: OrderRef, **overrides) -> SourceDetails:
    fields = {
        "official_full_name": f"Official {order.official_id}",
        "official_email": f"{order.official_id}@example.com",
        "assignment_role": "Arbitre Central",
        "official_location": "Oran",
        "stadium_name": "Stade Ahmed Zabana",
        "stadium_location": "Oran",
        "match_date": "2025-03-14",
        "match_time": "15:00:00",
        "home_team_name": "MC Oran",
        "away_team_name": "ASM Oran",
    }
    fields.update(overrides)
    return SourceDetails(**fields)


class FakeSource:
    """In-memory stand-in for the match/official data API."""

    def __init__(self, failing: Iterable[str] = ()) -> None:
        self.failing = set(failing)
        self.overrides: Dict[str, dict] = {}
        self.calls: List[str] = []

    async def fetch_details(self, order: OrderRef) -> SourceDetails:
        self.calls.append(order.subject_key)
        if order.subject_key in self.failing:
            raise SourceDataUnavailable(f"no details for {order.subject_key}")
        return make_details(order, **self.overrides.get(order.subject_key, {}))


@pytest.fixture
def db(tmp_path: Path):
    asyncio.run(connection.connect_db(str(tmp_path / "test.db")))
    yield
    asyncio.run(connection.close_db())


@pytest.fixture
def storage(tmp_path: Path) -> LocalStorage:
    return LocalStorage(str(tmp_path / "storage"))


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


def build_generator(
    source: FakeSource, storage: LocalStorage, language: Optional[str] = "fr"
) -> DocumentGenerator:
    return DocumentGenerator(
        source=source,
        storage=storage,
        assets=AssetCache(),
        manifest=AssetManifest(),
        language=language,
        base_url="https://orders.example.com",
    )


@pytest.fixture
def generator(source: FakeSource, storage: LocalStorage) -> DocumentGenerator:
    return build_generator(source, storage)
