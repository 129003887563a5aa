import asyncio
from typing import Any, Dict, Optional, Tuple

from mission_orders.core import config
from mission_orders.core.errors import StorageError
from mission_orders.core.logging import logger
from mission_orders.db import artifacts_repo
from mission_orders.db.connection import next_sequence_value
from mission_orders.schemas.jobs import OrderRef
from mission_orders.services.render.assets import AssetCache, AssetManifest
from mission_orders.services.render.fonts import FontSet, build_font_set
from mission_orders.services.render.renderer import direction_for, render
from mission_orders.services.source_data import SourceDataClient, build_mission_data
from mission_orders.services.storage import LocalStorage
from mission_orders.utils.hashing import sha256_hex
from mission_orders.utils.time import utc_today

SEQUENCE_NAME = "mission_order_serial"


def storage_path_for(sequence_number: int) -> str:
    return f"mission_orders/{sequence_number}.pdf"


class DocumentGenerator:
    """Content-addressed mission order generation.

    A document is re-rendered only when the rendering input for its subject
    changes. Every render allocates a new sequence number and a new artifact
    record; older records stay in place so previously issued QR codes keep
    resolving.
    """

    def __init__(
        self,
        source: SourceDataClient,
        storage: LocalStorage,
        assets: AssetCache,
        manifest: Optional[AssetManifest] = None,
        language: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> None:
        self.source = source
        self.storage = storage
        self.assets = assets
        self.manifest = manifest or AssetManifest.from_config()
        self.language = language or config.DOCUMENT_LANGUAGE
        self.base_url = (base_url or config.APP_BASE_URL).rstrip("/")
        self._fonts: Optional[FontSet] = None

    def verification_url(self, artifact_id: str) -> str:
        return f"{self.base_url}/verify/{artifact_id}"

    async def generate(self, order: OrderRef) -> bytes:
        data, _ = await self.generate_with_record(order)
        return data

    async def generate_with_record(
        self, order: OrderRef
    ) -> Tuple[bytes, Dict[str, Any]]:
        details = await self.source.fetch_details(order)
        mission = build_mission_data(details, self.language).model_dump()
        data_hash = sha256_hex(mission)

        latest = await artifacts_repo.fetch_latest_for_subject(order.subject_key)
        if latest and latest["data_hash"] == data_hash and latest["storage_path"]:
            try:
                cached = await self.storage.get(latest["storage_path"])
            except StorageError:
                logger.warning(
                    "stored document missing for %s, regenerating", order.subject_key
                )
            else:
                logger.info(
                    "document cache hit %s (#%s)",
                    order.subject_key,
                    latest["sequence_number"],
                )
                return cached, latest

        sequence_number = await next_sequence_value(SEQUENCE_NAME)
        snapshot = {
            **mission,
            "order_number": str(sequence_number),
            "issued_on": utc_today(),
        }
        record = await artifacts_repo.create_artifact(
            subject_key=order.subject_key,
            match_id=order.match_id,
            official_id=order.official_id,
            sequence_number=sequence_number,
            data_hash=data_hash,
            data_snapshot=snapshot,
        )
        data = await self.render_snapshot(record)
        path = await self.storage.put(storage_path_for(sequence_number), data)
        await artifacts_repo.set_storage_path(record["id"], path)
        record["storage_path"] = path
        logger.info(
            "document generated %s (#%s, %d bytes)",
            order.subject_key,
            sequence_number,
            len(data),
        )
        return data, record

    async def render_snapshot(self, record: Dict[str, Any]) -> bytes:
        """Render an artifact record's snapshot; pure given the same assets."""
        fonts = await self._load_fonts()
        images = {
            "logo": await self.assets.get_optional(self.manifest.logo),
            "background": await self.assets.get_optional(self.manifest.background),
            "stamp": await self.assets.get_optional(self.manifest.stamp),
        }
        snapshot = record["data_snapshot"]
        return await asyncio.to_thread(
            render,
            snapshot,
            direction_for(snapshot.get("language", self.language)),
            images,
            self.verification_url(record["id"]),
            fonts,
        )

    async def _load_fonts(self) -> FontSet:
        if self._fonts is None:
            regular = await self.assets.get_optional(self.manifest.font_regular)
            bold = await self.assets.get_optional(self.manifest.font_bold)
            self._fonts = build_font_set(regular, bold)
        return self._fonts
