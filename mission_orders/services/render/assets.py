import asyncio
import os
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

import httpx

from mission_orders.core import config
from mission_orders.core.errors import AssetUnavailable
from mission_orders.core.logging import logger
from mission_orders.services.http_client import DEFAULT_TIMEOUT

Fetcher = Callable[[str], Awaitable[bytes]]


@dataclass(frozen=True)
class AssetManifest:
    """Where each static rendering asset lives; ``None`` disables it."""

    font_regular: Optional[str] = None
    font_bold: Optional[str] = None
    logo: Optional[str] = None
    background: Optional[str] = None
    stamp: Optional[str] = None

    @classmethod
    def from_config(cls) -> "AssetManifest":
        return cls(
            font_regular=config.FONT_REGULAR_URL or None,
            font_bold=config.FONT_BOLD_URL or None,
            logo=config.LOGO_URL or None,
            background=config.BACKGROUND_URL or None,
            stamp=config.STAMP_URL or None,
        )


async def fetch_location(location: str) -> bytes:
    if location.startswith(("http://", "https://")):
        async with httpx.AsyncClient(
            timeout=DEFAULT_TIMEOUT, follow_redirects=True
        ) as client:
            response = await client.get(location)
            response.raise_for_status()
            return response.content
    path = location[len("file://"):] if location.startswith("file://") else location
    return await asyncio.to_thread(_read_file, os.path.expanduser(path))


def _read_file(path: str) -> bytes:
    with open(path, "rb") as fh:
        return fh.read()


class AssetCache:
    """Fetch-once store for fonts and images.

    One instance lives for the whole process (created at app startup) and is
    handed to the document generator; tests build their own with a fake
    fetcher.
    """

    def __init__(self, fetcher: Optional[Fetcher] = None) -> None:
        self._fetcher = fetcher or fetch_location
        self._data: Dict[str, bytes] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def __contains__(self, location: str) -> bool:
        return location in self._data

    async def get(self, location: str) -> bytes:
        cached = self._data.get(location)
        if cached is not None:
            return cached
        lock = self._locks.setdefault(location, asyncio.Lock())
        async with lock:
            cached = self._data.get(location)
            if cached is not None:
                return cached
            try:
                data = await self._fetcher(location)
            except (httpx.HTTPError, OSError) as exc:
                raise AssetUnavailable(f"failed to fetch asset {location}: {exc}") from exc
            self._data[location] = data
            logger.info("asset cached %s (%d bytes)", location, len(data))
            return data

    async def get_optional(self, location: Optional[str]) -> Optional[bytes]:
        if not location:
            return None
        return await self.get(location)
