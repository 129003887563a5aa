import asyncio
import os
import uuid
from typing import Optional

from mission_orders.core import config
from mission_orders.core.errors import StorageError


class LocalStorage:
    """Filesystem object store keyed by relative paths.

    Writes go to a temp file and are renamed into place, so re-uploading the
    same path (a retried job, a reclaimed batch) simply overwrites.
    """

    def __init__(self, root: Optional[str] = None) -> None:
        self.root = os.path.abspath(root or config.STORAGE_DIR)

    def _resolve(self, path: str) -> str:
        full = os.path.abspath(os.path.join(self.root, path))
        if os.path.commonpath([full, self.root]) != self.root:
            raise StorageError(f"path escapes storage root: {path}")
        return full

    async def put(self, path: str, data: bytes) -> str:
        await asyncio.to_thread(self._put_sync, path, data)
        return path

    def _put_sync(self, path: str, data: bytes) -> None:
        full = self._resolve(path)
        tmp = f"{full}.{uuid.uuid4().hex}.tmp"
        try:
            os.makedirs(os.path.dirname(full), exist_ok=True)
            with open(tmp, "wb") as fh:
                fh.write(data)
            os.replace(tmp, full)
        except OSError as exc:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise StorageError(f"upload failed for {path}: {exc}") from exc

    async def get(self, path: str) -> bytes:
        return await asyncio.to_thread(self._get_sync, path)

    def _get_sync(self, path: str) -> bytes:
        full = self._resolve(path)
        try:
            with open(full, "rb") as fh:
                return fh.read()
        except OSError as exc:
            raise StorageError(f"download failed for {path}: {exc}") from exc

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(os.path.isfile, self._resolve(path))
