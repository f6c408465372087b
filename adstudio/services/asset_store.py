"""
Generated asset storage.

Stores image bytes under users/{user_id}/projects/{project_id}/{generation_id}.{ext}
and returns a retrievable URL. Writes never overwrite an existing object.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os

from adstudio.config import settings
from adstudio.errors import GENERIC_PERSISTENCE_FAILURE, PersistenceError
from adstudio.logging_config import get_logger


@dataclass(frozen=True)
class StoredAsset:
    storage_path: str
    url: str


def extension_for(mime_type: str) -> str:
    return "jpg" if "jpeg" in mime_type or "jpg" in mime_type else "png"


def sanitize_component(component: str) -> str:
    """Strip separators and special characters to prevent path traversal."""
    component = component.replace("/", "_").replace("\\", "_")
    component = "".join(c for c in component if c.isalnum() or c in "._-")
    return component.strip(".") or "unnamed"


def build_storage_path(user_id: str, project_id: str, generation_id: str, mime_type: str) -> str:
    return (
        f"users/{sanitize_component(user_id)}"
        f"/projects/{sanitize_component(project_id)}"
        f"/{sanitize_component(generation_id)}.{extension_for(mime_type)}"
    )


class AssetStore(ABC):
    """Contract for "store bytes, get URL"."""

    @abstractmethod
    async def upload(
        self,
        user_id: str,
        project_id: str,
        generation_id: str,
        data: bytes,
        mime_type: str,
    ) -> StoredAsset:
        """
        Store one generated image.

        Raises:
            PersistenceError: the object could not be written
        """

    @abstractmethod
    async def delete(self, storage_path: str) -> bool:
        """Remove a stored object. Returns False if it did not exist."""


class LocalAssetStore(AssetStore):
    """
    Filesystem-backed store.

    Files land in {base_path}/users/{user_id}/projects/{project_id}/ and are
    served from {base_url}/{storage_path}.
    """

    def __init__(self, base_path: Optional[str] = None, base_url: Optional[str] = None):
        self.base_path = Path(base_path or settings.ASSET_STORAGE_PATH)
        self.base_url = (base_url or settings.ASSET_BASE_URL).rstrip("/")

    def _get_file_path(self, storage_path: str) -> Path:
        return self.base_path / storage_path

    def public_url(self, storage_path: str) -> str:
        return f"{self.base_url}/{storage_path}"

    async def upload(
        self,
        user_id: str,
        project_id: str,
        generation_id: str,
        data: bytes,
        mime_type: str,
    ) -> StoredAsset:
        storage_path = build_storage_path(user_id, project_id, generation_id, mime_type)
        file_path = self._get_file_path(storage_path)
        log = get_logger(user_id=user_id, ref_id=generation_id)

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            # "x" mode: never overwrite an existing asset
            async with aiofiles.open(file_path, "xb") as f:
                await f.write(data)
        except OSError as e:
            log.error("asset_upload_failed", storage_path=storage_path, error=str(e))
            raise PersistenceError(GENERIC_PERSISTENCE_FAILURE) from e

        log.info("asset_uploaded", storage_path=storage_path, size=len(data))
        return StoredAsset(storage_path=storage_path, url=self.public_url(storage_path))

    async def delete(self, storage_path: str) -> bool:
        file_path = self._get_file_path(storage_path)
        if not file_path.exists():
            return False
        await aiofiles.os.remove(file_path)
        return True
