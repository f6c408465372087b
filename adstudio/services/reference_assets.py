"""
Reference asset resolver.

Fetches reference/product/logo images by URL and turns them into inline
payloads for the generation backend.
"""
import base64
from dataclasses import dataclass
from typing import Optional

import httpx

from adstudio.config import settings
from adstudio.errors import ValidationError
from adstudio.logging_config import get_logger


@dataclass(frozen=True)
class InlineAsset:
    """Image bytes plus MIME type, as sent to the backend."""
    mime_type: str
    data: bytes

    @property
    def base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    @classmethod
    def from_base64(cls, mime_type: str, encoded: str) -> "InlineAsset":
        return cls(mime_type=mime_type, data=base64.b64decode(encoded))


@dataclass(frozen=True)
class InlineAssets:
    """Optional images attached to every backend call of one request."""
    reference: Optional[InlineAsset] = None
    product: Optional[InlineAsset] = None
    logo: Optional[InlineAsset] = None


def is_usable_url(url: Optional[str]) -> bool:
    if not url:
        return False
    trimmed = url.strip()
    return bool(trimmed) and trimmed != "about:blank"


def decode_data_url(url: str) -> Optional[InlineAsset]:
    """Decode a data:<mime>;base64,<payload> URL."""
    header, sep, payload = url.partition(",")
    if not sep or not header.startswith("data:") or ";base64" not in header:
        return None
    mime_type = header[len("data:"):].split(";", 1)[0] or "image/png"
    return InlineAsset.from_base64(mime_type, payload)


class ReferenceAssetResolver:
    """Loads images by URL. Optional assets never raise."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: Optional[float] = None):
        self._client = client
        self.timeout = timeout if timeout is not None else settings.ASSET_FETCH_TIMEOUT_SECONDS

    async def _fetch(self, url: str) -> InlineAsset:
        if url.startswith("data:"):
            asset = decode_data_url(url)
            if asset is None:
                raise ValueError("Malformed data URL")
            return asset

        if self._client is not None:
            response = await self._client.get(url, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(follow_redirects=True) as client:
                response = await client.get(url, timeout=self.timeout)
        response.raise_for_status()
        mime_type = response.headers.get("content-type", "image/png").split(";", 1)[0].strip()
        return InlineAsset(mime_type=mime_type or "image/png", data=response.content)

    async def resolve_optional(self, url: Optional[str], label: str = "image") -> Optional[InlineAsset]:
        """Fetch an optional asset; any failure yields None."""
        if not is_usable_url(url):
            return None
        try:
            return await self._fetch(url.strip())
        except (httpx.HTTPError, ValueError) as e:
            get_logger(label=label).warning("reference_asset_unavailable", url=url, error=str(e))
            return None

    async def resolve_required(self, url: Optional[str], label: str = "image") -> InlineAsset:
        """Fetch a required asset; failure is a ValidationError."""
        asset = await self.resolve_optional(url, label)
        if asset is None:
            raise ValidationError(f"Could not load the {label}.")
        return asset
