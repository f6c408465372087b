"""
Generation backend client.

One call produces one image for one (model, prompt, assets) tuple. Any
failure is raised as UpstreamGenerationError so the orchestrator can move
on to the next candidate model.

Endpoint: POST https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from adstudio.config import settings
from adstudio.errors import UpstreamGenerationError
from adstudio.services.reference_assets import InlineAsset, InlineAssets


GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


@dataclass(frozen=True)
class GeneratedImage:
    """Image returned by the backend, tagged with the model that produced it."""
    model: str
    image: InlineAsset

    @property
    def mime_type(self) -> str:
        return self.image.mime_type

    @property
    def data_url(self) -> str:
        return f"data:{self.image.mime_type};base64,{self.image.base64}"


class GenerationBackend(ABC):
    """Contract for the external image generation API."""

    @abstractmethod
    async def generate(
        self,
        model: str,
        prompt: str,
        aspect_ratio: str,
        assets: InlineAssets,
    ) -> GeneratedImage:
        """
        Generate one image.

        Raises:
            UpstreamGenerationError: the model failed or returned no image
        """


def build_parts(prompt: str, assets: InlineAssets) -> list[dict[str, Any]]:
    """Prompt text followed by each labelled inline image."""
    parts: list[dict[str, Any]] = [{"text": prompt}]
    labelled = (
        (assets.reference, "Reference image for style guidance only."),
        (assets.product, "Product image that must be the main subject."),
        (assets.logo, "Brand logo reference. Preserve the logo identity and place it naturally in the composition."),
    )
    for asset, label in labelled:
        if asset is None:
            continue
        parts.append({"text": label})
        parts.append({"inlineData": {"mimeType": asset.mime_type, "data": asset.base64}})
    return parts


def extract_inline_image(payload: dict[str, Any]) -> Optional[InlineAsset]:
    """First inline image across candidates/parts, or None."""
    for candidate in payload.get("candidates") or []:
        content = candidate.get("content") or {}
        for part in content.get("parts") or []:
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and inline.get("data"):
                mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
                return InlineAsset.from_base64(mime_type, inline["data"])
    return None


class GeminiImageBackend(GenerationBackend):
    """Gemini native image generation over the REST API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        temperature: float = 0.35,
    ):
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self._client = client
        self.temperature = temperature

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise UpstreamGenerationError("GEMINI_API_KEY is not set", retryable=False)
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key,
        }

    async def _post(self, url: str, body: dict, headers: dict) -> httpx.Response:
        # Per-call timeouts are enforced by the orchestrator
        if self._client is not None:
            return await self._client.post(url, json=body, headers=headers, timeout=None)
        async with httpx.AsyncClient() as client:
            return await client.post(url, json=body, headers=headers, timeout=None)

    async def generate(
        self,
        model: str,
        prompt: str,
        aspect_ratio: str,
        assets: InlineAssets,
    ) -> GeneratedImage:
        url = f"{GEMINI_API_BASE}/models/{model}:generateContent"
        body = {
            "contents": [{"role": "user", "parts": build_parts(prompt, assets)}],
            "generationConfig": {
                "temperature": self.temperature,
                "responseModalities": ["IMAGE"],
                "imageConfig": {"aspectRatio": aspect_ratio},
            },
        }

        try:
            response = await self._post(url, body, self._headers())
        except httpx.HTTPError as e:
            raise UpstreamGenerationError(f"Model {model} request failed: {e}", model=model) from e

        if response.status_code >= 400:
            error_text = response.text[:500] if response.text else "No error details"
            raise UpstreamGenerationError(
                f"Model {model} returned {response.status_code}: {error_text}",
                model=model,
                retryable=response.status_code == 429 or response.status_code >= 500,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamGenerationError(f"Model {model} returned invalid JSON", model=model) from e

        image = extract_inline_image(payload)
        if image is None:
            raise UpstreamGenerationError(
                f"Model {model} returned no image payload in candidates/parts.",
                model=model,
            )
        return GeneratedImage(model=model, image=image)
