"""
Runtime model fallback chain.

Catalog models are not always callable through the native image API, so a
requested model is mapped to a runtime model and followed by configured and
last-resort fallbacks.
"""
from typing import Optional, Sequence

from adstudio.config import settings


LAST_RESORT_MODELS = (
    "gemini-3-pro-image-preview",
    "gemini-2.0-flash-exp-image-generation",
)


def map_primary_model(requested_model: str, fast_fallback: str, quality_fallback: str) -> str:
    """Map imagen tiers onto their runtime equivalents; anything else is kept."""
    if requested_model.startswith("imagen-4.0-fast"):
        return fast_fallback
    if requested_model.startswith("imagen-4.0"):
        return quality_fallback
    return requested_model


def dedupe(items: Sequence[str]) -> list[str]:
    """Drop empty and repeated ids, keeping first-occurrence order."""
    seen: set[str] = set()
    ordered = []
    for item in items:
        if not item or item in seen:
            continue
        seen.add(item)
        ordered.append(item)
    return ordered


def resolve_runtime_models(
    requested_model: str,
    prefer_quality: bool = False,
    *,
    fast_fallback: Optional[str] = None,
    quality_fallback: Optional[str] = None,
    configured_fallbacks: Optional[Sequence[str]] = None,
) -> list[str]:
    """
    Build the ordered candidate list for one request.

    Args:
        requested_model: Model id the user picked
        prefer_quality: Put the quality fallback ahead of the primary
            (used for strict text accuracy)
        fast_fallback / quality_fallback / configured_fallbacks: Override
            the values from settings

    Returns:
        Deterministic, duplicate-free list of runtime model ids
    """
    fast = fast_fallback if fast_fallback is not None else settings.STUDIO_RUNTIME_FAST_IMAGE_MODEL
    quality = quality_fallback if quality_fallback is not None else settings.STUDIO_RUNTIME_QUALITY_IMAGE_MODEL
    fallbacks = list(configured_fallbacks) if configured_fallbacks is not None else settings.image_model_fallbacks

    primary = map_primary_model(requested_model.strip(), fast, quality)
    head = [quality, primary] if prefer_quality else [primary]
    return dedupe([*head, *fallbacks, *LAST_RESORT_MODELS])
