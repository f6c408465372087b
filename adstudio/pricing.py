"""
Image model catalog and credit pricing.

Credits are sold in CREDIT_WON_UNIT (100 KRW) units at three times the
provider cost, rounded to the nearest 100 KRW.
"""
import math
from dataclasses import dataclass
from typing import Optional

from adstudio.config import settings


@dataclass(frozen=True)
class ImageModel:
    id: str
    provider: str
    name: str
    cost_usd: float
    cost_usd_4k: Optional[float] = None


@dataclass(frozen=True)
class ModelPrice:
    model: ImageModel
    cost_usd: float
    cost_krw: int
    sell_krw: int
    credits_required: int


STUDIO_IMAGE_MODELS: list[ImageModel] = [
    ImageModel("imagen-4.0-fast-generate-001", "Imagen 4", "Imagen 4 Fast", 0.02),
    ImageModel("imagen-4.0-generate-001", "Imagen 4", "Imagen 4", 0.04),
    ImageModel("imagen-4.0-ultra-generate-001", "Imagen 4", "Imagen 4 Ultra", 0.06),
    ImageModel("gemini-2.5-flash-image", "Gemini native", "Gemini 2.5 Flash Image", 0.039),
    ImageModel("gemini-3-pro-image-preview", "Gemini native", "Gemini 3 Pro Image", 0.134, 0.24),
]

RESOLUTIONS = ("1K", "2K", "4K")


def get_image_model(model_id: str) -> Optional[ImageModel]:
    for model in STUDIO_IMAGE_MODELS:
        if model.id == model_id:
            return model
    return None


def _round_to_100(value: float) -> int:
    # Halves round up
    return max(100, int(math.floor(value / 100 + 0.5)) * 100)


def to_model_price(model: ImageModel, resolution: str = "1K") -> ModelPrice:
    rate = settings.USD_KRW_RATE if settings.USD_KRW_RATE > 0 else 1442.0
    cost_usd = model.cost_usd_4k if resolution == "4K" and model.cost_usd_4k else model.cost_usd
    cost_krw = math.ceil(cost_usd * rate)
    sell_krw = _round_to_100(cost_krw * 3)
    credits_required = max(1, int(math.floor(sell_krw / settings.CREDIT_WON_UNIT + 0.5)))
    return ModelPrice(
        model=model,
        cost_usd=cost_usd,
        cost_krw=cost_krw,
        sell_krw=sell_krw,
        credits_required=credits_required,
    )


def price_for(model_id: str, resolution: str = "1K") -> Optional[ModelPrice]:
    """Price a catalog model, or None when the model is not sold."""
    model = get_image_model(model_id)
    if model is None:
        return None
    return to_model_price(model, resolution)


def priced_catalog() -> list[dict]:
    """Catalog with 1K prices (and 4K where the model has one) for API responses."""
    catalog = []
    for model in STUDIO_IMAGE_MODELS:
        price = to_model_price(model, "1K")
        high_res = to_model_price(model, "4K") if model.cost_usd_4k else None
        catalog.append({
            "id": model.id,
            "provider": model.provider,
            "name": model.name,
            "price": _price_payload(price),
            "highRes": _price_payload(high_res) if high_res else None,
        })
    return catalog


def _price_payload(price: ModelPrice) -> dict:
    return {
        "costUsd": price.cost_usd,
        "costKrw": price.cost_krw,
        "sellKrw": price.sell_krw,
        "creditsRequired": price.credits_required,
    }
