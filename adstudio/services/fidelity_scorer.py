"""
Text fidelity scorer.

Asks a vision model to OCR a generated image and rate, 0-100, how closely
the rendered text matches the intended headline and CTA. Any failure means
"unknown" (None), never an exception.
"""
import json
import math
import re
from abc import ABC, abstractmethod
from typing import Optional

import google.generativeai as genai

from adstudio.config import settings
from adstudio.logging_config import get_logger
from adstudio.services.reference_assets import InlineAsset


_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class FidelityScorer(ABC):
    """Contract for the opaque legibility scorer."""

    @abstractmethod
    async def score(
        self,
        image: InlineAsset,
        intended_headline: str,
        intended_cta: str,
    ) -> Optional[int]:
        """Return an integer 0..100, or None when the score is unknown."""


def parse_fidelity_score(text: Optional[str]) -> Optional[int]:
    """Extract {"score": n} from model output and clamp it to 0..100."""
    if not text:
        return None
    match = _JSON_OBJECT.search(text)
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
        value = float(parsed.get("score"))
    except (ValueError, TypeError, AttributeError):
        return None
    if not math.isfinite(value):
        return None
    return max(0, min(100, int(math.floor(value + 0.5))))


def build_scoring_prompt(intended_headline: str, intended_cta: str) -> str:
    return "\n".join([
        "Read the text in this image as an OCR engine would and rate how exactly it matches the intended copy.",
        "Answer with an integer from 0 to 100. Output JSON only.",
        f"intended_headline: {intended_headline}",
        f"intended_cta: {intended_cta}",
        'format: {"score": 0}',
    ])


class GeminiFidelityScorer(FidelityScorer):
    """Scores with a Gemini text model via google-generativeai."""

    def __init__(self, model_name: Optional[str] = None, api_key: Optional[str] = None):
        self.model_name = model_name or settings.STUDIO_TEXT_FIDELITY_MODEL
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self._configured = False

    def _model(self):
        if not self._configured:
            genai.configure(api_key=self.api_key)
            self._configured = True
        return genai.GenerativeModel(self.model_name)

    async def score(
        self,
        image: InlineAsset,
        intended_headline: str,
        intended_cta: str,
    ) -> Optional[int]:
        if not self.api_key:
            return None
        log = get_logger(scorer_model=self.model_name)
        try:
            response = await self._model().generate_content_async(
                [
                    build_scoring_prompt(intended_headline, intended_cta),
                    {"mime_type": image.mime_type, "data": image.data},
                ],
                generation_config={"temperature": 0},
            )
            text = response.text
        except Exception as e:
            log.warning("fidelity_scoring_failed", error=str(e))
            return None
        return parse_fidelity_score(text)
