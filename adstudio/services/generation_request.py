"""
Request models for the generate endpoint.

Field names follow the public camelCase API; Python attributes are
snake_case.
"""
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from adstudio.errors import ValidationError


AspectRatio = Literal["1:1", "4:5", "9:16"]
TextMode = Literal["in_image", "minimal_text", "no_text"]
StyleTransferMode = Literal["style_transfer", "reference_retext"]
TextAccuracyMode = Literal["normal", "strict"]
FontTone = Literal["auto", "gothic", "myeongjo", "rounded", "calligraphy"]
EffectTone = Literal["auto", "clean", "shadow", "outline", "emboss", "bubble"]


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TextStyleSlot(CamelModel):
    font_tone: Optional[FontTone] = Field(default=None, alias="fontTone")
    effect_tone: Optional[EffectTone] = Field(default=None, alias="effectTone")


class TextStyleOverride(CamelModel):
    headline: Optional[TextStyleSlot] = None
    subhead: Optional[TextStyleSlot] = None
    cta: Optional[TextStyleSlot] = None
    badge: Optional[TextStyleSlot] = None


class CopyTogglesOverride(CamelModel):
    use_subcopy: Optional[bool] = Field(default=None, alias="useSubcopy")
    use_cta: Optional[bool] = Field(default=None, alias="useCTA")
    use_badge: Optional[bool] = Field(default=None, alias="useBadge")


class GenerationHintsOverride(CamelModel):
    copy_toggles: Optional[CopyTogglesOverride] = Field(default=None, alias="copyToggles")
    text_style: Optional[TextStyleOverride] = Field(default=None, alias="textStyle")


class CopyOverride(CamelModel):
    headline: Optional[str] = Field(default=None, max_length=2000)
    subhead: Optional[str] = Field(default=None, max_length=2000)
    cta: Optional[str] = Field(default=None, max_length=1000)
    badges: Optional[list[str]] = Field(default=None, max_length=20)


class VisualOverride(CamelModel):
    scene: Optional[str] = Field(default=None, max_length=8000)
    composition: Optional[str] = Field(default=None, max_length=8000)
    style: Optional[str] = Field(default=None, max_length=8000)
    lighting: Optional[str] = Field(default=None, max_length=8000)
    color_palette_hint: Optional[str] = Field(default=None, alias="colorPaletteHint", max_length=8000)
    negative: Optional[str] = Field(default=None, max_length=12000)


class PromptOverride(CamelModel):
    title: Optional[str] = Field(default=None, max_length=500)
    copy_: Optional[CopyOverride] = Field(default=None, alias="copy")
    visual: Optional[VisualOverride] = None
    generation_hints: Optional[GenerationHintsOverride] = Field(default=None, alias="generationHints")

    def as_override(self) -> dict[str, Any]:
        """camelCase dict with unset fields dropped, as merge_prompt_override expects."""
        return self.model_dump(by_alias=True, exclude_none=True)


class GenerateRequest(CamelModel):
    project_id: str = Field(alias="projectId", min_length=1)
    prompt_id: str = Field(alias="promptId", min_length=1)
    image_model_id: str = Field(alias="imageModelId", min_length=1)
    aspect_ratio: AspectRatio = Field(alias="aspectRatio")
    text_mode: TextMode = Field(alias="textMode")
    style_transfer_mode: StyleTransferMode = Field(default="style_transfer", alias="styleTransferMode")
    text_accuracy_mode: TextAccuracyMode = Field(default="normal", alias="textAccuracyMode")
    prompt_override: Optional[PromptOverride] = Field(default=None, alias="promptOverride")


def parse_generate_request(payload: Any) -> GenerateRequest:
    """
    Validate a raw JSON body.

    Raises:
        ValidationError: with the first failing field in the message and
            every issue in detail
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid generate request. (body: expected a JSON object)")
    try:
        return GenerateRequest.model_validate(payload)
    except PydanticValidationError as e:
        issues = e.errors(include_url=False, include_context=False, include_input=False)
        first = issues[0] if issues else {}
        path = ".".join(str(part) for part in first.get("loc", ())) or "body"
        message = first.get("msg", "invalid payload")
        raise ValidationError(
            f"Invalid generate request. ({path}: {message})",
            detail=[
                {"loc": [str(part) for part in issue.get("loc", ())], "msg": issue.get("msg")}
                for issue in issues
            ],
        ) from e
