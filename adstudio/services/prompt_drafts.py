"""
Prompt draft normalisation.

Stored prompt rows carry loosely typed JSON columns. This module turns a row
into a PromptDraft with every field present and applies the optional
per-request override on top of it.
"""
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from adstudio.models.project import PromptRecord


FONT_TONES = ("auto", "gothic", "myeongjo", "rounded", "calligraphy")
EFFECT_TONES = ("auto", "clean", "shadow", "outline", "emboss", "bubble")
TEXT_SLOTS = ("headline", "subhead", "cta", "badge")
MAX_BADGES = 8


@dataclass(frozen=True)
class CopyBlock:
    headline: str = ""
    subhead: str = ""
    cta: str = ""
    badges: tuple[str, ...] = ()


@dataclass(frozen=True)
class VisualBlock:
    scene: str = ""
    composition: str = ""
    style: str = ""
    lighting: str = ""
    color_palette_hint: str = ""
    negative: str = ""


@dataclass(frozen=True)
class CopyToggles:
    use_subcopy: bool = True
    use_cta: bool = True
    use_badge: bool = True


@dataclass(frozen=True)
class TextStyleSlot:
    font_tone: str = "auto"
    effect_tone: str = "auto"


@dataclass(frozen=True)
class PromptDraft:
    id: str
    role: str
    title: str
    copy: CopyBlock = field(default_factory=CopyBlock)
    visual: VisualBlock = field(default_factory=VisualBlock)
    copy_toggles: CopyToggles = field(default_factory=CopyToggles)
    text_style: dict[str, TextStyleSlot] = field(default_factory=dict)
    auto_fix_rules: tuple[str, ...] = ()
    final_prompt: str = ""


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> str:
    return "" if value is None else str(value)


def _string_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(item) for item in value if item is not None and str(item))


def parse_copy_toggles(value: Any) -> CopyToggles:
    """Missing or non-boolean toggles default to enabled."""
    source = _as_dict(value)

    def flag(key: str) -> bool:
        raw = source.get(key)
        return raw if isinstance(raw, bool) else True

    return CopyToggles(
        use_subcopy=flag("useSubcopy"),
        use_cta=flag("useCTA"),
        use_badge=flag("useBadge"),
    )


def parse_text_style(value: Any) -> dict[str, TextStyleSlot]:
    """Unknown tones fall back to "auto"."""
    source = _as_dict(value)
    styles = {}
    for slot in TEXT_SLOTS:
        raw = _as_dict(source.get(slot))
        font_tone = raw.get("fontTone")
        effect_tone = raw.get("effectTone")
        styles[slot] = TextStyleSlot(
            font_tone=font_tone if font_tone in FONT_TONES else "auto",
            effect_tone=effect_tone if effect_tone in EFFECT_TONES else "auto",
        )
    return styles


def extract_prompt_draft(record: PromptRecord) -> PromptDraft:
    copy_json = _as_dict(record.copy_json)
    visual_json = _as_dict(record.visual_json)
    hints = _as_dict(record.generation_hints)
    senior_pack = _as_dict(hints.get("seniorPack"))
    validation = _as_dict(senior_pack.get("validation"))
    final_prompt = senior_pack.get("finalPrompt")

    return PromptDraft(
        id=record.id,
        role=record.role or "PLANNER",
        title=record.title or "",
        copy=CopyBlock(
            headline=_as_str(copy_json.get("headline")),
            subhead=_as_str(copy_json.get("subhead")),
            cta=_as_str(copy_json.get("cta")),
            badges=_string_list(copy_json.get("badges")),
        ),
        visual=VisualBlock(
            scene=_as_str(visual_json.get("scene")),
            composition=_as_str(visual_json.get("composition")),
            style=_as_str(visual_json.get("style")),
            lighting=_as_str(visual_json.get("lighting")),
            color_palette_hint=_as_str(visual_json.get("colorPaletteHint")),
            negative=_as_str(visual_json.get("negative")),
        ),
        copy_toggles=parse_copy_toggles(hints.get("copyToggles")),
        text_style=parse_text_style(hints.get("textStyle")),
        auto_fix_rules=_string_list(validation.get("autoFixRules")),
        final_prompt=final_prompt if isinstance(final_prompt, str) else "",
    )


def merge_prompt_override(base: PromptDraft, override: Optional[dict[str, Any]]) -> PromptDraft:
    """
    Apply a request-level override to a stored draft.

    The override uses the request's camelCase shape. Fields that are absent
    keep the stored value; badges are trimmed, emptied entries dropped, and
    capped at MAX_BADGES.
    """
    if not override:
        return base

    copy_override = _as_dict(override.get("copy"))
    visual_override = _as_dict(override.get("visual"))
    hints_override = _as_dict(override.get("generationHints"))

    def pick(source: dict, key: str, fallback: str) -> str:
        value = source.get(key)
        return fallback if value is None else value

    badges = copy_override.get("badges")
    if isinstance(badges, list):
        merged_badges = tuple(
            item for item in (str(b).strip() for b in badges) if item
        )[:MAX_BADGES]
    else:
        merged_badges = base.copy.badges

    title = (override.get("title") or "").strip() or base.title

    return replace(
        base,
        title=title,
        copy=CopyBlock(
            headline=pick(copy_override, "headline", base.copy.headline),
            subhead=pick(copy_override, "subhead", base.copy.subhead),
            cta=pick(copy_override, "cta", base.copy.cta),
            badges=merged_badges,
        ),
        visual=VisualBlock(
            scene=pick(visual_override, "scene", base.visual.scene),
            composition=pick(visual_override, "composition", base.visual.composition),
            style=pick(visual_override, "style", base.visual.style),
            lighting=pick(visual_override, "lighting", base.visual.lighting),
            color_palette_hint=pick(visual_override, "colorPaletteHint", base.visual.color_palette_hint),
            negative=pick(visual_override, "negative", base.visual.negative),
        ),
        copy_toggles=(
            parse_copy_toggles(hints_override["copyToggles"])
            if hints_override.get("copyToggles")
            else base.copy_toggles
        ),
        text_style=(
            parse_text_style(hints_override["textStyle"])
            if hints_override.get("textStyle")
            else base.text_style
        ),
    )


def has_text_targets(draft: PromptDraft) -> bool:
    """True when any copy field would be rendered as text."""
    copy = draft.copy
    return bool(
        copy.headline.strip()
        or copy.subhead.strip()
        or copy.cta.strip()
        or any(badge.strip() for badge in copy.badges)
    )
