"""
Image prompt construction.

Pure functions: the same analysis, draft, context and flags always produce
the same prompt text.
"""
import json
from typing import Any, Sequence

from adstudio.services.prompt_drafts import PromptDraft, TextStyleSlot


NEGATIVE_TEXT_TERMS = {
    "text",
    "letters",
    "captions",
    "subtitles",
    "typography",
    "random typography",
    "illegible letters",
}

FONT_KEYWORDS = {
    "gothic": "korean modern sans-serif, geometric grotesk, clean stroke",
    "myeongjo": "korean serif, myeongjo, elegant contrast stroke",
    "rounded": "rounded korean sans, soft corner stroke",
    "calligraphy": "korean calligraphy/decorative serif, ornamental stroke",
}

EFFECT_KEYWORDS = {
    "clean": "flat clean text, no heavy effect",
    "shadow": "soft drop shadow emphasis",
    "outline": "thin dark outline stroke emphasis",
    "emboss": "bevel/emboss raised text effect",
    "bubble": "rounded bubble-like volume effect",
}

MAX_RETRY_FIX_RULES = 4


def normalize_negative_prompt(negative: str, text_mode: str) -> str:
    """Strip "no text" style negatives when text must be rendered."""
    raw = negative.strip()
    if not raw or text_mode != "in_image":
        return raw
    kept = [
        item.strip()
        for item in raw.split(",")
        if item.strip() and item.strip().lower() not in NEGATIVE_TEXT_TERMS
    ]
    return ", ".join(kept)


def text_style_directives(draft: PromptDraft) -> str:
    toggles = draft.copy_toggles
    enabled = {
        "headline": True,
        "subhead": toggles.use_subcopy,
        "cta": toggles.use_cta,
        "badge": toggles.use_badge,
    }
    lines = [
        "PRIORITY RULE: Apply TEXT_STYLE_LOCK before generic typography hints.",
        "If a slot is enabled=false, do not render that slot.",
        "If fontTone/effectTone is not auto, you MUST follow it for that slot.",
        "",
        "TEXT_STYLE_LOCK:",
    ]
    for slot, is_enabled in enabled.items():
        if not is_enabled:
            lines.append(f"- {slot}: enabled=false (must not render)")
            continue
        style = draft.text_style.get(slot) or TextStyleSlot()
        font = FONT_KEYWORDS.get(style.font_tone, "follow reference typography vibe")
        effect = EFFECT_KEYWORDS.get(style.effect_tone, "follow reference effect style")
        lines.append(
            f"- {slot}: enabled=true, fontTone={style.font_tone}, "
            f'effectTone={style.effect_tone}, styleKeywords="{font}; {effect}"'
        )
    return "\n".join(lines)


def _visual_guide(draft: PromptDraft) -> str:
    if draft.final_prompt.strip():
        return draft.final_prompt.strip()
    visual = draft.visual
    fields = [visual.scene, visual.composition, visual.style, visual.lighting, visual.color_palette_hint]
    return " | ".join(item.strip() for item in fields if item.strip())


def build_image_prompt(
    analysis: dict[str, Any],
    draft: PromptDraft,
    product_context: dict[str, Any],
    aspect_ratio: str,
    text_mode: str,
    style_transfer_mode: str = "style_transfer",
    text_accuracy_mode: str = "normal",
) -> str:
    toggles = draft.copy_toggles
    subhead = draft.copy.subhead if toggles.use_subcopy else ""
    cta = draft.copy.cta if toggles.use_cta else ""
    badges = list(draft.copy.badges) if toggles.use_badge else []
    negative = normalize_negative_prompt(draft.visual.negative, text_mode)
    analysis_json = json.dumps(analysis or {}, ensure_ascii=False, indent=2, sort_keys=True)
    context_json = json.dumps(product_context or {}, ensure_ascii=False, indent=2, sort_keys=True)

    if text_mode == "in_image":
        if style_transfer_mode == "reference_retext":
            task = (
                "Recreate the reference image layout exactly and replace only its text "
                "with the copy below. Keep every non-text element in place."
            )
        else:
            task = (
                "Create a new advertising image that fuses the reference style with the "
                "product below, rendering the copy as in-image typography."
            )
        typography = str((analysis or {}).get("typographyStyle") or "").strip() or "reference-driven"
        mood = ", ".join(str(item) for item in (analysis or {}).get("moodKeywords") or [])
        sections = [
            task,
            f"ASPECT_RATIO: {aspect_ratio}",
            f"TEXT_MODE: {text_mode}",
            f"TEXT_ACCURACY_MODE: {text_accuracy_mode}",
            f"PROMPT: [{draft.role}] {draft.title}",
            f"VISUAL_GUIDE: {_visual_guide(draft) or draft.visual.scene}",
            f"MAIN_HEADLINE: {draft.copy.headline}",
            f"SUB_TEXT: {subhead}",
            f"CTA_TEXT: {cta}",
            f"BADGES: {' / '.join(badges)}",
            f"TYPOGRAPHY_HINT: {typography}",
            f"MOOD_HINT: {mood}",
            text_style_directives(draft),
            f"PRODUCT_CONTEXT:\n{context_json}",
            f"REFERENCE_ANALYSIS:\n{analysis_json}",
            f"NEGATIVE: {negative}",
        ]
        if text_accuracy_mode == "strict":
            sections.append("Spell every Korean character exactly as given. Do not invent extra text.")
        return "\n\n".join(sections)

    background_negative = ", ".join(
        item for item in (negative, "avoid plain generic sans-serif typography style") if item
    )
    copy_toggles = json.dumps(
        {"useSubcopy": toggles.use_subcopy, "useCTA": toggles.use_cta, "useBadge": toggles.use_badge}
    )
    return "\n\n".join([
        "Create a clean advertising background image with space reserved for copy overlays.",
        f"VISUAL_PROMPT: {_visual_guide(draft)}",
        f"ASPECT_RATIO: {aspect_ratio}",
        f"TEXT_MODE: {text_mode}",
        f"PLATFORM: {(product_context or {}).get('platform') or 'meta_feed'}",
        f"COPY_TOGGLES: {copy_toggles}",
        f"PRODUCT_CONTEXT:\n{context_json}",
        f"REFERENCE_ANALYSIS:\n{analysis_json}",
        f"NEGATIVE: {background_negative}",
    ])


def build_retry_prompt(base_prompt: str, attempt: int, auto_fix_rules: Sequence[str] = ()) -> str:
    """Append the strict-retry directive for attempt >= 2."""
    rules = list(auto_fix_rules)[:MAX_RETRY_FIX_RULES]
    return "\n".join([
        base_prompt,
        "",
        f"RETRY PASS {attempt}",
        "Increase Korean text legibility and exact spelling.",
        "Keep typography style and composition from previous instruction.",
        "Avoid garbled characters or broken glyph edges.",
        f"Auto fix focus: {', '.join(rules)}" if rules else "",
    ])
