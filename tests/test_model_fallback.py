from adstudio.services.model_fallback import (
    LAST_RESORT_MODELS,
    dedupe,
    map_primary_model,
    resolve_runtime_models,
)


FAST = "gemini-2.0-flash-exp-image-generation"
QUALITY = "gemini-3-pro-image-preview"


def test_imagen_fast_maps_to_fast_runtime():
    assert map_primary_model("imagen-4.0-fast-generate-001", FAST, QUALITY) == FAST


def test_other_imagen_tiers_map_to_quality_runtime():
    assert map_primary_model("imagen-4.0-generate-001", FAST, QUALITY) == QUALITY
    assert map_primary_model("imagen-4.0-ultra-generate-001", FAST, QUALITY) == QUALITY


def test_native_models_are_kept():
    assert map_primary_model("gemini-2.5-flash-image", FAST, QUALITY) == "gemini-2.5-flash-image"


def test_dedupe_keeps_first_occurrence_and_drops_empty():
    assert dedupe(["a", "", "b", "a", "c", "b"]) == ["a", "b", "c"]


def test_resolve_orders_primary_then_configured_then_last_resort():
    models = resolve_runtime_models(
        "gemini-2.5-flash-image",
        fast_fallback=FAST,
        quality_fallback=QUALITY,
        configured_fallbacks=["custom-model"],
    )

    assert models == ["gemini-2.5-flash-image", "custom-model", *LAST_RESORT_MODELS]


def test_resolve_prefer_quality_puts_quality_first():
    models = resolve_runtime_models(
        "imagen-4.0-fast-generate-001",
        prefer_quality=True,
        fast_fallback=FAST,
        quality_fallback=QUALITY,
        configured_fallbacks=[],
    )

    assert models[0] == QUALITY
    assert models[1] == FAST
    assert len(models) == len(set(models))


def test_resolve_is_deterministic_and_duplicate_free():
    kwargs = dict(fast_fallback=FAST, quality_fallback=QUALITY, configured_fallbacks=[QUALITY, FAST, ""])

    first = resolve_runtime_models("imagen-4.0-generate-001", **kwargs)
    second = resolve_runtime_models("imagen-4.0-generate-001", **kwargs)

    assert first == second == [QUALITY, FAST]


def test_resolve_uses_settings_by_default():
    models = resolve_runtime_models("imagen-4.0-fast-generate-001")

    assert models[0] == FAST
    assert set(LAST_RESORT_MODELS) <= set(models)
