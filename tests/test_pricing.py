from adstudio.pricing import STUDIO_IMAGE_MODELS, price_for, priced_catalog


def test_imagen_fast_costs_one_credit():
    price = price_for("imagen-4.0-fast-generate-001")

    assert price.cost_krw == 29
    assert price.sell_krw == 100
    assert price.credits_required == 1


def test_gemini_flash_image_costs_two_credits():
    price = price_for("gemini-2.5-flash-image")

    assert price.sell_krw == 200
    assert price.credits_required == 2


def test_gemini_pro_uses_4k_cost_only_at_4k():
    standard = price_for("gemini-3-pro-image-preview", "1K")
    high_res = price_for("gemini-3-pro-image-preview", "4K")

    assert (standard.cost_krw, standard.sell_krw, standard.credits_required) == (194, 600, 6)
    assert (high_res.cost_krw, high_res.sell_krw, high_res.credits_required) == (347, 1000, 10)


def test_unknown_model_has_no_price():
    assert price_for("dall-e-3") is None


def test_every_model_costs_at_least_one_credit():
    for model in STUDIO_IMAGE_MODELS:
        assert price_for(model.id).credits_required >= 1


def test_priced_catalog_lists_high_res_only_where_available():
    catalog = {item["id"]: item for item in priced_catalog()}

    assert set(catalog) == {model.id for model in STUDIO_IMAGE_MODELS}
    assert catalog["gemini-3-pro-image-preview"]["highRes"]["creditsRequired"] == 10
    assert catalog["imagen-4.0-fast-generate-001"]["highRes"] is None
    assert catalog["imagen-4.0-fast-generate-001"]["price"]["sellKrw"] == 100
