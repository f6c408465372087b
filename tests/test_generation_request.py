import pytest

from adstudio.errors import ValidationError
from adstudio.services.generation_request import parse_generate_request


BASE = {
    "projectId": "project-1",
    "promptId": "prompt-1",
    "imageModelId": "imagen-4.0-fast-generate-001",
    "aspectRatio": "4:5",
    "textMode": "in_image",
}


def test_defaults_are_applied():
    request = parse_generate_request(BASE)

    assert request.style_transfer_mode == "style_transfer"
    assert request.text_accuracy_mode == "normal"
    assert request.prompt_override is None


def test_prompt_override_round_trips_to_camel_case():
    request = parse_generate_request({
        **BASE,
        "promptOverride": {
            "copy": {"headline": "여름 세일", "badges": ["HOT"]},
            "generationHints": {"copyToggles": {"useCTA": False}},
            "unknownField": "ignored",
        },
    })

    assert request.prompt_override.as_override() == {
        "copy": {"headline": "여름 세일", "badges": ["HOT"]},
        "generationHints": {"copyToggles": {"useCTA": False}},
    }


@pytest.mark.parametrize(
    "field, value",
    [
        ("projectId", ""),
        ("aspectRatio", "16:9"),
        ("textMode", "shout"),
        ("styleTransferMode", "collage"),
        ("textAccuracyMode", "loose"),
    ],
)
def test_invalid_fields_are_named(field, value):
    with pytest.raises(ValidationError) as exc_info:
        parse_generate_request({**BASE, field: value})

    assert exc_info.value.message.startswith(f"Invalid generate request. ({field}")
    assert exc_info.value.status_code == 400


def test_missing_field_is_reported():
    payload = dict(BASE)
    del payload["promptId"]

    with pytest.raises(ValidationError) as exc_info:
        parse_generate_request(payload)

    assert exc_info.value.detail[0]["loc"] == ["promptId"]


def test_non_object_body_is_rejected():
    with pytest.raises(ValidationError):
        parse_generate_request(["not", "an", "object"])


def test_unknown_font_tone_is_rejected():
    with pytest.raises(ValidationError):
        parse_generate_request({
            **BASE,
            "promptOverride": {"generationHints": {"textStyle": {"headline": {"fontTone": "comic"}}}},
        })
