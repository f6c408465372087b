import pytest

from adstudio.services.fidelity_scorer import (
    GeminiFidelityScorer,
    build_scoring_prompt,
    parse_fidelity_score,
)
from adstudio.services.reference_assets import InlineAsset


@pytest.mark.parametrize(
    "text, expected",
    [
        ('{"score": 87}', 87),
        ('Sure! ```json\n{"score": 72.5}\n```', 73),
        ('{"score": 140}', 100),
        ('{"score": -3}', 0),
        ('{"score": "91"}', 91),
    ],
)
def test_parse_fidelity_score(text, expected):
    assert parse_fidelity_score(text) == expected


@pytest.mark.parametrize(
    "text",
    [None, "", "no json here", '{"score": "high"}', '{"other": 1}', '{"score": NaN}', "{broken"],
)
def test_parse_fidelity_score_unknown(text):
    assert parse_fidelity_score(text) is None


def test_scoring_prompt_names_intended_copy():
    prompt = build_scoring_prompt("봄맞이 특가", "지금 구매")

    assert "intended_headline: 봄맞이 특가" in prompt
    assert "intended_cta: 지금 구매" in prompt


@pytest.mark.asyncio
async def test_scorer_without_api_key_is_unknown():
    scorer = GeminiFidelityScorer(api_key="")

    assert await scorer.score(InlineAsset("image/png", b"png"), "headline", "cta") is None
