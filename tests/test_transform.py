from __future__ import annotations

import asyncio

import pytest

from adgenius.errors import TierExhaustedError
from adgenius.models import AdStyle, AspectRatio, SourceImage, Tier
from adgenius.transform import TierFallbackTransform

from conftest import FakeProvider, RateLimited, png_bytes


def _transform(provider, retry_policy, tier, instruction="Sunlit kitchen counter"):
    transform = TierFallbackTransform(provider, retry_policy)
    source = SourceImage(png_bytes())
    return asyncio.run(
        transform.transform(source, AdStyle.MINIMAL, AspectRatio.SQUARE, instruction, tier=tier)
    )


def test_high_fidelity_success_skips_standard(retry_policy):
    provider = FakeProvider(image=lambda call: b"hq-image")

    result = _transform(provider, retry_policy, Tier.HIGH_FIDELITY)

    assert result == b"hq-image"
    assert [call.tier for call in provider.image_calls] == [Tier.HIGH_FIDELITY]
    assert "Create a masterpiece commercial advertisement" in provider.image_calls[0].prompt
    assert "Specific Instructions: Sunlit kitchen counter" in provider.image_calls[0].prompt


def test_high_fidelity_failure_falls_back_to_standard(retry_policy, sleep):
    expected = png_bytes()

    def handler(call):
        if call.tier is Tier.HIGH_FIDELITY:
            return RateLimited("quota")
        return expected

    provider = FakeProvider(image=handler)

    result = _transform(provider, retry_policy, Tier.HIGH_FIDELITY)

    assert result == expected
    assert [call.tier for call in provider.image_calls] == [
        Tier.HIGH_FIDELITY,
        Tier.HIGH_FIDELITY,
        Tier.STANDARD,
    ]
    assert sleep.delays == [2.0]
    assert "Transform this product image" in provider.image_calls[-1].prompt


def test_empty_high_fidelity_result_falls_back(retry_policy):
    provider = FakeProvider(image=lambda call: None if call.tier is Tier.HIGH_FIDELITY else b"std")

    result = _transform(provider, retry_policy, Tier.HIGH_FIDELITY)

    assert result == b"std"
    # An empty result is retried within its tier before falling back.
    assert [call.tier for call in provider.image_calls] == [
        Tier.HIGH_FIDELITY,
        Tier.HIGH_FIDELITY,
        Tier.STANDARD,
    ]


def test_standard_request_never_touches_high_fidelity(retry_policy):
    provider = FakeProvider(image=lambda call: b"std")

    result = _transform(provider, retry_policy, Tier.STANDARD, instruction=None)

    assert result == b"std"
    assert [call.tier for call in provider.image_calls] == [Tier.STANDARD]
    assert "User Instructions" not in provider.image_calls[0].prompt


def test_both_tiers_failing_is_terminal(retry_policy, sleep):
    provider = FakeProvider(image=lambda call: RateLimited("RESOURCE_EXHAUSTED"))

    with pytest.raises(TierExhaustedError) as excinfo:
        _transform(provider, retry_policy, Tier.HIGH_FIDELITY)

    tiers = [call.tier for call in provider.image_calls]
    assert tiers.count(Tier.HIGH_FIDELITY) == 2
    assert tiers.count(Tier.STANDARD) == 4
    assert sleep.delays == [2.0, 2.0, 4.0, 8.0]
    assert isinstance(excinfo.value.__cause__, RateLimited)


def test_standard_empty_results_exhaust_to_terminal(retry_policy):
    provider = FakeProvider(image=lambda call: b"")

    with pytest.raises(TierExhaustedError):
        _transform(provider, retry_policy, Tier.STANDARD)

    assert len(provider.image_calls) == 4
