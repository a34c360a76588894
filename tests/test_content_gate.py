"""Tests for content disclosure tiers."""

import pytest

from src.services.content_gate import DisclosureTier, decide_tier, discloses_content


@pytest.mark.parametrize("privileged, redeemed, requires_code, expected", [
    (False, False, False, DisclosureTier.ALWAYS_VISIBLE),
    (True, False, False, DisclosureTier.ALWAYS_VISIBLE),
    (False, True, False, DisclosureTier.ALWAYS_VISIBLE),
    (True, True, False, DisclosureTier.ALWAYS_VISIBLE),
    (True, False, True, DisclosureTier.UNLOCKED),
    (False, True, True, DisclosureTier.UNLOCKED),
    (True, True, True, DisclosureTier.UNLOCKED),
    (False, False, True, DisclosureTier.LOCKED),
])
def test_decide_tier(privileged, redeemed, requires_code, expected):
    assert decide_tier(
        is_privileged_caller=privileged,
        has_accepted_redemption=redeemed,
        content_requires_code=requires_code
    ) is expected


def test_only_locked_withholds_content():
    assert discloses_content(DisclosureTier.ALWAYS_VISIBLE) is True
    assert discloses_content(DisclosureTier.UNLOCKED) is True
    assert discloses_content(DisclosureTier.LOCKED) is False
