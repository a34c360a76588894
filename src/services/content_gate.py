"""Disclosure tiers for protected template content."""

from enum import Enum


class DisclosureTier(str, Enum):
    ALWAYS_VISIBLE = "AlwaysVisible"
    UNLOCKED = "Unlocked"
    LOCKED = "Locked"


def decide_tier(
    is_privileged_caller: bool,
    has_accepted_redemption: bool,
    content_requires_code: bool
) -> DisclosureTier:
    """
    Map caller privilege and redemption outcome to a disclosure tier.

    ``has_accepted_redemption`` must refer to a redemption accepted for this
    exact subject during the current request. Unlocks are never remembered.
    """
    if not content_requires_code:
        return DisclosureTier.ALWAYS_VISIBLE
    if is_privileged_caller or has_accepted_redemption:
        return DisclosureTier.UNLOCKED
    return DisclosureTier.LOCKED


def discloses_content(tier: DisclosureTier) -> bool:
    return tier is not DisclosureTier.LOCKED
