"""
Verified badge eligibility rules.
"""
from typing import Optional


def is_eligible_for_badge(approved_certification_count: int, category_config) -> bool:
    """
    Decide whether a seller qualifies for the verified badge.

    Args:
        approved_certification_count: Number of approved certifications
        category_config: CategoryConfiguration row for the seller's primary
            category, or None when the category has no configuration

    Returns:
        True only if the category allows badges and the seller has at
        least the configured minimum of approved certifications
    """
    if category_config is None:
        return False
    if not category_config.allows_verified_badge:
        return False
    minimum = category_config.min_certifications_for_badge or 0
    return approved_certification_count >= minimum


def evaluate_badge(
    approved_certification_count: int,
    category_config,
    is_premium: bool,
    has_category: Optional[bool] = True,
) -> bool:
    """
    Badge value to project onto a seller profile.

    Adds the premium gate on top of is_eligible_for_badge: categories with
    badge_requires_premium only keep the badge while the seller is premium.
    """
    if not has_category:
        return False
    if not is_eligible_for_badge(approved_certification_count, category_config):
        return False
    if getattr(category_config, "badge_requires_premium", True) and not is_premium:
        return False
    return True
