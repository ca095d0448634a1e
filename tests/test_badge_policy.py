"""
Unit tests for verified badge eligibility.
"""
from app.core.badge_policy import is_eligible_for_badge, evaluate_badge
from app.db.models.category_configuration import CategoryConfiguration


def _config(allows=True, minimum=2, requires_premium=True):
    return CategoryConfiguration(
        category_id="cat-1",
        allows_verified_badge=allows,
        min_certifications_for_badge=minimum,
        badge_requires_premium=requires_premium,
    )


def test_no_configuration_means_no_badge():
    assert is_eligible_for_badge(10, None) is False


def test_category_that_disallows_badges():
    assert is_eligible_for_badge(10, _config(allows=False)) is False


def test_minimum_certifications():
    config = _config(minimum=2)
    assert is_eligible_for_badge(1, config) is False
    assert is_eligible_for_badge(2, config) is True
    assert is_eligible_for_badge(3, config) is True


def test_zero_minimum_grants_badge_without_certifications():
    assert is_eligible_for_badge(0, _config(minimum=0)) is True


def test_premium_gate():
    config = _config(requires_premium=True)
    assert evaluate_badge(2, config, is_premium=True) is True
    assert evaluate_badge(2, config, is_premium=False) is False


def test_badge_without_premium_gate():
    config = _config(requires_premium=False)
    assert evaluate_badge(2, config, is_premium=False) is True


def test_seller_without_category_has_no_badge():
    assert evaluate_badge(5, _config(), is_premium=True, has_category=False) is False
