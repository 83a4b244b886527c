import pytest
from decimal import Decimal

from reseet.models import LineItem
from reseet.scoring import (
    classify_score,
    clamp_score,
    score_breakdown,
    score_ingested,
    score_label,
    score_receipt,
)
from reseet.scoring.write_off import amount_adjustment, item_adjustment, merchant_adjustment


def test_supplies_at_office_store():
    assert score_receipt("Supplies", "Staples", 90, []) == 90


def test_coffee_shop_food_receipt():
    items = [{"description": "Blueberry Muffin", "price": 3.95}]
    assert score_receipt("Food", "Starbucks Coffee", 12.45, items) == 30


def test_rideshare_travel_receipt():
    items = [LineItem(description="UberX", price=Decimal("21.50"))]
    assert score_receipt("Travel", "Uber", Decimal("24.80"), items) == 75


def test_breakdown_components():
    breakdown = score_breakdown("Food", "Starbucks Coffee", Decimal("12.45"), [])
    assert (breakdown.base, breakdown.merchant, breakdown.amount, breakdown.items) == (40, -5, -5, 0)
    assert breakdown.raw_total == 30
    assert breakdown.score == 30


def test_unknown_category_uses_default_base():
    assert score_breakdown("Gifts", "", 100, []).base == 50


def test_category_match_is_case_sensitive():
    assert score_breakdown("supplies", "", 100, []).base == 50


def test_first_merchant_group_wins():
    # "office" (+15) is checked before "coffee" (-5)
    assert merchant_adjustment("Office Coffee Supply") == 15


@pytest.mark.parametrize("amount,expected", [
    (0, 0),
    (None, 0),
    (Decimal("74.99"), -5),
    (75, 0),
    (200, 0),
    (Decimal("200.01"), 2),
    (500, 2),
    (Decimal("500.01"), 5),
])
def test_amount_adjustment_bands(amount, expected):
    assert amount_adjustment(amount) == expected


def test_business_items_take_precedence_over_personal():
    items = [{"description": "Printer Paper"}, {"description": "Candy bar"}]
    assert item_adjustment(items) == 5


def test_personal_items_lower_score():
    assert item_adjustment([LineItem(description="Soda 12pk")]) == -5


def test_score_is_clamped_high_and_low():
    high = score_receipt("Supplies", "Office Depot", 10_000, [{"description": "ink"}])
    low = score_receipt("Gifts", "Walmart Grocery", 5, [{"description": "candy"}])
    assert high == 100
    assert 0 <= low <= 100


def test_clamp_score_rounds():
    assert clamp_score(150) == 100
    assert clamp_score(-3) == 0
    assert clamp_score(Decimal("49.6")) == 50


class TestIngestedScore:
    """The coarse scorer applied to CSV and structured imports."""

    def test_neutral_baseline(self):
        assert score_ingested("Misc", "Corner Shop") == 50

    def test_high_band_with_business_vendor(self):
        assert score_ingested("Software", "GitHub") == 100

    def test_medium_band(self):
        assert score_ingested("Meals", "Local Diner") == 65

    def test_low_band(self):
        assert score_ingested("Grocery", "Farmers Market") == 30

    def test_bands_are_checked_independently(self):
        # "personal" (-20) and "phone" (+15) both match
        assert score_ingested("Personal phone", "") == 45

    def test_missing_inputs(self):
        assert score_ingested(None, None) == 50


@pytest.mark.parametrize("score,classification,label", [
    (100, "Likely business-related", "Likely"),
    (70, "Likely business-related", "Likely"),
    (69, "Possibly business-related", "Maybe"),
    (40, "Possibly business-related", "Maybe"),
    (39, "Needs review", "Unlikely"),
    (0, "Needs review", "Unlikely"),
])
def test_presentation_bands(score, classification, label):
    assert classify_score(score) == classification
    assert score_label(score) == label
