"""
Write-off scoring: a heuristic 0-100 estimate of how likely a receipt is a
tax-deductible business expense.

Two scorers live here and are intentionally kept apart:

- `score_receipt` is the interactive scan-and-confirm score. It has merchant,
  amount and line-item detail to work with.
- `score_ingested` is the coarse bulk/API score applied to CSV rows and
  structured payloads, where only a category label and vendor name exist.

Their keyword sets and weights differ, so merging them would change
observable scores.
"""

from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import BaseModel

from reseet.utils.logging_config import logger

Number = Union[int, float, Decimal]

# --- Interactive scorer tables ---

CATEGORY_BASE_SCORES = {
    'Supplies': 75,
    'Travel': 70,
    'Fuel': 65,
    'Food': 40,
}
DEFAULT_BASE_SCORE = 50

# Checked in order, first matching group wins
MERCHANT_ADJUSTMENTS = [
    (15, ['office', 'depot', 'staples', 'fedex', 'ups', 'usps']),
    (10, ['airline', 'hotel', 'rental', 'uber', 'lyft']),
    (5, ['shell', 'chevron', 'exxon', 'bp ', 'gas']),
    (-10, ['grocery', 'safeway', 'walmart', 'target', 'costco']),
    (-5, ['restaurant', 'cafe', 'coffee', 'starbucks']),
]

BUSINESS_ITEM_TERMS = ['paper', 'ink', 'folder', 'pen', 'notebook', 'envelope']
PERSONAL_ITEM_TERMS = ['candy', 'soda', 'chips', 'personal']

# --- Bulk ingestion scorer tables ---

INGESTED_BASE_SCORE = 50

HIGH_DEDUCTIBLE_CATEGORIES = [
    'software', 'office supplies', 'advertising', 'professional services',
    'subscriptions', 'business travel', 'equipment',
]
MEDIUM_DEDUCTIBLE_CATEGORIES = [
    'meals', 'entertainment', 'transport', 'utilities', 'internet', 'phone',
]
LOW_DEDUCTIBLE_CATEGORIES = ['personal', 'grocery', 'clothing', 'health']

BUSINESS_VENDORS = [
    'stripe', 'paypal', 'square', 'shopify',
    'aws', 'azure', 'google cloud', 'digitalocean',
    'github', 'adobe', 'microsoft', 'apple developer',
    'uber', 'lyft', 'delta', 'united', 'american airlines',
    'hilton', 'marriott', 'hyatt', 'airbnb',
    'fedex', 'ups', 'usps',
    'staples', 'office depot',
]

# (bonus, keywords); each list is checked independently
INGESTED_CATEGORY_ADJUSTMENTS = [
    (30, HIGH_DEDUCTIBLE_CATEGORIES),
    (15, MEDIUM_DEDUCTIBLE_CATEGORIES),
    (-20, LOW_DEDUCTIBLE_CATEGORIES),
]
BUSINESS_VENDOR_BONUS = 20

# --- Presentation bands ---

LIKELY_THRESHOLD = 70
POSSIBLY_THRESHOLD = 40


class ScoreBreakdown(BaseModel):
    """The additive components behind an interactive score."""
    base: int
    merchant: int
    amount: int
    items: int

    @property
    def raw_total(self) -> int:
        return self.base + self.merchant + self.amount + self.items

    @property
    def score(self) -> int:
        return clamp_score(self.raw_total)


def clamp_score(value: Number) -> int:
    """Clamps to [0, 100] and rounds to the nearest integer."""
    return int(round(max(0, min(100, value))))


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def _item_description(item: Any) -> str:
    if isinstance(item, Mapping):
        return str(item.get('description') or '')
    return str(getattr(item, 'description', '') or '')


def base_score(category: Optional[str]) -> int:
    """Base score by category. Case-sensitive; unknown categories get 50."""
    return CATEGORY_BASE_SCORES.get(category or '', DEFAULT_BASE_SCORE)


def merchant_adjustment(merchant: Optional[str]) -> int:
    merchant_lower = (merchant or '').lower()
    for bonus, keywords in MERCHANT_ADJUSTMENTS:
        if _contains_any(merchant_lower, keywords):
            return bonus
    return 0


def amount_adjustment(amount: Optional[Number]) -> int:
    # A zero or missing amount carries no signal
    if not amount:
        return 0
    if amount < 75:
        return -5
    if amount > 500:
        return 5
    if amount > 200:
        return 2
    return 0


def item_adjustment(items: Optional[Iterable[Any]]) -> int:
    descriptions = ' '.join(_item_description(i) for i in (items or [])).lower()
    if not descriptions.strip():
        return 0
    if _contains_any(descriptions, BUSINESS_ITEM_TERMS):
        return 5
    if _contains_any(descriptions, PERSONAL_ITEM_TERMS):
        return -5
    return 0


def score_breakdown(category: Optional[str], merchant: Optional[str],
                    amount: Optional[Number], items: Optional[Iterable[Any]]) -> ScoreBreakdown:
    """Computes each additive component of the interactive score."""
    return ScoreBreakdown(
        base=base_score(category),
        merchant=merchant_adjustment(merchant),
        amount=amount_adjustment(amount),
        items=item_adjustment(items),
    )


def score_receipt(category: Optional[str], merchant: Optional[str],
                  amount: Optional[Number], items: Optional[Iterable[Any]]) -> int:
    """
    Interactive write-off score for a scanned receipt.

    Args:
        category: Semantic tag such as 'Supplies' or 'Food' (case-sensitive).
        merchant: Merchant name; matched by lower-cased substring.
        amount: Receipt total.
        items: Line items (models or mappings with a 'description').

    Returns:
        int: Score in [0, 100]. Never raises.
    """
    breakdown = score_breakdown(category, merchant, amount, items)
    logger.debug(
        f"Score calculation for '{merchant}' ({category}, {amount}): "
        f"base={breakdown.base} merchant={breakdown.merchant} "
        f"amount={breakdown.amount} items={breakdown.items} -> {breakdown.score}"
    )
    return breakdown.score


def score_ingested(category: Optional[str], vendor: Optional[str]) -> int:
    """
    Coarse write-off score for bulk-ingested receipts.

    Starts at 50; each category band that matches contributes once, and a
    known business vendor adds a flat bonus.
    """
    score = INGESTED_BASE_SCORE
    category_lower = (category or '').lower()
    vendor_lower = (vendor or '').lower()

    for bonus, keywords in INGESTED_CATEGORY_ADJUSTMENTS:
        if _contains_any(category_lower, keywords):
            score += bonus

    if _contains_any(vendor_lower, BUSINESS_VENDORS):
        score += BUSINESS_VENDOR_BONUS

    return clamp_score(score)


def classify_score(score: int) -> str:
    """Report classification used in the tax export."""
    if score >= LIKELY_THRESHOLD:
        return 'Likely business-related'
    if score >= POSSIBLY_THRESHOLD:
        return 'Possibly business-related'
    return 'Needs review'


def score_label(score: int) -> str:
    """Short label shown next to a score bar."""
    if score >= LIKELY_THRESHOLD:
        return 'Likely'
    if score >= POSSIBLY_THRESHOLD:
        return 'Maybe'
    return 'Unlikely'
