"""
Data models for receipts.

This module defines the receipt structures shared by ingestion, storage and
organizing, ensuring type safety and validation via Pydantic.
"""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# Absolute imports for industrial stability
from reseet.utils.logging_config import logger
from reseet.utils.normalization import format_display_date, parse_quantity

# Tolerated gap between the grand total and its parts before we log it
TOTAL_DRIFT_TOLERANCE = Decimal('1.00')


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class CamelModel(BaseModel):
    """Snake-case fields in Python, camelCase aliases for the UI shell."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LineItem(CamelModel):
    """A single line on a receipt. List order is display order."""
    description: str
    quantity: Optional[int] = None
    price: Decimal = Field(default=Decimal('0'), ge=0)

    @field_validator('quantity', mode='before')
    @classmethod
    def coerce_quantity(cls, v):
        """Non-positive or non-numeric quantities are treated as absent."""
        return parse_quantity(v)


class DraftReceipt(CamelModel):
    """
    A receipt-shaped value produced by ingestion, not yet confirmed or persisted.
    """
    merchant: str = Field(min_length=1)
    date: date
    category: str = "General"
    amount: Decimal = Field(default=Decimal('0'), ge=0)
    score: int = Field(default=0, ge=0, le=100)
    items: List[LineItem] = Field(default_factory=list)
    subtotal: Decimal = Field(default=Decimal('0'), ge=0)
    tax: Decimal = Field(default=Decimal('0'), ge=0)
    discount: Optional[Decimal] = Field(default=None, ge=0)
    tip: Optional[Decimal] = Field(default=None, ge=0)
    payment_method: Optional[str] = None
    image_url: Optional[str] = None
    notes: Optional[str] = None
    # Set when bulk ingestion could not read the receipt fully
    needs_review: bool = False

    @field_validator('merchant')
    @classmethod
    def strip_merchant(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Merchant must not be blank')
        return v

    @model_validator(mode='after')
    def check_total_consistency(self):
        """
        Cross-references the grand total with its component parts.

        Receipts may legitimately drift (unlisted fees, rounding), so a
        mismatch is logged rather than rejected.
        """
        if self.subtotal == 0 and self.tax == 0:
            return self
        calculated = self.subtotal + self.tax + (self.tip or 0) - (self.discount or 0)
        if abs(self.amount - calculated) > TOTAL_DRIFT_TOLERANCE:
            logger.warning(
                f"Financial mismatch detected in receipt: {self.merchant}. "
                f"Found {self.amount}, Expected {calculated}"
            )
        return self

    @property
    def display_date(self) -> str:
        """The date in 'Mon D, YYYY' form."""
        return format_display_date(self.date)

    @property
    def item_descriptions(self) -> List[str]:
        return [item.description for item in self.items]


class Receipt(DraftReceipt):
    """
    A confirmed receipt owned by the signed-in user.

    `folder_id` is the only organizational field: None means unsorted.
    """
    id: str = Field(default_factory=new_id, frozen=True)
    folder_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_unsorted(self) -> bool:
        return self.folder_id is None

    @classmethod
    def from_draft(cls, draft: DraftReceipt, **overrides) -> "Receipt":
        """Promotes a confirmed draft, assigning a fresh id and timestamps."""
        return cls(**draft.model_dump(), **overrides)
