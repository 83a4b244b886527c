"""
Models for bulk / API ingestion (CSV rows, structured payloads, forwarded
emails and uploads) as opposed to the interactive scan-and-confirm flow.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from reseet.models.receipt import DraftReceipt, LineItem


class SourceType(str, Enum):
    """Where an ingested receipt came from."""
    PHOTO = "photo"
    EMAIL = "email"
    FILE = "file"
    CSV = "csv"
    MOCK = "mock"


class ReceiptStatus(str, Enum):
    PARSED = "parsed"
    NEEDS_REVIEW = "needs_review"


class IngestedItem(BaseModel):
    description: str
    amount: Decimal = Field(default=Decimal('0'), ge=0)
    quantity: Optional[int] = None


class IngestedReceipt(BaseModel):
    """
    A receipt produced by bulk ingestion, scored with the coarse
    category/vendor scorer rather than the interactive one.
    """
    source_type: SourceType
    raw_source_id: Optional[str] = None
    vendor: str
    date: date
    total: Decimal = Field(ge=0)
    tax: Optional[Decimal] = Field(default=None, ge=0)
    currency: str = "USD"
    category: str = "Uncategorized"
    status: ReceiptStatus = ReceiptStatus.PARSED
    items: List[IngestedItem] = Field(default_factory=list)
    notes: Optional[str] = None
    write_off_score: int = Field(default=50, ge=0, le=100)

    def to_draft(self) -> DraftReceipt:
        """
        Converts to a draft for the repository, keeping the coarse score.

        Bulk rows carry no subtotal, so it is derived as total minus tax.
        A row without items gets a single line priced at the total. Notes and
        the review flag carry over; currency and source type do not.
        """
        tax = self.tax or Decimal('0')
        items = [
            LineItem(description=i.description, price=i.amount, quantity=i.quantity)
            for i in self.items
        ] or [LineItem(description="Item", price=self.total)]
        return DraftReceipt(
            merchant=self.vendor,
            date=self.date,
            category=self.category,
            amount=self.total,
            score=self.write_off_score,
            items=items,
            subtotal=max(self.total - tax, Decimal('0')),
            tax=tax,
            notes=self.notes,
            needs_review=self.status == ReceiptStatus.NEEDS_REVIEW,
        )
