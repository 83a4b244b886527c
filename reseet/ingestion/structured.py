"""
Bulk / API ingestion of already-structured receipt data.

CSV exports, structured payloads and forwarded emails skip the vision model
and are scored with the coarse category/vendor scorer.
"""

import csv
import io
import re
import uuid
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field

# Absolute imports for industrial stability
from reseet.errors import ValidationFailed
from reseet.models import IngestedItem, IngestedReceipt, ReceiptStatus, SourceType
from reseet.scoring import score_ingested
from reseet.utils.logging_config import logger
from reseet.utils.normalization import (
    clean_text,
    parse_amount,
    parse_quantity,
    parse_receipt_date,
)

DEFAULT_CURRENCY = "USD"
UNCATEGORIZED = "Uncategorized"

_SENDER_DOMAIN = re.compile(r'@([^.>\s]+)')


class CsvIngestResult(BaseModel):
    """Outcome of ingesting a CSV export: accepted receipts and rejected lines."""
    receipts: List[IngestedReceipt] = Field(default_factory=list)
    rejected: List[Tuple[int, str]] = Field(default_factory=list)


def _source_id(source_type: SourceType) -> str:
    return f"{source_type.value}_{uuid.uuid4().hex[:12]}"


def _require(row: Mapping[str, Any], field: str) -> Any:
    value = row.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationFailed(f"Missing mandatory field '{field}'", field=field)
    return value


def _parse_items(raw_items: Any) -> List[IngestedItem]:
    items = []
    for raw_item in raw_items or []:
        if not isinstance(raw_item, Mapping):
            continue
        description = clean_text(raw_item.get('description'))
        if not description:
            continue
        amount = parse_amount(raw_item.get('amount'))
        items.append(IngestedItem(
            description=description,
            amount=max(amount, 0),
            quantity=parse_quantity(raw_item.get('quantity')),
        ))
    return items


def _build(source_type: SourceType, data: Mapping[str, Any],
           status: ReceiptStatus = ReceiptStatus.PARSED) -> IngestedReceipt:
    """Validates the mandatory fields and assembles a scored receipt."""
    vendor = clean_text(_require(data, 'vendor'))
    raw_date = _require(data, 'date')
    receipt_date = parse_receipt_date(raw_date)
    if receipt_date is None:
        raise ValidationFailed(f"Unparseable date '{raw_date}'", field='date')

    raw_total = _require(data, 'total')
    total = parse_amount(raw_total, default=None)
    if total is None or total < 0:
        raise ValidationFailed(f"Invalid total '{raw_total}'", field='total')

    tax = parse_amount(data.get('tax'), default=None)
    if tax is not None and tax < 0:
        raise ValidationFailed(f"Invalid tax '{data.get('tax')}'", field='tax')

    category = clean_text(data.get('category')) or UNCATEGORIZED
    return IngestedReceipt(
        source_type=source_type,
        raw_source_id=_source_id(source_type),
        vendor=vendor,
        date=receipt_date,
        total=total,
        tax=tax,
        currency=clean_text(data.get('currency')) or DEFAULT_CURRENCY,
        category=category,
        status=status,
        items=_parse_items(data.get('items')),
        notes=clean_text(data.get('notes')),
        write_off_score=score_ingested(category, vendor),
    )


def parse_csv_row(row: Mapping[str, Any]) -> IngestedReceipt:
    """
    Parses one CSV row. Expected columns: vendor, date, total, tax,
    currency, category.

    Raises:
        ValidationFailed: vendor, date or total missing or malformed.
    """
    normalized = {str(k).strip().lower(): v for k, v in row.items() if k is not None}
    return _build(SourceType.CSV, normalized)


def parse_structured_receipt(data: Mapping[str, Any],
                             source_type: SourceType = SourceType.MOCK) -> IngestedReceipt:
    """
    Parses a structured payload (API / manual entry). Items use
    {description, amount, quantity}.
    """
    return _build(source_type, data)


def parse_email_receipt(sender: str, subject: str = "",
                        received: Optional[str] = None,
                        today: Callable[[], date] = date.today) -> IngestedReceipt:
    """
    Registers a forwarded email receipt for review.

    Only the vendor can be inferred (from the sender's domain); the totals
    need a human or an extraction pass, so the result is flagged needs_review.
    """
    match = _SENDER_DOMAIN.search(sender or "")
    vendor = match.group(1).capitalize() if match else "Unknown Vendor"
    receipt_date = parse_receipt_date(received) if received else None
    if receipt_date is None:
        receipt_date = today()
    data: Dict[str, Any] = {
        'vendor': vendor,
        'date': receipt_date,
        'total': 0,
        'notes': f"Email receipt from {sender}" + (f": {subject}" if subject else ""),
    }
    return _build(SourceType.EMAIL, data, status=ReceiptStatus.NEEDS_REVIEW)


def ingest_csv(text: str) -> CsvIngestResult:
    """
    Ingests a whole CSV export. Invalid rows are collected with their line
    numbers rather than aborting the batch.
    """
    result = CsvIngestResult()
    reader = csv.DictReader(io.StringIO(text))
    for line_number, row in enumerate(reader, start=2):
        try:
            result.receipts.append(parse_csv_row(row))
        except ValidationFailed as e:
            logger.warning(f"Rejected CSV line {line_number}: {e}")
            result.rejected.append((line_number, str(e)))
    logger.info(f"Ingested {len(result.receipts)} CSV rows ({len(result.rejected)} rejected)")
    return result
