"""
Transform layer between domain models and storage rows.

Rows are snake_cased, partitioned by `user_id`, store money as strings (to
keep Decimal precision), dates as ISO strings and line items as a list of
plain dicts. `*_to_row` followed by `*_from_row` is lossless.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from reseet.models import Category, LineItem, Receipt
from reseet.utils.normalization import parse_amount, parse_receipt_date

RECEIPT_COLUMNS = (
    'id', 'user_id', 'merchant', 'date', 'category', 'amount', 'score', 'items',
    'subtotal', 'tax', 'discount', 'tip', 'payment_method', 'image_url',
    'notes', 'needs_review', 'folder_id', 'created_at', 'updated_at',
)
CATEGORY_COLUMNS = ('id', 'user_id', 'label', 'color', 'created_at', 'updated_at')


def _money(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def _timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def item_to_row(item: LineItem) -> Dict[str, Any]:
    return {
        'description': item.description,
        'quantity': item.quantity,
        'price': str(item.price),
    }


def receipt_to_row(receipt: Receipt, user_id: str) -> Dict[str, Any]:
    return {
        'id': receipt.id,
        'user_id': user_id,
        'merchant': receipt.merchant,
        'date': receipt.date.isoformat(),
        'category': receipt.category,
        'amount': str(receipt.amount),
        'score': receipt.score,
        'items': [item_to_row(item) for item in receipt.items],
        'subtotal': str(receipt.subtotal),
        'tax': str(receipt.tax),
        'discount': _money(receipt.discount),
        'tip': _money(receipt.tip),
        'payment_method': receipt.payment_method,
        'image_url': receipt.image_url,
        'notes': receipt.notes,
        'needs_review': receipt.needs_review,
        'folder_id': receipt.folder_id,
        'created_at': receipt.created_at.isoformat(),
        'updated_at': receipt.updated_at.isoformat(),
    }


def receipt_from_row(row: Dict[str, Any]) -> Receipt:
    """
    Rebuilds a Receipt from a storage row. Older rows may hold display-style
    dates ('Jan 5, 2024') or numeric money columns; both are accepted.
    """
    return Receipt(
        id=str(row['id']),
        merchant=row['merchant'],
        date=parse_receipt_date(row['date']),
        category=row.get('category') or 'General',
        amount=parse_amount(row.get('amount')),
        score=int(row.get('score') or 0),
        items=[
            LineItem(
                description=item.get('description') or 'Item',
                quantity=item.get('quantity'),
                price=parse_amount(item.get('price')),
            )
            for item in (row.get('items') or [])
        ],
        subtotal=parse_amount(row.get('subtotal')),
        tax=parse_amount(row.get('tax')),
        discount=parse_amount(row.get('discount'), default=None),
        tip=parse_amount(row.get('tip'), default=None),
        payment_method=row.get('payment_method') or None,
        image_url=row.get('image_url') or None,
        notes=row.get('notes') or None,
        needs_review=bool(row.get('needs_review')),
        folder_id=None if row.get('folder_id') is None else str(row['folder_id']),
        created_at=_timestamp(row['created_at']),
        updated_at=_timestamp(row['updated_at']),
    )


def category_to_row(category: Category, user_id: str) -> Dict[str, Any]:
    return {
        'id': category.id,
        'user_id': user_id,
        'label': category.label,
        'color': category.color,
        'created_at': category.created_at.isoformat(),
        'updated_at': category.updated_at.isoformat(),
    }


def category_from_row(row: Dict[str, Any]) -> Category:
    return Category(
        id=str(row['id']),
        label=row['label'],
        color=row['color'],
        created_at=_timestamp(row['created_at']),
        updated_at=_timestamp(row['updated_at']),
    )
