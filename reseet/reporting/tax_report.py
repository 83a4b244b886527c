"""
Tax report export.

Turns a read-only list of receipts into the documented tabular field set,
filtered by a reporting window. Rendering to a spreadsheet is left to the
caller; `to_dataframe` and `write_csv` cover the common cases.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

import pandas as pd
from dateutil.relativedelta import relativedelta

# Absolute imports for industrial stability
from reseet.errors import ValidationFailed
from reseet.models import Receipt
from reseet.scoring import classify_score
from reseet.scoring.write_off import LIKELY_THRESHOLD, POSSIBLY_THRESHOLD
from reseet.utils.logging_config import logger

REPORT_COLUMNS = [
    'Receipt ID',
    'Date',
    'Merchant/Vendor',
    'Amount',
    'Category',
    'Description',
    'Subtotal',
    'Tax',
    'Classification',
    'Write-off Likelihood',
    'Audit Notes',
]


class TimeWindow(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"
    ALL = "all"


def window_cutoff(window: Union[TimeWindow, str], custom_days: int = 30,
                  today: Optional[date] = None) -> Optional[date]:
    """
    First date included in the window, or None for an unbounded window.
    Unknown window names are treated as unbounded.
    """
    today = today or date.today()
    try:
        window = TimeWindow(str(getattr(window, 'value', window)).lower())
    except ValueError:
        logger.warning(f"Unknown report window '{window}', reporting all receipts")
        return None

    if window == TimeWindow.WEEKLY:
        return today - relativedelta(days=7)
    if window == TimeWindow.MONTHLY:
        return today - relativedelta(months=1)
    if window == TimeWindow.QUARTERLY:
        return today - relativedelta(months=3)
    if window == TimeWindow.YEARLY:
        return today - relativedelta(years=1)
    if window == TimeWindow.CUSTOM:
        if custom_days is None or custom_days < 0:
            raise ValidationFailed("Custom window needs a non-negative day count", field='custom_days')
        return today - relativedelta(days=custom_days)
    return None


def filter_by_time_window(receipts: Iterable[Receipt], window: Union[TimeWindow, str],
                          custom_days: int = 30, today: Optional[date] = None) -> List[Receipt]:
    """Receipts dated on or after the window's cutoff."""
    cutoff = window_cutoff(window, custom_days, today)
    if cutoff is None:
        return list(receipts)
    return [r for r in receipts if r.date >= cutoff]


def describe_items(receipt: Receipt) -> str:
    if not receipt.items:
        return "No items"
    return ", ".join(receipt.item_descriptions)


def report_row(receipt: Receipt) -> Dict[str, object]:
    return {
        'Receipt ID': receipt.id,
        'Date': receipt.display_date,
        'Merchant/Vendor': receipt.merchant,
        'Amount': receipt.amount,
        'Category': receipt.category,
        'Description': describe_items(receipt),
        'Subtotal': receipt.subtotal,
        'Tax': receipt.tax,
        'Classification': classify_score(receipt.score),
        'Write-off Likelihood': f"{receipt.score}%",
        'Audit Notes': "",  # left for the accountant
    }


def report_rows(receipts: Iterable[Receipt]) -> List[Dict[str, object]]:
    return [report_row(r) for r in receipts]


def report_summary(receipts: Iterable[Receipt], user_name: Optional[str] = None,
                   today: Optional[date] = None) -> Dict[str, object]:
    """Totals and classification-band counts for the summary sheet."""
    receipts = list(receipts)
    scores = [r.score for r in receipts]
    return {
        'total_receipts': len(receipts),
        'total_amount': sum((r.amount for r in receipts), Decimal('0')),
        'total_tax': sum((r.tax for r in receipts), Decimal('0')),
        'likely_business': sum(1 for s in scores if s >= LIKELY_THRESHOLD),
        'possibly_business': sum(1 for s in scores if POSSIBLY_THRESHOLD <= s < LIKELY_THRESHOLD),
        'needs_review': sum(1 for s in scores if s < POSSIBLY_THRESHOLD),
        'generated_date': (today or date.today()).isoformat(),
        'user': user_name or "N/A",
    }


def report_filename(today: Optional[date] = None, extension: str = "csv") -> str:
    return f"Tax_Report_{(today or date.today()).isoformat()}.{extension}"


def to_dataframe(rows: List[Dict[str, object]]) -> pd.DataFrame:
    """Report rows as a DataFrame with the documented column order."""
    df = pd.DataFrame(rows, columns=REPORT_COLUMNS)
    for column in ('Amount', 'Subtotal', 'Tax'):
        df[column] = df[column].map(float)
    return df


def write_csv(receipts: Iterable[Receipt], path: str,
              window: Union[TimeWindow, str] = TimeWindow.ALL, custom_days: int = 30,
              today: Optional[date] = None) -> int:
    """
    Filters, tabulates and writes the report. Returns the number of rows.
    """
    selected = filter_by_time_window(receipts, window, custom_days, today)
    df = to_dataframe(report_rows(selected))
    df.to_csv(path, index=False)
    logger.info(f"Wrote tax report with {len(df)} receipts to {path}")
    return len(df)
