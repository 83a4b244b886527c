import pytest
from datetime import date
from decimal import Decimal

from reseet.errors import ValidationFailed
from reseet.ingestion import (
    ingest_csv,
    parse_csv_row,
    parse_email_receipt,
    parse_structured_receipt,
)
from reseet.models import ReceiptStatus, SourceType

CSV_EXPORT = """Vendor,Date,Total,Tax,Currency,Category
GitHub,2024-02-01,21.00,1.00,USD,Software
,2024-02-02,5.00,,USD,Meals
Farmers Market,2024-02-03,$18.40,,,Grocery
Staples,TBD,12.00,,USD,Office Supplies
Delta,2024-02-05,,,USD,Business Travel
"""


def test_csv_row_is_scored_with_coarse_scorer():
    receipt = parse_csv_row({"Vendor": "GitHub", "Date": "2024-02-01", "Total": "21.00",
                             "Tax": "1.00", "Category": "Software"})
    assert receipt.source_type == SourceType.CSV
    assert receipt.vendor == "GitHub"
    assert receipt.total == Decimal("21.00")
    assert receipt.write_off_score == 100
    assert receipt.raw_source_id.startswith("csv_")


@pytest.mark.parametrize("missing", ["vendor", "date", "total"])
def test_missing_mandatory_field(missing):
    row = {"vendor": "GitHub", "date": "2024-02-01", "total": "21.00"}
    row[missing] = ""
    with pytest.raises(ValidationFailed) as exc_info:
        parse_csv_row(row)
    assert exc_info.value.field == missing


def test_negative_total_rejected():
    with pytest.raises(ValidationFailed):
        parse_structured_receipt({"vendor": "Shop", "date": "2024-01-01", "total": -3})


def test_ingest_csv_collects_rejections_with_line_numbers():
    result = ingest_csv(CSV_EXPORT)

    assert [r.vendor for r in result.receipts] == ["GitHub", "Farmers Market"]
    assert [line for line, _ in result.rejected] == [3, 5, 6]
    market = result.receipts[1]
    assert market.total == Decimal("18.40")
    assert market.currency == "USD"
    assert market.write_off_score == 30


def test_structured_payload_items():
    receipt = parse_structured_receipt({
        "vendor": "Staples",
        "date": "Jan 15, 2024",
        "total": 30,
        "category": "Office Supplies",
        "items": [
            {"description": "Printer paper", "amount": "20.00", "quantity": 2},
            {"description": "", "amount": 1},
            {"description": "Pens", "amount": "10.00"},
        ],
    })
    assert receipt.date == date(2024, 1, 15)
    assert [(i.description, i.amount, i.quantity) for i in receipt.items] == [
        ("Printer paper", Decimal("20.00"), 2),
        ("Pens", Decimal("10.00"), None),
    ]
    assert receipt.category == "Office Supplies"
    assert receipt.write_off_score == 100


def test_missing_category_defaults():
    receipt = parse_structured_receipt({"vendor": "Corner Shop", "date": "2024-01-01", "total": 4})
    assert receipt.category == "Uncategorized"
    assert receipt.write_off_score == 50


def test_email_receipt_needs_review():
    receipt = parse_email_receipt("Amazon <auto-confirm@amazon.com>", subject="Your order",
                                  today=lambda: date(2024, 3, 3))
    assert receipt.vendor == "Amazon"
    assert receipt.status == ReceiptStatus.NEEDS_REVIEW
    assert receipt.total == Decimal("0")
    assert receipt.date == date(2024, 3, 3)
    assert receipt.notes.endswith(": Your order")


def test_email_receipt_without_domain():
    receipt = parse_email_receipt("someone", received="2024-05-05")
    assert receipt.vendor == "Unknown Vendor"
    assert receipt.date == date(2024, 5, 5)
