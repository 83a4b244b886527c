"""
Shared utilities: logging and field normalization.
"""

from .logging_config import logger, setup_logging
from .normalization import (
    parse_amount,
    parse_optional_amount,
    parse_quantity,
    parse_receipt_date,
    format_display_date,
    clean_text,
)

__all__ = [
    "logger",
    "setup_logging",
    "parse_amount",
    "parse_optional_amount",
    "parse_quantity",
    "parse_receipt_date",
    "format_display_date",
    "clean_text",
]
