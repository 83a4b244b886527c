"""
Ingestion: extraction collaborator boundary, draft building and bulk parsing.
"""

from .extractor import ReceiptExtractor, OpenRouterExtractor, parse_model_json, to_data_url
from .pipeline import IngestionPipeline, extract_html_part
from .structured import (
    CsvIngestResult,
    ingest_csv,
    parse_csv_row,
    parse_email_receipt,
    parse_structured_receipt,
)

__all__ = [
    "ReceiptExtractor",
    "OpenRouterExtractor",
    "parse_model_json",
    "to_data_url",
    "IngestionPipeline",
    "extract_html_part",
    "CsvIngestResult",
    "ingest_csv",
    "parse_csv_row",
    "parse_email_receipt",
    "parse_structured_receipt",
]
