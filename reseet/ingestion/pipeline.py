"""
Ingestion pipeline: raw extraction output -> draft receipt ready for the
user to confirm.

Execution pipeline for an uploaded file:
1. Routing: choose image, HTML or .eml handling from the MIME type / filename.
2. Extraction: await the external collaborator (cancellable).
3. Hygiene: default and coerce every untrusted field.
4. Scoring: compute the interactive write-off score.
"""

import asyncio
import email
import re
from datetime import date
from decimal import Decimal
from email import policy
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

# Absolute imports for industrial stability
from reseet.errors import ExtractionCancelled, ExtractionFailed
from reseet.ingestion.extractor import ReceiptExtractor, to_data_url
from reseet.models import DraftReceipt, LineItem
from reseet.scoring import score_receipt
from reseet.utils.logging_config import logger
from reseet.utils.normalization import (
    clean_text,
    parse_amount,
    parse_optional_amount,
    parse_quantity,
    parse_receipt_date,
)

UNKNOWN_MERCHANT = "Unknown Store"
DEFAULT_CATEGORY = "General"
SCANNED_ITEM = "Scanned item"
DEFAULT_ITEM = "Item"

_HTML_BLOCK = re.compile(r'<html[^>]*>[\s\S]*</html>', re.IGNORECASE)


def _non_negative(value: Any, field: str) -> Decimal:
    amount = parse_amount(value)
    if amount < 0:
        logger.warning(f"Negative {field} '{value}' in extraction output; using 0")
        return Decimal('0')
    return amount


def _optional_non_negative(value: Any):
    amount = parse_optional_amount(value)
    if amount is not None and amount < 0:
        return None
    return amount


def extract_html_part(raw_message: bytes) -> Optional[str]:
    """Returns the HTML body of a raw RFC 822 message, if it has one."""
    message = email.message_from_bytes(raw_message, policy=policy.default)
    for part in message.walk():
        if part.get_content_type() == 'text/html':
            return part.get_content()
    # Pasted or malformed messages may still embed a bare HTML document
    match = _HTML_BLOCK.search(raw_message.decode('utf-8', errors='replace'))
    return match.group(0) if match else None


class IngestionPipeline:
    """
    Builds draft receipts from extraction output.

    Design Philosophy:
    - Every field from the extractor is untrusted and optional.
    - A failed extraction is an error, never a zeroed-out draft.
    - Cancellation guarantees no draft is produced.
    """

    def __init__(self, extractor: Optional[ReceiptExtractor] = None,
                 today: Callable[[], date] = date.today):
        """
        Args:
            extractor: Extraction collaborator; required for scan_file only.
            today: Clock used when a receipt has no date.
        """
        self.extractor = extractor
        self.today = today

    def build_draft(self, raw: Any, image_url: Optional[str] = None) -> DraftReceipt:
        """
        Turns raw extraction output into a fully populated draft.

        Raises:
            ExtractionFailed: if `raw` is not a JSON object.
        """
        if not isinstance(raw, Mapping):
            raise ExtractionFailed(f"Extraction output is not an object: {type(raw).__name__}")

        merchant = clean_text(raw.get('merchant')) or UNKNOWN_MERCHANT
        category = clean_text(raw.get('category')) or DEFAULT_CATEGORY
        amount = _non_negative(raw.get('total'), 'total')
        items = self._build_items(raw.get('items'), amount)

        payment_method = clean_text(raw.get('paymentMethod'))
        if payment_method and payment_method.lower() == 'unknown':
            payment_method = None

        draft = DraftReceipt(
            merchant=merchant,
            date=self._resolve_date(raw.get('date')),
            category=category,
            amount=amount,
            score=score_receipt(category, merchant, amount, items),
            items=items,
            subtotal=_non_negative(raw.get('subtotal'), 'subtotal'),
            tax=_non_negative(raw.get('tax'), 'tax'),
            discount=_optional_non_negative(raw.get('discount')),
            tip=_optional_non_negative(raw.get('tip')),
            payment_method=payment_method,
            image_url=image_url,
        )
        logger.info(f"Built draft receipt from {draft.merchant} on {draft.display_date} (score {draft.score})")
        return draft

    def _build_items(self, raw_items: Any, amount: Decimal) -> List[LineItem]:
        items = []
        if isinstance(raw_items, list):
            for raw_item in raw_items:
                if not isinstance(raw_item, Mapping):
                    continue
                items.append(LineItem(
                    description=clean_text(raw_item.get('description')) or DEFAULT_ITEM,
                    quantity=parse_quantity(raw_item.get('quantity')),
                    price=_non_negative(raw_item.get('price'), 'item price'),
                ))
        if not items:
            items = [LineItem(description=SCANNED_ITEM, price=amount)]
        return items

    def _resolve_date(self, raw_date: Any) -> date:
        parsed = parse_receipt_date(raw_date)
        if parsed is not None:
            return parsed
        if clean_text(raw_date):
            logger.warning(f"Unparseable receipt date '{raw_date}'; using today")
        return self.today()

    async def scan_file(self, data: bytes, mime_type: str, filename: Optional[str] = None,
                        cancel: Optional[asyncio.Event] = None) -> DraftReceipt:
        """
        Extracts and drafts a receipt from an uploaded file.

        Args:
            data: Raw file bytes.
            mime_type: Declared MIME type of the upload.
            filename: Original filename, used to recognise .html/.eml uploads.
            cancel: Set this event to abort the scan.

        Raises:
            ExtractionFailed: unsupported type, collaborator error or timeout.
            ExtractionCancelled: `cancel` was set before a draft was produced.
        """
        if self.extractor is None:
            raise ExtractionFailed("No extraction collaborator configured")

        mime = (mime_type or '').lower()
        name = (filename or '').lower()
        image_url = None
        logger.debug(f"Scanning upload: {filename or 'UNNAMED'} ({mime or 'unknown type'})")

        if mime.startswith('image/') or mime == 'application/pdf':
            if mime.startswith('image/'):
                image_url = to_data_url(data, mime)
            extraction = self.extractor.extract_image(data, mime)
        elif mime == 'text/html' or name.endswith(('.html', '.htm')):
            extraction = self.extractor.extract_html(data.decode('utf-8', errors='replace'))
        elif mime == 'message/rfc822' or name.endswith('.eml'):
            html = extract_html_part(data)
            if html is None:
                raise ExtractionFailed("Could not find an HTML receipt in the email")
            extraction = self.extractor.extract_html(html)
        else:
            raise ExtractionFailed(f"Unsupported file type: {mime_type or filename}")

        raw = await self._await_extraction(extraction, cancel)
        if cancel is not None and cancel.is_set():
            raise ExtractionCancelled("Scan cancelled")
        return self.build_draft(raw, image_url=image_url)

    async def _await_extraction(self, extraction: Awaitable[Dict[str, Any]],
                                cancel: Optional[asyncio.Event]) -> Dict[str, Any]:
        """Awaits the collaborator, racing it against the cancel signal."""
        task = asyncio.ensure_future(extraction)
        if cancel is None:
            return await self._result(task)
        if cancel.is_set():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise ExtractionCancelled("Scan cancelled")

        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

        if task.cancelled() or cancel.is_set():
            if task.done() and not task.cancelled():
                # Mark any late failure as retrieved; the cancel wins
                task.exception()
            logger.info("Scan cancelled before extraction finished")
            raise ExtractionCancelled("Scan cancelled")
        return await self._result(task)

    async def _result(self, task: "asyncio.Future[Dict[str, Any]]") -> Dict[str, Any]:
        try:
            return await task
        except ExtractionFailed:
            raise
        except Exception as e:
            logger.error(f"Extraction collaborator failed: {e}")
            raise ExtractionFailed(f"Extraction collaborator failed: {e}") from e
