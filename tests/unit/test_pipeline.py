import asyncio
import pytest
from datetime import date
from decimal import Decimal
from email.message import EmailMessage

from reseet.errors import ExtractionCancelled, ExtractionFailed
from reseet.ingestion import IngestionPipeline, ReceiptExtractor, extract_html_part

TODAY = date(2024, 6, 1)


class FakeExtractor(ReceiptExtractor):
    """Returns a canned payload and records what it was asked to read."""

    def __init__(self, payload=None, error=None, delay=0.0):
        self.payload = payload if payload is not None else {"merchant": "Staples", "total": 90}
        self.error = error
        self.delay = delay
        self.calls = []

    async def _reply(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.payload

    async def extract_image(self, data, mime_type):
        self.calls.append(("image", mime_type))
        return await self._reply()

    async def extract_html(self, html):
        self.calls.append(("html", html))
        return await self._reply()


@pytest.fixture
def pipeline():
    return IngestionPipeline(today=lambda: TODAY)


class TestBuildDraft:

    def test_missing_items_synthesizes_one_line_at_total(self, pipeline):
        draft = pipeline.build_draft({"merchant": "Staples", "total": "45.10"})
        assert len(draft.items) == 1
        assert draft.items[0].description == "Scanned item"
        assert draft.items[0].price == Decimal("45.10")

    def test_empty_item_list_is_treated_as_missing(self, pipeline):
        draft = pipeline.build_draft({"total": 12, "items": []})
        assert [i.description for i in draft.items] == ["Scanned item"]

    def test_defaults_for_empty_payload(self, pipeline):
        draft = pipeline.build_draft({})
        assert draft.merchant == "Unknown Store"
        assert draft.category == "General"
        assert draft.amount == Decimal("0")
        assert draft.date == TODAY
        assert draft.discount is None and draft.tip is None
        assert draft.payment_method is None

    def test_untrusted_fields_are_coerced(self, pipeline):
        draft = pipeline.build_draft({
            "merchant": "  Office Depot ",
            "date": "Jan 15, 2024",
            "category": "Supplies",
            "total": "$1,234.50",
            "subtotal": "abc",
            "tax": None,
            "discount": 0,
            "tip": "3.00",
            "paymentMethod": "Unknown",
            "items": [{"price": "9.99"}, "garbage", {"description": "Ink", "price": -4, "quantity": "2"}],
        })
        assert draft.merchant == "Office Depot"
        assert draft.date == date(2024, 1, 15)
        assert draft.display_date == "Jan 15, 2024"
        assert draft.amount == Decimal("1234.50")
        assert draft.subtotal == Decimal("0")
        assert draft.discount is None
        assert draft.tip == Decimal("3.00")
        assert draft.payment_method is None
        assert [(i.description, i.price, i.quantity) for i in draft.items] == [
            ("Item", Decimal("9.99"), None),
            ("Ink", Decimal("0"), 2),
        ]

    def test_score_uses_finalized_fields(self, pipeline):
        draft = pipeline.build_draft({"merchant": "Staples", "category": "Supplies", "total": 90})
        assert draft.score == 90

    def test_unparseable_date_falls_back_to_today(self, pipeline):
        assert pipeline.build_draft({"date": "sometime last week"}).date == TODAY

    def test_non_object_payload_fails(self, pipeline):
        with pytest.raises(ExtractionFailed):
            pipeline.build_draft(["not", "an", "object"])


class TestScanFile:

    @pytest.mark.asyncio
    async def test_image_keeps_data_url(self):
        extractor = FakeExtractor()
        draft = await IngestionPipeline(extractor, today=lambda: TODAY).scan_file(b"img", "image/jpeg")
        assert extractor.calls == [("image", "image/jpeg")]
        assert draft.image_url.startswith("data:image/jpeg;base64,")

    @pytest.mark.asyncio
    async def test_pdf_uses_image_extraction_without_url(self):
        extractor = FakeExtractor()
        draft = await IngestionPipeline(extractor).scan_file(b"%PDF", "application/pdf")
        assert extractor.calls == [("image", "application/pdf")]
        assert draft.image_url is None

    @pytest.mark.asyncio
    async def test_html_by_extension(self):
        extractor = FakeExtractor()
        await IngestionPipeline(extractor).scan_file(b"<html>receipt</html>", "", filename="order.HTML")
        assert extractor.calls == [("html", "<html>receipt</html>")]

    @pytest.mark.asyncio
    async def test_eml_extracts_html_part(self):
        message = EmailMessage()
        message["From"] = "orders@shop.example"
        message["Subject"] = "Your receipt"
        message.set_content("Plain text version")
        message.add_alternative("<html><body>Total $5.00</body></html>", subtype="html")

        extractor = FakeExtractor()
        await IngestionPipeline(extractor).scan_file(message.as_bytes(), "message/rfc822")

        kind, html = extractor.calls[0]
        assert kind == "html"
        assert "Total $5.00" in html

    @pytest.mark.asyncio
    async def test_eml_without_html_fails(self):
        message = EmailMessage()
        message.set_content("No markup here")
        with pytest.raises(ExtractionFailed):
            await IngestionPipeline(FakeExtractor()).scan_file(message.as_bytes(), "", filename="r.eml")

    @pytest.mark.asyncio
    async def test_unsupported_type(self):
        with pytest.raises(ExtractionFailed):
            await IngestionPipeline(FakeExtractor()).scan_file(b"a,b", "text/csv")

    @pytest.mark.asyncio
    async def test_collaborator_error_is_wrapped(self):
        extractor = FakeExtractor(error=RuntimeError("upstream 502"))
        with pytest.raises(ExtractionFailed) as exc_info:
            await IngestionPipeline(extractor).scan_file(b"img", "image/png")
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_collaborator_extraction_failed_passes_through(self):
        extractor = FakeExtractor(error=ExtractionFailed("bad json"))
        with pytest.raises(ExtractionFailed, match="bad json"):
            await IngestionPipeline(extractor).scan_file(b"img", "image/png")

    @pytest.mark.asyncio
    async def test_no_extractor_configured(self):
        with pytest.raises(ExtractionFailed):
            await IngestionPipeline().scan_file(b"img", "image/png")


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancel_before_start(self):
        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(ExtractionCancelled):
            await IngestionPipeline(FakeExtractor()).scan_file(b"img", "image/png", cancel=cancel)

    @pytest.mark.asyncio
    async def test_cancel_during_extraction(self):
        cancel = asyncio.Event()
        pipeline = IngestionPipeline(FakeExtractor(delay=10))

        scan = asyncio.ensure_future(pipeline.scan_file(b"img", "image/png", cancel=cancel))
        await asyncio.sleep(0.01)
        cancel.set()

        with pytest.raises(ExtractionCancelled):
            await asyncio.wait_for(scan, timeout=1)

    @pytest.mark.asyncio
    async def test_unset_cancel_lets_scan_finish(self):
        cancel = asyncio.Event()
        draft = await IngestionPipeline(FakeExtractor()).scan_file(b"img", "image/png", cancel=cancel)
        assert draft.merchant == "Staples"


def test_extract_html_part_falls_back_to_embedded_document():
    raw = b"Forwarded message\n\n<html><body>Paid $3.00</body></html>\n-- end"
    assert extract_html_part(raw) == "<html><body>Paid $3.00</body></html>"
