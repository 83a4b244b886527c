"""
Wiring for a signed-in user's session: settings, backend, repository,
assignment service and ingestion pipeline built together.
"""

import asyncio
from typing import List, Mapping, Optional, Tuple

# Absolute imports for industrial stability
from reseet.config import Settings, load_settings
from reseet.ingestion import IngestionPipeline, OpenRouterExtractor, ReceiptExtractor, ingest_csv
from reseet.models import DraftReceipt, Receipt
from reseet.organizing import CategoryAssignmentService, TriageSession
from reseet.organizing.triage import Point
from reseet.storage import PersistenceBackend, ReceiptRepository, SQLiteBackend
from reseet.utils.logging_config import logger


class Workspace:
    """One user's receipts, categories and the services that act on them."""

    def __init__(self, repository: ReceiptRepository, assignments: CategoryAssignmentService,
                 pipeline: IngestionPipeline, settings: Settings):
        self.repository = repository
        self.assignments = assignments
        self.pipeline = pipeline
        self.settings = settings

    @classmethod
    async def open(cls, user_id: str, settings: Optional[Settings] = None,
                   backend: Optional[PersistenceBackend] = None,
                   extractor: Optional[ReceiptExtractor] = None) -> "Workspace":
        """
        Loads the user's working set. The backend defaults to SQLite at
        `settings.db_path`; the extractor is only built when first needed.
        """
        settings = settings or load_settings()
        backend = backend or SQLiteBackend(settings.db_path)
        repository = await ReceiptRepository.open(backend, user_id)
        assignments = CategoryAssignmentService(repository, undo_window=settings.undo_window_seconds)
        pipeline = IngestionPipeline(extractor=extractor)
        logger.info(f"Workspace ready for user {user_id}")
        return cls(repository, assignments, pipeline, settings)

    def _ensure_extractor(self) -> None:
        if self.pipeline.extractor is None:
            self.pipeline.extractor = OpenRouterExtractor(settings=self.settings)

    async def scan(self, data: bytes, mime_type: str, filename: Optional[str] = None,
                   cancel: Optional[asyncio.Event] = None) -> DraftReceipt:
        """Extracts a draft for the user to review. Nothing is stored."""
        self._ensure_extractor()
        return await self.pipeline.scan_file(data, mime_type, filename=filename, cancel=cancel)

    async def confirm(self, draft: DraftReceipt) -> Receipt:
        """Stores a reviewed draft as a new unsorted receipt."""
        return await self.repository.create_receipt(draft)

    async def import_csv(self, text: str) -> Tuple[List[Receipt], List[Tuple[int, str]]]:
        """
        Bulk-imports a CSV export. Valid rows become unsorted receipts;
        rejected rows are returned with their line number and reason.
        """
        result = ingest_csv(text)
        stored = []
        for ingested in result.receipts:
            stored.append(await self.repository.create_receipt(ingested.to_draft()))
        logger.info(f"Imported {len(stored)} receipts, rejected {len(result.rejected)} rows")
        return stored, result.rejected

    def start_triage(self, anchors: Mapping[str, Point]) -> TriageSession:
        """Opens swipe triage over the receipts unsorted right now."""
        queue = [r.id for r in self.repository.unsorted_receipts()]
        return TriageSession(
            self.assignments, queue, anchors,
            activation_radius=self.settings.activation_radius,
        )
