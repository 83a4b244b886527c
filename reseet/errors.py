"""
Error taxonomy for the receipt core.

Repository and pipeline operations raise these; the UI shell decides how to
present them and whether to retry. Scoring never raises.
"""

from typing import Optional


class ReseetError(Exception):
    """Base class for all receipt-core errors."""


class ExtractionFailed(ReseetError):
    """The extraction collaborator errored, timed out or returned unusable content."""


class ExtractionCancelled(ReseetError):
    """The caller cancelled an in-flight scan. No draft was produced."""


class NotFound(ReseetError):
    """A referenced receipt or category does not exist for the current user."""

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} '{entity_id}' not found")


class PersistFailed(ReseetError):
    """
    A storage mutation did not durably complete.

    The in-memory change is kept but marked unconfirmed; the caller must
    either retry or roll it back through the repository.
    """

    def __init__(self, operation: str, entity_id: Optional[str] = None):
        self.operation = operation
        self.entity_id = entity_id
        target = f" for '{entity_id}'" if entity_id else ""
        super().__init__(f"Persisting {operation}{target} failed")


class ValidationFailed(ReseetError):
    """Input rejected before it reached the repository."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)
