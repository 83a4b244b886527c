"""
Organizing: category assignment and the swipe triage engine.
"""

from .assignment import CategoryAssignmentService, CategoryDeletion, PendingUndo
from .triage import TriageSession, TriageState

__all__ = [
    "CategoryAssignmentService",
    "CategoryDeletion",
    "PendingUndo",
    "TriageSession",
    "TriageState",
]
