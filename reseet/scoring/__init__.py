"""
Write-off scoring engine.
"""

from .write_off import (
    ScoreBreakdown,
    score_receipt,
    score_breakdown,
    score_ingested,
    classify_score,
    score_label,
    clamp_score,
)

__all__ = [
    "ScoreBreakdown",
    "score_receipt",
    "score_breakdown",
    "score_ingested",
    "classify_score",
    "score_label",
    "clamp_score",
]
