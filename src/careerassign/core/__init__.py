"""Allocation core: scoring, qualification and admission coordination."""

from __future__ import annotations

# NOTE: keep imports explicit for export clarity.
from .admission import (
    AdmissionConfig,
    AdmissionCoordinator,
    AdmissionPlan,
    Promotion,
    UnitOfWork,
)
from .jobs import JobMatch, JobMatcher
from .qualification import QualificationChecker, QualificationResult
from .scoring import MATCH_THRESHOLD, ScoreBreakdown, ScoreEngine, ScoringConfig

__all__ = [
    "AdmissionConfig",
    "AdmissionCoordinator",
    "AdmissionPlan",
    "Promotion",
    "UnitOfWork",
    "JobMatch",
    "JobMatcher",
    "QualificationChecker",
    "QualificationResult",
    "MATCH_THRESHOLD",
    "ScoreBreakdown",
    "ScoreEngine",
    "ScoringConfig",
]
