"""Weighted candidate/job compatibility scoring."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field

from ..schemas import CandidateProfile, JobRequirements, normalize_names

DEFAULT_WEIGHTS: dict[str, float] = {
    "gpa": 0.40,
    "experience": 0.20,
    "certificates": 0.20,
    "skills": 0.20,
}

MATCH_THRESHOLD = 0.7


@dataclass
class ScoringConfig:
    """Policy constants for the match score."""

    weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    certificate_cap: int = 3
    gpa_floor: float = 0.1
    experience_floor: float = 1.0
    match_threshold: float = MATCH_THRESHOLD

    def __post_init__(self) -> None:
        unknown = set(self.weights) - set(DEFAULT_WEIGHTS)
        if unknown:
            raise ValueError(f"Unknown score weights: {sorted(unknown)}")
        if any(weight < 0 for weight in self.weights.values()):
            raise ValueError("Score weights must be non-negative")
        if not math.isclose(sum(self.weights.values()), 1.0, abs_tol=1e-6):
            raise ValueError("Score weights must sum to 1.0")
        if self.certificate_cap < 1:
            raise ValueError("certificate_cap must be at least 1")
        if self.gpa_floor <= 0 or self.experience_floor <= 0:
            raise ValueError("Threshold floors must be positive")


@dataclass(slots=True)
class ScoreBreakdown:
    """Clamped sub-scores and their weighted total."""

    gpa: float
    experience: float
    certificates: float
    skills: float
    total: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


class ScoreEngine:
    """Compute a [0, 1] match score between a profile and job requirements.

    Each sub-score is clamped to [0, 1] before weighting so that no single
    attribute can make up for a missing one. Missing inputs fall back to
    neutral values; scoring never raises.
    """

    def __init__(self, *, config: ScoringConfig | None = None) -> None:
        self._config = config or ScoringConfig()

    @property
    def match_threshold(self) -> float:
        return self._config.match_threshold

    def score(
        self,
        profile: CandidateProfile | None,
        requirements: JobRequirements | None,
    ) -> float:
        return self.breakdown(profile, requirements).total

    def is_match(self, score: float) -> bool:
        return score > self._config.match_threshold

    def breakdown(
        self,
        profile: CandidateProfile | None,
        requirements: JobRequirements | None,
    ) -> ScoreBreakdown:
        requirements = requirements or JobRequirements()

        gpa = profile.gpa if profile else 0.0
        experience_years = profile.experience_years if profile else 0.0
        certificates = profile.certificate_count if profile else 0
        skills = profile.skills if profile else []

        parts = {
            "gpa": self._ratio(gpa, requirements.gpa_threshold, self._config.gpa_floor),
            "experience": self._ratio(
                experience_years,
                requirements.experience_years,
                self._config.experience_floor,
            ),
            "certificates": min(certificates / self._config.certificate_cap, 1.0),
            "skills": self._skill_coverage(requirements.skills, skills),
        }
        total = sum(
            parts[name] * self._config.weights.get(name, 0.0) for name in DEFAULT_WEIGHTS
        )
        return ScoreBreakdown(total=min(max(total, 0.0), 1.0), **parts)

    @staticmethod
    def _ratio(value: float, threshold: float | None, floor: float) -> float:
        # zero and missing thresholds impose no constraint
        if not threshold:
            return 1.0
        return min(max(value, 0.0) / max(threshold, floor), 1.0)

    @staticmethod
    def _skill_coverage(required: list[str], offered: list[str]) -> float:
        required_keys = normalize_names(required)
        if not required_keys:
            return 1.0
        matched = required_keys & normalize_names(offered)
        return len(matched) / len(required_keys)
