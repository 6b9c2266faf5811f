"""Hard entry gate for course applications."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..schemas import CandidateProfile, CourseRequirements, normalize_names


@dataclass(slots=True)
class QualificationResult:
    gpa_ok: bool
    subjects_ok: bool
    missing_subjects: list[str] = field(default_factory=list)

    @property
    def qualified(self) -> bool:
        return self.gpa_ok and self.subjects_ok


class QualificationChecker:
    """Pass/fail check on minimum GPA and required subjects. No partial credit."""

    def qualifies(
        self,
        profile: CandidateProfile | None,
        requirements: CourseRequirements | None,
    ) -> bool:
        return self.check(profile, requirements).qualified

    def check(
        self,
        profile: CandidateProfile | None,
        requirements: CourseRequirements | None,
    ) -> QualificationResult:
        requirements = requirements or CourseRequirements()
        gpa = profile.gpa if profile else 0.0
        offered = normalize_names(profile.subjects) if profile else set()

        missing = [
            subject
            for subject in requirements.subjects
            if subject.strip().lower() not in offered
        ]
        return QualificationResult(
            gpa_ok=gpa >= requirements.min_gpa,
            subjects_ok=not missing,
            missing_subjects=missing,
        )
