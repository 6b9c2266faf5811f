"""Pydantic schema definitions for profiles, requirements and ledger records."""

from __future__ import annotations

from .candidate import (
    CERTIFICATE_TYPE,
    CandidateDocument,
    CandidateProfile,
    normalize_names,
)
from .ledger import (
    Application,
    ApplicationStatus,
    JobApplication,
    JobApplicationStatus,
    LedgerRecord,
    Notification,
    format_timestamp,
)
from .catalog import (
    Course,
    CourseRequirements,
    Institution,
    Job,
    JobRequirements,
)

__all__ = [
    "CERTIFICATE_TYPE",
    "CandidateDocument",
    "CandidateProfile",
    "normalize_names",
    "Application",
    "ApplicationStatus",
    "JobApplication",
    "JobApplicationStatus",
    "LedgerRecord",
    "Notification",
    "format_timestamp",
    "Course",
    "CourseRequirements",
    "Institution",
    "Job",
    "JobRequirements",
]
