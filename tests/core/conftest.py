from __future__ import annotations

from typing import Any

import pytest

from careerassign.core import AdmissionCoordinator, JobMatcher, QualificationChecker, ScoreEngine
from careerassign.errors import NotificationError
from careerassign.ledger import ApplicationLedger, InMemoryLedgerStore
from careerassign.notifications import NotificationDispatcher


class RecordingSink:
    def __init__(self, failing_users: set[str] | None = None):
        self.sent: list[dict[str, Any]] = []
        self._failing_users = failing_users or set()

    def send(self, user_id: str, type: str, message: str, metadata: dict | None = None) -> None:
        if user_id in self._failing_users:
            raise NotificationError("sink unavailable", user_id=user_id)
        self.sent.append(
            {"user_id": user_id, "type": type, "message": message, "metadata": metadata or {}}
        )


def stamp(day: int, hour: int = 9) -> str:
    return f"2025-01-{day:02d}T{hour:02d}:00:00.000000Z"


def application_doc(
    candidate_id: str,
    course_id: str,
    institution_id: str,
    status: str,
    submitted_at: str,
    **extra: Any,
) -> dict[str, Any]:
    doc = {
        "candidate_id": candidate_id,
        "course_id": course_id,
        "institution_id": institution_id,
        "course_name": f"Course {course_id}",
        "institution_name": f"Institution {institution_id}",
        "status": status,
        "submitted_at": submitted_at,
    }
    doc.update(extra)
    return doc


def seed_documents() -> dict[str, dict[str, dict[str, Any]]]:
    """Candidate C holds admissions A1 (X@I1) and A2 (Y@I2); W1 then W2 wait on X@I1."""
    return {
        "candidates": {
            "C": {"gpa": 3.6, "subjects": ["Math", "Physics"], "completed_studies": True},
            "D": {"gpa": 3.1, "subjects": ["math"]},
            "E": {"gpa": 2.9, "subjects": ["math"]},
            "F": {"gpa": 1.2, "subjects": ["art"]},
        },
        "institutions": {
            "I1": {"name": "North College", "owner_id": "owner-1"},
            "I2": {"name": "South University", "owner_id": "owner-2"},
            "I3": {"name": "Ownerless Academy"},
        },
        "courses": {
            "X": {"name": "Engineering", "institution_id": "I1", "requirements": {"min_gpa": 2.5, "subjects": ["Math"]}},
            "Z": {"name": "Architecture", "institution_id": "I1", "requirements": {"min_gpa": 2.0}},
            "Y": {"name": "Medicine", "institution_id": "I2", "requirements": {"min_gpa": 3.0, "subjects": ["math", "physics"]}},
            "Q": {"name": "Design", "institution_id": "I3"},
        },
        "applications": {
            "A1": application_doc("C", "X", "I1", "admitted", stamp(2)),
            "A2": application_doc("C", "Y", "I2", "admitted", stamp(3)),
            "W2": application_doc("E", "X", "I1", "waiting", stamp(5)),
            "W1": application_doc("D", "X", "I1", "waiting", stamp(4)),
        },
    }


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore(seed_documents())


@pytest.fixture
def ledger(store: InMemoryLedgerStore) -> ApplicationLedger:
    counter = iter(range(1, 10_000))
    return ApplicationLedger(store, id_factory=lambda: f"new-{next(counter)}")


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def coordinator(ledger: ApplicationLedger, sink: RecordingSink) -> AdmissionCoordinator:
    return AdmissionCoordinator(
        ledger=ledger,
        checker=QualificationChecker(),
        notifier=NotificationDispatcher(sink),
    )


@pytest.fixture
def job_matcher(ledger: ApplicationLedger, sink: RecordingSink) -> JobMatcher:
    return JobMatcher(ledger=ledger, engine=ScoreEngine(), notifier=NotificationDispatcher(sink))


def statuses(ledger: ApplicationLedger) -> dict[str, str]:
    return {application.id: application.status for application in ledger.applications()}


def admitted_pairs(ledger: ApplicationLedger) -> dict[tuple[str, str], int]:
    counts: dict[tuple[str, str], int] = {}
    for application in ledger.applications(status="admitted"):
        key = (application.candidate_id, application.institution_id)
        counts[key] = counts.get(key, 0) + 1
    return counts
