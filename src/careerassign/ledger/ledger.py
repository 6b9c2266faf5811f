"""Typed access to admission and job application records."""

from __future__ import annotations

import uuid
from typing import Any, Callable

import structlog

from ..schemas import (
    Application,
    ApplicationStatus,
    CandidateProfile,
    Course,
    Institution,
    Job,
    JobApplication,
    JobApplicationStatus,
    format_timestamp,
)
from .store import ABSENT, LedgerStore, Mutation, OrderBy, Predicate

CANDIDATES = "candidates"
INSTITUTIONS = "institutions"
COURSES = "courses"
JOBS = "jobs"
APPLICATIONS = "applications"
JOB_APPLICATIONS = "job_applications"
NOTIFICATIONS = "notifications"
ADMISSION_GUARDS = "admission_guards"

_FIFO = (OrderBy("submitted_at"),)


def new_document_id() -> str:
    return uuid.uuid4().hex


class ApplicationLedger:
    """Reads records from the store and builds the mutations that change them.

    Every admission-relevant transaction for a candidate also rewrites that
    candidate's guard document with the version it read, which makes
    concurrent intake and admission changes for the same candidate conflict
    at commit time instead of interleaving.
    """

    def __init__(
        self,
        store: LedgerStore,
        *,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._store = store
        self._id_factory = id_factory or new_document_id
        self._logger = structlog.get_logger(__name__)

    @property
    def store(self) -> LedgerStore:
        return self._store

    def new_id(self) -> str:
        return self._id_factory()

    # -- catalog -----------------------------------------------------------

    def candidate(self, candidate_id: str) -> CandidateProfile | None:
        snapshot = self._store.get(CANDIDATES, candidate_id)
        if snapshot is None:
            return None
        return CandidateProfile.model_validate({**snapshot.data, "candidate_id": snapshot.id})

    def candidates(self, *, completed_studies: bool | None = None) -> list[CandidateProfile]:
        predicates = []
        if completed_studies is not None:
            predicates.append(Predicate("completed_studies", "==", completed_studies))
        return [
            CandidateProfile.model_validate({**snap.data, "candidate_id": snap.id})
            for snap in self._store.query(CANDIDATES, predicates)
        ]

    def institution(self, institution_id: str) -> Institution | None:
        snapshot = self._store.get(INSTITUTIONS, institution_id)
        return Institution.from_snapshot(snapshot) if snapshot else None

    def course(self, course_id: str) -> Course | None:
        snapshot = self._store.get(COURSES, course_id)
        return Course.from_snapshot(snapshot) if snapshot else None

    def job(self, job_id: str) -> Job | None:
        snapshot = self._store.get(JOBS, job_id)
        return Job.from_snapshot(snapshot) if snapshot else None

    def recent_jobs(self, limit: int | None = None) -> list[Job]:
        snapshots = self._store.query(
            JOBS,
            order_by=(OrderBy("posted_at", descending=True),),
            limit=limit,
        )
        return [Job.from_snapshot(snap) for snap in snapshots]

    # -- course applications -----------------------------------------------

    def application(self, application_id: str) -> Application | None:
        snapshot = self._store.get(APPLICATIONS, application_id)
        return Application.from_snapshot(snapshot) if snapshot else None

    def applications(
        self,
        *,
        candidate_id: str | None = None,
        institution_id: str | None = None,
        course_id: str | None = None,
        status: ApplicationStatus | str | None = None,
    ) -> list[Application]:
        """Applications matching every given filter, oldest submission first."""
        filters = {
            "candidate_id": candidate_id,
            "institution_id": institution_id,
            "course_id": course_id,
            "status": _status_value(status),
        }
        predicates = [
            Predicate(name, "==", value) for name, value in filters.items() if value is not None
        ]
        return [
            Application.from_snapshot(snap)
            for snap in self._store.query(APPLICATIONS, predicates, order_by=_FIFO)
        ]

    def waiting_queue(self, course_id: str, institution_id: str) -> list[Application]:
        return self.applications(
            course_id=course_id,
            institution_id=institution_id,
            status=ApplicationStatus.WAITING,
        )

    def count_applications(self, candidate_id: str, institution_id: str) -> int:
        return len(self.applications(candidate_id=candidate_id, institution_id=institution_id))

    def admitted(self, candidate_id: str, institution_id: str | None = None) -> list[Application]:
        return self.applications(
            candidate_id=candidate_id,
            institution_id=institution_id,
            status=ApplicationStatus.ADMITTED,
        )

    def insert_application(self, application: Application) -> Mutation:
        return Mutation.create(APPLICATIONS, application.id, application.to_document())

    def update_application(self, application: Application, **changes: Any) -> Mutation:
        if "status" in changes:
            changes["status"] = _status_value(changes["status"])
        return Mutation.update(
            APPLICATIONS,
            application.id,
            changes,
            expected_version=application.version,
        )

    # -- job applications --------------------------------------------------

    def job_application(self, job_application_id: str) -> JobApplication | None:
        snapshot = self._store.get(JOB_APPLICATIONS, job_application_id)
        return JobApplication.from_snapshot(snapshot) if snapshot else None

    def job_applications(
        self,
        *,
        job_id: str | None = None,
        candidate_id: str | None = None,
    ) -> list[JobApplication]:
        predicates = []
        if job_id is not None:
            predicates.append(Predicate("job_id", "==", job_id))
        if candidate_id is not None:
            predicates.append(Predicate("candidate_id", "==", candidate_id))
        return [
            JobApplication.from_snapshot(snap)
            for snap in self._store.query(
                JOB_APPLICATIONS, predicates, order_by=(OrderBy("applied_at"),)
            )
        ]

    def insert_job_application(self, application: JobApplication) -> Mutation:
        return Mutation.create(JOB_APPLICATIONS, application.id, application.to_document())

    def update_job_application(self, application: JobApplication, **changes: Any) -> Mutation:
        if isinstance(changes.get("status"), JobApplicationStatus):
            changes["status"] = changes["status"].value
        return Mutation.update(
            JOB_APPLICATIONS,
            application.id,
            changes,
            expected_version=application.version,
        )

    # -- admission guards --------------------------------------------------

    def guard_version(self, candidate_id: str) -> int:
        snapshot = self._store.get(ADMISSION_GUARDS, candidate_id)
        return snapshot.version if snapshot else ABSENT

    def touch_guard(self, candidate_id: str, read_version: int) -> Mutation:
        return Mutation.put(
            ADMISSION_GUARDS,
            candidate_id,
            {"candidate_id": candidate_id, "updated_at": format_timestamp()},
            expected_version=read_version,
        )

    def commit(self, mutations: list[Mutation]) -> None:
        """Apply mutations as one atomic batch through the store."""
        if not mutations:
            return
        self._store.atomic_write(mutations)
        self._logger.debug(
            "ledger.committed",
            mutations=len(mutations),
            collections=sorted({mutation.collection for mutation in mutations}),
        )


def _status_value(status: ApplicationStatus | str | None) -> str | None:
    if isinstance(status, ApplicationStatus):
        return status.value
    return status
