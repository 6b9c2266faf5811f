"""Job application intake and match-driven candidate/company workflows."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

import pendulum
import structlog

from ..errors import ForbiddenError, NotFoundError, NotQualifiedError, ValidationError
from ..ledger import ApplicationLedger
from ..notifications import NotificationDispatcher, PlannedNotification
from ..schemas import (
    CandidateProfile,
    Job,
    JobApplication,
    JobApplicationStatus,
    format_timestamp,
)
from .admission import require_ids
from .scoring import ScoreEngine

RECENT_JOBS_LIMIT = 20


@dataclass(slots=True)
class JobMatch:
    job_id: str
    title: str
    company_id: str
    score: float


class JobMatcher:
    """Single-sided job matching: no capacity contention and no waiting list.

    Every threshold decision goes through ``ScoreEngine.is_match`` so intake,
    listings and proactive notifications share one cutoff.
    """

    def __init__(
        self,
        *,
        ledger: ApplicationLedger,
        engine: ScoreEngine,
        notifier: NotificationDispatcher,
        now_provider: Callable[[], Any] | None = None,
    ) -> None:
        self._ledger = ledger
        self._engine = engine
        self._notifier = notifier
        self._now_provider = now_provider or pendulum.now
        self._logger = structlog.get_logger(__name__)

    def score_job(self, profile: CandidateProfile | None, job: Job) -> float:
        return self._engine.score(profile, job.requirements)

    def matching_jobs(self, candidate_id: str, *, limit: int = RECENT_JOBS_LIMIT) -> list[JobMatch]:
        """Score the most recent postings and keep the matches, best first."""
        profile = self._ledger.candidate(candidate_id)
        if profile is None:
            return []

        matches: list[JobMatch] = []
        for job in self._ledger.recent_jobs(limit):
            score = self.score_job(profile, job)
            if self._engine.is_match(score):
                matches.append(
                    JobMatch(job_id=job.id, title=job.title, company_id=job.company_id, score=score)
                )
        matches.sort(key=lambda match: match.score, reverse=True)
        return matches

    def apply_to_job(self, candidate_id: str, job_id: str) -> JobApplication:
        require_ids(candidate_id=candidate_id, job_id=job_id)
        job = self._ledger.job(job_id)
        if job is None:
            raise NotFoundError("Job not found", job_id=job_id)
        profile = self._ledger.candidate(candidate_id)
        if profile is None:
            raise NotFoundError("Candidate not found", candidate_id=candidate_id)

        score = self.score_job(profile, job)
        if not self._engine.is_match(score):
            raise NotQualifiedError(
                "Candidate does not meet the job's match threshold",
                job_id=job_id,
                score=score,
                threshold=self._engine.match_threshold,
            )

        application = JobApplication(
            id=self._ledger.new_id(),
            candidate_id=candidate_id,
            job_id=job_id,
            match_score=score,
            applied_at=format_timestamp(self._now_provider()),
        )
        self._ledger.commit([self._ledger.insert_job_application(application)])
        self._logger.info(
            "jobs.applied",
            job_application_id=application.id,
            candidate_id=candidate_id,
            job_id=job_id,
            score=score,
        )
        self._notifier.dispatch(
            [
                PlannedNotification(
                    user_id=job.company_id,
                    type="new_applicant",
                    message=f"New applicant for {job.title}",
                    metadata={"job_id": job_id, "job_application_id": application.id},
                )
            ]
        )
        return application

    def mark_ready_for_interview(self, candidate_id: str, job_application_id: str) -> JobApplication:
        application = self._ledger.job_application(job_application_id)
        if application is None:
            raise NotFoundError("Job application not found", job_application_id=job_application_id)
        if application.candidate_id != candidate_id:
            raise ForbiddenError(
                "Job application belongs to another candidate",
                job_application_id=job_application_id,
            )
        if application.ready_for_interview:
            return application

        self._ledger.commit(
            [self._ledger.update_job_application(application, ready_for_interview=True)]
        )
        self._logger.info("jobs.ready_for_interview", job_application_id=job_application_id)
        return application.model_copy(
            update={"ready_for_interview": True, "version": application.version + 1}
        )

    def qualified_applicants(self, company_id: str, job_id: str) -> list[JobApplication]:
        """Applicants above the threshold who declared themselves ready for interview."""
        self._require_owned_job(company_id, job_id)
        return [
            application
            for application in self._ledger.job_applications(job_id=job_id)
            if self._engine.is_match(application.match_score)
            and application.ready_for_interview
            and application.status != JobApplicationStatus.REJECTED
        ]

    def reject_applicant(self, company_id: str, job_application_id: str) -> JobApplication:
        application = self._ledger.job_application(job_application_id)
        if application is None:
            raise NotFoundError("Job application not found", job_application_id=job_application_id)
        job = self._require_owned_job(company_id, application.job_id)
        if application.status == JobApplicationStatus.REJECTED:
            return application

        self._ledger.commit(
            [
                self._ledger.update_job_application(
                    application, status=JobApplicationStatus.REJECTED
                )
            ]
        )
        self._logger.info("jobs.rejected", job_application_id=job_application_id)
        self._notifier.dispatch(
            [
                PlannedNotification(
                    user_id=application.candidate_id,
                    type="application_rejected",
                    message=f'Your application for "{job.title}" has been rejected.',
                    metadata={"job_id": job.id, "job_application_id": application.id},
                )
            ]
        )
        return application.model_copy(
            update={
                "status": JobApplicationStatus.REJECTED.value,
                "version": application.version + 1,
            }
        )

    def schedule_interview(
        self,
        company_id: str,
        job_application_id: str,
        date: datetime | str | None,
        expectations: str | None,
    ) -> JobApplication:
        """Record an interview slot on an application and tell the candidate."""
        expectations = (expectations or "").strip()
        if not date or not expectations:
            raise ValidationError(
                "Date and expectations are required",
                job_application_id=job_application_id,
            )
        interview_date = _parse_interview_date(date)

        application = self._ledger.job_application(job_application_id)
        if application is None:
            raise NotFoundError("Job application not found", job_application_id=job_application_id)
        job = self._require_owned_job(company_id, application.job_id)

        changes = {
            "interview_scheduled": True,
            "interview_date": interview_date,
            "interview_expectations": expectations,
        }
        self._ledger.commit([self._ledger.update_job_application(application, **changes)])
        self._logger.info(
            "jobs.interview_scheduled",
            job_application_id=job_application_id,
            interview_date=interview_date,
        )
        self._notifier.dispatch(
            [
                PlannedNotification(
                    user_id=application.candidate_id,
                    type="interview_scheduled",
                    message=(
                        f"Interview scheduled for {job.title}\n\n"
                        f"Date: {interview_date}\n\n"
                        f"What to expect:\n{expectations}"
                    ),
                    metadata={
                        "job_id": job.id,
                        "company_id": company_id,
                        "job_application_id": application.id,
                    },
                )
            ]
        )
        return application.model_copy(update={**changes, "version": application.version + 1})

    def notify_matching_candidates(self, job_id: str) -> int:
        """Tell every candidate with completed studies who matches the job about it."""
        job = self._ledger.job(job_id)
        if job is None:
            raise NotFoundError("Job not found", job_id=job_id)

        planned = [
            PlannedNotification(
                user_id=profile.candidate_id,
                type="job_match",
                message=f"New matching job: {job.title}",
                metadata={"job_id": job.id, "company_id": job.company_id},
            )
            for profile in self._ledger.candidates(completed_studies=True)
            if self._engine.is_match(self.score_job(profile, job))
        ]
        delivered = self._notifier.dispatch(planned)
        self._logger.info(
            "jobs.match_notifications",
            job_id=job_id,
            planned=len(planned),
            delivered=delivered,
        )
        return len(planned)

    def _require_owned_job(self, company_id: str, job_id: str) -> Job:
        job = self._ledger.job(job_id)
        if job is None:
            raise NotFoundError("Job not found", job_id=job_id)
        if job.company_id != company_id:
            raise ForbiddenError("Job belongs to another company", job_id=job_id)
        return job


def _parse_interview_date(value: datetime | str) -> str:
    if isinstance(value, datetime):
        return format_timestamp(value)
    try:
        parsed = pendulum.parse(value)
    except ValueError as exc:
        raise ValidationError("Invalid interview date", date=value) from exc
    if not isinstance(parsed, datetime):
        raise ValidationError("Interview date must include a day", date=value)
    return format_timestamp(parsed)
