"""Course admission state machine and waiting-list promotion cascade."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Literal, TypeVar

import pendulum
import structlog

from ..errors import (
    CapacityError,
    DuplicateAdmissionError,
    ForbiddenError,
    InvalidTransitionError,
    NotAdmittedError,
    NotFoundError,
    NotQualifiedError,
    StaleWriteError,
    TransactionError,
    ValidationError,
)
from ..ledger import ApplicationLedger, Mutation
from ..notifications import NotificationDispatcher, PlannedNotification
from ..schemas import Application, ApplicationStatus, format_timestamp
from .qualification import QualificationChecker

AdmissionScope = Literal["global", "institution"]

PENDING = ApplicationStatus.PENDING
WAITING = ApplicationStatus.WAITING
ADMITTED = ApplicationStatus.ADMITTED
REJECTED = ApplicationStatus.REJECTED

# transitions an institution may apply directly; admitted applications only
# leave that state through the selection cascade
INSTITUTION_TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    PENDING: frozenset({WAITING, ADMITTED, REJECTED}),
    WAITING: frozenset({ADMITTED, REJECTED}),
    ADMITTED: frozenset(),
    REJECTED: frozenset(),
}

ResultT = TypeVar("ResultT")


@dataclass
class AdmissionConfig:
    """Admission policy knobs."""

    scope: AdmissionScope = "global"
    max_commit_attempts: int = 3
    applications_per_institution: int = 2

    def __post_init__(self) -> None:
        if self.scope not in ("global", "institution"):
            raise ValueError(f"Unknown admission scope: {self.scope!r}")
        if self.max_commit_attempts < 1:
            raise ValueError("max_commit_attempts must be at least 1")
        if self.applications_per_institution < 1:
            raise ValueError("applications_per_institution must be at least 1")


@dataclass(slots=True)
class UnitOfWork:
    """Mutations committed together and the notifications they release."""

    mutations: list[Mutation] = field(default_factory=list)
    notifications: list[PlannedNotification] = field(default_factory=list)


@dataclass(slots=True)
class Promotion:
    application_id: str
    candidate_id: str
    course_id: str
    institution_id: str
    vacated_application_id: str


@dataclass(slots=True)
class AdmissionPlan:
    """Outcome of an admission selection."""

    candidate_id: str
    selected_application_id: str
    rejected_application_ids: list[str] = field(default_factory=list)
    promotions: list[Promotion] = field(default_factory=list)
    work: UnitOfWork = field(default_factory=UnitOfWork)

    @property
    def notifications(self) -> list[PlannedNotification]:
        return self.work.notifications


class AdmissionCoordinator:
    """Drive application status changes under the single-admission invariant.

    Each operation reads the ledger, builds a unit of work in memory, commits
    it as one atomic batch and only then dispatches notifications. Stale
    reads detected at commit time cause the unit of work to be rebuilt from
    fresh reads; notifications are never sent for an attempt that did not
    commit.
    """

    def __init__(
        self,
        *,
        ledger: ApplicationLedger,
        checker: QualificationChecker,
        notifier: NotificationDispatcher,
        config: AdmissionConfig | None = None,
        now_provider: Callable[[], Any] | None = None,
    ) -> None:
        self._ledger = ledger
        self._checker = checker
        self._notifier = notifier
        self._config = config or AdmissionConfig()
        self._now_provider = now_provider or pendulum.now
        self._logger = structlog.get_logger(__name__)

    # -- intake ------------------------------------------------------------

    def apply(self, candidate_id: str, course_id: str, institution_id: str) -> Application:
        """Create a pending application after the qualification and cap checks."""
        require_ids(
            candidate_id=candidate_id,
            course_id=course_id,
            institution_id=institution_id,
        )
        application = self._execute(
            "apply",
            lambda: self._plan_apply(candidate_id, course_id, institution_id),
        )
        self._logger.info(
            "admission.applied",
            application_id=application.id,
            candidate_id=candidate_id,
            course_id=course_id,
            institution_id=institution_id,
        )
        return application

    def _plan_apply(
        self,
        candidate_id: str,
        course_id: str,
        institution_id: str,
    ) -> tuple[Application, UnitOfWork]:
        profile = self._ledger.candidate(candidate_id)
        if profile is None:
            raise NotFoundError("Candidate not found", candidate_id=candidate_id)
        course = self._ledger.course(course_id)
        institution = self._ledger.institution(institution_id)
        if course is None or institution is None:
            raise NotFoundError(
                "Course or institution not found",
                course_id=course_id,
                institution_id=institution_id,
            )
        if course.institution_id != institution_id:
            raise ValidationError(
                "Course is not offered by this institution",
                course_id=course_id,
                institution_id=institution_id,
            )

        result = self._checker.check(profile, course.requirements)
        if not result.qualified:
            raise NotQualifiedError(
                "Candidate does not qualify for this course",
                course_id=course_id,
                gpa_ok=result.gpa_ok,
                missing_subjects=result.missing_subjects,
            )

        guard = self._ledger.guard_version(candidate_id)
        existing = self._ledger.count_applications(candidate_id, institution_id)
        cap = self._config.applications_per_institution
        if existing >= cap:
            raise CapacityError(
                f"Maximum {cap} applications per institution",
                candidate_id=candidate_id,
                institution_id=institution_id,
                existing=existing,
            )

        application = Application(
            id=self._ledger.new_id(),
            candidate_id=candidate_id,
            course_id=course_id,
            institution_id=institution_id,
            course_name=course.name,
            institution_name=institution.name,
            status=PENDING,
            submitted_at=format_timestamp(self._now_provider()),
        )
        work = UnitOfWork(
            mutations=[
                self._ledger.insert_application(application),
                self._ledger.touch_guard(candidate_id, guard),
            ]
        )
        if institution.owner_id:
            work.notifications.append(
                PlannedNotification(
                    user_id=institution.owner_id,
                    type="new_application",
                    message=f"New application for {course.name}",
                    metadata={
                        "application_id": application.id,
                        "course_id": course_id,
                        "candidate_id": candidate_id,
                    },
                )
            )
        return application, work

    # -- institution decisions ---------------------------------------------

    def set_application_status(
        self,
        application_id: str,
        new_status: ApplicationStatus | str,
        acting_institution_id: str,
    ) -> Application:
        """Apply an institution decision to one of its applications."""
        require_ids(
            application_id=application_id,
            acting_institution_id=acting_institution_id,
        )
        status = _parse_status(new_status)
        application = self._execute(
            "set_status",
            lambda: self._plan_status(application_id, status, acting_institution_id),
        )
        self._logger.info(
            "admission.status_updated",
            application_id=application_id,
            status=status.value,
            institution_id=acting_institution_id,
        )
        return application

    def _plan_status(
        self,
        application_id: str,
        status: ApplicationStatus,
        acting_institution_id: str,
    ) -> tuple[Application, UnitOfWork]:
        application = self._require_application(application_id)
        if application.institution_id != acting_institution_id:
            raise ForbiddenError(
                "Application belongs to another institution",
                application_id=application_id,
            )

        current = ApplicationStatus(application.status)
        if current == status:
            return application, UnitOfWork()
        if status not in INSTITUTION_TRANSITIONS[current]:
            raise InvalidTransitionError(
                f"Cannot move application from {current.value} to {status.value}",
                application_id=application_id,
            )

        work = UnitOfWork()
        if status == ADMITTED:
            guard = self._ledger.guard_version(application.candidate_id)
            already = [
                other
                for other in self._ledger.admitted(
                    application.candidate_id, application.institution_id
                )
                if other.id != application.id
            ]
            if already:
                raise DuplicateAdmissionError(
                    "Candidate already admitted to another program at this institution",
                    application_id=application_id,
                    admitted_application_id=already[0].id,
                )
            work.mutations.append(self._ledger.touch_guard(application.candidate_id, guard))

        work.mutations.append(self._ledger.update_application(application, status=status))
        work.notifications.append(
            PlannedNotification(
                user_id=application.candidate_id,
                type="application_update",
                message=(
                    f'Your application for "{application.course_name}" is now: '
                    f"{status.value.upper()}"
                ),
                metadata={"application_id": application.id, "status": status.value},
            )
        )
        updated = application.model_copy(
            update={"status": status.value, "version": application.version + 1}
        )
        return updated, work

    # -- candidate selection -----------------------------------------------

    def select_admission(self, candidate_id: str, chosen_application_id: str) -> AdmissionPlan:
        """Confirm one admission, release the candidate's other seats and refill them."""
        require_ids(candidate_id=candidate_id, application_id=chosen_application_id)
        plan = self._execute(
            "select_admission",
            lambda: self._plan_selection(candidate_id, chosen_application_id),
        )
        self._logger.info(
            "admission.cascade_committed",
            candidate_id=candidate_id,
            selected_application_id=chosen_application_id,
            rejected=plan.rejected_application_ids,
            promoted=[promotion.application_id for promotion in plan.promotions],
        )
        return plan

    def _plan_selection(
        self,
        candidate_id: str,
        chosen_application_id: str,
    ) -> tuple[AdmissionPlan, UnitOfWork]:
        chosen = self._require_application(chosen_application_id)
        if chosen.candidate_id != candidate_id:
            raise ForbiddenError(
                "Application belongs to another candidate",
                application_id=chosen_application_id,
            )
        if chosen.status != ADMITTED:
            raise NotAdmittedError(
                "Only admitted applications can be selected",
                application_id=chosen_application_id,
                status=chosen.status,
            )

        plan = AdmissionPlan(candidate_id=candidate_id, selected_application_id=chosen.id)
        work = plan.work
        guards = {candidate_id: self._ledger.guard_version(candidate_id)}
        competing = [
            application
            for application in self._ledger.admitted(candidate_id)
            if application.id != chosen.id
            and (
                self._config.scope == "global"
                or application.institution_id == chosen.institution_id
            )
        ]

        if not chosen.confirmed:
            work.mutations.append(self._ledger.update_application(chosen, confirmed=True))

        # (candidate, institution) pairs given a seat by this plan
        claimed: set[tuple[str, str]] = set()
        for vacated in competing:
            work.mutations.append(self._ledger.update_application(vacated, status=REJECTED))
            plan.rejected_application_ids.append(vacated.id)
            work.notifications.append(
                PlannedNotification(
                    user_id=candidate_id,
                    type="admission_rejected",
                    message=(
                        f"Your application to {vacated.course_name} at "
                        f"{vacated.institution_name} has been rejected."
                    ),
                    metadata={"application_id": vacated.id},
                )
            )

            promoted = self._next_in_queue(vacated, candidate_id, claimed, guards)
            if promoted is None:
                self._logger.debug(
                    "admission.queue_empty",
                    course_id=vacated.course_id,
                    institution_id=vacated.institution_id,
                )
                continue

            claimed.add((promoted.candidate_id, promoted.institution_id))
            work.mutations.append(self._ledger.update_application(promoted, status=ADMITTED))
            plan.promotions.append(
                Promotion(
                    application_id=promoted.id,
                    candidate_id=promoted.candidate_id,
                    course_id=promoted.course_id,
                    institution_id=promoted.institution_id,
                    vacated_application_id=vacated.id,
                )
            )
            work.notifications.append(
                PlannedNotification(
                    user_id=promoted.candidate_id,
                    type="admission_granted",
                    message=(
                        f"You have been admitted to {vacated.course_name} at "
                        f"{vacated.institution_name} from the waiting list."
                    ),
                    metadata={"application_id": promoted.id},
                )
            )

        if competing:
            work.mutations.extend(
                self._ledger.touch_guard(guarded, version) for guarded, version in guards.items()
            )
        return plan, work

    def _next_in_queue(
        self,
        vacated: Application,
        selecting_candidate_id: str,
        claimed: set[tuple[str, str]],
        guards: dict[str, int],
    ) -> Application | None:
        """Earliest waiting application whose candidate can take the seat.

        The candidate's guard is read before their admissions are checked and
        recorded in ``guards`` for the promoted candidate, so an admission
        committed in between makes the cascade's commit stale.
        """
        for waiting in self._ledger.waiting_queue(vacated.course_id, vacated.institution_id):
            if waiting.candidate_id == selecting_candidate_id:
                continue
            if (waiting.candidate_id, waiting.institution_id) in claimed:
                continue
            guard = guards.get(waiting.candidate_id)
            if guard is None:
                guard = self._ledger.guard_version(waiting.candidate_id)
            if self._ledger.admitted(waiting.candidate_id, waiting.institution_id):
                self._logger.debug(
                    "admission.promotion_skipped",
                    application_id=waiting.id,
                    reason="already_admitted_at_institution",
                )
                continue
            guards.setdefault(waiting.candidate_id, guard)
            return waiting
        return None

    # -- plumbing ----------------------------------------------------------

    def _execute(
        self,
        operation: str,
        planner: Callable[[], tuple[ResultT, UnitOfWork]],
    ) -> ResultT:
        attempts = self._config.max_commit_attempts
        attempt = 1
        while True:
            result, work = planner()
            try:
                self._ledger.commit(work.mutations)
            except StaleWriteError as exc:
                if attempt >= attempts:
                    self._logger.error(
                        "admission.commit_failed",
                        operation=operation,
                        attempts=attempt,
                        error=str(exc),
                    )
                    raise TransactionError(
                        f"{operation} could not be committed after {attempt} attempts",
                        operation=operation,
                        attempts=attempt,
                    ) from exc
                self._logger.warning(
                    "admission.commit_retry",
                    operation=operation,
                    attempt=attempt,
                    error=str(exc),
                )
                attempt += 1
                continue
            except TransactionError:
                self._logger.error("admission.commit_failed", operation=operation, attempts=attempt)
                raise
            self._notifier.dispatch(work.notifications)
            return result

    def _require_application(self, application_id: str) -> Application:
        application = self._ledger.application(application_id)
        if application is None:
            raise NotFoundError("Application not found", application_id=application_id)
        return application


def require_ids(**identifiers: str | None) -> None:
    missing = [
        name
        for name, value in identifiers.items()
        if value is None or not str(value).strip()
    ]
    if missing:
        raise ValidationError("Missing required identifiers", fields=missing)


def _parse_status(value: ApplicationStatus | str) -> ApplicationStatus:
    try:
        return ApplicationStatus(value)
    except ValueError as exc:
        raise ValidationError(
            "Invalid application status",
            status=value,
            allowed=[status.value for status in ApplicationStatus],
        ) from exc
