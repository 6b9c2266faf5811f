from __future__ import annotations

import threading
from typing import Callable

import pytest

from careerassign.core import AdmissionConfig, AdmissionCoordinator, QualificationChecker
from careerassign.errors import (
    CapacityError,
    DuplicateAdmissionError,
    ForbiddenError,
    InvalidTransitionError,
    NotAdmittedError,
    NotFoundError,
    NotQualifiedError,
    TransactionError,
    ValidationError,
)
from careerassign.ledger import (
    ADMISSION_GUARDS,
    APPLICATIONS,
    ApplicationLedger,
    InMemoryLedgerStore,
    Mutation,
)
from careerassign.notifications import NotificationDispatcher

from conftest import RecordingSink, admitted_pairs, application_doc, seed_documents, stamp, statuses

Writer = Callable[[list[Mutation]], None]


class FailingStore(InMemoryLedgerStore):
    """Store whose commits always fail after reads succeed."""

    def atomic_write(self, mutations) -> None:
        raise TransactionError("simulated store outage")


class InterleavingStore(InMemoryLedgerStore):
    """Run a competing write right before each of the next commits."""

    def __init__(self, documents, interleaved: list[Callable[[Writer], None]]):
        super().__init__(documents)
        self._interleaved = list(interleaved)

    def atomic_write(self, mutations) -> None:
        batch = list(mutations)
        if self._interleaved:
            self._interleaved.pop(0)(lambda competing: InMemoryLedgerStore.atomic_write(self, competing))
        InMemoryLedgerStore.atomic_write(self, batch)


class GuardReadHookStore(InMemoryLedgerStore):
    """Run a competing operation the first time a candidate's guard is read."""

    def __init__(self, documents, candidate_id: str, competing: Callable[[], None]):
        super().__init__(documents)
        self._candidate_id = candidate_id
        self._competing: Callable[[], None] | None = competing

    def get(self, collection, doc_id):
        if collection == ADMISSION_GUARDS and doc_id == self._candidate_id and self._competing:
            competing, self._competing = self._competing, None
            competing()
        return super().get(collection, doc_id)


def make_coordinator(
    store: InMemoryLedgerStore,
    sink: RecordingSink,
    config: AdmissionConfig | None = None,
) -> tuple[AdmissionCoordinator, ApplicationLedger]:
    ledger = ApplicationLedger(store)
    coordinator = AdmissionCoordinator(
        ledger=ledger,
        checker=QualificationChecker(),
        notifier=NotificationDispatcher(sink),
        config=config,
    )
    return coordinator, ledger


# -- select_admission --------------------------------------------------------


def test_selection_rejects_competing_offer_and_promotes_earliest_waiting(coordinator, ledger, sink):
    plan = coordinator.select_admission("C", "A2")

    after = statuses(ledger)
    assert after["A1"] == "rejected"
    assert after["W1"] == "admitted"
    assert after["W2"] == "waiting"
    assert after["A2"] == "admitted"
    assert ledger.application("A2").confirmed is True

    assert plan.rejected_application_ids == ["A1"]
    assert [promotion.application_id for promotion in plan.promotions] == ["W1"]
    assert plan.promotions[0].vacated_application_id == "A1"

    assert [(item["user_id"], item["type"]) for item in sink.sent] == [
        ("C", "admission_rejected"),
        ("D", "admission_granted"),
    ]
    assert "Course X at Institution I1" in sink.sent[0]["message"]
    assert "Course X at Institution I1" in sink.sent[1]["message"]


def test_selection_without_waiting_candidates_only_rejects(store, coordinator, ledger, sink):
    store.atomic_write(
        [
            Mutation.update(APPLICATIONS, "W1", {"status": "rejected"}),
            Mutation.update(APPLICATIONS, "W2", {"status": "rejected"}),
        ]
    )

    plan = coordinator.select_admission("C", "A2")

    assert statuses(ledger)["A1"] == "rejected"
    assert plan.promotions == []
    assert [item["type"] for item in sink.sent] == ["admission_rejected"]


def test_selection_with_single_admission_only_confirms(store, coordinator, ledger, sink):
    store.atomic_write([Mutation.update(APPLICATIONS, "A1", {"status": "rejected"})])

    plan = coordinator.select_admission("C", "A2")

    assert plan.rejected_application_ids == []
    assert ledger.application("A2").confirmed is True
    assert sink.sent == []


def test_selection_preconditions_leave_ledger_untouched(coordinator, ledger, sink):
    before = statuses(ledger)

    with pytest.raises(NotFoundError):
        coordinator.select_admission("C", "missing")
    with pytest.raises(ForbiddenError):
        coordinator.select_admission("D", "A2")
    with pytest.raises(NotAdmittedError):
        coordinator.select_admission("D", "W1")
    with pytest.raises(ValidationError):
        coordinator.select_admission("", "A2")

    assert statuses(ledger) == before
    assert ledger.application("A2").confirmed is False
    assert sink.sent == []


def test_promotion_skips_candidate_already_admitted_at_institution(sink):
    documents = seed_documents()
    documents["applications"]["D-Z"] = application_doc("D", "Z", "I1", "admitted", stamp(1))
    coordinator, ledger = make_coordinator(InMemoryLedgerStore(documents), sink)

    plan = coordinator.select_admission("C", "A2")

    after = statuses(ledger)
    assert after["W1"] == "waiting"
    assert after["W2"] == "admitted"
    assert [promotion.candidate_id for promotion in plan.promotions] == ["E"]
    assert admitted_pairs(ledger)[("D", "I1")] == 1


def test_fifo_ties_break_on_application_id(sink):
    documents = seed_documents()
    documents["applications"]["W1"]["submitted_at"] = stamp(5)
    coordinator, ledger = make_coordinator(InMemoryLedgerStore(documents), sink)

    plan = coordinator.select_admission("C", "A2")

    assert [promotion.application_id for promotion in plan.promotions] == ["W1"]


def test_institution_scope_keeps_offers_elsewhere(sink):
    coordinator, ledger = make_coordinator(
        InMemoryLedgerStore(seed_documents()),
        sink,
        AdmissionConfig(scope="institution"),
    )

    plan = coordinator.select_admission("C", "A2")

    assert plan.rejected_application_ids == []
    assert statuses(ledger)["A1"] == "admitted"


def test_store_failure_mid_cascade_changes_nothing(sink):
    store = FailingStore(seed_documents())
    coordinator, ledger = make_coordinator(store, sink)
    before = statuses(ledger)

    with pytest.raises(TransactionError) as exc:
        coordinator.select_admission("C", "A2")

    assert exc.value.retriable is True
    assert statuses(ledger) == before
    assert ledger.application("A2").confirmed is False
    assert sink.sent == []


def test_stale_read_is_replanned_and_notified_once(sink):
    def institution_rejects_w1(write: Writer) -> None:
        write([Mutation.update(APPLICATIONS, "W1", {"status": "rejected"})])

    store = InterleavingStore(seed_documents(), [institution_rejects_w1])
    coordinator, ledger = make_coordinator(store, sink)

    plan = coordinator.select_admission("C", "A2")

    after = statuses(ledger)
    assert after["A1"] == "rejected"
    assert after["W1"] == "rejected"
    assert after["W2"] == "admitted"
    assert [promotion.application_id for promotion in plan.promotions] == ["W2"]
    assert [(item["user_id"], item["type"]) for item in sink.sent] == [
        ("C", "admission_rejected"),
        ("E", "admission_granted"),
    ]


def test_exhausted_retries_surface_transaction_error(sink):
    def competing_guard_bump(write: Writer) -> None:
        write([Mutation.put(ADMISSION_GUARDS, "C", {"candidate_id": "C"})])

    store = InterleavingStore(seed_documents(), [competing_guard_bump] * 2)
    coordinator, ledger = make_coordinator(store, sink, AdmissionConfig(max_commit_attempts=2))

    with pytest.raises(TransactionError):
        coordinator.select_admission("C", "A2")

    after = statuses(ledger)
    assert after["A1"] == "admitted"
    assert after["W1"] == "waiting"
    assert sink.sent == []


def test_admission_committed_during_promotion_check_is_respected(sink):
    documents = seed_documents()
    documents["applications"]["PD"] = application_doc("D", "Z", "I1", "pending", stamp(6))
    competitors: list[AdmissionCoordinator] = []

    def institution_admits_pd() -> None:
        competitors[0].set_application_status("PD", "admitted", "I1")

    store = GuardReadHookStore(documents, "D", institution_admits_pd)
    competitors.append(make_coordinator(store, RecordingSink())[0])
    coordinator, ledger = make_coordinator(store, sink)

    plan = coordinator.select_admission("C", "A2")

    after = statuses(ledger)
    assert after["PD"] == "admitted"
    assert after["W1"] == "waiting"
    assert after["W2"] == "admitted"
    assert [promotion.candidate_id for promotion in plan.promotions] == ["E"]
    assert all(count <= 1 for count in admitted_pairs(ledger).values())


def test_notification_failure_does_not_undo_cascade(ledger):
    failing_sink = RecordingSink(failing_users={"D"})
    coordinator = AdmissionCoordinator(
        ledger=ledger,
        checker=QualificationChecker(),
        notifier=NotificationDispatcher(failing_sink),
    )

    coordinator.select_admission("C", "A2")

    assert statuses(ledger)["W1"] == "admitted"
    assert [item["user_id"] for item in failing_sink.sent] == ["C"]


# -- set_application_status --------------------------------------------------


def test_institution_moves_pending_to_waiting_and_notifies(store, coordinator, ledger, sink):
    store.atomic_write(
        [Mutation.create(APPLICATIONS, "P1", application_doc("F", "Z", "I1", "pending", stamp(6)))]
    )

    updated = coordinator.set_application_status("P1", "waiting", "I1")

    assert updated.status == "waiting"
    assert ledger.application("P1").status == "waiting"
    assert sink.sent[0]["user_id"] == "F"
    assert sink.sent[0]["type"] == "application_update"
    assert sink.sent[0]["message"].endswith("WAITING")


def test_second_admission_at_same_institution_conflicts(store, coordinator, ledger, sink):
    store.atomic_write(
        [Mutation.create(APPLICATIONS, "P2", application_doc("C", "Z", "I1", "pending", stamp(6)))]
    )

    with pytest.raises(DuplicateAdmissionError):
        coordinator.set_application_status("P2", "admitted", "I1")

    assert ledger.application("P2").status == "pending"
    assert sink.sent == []


def test_waiting_candidate_can_be_admitted_directly(coordinator, ledger):
    coordinator.set_application_status("W1", "admitted", "I1")

    assert ledger.application("W1").status == "admitted"
    assert admitted_pairs(ledger)[("D", "I1")] == 1


def test_status_update_guards(coordinator, ledger, sink):
    before = statuses(ledger)

    with pytest.raises(ForbiddenError):
        coordinator.set_application_status("W1", "rejected", "I2")
    with pytest.raises(ValidationError):
        coordinator.set_application_status("W1", "accepted", "I1")
    with pytest.raises(NotFoundError):
        coordinator.set_application_status("nope", "rejected", "I1")
    with pytest.raises(InvalidTransitionError):
        coordinator.set_application_status("A1", "rejected", "I1")

    assert statuses(ledger) == before
    assert sink.sent == []


def test_setting_current_status_is_a_no_op(coordinator, ledger, sink):
    version = ledger.application("W1").version

    coordinator.set_application_status("W1", "waiting", "I1")

    assert ledger.application("W1").version == version
    assert sink.sent == []


def test_rejected_is_terminal(coordinator):
    coordinator.set_application_status("W2", "rejected", "I1")

    with pytest.raises(InvalidTransitionError):
        coordinator.set_application_status("W2", "waiting", "I1")


def test_concurrent_admissions_keep_single_admission_invariant():
    documents = seed_documents()
    documents["applications"]["P3"] = application_doc("F", "X", "I1", "pending", stamp(7))
    documents["applications"]["P4"] = application_doc("F", "Z", "I1", "pending", stamp(8))
    coordinator, ledger = make_coordinator(InMemoryLedgerStore(documents), RecordingSink())
    barrier = threading.Barrier(2)
    outcomes: list[str] = []

    def admit(application_id: str) -> None:
        barrier.wait()
        try:
            coordinator.set_application_status(application_id, "admitted", "I1")
            outcomes.append("ok")
        except (DuplicateAdmissionError, TransactionError) as exc:
            outcomes.append(exc.code)

    threads = [threading.Thread(target=admit, args=(app_id,)) for app_id in ("P3", "P4")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("ok") == 1
    assert admitted_pairs(ledger)[("F", "I1")] == 1


def test_invariant_holds_across_operation_sequence(coordinator, ledger):
    coordinator.set_application_status("W2", "admitted", "I1")
    coordinator.select_admission("C", "A1")
    second = coordinator.apply("E", "Z", "I1")
    with pytest.raises(DuplicateAdmissionError):
        coordinator.set_application_status(second.id, "admitted", "I1")
    coordinator.set_application_status("W1", "rejected", "I1")

    assert all(count <= 1 for count in admitted_pairs(ledger).values())
    assert statuses(ledger)["A2"] == "rejected"


# -- apply -------------------------------------------------------------------


def test_apply_creates_pending_application_and_notifies_owner(coordinator, ledger, sink):
    application = coordinator.apply("D", "Z", "I1")

    stored = ledger.application(application.id)
    assert stored.status == "pending"
    assert stored.course_name == "Architecture"
    assert stored.institution_name == "North College"
    assert stored.submitted_at.endswith("Z")
    assert ledger.count_applications("D", "I1") == 2
    assert sink.sent == [
        {
            "user_id": "owner-1",
            "type": "new_application",
            "message": "New application for Architecture",
            "metadata": {"application_id": application.id, "course_id": "Z", "candidate_id": "D"},
        }
    ]


def test_third_application_to_institution_is_rejected(coordinator, ledger, sink):
    coordinator.apply("C", "Z", "I1")
    before = statuses(ledger)
    sink.sent.clear()

    with pytest.raises(CapacityError):
        coordinator.apply("C", "X", "I1")

    assert statuses(ledger) == before
    assert sink.sent == []


def test_unqualified_candidate_cannot_apply(coordinator, ledger):
    before = statuses(ledger)

    with pytest.raises(NotQualifiedError) as exc:
        coordinator.apply("F", "X", "I1")

    assert exc.value.details["missing_subjects"] == ["Math"]
    assert exc.value.details["gpa_ok"] is False
    assert statuses(ledger) == before


def test_apply_reference_checks(coordinator):
    with pytest.raises(NotFoundError):
        coordinator.apply("C", "missing", "I1")
    with pytest.raises(NotFoundError):
        coordinator.apply("ghost", "X", "I1")
    with pytest.raises(ValidationError):
        coordinator.apply("C", "X", "I2")
    with pytest.raises(ValidationError):
        coordinator.apply("C", None, "I1")  # type: ignore[arg-type]


def test_apply_to_ownerless_institution_sends_nothing(coordinator, sink):
    coordinator.apply("E", "Q", "I3")

    assert sink.sent == []


def test_concurrent_apply_is_counted_against_the_cap(sink):
    def concurrent_apply(write: Writer) -> None:
        write(
            [
                Mutation.create(APPLICATIONS, "race", application_doc("D", "Z", "I1", "pending", stamp(9))),
                Mutation.put(ADMISSION_GUARDS, "D", {"candidate_id": "D"}),
            ]
        )

    store = InterleavingStore(seed_documents(), [concurrent_apply])
    coordinator, ledger = make_coordinator(store, sink)

    with pytest.raises(CapacityError):
        coordinator.apply("D", "X", "I1")

    assert ledger.count_applications("D", "I1") == 2
