"""Dependency injection container for the allocation engine."""

from __future__ import annotations

from typing import Any

from dependency_injector import containers, providers

from .core import (
    AdmissionConfig,
    AdmissionCoordinator,
    JobMatcher,
    QualificationChecker,
    ScoreEngine,
    ScoringConfig,
)
from .ledger import ApplicationLedger, InMemoryLedgerStore, LedgerStore
from .notifications import LedgerNotificationSink, NotificationDispatcher


class AllocationContainer(containers.DeclarativeContainer):
    """Dependency-injector container definition."""

    store = providers.Singleton(InMemoryLedgerStore)

    ledger = providers.Singleton(ApplicationLedger, store=store)

    notification_sink = providers.Singleton(LedgerNotificationSink, store=store)
    notifier = providers.Singleton(NotificationDispatcher, sink=notification_sink)

    score_engine = providers.Singleton(ScoreEngine)
    qualification_checker = providers.Singleton(QualificationChecker)

    admission_coordinator = providers.Singleton(
        AdmissionCoordinator,
        ledger=ledger,
        checker=qualification_checker,
        notifier=notifier,
    )

    job_matcher = providers.Singleton(
        JobMatcher,
        ledger=ledger,
        engine=score_engine,
        notifier=notifier,
    )


def create_container(
    *,
    settings: dict[str, Any] | None = None,
    store: LedgerStore | None = None,
) -> AllocationContainer:
    """Instantiate container with an optional store and config overrides."""

    container = AllocationContainer()

    if store is not None:
        container.store.override(providers.Object(store))

    if not settings:
        return container

    scoring_settings = settings.get("scoring", {}) if isinstance(settings, dict) else {}
    if scoring_settings:
        scoring_config = ScoringConfig(**scoring_settings)
        container.score_engine.override(providers.Singleton(ScoreEngine, config=scoring_config))

    admission_settings = settings.get("admission", {}) if isinstance(settings, dict) else {}
    if admission_settings:
        admission_config = AdmissionConfig(**admission_settings)
        container.admission_coordinator.override(
            providers.Singleton(
                AdmissionCoordinator,
                ledger=container.ledger,
                checker=container.qualification_checker,
                notifier=container.notifier,
                config=admission_config,
            )
        )

    return container
