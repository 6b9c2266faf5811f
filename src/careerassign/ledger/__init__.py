"""Application ledger and the document store contract it runs on."""

from __future__ import annotations

from .ledger import (
    ADMISSION_GUARDS,
    APPLICATIONS,
    CANDIDATES,
    COURSES,
    INSTITUTIONS,
    JOB_APPLICATIONS,
    JOBS,
    NOTIFICATIONS,
    ApplicationLedger,
    new_document_id,
)
from .store import (
    ABSENT,
    InMemoryLedgerStore,
    JsonFileLedgerStore,
    LedgerStore,
    Mutation,
    OrderBy,
    Predicate,
    Snapshot,
)

__all__ = [
    "ADMISSION_GUARDS",
    "APPLICATIONS",
    "CANDIDATES",
    "COURSES",
    "INSTITUTIONS",
    "JOB_APPLICATIONS",
    "JOBS",
    "NOTIFICATIONS",
    "ApplicationLedger",
    "new_document_id",
    "ABSENT",
    "InMemoryLedgerStore",
    "JsonFileLedgerStore",
    "LedgerStore",
    "Mutation",
    "OrderBy",
    "Predicate",
    "Snapshot",
]
