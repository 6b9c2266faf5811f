"""Transactional document store contract and in-process implementations."""

from __future__ import annotations

import copy
import json
import operator
import os
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Literal, Protocol, Sequence, runtime_checkable

import structlog

from ..errors import StaleWriteError, TransactionError

Operator = Literal["==", "!=", "<", "<=", ">", ">=", "in"]
MutationKind = Literal["create", "set", "update", "delete"]

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda value, options: value in options,
}

# version reported for documents that do not exist
ABSENT = 0


@dataclass(slots=True, frozen=True)
class Predicate:
    """Single field filter applied to a query."""

    field: str
    op: Operator
    value: Any

    def matches(self, data: dict[str, Any]) -> bool:
        if self.field not in data:
            return False
        try:
            return bool(_OPERATORS[self.op](data[self.field], self.value))
        except TypeError:
            return False


@dataclass(slots=True, frozen=True)
class OrderBy:
    field: str
    descending: bool = False


@dataclass(slots=True)
class Snapshot:
    """Point-in-time copy of a stored document."""

    id: str
    data: dict[str, Any]
    version: int


@dataclass(slots=True, frozen=True)
class Mutation:
    """One write inside an atomic batch.

    ``expected_version`` turns the write into a conditional one: the batch is
    rejected unless the document's current version equals it (``ABSENT`` for
    a document that must not exist yet).
    """

    kind: MutationKind
    collection: str
    doc_id: str
    data: dict[str, Any] = field(default_factory=dict)
    expected_version: int | None = None

    @classmethod
    def create(cls, collection: str, doc_id: str, data: dict[str, Any]) -> "Mutation":
        return cls("create", collection, doc_id, data, ABSENT)

    @classmethod
    def put(
        cls,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        *,
        expected_version: int | None = None,
    ) -> "Mutation":
        return cls("set", collection, doc_id, data, expected_version)

    @classmethod
    def update(
        cls,
        collection: str,
        doc_id: str,
        changes: dict[str, Any],
        *,
        expected_version: int | None = None,
    ) -> "Mutation":
        return cls("update", collection, doc_id, changes, expected_version)

    @classmethod
    def delete(
        cls,
        collection: str,
        doc_id: str,
        *,
        expected_version: int | None = None,
    ) -> "Mutation":
        return cls("delete", collection, doc_id, {}, expected_version)


@runtime_checkable
class LedgerStore(Protocol):
    """Document store offering snapshot reads and all-or-nothing batches."""

    def get(self, collection: str, doc_id: str) -> Snapshot | None:
        """Return the current document snapshot or None."""

    def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order_by: Sequence[OrderBy] = (),
        limit: int | None = None,
    ) -> list[Snapshot]:
        """Return snapshots matching every predicate."""

    def atomic_write(self, mutations: Iterable[Mutation]) -> None:
        """Apply every mutation or none. Raises TransactionError on failure."""


_Collections = dict[str, dict[str, tuple[int, dict[str, Any]]]]


class InMemoryLedgerStore:
    """Thread-safe in-process store with optimistic version checks."""

    def __init__(self, documents: dict[str, dict[str, dict[str, Any]]] | None = None) -> None:
        self._lock = threading.RLock()
        self._collections: _Collections = {}
        self._logger = structlog.get_logger(__name__)
        for collection, docs in (documents or {}).items():
            self._collections[collection] = {
                doc_id: (1, copy.deepcopy(data)) for doc_id, data in docs.items()
            }

    def get(self, collection: str, doc_id: str) -> Snapshot | None:
        with self._lock:
            entry = self._collections.get(collection, {}).get(doc_id)
            if entry is None:
                return None
            return Snapshot(id=doc_id, data=copy.deepcopy(entry[1]), version=entry[0])

    def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order_by: Sequence[OrderBy] = (),
        limit: int | None = None,
    ) -> list[Snapshot]:
        with self._lock:
            snapshots = [
                Snapshot(id=doc_id, data=copy.deepcopy(data), version=version)
                for doc_id, (version, data) in self._collections.get(collection, {}).items()
                if all(predicate.matches(data) for predicate in predicates)
            ]

        snapshots.sort(key=lambda snap: snap.id)
        for order in reversed(order_by):
            snapshots = _ordered(snapshots, order)
        if limit is not None:
            snapshots = snapshots[:limit]
        return snapshots

    def atomic_write(self, mutations: Iterable[Mutation]) -> None:
        batch = list(mutations)
        if not batch:
            return
        with self._lock:
            staged = self._stage(batch)
            self._publish(staged)
        self._logger.debug("store.committed", mutations=len(batch))

    def export(self) -> dict[str, dict[str, dict[str, Any]]]:
        """Return a deep copy of every document, keyed by collection and id."""
        with self._lock:
            return _plain(self._collections)

    def _stage(self, batch: list[Mutation]) -> _Collections:
        staged: _Collections = {name: dict(docs) for name, docs in self._collections.items()}
        for mutation in batch:
            docs = staged.setdefault(mutation.collection, {})
            current = docs.get(mutation.doc_id)
            current_version = current[0] if current else ABSENT

            if (
                mutation.expected_version is not None
                and mutation.expected_version != current_version
            ):
                raise StaleWriteError(
                    "document changed since it was read",
                    collection=mutation.collection,
                    doc_id=mutation.doc_id,
                    expected_version=mutation.expected_version,
                    actual_version=current_version,
                )

            if mutation.kind == "create":
                if current is not None:
                    raise StaleWriteError(
                        "document already exists",
                        collection=mutation.collection,
                        doc_id=mutation.doc_id,
                    )
                docs[mutation.doc_id] = (1, copy.deepcopy(mutation.data))
            elif mutation.kind == "set":
                docs[mutation.doc_id] = (current_version + 1, copy.deepcopy(mutation.data))
            elif mutation.kind == "update":
                if current is None:
                    raise StaleWriteError(
                        "document to update does not exist",
                        collection=mutation.collection,
                        doc_id=mutation.doc_id,
                    )
                merged = {**current[1], **copy.deepcopy(mutation.data)}
                docs[mutation.doc_id] = (current_version + 1, merged)
            elif mutation.kind == "delete":
                if current is None:
                    raise StaleWriteError(
                        "document to delete does not exist",
                        collection=mutation.collection,
                        doc_id=mutation.doc_id,
                    )
                del docs[mutation.doc_id]
            else:
                raise TransactionError(f"Unsupported mutation kind: {mutation.kind!r}")
        return staged

    def _publish(self, staged: _Collections) -> None:
        self._collections = staged


class JsonFileLedgerStore(InMemoryLedgerStore):
    """In-memory store persisted to a JSON document after every commit.

    The file maps collection names to ``{doc_id: document}``. Versions are
    process-local and restart at 1 on load.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        documents: dict[str, dict[str, dict[str, Any]]] = {}
        if self._path.exists():
            with self._path.open("r", encoding="utf-8") as handle:
                try:
                    documents = json.load(handle) or {}
                except json.JSONDecodeError as exc:
                    raise ValueError(f"Invalid ledger JSON: {exc}") from exc
            if not isinstance(documents, dict):
                raise ValueError("Ledger file must contain a JSON object")
        super().__init__(documents)

    @property
    def path(self) -> Path:
        return self._path

    def _publish(self, staged: _Collections) -> None:
        payload = json.dumps(_plain(staged), ensure_ascii=False, indent=2, sort_keys=True)
        temp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                delete=False,
            ) as handle:
                temp_name = handle.name
                handle.write(payload)
            os.replace(temp_name, self._path)
        except OSError as exc:
            if temp_name and os.path.exists(temp_name):
                os.unlink(temp_name)
            raise TransactionError(f"Could not persist ledger: {exc}", path=str(self._path)) from exc
        super()._publish(staged)


def _ordered(snapshots: list[Snapshot], order: OrderBy) -> list[Snapshot]:
    # documents missing the field go last in either direction
    present = [snap for snap in snapshots if snap.data.get(order.field) is not None]
    missing = [snap for snap in snapshots if snap.data.get(order.field) is None]
    present.sort(key=lambda snap: snap.data[order.field], reverse=order.descending)
    return present + missing


def _plain(collections: _Collections) -> dict[str, dict[str, dict[str, Any]]]:
    return {
        name: {doc_id: copy.deepcopy(data) for doc_id, (_, data) in docs.items()}
        for name, docs in collections.items()
    }
