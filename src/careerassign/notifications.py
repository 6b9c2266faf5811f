"""Notification sinks and best-effort post-commit dispatch."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol, runtime_checkable

import pendulum
import structlog

from .errors import NotificationError, TransactionError
from .ledger import NOTIFICATIONS, LedgerStore, Mutation, new_document_id
from .schemas import Notification, format_timestamp


@dataclass(slots=True)
class PlannedNotification:
    """Message queued by a unit of work, delivered only after it commits."""

    user_id: str
    type: str
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class NotificationSink(Protocol):
    """Append-only message target."""

    def send(
        self,
        user_id: str,
        type: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Record a message for the user. May raise NotificationError."""


class LedgerNotificationSink:
    """Append notifications to the store's ``notifications`` collection."""

    def __init__(
        self,
        store: LedgerStore,
        *,
        id_factory: Callable[[], str] | None = None,
        now_provider: Callable[[], Any] | None = None,
    ) -> None:
        self._store = store
        self._id_factory = id_factory or new_document_id
        self._now_provider = now_provider or pendulum.now

    def send(
        self,
        user_id: str,
        type: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        notification = Notification(
            id=self._id_factory(),
            user_id=user_id,
            type=type,
            message=message,
            metadata=dict(metadata or {}),
            created_at=format_timestamp(self._now_provider()),
        )
        try:
            self._store.atomic_write(
                [Mutation.create(NOTIFICATIONS, notification.id, notification.to_document())]
            )
        except TransactionError as exc:
            raise NotificationError(
                "Could not record notification", user_id=user_id, type=type
            ) from exc


class JsonlNotificationSink:
    """Append-only sink writing one JSON object per line."""

    def __init__(self, path: Path, *, now_provider: Callable[[], Any] | None = None):
        self._path = path
        self._now_provider = now_provider or pendulum.now
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def send(
        self,
        user_id: str,
        type: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        record = {
            "user_id": user_id,
            "type": type,
            "message": message,
            "metadata": metadata or {},
            "created_at": format_timestamp(self._now_provider()),
        }
        try:
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, ensure_ascii=False, default=str))
                handle.write("\n")
        except OSError as exc:
            raise NotificationError("Could not append notification", path=str(self._path)) from exc


class NotificationDispatcher:
    """Deliver planned notifications without letting failures escape."""

    def __init__(self, sink: NotificationSink) -> None:
        self._sink = sink
        self._logger = structlog.get_logger(__name__)

    def dispatch(self, notifications: Iterable[PlannedNotification]) -> int:
        """Send each notification once and return how many were delivered."""
        delivered = 0
        for notification in notifications:
            try:
                self._sink.send(
                    notification.user_id,
                    notification.type,
                    notification.message,
                    notification.metadata,
                )
            except Exception as exc:  # noqa: BLE001
                self._logger.warning(
                    "notification.failed",
                    user_id=notification.user_id,
                    type=notification.type,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                continue
            delivered += 1
        return delivered
