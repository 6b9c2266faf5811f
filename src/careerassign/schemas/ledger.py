"""Ledger records: course applications, job applications and notifications."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

import pendulum
from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from ..ledger.store import Snapshot

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

RecordT = TypeVar("RecordT", bound="LedgerRecord")


def format_timestamp(moment: datetime | None = None) -> str:
    """Render a fixed-width UTC timestamp whose lexical order is chronological."""
    moment = moment or pendulum.now("UTC")
    return pendulum.instance(moment).in_timezone("UTC").strftime(TIMESTAMP_FORMAT)


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    WAITING = "waiting"
    ADMITTED = "admitted"
    REJECTED = "rejected"


class JobApplicationStatus(str, Enum):
    PENDING = "pending"
    REJECTED = "rejected"


class LedgerRecord(BaseModel):
    """Document stored in the ledger.

    ``id`` and ``version`` come from the store snapshot and are never written
    back into the document body.
    """

    id: str = Field(default="", exclude=True)
    version: int = Field(default=0, exclude=True)

    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    @classmethod
    def from_snapshot(cls: type[RecordT], snapshot: "Snapshot") -> RecordT:
        return cls.model_validate(
            {**snapshot.data, "id": snapshot.id, "version": snapshot.version}
        )

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class Application(LedgerRecord):
    """Course admission application."""

    candidate_id: str
    course_id: str
    institution_id: str
    course_name: str = ""
    institution_name: str = ""
    status: ApplicationStatus = ApplicationStatus.PENDING
    submitted_at: str
    confirmed: bool = False


class JobApplication(LedgerRecord):
    """Job application with the match score captured at submission."""

    candidate_id: str
    job_id: str
    match_score: float = Field(ge=0.0, le=1.0)
    status: JobApplicationStatus = JobApplicationStatus.PENDING
    ready_for_interview: bool = False
    applied_at: str
    interview_scheduled: bool = False
    interview_date: str | None = None
    interview_expectations: str | None = None


class Notification(LedgerRecord):
    """Append-only message addressed to a platform user."""

    user_id: str
    type: str
    message: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    read: bool = False
    created_at: str
