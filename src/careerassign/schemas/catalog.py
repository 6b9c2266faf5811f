"""Requirement sets and the catalog records that carry them."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .candidate import clean_names
from .ledger import LedgerRecord


class JobRequirements(BaseModel):
    """Thresholds a company attaches to a job posting."""

    gpa_threshold: float | None = Field(default=None, ge=0.0, le=5.0)
    experience_years: float | None = Field(default=None, ge=0.0)
    skills: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @field_validator("skills", mode="before")
    @classmethod
    def _clean(cls, value: Any) -> list[str]:
        return clean_names(value)


class CourseRequirements(BaseModel):
    """Hard entry gate for a course."""

    min_gpa: float = Field(default=0.0, ge=0.0, le=5.0)
    subjects: list[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @field_validator("min_gpa", mode="before")
    @classmethod
    def _default_min_gpa(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    @field_validator("subjects", mode="before")
    @classmethod
    def _clean(cls, value: Any) -> list[str]:
        return clean_names(value)


class Institution(LedgerRecord):
    name: str = ""
    owner_id: str | None = None


class Course(LedgerRecord):
    name: str = ""
    institution_id: str
    faculty_id: str | None = None
    requirements: CourseRequirements = Field(default_factory=CourseRequirements)
    published: bool = False


class Job(LedgerRecord):
    title: str = ""
    company_id: str
    requirements: JobRequirements = Field(default_factory=JobRequirements)
    posted_at: str | None = None
