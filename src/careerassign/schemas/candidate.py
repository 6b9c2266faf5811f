from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

CERTIFICATE_TYPE = "certificate"


def clean_names(value: Any) -> list[str]:
    """Trim entries and drop blanks from a list of subject or skill names."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    return [str(item).strip() for item in value if item is not None and str(item).strip()]


def normalize_names(values: list[str]) -> set[str]:
    """Case-insensitive comparison keys for subject or skill names."""
    return {value.strip().lower() for value in values if value and value.strip()}


class CandidateDocument(BaseModel):
    """Uploaded document metadata supplied by the storage collaborator."""

    id: str
    type: str
    filename: str = ""

    model_config = ConfigDict(extra="ignore")


class CandidateProfile(BaseModel):
    """Academic and professional profile owned by a candidate."""

    candidate_id: str
    name: str | None = None
    gpa: float = Field(default=0.0, ge=0.0, le=5.0)
    experience_years: float = Field(default=0.0, ge=0.0)
    subjects: list[str] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    documents: list[CandidateDocument] = Field(default_factory=list)
    completed_studies: bool = False

    model_config = ConfigDict(extra="ignore")

    @field_validator("subjects", "skills", mode="before")
    @classmethod
    def _clean(cls, value: Any) -> list[str]:
        return clean_names(value)

    @property
    def certificate_count(self) -> int:
        return sum(1 for document in self.documents if document.type == CERTIFICATE_TYPE)
