"""Pydantic configuration schema for CLI YAML input."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ScoringSettings(BaseModel):
    weights: dict[str, float] | None = None
    certificate_cap: int | None = Field(default=None, ge=1)
    gpa_floor: float | None = Field(default=None, gt=0.0)
    experience_floor: float | None = Field(default=None, gt=0.0)
    match_threshold: float | None = Field(default=None, ge=0.0, le=1.0)

    model_config = ConfigDict(extra="forbid")


class AdmissionSettings(BaseModel):
    scope: Literal["global", "institution"] | None = None
    max_commit_attempts: int | None = Field(default=None, ge=1)
    applications_per_institution: int | None = Field(default=None, ge=1)

    model_config = ConfigDict(extra="forbid")


class AppConfig(BaseModel):
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    admission: AdmissionSettings = Field(default_factory=AdmissionSettings)

    def to_settings(self) -> dict[str, Any]:
        settings: dict[str, Any] = {}
        scoring = self.scoring.model_dump(exclude_none=True)
        if scoring:
            settings["scoring"] = scoring
        admission = self.admission.model_dump(exclude_none=True)
        if admission:
            settings["admission"] = admission
        return settings


def load_config(raw: Any) -> AppConfig:
    """Validate a raw mapping, typically parsed YAML. Raises ``pydantic.ValidationError``."""
    if raw is None:
        return AppConfig()
    return AppConfig.model_validate(raw)
