"""Typer CLI entrypoint for the allocation engine."""

from __future__ import annotations

import json
from contextlib import contextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Any, Iterator, Optional

import pydantic
import typer
import yaml

from .container import AllocationContainer, create_container
from .errors import AllocationError
from .ledger import JsonFileLedgerStore
from .logging import configure_logging
from .schemas import CandidateProfile, CourseRequirements, JobRequirements, LedgerRecord
from .schemas.config import load_config

app = typer.Typer(help="Admissions and job-matching allocation CLI.")

LEDGER_OPTION = typer.Option(..., dir_okay=False, help="Ledger JSON path (created if missing).")
CONFIG_OPTION = typer.Option(None, exists=True, readable=True, dir_okay=False, help="YAML config path.")
LOG_LEVEL_OPTION = typer.Option("WARNING", help="Log level for structured logging.")


@app.command()
def score(
    profile: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Candidate profile JSON path."),
    requirements: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Job requirements JSON path."),
    config: Optional[Path] = CONFIG_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Print the match score breakdown for a profile against job requirements."""
    with _reporting_errors():
        container = _build_container(None, config, log_level)
        engine = container.score_engine()
        candidate = CandidateProfile.model_validate(_load_json(profile))
        job_requirements = JobRequirements.model_validate(_load_json(requirements))
        breakdown = engine.breakdown(candidate, job_requirements)
        payload = breakdown.as_dict()
        payload["match"] = engine.is_match(breakdown.total)
        _echo_json(payload)


@app.command()
def qualify(
    profile: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Candidate profile JSON path."),
    requirements: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Course requirements JSON path."),
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Print whether a profile passes a course's qualification gate."""
    with _reporting_errors():
        container = _build_container(None, None, log_level)
        candidate = CandidateProfile.model_validate(_load_json(profile))
        course_requirements = CourseRequirements.model_validate(_load_json(requirements))
        result = container.qualification_checker().check(candidate, course_requirements)
        payload = asdict(result)
        payload["qualified"] = result.qualified
        _echo_json(payload)


@app.command()
def apply(
    ledger: Path = LEDGER_OPTION,
    candidate: str = typer.Option(..., help="Candidate id."),
    course: str = typer.Option(..., help="Course id."),
    institution: str = typer.Option(..., help="Institution id."),
    config: Optional[Path] = CONFIG_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Apply to a course."""
    with _reporting_errors():
        container = _build_container(ledger, config, log_level)
        application = container.admission_coordinator().apply(candidate, course, institution)
        _echo_json(_record(application))


@app.command("set-status")
def set_status(
    ledger: Path = LEDGER_OPTION,
    application: str = typer.Option(..., help="Application id."),
    status: str = typer.Option(..., help="pending, waiting, admitted or rejected."),
    institution: str = typer.Option(..., help="Acting institution id."),
    config: Optional[Path] = CONFIG_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Record an institution decision on an application."""
    with _reporting_errors():
        container = _build_container(ledger, config, log_level)
        updated = container.admission_coordinator().set_application_status(
            application, status, institution
        )
        _echo_json(_record(updated))


@app.command()
def select(
    ledger: Path = LEDGER_OPTION,
    candidate: str = typer.Option(..., help="Candidate id."),
    application: str = typer.Option(..., help="Admitted application to keep."),
    config: Optional[Path] = CONFIG_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Confirm one admission and run the waiting-list cascade."""
    with _reporting_errors():
        container = _build_container(ledger, config, log_level)
        plan = container.admission_coordinator().select_admission(candidate, application)
        _echo_json(
            {
                "candidate_id": plan.candidate_id,
                "selected_application_id": plan.selected_application_id,
                "rejected_application_ids": plan.rejected_application_ids,
                "promotions": [asdict(promotion) for promotion in plan.promotions],
                "notifications": [asdict(item) for item in plan.notifications],
            }
        )


@app.command("match-jobs")
def match_jobs(
    ledger: Path = LEDGER_OPTION,
    candidate: str = typer.Option(..., help="Candidate id."),
    limit: int = typer.Option(20, min=1, help="Number of recent postings to consider."),
    config: Optional[Path] = CONFIG_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """List recent jobs the candidate matches."""
    with _reporting_errors():
        container = _build_container(ledger, config, log_level)
        matches = container.job_matcher().matching_jobs(candidate, limit=limit)
        _echo_json([asdict(match) for match in matches])


@app.command("apply-job")
def apply_job(
    ledger: Path = LEDGER_OPTION,
    candidate: str = typer.Option(..., help="Candidate id."),
    job: str = typer.Option(..., help="Job id."),
    config: Optional[Path] = CONFIG_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Apply to a job when the match score clears the threshold."""
    with _reporting_errors():
        container = _build_container(ledger, config, log_level)
        application = container.job_matcher().apply_to_job(candidate, job)
        _echo_json(_record(application))


def _build_container(
    ledger: Path | None,
    config: Path | None,
    log_level: str,
) -> AllocationContainer:
    configure_logging(log_level)
    settings = _load_settings(config)
    store = JsonFileLedgerStore(ledger) if ledger is not None else None
    return create_container(settings=settings, store=store)


def _load_settings(config: Path | None) -> dict[str, Any]:
    if config is None:
        return {}
    with config.open("r", encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle) or {}
    if not isinstance(loaded, dict):
        raise typer.BadParameter("Config file must be a YAML object", param_name="config")
    return load_config(loaded).to_settings()


def _load_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as handle:
        try:
            return json.load(handle)
        except json.JSONDecodeError as exc:
            raise typer.BadParameter(f"Invalid JSON in {path.name}: {exc}") from exc


def _record(record: LedgerRecord) -> dict[str, Any]:
    return {"id": record.id, **record.to_document()}


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@contextmanager
def _reporting_errors() -> Iterator[None]:
    try:
        yield
    except AllocationError as exc:
        typer.echo(f"error[{exc.code}]: {exc.message}", err=True)
        raise typer.Exit(code=1) from exc
    except pydantic.ValidationError as exc:
        typer.echo(f"error[validation]: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    except ValueError as exc:
        typer.echo(f"error[invalid_input]: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def main() -> None:
    app()


if __name__ == "__main__":
    main()
