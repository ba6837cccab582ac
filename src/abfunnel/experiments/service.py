"""Experiment lifecycle operations.

create, inspect, list, pause/resume, declare winner, delete. All checks
that can fail (ownership, conflict, validation) run before the first
write. Database operations go through repo.
"""

from __future__ import annotations

import logging
import secrets
import time
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import IntegrityError

from abfunnel.core.errors import ConflictError, NotFoundError, ValidationError
from abfunnel.core.significance import completion_rate_percent
from abfunnel.db import repo
from abfunnel.db.repo import CLONE_FIELDS, DbSession
from abfunnel.experiments.observations import collect_observations, winner_significance
from abfunnel.experiments.winner import complete_with_winner
from abfunnel.models.domain import ExperimentEntity, PageObservation, TestField
from abfunnel.models.types import (
    CreatedExperiment,
    ExperimentCreate,
    ExperimentDetail,
    ExperimentPatch,
    ExperimentSummary,
    PatchResult,
    VariantStats,
)

logger = logging.getLogger(__name__)

DEFAULT_VARIANT_LABEL = "Variant B"
DEFAULT_MIN_SAMPLE_SIZE = 100

VALID_ACTIONS = ("pause", "resume", "declare_winner")

_CONFLICT_MESSAGE = (
    "An active experiment already exists for this funnel page. Complete or delete it first."
)


# ============================================================================
# Create
# ============================================================================


def create_experiment(
    session: DbSession,
    user_id: str,
    request: ExperimentCreate,
) -> CreatedExperiment:
    """Create a running experiment with one cloned variant page.

    The experiment row and the variant row are written as a unit: if the
    variant cannot be created, the experiment row is removed again and the
    original error propagates.

    Args:
        session: Database session.
        user_id: Caller; must own the control page.
        request: Control page, name, tested field and variant copy.

    Returns:
        CreatedExperiment with the new experiment and variant ids.

    Raises:
        NotFoundError: Control page missing, not owned, or itself a variant.
        ConflictError: The page already has a running or paused experiment.
        ValidationError: Unknown test field or empty name.
    """
    control = repo.get_control_page(session, request.funnel_page_id, user_id)
    if control is None:
        raise NotFoundError("Funnel page")

    if repo.has_active_experiment(session, request.funnel_page_id):
        raise ConflictError(_CONFLICT_MESSAGE)

    field = TestField.parse(request.test_field)
    if field is None:
        raise ValidationError(f"testField must be one of: {', '.join(TestField.choices())}")

    if not request.name or not request.name.strip():
        raise ValidationError("name is required")

    experiment = ExperimentEntity(
        id=str(uuid.uuid4()),
        funnel_page_id=request.funnel_page_id,
        user_id=user_id,
        name=request.name.strip(),
        test_field=field.value,
        status="running",
        min_sample_size=DEFAULT_MIN_SAMPLE_SIZE,
        started_at=datetime.now(timezone.utc),
    )

    try:
        repo.create_experiment(session, experiment)
    except IntegrityError as e:
        # Lost a create race: the partial unique index saw the other one
        repo.rollback(session)
        raise ConflictError(_CONFLICT_MESSAGE) from e

    try:
        variant_values = _build_variant_values(control, field, experiment.id, request)
        variant = repo.create_variant_page(session, variant_values)
        repo.link_page_to_experiment(session, request.funnel_page_id, experiment.id)
        repo.commit(session)
    except Exception:
        logger.exception(
            "Variant creation failed for experiment %s; removing experiment", experiment.id
        )
        _compensate_create(session, experiment.id)
        raise

    logger.info(
        "Created experiment %s on page %s (field=%s, variant=%s)",
        experiment.id,
        request.funnel_page_id,
        field.value,
        variant.id,
    )
    return CreatedExperiment(experiment_id=experiment.id, variant_id=variant.id)


def _build_variant_values(
    control: dict[str, Any],
    field: TestField,
    experiment_id: str,
    request: ExperimentCreate,
) -> dict[str, Any]:
    """Clone the allow-listed control columns and override the tested one.

    Pure function - no database access.
    """
    values = {name: control[name] for name in CLONE_FIELDS}
    field.write(values, request.variant_value)
    values.update(
        id=str(uuid.uuid4()),
        slug=f"{control['slug']}-variant-{_slug_token()}",
        experiment_id=experiment_id,
        is_variant=True,
        variant_label=request.variant_label or DEFAULT_VARIANT_LABEL,
        is_published=True,
    )
    return values


def _slug_token() -> str:
    """Millisecond timestamp plus random hex, unique without retries."""
    return f"{time.time_ns() // 1_000_000}{secrets.token_hex(3)}"


def _compensate_create(session: DbSession, experiment_id: str) -> None:
    """Undo the experiment insert after a failed variant insert."""
    repo.rollback(session)
    if repo.get_experiment_unscoped(session, experiment_id) is not None:
        repo.delete_experiment(session, experiment_id)
        repo.commit(session)


# ============================================================================
# Read
# ============================================================================


def list_experiments(
    session: DbSession,
    user_id: str,
    funnel_page_id: str | None = None,
) -> list[ExperimentSummary]:
    """List the caller's experiments, newest first."""
    experiments = repo.list_experiments(session, user_id, funnel_page_id)
    return [to_summary(e) for e in experiments]


def get_experiment(session: DbSession, experiment_id: str, user_id: str) -> ExperimentDetail | None:
    """Get an experiment with per-page observations.

    Args:
        session: Database session.
        experiment_id: Experiment to fetch.
        user_id: Caller; must own the experiment.

    Returns:
        ExperimentDetail, or None if not found or not owned.
    """
    experiment = repo.get_experiment(session, experiment_id, user_id)
    if experiment is None:
        return None

    pages = repo.get_experiment_pages(session, experiment.id, experiment.funnel_page_id)
    observations = collect_observations(session, pages)
    field = TestField.parse(experiment.test_field)

    return ExperimentDetail(
        experiment=to_summary(experiment),
        variants=[_variant_stats(obs, field) for obs in observations],
    )


def to_summary(experiment: ExperimentEntity) -> ExperimentSummary:
    """Convert an experiment entity to its API shape."""
    return ExperimentSummary(
        id=experiment.id,
        funnel_page_id=experiment.funnel_page_id,
        name=experiment.name,
        status=experiment.status,
        test_field=experiment.test_field,
        winner_id=experiment.winner_id,
        significance=experiment.significance,
        min_sample_size=experiment.min_sample_size,
        started_at=experiment.started_at,
        completed_at=experiment.completed_at,
        created_at=experiment.created_at,
    )


def _variant_stats(obs: PageObservation, field: TestField | None) -> VariantStats:
    page = obs.page
    return VariantStats(
        page_id=page.id,
        is_variant=page.is_variant,
        label=page.display_label,
        views=obs.views,
        completions=obs.completions,
        completion_rate=completion_rate_percent(obs.views, obs.completions),
        tested_field_value=field.read(page) if field else None,
        headline=page.thankyou_headline,
        subline=page.thankyou_subline,
        vsl_url=page.vsl_url,
        pass_message=page.qualification_pass_message,
    )


# ============================================================================
# Patch
# ============================================================================


def patch_experiment(
    session: DbSession,
    experiment_id: str,
    user_id: str,
    request: ExperimentPatch,
) -> PatchResult | None:
    """Apply a lifecycle action.

    Args:
        session: Database session.
        experiment_id: Experiment to change.
        user_id: Caller; must own the experiment.
        request: pause, resume, or declare_winner (with winner_id).

    Returns:
        PatchResult with the resulting status, or None if not found.

    Raises:
        ValidationError: Unknown action, invalid state for the action,
            or a winner that does not belong to the experiment.
    """
    experiment = repo.get_experiment(session, experiment_id, user_id)
    if experiment is None:
        return None

    if request.action == "pause":
        if experiment.status != "running" or not repo.transition_status(
            session, experiment.id, ("running",), "paused"
        ):
            raise ValidationError("Can only pause a running experiment")
        repo.commit(session)
        logger.info("Paused experiment %s", experiment.id)
        return PatchResult(status="paused")

    if request.action == "resume":
        if experiment.status != "paused" or not repo.transition_status(
            session, experiment.id, ("paused",), "running"
        ):
            raise ValidationError("Can only resume a paused experiment")
        repo.commit(session)
        logger.info("Resumed experiment %s", experiment.id)
        return PatchResult(status="running")

    if request.action == "declare_winner":
        return _declare_winner(session, experiment, request.winner_id)

    raise ValidationError(f"action must be one of: {', '.join(VALID_ACTIONS)}")


def _declare_winner(
    session: DbSession,
    experiment: ExperimentEntity,
    winner_id: str | None,
) -> PatchResult:
    if not winner_id:
        raise ValidationError("winnerId is required to declare a winner")

    if experiment.status == "completed":
        return PatchResult(status="completed", winner_id=experiment.winner_id)

    winner = repo.get_experiment_page(session, winner_id, experiment.id, experiment.funnel_page_id)
    if winner is None:
        raise ValidationError("Winner must be a variant in this experiment")

    pages = repo.get_experiment_pages(session, experiment.id, experiment.funnel_page_id)
    significance = winner_significance(collect_observations(session, pages), winner.id)

    if not complete_with_winner(session, experiment, winner, significance=significance):
        current = repo.get_experiment_unscoped(session, experiment.id)
        return PatchResult(
            status=current.status if current else "completed",
            winner_id=current.winner_id if current else None,
        )

    return PatchResult(status="completed", winner_id=winner.id)


# ============================================================================
# Delete
# ============================================================================


def delete_experiment(session: DbSession, experiment_id: str, user_id: str) -> bool | None:
    """Delete an experiment and its variant pages, in any status.

    Returns:
        True when deleted, None if not found or not owned.
    """
    experiment = repo.get_experiment(session, experiment_id, user_id)
    if experiment is None:
        return None

    if experiment.status == "running":
        logger.warning(
            "Deleting running experiment %s; routing for page %s must stop splitting traffic",
            experiment.id,
            experiment.funnel_page_id,
        )

    removed = repo.delete_variant_pages(session, experiment.id)
    repo.clear_page_experiment(session, experiment.funnel_page_id)
    repo.delete_experiment(session, experiment.id)
    repo.commit(session)

    logger.info("Deleted experiment %s and %d variant page(s)", experiment.id, removed)
    return True
