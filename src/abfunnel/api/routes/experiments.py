"""A/B experiments API endpoints.

GET    /api/ab-experiments              - List experiments (optional funnelPageId)
POST   /api/ab-experiments              - Create experiment + clone variant
POST   /api/ab-experiments/suggest      - Copy suggestions for a field
GET    /api/ab-experiments/{id}         - Experiment with variant stats
PATCH  /api/ab-experiments/{id}         - pause, resume, declare_winner
DELETE /api/ab-experiments/{id}         - Delete experiment and variants
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from abfunnel.api.app import get_current_user_id, get_db_session, get_suggestion_provider
from abfunnel.db.repo import DbSession
from abfunnel.experiments import service
from abfunnel.experiments.suggest import suggest_variants
from abfunnel.models.types import (
    CreatedExperiment,
    DeleteResult,
    ExperimentCreate,
    ExperimentDetail,
    ExperimentList,
    ExperimentPatch,
    PatchResult,
    SuggestionList,
    SuggestRequest,
)
from abfunnel.providers.base import SuggestionProviderBase

router = APIRouter()


@router.get("/ab-experiments", response_model=ExperimentList)
def list_experiments(
    funnel_page_id: str | None = Query(default=None, alias="funnelPageId"),
    user_id: str = Depends(get_current_user_id),
    session: DbSession = Depends(get_db_session),
) -> ExperimentList:
    """List the caller's experiments, newest first."""
    return ExperimentList(experiments=service.list_experiments(session, user_id, funnel_page_id))


@router.post("/ab-experiments", response_model=CreatedExperiment, status_code=201)
def create_experiment(
    body: ExperimentCreate,
    user_id: str = Depends(get_current_user_id),
    session: DbSession = Depends(get_db_session),
) -> CreatedExperiment:
    """Create an experiment and its variant page.

    Raises:
        404 if the funnel page is not found, 409 if an experiment is
        already active on it, 400 for an invalid test field.
    """
    return service.create_experiment(session, user_id, body)


@router.post("/ab-experiments/suggest", response_model=SuggestionList)
def suggest(
    body: SuggestRequest,
    user_id: str = Depends(get_current_user_id),
    session: DbSession = Depends(get_db_session),
    provider: SuggestionProviderBase = Depends(get_suggestion_provider),
) -> SuggestionList:
    """Suggest variant copy for the tested field."""
    return suggest_variants(session, user_id, body, provider)


@router.get("/ab-experiments/{experiment_id}", response_model=ExperimentDetail)
def get_experiment(
    experiment_id: str,
    user_id: str = Depends(get_current_user_id),
    session: DbSession = Depends(get_db_session),
) -> ExperimentDetail:
    """Get experiment with per-page views, completions and rates.

    Raises:
        HTTPException: 404 if experiment not found.
    """
    detail = service.get_experiment(session, experiment_id, user_id)
    if detail is None:
        raise HTTPException(status_code=404, detail="Experiment not found")
    return detail


@router.patch(
    "/ab-experiments/{experiment_id}",
    response_model=PatchResult,
    response_model_exclude_none=True,
)
def patch_experiment(
    experiment_id: str,
    body: ExperimentPatch,
    user_id: str = Depends(get_current_user_id),
    session: DbSession = Depends(get_db_session),
) -> PatchResult:
    """Pause, resume, or declare a winner.

    Raises:
        HTTPException: 404 if experiment not found.
    """
    result = service.patch_experiment(session, experiment_id, user_id, body)
    if result is None:
        raise HTTPException(status_code=404, detail="Experiment not found")
    return result


@router.delete("/ab-experiments/{experiment_id}", response_model=DeleteResult)
def delete_experiment(
    experiment_id: str,
    user_id: str = Depends(get_current_user_id),
    session: DbSession = Depends(get_db_session),
) -> DeleteResult:
    """Delete an experiment and its variant pages.

    Raises:
        HTTPException: 404 if experiment not found.
    """
    if service.delete_experiment(session, experiment_id, user_id) is None:
        raise HTTPException(status_code=404, detail="Experiment not found")
    return DeleteResult(deleted=True)
