"""Pydantic models for the abfunnel API.

Request bodies accept the camelCase keys the funnel builder UI sends
as well as snake_case field names.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for request models: camelCase aliases, snake_case accepted."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Requests
# ============================================================================


class ExperimentCreate(ApiModel):
    """Create an experiment and its variant page."""

    funnel_page_id: str
    name: str
    test_field: str
    variant_value: str | None = None
    variant_label: str | None = None


class ExperimentPatch(ApiModel):
    """Lifecycle action on an experiment."""

    action: str
    winner_id: str | None = None


class SuggestRequest(ApiModel):
    """Ask for copy ideas for one tested field."""

    funnel_page_id: str
    test_field: str


# ============================================================================
# Responses
# ============================================================================


class ExperimentSummary(BaseModel):
    """Experiment row as returned by the API."""

    id: str
    funnel_page_id: str
    name: str
    status: Literal["running", "paused", "completed"]
    test_field: str
    winner_id: str | None
    significance: float | None
    min_sample_size: int
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime | None


class ExperimentList(BaseModel):
    """List of experiments."""

    experiments: list[ExperimentSummary]


class VariantStats(BaseModel):
    """Per-page read model: identity, observations and tested copy."""

    page_id: str
    is_variant: bool
    label: str
    views: int
    completions: int
    completion_rate: float  # percent, 2 decimals
    tested_field_value: str | None
    headline: str | None
    subline: str | None
    vsl_url: str | None
    pass_message: str | None


class ExperimentDetail(BaseModel):
    """Experiment with stats for the control and every variant."""

    experiment: ExperimentSummary
    variants: list[VariantStats]


class CreatedExperiment(BaseModel):
    """Ids of a newly created experiment and its variant page."""

    experiment_id: str
    variant_id: str


class PatchResult(BaseModel):
    """Status after a lifecycle action."""

    status: Literal["running", "paused", "completed"]
    winner_id: str | None = None


class DeleteResult(BaseModel):
    """Deletion acknowledgement."""

    deleted: bool = True


class Suggestion(BaseModel):
    """One copy alternative for a tested field."""

    label: str
    value: str | None
    rationale: str


class SuggestionList(BaseModel):
    """Copy alternatives."""

    suggestions: list[Suggestion] = Field(default_factory=list)


class CheckSummary(BaseModel):
    """Outcome of one scheduler pass."""

    checked: int
    completed: int
    reconciled: int = 0
