"""Domain models for abfunnel.

Pure Python dataclasses representing domain entities. They are
independent of SQLAlchemy; the repository converts rows into them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Literal

# ============================================================================
# Tested field
# ============================================================================


class TestField(str, Enum):
    """The page attribute an experiment varies.

    Each member carries the one page column it owns. The set is closed:
    adding a member means adding its column here and nowhere else.
    """

    __test__ = False  # not a pytest class

    HEADLINE = ("headline", "thankyou_headline", "thank-you page headline")
    SUBLINE = ("subline", "thankyou_subline", "thank-you page subline/subtitle")
    VSL_URL = ("vsl_url", "vsl_url", "vsl_url")
    PASS_MESSAGE = (
        "pass_message",
        "qualification_pass_message",
        "qualification pass message (shown to qualified leads)",
    )

    column: str
    label: str

    def __new__(cls, value: str, column: str, label: str) -> TestField:
        member = str.__new__(cls, value)
        member._value_ = value
        member.column = column
        member.label = label
        return member

    @classmethod
    def parse(cls, value: str | None) -> TestField | None:
        """Return the member named by value, or None if it is not one."""
        for member in cls:
            if member.value == value:
                return member
        return None

    @classmethod
    def choices(cls) -> list[str]:
        return [member.value for member in cls]

    def read(self, page: PageEntity) -> str | None:
        """Read this field's value from a page."""
        return getattr(page, self.column)

    def write(self, values: dict[str, Any], value: str | None) -> None:
        """Set this field's value in a column->value mapping."""
        values[self.column] = value


# ============================================================================
# Experiment Domain
# ============================================================================

ExperimentStatus = Literal["running", "paused", "completed"]


@dataclass
class ExperimentEntity:
    """Domain model for an A/B experiment."""

    id: str
    funnel_page_id: str
    user_id: str
    name: str
    test_field: str
    status: ExperimentStatus
    min_sample_size: int = 100
    winner_id: str | None = None
    significance: float | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def field(self) -> TestField:
        member = TestField.parse(self.test_field)
        if member is None:
            raise ValueError(f"Experiment {self.id} has unknown test_field: {self.test_field}")
        return member

    @property
    def is_active(self) -> bool:
        return self.status in ("running", "paused")


# ============================================================================
# Page Domain
# ============================================================================


@dataclass
class PageEntity:
    """Domain model for a funnel page (control or variant).

    Carries the tested columns; the full clonable row is only needed
    at variant creation and stays inside the repository.
    """

    id: str
    user_id: str
    slug: str
    is_variant: bool
    is_published: bool
    variant_label: str | None = None
    experiment_id: str | None = None
    lead_magnet_id: str | None = None
    thankyou_headline: str | None = None
    thankyou_subline: str | None = None
    vsl_url: str | None = None
    qualification_pass_message: str | None = None
    created_at: datetime | None = None

    @property
    def display_label(self) -> str:
        if not self.is_variant:
            return "Control"
        return self.variant_label or "Variant B"


@dataclass
class LeadMagnetEntity:
    """Domain model for a lead magnet."""

    id: str
    title: str | None = None
    archetype: str | None = None
    concept_json: str | None = None


# ============================================================================
# Observation Domain
# ============================================================================


@dataclass
class PageObservation:
    """Cumulative view/completion counts for one page."""

    page: PageEntity
    views: int
    completions: int

    @property
    def rate(self) -> float:
        return self.completions / self.views if self.views > 0 else 0.0
