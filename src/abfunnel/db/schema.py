"""Database schema for abfunnel.

Experiment tables plus the slice of the funnel page store the engine
reads and writes. Constraints enforce the correctness invariants:
one active experiment per control page, unique page slugs.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Statuses that count as "active" for the one-experiment-per-page rule
ACTIVE_STATUSES = ("running", "paused")

_ACTIVE_WHERE = text("status IN ('running', 'paused')")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class FunnelPage(Base):
    """A funnel page: either a control page or an experiment variant."""

    __tablename__ = "funnel_pages"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    # Experiment metadata
    is_variant: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    variant_label: Mapped[str | None] = mapped_column(String(64), nullable=True)
    experiment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Content
    lead_magnet_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    team_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    optin_headline: Mapped[str | None] = mapped_column(Text, nullable=True)
    optin_subline: Mapped[str | None] = mapped_column(Text, nullable=True)
    optin_button_text: Mapped[str | None] = mapped_column(String(255), nullable=True)
    optin_social_proof: Mapped[str | None] = mapped_column(Text, nullable=True)
    thankyou_headline: Mapped[str | None] = mapped_column(Text, nullable=True)
    thankyou_subline: Mapped[str | None] = mapped_column(Text, nullable=True)
    vsl_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    calendly_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    qualification_pass_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    qualification_fail_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    theme: Mapped[str | None] = mapped_column(String(32), nullable=True)
    primary_color: Mapped[str | None] = mapped_column(String(32), nullable=True)
    background_style: Mapped[str | None] = mapped_column(String(32), nullable=True)
    logo_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    qualification_form_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    font_family: Mapped[str | None] = mapped_column(String(128), nullable=True)
    font_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    target_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    library_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    external_resource_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)

    __table_args__ = (Index("ix_funnel_pages_experiment", "experiment_id"),)


class AbExperiment(Base):
    """An A/B experiment on a single field of a control page.

    Invariant: at most one experiment with status in (running, paused)
    per funnel_page_id, enforced by a partial unique index.
    """

    __tablename__ = "ab_experiments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    funnel_page_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("funnel_pages.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    test_field: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="running")
    winner_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    significance: Mapped[float | None] = mapped_column(Float, nullable=True)
    min_sample_size: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index(
            "uq_active_experiment_per_page",
            "funnel_page_id",
            unique=True,
            sqlite_where=_ACTIVE_WHERE,
            postgresql_where=_ACTIVE_WHERE,
        ),
        Index("ix_ab_experiments_status", "status"),
    )


class PageView(Base):
    """A page view event (append-only)."""

    __tablename__ = "page_views"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    funnel_page_id: Mapped[str] = mapped_column(String(64), nullable=False)
    page_type: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)

    __table_args__ = (Index("ix_page_views_page_type", "funnel_page_id", "page_type"),)


class FunnelLead(Base):
    """A lead captured on a funnel page.

    A lead with qualification_answers set counts as a completion.
    """

    __tablename__ = "funnel_leads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    funnel_page_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    qualification_answers: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)


class LeadMagnet(Base):
    """Lead magnet backing a funnel page, used as copy-suggestion context."""

    __tablename__ = "lead_magnets"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    archetype: Mapped[str | None] = mapped_column(String(64), nullable=True)
    concept_json: Mapped[str | None] = mapped_column(Text, nullable=True)
