"""Repository pattern for database operations.

Encapsulates all SQLAlchemy queries, keeping domain logic pure.
Returns domain models (not SQLAlchemy entities) to external callers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Iterable

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session

from abfunnel.db.schema import (
    ACTIVE_STATUSES,
    AbExperiment,
    FunnelLead,
    FunnelPage,
    LeadMagnet,
    PageView,
)
from abfunnel.models.domain import ExperimentEntity, LeadMagnetEntity, PageEntity

if TYPE_CHECKING:
    from sqlalchemy.orm import Session as DbSession
else:
    DbSession = Session

# Re-export for external use
__all__ = ["CLONE_FIELDS", "DbSession"]

# Page columns copied from control to variant. Explicit so that control and
# variant differ only in the tested column.
CLONE_FIELDS: tuple[str, ...] = (
    "lead_magnet_id",
    "user_id",
    "team_id",
    "optin_headline",
    "optin_subline",
    "optin_button_text",
    "optin_social_proof",
    "thankyou_headline",
    "thankyou_subline",
    "vsl_url",
    "calendly_url",
    "qualification_pass_message",
    "qualification_fail_message",
    "theme",
    "primary_color",
    "background_style",
    "logo_url",
    "qualification_form_id",
    "font_family",
    "font_url",
    "target_type",
    "library_id",
    "external_resource_id",
)

# Page views of this type count towards an experiment
QUALIFYING_VIEW_TYPE = "thankyou"


# ============================================================================
# Converters: SQLAlchemy -> Domain
# ============================================================================


def _experiment_to_entity(exp: AbExperiment) -> ExperimentEntity:
    """Convert SQLAlchemy AbExperiment to domain entity."""
    return ExperimentEntity(
        id=exp.id,
        funnel_page_id=exp.funnel_page_id,
        user_id=exp.user_id,
        name=exp.name,
        test_field=exp.test_field,
        status=exp.status,
        min_sample_size=exp.min_sample_size,
        winner_id=exp.winner_id,
        significance=exp.significance,
        started_at=exp.started_at,
        completed_at=exp.completed_at,
        created_at=exp.created_at,
    )


def _page_to_entity(page: FunnelPage) -> PageEntity:
    """Convert SQLAlchemy FunnelPage to domain entity."""
    return PageEntity(
        id=page.id,
        user_id=page.user_id,
        slug=page.slug,
        is_variant=page.is_variant,
        is_published=page.is_published,
        variant_label=page.variant_label,
        experiment_id=page.experiment_id,
        lead_magnet_id=page.lead_magnet_id,
        thankyou_headline=page.thankyou_headline,
        thankyou_subline=page.thankyou_subline,
        vsl_url=page.vsl_url,
        qualification_pass_message=page.qualification_pass_message,
        created_at=page.created_at,
    )


def _lead_magnet_to_entity(lead_magnet: LeadMagnet) -> LeadMagnetEntity:
    """Convert SQLAlchemy LeadMagnet to domain entity."""
    return LeadMagnetEntity(
        id=lead_magnet.id,
        title=lead_magnet.title,
        archetype=lead_magnet.archetype,
        concept_json=lead_magnet.concept_json,
    )


# ============================================================================
# Experiment Repository
# ============================================================================


def list_experiments(
    session: DbSession, user_id: str, funnel_page_id: str | None = None
) -> list[ExperimentEntity]:
    """List a user's experiments, newest first."""
    query = session.query(AbExperiment).filter(AbExperiment.user_id == user_id)
    if funnel_page_id:
        query = query.filter(AbExperiment.funnel_page_id == funnel_page_id)
    experiments = query.order_by(AbExperiment.created_at.desc()).all()
    return [_experiment_to_entity(e) for e in experiments]


def get_experiment(session: DbSession, experiment_id: str, user_id: str) -> ExperimentEntity | None:
    """Get experiment by ID, scoped to its owner."""
    exp = (
        session.query(AbExperiment)
        .filter(AbExperiment.id == experiment_id, AbExperiment.user_id == user_id)
        .first()
    )
    return _experiment_to_entity(exp) if exp else None


def get_experiment_unscoped(session: DbSession, experiment_id: str) -> ExperimentEntity | None:
    """Get experiment by ID regardless of owner (scheduler use)."""
    exp = session.query(AbExperiment).filter(AbExperiment.id == experiment_id).first()
    return _experiment_to_entity(exp) if exp else None


def has_active_experiment(session: DbSession, funnel_page_id: str) -> bool:
    """True if the page has a running or paused experiment."""
    found = (
        session.query(AbExperiment.id)
        .filter(
            AbExperiment.funnel_page_id == funnel_page_id,
            AbExperiment.status.in_(ACTIVE_STATUSES),
        )
        .first()
    )
    return found is not None


def create_experiment(session: DbSession, entity: ExperimentEntity) -> ExperimentEntity:
    """Create a new experiment row and flush it."""
    exp = AbExperiment(
        id=entity.id,
        funnel_page_id=entity.funnel_page_id,
        user_id=entity.user_id,
        name=entity.name,
        test_field=entity.test_field,
        status=entity.status,
        min_sample_size=entity.min_sample_size,
        started_at=entity.started_at,
    )
    session.add(exp)
    session.flush()
    return entity


def delete_experiment(session: DbSession, experiment_id: str) -> None:
    """Delete an experiment row."""
    session.execute(delete(AbExperiment).where(AbExperiment.id == experiment_id))


def transition_status(
    session: DbSession,
    experiment_id: str,
    expected: Iterable[str],
    new_status: str,
    *,
    winner_id: str | None = None,
    significance: float | None = None,
    completed_at: datetime | None = None,
) -> bool:
    """Compare-and-swap the experiment status.

    The update only applies while the current status is one of
    `expected`. Returns True if this call performed the transition.
    """
    values: dict[str, Any] = {"status": new_status, "updated_at": datetime.now(timezone.utc)}
    if winner_id is not None:
        values["winner_id"] = winner_id
    if significance is not None:
        values["significance"] = significance
    if completed_at is not None:
        values["completed_at"] = completed_at

    result = session.execute(
        update(AbExperiment)
        .where(AbExperiment.id == experiment_id, AbExperiment.status.in_(tuple(expected)))
        .values(**values)
    )
    return result.rowcount == 1


def get_running_experiments(session: DbSession) -> list[ExperimentEntity]:
    """Get all experiments with status=running."""
    experiments = session.query(AbExperiment).filter(AbExperiment.status == "running").all()
    return [_experiment_to_entity(e) for e in experiments]


def get_completed_with_published_variants(session: DbSession) -> list[ExperimentEntity]:
    """Completed experiments that still have published, linked variant pages.

    These are completions interrupted between the status change and the
    variant cleanup.
    """
    linked = (
        select(FunnelPage.experiment_id)
        .where(
            FunnelPage.is_variant.is_(True),
            FunnelPage.is_published.is_(True),
            FunnelPage.experiment_id.is_not(None),
        )
        .distinct()
    )
    experiments = (
        session.query(AbExperiment)
        .filter(AbExperiment.status == "completed", AbExperiment.id.in_(linked))
        .all()
    )
    return [_experiment_to_entity(e) for e in experiments]


# ============================================================================
# Page Repository
# ============================================================================


def get_page(session: DbSession, page_id: str) -> PageEntity | None:
    """Get page by ID."""
    page = session.query(FunnelPage).filter(FunnelPage.id == page_id).first()
    return _page_to_entity(page) if page else None


def get_owned_page(session: DbSession, page_id: str, user_id: str) -> PageEntity | None:
    """Get page by ID, scoped to its owner."""
    page = (
        session.query(FunnelPage)
        .filter(FunnelPage.id == page_id, FunnelPage.user_id == user_id)
        .first()
    )
    return _page_to_entity(page) if page else None


def get_control_page(session: DbSession, page_id: str, user_id: str) -> dict[str, Any] | None:
    """Get an owned, non-variant page as a column mapping for cloning.

    Returns id, slug and every CLONE_FIELDS column.
    """
    page = (
        session.query(FunnelPage)
        .filter(
            FunnelPage.id == page_id,
            FunnelPage.user_id == user_id,
            FunnelPage.is_variant.is_(False),
        )
        .first()
    )
    if page is None:
        return None
    row = {field: getattr(page, field) for field in CLONE_FIELDS}
    row["id"] = page.id
    row["slug"] = page.slug
    return row


def get_experiment_pages(
    session: DbSession,
    experiment_id: str,
    control_page_id: str,
    *,
    published_only: bool = False,
) -> list[PageEntity]:
    """Get the control page and every variant linked to the experiment.

    The control page is always first.
    """
    query = session.query(FunnelPage).filter(
        or_(FunnelPage.id == control_page_id, FunnelPage.experiment_id == experiment_id)
    )
    if published_only:
        query = query.filter(FunnelPage.is_published.is_(True))
    pages = query.order_by(FunnelPage.is_variant, FunnelPage.created_at, FunnelPage.id).all()
    return [_page_to_entity(p) for p in pages]


def get_experiment_page(
    session: DbSession, page_id: str, experiment_id: str, control_page_id: str
) -> PageEntity | None:
    """Get a page only if it is the control or a variant of the experiment."""
    page = (
        session.query(FunnelPage)
        .filter(
            FunnelPage.id == page_id,
            or_(FunnelPage.id == control_page_id, FunnelPage.experiment_id == experiment_id),
        )
        .first()
    )
    return _page_to_entity(page) if page else None


def create_variant_page(session: DbSession, values: dict[str, Any]) -> PageEntity:
    """Insert a variant page row and flush it."""
    page = FunnelPage(**values)
    session.add(page)
    session.flush()
    return _page_to_entity(page)


def update_page_field(session: DbSession, page_id: str, column: str, value: Any) -> None:
    """Set a single content column on a page."""
    session.execute(
        update(FunnelPage)
        .where(FunnelPage.id == page_id)
        .values({column: value})
    )


def link_page_to_experiment(session: DbSession, page_id: str, experiment_id: str) -> None:
    """Point a page at an experiment."""
    session.execute(
        update(FunnelPage)
        .where(FunnelPage.id == page_id)
        .values(experiment_id=experiment_id)
    )


def clear_page_experiment(session: DbSession, page_id: str) -> None:
    """Detach a page from any experiment."""
    session.execute(
        update(FunnelPage)
        .where(FunnelPage.id == page_id)
        .values(experiment_id=None)
    )


def unpublish_and_detach_variants(session: DbSession, experiment_id: str) -> int:
    """Unpublish every variant of the experiment and clear its link.

    Returns:
        Number of variant pages updated.
    """
    result = session.execute(
        update(FunnelPage)
        .where(FunnelPage.experiment_id == experiment_id, FunnelPage.is_variant.is_(True))
        .values(is_published=False, experiment_id=None)
    )
    return result.rowcount


def delete_variant_pages(session: DbSession, experiment_id: str) -> int:
    """Delete every variant page of the experiment."""
    result = session.execute(
        delete(FunnelPage)
        .where(FunnelPage.experiment_id == experiment_id, FunnelPage.is_variant.is_(True))
    )
    return result.rowcount


def get_lead_magnet(session: DbSession, lead_magnet_id: str) -> LeadMagnetEntity | None:
    """Get lead magnet by ID."""
    lead_magnet = session.query(LeadMagnet).filter(LeadMagnet.id == lead_magnet_id).first()
    return _lead_magnet_to_entity(lead_magnet) if lead_magnet else None


# ============================================================================
# Observation Counters
# ============================================================================


def count_views(session: DbSession, page_ids: list[str]) -> dict[str, int]:
    """Count qualifying (thank-you page) views per page, since creation."""
    if not page_ids:
        return {}
    rows = (
        session.query(PageView.funnel_page_id, func.count(PageView.id))
        .filter(
            PageView.funnel_page_id.in_(page_ids),
            PageView.page_type == QUALIFYING_VIEW_TYPE,
        )
        .group_by(PageView.funnel_page_id)
        .all()
    )
    counts = {page_id: 0 for page_id in page_ids}
    counts.update({page_id: count for page_id, count in rows})
    return counts


def count_completions(session: DbSession, page_ids: list[str]) -> dict[str, int]:
    """Count leads that finished qualification per page, since creation."""
    if not page_ids:
        return {}
    rows = (
        session.query(FunnelLead.funnel_page_id, func.count(FunnelLead.id))
        .filter(
            FunnelLead.funnel_page_id.in_(page_ids),
            FunnelLead.qualification_answers.is_not(None),
        )
        .group_by(FunnelLead.funnel_page_id)
        .all()
    )
    counts = {page_id: 0 for page_id in page_ids}
    counts.update({page_id: count for page_id, count in rows})
    return counts


# ============================================================================
# Transactions
# ============================================================================


def commit(session: DbSession) -> None:
    """Commit current transaction."""
    session.commit()


def rollback(session: DbSession) -> None:
    """Roll back current transaction."""
    session.rollback()
