"""Winner declaration shared by the manual and scheduled paths.

Completion is a claim followed by cleanup:

1. Claim: compare-and-swap status running|paused -> completed, recording
   the winner and significance. Committed on its own so exactly one
   caller ever owns the completion.
2. Cleanup: copy the winner's tested value onto the control (when the
   winner is a variant), unpublish and detach every variant, detach the
   control. Each step is idempotent, so an interrupted cleanup can be
   finished later by finish_completion().
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from abfunnel.db import repo
from abfunnel.db.repo import DbSession
from abfunnel.db.schema import ACTIVE_STATUSES
from abfunnel.models.domain import ExperimentEntity, PageEntity

logger = logging.getLogger(__name__)


def complete_with_winner(
    session: DbSession,
    experiment: ExperimentEntity,
    winner: PageEntity,
    significance: float | None = None,
) -> bool:
    """Complete an experiment with the given winner page.

    Args:
        session: Database session.
        experiment: Experiment to complete.
        winner: Control page or one of the experiment's variants.
        significance: p-value backing the decision, if computed.

    Returns:
        True if this call completed the experiment, False if another caller
        already had (nothing is mutated in that case).
    """
    claimed = repo.transition_status(
        session,
        experiment.id,
        ACTIVE_STATUSES,
        "completed",
        winner_id=winner.id,
        significance=significance,
        completed_at=datetime.now(timezone.utc),
    )
    if not claimed:
        repo.rollback(session)
        logger.info(
            "Experiment %s already completed elsewhere; skipping winner %s",
            experiment.id,
            winner.id,
        )
        return False
    repo.commit(session)

    _apply_winner(session, experiment, winner)
    repo.commit(session)

    logger.info(
        "Experiment %s completed: winner=%s control=%s significance=%s",
        experiment.id,
        winner.id,
        experiment.funnel_page_id,
        significance,
    )
    return True


def finish_completion(session: DbSession, experiment: ExperimentEntity) -> None:
    """Re-run the cleanup steps for an already completed experiment.

    Used by reconciliation when a completion was interrupted after the
    claim was committed.
    """
    if experiment.status != "completed" or experiment.winner_id is None:
        raise ValueError(f"Experiment {experiment.id} is not completed with a winner")

    winner = repo.get_page(session, experiment.winner_id)
    if winner is None:
        raise ValueError(f"Winner page not found: {experiment.winner_id}")

    _apply_winner(session, experiment, winner)
    repo.commit(session)
    logger.info("Finished interrupted completion of experiment %s", experiment.id)


def _apply_winner(session: DbSession, experiment: ExperimentEntity, winner: PageEntity) -> None:
    control_id = experiment.funnel_page_id
    field = experiment.field

    if winner.id != control_id:
        value = field.read(winner)
        control = repo.get_page(session, control_id)
        if control is not None and field.read(control) != value:
            repo.update_page_field(session, control_id, field.column, value)
            logger.info(
                "Copied %s from winner %s to control %s", field.column, winner.id, control_id
            )

    unpublished = repo.unpublish_and_detach_variants(session, experiment.id)
    repo.clear_page_experiment(session, control_id)
    logger.debug("Unpublished %d variant page(s) for experiment %s", unpublished, experiment.id)
