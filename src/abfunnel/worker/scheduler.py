"""Periodic significance check for running experiments.

Runs on an external cadence (every CHECK_INTERVAL_HOURS). One pass:

- Reconcile: finish cleanup of completed experiments whose variants are
  still published (an earlier completion was interrupted).
- Evaluate: for each running experiment, gather cumulative counts for its
  published pages, gate on sample size, z-test the top two by rate and,
  when significant, complete it through the same winner primitive the
  manual path uses.

Each experiment is processed inside its own error boundary: transient
database errors are retried with backoff, anything else is logged and
the pass moves on.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Literal

from sqlalchemy.exc import OperationalError

from abfunnel.core.significance import is_significant
from abfunnel.db import repo
from abfunnel.db.repo import DbSession
from abfunnel.experiments.observations import collect_observations, compare, rank_by_rate
from abfunnel.experiments.winner import complete_with_winner, finish_completion
from abfunnel.models.domain import ExperimentEntity
from abfunnel.models.types import CheckSummary

logger = logging.getLogger(__name__)

CHECK_INTERVAL_HOURS = 6
CHECK_CRON = "0 */6 * * *"

DEFAULT_MIN_SAMPLE_SIZE = 100
MAX_RETRIES = 3
RETRY_BASE_DELAY = 1.0

# Errors worth retrying: lock timeouts, dropped connections
TRANSIENT_ERRORS: tuple[type[Exception], ...] = (OperationalError,)

Outcome = Literal[
    "completed",
    "already_completed",
    "too_few_pages",
    "below_min_sample",
    "not_significant",
]


@dataclass
class Evaluation:
    """Result of evaluating one experiment."""

    experiment_id: str
    outcome: Outcome
    winner_id: str | None = None
    p_value: float | None = None

    @property
    def completed(self) -> bool:
        return self.outcome == "completed"


class ExperimentScheduler:
    """Evaluates running experiments and auto-declares significant winners."""

    def __init__(
        self,
        session: DbSession,
        max_retries: int = MAX_RETRIES,
        retry_base_delay: float = RETRY_BASE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize scheduler.

        Args:
            session: Database session shared by the whole pass.
            max_retries: Attempts per experiment on transient errors.
            retry_base_delay: Seconds before the first retry; doubles each time.
            sleep: Sleep function (injectable for tests).
        """
        self.session = session
        self.max_retries = max(1, max_retries)
        self.retry_base_delay = retry_base_delay
        self.sleep = sleep

    def run(self) -> CheckSummary:
        """Run one full pass.

        Returns:
            CheckSummary with running experiments checked, experiments
            completed in this pass, and interrupted completions finished.
        """
        logger.info("Starting A/B experiment check")

        reconciled = self.reconcile()

        experiments = repo.get_running_experiments(self.session)
        if not experiments:
            logger.info("No running experiments")
            return CheckSummary(checked=0, completed=0, reconciled=reconciled)

        logger.info("Found %d running experiment(s)", len(experiments))

        completed = 0
        for experiment in experiments:
            evaluation = self.process_experiment(experiment)
            if evaluation is not None and evaluation.completed:
                completed += 1

        logger.info(
            "A/B experiment check complete: checked=%d completed=%d reconciled=%d",
            len(experiments),
            completed,
            reconciled,
        )
        return CheckSummary(checked=len(experiments), completed=completed, reconciled=reconciled)

    def reconcile(self) -> int:
        """Finish interrupted completions.

        Returns:
            Number of experiments whose cleanup was finished.
        """
        try:
            stale = repo.get_completed_with_published_variants(self.session)
        except Exception:
            logger.exception("Failed to look up interrupted completions")
            repo.rollback(self.session)
            return 0

        finished = 0
        for experiment in stale:
            try:
                self._with_retries(
                    experiment.id,
                    lambda exp=experiment: finish_completion(self.session, exp),
                )
                finished += 1
            except Exception:
                logger.exception("Failed to reconcile experiment %s", experiment.id)
        return finished

    def process_experiment(self, experiment: ExperimentEntity) -> Evaluation | None:
        """Evaluate one experiment inside its own error boundary.

        Returns:
            The Evaluation, or None if processing failed.
        """
        try:
            return self._with_retries(experiment.id, lambda: self.evaluate(experiment))
        except Exception:
            logger.exception("Error processing experiment %s", experiment.id)
            return None

    def evaluate(self, experiment: ExperimentEntity) -> Evaluation:
        """Decide whether the experiment has a significant winner yet.

        Args:
            experiment: A running experiment.

        Returns:
            Evaluation describing the outcome.
        """
        pages = repo.get_experiment_pages(
            self.session, experiment.id, experiment.funnel_page_id, published_only=True
        )
        if len(pages) < 2:
            logger.info(
                "Experiment %s has %d published page(s), skipping", experiment.id, len(pages)
            )
            return Evaluation(experiment.id, "too_few_pages")

        observations = collect_observations(self.session, pages)
        for obs in observations:
            logger.info(
                "Experiment %s page %s: views=%d completions=%d rate=%.4f variant=%s",
                experiment.id,
                obs.page.id,
                obs.views,
                obs.completions,
                obs.rate,
                obs.page.is_variant,
            )

        min_sample = experiment.min_sample_size or DEFAULT_MIN_SAMPLE_SIZE
        below_min = [obs.page.id for obs in observations if obs.views < min_sample]
        if below_min:
            logger.info(
                "Experiment %s not enough data yet (min=%d): %s",
                experiment.id,
                min_sample,
                below_min,
            )
            return Evaluation(experiment.id, "below_min_sample")

        best, second = rank_by_rate(observations)[:2]
        result = compare(best, second)
        logger.info(
            "Experiment %s test: best=%s (%.4f) second=%s (%.4f) z=%.4f p=%.6f",
            experiment.id,
            best.page.id,
            best.rate,
            second.page.id,
            second.rate,
            result.z_score,
            result.p_value,
        )

        if not is_significant(result.p_value):
            return Evaluation(experiment.id, "not_significant", p_value=result.p_value)

        logger.info(
            "Winner found for experiment %s: %s (p=%.6f)",
            experiment.id,
            best.page.id,
            result.p_value,
        )
        if not complete_with_winner(
            self.session, experiment, best.page, significance=result.p_value
        ):
            if not self._resume_own_completion(experiment, best.page.id):
                return Evaluation(experiment.id, "already_completed", p_value=result.p_value)

        return Evaluation(
            experiment.id, "completed", winner_id=best.page.id, p_value=result.p_value
        )

    def _resume_own_completion(self, experiment: ExperimentEntity, winner_id: str) -> bool:
        """Finish a completion whose claim committed before a retried failure.

        Applies only when the recorded winner is the page this evaluation
        picked and variants are still published.
        """
        current = repo.get_experiment_unscoped(self.session, experiment.id)
        if current is None or current.status != "completed" or current.winner_id != winner_id:
            return False

        pages = repo.get_experiment_pages(
            self.session, current.id, current.funnel_page_id, published_only=True
        )
        if not any(page.is_variant for page in pages):
            return False

        logger.info("Experiment %s: resuming cleanup after retry", experiment.id)
        finish_completion(self.session, current)
        return True

    def _with_retries(self, experiment_id: str, operation: Callable[[], Evaluation | None]):
        """Run operation, retrying transient database errors with backoff."""
        for attempt in range(self.max_retries):
            try:
                return operation()
            except TRANSIENT_ERRORS as e:
                repo.rollback(self.session)
                if attempt == self.max_retries - 1:
                    raise
                delay = self.retry_base_delay * (2**attempt)
                logger.warning(
                    "Experiment %s: transient error (attempt %d/%d): %s -- retrying in %.1fs",
                    experiment_id,
                    attempt + 1,
                    self.max_retries,
                    e,
                    delay,
                )
                self.sleep(delay)
            except Exception:
                repo.rollback(self.session)
                raise
        return None
