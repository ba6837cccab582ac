"""Tests for the shared winner-declaration primitive."""

import pytest

from abfunnel.db import repo
from abfunnel.db.schema import AbExperiment, FunnelPage
from abfunnel.experiments import service
from abfunnel.experiments.winner import complete_with_winner, finish_completion
from abfunnel.models.types import ExperimentCreate

USER_ID = "user-1"


@pytest.fixture
def experiment(session, make_page):
    """A running headline experiment on page-1 with one variant."""
    make_page()
    created = service.create_experiment(
        session,
        USER_ID,
        ExperimentCreate(
            funnel_page_id="page-1",
            name="Headline test",
            test_field="headline",
            variant_value="Variant headline",
        ),
    )
    return repo.get_experiment(session, created.experiment_id, USER_ID), created.variant_id


class TestCompleteWithWinner:
    """Claim then cleanup."""

    def test_completes_once(self, session, experiment):
        exp, variant_id = experiment
        winner = repo.get_page(session, variant_id)

        assert complete_with_winner(session, exp, winner, significance=0.01) is True

        row = session.get(AbExperiment, exp.id)
        assert row.status == "completed"
        assert row.winner_id == variant_id
        assert row.significance == 0.01
        assert session.get(FunnelPage, "page-1").thankyou_headline == "Variant headline"

    def test_losing_caller_mutates_nothing(self, session, experiment):
        """A stale entity racing an earlier completion is a no-op."""
        exp, variant_id = experiment
        control = repo.get_page(session, "page-1")
        variant = repo.get_page(session, variant_id)

        assert complete_with_winner(session, exp, control) is True
        assert complete_with_winner(session, exp, variant, significance=0.001) is False

        row = session.get(AbExperiment, exp.id)
        assert row.winner_id == "page-1"
        assert row.significance is None
        assert session.get(FunnelPage, "page-1").thankyou_headline == "Thanks for signing up"

    def test_paused_experiment_can_complete(self, session, experiment):
        exp, _ = experiment
        repo.transition_status(session, exp.id, ("running",), "paused")
        session.commit()

        assert complete_with_winner(session, exp, repo.get_page(session, "page-1")) is True


class TestFinishCompletion:
    """Reconciliation of an interrupted cleanup."""

    def test_finishes_cleanup_after_claim(self, session, experiment):
        exp, variant_id = experiment
        repo.transition_status(
            session, exp.id, ("running",), "completed", winner_id=variant_id
        )
        session.commit()

        finish_completion(session, repo.get_experiment(session, exp.id, USER_ID))

        control = session.get(FunnelPage, "page-1")
        variant = session.get(FunnelPage, variant_id)
        assert control.thankyou_headline == "Variant headline"
        assert control.experiment_id is None
        assert variant.is_published is False
        assert variant.experiment_id is None

    def test_idempotent(self, session, experiment):
        exp, variant_id = experiment
        complete_with_winner(session, exp, repo.get_page(session, variant_id))
        completed = repo.get_experiment(session, exp.id, USER_ID)

        finish_completion(session, completed)

        assert session.get(FunnelPage, "page-1").thankyou_headline == "Variant headline"

    def test_rejects_running_experiment(self, session, experiment):
        exp, _ = experiment
        with pytest.raises(ValueError):
            finish_completion(session, exp)
