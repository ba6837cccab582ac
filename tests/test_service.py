"""Tests for experiment lifecycle operations."""

import pytest

from abfunnel.core.errors import ConflictError, NotFoundError, ValidationError
from abfunnel.db import repo
from abfunnel.db.schema import AbExperiment, FunnelPage
from abfunnel.experiments import service
from abfunnel.models.types import ExperimentCreate, ExperimentPatch

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


def _create(session, **overrides):
    values = {
        "funnel_page_id": "page-1",
        "name": "Headline test",
        "test_field": "headline",
        "variant_value": "Welcome aboard!",
    }
    values.update(overrides)
    return service.create_experiment(session, USER_ID, ExperimentCreate(**values))


class TestCreateExperiment:
    """create_experiment: checks, cloning, linking."""

    def test_creates_running_experiment_and_variant(self, session, make_page):
        make_page()
        created = _create(session)

        exp = session.get(AbExperiment, created.experiment_id)
        assert exp.status == "running"
        assert exp.started_at is not None
        assert exp.min_sample_size == 100

        variant = session.get(FunnelPage, created.variant_id)
        assert variant.is_variant is True
        assert variant.is_published is True
        assert variant.experiment_id == created.experiment_id
        assert variant.variant_label == "Variant B"

    def test_links_control_to_experiment(self, session, make_page):
        make_page()
        created = _create(session)

        control = session.get(FunnelPage, "page-1")
        assert control.experiment_id == created.experiment_id

    def test_variant_differs_only_in_tested_field(self, session, make_page):
        make_page(calendly_url="https://cal.example.com/me", font_family="Inter")
        created = _create(session, test_field="subline", variant_value="New subline")

        control = repo.get_control_page(session, "page-1", USER_ID)
        variant = session.get(FunnelPage, created.variant_id)
        for name in repo.CLONE_FIELDS:
            if name == "thankyou_subline":
                assert variant.thankyou_subline == "New subline"
            else:
                assert getattr(variant, name) == control[name], name

    def test_missing_variant_value_clears_field(self, session, make_page):
        make_page()
        created = _create(session, test_field="vsl_url", variant_value=None)

        assert session.get(FunnelPage, created.variant_id).vsl_url is None

    def test_variant_slug_derived_from_control(self, session, make_page):
        make_page(slug="offer")
        created = _create(session, variant_label="Bold headline")

        variant = session.get(FunnelPage, created.variant_id)
        assert variant.slug.startswith("offer-variant-")
        assert variant.variant_label == "Bold headline"

    def test_missing_page_not_found(self, session, make_page):
        make_page()
        with pytest.raises(NotFoundError):
            _create(session, funnel_page_id="page-x")

    def test_other_users_page_not_found(self, session, make_page):
        make_page(user_id=OTHER_USER_ID)
        with pytest.raises(NotFoundError):
            _create(session)

    def test_variant_cannot_be_control(self, session, make_page):
        make_page()
        created = _create(session)
        with pytest.raises(NotFoundError):
            _create(session, funnel_page_id=created.variant_id)

    def test_invalid_test_field(self, session, make_page):
        make_page()
        with pytest.raises(ValidationError, match="testField must be one of"):
            _create(session, test_field="button_color")
        assert session.query(AbExperiment).count() == 0

    def test_blank_name_rejected(self, session, make_page):
        make_page()
        with pytest.raises(ValidationError):
            _create(session, name="   ")

    def test_second_create_conflicts(self, session, make_page):
        """Leaves exactly one experiment and one variant."""
        make_page()
        _create(session)
        with pytest.raises(ConflictError):
            _create(session)

        assert session.query(AbExperiment).count() == 1
        assert session.query(FunnelPage).filter_by(is_variant=True).count() == 1

    def test_lost_create_race_conflicts(self, session, make_page, monkeypatch):
        """The unique index catches a create that slipped past the read check."""
        make_page()
        _create(session)
        monkeypatch.setattr(repo, "has_active_experiment", lambda session, page_id: False)

        with pytest.raises(ConflictError):
            _create(session)

        assert session.query(AbExperiment).count() == 1
        assert session.query(FunnelPage).filter_by(is_variant=True).count() == 1
        assert session.get(FunnelPage, "page-1").experiment_id is not None

    def test_paused_experiment_also_conflicts(self, session, make_page):
        make_page()
        created = _create(session)
        service.patch_experiment(
            session, created.experiment_id, USER_ID, ExperimentPatch(action="pause")
        )
        with pytest.raises(ConflictError):
            _create(session)

    def test_completed_experiment_allows_new_one(self, session, make_page):
        make_page()
        first = _create(session)
        service.patch_experiment(
            session,
            first.experiment_id,
            USER_ID,
            ExperimentPatch(action="declare_winner", winner_id="page-1"),
        )

        second = _create(session)
        assert second.experiment_id != first.experiment_id

    def test_variant_failure_removes_experiment(self, session, make_page, monkeypatch):
        make_page()

        def fail(session, values):
            raise RuntimeError("disk full")

        monkeypatch.setattr(repo, "create_variant_page", fail)
        with pytest.raises(RuntimeError, match="disk full"):
            _create(session)

        assert session.query(AbExperiment).count() == 0
        assert session.get(FunnelPage, "page-1").experiment_id is None
        assert repo.has_active_experiment(session, "page-1") is False

    def test_accepts_camel_case_body(self, session, make_page):
        make_page()
        request = ExperimentCreate.model_validate(
            {"funnelPageId": "page-1", "name": "Camel", "testField": "pass_message"}
        )
        created = service.create_experiment(session, USER_ID, request)
        assert created.variant_id


class TestGetExperiment:
    """get_experiment read model."""

    def test_returns_control_first_with_stats(self, session, make_page, add_traffic):
        make_page()
        created = _create(session)
        add_traffic("page-1", views=150, completions=30)
        add_traffic(created.variant_id, views=150, completions=55)

        detail = service.get_experiment(session, created.experiment_id, USER_ID)

        control, variant = detail.variants
        assert control.label == "Control"
        assert control.is_variant is False
        assert control.completion_rate == 20.0
        assert control.tested_field_value == "Thanks for signing up"
        assert variant.label == "Variant B"
        assert variant.views == 150
        assert variant.completions == 55
        assert variant.completion_rate == 36.67
        assert variant.tested_field_value == "Welcome aboard!"
        assert variant.headline == "Welcome aboard!"
        assert variant.subline == "Check your inbox"

    def test_zero_views_rate_is_zero(self, session, make_page):
        make_page()
        created = _create(session)

        detail = service.get_experiment(session, created.experiment_id, USER_ID)
        assert [v.completion_rate for v in detail.variants] == [0.0, 0.0]

    def test_not_owned_returns_none(self, session, make_page):
        make_page()
        created = _create(session)
        assert service.get_experiment(session, created.experiment_id, OTHER_USER_ID) is None

    def test_list_newest_first(self, session, make_page):
        make_page("page-1")
        make_page("page-2")
        first = _create(session)
        second = _create(session, funnel_page_id="page-2")
        session.get(AbExperiment, first.experiment_id).created_at = (
            session.get(AbExperiment, second.experiment_id).created_at.replace(year=2020)
        )
        session.commit()

        ids = [e.id for e in service.list_experiments(session, USER_ID)]
        assert ids == [second.experiment_id, first.experiment_id]


class TestPauseResume:
    """running <-> paused."""

    def test_pause_then_resume(self, session, make_page):
        make_page()
        created = _create(session)

        paused = service.patch_experiment(
            session, created.experiment_id, USER_ID, ExperimentPatch(action="pause")
        )
        assert paused.status == "paused"

        resumed = service.patch_experiment(
            session, created.experiment_id, USER_ID, ExperimentPatch(action="resume")
        )
        assert resumed.status == "running"

    def test_pause_paused_rejected(self, session, make_page):
        make_page()
        created = _create(session)
        service.patch_experiment(
            session, created.experiment_id, USER_ID, ExperimentPatch(action="pause")
        )
        with pytest.raises(ValidationError, match="Can only pause"):
            service.patch_experiment(
                session, created.experiment_id, USER_ID, ExperimentPatch(action="pause")
            )

    def test_resume_running_rejected(self, session, make_page):
        make_page()
        created = _create(session)
        with pytest.raises(ValidationError, match="Can only resume"):
            service.patch_experiment(
                session, created.experiment_id, USER_ID, ExperimentPatch(action="resume")
            )

    def test_unknown_action_rejected(self, session, make_page):
        make_page()
        created = _create(session)
        with pytest.raises(ValidationError, match="action must be one of"):
            service.patch_experiment(
                session, created.experiment_id, USER_ID, ExperimentPatch(action="archive")
            )

    def test_missing_experiment_returns_none(self, session):
        assert (
            service.patch_experiment(session, "exp-x", USER_ID, ExperimentPatch(action="pause"))
            is None
        )


class TestDeclareWinner:
    """Manual winner declaration."""

    def _declare(self, session, experiment_id, winner_id):
        return service.patch_experiment(
            session,
            experiment_id,
            USER_ID,
            ExperimentPatch(action="declare_winner", winner_id=winner_id),
        )

    def test_variant_winner_copied_to_control(self, session, make_page):
        make_page()
        created = _create(session)

        result = self._declare(session, created.experiment_id, created.variant_id)

        assert result.status == "completed"
        assert result.winner_id == created.variant_id
        control = session.get(FunnelPage, "page-1")
        variant = session.get(FunnelPage, created.variant_id)
        assert control.thankyou_headline == "Welcome aboard!"
        assert control.experiment_id is None
        assert variant.is_published is False
        assert variant.experiment_id is None

    def test_control_winner_keeps_control_value(self, session, make_page):
        make_page()
        created = _create(session)

        self._declare(session, created.experiment_id, "page-1")

        control = session.get(FunnelPage, "page-1")
        assert control.thankyou_headline == "Thanks for signing up"
        assert control.experiment_id is None
        assert session.get(FunnelPage, created.variant_id).is_published is False

    def test_records_completion(self, session, make_page, add_traffic):
        make_page()
        created = _create(session)
        add_traffic("page-1", views=150, completions=30)
        add_traffic(created.variant_id, views=150, completions=55)

        self._declare(session, created.experiment_id, created.variant_id)

        exp = session.get(AbExperiment, created.experiment_id)
        assert exp.status == "completed"
        assert exp.completed_at is not None
        assert exp.significance is not None and exp.significance < 0.05

    def test_no_traffic_leaves_significance_empty(self, session, make_page):
        make_page()
        created = _create(session)

        self._declare(session, created.experiment_id, created.variant_id)

        assert session.get(AbExperiment, created.experiment_id).significance is None

    def test_paused_experiment_can_be_completed(self, session, make_page):
        make_page()
        created = _create(session)
        service.patch_experiment(
            session, created.experiment_id, USER_ID, ExperimentPatch(action="pause")
        )

        assert self._declare(session, created.experiment_id, "page-1").status == "completed"

    def test_winner_required(self, session, make_page):
        make_page()
        created = _create(session)
        with pytest.raises(ValidationError, match="winnerId"):
            self._declare(session, created.experiment_id, None)

    def test_foreign_winner_rejected(self, session, make_page):
        make_page("page-1")
        make_page("page-2")
        created = _create(session)

        with pytest.raises(ValidationError, match="Winner must be a variant"):
            self._declare(session, created.experiment_id, "page-2")
        assert session.get(AbExperiment, created.experiment_id).status == "running"

    def test_second_declaration_is_noop(self, session, make_page):
        """The first winner stays; the control is written once."""
        make_page()
        created = _create(session)
        self._declare(session, created.experiment_id, created.variant_id)

        result = self._declare(session, created.experiment_id, "page-1")

        assert result.status == "completed"
        assert result.winner_id == created.variant_id
        assert session.get(FunnelPage, "page-1").thankyou_headline == "Welcome aboard!"


class TestDeleteExperiment:
    """delete_experiment in any status."""

    def test_deletes_experiment_and_variants(self, session, make_page):
        make_page()
        created = _create(session)

        assert service.delete_experiment(session, created.experiment_id, USER_ID) is True

        assert session.get(AbExperiment, created.experiment_id) is None
        assert session.get(FunnelPage, created.variant_id) is None
        control = session.get(FunnelPage, "page-1")
        assert control is not None
        assert control.experiment_id is None

    def test_delete_completed_keeps_control_copy(self, session, make_page):
        make_page()
        created = _create(session)
        service.patch_experiment(
            session,
            created.experiment_id,
            USER_ID,
            ExperimentPatch(action="declare_winner", winner_id=created.variant_id),
        )

        assert service.delete_experiment(session, created.experiment_id, USER_ID) is True
        assert session.get(FunnelPage, "page-1").thankyou_headline == "Welcome aboard!"

    def test_not_owned_returns_none(self, session, make_page):
        make_page()
        created = _create(session)
        assert service.delete_experiment(session, created.experiment_id, OTHER_USER_ID) is None
        assert session.get(AbExperiment, created.experiment_id) is not None

    def test_page_free_after_delete(self, session, make_page):
        make_page()
        created = _create(session)
        service.delete_experiment(session, created.experiment_id, USER_ID)

        assert _create(session).experiment_id != created.experiment_id
