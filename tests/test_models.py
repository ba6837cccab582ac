"""Tests for domain models and API request models."""

import pytest

from abfunnel.models.domain import ExperimentEntity, PageEntity, PageObservation, TestField
from abfunnel.models.types import ExperimentCreate, ExperimentPatch


def _page(**fields):
    values = {"id": "page-1", "user_id": "user-1", "slug": "offer", "is_variant": False}
    values.update(fields)
    return PageEntity(is_published=True, **values)


class TestTestField:
    """Closed mapping from tested field to page column."""

    def test_columns(self):
        assert TestField.HEADLINE.column == "thankyou_headline"
        assert TestField.SUBLINE.column == "thankyou_subline"
        assert TestField.VSL_URL.column == "vsl_url"
        assert TestField.PASS_MESSAGE.column == "qualification_pass_message"

    def test_parse(self):
        assert TestField.parse("headline") is TestField.HEADLINE
        assert TestField.parse("thankyou_headline") is None
        assert TestField.parse(None) is None

    def test_choices(self):
        assert TestField.choices() == ["headline", "subline", "vsl_url", "pass_message"]

    def test_compares_as_string(self):
        assert TestField.SUBLINE == "subline"

    def test_read_and_write(self):
        page = _page(qualification_pass_message="Welcome")
        assert TestField.PASS_MESSAGE.read(page) == "Welcome"

        values = {}
        TestField.PASS_MESSAGE.write(values, "Hi")
        assert values == {"qualification_pass_message": "Hi"}


class TestEntities:
    """Domain entity helpers."""

    def test_display_labels(self):
        assert _page().display_label == "Control"
        assert _page(is_variant=True).display_label == "Variant B"
        assert _page(is_variant=True, variant_label="Short").display_label == "Short"

    def test_experiment_field_and_activity(self):
        exp = ExperimentEntity(
            id="exp-1",
            funnel_page_id="page-1",
            user_id="user-1",
            name="Test",
            test_field="subline",
            status="paused",
        )
        assert exp.field is TestField.SUBLINE
        assert exp.is_active

    def test_unknown_field_raises(self):
        exp = ExperimentEntity(
            id="exp-1",
            funnel_page_id="page-1",
            user_id="user-1",
            name="Test",
            test_field="cta",
            status="completed",
        )
        assert not exp.is_active
        with pytest.raises(ValueError):
            exp.field

    def test_observation_rate(self):
        assert PageObservation(page=_page(), views=0, completions=0).rate == 0.0
        assert PageObservation(page=_page(), views=200, completions=50).rate == 0.25


class TestRequestModels:
    """camelCase and snake_case both accepted."""

    def test_create_camel_case(self):
        body = ExperimentCreate.model_validate(
            {
                "funnelPageId": "page-1",
                "name": "Test",
                "testField": "headline",
                "variantValue": "New",
                "variantLabel": "Bold",
            }
        )
        assert body.funnel_page_id == "page-1"
        assert body.variant_label == "Bold"

    def test_patch_snake_case(self):
        body = ExperimentPatch.model_validate({"action": "declare_winner", "winner_id": "p"})
        assert body.winner_id == "p"
