"""Copy suggestions for a tested field.

Optional helper for choosing a variant value; never part of the
statistical path. Domain logic is pure - database operations go through repo.
"""

from __future__ import annotations

import json

from abfunnel.core.errors import NotFoundError, ValidationError
from abfunnel.db import repo
from abfunnel.db.repo import DbSession
from abfunnel.models.domain import LeadMagnetEntity, TestField
from abfunnel.models.types import Suggestion, SuggestionList, SuggestRequest
from abfunnel.providers.base import SuggestionContext, SuggestionProviderBase

REMOVE_VIDEO_SUGGESTION = Suggestion(
    label="Remove video",
    value=None,
    rationale="Test if removing video increases survey completion.",
)


def suggest_variants(
    session: DbSession,
    user_id: str,
    request: SuggestRequest,
    provider: SuggestionProviderBase,
) -> SuggestionList:
    """Suggest alternatives for one field of an owned funnel page.

    The video field has a single fixed suggestion (drop the video) and
    never reaches the provider.

    Args:
        session: Database session.
        user_id: Caller; must own the page.
        request: Page and field to suggest for.
        provider: Copy-suggestion provider.

    Returns:
        SuggestionList from the provider.

    Raises:
        ValidationError: Unknown test field.
        NotFoundError: Page missing or not owned.
        SuggestionError: Provider failure (raised by the provider).
    """
    field = TestField.parse(request.test_field)
    if field is None:
        raise ValidationError(f"testField must be one of: {', '.join(TestField.choices())}")

    if field is TestField.VSL_URL:
        return SuggestionList(suggestions=[REMOVE_VIDEO_SUGGESTION])

    page = repo.get_owned_page(session, request.funnel_page_id, user_id)
    if page is None:
        raise NotFoundError("Funnel page")

    lead_magnet_context = ""
    if page.lead_magnet_id:
        lead_magnet = repo.get_lead_magnet(session, page.lead_magnet_id)
        if lead_magnet is not None:
            lead_magnet_context = format_lead_magnet_context(lead_magnet)

    context = SuggestionContext(
        field_label=field.label,
        current_value=field.read(page) or "",
        lead_magnet_context=lead_magnet_context,
    )
    return SuggestionList(suggestions=provider.suggest(context))


def format_lead_magnet_context(lead_magnet: LeadMagnetEntity) -> str:
    """Render title, archetype and concept as prompt context lines.

    Pure function - no database access.
    """
    lines = []
    if lead_magnet.title:
        lines.append(f"Lead Magnet Title: {lead_magnet.title}")
    if lead_magnet.archetype:
        lines.append(f"Archetype: {lead_magnet.archetype}")
    if lead_magnet.concept_json:
        try:
            concept = json.dumps(json.loads(lead_magnet.concept_json), separators=(",", ":"))
        except json.JSONDecodeError:
            concept = lead_magnet.concept_json
        lines.append(f"Concept: {concept}")
    return "\n".join(lines)
