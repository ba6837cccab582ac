"""Observation gathering and ranking for experiment pages.

Counts are cumulative since each page was created; there is no window.
"""

from __future__ import annotations

from abfunnel.core.significance import ZTestResult, z_test_two_proportions
from abfunnel.db import repo
from abfunnel.db.repo import DbSession
from abfunnel.models.domain import PageEntity, PageObservation


def collect_observations(session: DbSession, pages: list[PageEntity]) -> list[PageObservation]:
    """Fetch view and completion counts for each page, preserving order."""
    page_ids = [page.id for page in pages]
    views = repo.count_views(session, page_ids)
    completions = repo.count_completions(session, page_ids)
    return [
        PageObservation(
            page=page,
            views=views.get(page.id, 0),
            completions=completions.get(page.id, 0),
        )
        for page in pages
    ]


def rank_by_rate(observations: list[PageObservation]) -> list[PageObservation]:
    """Sort by completion rate, best first. Ties keep input order."""
    return sorted(observations, key=lambda obs: obs.rate, reverse=True)


def compare(first: PageObservation, second: PageObservation) -> ZTestResult:
    """Two-proportion z-test of first against second."""
    return z_test_two_proportions(first.views, first.completions, second.views, second.completions)


def winner_significance(observations: list[PageObservation], winner_id: str) -> float | None:
    """p-value of the chosen winner against its strongest rival.

    Returns None when there is no rival or either side has no views.
    """
    winner = next((obs for obs in observations if obs.page.id == winner_id), None)
    rivals = [obs for obs in observations if obs.page.id != winner_id]
    if winner is None or not rivals:
        return None

    rival = rank_by_rate(rivals)[0]
    if winner.views == 0 or rival.views == 0:
        return None
    return compare(winner, rival).p_value
