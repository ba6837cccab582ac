"""Static provider for demo/testing.

Returns a fixed list of suggestions without calling a model, and records
the contexts it was asked about.
"""

from __future__ import annotations

from abfunnel.models.types import Suggestion
from abfunnel.providers.base import SuggestionContext, SuggestionProviderBase


class StaticSuggestionProvider(SuggestionProviderBase):
    """Provider that always answers with the same suggestions."""

    def __init__(self, suggestions: list[Suggestion] | None = None):
        self.suggestions = list(suggestions or [])
        self.calls: list[SuggestionContext] = []

    def suggest(self, context: SuggestionContext) -> list[Suggestion]:
        self.calls.append(context)
        return list(self.suggestions)
