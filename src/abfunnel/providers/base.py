"""Base suggestion provider interface.

Providers implement a narrow interface: suggest(context) -> suggestions.
They must not touch the database; callers assemble the context.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from abfunnel.models.types import Suggestion

# Number of alternatives requested per field
SUGGESTION_COUNT = 3


@dataclass
class SuggestionContext:
    """Everything a provider needs to propose copy for one field."""

    field_label: str
    current_value: str
    lead_magnet_context: str = ""


class SuggestionProviderBase(ABC):
    """Abstract base class for copy-suggestion providers."""

    @abstractmethod
    def suggest(self, context: SuggestionContext) -> list[Suggestion]:
        """Propose alternative copy for the tested field.

        Args:
            context: Field label, current value and optional lead magnet context.

        Returns:
            Suggestions, each with label, value and a one-sentence rationale.
        """
        pass
