"""Anthropic-backed copy suggestions.

Asks a Claude model for three CRO variants of a funnel page field and
parses the JSON array it returns.
"""

from __future__ import annotations

import json
import logging

from anthropic import Anthropic
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from abfunnel.config import DEFAULT_SUGGEST_MODEL
from abfunnel.core.errors import SuggestionError
from abfunnel.models.types import Suggestion
from abfunnel.providers.base import SUGGESTION_COUNT, SuggestionContext, SuggestionProviderBase

logger = logging.getLogger(__name__)

_SUGGESTIONS = TypeAdapter(list[Suggestion])

PROMPT_TEMPLATE = """You are a conversion rate optimization (CRO) expert. \
Generate {count} A/B test variant suggestions for a lead magnet funnel page.

**Field being tested:** {field_label}
**Current value:** "{current_value}"
{context_block}
Generate {count} alternative variants that could plausibly outperform the current copy. \
Each should test a different CRO hypothesis (e.g., urgency, specificity, social proof, \
curiosity, benefit-focused, etc.).

Respond with a JSON array of exactly {count} objects:
[
  {{ "label": "Variant B", "value": "the new copy", "rationale": "Why this might convert better" }},
  {{ "label": "Variant C", "value": "the new copy", "rationale": "Why this might convert better" }},
  {{ "label": "Variant D", "value": "the new copy", "rationale": "Why this might convert better" }}
]

Rules:
- Keep values concise and punchy (appropriate length for the field type)
- Each variant should be meaningfully different from the current and from each other
- Rationale should be 1 sentence explaining the CRO hypothesis
- Labels must be "Variant B", "Variant C", "Variant D"
- Return ONLY the JSON array, no other text"""


def build_prompt(context: SuggestionContext) -> str:
    """Render the suggestion prompt for a field."""
    context_block = (
        f"\n**Context:**\n{context.lead_magnet_context}\n" if context.lead_magnet_context else ""
    )
    return PROMPT_TEMPLATE.format(
        count=SUGGESTION_COUNT,
        field_label=context.field_label,
        current_value=context.current_value,
        context_block=context_block,
    )


def parse_suggestions(text: str) -> list[Suggestion]:
    """Parse the model's JSON array, tolerating markdown code fences.

    Raises:
        SuggestionError: If the text is not a JSON array of suggestions.
    """
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = [ln for ln in cleaned.split("\n") if not ln.strip().startswith("```")]
        cleaned = "\n".join(lines)

    try:
        return _SUGGESTIONS.validate_python(json.loads(cleaned))
    except (json.JSONDecodeError, PydanticValidationError) as e:
        raise SuggestionError(f"Could not parse suggestions: {e}") from e


class AnthropicSuggestionProvider(SuggestionProviderBase):
    """Suggestion provider calling the Anthropic Messages API."""

    def __init__(
        self,
        client: Anthropic | None = None,
        model: str = DEFAULT_SUGGEST_MODEL,
        max_tokens: int = 1024,
    ):
        """Initialize provider.

        Args:
            client: Anthropic client. Built from ANTHROPIC_API_KEY if omitted.
            model: Model name.
            max_tokens: Response token cap.
        """
        self.client = client or Anthropic()
        self.model = model
        self.max_tokens = max_tokens

    def suggest(self, context: SuggestionContext) -> list[Suggestion]:
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": build_prompt(context)}],
            )
        except Exception as e:
            logger.error("Anthropic API call failed: %s", e)
            raise SuggestionError("Suggestion provider request failed") from e

        text = next((block.text for block in response.content if block.type == "text"), None)
        if not text:
            raise SuggestionError("No text response from AI")

        return parse_suggestions(text)
