"""Error taxonomy for experiment operations.

Each error carries a stable code the API layer maps to a status.
Database failures are left as SQLAlchemy exceptions.
"""

from __future__ import annotations


class ExperimentError(Exception):
    """Base class for expected, caller-facing failures."""

    code = "INTERNAL"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ExperimentError):
    """Bad enum value, missing field, or an action invalid for the state."""

    code = "VALIDATION"


class NotFoundError(ExperimentError):
    """Unknown id, or not owned by the caller."""

    code = "NOT_FOUND"

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ConflictError(ExperimentError):
    """A second active experiment on the same control page."""

    code = "CONFLICT"


class SuggestionError(ExperimentError):
    """The copy-suggestion provider failed or returned unusable output."""

    code = "SUGGESTION"
