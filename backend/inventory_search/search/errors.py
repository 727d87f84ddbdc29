"""Search error taxonomy.

- ``SearchValidationError``: malformed input, rejected before any query runs.
- ``SearchError``: operational failure carrying a machine-readable ``code``.
- ``HouseholdContextError``: the caller's household scope cannot be resolved.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import ValidationError


class SearchErrorCode(StrEnum):
    SEARCH_ERROR = "SEARCH_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    NO_HOUSEHOLD = "NO_HOUSEHOLD"
    HOUSEHOLD_ACCESS_DENIED = "HOUSEHOLD_ACCESS_DENIED"
    SEARCH_UNAVAILABLE = "SEARCH_UNAVAILABLE"


class SearchError(Exception):
    """Raised when a search operation fails.

    Attributes:
        code: One of ``SearchErrorCode``.
        message: A human-readable description of the failure.
    """

    def __init__(self, message: str, code: str = SearchErrorCode.SEARCH_ERROR) -> None:
        self.code = code
        self.message = message
        super().__init__(message)


class SearchValidationError(SearchError):
    """Raised when search parameters are invalid.

    Attributes:
        errors: Field-level errors, each ``{"field", "message"}``.
    """

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message, SearchErrorCode.VALIDATION_ERROR)
        self.errors = errors or []

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> SearchValidationError:
        """Flatten a pydantic ValidationError into field-level errors."""
        errors = [
            {
                "field": ".".join(str(part) for part in err["loc"]) or "query",
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
        first = errors[0]["message"] if errors else "Invalid search parameters"
        return cls(first, errors)


class HouseholdContextError(SearchError):
    """Raised when the user or their household cannot be resolved."""
