# @TASK S2-T2.1 - Search request/response models
# @TEST tests/test_schemas.py

"""Pydantic models shared by the search engine, enricher and API.

All models serialize with camelCase aliases (``totalCount``,
``relevanceScore``...) and accept either the alias or the field name.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from inventory_search.constants import (
    DEFAULT_SUGGESTION_TYPES,
    ItemStatus,
    SearchMethod,
    SortBy,
    SortOrder,
    SuggestionType,
)
from inventory_search.search.errors import SearchValidationError

MAX_QUERY_LENGTH = 500
MAX_SUGGESTION_TEXT_LENGTH = 100


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _FrozenRequestModel(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


@dataclass(frozen=True)
class HouseholdScope:
    """The single household a search request is allowed to see."""

    household_id: uuid.UUID
    user_id: uuid.UUID | None = None


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class ValueRange(_FrozenRequestModel):
    min: float | None = Field(None, ge=0)
    max: float | None = Field(None, ge=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> ValueRange:
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("Minimum value cannot be greater than maximum value")
        return self


class SearchFilters(_FrozenRequestModel):
    """Predicates applied identically by every search strategy."""

    value_range: ValueRange | None = None
    statuses: list[ItemStatus] | None = Field(None, max_length=5)
    location_ids: list[uuid.UUID] | None = Field(None, max_length=10)


class SearchQuery(_FrozenRequestModel):
    """A validated, immutable search request.

    ``text`` is stripped before the length check; an empty text is valid and
    yields an empty result. Unknown fields are rejected.
    """

    text: str = Field("", max_length=MAX_QUERY_LENGTH)
    limit: int = Field(20, ge=1, le=100)
    offset: int = Field(0, ge=0)
    include_photos: bool = False
    include_tags: bool = False
    include_location: bool = False
    filters: SearchFilters = Field(default_factory=SearchFilters)
    sort_by: SortBy = SortBy.RELEVANCE
    sort_order: SortOrder | None = None

    @field_validator("text", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return value


class SuggestionQuery(_FrozenRequestModel):
    text: str = Field(..., min_length=1, max_length=MAX_SUGGESTION_TEXT_LENGTH)
    limit: int = Field(5, ge=1, le=10)
    types: list[SuggestionType] = Field(default_factory=lambda: list(DEFAULT_SUGGESTION_TYPES), min_length=1)

    @field_validator("text", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class PhotoSummary(CamelModel):
    id: uuid.UUID
    thumbnail_url: str
    is_primary: bool = False


class TagSummary(CamelModel):
    id: uuid.UUID
    name: str
    color: str | None = None


class LocationSummary(CamelModel):
    id: uuid.UUID
    name: str
    path: str = ""


class RankedItem(CamelModel):
    """A matching item with a strategy-agnostic relevance score in [0, 1].

    ``photos``/``tags``/``location`` stay ``None`` unless requested; when
    requested they are ``[]``/``None`` for items without related rows.
    """

    id: uuid.UUID
    name: str
    description: str | None = None
    quantity: int = 1
    unit: str | None = None
    status: str = ItemStatus.AVAILABLE
    current_value: float | None = None
    location_id: uuid.UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    relevance_score: float = Field(..., ge=0.0, le=1.0)
    photos: list[PhotoSummary] | None = None
    tags: list[TagSummary] | None = None
    location: LocationSummary | None = None


class SearchResult(CamelModel):
    """Ranked page of items plus the metadata clients use to interpret it."""

    items: list[RankedItem]
    total_count: int
    response_time: int  # milliseconds
    search_method: SearchMethod
    has_more: bool


class SearchSuggestion(CamelModel):
    text: str
    type: SuggestionType
    count: int = 1
    score: float


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_search_query(data: SearchQuery | Mapping[str, Any]) -> SearchQuery:
    """Validate raw request data into a ``SearchQuery``.

    Raises:
        SearchValidationError: With one field-level entry per problem.
    """
    if isinstance(data, SearchQuery):
        return data
    try:
        return SearchQuery.model_validate(data)
    except ValidationError as exc:
        raise SearchValidationError.from_pydantic(exc) from None


def parse_suggestion_query(data: SuggestionQuery | Mapping[str, Any]) -> SuggestionQuery:
    if isinstance(data, SuggestionQuery):
        return data
    try:
        return SuggestionQuery.model_validate(data)
    except ValidationError as exc:
        raise SearchValidationError.from_pydantic(exc) from None
