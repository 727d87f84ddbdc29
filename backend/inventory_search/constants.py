from enum import StrEnum


class HouseholdRole(StrEnum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


class ItemStatus(StrEnum):
    AVAILABLE = "AVAILABLE"
    BORROWED = "BORROWED"
    MAINTENANCE = "MAINTENANCE"
    LOST = "LOST"
    SOLD = "SOLD"


class SearchMethod(StrEnum):
    """Strategy that served a search request, reported to clients."""

    FULL_TEXT = "full_text_search"
    TRIGRAM = "trigram_search"
    ILIKE = "ilike_fallback"


class SuggestionType(StrEnum):
    ITEM = "item"
    LOCATION = "location"
    TAG = "tag"
    DESCRIPTION = "description"


class SortBy(StrEnum):
    RELEVANCE = "relevance"
    NAME = "name"
    DATE = "date"
    VALUE = "value"
    QUANTITY = "quantity"


class SortOrder(StrEnum):
    ASC = "asc"
    DESC = "desc"


class QueueStatus(StrEnum):
    PENDING = "PENDING"
    DONE = "DONE"


# Optional PostgreSQL extensions the search engine can take advantage of.
SEARCH_EXTENSIONS: tuple[str, ...] = ("pg_trgm", "unaccent", "uuid-ossp")

DEFAULT_SUGGESTION_TYPES: tuple[SuggestionType, ...] = (
    SuggestionType.ITEM,
    SuggestionType.LOCATION,
    SuggestionType.TAG,
)

API_VERSION = "v1"
