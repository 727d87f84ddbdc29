# @TASK S2-T2.1 - Search engine package

"""Household-scoped item search with full-text, trigram and ILIKE fallback."""

from inventory_search.search.configuration import SearchConfiguration, resolve_configuration
from inventory_search.search.engine import (
    FullTextSearchStrategy,
    IlikeSearchStrategy,
    SearchStrategy,
    TrigramSearchStrategy,
)
from inventory_search.search.errors import HouseholdContextError, SearchError, SearchValidationError
from inventory_search.search.executor import SearchExecutor
from inventory_search.search.extensions import ExtensionProber, ExtensionStatus
from inventory_search.search.schemas import HouseholdScope, RankedItem, SearchQuery, SearchResult
from inventory_search.search.service import SearchService
from inventory_search.search.suggestions import SuggestionGenerator

__all__ = [
    "ExtensionProber",
    "ExtensionStatus",
    "FullTextSearchStrategy",
    "HouseholdContextError",
    "HouseholdScope",
    "IlikeSearchStrategy",
    "RankedItem",
    "SearchConfiguration",
    "SearchError",
    "SearchExecutor",
    "SearchQuery",
    "SearchResult",
    "SearchService",
    "SearchStrategy",
    "SearchValidationError",
    "SuggestionGenerator",
    "TrigramSearchStrategy",
    "resolve_configuration",
]
