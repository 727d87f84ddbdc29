# @TASK S1-T1.2 - Strategy selection tests

"""Tests for resolve_configuration and the fallback transition functions."""

import itertools

import pytest

from inventory_search.constants import SearchMethod
from inventory_search.search.configuration import (
    SearchConfiguration,
    initial_strategy,
    next_strategy,
    resolve_configuration,
    strategy_chain,
)
from inventory_search.search.extensions import ExtensionStatus

ALL_STATUSES = [
    ExtensionStatus(pg_trgm=trgm, unaccent=unaccent, uuid_ossp=ossp, full_text_search_capable=fts)
    for trgm, unaccent, ossp, fts in itertools.product([False, True], repeat=4)
]


class TestResolveConfiguration:
    def test_full_capabilities(self):
        config = resolve_configuration(
            ExtensionStatus(pg_trgm=True, unaccent=True, uuid_ossp=True, full_text_search_capable=True)
        )
        assert config.use_full_text_search is True
        assert config.use_trigram_search is True
        assert config.use_unaccent is True
        assert config.fallback_to_ilike is False

    def test_no_capabilities_falls_back_to_ilike(self):
        config = resolve_configuration(ExtensionStatus())
        assert config.use_full_text_search is False
        assert config.use_trigram_search is False
        assert config.fallback_to_ilike is True

    def test_full_text_requires_trigram(self):
        config = resolve_configuration(ExtensionStatus(pg_trgm=False, full_text_search_capable=True))
        assert config.use_full_text_search is False
        assert config.fallback_to_ilike is True

    @pytest.mark.parametrize("status", ALL_STATUSES)
    def test_always_exactly_one_starting_strategy(self, status):
        config = resolve_configuration(status)
        start = initial_strategy(config)
        if status.pg_trgm and status.full_text_search_capable:
            expected = SearchMethod.FULL_TEXT
        elif status.pg_trgm:
            expected = SearchMethod.TRIGRAM
        else:
            expected = SearchMethod.ILIKE
        assert start == expected
        assert config.fallback_to_ilike == (start != SearchMethod.FULL_TEXT)

    @pytest.mark.parametrize("status", ALL_STATUSES)
    def test_chain_always_ends_with_ilike(self, status):
        chain = strategy_chain(resolve_configuration(status))
        assert chain[-1] == SearchMethod.ILIKE
        assert len(chain) == len(set(chain))

    def test_serializes_camel_case(self):
        data = resolve_configuration(ExtensionStatus()).model_dump(by_alias=True)
        assert data["useFullTextSearch"] is False
        assert data["fallbackToIlike"] is True


class TestTransitions:
    def test_full_chain(self):
        config = SearchConfiguration(use_full_text_search=True, use_trigram_search=True, fallback_to_ilike=False)
        assert strategy_chain(config) == [SearchMethod.FULL_TEXT, SearchMethod.TRIGRAM, SearchMethod.ILIKE]

    def test_trigram_disabled_skips_to_ilike(self):
        config = SearchConfiguration(use_full_text_search=True, use_trigram_search=False, fallback_to_ilike=False)
        assert next_strategy(SearchMethod.FULL_TEXT, config) == SearchMethod.ILIKE

    def test_trigram_only_start(self):
        config = SearchConfiguration(use_full_text_search=False, use_trigram_search=True)
        assert strategy_chain(config) == [SearchMethod.TRIGRAM, SearchMethod.ILIKE]

    def test_ilike_is_terminal(self):
        config = SearchConfiguration()
        assert next_strategy(SearchMethod.ILIKE, config) is None
        assert strategy_chain(config) == [SearchMethod.ILIKE]
