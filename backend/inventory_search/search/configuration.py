# @TASK S1-T1.2 - Strategy selection from extension capabilities
# @TEST tests/test_configuration.py

"""Map an ``ExtensionStatus`` to the search strategies this deployment can use.

Pure functions only: no I/O, so every capability scenario can be tested
by constructing statuses directly.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from inventory_search.constants import SearchMethod
from inventory_search.search.extensions import ExtensionStatus


class SearchConfiguration(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    use_full_text_search: bool = False
    use_trigram_search: bool = False
    use_unaccent: bool = False
    fallback_to_ilike: bool = True
    indexing_strategy: str = "background"


def resolve_configuration(status: ExtensionStatus) -> SearchConfiguration:
    """Derive the strategy selection from probed capabilities.

    Full text needs the trigram capability as a prerequisite. Whenever full
    text is unavailable ILIKE becomes the fallback, so at least one strategy
    is always viable.
    """
    use_trigram = status.pg_trgm
    use_full_text = status.full_text_search_capable and use_trigram
    return SearchConfiguration(
        use_full_text_search=use_full_text,
        use_trigram_search=use_trigram,
        use_unaccent=status.unaccent,
        fallback_to_ilike=not use_full_text,
    )


def initial_strategy(config: SearchConfiguration) -> SearchMethod:
    """The first stage of the fallback chain for *config*."""
    if config.use_full_text_search:
        return SearchMethod.FULL_TEXT
    if config.use_trigram_search:
        return SearchMethod.TRIGRAM
    return SearchMethod.ILIKE


def next_strategy(current: SearchMethod, config: SearchConfiguration) -> SearchMethod | None:
    """The stage after *current*, or ``None`` when the chain is exhausted.

    ILIKE needs no extension and is always the last stage.
    """
    if current == SearchMethod.FULL_TEXT:
        return SearchMethod.TRIGRAM if config.use_trigram_search else SearchMethod.ILIKE
    if current == SearchMethod.TRIGRAM:
        return SearchMethod.ILIKE
    return None


def strategy_chain(config: SearchConfiguration) -> list[SearchMethod]:
    """Every stage that will be attempted, in order, for *config*."""
    chain: list[SearchMethod] = []
    stage: SearchMethod | None = initial_strategy(config)
    while stage is not None:
        chain.append(stage)
        stage = next_strategy(stage, config)
    return chain
