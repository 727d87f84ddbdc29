# @TASK S4-T4.1 - Search API endpoints
# @TEST tests/test_api_search.py
# @TEST tests/test_api_suggestions.py

"""Search API endpoints.

Provides:
- ``GET /search`` -- Query-string item search.
- ``POST /search`` -- Item search with a JSON body (structured filters).
- ``GET /search/suggestions`` -- Autocomplete suggestions.
- ``GET /search/capabilities`` -- Extension status, configuration, index stats.
- ``POST /search/capabilities/refresh`` -- Re-probe database extensions.
- ``GET /search/analytics`` -- Search analytics dashboard for the household.
- ``POST /search/index`` -- Queue and rebuild the household's search vectors.
- ``GET /search/index/status`` -- Search vector rebuild status.

Every endpoint requires JWT Bearer authentication. Request handling order is
authentication, rate limit, validation, household context, then search.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, Response, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_search.config import get_settings
from inventory_search.constants import API_VERSION
from inventory_search.database import async_session_factory, get_db
from inventory_search.search.configuration import resolve_configuration
from inventory_search.search.errors import SearchError, SearchErrorCode, SearchValidationError
from inventory_search.search.extensions import ExtensionProber, ExtensionStatus
from inventory_search.search.indexer import SearchVectorIndexer
from inventory_search.search.schemas import HouseholdScope, parse_search_query, parse_suggestion_query
from inventory_search.search.service import SearchService
from inventory_search.search.suggestions import SuggestionGenerator
from inventory_search.services.auth_service import get_current_user
from inventory_search.services.household_context import HouseholdContextResolver
from inventory_search.services.rate_limiter import (
    RateLimitConfig,
    RateLimiter,
    RateLimitResult,
    advanced_search_limit,
    rate_limit_headers,
    search_limit,
    suggestions_limit,
)
from inventory_search.services.search_analytics import SearchAnalyticsRecorder, get_dashboard_data

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["search"])

_ERROR_STATUS = {
    SearchErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    SearchErrorCode.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    SearchErrorCode.NO_HOUSEHOLD: status.HTTP_404_NOT_FOUND,
    SearchErrorCode.HOUSEHOLD_ACCESS_DENIED: status.HTTP_403_FORBIDDEN,
    SearchErrorCode.SEARCH_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


# ---------------------------------------------------------------------------
# Dependencies (process-wide components live on app.state)
# ---------------------------------------------------------------------------


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session_factory


def get_capability_prober(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),  # noqa: B008
) -> ExtensionProber:
    prober = getattr(request.app.state, "capability_prober", None)
    if prober is None:
        prober = ExtensionProber(session_factory)
        request.app.state.capability_prober = prober
    return prober


def get_rate_limiter(request: Request) -> RateLimiter:
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        limiter = RateLimiter(cleanup_probability=get_settings().RATE_LIMIT_CLEANUP_PROBABILITY)
        request.app.state.rate_limiter = limiter
    return limiter


def get_analytics_recorder(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),  # noqa: B008
) -> SearchAnalyticsRecorder:
    recorder = getattr(request.app.state, "analytics_recorder", None)
    if recorder is None:
        recorder = SearchAnalyticsRecorder(session_factory)
        request.app.state.analytics_recorder = recorder
    return recorder


def get_household_resolver(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),  # noqa: B008
) -> HouseholdContextResolver:
    return HouseholdContextResolver(session_factory)


# ---------------------------------------------------------------------------
# Component factory helpers (extracted for easy mocking in tests)
# ---------------------------------------------------------------------------


def _build_search_service(
    session_factory: async_sessionmaker[AsyncSession],
    prober: ExtensionProber,
    recorder: SearchAnalyticsRecorder,
) -> SearchService:
    """Create a SearchService instance.

    Extracted as a function to allow easy mocking in tests.
    """
    return SearchService(session_factory, prober, recorder)


def _build_suggestion_generator(session_factory: async_sessionmaker[AsyncSession]) -> SuggestionGenerator:
    return SuggestionGenerator(session_factory)


def _build_indexer(
    session: AsyncSession, household_id: uuid.UUID, use_unaccent: bool = False
) -> SearchVectorIndexer:
    return SearchVectorIndexer(session, household_id, use_unaccent=use_unaccent)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _http_error(exc: SearchError) -> HTTPException:
    detail: dict[str, Any] = {"error": str(exc.code), "message": exc.message}
    if isinstance(exc, SearchValidationError):
        detail["errors"] = exc.errors
    return HTTPException(
        status_code=_ERROR_STATUS.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=detail,
    )


def _enforce_rate_limit(
    limiter: RateLimiter,
    current_user: dict,
    config: RateLimitConfig,
    response: Response,
) -> RateLimitResult:
    result = limiter.check(current_user["user_id"], config)
    headers = rate_limit_headers(result)
    if not result.allowed:
        logger.warning("Rate limit exceeded: user=%s, bucket=%s", current_user["user_id"], config.key_prefix)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "RATE_LIMIT_EXCEEDED",
                "message": "Too many requests. Please try again later.",
                "retryAfter": int(headers["Retry-After"]),
            },
            headers=headers,
        )
    response.headers.update(headers)
    return result


async def _resolve_scope(resolver: HouseholdContextResolver, current_user: dict) -> HouseholdScope:
    try:
        return await resolver.resolve(current_user)
    except SearchError as exc:
        raise _http_error(exc) from None


def _meta(status_: ExtensionStatus | None = None, **extra: Any) -> dict[str, Any]:
    meta: dict[str, Any] = {"timestamp": datetime.now(UTC).isoformat(), "version": API_VERSION}
    if status_ is not None:
        meta["searchCapabilities"] = status_.model_dump(by_alias=True)
    meta.update(extra)
    return meta


def _split(value: str | None) -> list[str] | None:
    if value is None:
        return None
    parts = [part.strip() for part in value.split(",") if part.strip()]
    return parts or None


def _query_from_params(
    *,
    q: str | None,
    text: str | None,
    limit: str | None,
    offset: str | None,
    include_location: str | None,
    include_photos: str | None,
    include_tags: str | None,
    statuses: str | None,
    location_ids: str | None,
    min_value: str | None,
    max_value: str | None,
    sort_by: str | None,
    sort_order: str | None,
) -> dict[str, Any]:
    """Collect query-string parameters into a SearchQuery-shaped mapping.

    Values stay strings; validation and coercion happen in one place.
    """
    raw: dict[str, Any] = {
        "text": q if q is not None else text,
        "limit": limit,
        "offset": offset,
        "includeLocation": include_location,
        "includePhotos": include_photos,
        "includeTags": include_tags,
        "sortBy": sort_by,
        "sortOrder": sort_order,
    }
    data = {key: value for key, value in raw.items() if value is not None}

    filters: dict[str, Any] = {}
    if (status_list := _split(statuses)) is not None:
        filters["statuses"] = status_list
    if (location_list := _split(location_ids)) is not None:
        filters["locationIds"] = location_list
    value_range = {key: value for key, value in (("min", min_value), ("max", max_value)) if value is not None}
    if value_range:
        filters["valueRange"] = value_range
    if filters:
        data["filters"] = filters
    return data


async def _run_search(
    data: Any,
    *,
    current_user: dict,
    resolver: HouseholdContextResolver,
    session_factory: async_sessionmaker[AsyncSession],
    prober: ExtensionProber,
    recorder: SearchAnalyticsRecorder,
    **meta: Any,
) -> dict[str, Any]:
    service = _build_search_service(session_factory, prober, recorder)
    try:
        # Validate before resolving the household so bad input never hits the database.
        query = parse_search_query(data)
        scope = await _resolve_scope(resolver, current_user)
        result = await service.search(scope, query)
    except SearchError as exc:
        if exc.code == SearchErrorCode.SEARCH_UNAVAILABLE:
            logger.error("Search unavailable for user=%s", current_user["user_id"])
        raise _http_error(exc) from None
    except HTTPException:
        raise
    except Exception:
        logger.exception("Unexpected search failure for user=%s", current_user["user_id"])
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "INTERNAL_ERROR", "message": "Search failed"},
        ) from None

    return {
        "data": result.model_dump(mode="json", by_alias=True),
        "meta": _meta(prober.cached, **meta),
    }


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


@router.get("")
async def search(
    response: Response,
    q: str | None = Query(None, description="Search text"),  # noqa: B008
    text: str | None = Query(None, description="Alias of q"),  # noqa: B008
    limit: str | None = Query(None, description="Maximum number of results (1-100, default 20)"),  # noqa: B008
    offset: str | None = Query(None, description="Number of results to skip"),  # noqa: B008
    include_location: str | None = Query(None, alias="includeLocation"),  # noqa: B008
    include_photos: str | None = Query(None, alias="includePhotos"),  # noqa: B008
    include_tags: str | None = Query(None, alias="includeTags"),  # noqa: B008
    statuses: str | None = Query(None, description="Comma-separated item statuses"),  # noqa: B008
    location_ids: str | None = Query(None, alias="locationIds"),  # noqa: B008
    min_value: str | None = Query(None, alias="minValue"),  # noqa: B008
    max_value: str | None = Query(None, alias="maxValue"),  # noqa: B008
    sort_by: str | None = Query(None, alias="sortBy"),  # noqa: B008
    sort_order: str | None = Query(None, alias="sortOrder"),  # noqa: B008
    current_user: dict = Depends(get_current_user),  # noqa: B008
    limiter: RateLimiter = Depends(get_rate_limiter),  # noqa: B008
    resolver: HouseholdContextResolver = Depends(get_household_resolver),  # noqa: B008
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),  # noqa: B008
    prober: ExtensionProber = Depends(get_capability_prober),  # noqa: B008
    recorder: SearchAnalyticsRecorder = Depends(get_analytics_recorder),  # noqa: B008
) -> dict[str, Any]:
    """Search the caller's household inventory.

    Falls back from full-text to trigram to ILIKE search; ``searchMethod``
    in the result says which strategy served the request.
    """
    _enforce_rate_limit(limiter, current_user, search_limit(get_settings()), response)
    data = _query_from_params(
        q=q,
        text=text,
        limit=limit,
        offset=offset,
        include_location=include_location,
        include_photos=include_photos,
        include_tags=include_tags,
        statuses=statuses,
        location_ids=location_ids,
        min_value=min_value,
        max_value=max_value,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    logger.info("Search request: user=%s, query_length=%d", current_user["user_id"], len(str(data.get("text", ""))))
    return await _run_search(
        data,
        current_user=current_user,
        resolver=resolver,
        session_factory=session_factory,
        prober=prober,
        recorder=recorder,
    )


@router.post("")
async def advanced_search(
    request: Request,
    response: Response,
    current_user: dict = Depends(get_current_user),  # noqa: B008
    limiter: RateLimiter = Depends(get_rate_limiter),  # noqa: B008
    resolver: HouseholdContextResolver = Depends(get_household_resolver),  # noqa: B008
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),  # noqa: B008
    prober: ExtensionProber = Depends(get_capability_prober),  # noqa: B008
    recorder: SearchAnalyticsRecorder = Depends(get_analytics_recorder),  # noqa: B008
) -> dict[str, Any]:
    """Search with a JSON ``SearchQuery`` body (structured filters)."""
    _enforce_rate_limit(limiter, current_user, advanced_search_limit(get_settings()), response)
    try:
        body = await request.json()
    except ValueError:
        raise _http_error(SearchValidationError("Request body must be valid JSON")) from None
    if not isinstance(body, dict):
        raise _http_error(SearchValidationError("Request body must be a JSON object"))

    return await _run_search(
        body,
        current_user=current_user,
        resolver=resolver,
        session_factory=session_factory,
        prober=prober,
        recorder=recorder,
        searchType="advanced",
    )


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------


@router.get("/suggestions")
async def search_suggestions(
    response: Response,
    text: str | None = Query(None, description="Text to complete"),  # noqa: B008
    q: str | None = Query(None, description="Alias of text"),  # noqa: B008
    limit: str | None = Query(None, description="Maximum suggestions (1-10, default 5)"),  # noqa: B008
    types: str | None = Query(None, description="Comma-separated: item,location,tag,description"),  # noqa: B008
    current_user: dict = Depends(get_current_user),  # noqa: B008
    limiter: RateLimiter = Depends(get_rate_limiter),  # noqa: B008
    resolver: HouseholdContextResolver = Depends(get_household_resolver),  # noqa: B008
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),  # noqa: B008
) -> dict[str, Any]:
    """Ranked autocomplete suggestions from item names, locations, tags and descriptions."""
    started = datetime.now(UTC)
    _enforce_rate_limit(limiter, current_user, suggestions_limit(get_settings()), response)

    raw: dict[str, Any] = {"text": text if text is not None else q, "limit": limit, "types": _split(types)}
    data = {key: value for key, value in raw.items() if value is not None}
    try:
        query = parse_suggestion_query(data)
        scope = await _resolve_scope(resolver, current_user)
        suggestions = await _build_suggestion_generator(session_factory).generate(
            scope, query.text, query.limit, query.types
        )
    except SearchError as exc:
        raise _http_error(exc) from None
    except HTTPException:
        raise
    except Exception:
        logger.exception("Suggestion generation failed for user=%s", current_user["user_id"])
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "INTERNAL_ERROR", "message": "Failed to generate suggestions"},
        ) from None

    response_time = int((datetime.now(UTC) - started).total_seconds() * 1000)
    return {
        "data": {
            "suggestions": [s.model_dump(mode="json", by_alias=True) for s in suggestions],
            "hasMore": len(suggestions) >= query.limit,
            "responseTime": response_time,
        },
        "meta": _meta(),
    }


# ---------------------------------------------------------------------------
# Capabilities & analytics
# ---------------------------------------------------------------------------


@router.get("/capabilities")
async def get_capabilities(
    current_user: dict = Depends(get_current_user),  # noqa: B008
    resolver: HouseholdContextResolver = Depends(get_household_resolver),  # noqa: B008
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),  # noqa: B008
    prober: ExtensionProber = Depends(get_capability_prober),  # noqa: B008
    recorder: SearchAnalyticsRecorder = Depends(get_analytics_recorder),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict[str, Any]:
    """Extension status, resolved search configuration and index statistics."""
    scope = await _resolve_scope(resolver, current_user)
    service = _build_search_service(session_factory, prober, recorder)
    return {"data": await service.capabilities(db, scope), "meta": _meta()}


@router.post("/capabilities/refresh")
async def refresh_capabilities(
    current_user: dict = Depends(get_current_user),  # noqa: B008
    prober: ExtensionProber = Depends(get_capability_prober),  # noqa: B008
) -> dict[str, Any]:
    """Drop the cached extension status and probe the database again."""
    status_ = await prober.refresh()
    logger.info("Extension capabilities refreshed by user=%s", current_user["user_id"])
    return {"data": status_.model_dump(by_alias=True), "meta": _meta(status_)}


@router.get("/analytics")
async def get_search_analytics(
    period: str = Query("7d", pattern="^(1d|7d|30d|90d)$"),  # noqa: B008
    current_user: dict = Depends(get_current_user),  # noqa: B008
    resolver: HouseholdContextResolver = Depends(get_household_resolver),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict[str, Any]:
    """Search analytics for the caller's household."""
    scope = await _resolve_scope(resolver, current_user)
    return {"data": await get_dashboard_data(db, period, scope.household_id), "meta": _meta()}


# ---------------------------------------------------------------------------
# Search vector index state & endpoints
# ---------------------------------------------------------------------------


@dataclass
class IndexState:
    status: str = "idle"
    is_indexing: bool = False
    queued: int = 0
    processed: int = 0
    error_message: str | None = None
    triggered_by: str | None = None


# Per-household rebuild state; one household never sees another's progress.
_index_states: dict[uuid.UUID, IndexState] = {}


def _index_state_for(household_id: uuid.UUID) -> IndexState:
    return _index_states.setdefault(household_id, IndexState())


class IndexStatusResponse(BaseModel):
    status: str
    queued: int
    processed: int
    pending: int
    error_message: str | None = None


class IndexTriggerResponse(BaseModel):
    status: str
    message: str


async def _run_index_background(
    state: IndexState,
    scope: HouseholdScope,
    session_factory: async_sessionmaker[AsyncSession],
    use_unaccent: bool = False,
    rebuild: bool = False,
    batch_size: int = 100,
) -> None:
    state.status = "indexing"
    state.is_indexing = True
    state.error_message = None
    state.processed = 0

    try:
        async with session_factory() as session:
            indexer = _build_indexer(session, scope.household_id, use_unaccent)
            state.queued = await indexer.queue_missing(rebuild=rebuild)
            while True:
                outcome = await indexer.process_queue(batch_size)
                state.processed += outcome.processed
                if outcome.processed == 0 or outcome.remaining == 0:
                    break
        state.status = "completed"
        logger.info(
            "Search vector rebuild done: household=%s, queued=%d, processed=%d",
            scope.household_id,
            state.queued,
            state.processed,
        )
    except Exception as exc:
        state.status = "error"
        state.error_message = str(exc)
        logger.exception("Search vector rebuild failed: household=%s", scope.household_id)
    finally:
        state.is_indexing = False


@router.post("/index", response_model=IndexTriggerResponse)
async def trigger_index(
    background_tasks: BackgroundTasks,
    rebuild: bool = Query(False, description="Re-vectorize every item, not only missing ones"),  # noqa: B008
    current_user: dict = Depends(get_current_user),  # noqa: B008
    resolver: HouseholdContextResolver = Depends(get_household_resolver),  # noqa: B008
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),  # noqa: B008
    prober: ExtensionProber = Depends(get_capability_prober),  # noqa: B008
) -> IndexTriggerResponse:
    """Queue the household's items and rebuild their search vectors in the background."""
    scope = await _resolve_scope(resolver, current_user)
    state = _index_state_for(scope.household_id)
    if state.is_indexing:
        return IndexTriggerResponse(status="already_indexing", message="Search vector rebuild already running")

    use_unaccent = resolve_configuration(await prober.probe()).use_unaccent
    # Claimed before the task is scheduled so a second request sees it.
    state.is_indexing = True
    state.status = "indexing"
    state.triggered_by = str(current_user["user_id"])
    background_tasks.add_task(_run_index_background, state, scope, session_factory, use_unaccent, rebuild)
    return IndexTriggerResponse(status="indexing", message="Search vector rebuild started")


@router.get("/index/status", response_model=IndexStatusResponse)
async def get_index_status(
    current_user: dict = Depends(get_current_user),  # noqa: B008
    resolver: HouseholdContextResolver = Depends(get_household_resolver),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> IndexStatusResponse:
    """Current search vector rebuild status for the caller's household."""
    scope = await _resolve_scope(resolver, current_user)
    state = _index_state_for(scope.household_id)
    pending = await _build_indexer(db, scope.household_id).pending_count()
    return IndexStatusResponse(
        status=state.status,
        queued=state.queued,
        processed=state.processed,
        pending=pending,
        error_message=state.error_message,
    )
