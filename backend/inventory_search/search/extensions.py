# @TASK S1-T1.1 - PostgreSQL extension capability probing
# @TEST tests/test_extensions.py

"""Detect which optional PostgreSQL extensions this deployment has.

Search degrades through full-text, trigram and ILIKE strategies depending on
what the database offers. Probing is done once per process and cached on an
explicitly created ``ExtensionProber``; call ``invalidate()`` or
``refresh()`` after installing extensions.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_search.constants import SEARCH_EXTENSIONS

logger = logging.getLogger(__name__)

_AVAILABLE_SQL = text("SELECT name FROM pg_available_extensions WHERE name IN ('pg_trgm', 'unaccent', 'uuid-ossp')")
_INSTALLED_SQL = text("SELECT extname FROM pg_extension WHERE extname IN ('pg_trgm', 'unaccent', 'uuid-ossp')")


class ExtensionStatus(BaseModel):
    """Which search-related extensions are both available and installed."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    pg_trgm: bool = False
    unaccent: bool = False
    uuid_ossp: bool = False
    full_text_search_capable: bool = False

    @classmethod
    def from_names(cls, available: Iterable[str], installed: Iterable[str]) -> ExtensionStatus:
        usable = set(available) & set(installed)
        pg_trgm = "pg_trgm" in usable
        return cls(
            pg_trgm=pg_trgm,
            unaccent="unaccent" in usable,
            uuid_ossp="uuid-ossp" in usable,
            # Full-text ranking is built on top of the trigram capability.
            full_text_search_capable=pg_trgm,
        )


class DatabaseValidation(BaseModel):
    valid: bool
    warnings: list[str] = []
    recommendations: list[str] = []


class ExtensionProber:
    """Probes and caches the extension status for the lifetime of the process.

    Args:
        session_factory: Factory producing async sessions; each probe opens
            its own short-lived session.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None) -> None:
        self._session_factory = session_factory
        self._status: ExtensionStatus | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def with_status(cls, status: ExtensionStatus) -> ExtensionProber:
        """Build a prober pinned to *status* that never touches the database."""
        prober = cls(None)
        prober._status = status
        return prober

    @property
    def cached(self) -> ExtensionStatus | None:
        return self._status

    async def probe(self) -> ExtensionStatus:
        """Return the cached status, probing the database on first use.

        Never raises: any failure yields the all-false status, which is cached
        like a successful probe until ``invalidate()`` is called.
        """
        if self._status is not None:
            return self._status
        async with self._lock:
            if self._status is None:
                self._status = await self._probe_database()
            return self._status

    def invalidate(self) -> None:
        self._status = None

    async def refresh(self) -> ExtensionStatus:
        self.invalidate()
        return await self.probe()

    async def _probe_database(self) -> ExtensionStatus:
        if self._session_factory is None:
            return ExtensionStatus()
        try:
            async with self._session_factory() as session:
                available = (await session.execute(_AVAILABLE_SQL)).scalars().all()
                installed = (await session.execute(_INSTALLED_SQL)).scalars().all()
        except Exception:
            logger.warning("Extension probe failed; assuming no search extensions", exc_info=True)
            return ExtensionStatus()

        status = ExtensionStatus.from_names(available, installed)
        logger.info(
            "Search extensions: pg_trgm=%s unaccent=%s uuid-ossp=%s",
            status.pg_trgm,
            status.unaccent,
            status.uuid_ossp,
        )
        return status


async def install_extensions(
    prober: ExtensionProber,
    session_factory: async_sessionmaker[AsyncSession],
    names: Iterable[str] = SEARCH_EXTENSIONS,
) -> ExtensionStatus:
    """Try ``CREATE EXTENSION IF NOT EXISTS`` for each name, then re-probe.

    A missing privilege or package for one extension does not stop the others.
    """
    for name in names:
        if name not in SEARCH_EXTENSIONS:
            logger.warning("Refusing to install unknown extension %r", name)
            continue
        try:
            async with session_factory() as session:
                await session.execute(text(f'CREATE EXTENSION IF NOT EXISTS "{name}"'))
                await session.commit()
            logger.info("Installed/verified extension: %s", name)
        except Exception as exc:
            logger.warning("Could not install extension %s: %s", name, exc)

    return await prober.refresh()


async def validate_database_configuration(
    prober: ExtensionProber,
    session_factory: async_sessionmaker[AsyncSession],
) -> DatabaseValidation:
    """Check connectivity and report missing extensions with recommendations."""
    warnings: list[str] = []
    recommendations: list[str] = []

    status = await prober.probe()
    if not status.uuid_ossp:
        warnings.append("uuid-ossp extension not available - UUID generation may be slower")
        recommendations.append("Install uuid-ossp extension for optimal UUID performance")
    if not status.full_text_search_capable:
        warnings.append("Full-text search extensions not available - using fallback ILIKE search")
        recommendations.append("Install pg_trgm extension for optimal search performance")
    if not status.unaccent:
        warnings.append("unaccent extension not available - accent-sensitive search only")
        recommendations.append("Install unaccent extension for better international text search")

    valid = True
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Database connectivity test failed")
        valid = False
        warnings.append("Database connectivity test failed")

    return DatabaseValidation(valid=valid, warnings=warnings, recommendations=recommendations)
