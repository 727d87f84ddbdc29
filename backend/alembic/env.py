# @TASK S0-T0.4 - Alembic async migration environment

import asyncio
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context
from inventory_search.config import get_settings
from inventory_search.database import Base

config = context.config

# The database URL always comes from application settings.
config.set_main_option("sqlalchemy.url", get_settings().async_database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

import inventory_search.models  # noqa: F401, E402

target_metadata = Base.metadata

# Created with raw SQL only when pg_trgm is installed; not part of the models.
_UNMANAGED_INDEXES = {"idx_items_name_trgm", "idx_items_description_trgm", "idx_locations_name_trgm"}


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    """Keep autogenerate from dropping the optional trigram indexes."""
    return not (type_ == "index" and reflected and name in _UNMANAGED_INDEXES)


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        include_object=include_object,
        compare_type=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit the migration SQL to the script output without connecting."""
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    _configure(connection=connection)

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
