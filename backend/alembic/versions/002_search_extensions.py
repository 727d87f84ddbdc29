# @TASK S0-T0.6 - Optional search extensions and search_vector trigger

"""Try to enable pg_trgm/unaccent/uuid-ossp and keep items.search_vector current.

Revision ID: 002_search_extensions
Revises: 001_inventory_schema
Create Date: 2026-10-01 09:30:00.000000

Extensions are optional: on managed databases without the privilege or the
package, the migration still succeeds and search falls back to ILIKE.
Trigram indexes are created only when pg_trgm ended up installed.
"""

from typing import Sequence, Union

from alembic import op
from inventory_search.config import get_settings

# revision identifiers, used by Alembic.
revision: str = "002_search_extensions"
down_revision: Union[str, None] = "001_inventory_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_EXTENSIONS = ("pg_trgm", "unaccent", "uuid-ossp")

_TRIGRAM_INDEXES = {
    "idx_items_name_trgm": "items USING GIN (name gin_trgm_ops)",
    "idx_items_description_trgm": "items USING GIN (description gin_trgm_ops)",
    "idx_locations_name_trgm": "locations USING GIN (name gin_trgm_ops)",
}


def _trigger_function_sql(text_config: str) -> str:
    """plpgsql for the items trigger; folds accents whenever unaccent is installed.

    Matches ``SearchVectorIndexer`` and the full-text query, which fold the
    same way and use the same text search configuration.
    """
    cfg = text_config.replace("'", "''")
    return f"""
        CREATE OR REPLACE FUNCTION items_search_vector_update() RETURNS trigger AS $$
        BEGIN
            IF EXISTS (SELECT 1 FROM pg_extension WHERE extname = 'unaccent') THEN
                NEW.search_vector :=
                    setweight(to_tsvector('{cfg}', unaccent(coalesce(NEW.name, ''))), 'A') ||
                    setweight(to_tsvector('{cfg}', unaccent(coalesce(NEW.description, ''))), 'B');
            ELSE
                NEW.search_vector :=
                    setweight(to_tsvector('{cfg}', coalesce(NEW.name, '')), 'A') ||
                    setweight(to_tsvector('{cfg}', coalesce(NEW.description, '')), 'B');
            END IF;
            RETURN NEW;
        END
        $$ LANGUAGE plpgsql
        """


def upgrade() -> None:
    """Enable available extensions, trigram indexes and the vector trigger."""
    for name in _EXTENSIONS:
        op.execute(
            f"""
            DO $$
            BEGIN
                CREATE EXTENSION IF NOT EXISTS "{name}";
            EXCEPTION WHEN OTHERS THEN
                RAISE NOTICE 'extension {name} not installed: %', SQLERRM;
            END
            $$
            """
        )

    for index_name, target in _TRIGRAM_INDEXES.items():
        op.execute(
            f"""
            DO $$
            BEGIN
                IF EXISTS (SELECT 1 FROM pg_extension WHERE extname = 'pg_trgm') THEN
                    EXECUTE 'CREATE INDEX IF NOT EXISTS {index_name} ON {target}';
                END IF;
            END
            $$
            """
        )

    op.execute(_trigger_function_sql(get_settings().SEARCH_TEXT_CONFIG))
    op.execute(
        """
        CREATE TRIGGER items_search_vector_trigger
        BEFORE INSERT OR UPDATE OF name, description ON items
        FOR EACH ROW EXECUTE FUNCTION items_search_vector_update()
        """
    )
    # Backfill rows that existed before the trigger.
    op.execute("UPDATE items SET name = name WHERE search_vector IS NULL")


def downgrade() -> None:
    """Remove the trigger and trigram indexes; extensions are left installed."""
    op.execute("DROP TRIGGER IF EXISTS items_search_vector_trigger ON items")
    op.execute("DROP FUNCTION IF EXISTS items_search_vector_update()")
    for index_name in _TRIGRAM_INDEXES:
        op.execute(f"DROP INDEX IF EXISTS {index_name}")
