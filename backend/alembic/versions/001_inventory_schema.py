# @TASK S0-T0.5 - Inventory schema used by search

"""Create households, members, locations, items, tags, photos and search tables.

Revision ID: 001_inventory_schema
Revises: None
Create Date: 2026-10-01 09:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_inventory_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable, server_default=sa.func.now())


def upgrade() -> None:
    """Apply schema migrations."""
    op.create_table(
        "households",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        _timestamp("created_at"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column(
            "default_household_id",
            sa.Uuid,
            sa.ForeignKey("households.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _timestamp("created_at"),
    )

    op.create_table(
        "household_members",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("user_id", sa.Uuid, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("household_id", sa.Uuid, sa.ForeignKey("households.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        _timestamp("joined_at"),
        sa.UniqueConstraint("user_id", "household_id", name="uq_household_member"),
    )
    op.create_index("ix_household_members_user_id", "household_members", ["user_id"])
    op.create_index("ix_household_members_household_id", "household_members", ["household_id"])

    op.create_table(
        "locations",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("household_id", sa.Uuid, sa.ForeignKey("households.id", ondelete="CASCADE"), nullable=False),
        sa.Column("parent_id", sa.Uuid, sa.ForeignKey("locations.id", ondelete="SET NULL"), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("path", sa.Text, nullable=False, server_default=""),
        sa.Column("item_count", sa.Integer, nullable=False, server_default="0"),
    )
    op.create_index("ix_locations_household_id", "locations", ["household_id"])

    op.create_table(
        "items",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("household_id", sa.Uuid, sa.ForeignKey("households.id", ondelete="CASCADE"), nullable=False),
        sa.Column("location_id", sa.Uuid, sa.ForeignKey("locations.id", ondelete="SET NULL"), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("quantity", sa.Integer, nullable=False, server_default="1"),
        sa.Column("unit", sa.String(50), nullable=False, server_default="piece"),
        sa.Column("status", sa.String(20), nullable=False, server_default="AVAILABLE"),
        sa.Column("purchase_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("current_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("search_vector", postgresql.TSVECTOR, nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("idx_items_household", "items", ["household_id"])
    op.create_index("idx_items_household_status", "items", ["household_id", "status"])
    op.create_index("idx_items_search_vector", "items", ["search_vector"], postgresql_using="gin")

    op.create_table(
        "tags",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("household_id", sa.Uuid, sa.ForeignKey("households.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("color", sa.String(20), nullable=False, server_default="#6b7280"),
        sa.Column("usage_count", sa.Integer, nullable=False, server_default="0"),
        sa.UniqueConstraint("household_id", "name", name="uq_tag_household_name"),
    )
    op.create_index("ix_tags_household_id", "tags", ["household_id"])

    op.create_table(
        "item_tags",
        sa.Column("item_id", sa.Uuid, sa.ForeignKey("items.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("tag_id", sa.Uuid, sa.ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "item_photos",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("item_id", sa.Uuid, sa.ForeignKey("items.id", ondelete="CASCADE"), nullable=False),
        sa.Column("thumbnail_url", sa.Text, nullable=False),
        sa.Column("is_primary", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("display_order", sa.Integer, nullable=False, server_default="0"),
    )
    op.create_index("ix_item_photos_item_id", "item_photos", ["item_id"])

    op.create_table(
        "search_analytics",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("household_id", sa.Uuid, nullable=True),
        sa.Column("query_length", sa.Integer, nullable=False, server_default="0"),
        sa.Column("result_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("response_time_ms", sa.Integer, nullable=False, server_default="0"),
        sa.Column("search_method", sa.String(30), nullable=True),
        sa.Column("error_code", sa.String(50), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_search_analytics_household_id", "search_analytics", ["household_id"])
    op.create_index("ix_search_analytics_created_at", "search_analytics", ["created_at"])

    op.create_table(
        "search_update_queue",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("item_id", sa.Uuid, sa.ForeignKey("items.id", ondelete="CASCADE"), nullable=False),
        sa.Column("priority", sa.Integer, nullable=False, server_default="5"),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        _timestamp("created_at"),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_search_update_queue_item_id", "search_update_queue", ["item_id"])
    op.create_index("ix_search_update_queue_status", "search_update_queue", ["status"])


def downgrade() -> None:
    """Drop every table created by upgrade()."""
    op.drop_table("search_update_queue")
    op.drop_table("search_analytics")
    op.drop_table("item_photos")
    op.drop_table("item_tags")
    op.drop_table("tags")
    op.drop_table("items")
    op.drop_table("locations")
    op.drop_table("household_members")
    op.drop_table("users")
    op.drop_table("households")
