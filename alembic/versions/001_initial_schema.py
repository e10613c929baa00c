"""initial schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17 00:00:00.000000
"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ENUM, JSONB, UUID

from alembic import op

revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_INVENTORY_STATUSES = ("available", "listed", "sold")
_LISTING_STATUSES = ("not_listed", "active", "sold", "removed", "error")


def upgrade() -> None:
    inventory_status = ENUM(*_INVENTORY_STATUSES, name="inventory_status", create_type=False)
    listing_status = ENUM(*_LISTING_STATUSES, name="marketplace_listing_status", create_type=False)
    inventory_status.create(op.get_bind(), checkfirst=True)
    listing_status.create(op.get_bind(), checkfirst=True)

    # Inventory: one row per physical item
    op.create_table(
        "inventory_items",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("purchase_price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("condition", sa.String(128), nullable=True),
        sa.Column("brand", sa.String(128), nullable=True),
        sa.Column("category", sa.String(256), nullable=True),
        sa.Column("images", JSONB, nullable=False, server_default=sa.text("'[]'")),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("sku", sa.String(128), nullable=True),
        sa.Column("auto_delist_on_sale", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", inventory_status, nullable=False, server_default="available"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )
    op.create_index("ix_inventory_items_brand", "inventory_items", ["brand"])
    op.create_index("ix_inventory_items_status", "inventory_items", ["status"])

    # Listing registry: at most one row per (item, marketplace)
    op.create_table(
        "marketplace_listings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("inventory_item_id", sa.String(64), nullable=False),
        sa.Column("marketplace", sa.String(32), nullable=False),
        sa.Column("marketplace_listing_id", sa.String(256), nullable=True),
        sa.Column("marketplace_listing_url", sa.String(2048), nullable=True),
        sa.Column("status", listing_status, nullable=False),
        sa.Column("listed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delisted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("metadata", JSONB, nullable=False, server_default=sa.text("'{}'")),
        sa.UniqueConstraint(
            "inventory_item_id", "marketplace", name="uq_marketplace_listings_item_marketplace"
        ),
    )
    op.create_index("ix_marketplace_listings_inventory_item_id", "marketplace_listings", ["inventory_item_id"])
    op.create_index("ix_marketplace_listings_status", "marketplace_listings", ["status"])
    op.create_index(
        "ix_marketplace_listings_marketplace_listing_id",
        "marketplace_listings",
        ["marketplace", "marketplace_listing_id"],
    )

    # Marketplace account tokens, refreshed out of band
    op.create_table(
        "marketplace_credentials",
        sa.Column("marketplace", sa.String(32), primary_key=True),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )


def downgrade() -> None:
    op.drop_table("marketplace_credentials")
    op.drop_table("marketplace_listings")
    op.drop_table("inventory_items")
    sa.Enum(name="marketplace_listing_status").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="inventory_status").drop(op.get_bind(), checkfirst=True)
