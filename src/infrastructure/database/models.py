"""
SQLAlchemy ORM models.

Domain entities are mapped to and from these inside the repository
implementations; nothing outside infrastructure imports them.
"""
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SAEnum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.domain.enums.inventory_status import InventoryStatus
from src.domain.enums.listing_status import MarketplaceListingStatus
from src.infrastructure.database.connection import Base

_listing_status_enum = SAEnum(
    MarketplaceListingStatus,
    name="marketplace_listing_status",
    values_callable=lambda obj: [e.value for e in obj],
)

_inventory_status_enum = SAEnum(
    InventoryStatus,
    name="inventory_status",
    values_callable=lambda obj: [e.value for e in obj],
)


class InventoryItemModel(Base):
    __tablename__ = "inventory_items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Pricing
    purchase_price: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    price: Mapped[float | None] = mapped_column(Numeric(10, 2), nullable=True)

    # Attributes
    condition: Mapped[str | None] = mapped_column(String(128), nullable=True)
    brand: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    category: Mapped[str | None] = mapped_column(String(256), nullable=True)
    images: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)  # type: ignore[type-arg]
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    sku: Mapped[str | None] = mapped_column(String(128), nullable=True)

    auto_delist_on_sale: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(
        _inventory_status_enum, nullable=False, default=InventoryStatus.AVAILABLE.value, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class MarketplaceListingModel(Base):
    __tablename__ = "marketplace_listings"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    inventory_item_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    marketplace: Mapped[str] = mapped_column(String(32), nullable=False)

    # Marketplace data
    marketplace_listing_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    marketplace_listing_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    status: Mapped[str] = mapped_column(_listing_status_enum, nullable=False, index=True)

    # Timestamps; written by the domain entity, not the database
    listed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delisted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    metadata_: Mapped[dict] = mapped_column(  # type: ignore[type-arg]
        "metadata", JSONB, nullable=False, default=dict
    )

    __table_args__ = (
        UniqueConstraint("inventory_item_id", "marketplace", name="uq_marketplace_listings_item_marketplace"),
        Index("ix_marketplace_listings_marketplace_listing_id", "marketplace", "marketplace_listing_id"),
    )


class MarketplaceCredentialModel(Base):
    __tablename__ = "marketplace_credentials"

    marketplace: Mapped[str] = mapped_column(String(32), primary_key=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
