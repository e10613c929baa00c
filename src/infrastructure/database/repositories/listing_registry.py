from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.application.interfaces.listing_registry import ListingRegistry
from src.domain.entities.marketplace_listing import MarketplaceListing
from src.domain.enums.listing_status import MarketplaceListingStatus
from src.infrastructure.database.connection import session_lock
from src.infrastructure.database.models import MarketplaceListingModel


def _to_domain(model: MarketplaceListingModel) -> MarketplaceListing:
    return MarketplaceListing(
        id=model.id,
        inventory_item_id=model.inventory_item_id,
        marketplace=model.marketplace,
        marketplace_listing_id=model.marketplace_listing_id,
        marketplace_listing_url=model.marketplace_listing_url,
        status=MarketplaceListingStatus(model.status),
        listed_at=model.listed_at,
        delisted_at=model.delisted_at,
        created_at=model.created_at,
        updated_at=model.updated_at,
        metadata=dict(model.metadata_ or {}),
    )


def _copy_to_model(listing: MarketplaceListing, model: MarketplaceListingModel) -> None:
    model.marketplace_listing_id = listing.marketplace_listing_id
    model.marketplace_listing_url = listing.marketplace_listing_url
    model.status = listing.status.value
    model.listed_at = listing.listed_at
    model.delisted_at = listing.delisted_at
    model.updated_at = listing.updated_at
    model.metadata_ = listing.metadata


class SqlAlchemyListingRegistry(ListingRegistry):
    """
    Listing registry on the ``marketplace_listings`` table.

    The unique constraint on (inventory_item_id, marketplace) backs the one-record-per-key
    rule; merge semantics come from the domain entity. Calls are serialised on the
    session lock so concurrent dispatch workers can share one request session.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._lock = session_lock(session)

    async def _get_model(self, inventory_item_id: str, marketplace: str) -> MarketplaceListingModel | None:
        result = await self._session.execute(
            select(MarketplaceListingModel).where(
                MarketplaceListingModel.inventory_item_id == inventory_item_id,
                MarketplaceListingModel.marketplace == marketplace,
            )
        )
        return result.scalar_one_or_none()

    async def upsert(
        self, *, inventory_item_id: str, marketplace: str, **changes: Any
    ) -> MarketplaceListing:
        async with self._lock:
            model = await self._get_model(inventory_item_id, marketplace)
            if model is None:
                listing = MarketplaceListing.create(
                    inventory_item_id=inventory_item_id, marketplace=marketplace, changes=changes
                )
                model = MarketplaceListingModel(
                    id=listing.id,
                    inventory_item_id=inventory_item_id,
                    marketplace=marketplace,
                    created_at=listing.created_at,
                )
                _copy_to_model(listing, model)
                self._session.add(model)
            else:
                listing = _to_domain(model)
                listing.apply_changes(changes)
                _copy_to_model(listing, model)

            await self._session.flush()
        return listing

    async def get(self, inventory_item_id: str) -> list[MarketplaceListing]:
        async with self._lock:
            result = await self._session.execute(
                select(MarketplaceListingModel)
                .where(MarketplaceListingModel.inventory_item_id == inventory_item_id)
                .order_by(MarketplaceListingModel.created_at)
            )
            models = result.scalars().all()
        return [_to_domain(m) for m in models]

    async def remove(self, inventory_item_id: str, marketplace: str) -> None:
        async with self._lock:
            await self._session.execute(
                delete(MarketplaceListingModel).where(
                    MarketplaceListingModel.inventory_item_id == inventory_item_id,
                    MarketplaceListingModel.marketplace == marketplace,
                )
            )
            await self._session.flush()

    async def find_by_marketplace_listing_id(
        self, marketplace_listing_id: str, marketplace: str | None = None
    ) -> MarketplaceListing | None:
        query = select(MarketplaceListingModel).where(
            MarketplaceListingModel.marketplace_listing_id == marketplace_listing_id
        )
        if marketplace is not None:
            query = query.where(MarketplaceListingModel.marketplace == marketplace)

        async with self._lock:
            result = await self._session.execute(query.order_by(MarketplaceListingModel.updated_at.desc()).limit(1))
            model = result.scalar_one_or_none()
        return _to_domain(model) if model is not None else None
