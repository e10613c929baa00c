from abc import ABC, abstractmethod
from typing import Any

from src.domain.entities.marketplace_listing import MarketplaceListing


class ListingRegistry(ABC):
    """
    Port for the persisted set of marketplace listing records.

    Keyed by (inventory_item_id, marketplace). No transactional guarantees: callers
    must not issue concurrent writes for the same key.
    """

    @abstractmethod
    async def upsert(
        self, *, inventory_item_id: str, marketplace: str, **changes: Any
    ) -> MarketplaceListing:
        """Merge changes over the existing record, or insert one if the key is new."""
        ...

    @abstractmethod
    async def get(self, inventory_item_id: str) -> list[MarketplaceListing]:
        """All records for an item, any status."""
        ...

    @abstractmethod
    async def remove(self, inventory_item_id: str, marketplace: str) -> None:
        ...

    @abstractmethod
    async def find_by_marketplace_listing_id(
        self, marketplace_listing_id: str, marketplace: str | None = None
    ) -> MarketplaceListing | None:
        ...
