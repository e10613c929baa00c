import copy
from typing import Any

from src.application.interfaces.listing_registry import ListingRegistry
from src.domain.entities.marketplace_listing import MarketplaceListing


class InMemoryListingRegistry(ListingRegistry):
    """Dict-backed registry for tests and local runs. Returns copies, never live records."""

    def __init__(self, records: list[MarketplaceListing] | None = None) -> None:
        self._records: dict[tuple[str, str], MarketplaceListing] = {}
        for record in records or []:
            self._records[record.key] = copy.deepcopy(record)

    def __len__(self) -> int:
        return len(self._records)

    async def upsert(
        self, *, inventory_item_id: str, marketplace: str, **changes: Any
    ) -> MarketplaceListing:
        key = (inventory_item_id, marketplace)
        existing = self._records.get(key)
        if existing is None:
            existing = MarketplaceListing.create(
                inventory_item_id=inventory_item_id, marketplace=marketplace, changes=changes
            )
            self._records[key] = existing
        else:
            existing.apply_changes(changes)
        return copy.deepcopy(existing)

    async def get(self, inventory_item_id: str) -> list[MarketplaceListing]:
        return [
            copy.deepcopy(record)
            for (item_id, _), record in self._records.items()
            if item_id == inventory_item_id
        ]

    async def remove(self, inventory_item_id: str, marketplace: str) -> None:
        self._records.pop((inventory_item_id, marketplace), None)

    async def find_by_marketplace_listing_id(
        self, marketplace_listing_id: str, marketplace: str | None = None
    ) -> MarketplaceListing | None:
        for record in self._records.values():
            if record.marketplace_listing_id != marketplace_listing_id:
                continue
            if marketplace is not None and record.marketplace != marketplace:
                continue
            return copy.deepcopy(record)
        return None
