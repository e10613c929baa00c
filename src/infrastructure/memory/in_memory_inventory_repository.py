import copy
import dataclasses
from typing import Any

from src.application.interfaces.inventory_repository import (
    InventoryItemNotFoundError,
    InventoryRepository,
)
from src.domain.entities.inventory_item import InventoryItem
from src.domain.enums.inventory_status import InventoryStatus


class InMemoryInventoryRepository(InventoryRepository):
    def __init__(self, items: list[InventoryItem] | None = None) -> None:
        self._items = {item.id: copy.deepcopy(item) for item in items or []}

    def add(self, item: InventoryItem) -> None:
        self._items[item.id] = copy.deepcopy(item)

    async def get(self, item_id: str) -> InventoryItem | None:
        item = self._items.get(item_id)
        return copy.deepcopy(item) if item is not None else None

    async def update(self, item_id: str, **changes: Any) -> InventoryItem:
        item = self._items.get(item_id)
        if item is None:
            raise InventoryItemNotFoundError(item_id)
        if "status" in changes:
            changes["status"] = InventoryStatus(changes["status"])
        # replace() rejects unknown field names
        self._items[item_id] = dataclasses.replace(item, **changes)
        return copy.deepcopy(self._items[item_id])
