from abc import ABC, abstractmethod
from typing import Any

from src.domain.entities.inventory_item import InventoryItem


class InventoryItemNotFoundError(Exception):
    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(f"Inventory item {item_id} not found.")


class InventoryRepository(ABC):
    """Port for the inventory item store."""

    @abstractmethod
    async def get(self, item_id: str) -> InventoryItem | None:
        ...

    @abstractmethod
    async def update(self, item_id: str, **changes: Any) -> InventoryItem:
        """Apply changes and return the updated item. Raises InventoryItemNotFoundError."""
        ...
