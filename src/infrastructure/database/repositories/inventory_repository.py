from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.application.interfaces.inventory_repository import (
    InventoryItemNotFoundError,
    InventoryRepository,
)
from src.domain.entities.inventory_item import InventoryItem
from src.domain.enums.inventory_status import InventoryStatus
from src.infrastructure.database.connection import session_lock
from src.infrastructure.database.models import InventoryItemModel

_UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "purchase_price",
        "price",
        "condition",
        "brand",
        "category",
        "images",
        "quantity",
        "sku",
        "auto_delist_on_sale",
        "status",
    }
)


def _to_domain(model: InventoryItemModel) -> InventoryItem:
    return InventoryItem(
        id=model.id,
        title=model.title,
        description=model.description,
        purchase_price=Decimal(str(model.purchase_price)),
        price=Decimal(str(model.price)) if model.price is not None else None,
        condition=model.condition,
        brand=model.brand,
        category=model.category,
        images=list(model.images or []),
        quantity=model.quantity,
        sku=model.sku,
        auto_delist_on_sale=model.auto_delist_on_sale,
        status=InventoryStatus(model.status),
    )


class SqlAlchemyInventoryRepository(InventoryRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._lock = session_lock(session)

    async def get(self, item_id: str) -> InventoryItem | None:
        async with self._lock:
            model = await self._session.get(InventoryItemModel, item_id)
        return _to_domain(model) if model is not None else None

    async def update(self, item_id: str, **changes: Any) -> InventoryItem:
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown inventory item field: {sorted(unknown)[0]}")

        async with self._lock:
            model = await self._session.get(InventoryItemModel, item_id)
            if model is None:
                raise InventoryItemNotFoundError(item_id)

            for name, value in changes.items():
                if name == "status":
                    value = InventoryStatus(value).value
                setattr(model, name, value)

            await self._session.flush()
        return _to_domain(model)
