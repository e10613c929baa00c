from dataclasses import dataclass, field
from decimal import Decimal

from src.domain.enums.inventory_status import InventoryStatus


@dataclass
class InventoryItem:
    """A physical item owned by the reseller. Referenced, not owned, by the orchestrator."""

    id: str = ""
    title: str = ""
    description: str | None = None
    purchase_price: Decimal = Decimal("0")
    price: Decimal | None = None
    condition: str | None = None
    brand: str | None = None
    category: str | None = None
    images: list[str] = field(default_factory=list)
    quantity: int = 1
    sku: str | None = None
    auto_delist_on_sale: bool = False
    status: InventoryStatus = InventoryStatus.AVAILABLE
