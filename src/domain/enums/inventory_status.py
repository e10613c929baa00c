from enum import Enum


class InventoryStatus(str, Enum):
    """Availability of a physical inventory item."""

    AVAILABLE = "available"
    LISTED = "listed"
    SOLD = "sold"
