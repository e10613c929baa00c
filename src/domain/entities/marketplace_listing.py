from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

from src.domain.enums.listing_status import MarketplaceListingStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Fields that identify a record and can never be overwritten by a merge
_IMMUTABLE_FIELDS = frozenset({"id", "inventory_item_id", "marketplace", "created_at", "updated_at"})


@dataclass
class MarketplaceListing:
    """
    Record of one inventory item on one marketplace.

    At most one record exists per (inventory_item_id, marketplace); every write is a
    merge over that record via apply_changes().
    """

    # Identity
    id: UUID = field(default_factory=uuid4)
    inventory_item_id: str = ""
    marketplace: str = ""

    # Marketplace data
    marketplace_listing_id: str | None = None
    marketplace_listing_url: str | None = None
    status: MarketplaceListingStatus = MarketplaceListingStatus.NOT_LISTED

    # Timestamps
    listed_at: datetime | None = None
    delisted_at: datetime | None = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    # Raw adapter response
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str]:
        return (self.inventory_item_id, self.marketplace)

    @property
    def is_active(self) -> bool:
        return self.status.is_live

    @classmethod
    def create(
        cls,
        *,
        inventory_item_id: str,
        marketplace: str,
        changes: dict[str, Any],
        now: datetime | None = None,
    ) -> "MarketplaceListing":
        now = now or _utcnow()
        listing = cls(
            inventory_item_id=inventory_item_id,
            marketplace=marketplace,
            created_at=now,
            updated_at=now,
        )
        listing._merge(changes)
        return listing

    def apply_changes(self, changes: dict[str, Any], now: datetime | None = None) -> None:
        """Merge changes over this record; created_at is kept, updated_at always advances."""
        now = now or _utcnow()
        self._merge(changes)
        # Two writes within one clock tick must still order strictly
        self.updated_at = max(now, self.updated_at + timedelta(microseconds=1))

    def _merge(self, changes: dict[str, Any]) -> None:
        known = {f.name for f in fields(self)}
        for name, value in changes.items():
            if name in _IMMUTABLE_FIELDS:
                continue
            if name not in known:
                raise ValueError(f"Unknown marketplace listing field: {name}")
            if name == "status" and value is not None:
                value = MarketplaceListingStatus(value)
            if name == "metadata":
                value = dict(value or {})
            setattr(self, name, value)
