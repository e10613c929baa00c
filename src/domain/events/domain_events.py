from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID, uuid4


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ListingPublishedEvent(DomainEvent):
    """Published when an item goes live on a marketplace."""

    inventory_item_id: str = ""
    marketplace: str = ""
    marketplace_listing_id: str | None = None
    marketplace_listing_url: str | None = None
    price: float = 0.0


@dataclass(frozen=True)
class ListingDelistedEvent(DomainEvent):
    """Published when a live marketplace listing is taken down."""

    inventory_item_id: str = ""
    marketplace: str = ""
    marketplace_listing_id: str = ""


@dataclass(frozen=True)
class ItemSoldEvent(DomainEvent):
    """Published when a sold-item sync matches a listing back to inventory."""

    inventory_item_id: str = ""
    marketplace: str = ""
    marketplace_listing_id: str = ""
    auto_delist: bool = False
