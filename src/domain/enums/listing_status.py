from enum import Enum


class MarketplaceListingStatus(str, Enum):
    """Status of one item's listing on one marketplace."""

    NOT_LISTED = "not_listed"
    ACTIVE = "active"
    SOLD = "sold"
    REMOVED = "removed"
    ERROR = "error"

    @property
    def is_live(self) -> bool:
        return self is MarketplaceListingStatus.ACTIVE


# Documented record lifecycle. Writes go through the registry upsert, which merges
# fields without checking this table; the orchestrator only issues these moves.
VALID_LISTING_TRANSITIONS: dict[MarketplaceListingStatus, frozenset[MarketplaceListingStatus]] = {
    MarketplaceListingStatus.NOT_LISTED: frozenset({MarketplaceListingStatus.ACTIVE}),
    MarketplaceListingStatus.ACTIVE: frozenset(
        {
            MarketplaceListingStatus.ACTIVE,
            MarketplaceListingStatus.SOLD,
            MarketplaceListingStatus.REMOVED,
        }
    ),
    MarketplaceListingStatus.REMOVED: frozenset({MarketplaceListingStatus.ACTIVE}),
    MarketplaceListingStatus.SOLD: frozenset({MarketplaceListingStatus.ACTIVE}),
    MarketplaceListingStatus.ERROR: frozenset({MarketplaceListingStatus.ACTIVE}),
}
