from dataclasses import dataclass, field
from typing import Any

NOT_CONNECTED_MESSAGE = "Account not connected or token expired"


@dataclass
class MarketplaceOutcome:
    marketplace: str
    listing_id: str | None = None
    listing_url: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class MarketplaceFailure:
    marketplace: str
    error: str
    details: Exception | None = field(default=None, repr=False, compare=False)


@dataclass
class CrosslistResult:
    """Per-marketplace outcomes of one item. One failure never hides another success."""

    success: list[MarketplaceOutcome] = field(default_factory=list)
    errors: list[MarketplaceFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def succeeded_marketplaces(self) -> list[str]:
        return [outcome.marketplace for outcome in self.success]

    @property
    def failed_marketplaces(self) -> list[str]:
        return [failure.marketplace for failure in self.errors]


@dataclass
class DelistResult(CrosslistResult):
    pass


@dataclass
class BulkItemSuccess:
    item_id: str
    outcomes: list[MarketplaceOutcome] = field(default_factory=list)


@dataclass
class BulkItemFailure:
    item_id: str
    error: str
    marketplace: str | None = None


@dataclass
class BulkResult:
    total: int
    processed: int = 0
    success: list[BulkItemSuccess] = field(default_factory=list)
    errors: list[BulkItemFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def record(self, item_id: str, result: CrosslistResult) -> None:
        """Fold one item's per-marketplace result into the batch."""
        if result.success:
            self.success.append(BulkItemSuccess(item_id=item_id, outcomes=list(result.success)))
        for failure in result.errors:
            self.errors.append(
                BulkItemFailure(item_id=item_id, error=failure.error, marketplace=failure.marketplace)
            )


@dataclass
class SoldItem:
    marketplace: str
    listing_id: str
    inventory_item_id: str | None = None
    auto_delisted: bool = False
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class SyncResult:
    sold_items: list[SoldItem] = field(default_factory=list)
    errors: list[MarketplaceFailure] = field(default_factory=list)

    @property
    def matched(self) -> list[SoldItem]:
        return [item for item in self.sold_items if item.inventory_item_id is not None]


def describe_error(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__
