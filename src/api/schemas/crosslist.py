from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from src.application.orchestrator.crosslisting_orchestrator import ListingOptions
from src.domain.enums.listing_status import MarketplaceListingStatus


class ListingOptionsRequest(BaseModel):
    price_multiplier: float | None = Field(default=None, gt=0)
    price: Decimal | None = Field(default=None, gt=0)
    delay_between_items_ms: int | None = Field(default=None, ge=0)
    marketplace_specific_data: dict[str, Any] = Field(default_factory=dict)

    def to_listing_options(self) -> ListingOptions:
        options = ListingOptions(price=self.price, marketplace_specific_data=dict(self.marketplace_specific_data))
        if self.price_multiplier is not None:
            options.price_multiplier = self.price_multiplier
        if self.delay_between_items_ms is not None:
            options.delay_between_items_ms = self.delay_between_items_ms
        return options


class CrosslistRequest(BaseModel):
    marketplaces: list[str] = Field(min_length=1)
    options: ListingOptionsRequest = Field(default_factory=ListingOptionsRequest)


class BulkRequest(BaseModel):
    item_ids: list[str] = Field(min_length=1)
    # Empty means "everywhere" for delist; list and relist require at least one
    marketplaces: list[str] = Field(default_factory=list)
    options: ListingOptionsRequest = Field(default_factory=ListingOptionsRequest)


class MarketplaceOutcomeResponse(BaseModel):
    marketplace: str
    listing_id: str | None = None
    listing_url: str | None = None

    model_config = {"from_attributes": True}


class MarketplaceFailureResponse(BaseModel):
    marketplace: str
    error: str

    model_config = {"from_attributes": True}


class CrosslistResponse(BaseModel):
    ok: bool
    success: list[MarketplaceOutcomeResponse]
    errors: list[MarketplaceFailureResponse]

    model_config = {"from_attributes": True}


class BulkItemSuccessResponse(BaseModel):
    item_id: str
    outcomes: list[MarketplaceOutcomeResponse]

    model_config = {"from_attributes": True}


class BulkItemFailureResponse(BaseModel):
    item_id: str
    error: str
    marketplace: str | None = None

    model_config = {"from_attributes": True}


class BulkResponse(BaseModel):
    total: int
    processed: int
    ok: bool
    success: list[BulkItemSuccessResponse]
    errors: list[BulkItemFailureResponse]

    model_config = {"from_attributes": True}


class SoldItemResponse(BaseModel):
    marketplace: str
    listing_id: str
    inventory_item_id: str | None = None
    auto_delisted: bool = False

    model_config = {"from_attributes": True}


class SyncResponse(BaseModel):
    sold_items: list[SoldItemResponse]
    errors: list[MarketplaceFailureResponse]

    model_config = {"from_attributes": True}


class MarketplaceListingResponse(BaseModel):
    id: UUID
    inventory_item_id: str
    marketplace: str
    marketplace_listing_id: str | None = None
    marketplace_listing_url: str | None = None
    status: MarketplaceListingStatus
    listed_at: datetime | None = None
    delisted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
