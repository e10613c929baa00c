from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import structlog

from src.application.interfaces.event_publisher import EventPublisher
from src.application.interfaces.inventory_repository import (
    InventoryItemNotFoundError,
    InventoryRepository,
)
from src.application.interfaces.listing_registry import ListingRegistry
from src.application.interfaces.marketplace_adapter import MarketplaceAdapter, SoldListing
from src.application.orchestrator.results import (
    NOT_CONNECTED_MESSAGE,
    BulkItemFailure,
    BulkResult,
    CrosslistResult,
    DelistResult,
    MarketplaceFailure,
    MarketplaceOutcome,
    SoldItem,
    SyncResult,
    describe_error,
)
from src.application.orchestrator.work_queue import BoundedWorkQueue
from src.config import settings
from src.domain.entities.credential import Credential, is_connected
from src.domain.entities.inventory_item import InventoryItem
from src.domain.entities.marketplace_listing import MarketplaceListing
from src.domain.enums.inventory_status import InventoryStatus
from src.domain.enums.listing_status import MarketplaceListingStatus
from src.domain.events.domain_events import (
    ItemSoldEvent,
    ListingDelistedEvent,
    ListingPublishedEvent,
)
from src.infrastructure.messaging.noop_publisher import NoOpEventPublisher

logger = structlog.get_logger(__name__)

_CENTS = Decimal("0.01")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MarketplaceNotConnectedError(Exception):
    """Credential for a marketplace is missing or expired."""

    def __init__(self, marketplace: str) -> None:
        self.marketplace = marketplace
        super().__init__(NOT_CONNECTED_MESSAGE)


class UnknownMarketplaceError(Exception):
    def __init__(self, marketplace: str) -> None:
        self.marketplace = marketplace
        super().__init__(f"Integration for {marketplace} not found")


@dataclass
class ListingOptions:
    price_multiplier: float = field(default_factory=lambda: settings.default_price_multiplier)
    # Explicit asking price; overrides purchase_price * price_multiplier
    price: Decimal | None = None
    delay_between_items_ms: int = field(default_factory=lambda: settings.bulk_delay_between_items_ms)
    marketplace_specific_data: dict[str, Any] = field(default_factory=dict)


def build_listing_payload(item: InventoryItem, options: ListingOptions) -> dict[str, Any]:
    """Translate an inventory item into the marketplace-neutral payload adapters accept."""
    if options.price is not None:
        price = Decimal(str(options.price))
    else:
        price = Decimal(str(item.purchase_price)) * Decimal(str(options.price_multiplier))

    payload: dict[str, Any] = {
        "title": item.title,
        "description": item.description or item.title,
        "price": float(price.quantize(_CENTS, rounding=ROUND_HALF_UP)),
        "condition": item.condition or "good",
        "brand": item.brand or "",
        "category": item.category or "",
        "photos": [{"imageUrl": url} for url in item.images],
        "quantity": item.quantity or 1,
        "sku": item.sku or item.id,
    }
    payload.update(options.marketplace_specific_data)
    return payload


class CrosslistingOrchestrator:
    """
    Lists, delists, relists and syncs inventory items across marketplaces.

    Every multi-target operation collects per-target failures instead of raising, so one
    marketplace or one item failing never stops the rest of the batch.
    """

    def __init__(
        self,
        adapters: Mapping[str, MarketplaceAdapter],
        registry: ListingRegistry,
        inventory: InventoryRepository,
        event_publisher: EventPublisher | None = None,
        work_queue: BoundedWorkQueue | None = None,
    ) -> None:
        self._adapters = dict(adapters)
        self._registry = registry
        self._inventory = inventory
        self._event_publisher = event_publisher or NoOpEventPublisher()
        self._queue = work_queue or BoundedWorkQueue(settings.dispatch_concurrency)

    @property
    def marketplaces(self) -> list[str]:
        return list(self._adapters)

    def _adapter_for(self, marketplace: str) -> MarketplaceAdapter:
        adapter = self._adapters.get(marketplace)
        if adapter is None:
            raise UnknownMarketplaceError(marketplace)
        return adapter

    # -------------------------------------------------------------------------
    # Single item, single marketplace
    # -------------------------------------------------------------------------

    async def list_on_marketplace(
        self,
        item_id: str,
        marketplace: str,
        credentials: Credential,
        options: ListingOptions | None = None,
    ) -> MarketplaceOutcome:
        """List one item on one marketplace. Raises on failure; nothing is recorded then."""
        options = options or ListingOptions()
        adapter = self._adapter_for(marketplace)

        item = await self._inventory.get(item_id)
        if item is None:
            raise InventoryItemNotFoundError(item_id)

        payload = build_listing_payload(item, options)
        result = await adapter.list_item(payload, credentials)

        await self._registry.upsert(
            inventory_item_id=item_id,
            marketplace=marketplace,
            marketplace_listing_id=result.listing_id,
            marketplace_listing_url=result.listing_url,
            status=MarketplaceListingStatus.ACTIVE,
            listed_at=_utcnow(),
            delisted_at=None,
            metadata=result.raw,
        )
        await self._inventory.update(item_id, status=InventoryStatus.LISTED)

        await self._event_publisher.publish(
            ListingPublishedEvent(
                inventory_item_id=item_id,
                marketplace=marketplace,
                marketplace_listing_id=result.listing_id,
                marketplace_listing_url=result.listing_url,
                price=payload["price"],
            )
        )
        logger.info(
            "item_listed",
            inventory_item_id=item_id,
            marketplace=marketplace,
            listing_id=result.listing_id,
        )
        return MarketplaceOutcome(
            marketplace=marketplace,
            listing_id=result.listing_id,
            listing_url=result.listing_url,
            raw=result.raw,
        )

    async def delist_from_marketplace(
        self, listing_id: str, marketplace: str, credentials: Credential
    ) -> MarketplaceOutcome:
        """Take one listing down and mark its record removed. Raises on adapter failure."""
        adapter = self._adapter_for(marketplace)
        ack = await adapter.delist_item(listing_id, credentials)

        record = await self._registry.find_by_marketplace_listing_id(listing_id, marketplace)
        if record is None:
            logger.warning("delisted_listing_not_in_registry", marketplace=marketplace, listing_id=listing_id)
        else:
            await self._registry.upsert(
                inventory_item_id=record.inventory_item_id,
                marketplace=marketplace,
                status=MarketplaceListingStatus.REMOVED,
                delisted_at=_utcnow(),
            )
            await self._event_publisher.publish(
                ListingDelistedEvent(
                    inventory_item_id=record.inventory_item_id,
                    marketplace=marketplace,
                    marketplace_listing_id=listing_id,
                )
            )

        logger.info("item_delisted", marketplace=marketplace, listing_id=listing_id)
        return MarketplaceOutcome(marketplace=marketplace, listing_id=listing_id, raw=dict(ack or {}))

    # -------------------------------------------------------------------------
    # Single item, many marketplaces
    # -------------------------------------------------------------------------

    async def crosslist(
        self,
        item_id: str,
        marketplaces: Sequence[str],
        credentials_map: Mapping[str, Credential],
        options: ListingOptions | None = None,
    ) -> CrosslistResult:
        """List one item on every requested marketplace. Never raises."""
        result = CrosslistResult()

        async def _list(marketplace: str) -> MarketplaceOutcome:
            credential = credentials_map.get(marketplace)
            if not is_connected(credential):
                raise MarketplaceNotConnectedError(marketplace)
            return await self.list_on_marketplace(item_id, marketplace, credential, options)

        for work in await self._queue.map(list(marketplaces), _list):
            if work.ok:
                result.success.append(work.value)
                continue
            if not isinstance(work.error, MarketplaceNotConnectedError):
                logger.warning(
                    "crosslist_target_failed",
                    inventory_item_id=item_id,
                    marketplace=work.item,
                    error=describe_error(work.error),
                )
            result.errors.append(
                MarketplaceFailure(marketplace=work.item, error=describe_error(work.error), details=work.error)
            )

        logger.info(
            "crosslist_completed",
            inventory_item_id=item_id,
            succeeded=result.succeeded_marketplaces,
            failed=result.failed_marketplaces,
        )
        return result

    async def delist_everywhere(
        self,
        item_id: str,
        credentials_map: Mapping[str, Credential],
        *,
        resulting_status: InventoryStatus = InventoryStatus.AVAILABLE,
    ) -> DelistResult:
        """
        Delist every active listing of an item, then set the item's status.

        The status is written even when some delists failed; failures are only
        reported in the result.
        """
        listings = await self._registry.get(item_id)
        result = await self._delist_records(
            [listing for listing in listings if listing.is_active], credentials_map
        )

        await self._inventory.update(item_id, status=resulting_status)

        if result.errors:
            logger.warning(
                "delist_everywhere_partial",
                inventory_item_id=item_id,
                failed=result.failed_marketplaces,
                resulting_status=resulting_status.value,
            )
        return result

    async def relist_item(
        self,
        item_id: str,
        marketplaces: Sequence[str],
        credentials_map: Mapping[str, Credential],
        options: ListingOptions | None = None,
    ) -> CrosslistResult:
        """Delist everywhere, then crosslist. Not atomic: a failed list phase stays delisted."""
        await self.delist_everywhere(item_id, credentials_map)
        return await self.crosslist(item_id, marketplaces, credentials_map, options)

    async def _delist_records(
        self,
        records: Sequence[MarketplaceListing],
        credentials_map: Mapping[str, Credential],
    ) -> DelistResult:
        result = DelistResult()

        async def _delist(record: MarketplaceListing) -> MarketplaceOutcome:
            credential = credentials_map.get(record.marketplace)
            if not is_connected(credential):
                raise MarketplaceNotConnectedError(record.marketplace)
            return await self.delist_from_marketplace(
                record.marketplace_listing_id or "", record.marketplace, credential
            )

        for work in await self._queue.map(list(records), _delist):
            if work.ok:
                result.success.append(work.value)
            else:
                logger.warning(
                    "delist_target_failed",
                    inventory_item_id=work.item.inventory_item_id,
                    marketplace=work.item.marketplace,
                    error=describe_error(work.error),
                )
                result.errors.append(
                    MarketplaceFailure(
                        marketplace=work.item.marketplace,
                        error=describe_error(work.error),
                        details=work.error,
                    )
                )
        return result

    # -------------------------------------------------------------------------
    # Bulk operations
    # -------------------------------------------------------------------------

    async def bulk_list_items(
        self,
        item_ids: Sequence[str],
        marketplaces: Sequence[str],
        credentials_map: Mapping[str, Credential],
        options: ListingOptions | None = None,
    ) -> BulkResult:
        options = options or ListingOptions()

        async def _list(item_id: str) -> CrosslistResult:
            return await self.crosslist(item_id, marketplaces, credentials_map, options)

        return await self._run_bulk("bulk_list", item_ids, _list, options.delay_between_items_ms)

    async def bulk_delist_items(
        self,
        item_ids: Sequence[str],
        marketplaces: Sequence[str],
        credentials_map: Mapping[str, Credential],
        options: ListingOptions | None = None,
    ) -> BulkResult:
        """Delist items from the given marketplaces, or from everywhere when none are given."""
        options = options or ListingOptions()

        async def _delist(item_id: str) -> DelistResult:
            if not marketplaces:
                return await self.delist_everywhere(item_id, credentials_map)
            listings = await self._registry.get(item_id)
            targets = [
                listing
                for listing in listings
                if listing.marketplace in marketplaces and listing.is_active
            ]
            return await self._delist_records(targets, credentials_map)

        return await self._run_bulk("bulk_delist", item_ids, _delist, options.delay_between_items_ms)

    async def bulk_relist_items(
        self,
        item_ids: Sequence[str],
        marketplaces: Sequence[str],
        credentials_map: Mapping[str, Credential],
        options: ListingOptions | None = None,
    ) -> BulkResult:
        options = options or ListingOptions()

        async def _relist(item_id: str) -> CrosslistResult:
            return await self.relist_item(item_id, marketplaces, credentials_map, options)

        return await self._run_bulk("bulk_relist", item_ids, _relist, options.delay_between_items_ms)

    async def _run_bulk(
        self,
        operation: str,
        item_ids: Sequence[str],
        per_item: Callable[[str], Awaitable[CrosslistResult]],
        delay_ms: int,
    ) -> BulkResult:
        batch = BulkResult(total=len(item_ids))
        logger.info("bulk_started", operation=operation, total=batch.total, concurrency=self._queue.concurrency)

        for work in await self._queue.map(list(item_ids), per_item, delay_seconds=delay_ms / 1000):
            batch.processed += 1
            if work.ok:
                batch.record(work.item, work.value)
            else:
                logger.warning(
                    "bulk_item_failed",
                    operation=operation,
                    inventory_item_id=work.item,
                    error=describe_error(work.error),
                )
                batch.errors.append(BulkItemFailure(item_id=work.item, error=describe_error(work.error)))

        logger.info(
            "bulk_completed",
            operation=operation,
            total=batch.total,
            processed=batch.processed,
            succeeded=len(batch.success),
            failed=len(batch.errors),
        )
        return batch

    # -------------------------------------------------------------------------
    # Sold item sync
    # -------------------------------------------------------------------------

    async def sync_sold_items(self, credentials_map: Mapping[str, Credential]) -> SyncResult:
        """
        Pull sales from every connected marketplace and mark matching inventory sold.

        Items with auto_delist_on_sale have their remaining active listings taken down.
        """
        result = SyncResult()
        connected = [m for m, credential in credentials_map.items() if is_connected(credential)]

        async def _fetch(marketplace: str) -> list[SoldListing]:
            return await self._adapter_for(marketplace).sync_sold_items(credentials_map[marketplace])

        reported: list[tuple[str, SoldListing]] = []
        for work in await self._queue.map(connected, _fetch):
            if work.ok:
                reported.extend((work.item, sold) for sold in work.value)
            else:
                logger.error("sold_sync_fetch_failed", marketplace=work.item, error=describe_error(work.error))
                result.errors.append(
                    MarketplaceFailure(marketplace=work.item, error=describe_error(work.error), details=work.error)
                )

        for marketplace, sold in reported:
            sold_item = SoldItem(marketplace=marketplace, listing_id=sold.listing_id, raw=sold.raw)
            result.sold_items.append(sold_item)
            try:
                await self._process_sale(sold_item, credentials_map, result)
            except Exception as exc:
                logger.exception("sold_item_processing_failed", marketplace=marketplace, listing_id=sold.listing_id)
                result.errors.append(
                    MarketplaceFailure(marketplace=marketplace, error=describe_error(exc), details=exc)
                )

        logger.info(
            "sold_sync_completed",
            marketplaces=connected,
            reported=len(result.sold_items),
            matched=len(result.matched),
            failed=len(result.errors),
        )
        return result

    async def _process_sale(
        self,
        sold_item: SoldItem,
        credentials_map: Mapping[str, Credential],
        result: SyncResult,
    ) -> None:
        record = await self._registry.find_by_marketplace_listing_id(
            sold_item.listing_id, sold_item.marketplace
        )
        if record is None:
            logger.debug("sold_listing_not_tracked", marketplace=sold_item.marketplace, listing_id=sold_item.listing_id)
            return

        sold_item.inventory_item_id = record.inventory_item_id
        await self._registry.upsert(
            inventory_item_id=record.inventory_item_id,
            marketplace=record.marketplace,
            status=MarketplaceListingStatus.SOLD,
        )
        item = await self._inventory.update(record.inventory_item_id, status=InventoryStatus.SOLD)

        if item.auto_delist_on_sale:
            cascade = await self.delist_everywhere(
                record.inventory_item_id, credentials_map, resulting_status=InventoryStatus.SOLD
            )
            sold_item.auto_delisted = True
            result.errors.extend(cascade.errors)

        await self._event_publisher.publish(
            ItemSoldEvent(
                inventory_item_id=record.inventory_item_id,
                marketplace=sold_item.marketplace,
                marketplace_listing_id=sold_item.listing_id,
                auto_delist=sold_item.auto_delisted,
            )
        )
        logger.info(
            "item_sold",
            inventory_item_id=record.inventory_item_id,
            marketplace=sold_item.marketplace,
            auto_delisted=sold_item.auto_delisted,
        )
