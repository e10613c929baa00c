"""
Unit tests for CrosslistingOrchestrator.

Adapters are mocked; the registry and inventory are the in-memory implementations
so record state can be asserted directly.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.application.interfaces.inventory_repository import InventoryItemNotFoundError
from src.application.interfaces.marketplace_adapter import (
    AdapterError,
    AdapterListingResult,
    SoldListing,
)
from src.application.orchestrator.crosslisting_orchestrator import (
    CrosslistingOrchestrator,
    ListingOptions,
    UnknownMarketplaceError,
    build_listing_payload,
)
from src.application.orchestrator.results import NOT_CONNECTED_MESSAGE
from src.application.orchestrator.work_queue import BoundedWorkQueue
from src.domain.entities.credential import Credential
from src.domain.entities.inventory_item import InventoryItem
from src.domain.entities.marketplace_listing import MarketplaceListing
from src.domain.enums.inventory_status import InventoryStatus
from src.domain.enums.listing_status import MarketplaceListingStatus
from src.domain.events.domain_events import (
    ItemSoldEvent,
    ListingDelistedEvent,
    ListingPublishedEvent,
)
from src.infrastructure.memory.in_memory_inventory_repository import InMemoryInventoryRepository
from src.infrastructure.memory.in_memory_listing_registry import InMemoryListingRegistry


# ============================================================================
# Helpers
# ============================================================================

def _make_credential(marketplace: str, expired: bool = False) -> Credential:
    offset = timedelta(hours=-1) if expired else timedelta(hours=1)
    return Credential(
        marketplace=marketplace,
        access_token=f"{marketplace}-token",
        expires_at=datetime.now(timezone.utc) + offset,
    )


def _credentials(*marketplaces: str) -> dict[str, Credential]:
    return {m: _make_credential(m) for m in marketplaces}


def _make_adapter(marketplace: str) -> MagicMock:
    adapter = MagicMock()
    adapter.marketplace = marketplace
    adapter.list_item = AsyncMock(
        return_value=AdapterListingResult(
            listing_id=f"{marketplace}-L1",
            listing_url=f"https://{marketplace}.example/L1",
            raw={"fee": "0.30"},
        )
    )
    adapter.delist_item = AsyncMock(return_value={"ended": True})
    adapter.sync_sold_items = AsyncMock(return_value=[])
    return adapter


def _make_item(item_id: str = "i1", **overrides: Any) -> InventoryItem:
    values: dict[str, Any] = {
        "id": item_id,
        "title": "Nikon F3 35mm body",
        "purchase_price": Decimal("20"),
        "condition": "good",
        "brand": "Nikon",
        "images": ["https://img.example/1.jpg"],
    }
    values.update(overrides)
    return InventoryItem(**values)


def _active(item_id: str, marketplace: str, listing_id: str) -> MarketplaceListing:
    return MarketplaceListing(
        inventory_item_id=item_id,
        marketplace=marketplace,
        marketplace_listing_id=listing_id,
        status=MarketplaceListingStatus.ACTIVE,
    )


def _make_orchestrator(
    marketplaces: tuple[str, ...] = ("ebay", "mercari", "facebook"),
    items: list[InventoryItem] | None = None,
    records: list[MarketplaceListing] | None = None,
) -> tuple[CrosslistingOrchestrator, dict[str, MagicMock], InMemoryListingRegistry, InMemoryInventoryRepository, MagicMock]:
    adapters = {m: _make_adapter(m) for m in marketplaces}
    registry = InMemoryListingRegistry(records)
    inventory = InMemoryInventoryRepository(items if items is not None else [_make_item()])
    publisher = MagicMock()
    publisher.publish = AsyncMock()
    orchestrator = CrosslistingOrchestrator(
        adapters, registry, inventory, publisher, BoundedWorkQueue(1)
    )
    return orchestrator, adapters, registry, inventory, publisher


async def _status_of(registry: InMemoryListingRegistry, item_id: str, marketplace: str) -> MarketplaceListingStatus:
    records = {r.marketplace: r for r in await registry.get(item_id)}
    return records[marketplace].status


# ============================================================================
# build_listing_payload
# ============================================================================

class TestBuildListingPayload:
    def test_price_is_purchase_price_times_multiplier(self) -> None:
        payload = build_listing_payload(_make_item(), ListingOptions(price_multiplier=1.5))
        assert payload["price"] == 30.0

    def test_explicit_price_wins(self) -> None:
        payload = build_listing_payload(_make_item(), ListingOptions(price=Decimal("44.999")))
        assert payload["price"] == 45.0

    def test_defaults_fill_missing_fields(self) -> None:
        item = _make_item(description=None, condition=None, brand=None, sku=None)
        payload = build_listing_payload(item, ListingOptions())

        assert payload["description"] == item.title
        assert payload["condition"] == "good"
        assert payload["brand"] == ""
        assert payload["sku"] == "i1"
        assert payload["photos"] == [{"imageUrl": "https://img.example/1.jpg"}]

    def test_marketplace_specific_data_overrides(self) -> None:
        options = ListingOptions(marketplace_specific_data={"condition": "USED_GOOD", "shippingProfile": "sp-1"})
        payload = build_listing_payload(_make_item(), options)

        assert payload["condition"] == "USED_GOOD"
        assert payload["shippingProfile"] == "sp-1"


# ============================================================================
# list_on_marketplace / delist_from_marketplace
# ============================================================================

class TestListOnMarketplace:
    @pytest.mark.asyncio
    async def test_success_records_active_listing_and_marks_item_listed(self) -> None:
        orchestrator, adapters, registry, inventory, publisher = _make_orchestrator()

        outcome = await orchestrator.list_on_marketplace("i1", "ebay", _make_credential("ebay"))

        assert outcome.listing_id == "ebay-L1"
        records = await registry.get("i1")
        assert len(records) == 1
        assert records[0].status == MarketplaceListingStatus.ACTIVE
        assert records[0].marketplace_listing_id == "ebay-L1"
        assert records[0].listed_at is not None
        assert records[0].metadata == {"fee": "0.30"}
        assert (await inventory.get("i1")).status == InventoryStatus.LISTED

        event = publisher.publish.call_args.args[0]
        assert isinstance(event, ListingPublishedEvent)
        assert event.price == 30.0

    @pytest.mark.asyncio
    async def test_adapter_failure_raises_and_writes_nothing(self) -> None:
        orchestrator, adapters, registry, inventory, publisher = _make_orchestrator()
        adapters["ebay"].list_item.side_effect = AdapterError("ebay", "listing rejected")

        with pytest.raises(AdapterError):
            await orchestrator.list_on_marketplace("i1", "ebay", _make_credential("ebay"))

        assert len(registry) == 0
        assert (await inventory.get("i1")).status == InventoryStatus.AVAILABLE
        publisher.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_marketplace(self) -> None:
        orchestrator, *_ = _make_orchestrator()

        with pytest.raises(UnknownMarketplaceError, match="Integration for vinted not found"):
            await orchestrator.list_on_marketplace("i1", "vinted", _make_credential("vinted"))

    @pytest.mark.asyncio
    async def test_missing_item(self) -> None:
        orchestrator, adapters, *_ = _make_orchestrator(items=[])

        with pytest.raises(InventoryItemNotFoundError):
            await orchestrator.list_on_marketplace("i1", "ebay", _make_credential("ebay"))
        adapters["ebay"].list_item.assert_not_awaited()


class TestDelistFromMarketplace:
    @pytest.mark.asyncio
    async def test_marks_record_removed(self) -> None:
        orchestrator, adapters, registry, _, publisher = _make_orchestrator(
            records=[_active("i1", "ebay", "E1")]
        )

        await orchestrator.delist_from_marketplace("E1", "ebay", _make_credential("ebay"))

        record = (await registry.get("i1"))[0]
        assert record.status == MarketplaceListingStatus.REMOVED
        assert record.delisted_at is not None
        assert isinstance(publisher.publish.call_args.args[0], ListingDelistedEvent)

    @pytest.mark.asyncio
    async def test_untracked_listing_still_delisted(self) -> None:
        orchestrator, adapters, registry, _, publisher = _make_orchestrator()

        outcome = await orchestrator.delist_from_marketplace("X9", "ebay", _make_credential("ebay"))

        assert outcome.raw == {"ended": True}
        assert len(registry) == 0
        publisher.publish.assert_not_awaited()


# ============================================================================
# crosslist
# ============================================================================

class TestCrosslist:
    @pytest.mark.asyncio
    async def test_missing_credential_fails_only_that_marketplace(self) -> None:
        orchestrator, adapters, registry, _, _ = _make_orchestrator()

        result = await orchestrator.crosslist(
            "i1", ["ebay", "mercari", "facebook"], _credentials("ebay", "facebook")
        )

        assert result.succeeded_marketplaces == ["ebay", "facebook"]
        assert [(f.marketplace, f.error) for f in result.errors] == [("mercari", NOT_CONNECTED_MESSAGE)]
        adapters["mercari"].list_item.assert_not_awaited()
        assert sorted(r.marketplace for r in await registry.get("i1")) == ["ebay", "facebook"]

    @pytest.mark.asyncio
    async def test_expired_credential_counts_as_not_connected(self) -> None:
        orchestrator, *_ = _make_orchestrator()

        result = await orchestrator.crosslist("i1", ["ebay"], {"ebay": _make_credential("ebay", expired=True)})

        assert result.errors[0].error == NOT_CONNECTED_MESSAGE

    @pytest.mark.asyncio
    async def test_adapter_failure_is_collected(self) -> None:
        orchestrator, adapters, *_ = _make_orchestrator()
        adapters["mercari"].list_item.side_effect = AdapterError("mercari", "photo required")

        result = await orchestrator.crosslist("i1", ["ebay", "mercari"], _credentials("ebay", "mercari"))

        assert result.succeeded_marketplaces == ["ebay"]
        assert result.errors[0].error == "photo required"
        assert result.ok is False

    @pytest.mark.asyncio
    async def test_unknown_marketplace_is_collected(self) -> None:
        orchestrator, *_ = _make_orchestrator()

        result = await orchestrator.crosslist("i1", ["vinted"], _credentials("vinted"))

        assert result.errors[0].error == "Integration for vinted not found"


# ============================================================================
# delist_everywhere / relist_item
# ============================================================================

class TestDelistEverywhere:
    @pytest.mark.asyncio
    async def test_status_written_even_when_a_delist_fails(self) -> None:
        orchestrator, adapters, registry, inventory, _ = _make_orchestrator(
            items=[_make_item(status=InventoryStatus.LISTED)],
            records=[_active("i1", "ebay", "E1"), _active("i1", "mercari", "M1")],
        )
        adapters["ebay"].delist_item.side_effect = AdapterError("ebay", "ebay is down")

        result = await orchestrator.delist_everywhere("i1", _credentials("ebay", "mercari"))

        assert result.failed_marketplaces == ["ebay"]
        assert result.succeeded_marketplaces == ["mercari"]
        assert (await inventory.get("i1")).status == InventoryStatus.AVAILABLE
        assert await _status_of(registry, "i1", "ebay") == MarketplaceListingStatus.ACTIVE
        assert await _status_of(registry, "i1", "mercari") == MarketplaceListingStatus.REMOVED

    @pytest.mark.asyncio
    async def test_only_active_records_are_targeted(self) -> None:
        removed = _active("i1", "mercari", "M1")
        removed.status = MarketplaceListingStatus.REMOVED
        orchestrator, adapters, *_ = _make_orchestrator(records=[_active("i1", "ebay", "E1"), removed])

        await orchestrator.delist_everywhere("i1", _credentials("ebay", "mercari"))

        adapters["ebay"].delist_item.assert_awaited_once()
        adapters["mercari"].delist_item.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_credential_reported(self) -> None:
        orchestrator, adapters, *_ = _make_orchestrator(records=[_active("i1", "ebay", "E1")])

        result = await orchestrator.delist_everywhere("i1", {})

        assert [(f.marketplace, f.error) for f in result.errors] == [("ebay", NOT_CONNECTED_MESSAGE)]
        adapters["ebay"].delist_item.assert_not_awaited()


class TestRelistItem:
    @pytest.mark.asyncio
    async def test_failed_list_phase_leaves_item_delisted(self) -> None:
        orchestrator, adapters, registry, inventory, _ = _make_orchestrator(
            items=[_make_item(status=InventoryStatus.LISTED)],
            records=[_active("i1", "ebay", "E1")],
        )
        adapters["ebay"].list_item.side_effect = AdapterError("ebay", "relist rejected")

        result = await orchestrator.relist_item("i1", ["ebay"], _credentials("ebay"))

        assert result.failed_marketplaces == ["ebay"]
        assert await _status_of(registry, "i1", "ebay") == MarketplaceListingStatus.REMOVED
        assert (await inventory.get("i1")).status == InventoryStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_relist_reuses_the_record(self) -> None:
        original = _active("i1", "ebay", "E1")
        orchestrator, _, registry, inventory, _ = _make_orchestrator(records=[original])

        result = await orchestrator.relist_item("i1", ["ebay"], _credentials("ebay"))

        records = await registry.get("i1")
        assert result.ok
        assert len(records) == 1
        assert records[0].id == original.id
        assert records[0].created_at == original.created_at
        assert records[0].status == MarketplaceListingStatus.ACTIVE
        assert records[0].marketplace_listing_id == "ebay-L1"
        assert records[0].delisted_at is None
        assert (await inventory.get("i1")).status == InventoryStatus.LISTED


# ============================================================================
# Bulk
# ============================================================================

class TestBulk:
    @pytest.mark.asyncio
    async def test_one_failing_item_does_not_stop_the_batch(self) -> None:
        orchestrator, adapters, registry, _, _ = _make_orchestrator(
            items=[_make_item("i1"), _make_item("i2"), _make_item("i3")]
        )

        async def _list(payload: dict[str, Any], credentials: Credential) -> AdapterListingResult:
            if payload["sku"] == "i2":
                raise AdapterError("ebay", "duplicate listing")
            return AdapterListingResult(listing_id=f"E-{payload['sku']}")

        adapters["ebay"].list_item = AsyncMock(side_effect=_list)

        result = await orchestrator.bulk_list_items(["i1", "i2", "i3"], ["ebay"], _credentials("ebay"))

        assert result.total == 3
        assert result.processed == 3
        assert [s.item_id for s in result.success] == ["i1", "i3"]
        assert [(e.item_id, e.marketplace, e.error) for e in result.errors] == [
            ("i2", "ebay", "duplicate listing")
        ]
        assert await registry.get("i2") == []

    @pytest.mark.asyncio
    async def test_parallel_bulk_crosslist_stays_within_the_bound(self) -> None:
        items = [_make_item("i1"), _make_item("i2"), _make_item("i3")]
        adapters = {m: _make_adapter(m) for m in ("ebay", "mercari")}
        in_flight = {"current": 0, "peak": 0}

        async def _list(payload: dict[str, Any], credentials: Credential) -> AdapterListingResult:
            in_flight["current"] += 1
            in_flight["peak"] = max(in_flight["peak"], in_flight["current"])
            await asyncio.sleep(0.01)
            in_flight["current"] -= 1
            return AdapterListingResult(listing_id=f"{credentials.marketplace}-{payload['sku']}")

        for adapter in adapters.values():
            adapter.list_item = AsyncMock(side_effect=_list)
        registry = InMemoryListingRegistry()
        orchestrator = CrosslistingOrchestrator(
            adapters, registry, InMemoryInventoryRepository(items), work_queue=BoundedWorkQueue(2)
        )

        result = await orchestrator.bulk_list_items(
            ["i1", "i2", "i3"], ["ebay", "mercari"], _credentials("ebay", "mercari")
        )

        assert result.ok
        assert in_flight["peak"] == 2
        assert len(await registry.get("i3")) == 2

    @pytest.mark.asyncio
    async def test_bulk_events_name_the_operation(self) -> None:
        orchestrator, *_ = _make_orchestrator()

        with patch("src.application.orchestrator.crosslisting_orchestrator.logger") as logger:
            await orchestrator.bulk_list_items(["i1", "ghost"], ["ebay"], _credentials("ebay"))

        events = {c.args[0]: c.kwargs for c in logger.info.call_args_list}
        assert events["bulk_started"]["operation"] == "bulk_list"
        assert events["bulk_completed"]["operation"] == "bulk_list"
        assert events["bulk_completed"]["failed"] == 1

    @pytest.mark.asyncio
    async def test_missing_item_is_reported_per_item(self) -> None:
        orchestrator, *_ = _make_orchestrator()

        result = await orchestrator.bulk_list_items(["i1", "ghost"], ["ebay"], _credentials("ebay"))

        assert result.processed == 2
        assert [e.item_id for e in result.errors] == ["ghost"]

    @pytest.mark.asyncio
    async def test_bulk_delist_named_marketplaces_only(self) -> None:
        orchestrator, adapters, registry, inventory, _ = _make_orchestrator(
            items=[_make_item(status=InventoryStatus.LISTED)],
            records=[_active("i1", "ebay", "E1"), _active("i1", "mercari", "M1")],
        )

        result = await orchestrator.bulk_delist_items(["i1"], ["ebay"], _credentials("ebay", "mercari"))

        assert result.ok
        adapters["mercari"].delist_item.assert_not_awaited()
        assert await _status_of(registry, "i1", "mercari") == MarketplaceListingStatus.ACTIVE
        # Partial delist leaves the item status alone
        assert (await inventory.get("i1")).status == InventoryStatus.LISTED

    @pytest.mark.asyncio
    async def test_bulk_delist_without_marketplaces_delists_everywhere(self) -> None:
        orchestrator, adapters, registry, inventory, _ = _make_orchestrator(
            items=[_make_item(status=InventoryStatus.LISTED)],
            records=[_active("i1", "ebay", "E1"), _active("i1", "mercari", "M1")],
        )

        await orchestrator.bulk_delist_items(["i1"], [], _credentials("ebay", "mercari"))

        adapters["ebay"].delist_item.assert_awaited_once()
        adapters["mercari"].delist_item.assert_awaited_once()
        assert (await inventory.get("i1")).status == InventoryStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_bulk_relist(self) -> None:
        orchestrator, adapters, *_ = _make_orchestrator(
            items=[_make_item("i1"), _make_item("i2")],
            records=[_active("i1", "ebay", "E1")],
        )

        result = await orchestrator.bulk_relist_items(["i1", "i2"], ["ebay"], _credentials("ebay"))

        assert [s.item_id for s in result.success] == ["i1", "i2"]
        adapters["ebay"].delist_item.assert_awaited_once()
        assert adapters["ebay"].list_item.await_count == 2


# ============================================================================
# Sold sync
# ============================================================================

class TestSyncSoldItems:
    @pytest.mark.asyncio
    async def test_sale_with_auto_delist_cascades(self) -> None:
        orchestrator, adapters, registry, inventory, publisher = _make_orchestrator(
            items=[_make_item(auto_delist_on_sale=True, status=InventoryStatus.LISTED)],
            records=[_active("i1", "ebay", "E1"), _active("i1", "mercari", "M1")],
        )
        adapters["mercari"].sync_sold_items.return_value = [SoldListing(listing_id="M1")]

        result = await orchestrator.sync_sold_items(_credentials("ebay", "mercari"))

        assert (await inventory.get("i1")).status == InventoryStatus.SOLD
        assert await _status_of(registry, "i1", "mercari") == MarketplaceListingStatus.SOLD
        assert await _status_of(registry, "i1", "ebay") == MarketplaceListingStatus.REMOVED
        adapters["ebay"].delist_item.assert_awaited_once()
        adapters["mercari"].delist_item.assert_not_awaited()

        assert result.errors == []
        assert len(result.matched) == 1
        assert result.matched[0].inventory_item_id == "i1"
        assert result.matched[0].auto_delisted is True

        sold_events = [c.args[0] for c in publisher.publish.call_args_list if isinstance(c.args[0], ItemSoldEvent)]
        assert len(sold_events) == 1
        assert sold_events[0].auto_delist is True

    @pytest.mark.asyncio
    async def test_sale_without_auto_delist_leaves_siblings(self) -> None:
        orchestrator, adapters, registry, inventory, _ = _make_orchestrator(
            items=[_make_item(status=InventoryStatus.LISTED)],
            records=[_active("i1", "ebay", "E1"), _active("i1", "mercari", "M1")],
        )
        adapters["mercari"].sync_sold_items.return_value = [SoldListing(listing_id="M1")]

        result = await orchestrator.sync_sold_items(_credentials("ebay", "mercari"))

        assert (await inventory.get("i1")).status == InventoryStatus.SOLD
        assert await _status_of(registry, "i1", "ebay") == MarketplaceListingStatus.ACTIVE
        adapters["ebay"].delist_item.assert_not_awaited()
        assert result.matched[0].auto_delisted is False

    @pytest.mark.asyncio
    async def test_cascade_failure_is_reported_but_item_still_sold(self) -> None:
        orchestrator, adapters, registry, inventory, _ = _make_orchestrator(
            items=[_make_item(auto_delist_on_sale=True, status=InventoryStatus.LISTED)],
            records=[_active("i1", "ebay", "E1"), _active("i1", "mercari", "M1")],
        )
        adapters["mercari"].sync_sold_items.return_value = [SoldListing(listing_id="M1")]
        adapters["ebay"].delist_item.side_effect = AdapterError("ebay", "ebay is down")

        result = await orchestrator.sync_sold_items(_credentials("ebay", "mercari"))

        assert (await inventory.get("i1")).status == InventoryStatus.SOLD
        assert [(f.marketplace, f.error) for f in result.errors] == [("ebay", "ebay is down")]

    @pytest.mark.asyncio
    async def test_untracked_sale_is_reported_unmatched(self) -> None:
        orchestrator, adapters, *_ = _make_orchestrator()
        adapters["ebay"].sync_sold_items.return_value = [SoldListing(listing_id="unknown")]

        result = await orchestrator.sync_sold_items(_credentials("ebay"))

        assert len(result.sold_items) == 1
        assert result.matched == []
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_fetch_failure_does_not_stop_other_marketplaces(self) -> None:
        orchestrator, adapters, _, inventory, _ = _make_orchestrator(
            items=[_make_item(status=InventoryStatus.LISTED)],
            records=[_active("i1", "mercari", "M1")],
        )
        adapters["ebay"].sync_sold_items.side_effect = AdapterError("ebay", "rate limited")
        adapters["mercari"].sync_sold_items.return_value = [SoldListing(listing_id="M1")]

        result = await orchestrator.sync_sold_items(_credentials("ebay", "mercari"))

        assert [f.marketplace for f in result.errors] == ["ebay"]
        assert (await inventory.get("i1")).status == InventoryStatus.SOLD

    @pytest.mark.asyncio
    async def test_only_connected_marketplaces_are_polled(self) -> None:
        orchestrator, adapters, *_ = _make_orchestrator()

        await orchestrator.sync_sold_items(
            {"ebay": _make_credential("ebay"), "mercari": _make_credential("mercari", expired=True)}
        )

        adapters["ebay"].sync_sold_items.assert_awaited_once()
        adapters["mercari"].sync_sold_items.assert_not_awaited()
