"""Unit tests for the in-memory listing registry."""
import pytest

from src.domain.enums.listing_status import MarketplaceListingStatus
from src.infrastructure.memory.in_memory_listing_registry import InMemoryListingRegistry


class TestUpsert:
    @pytest.mark.asyncio
    async def test_repeated_upsert_keeps_one_record(self) -> None:
        registry = InMemoryListingRegistry()

        first = await registry.upsert(
            inventory_item_id="i1",
            marketplace="ebay",
            status=MarketplaceListingStatus.ACTIVE,
            marketplace_listing_id="E1",
        )
        second = await registry.upsert(
            inventory_item_id="i1",
            marketplace="ebay",
            status=MarketplaceListingStatus.REMOVED,
        )

        assert len(registry) == 1
        assert second.id == first.id
        assert second.created_at == first.created_at
        assert second.updated_at > first.updated_at
        assert second.status == MarketplaceListingStatus.REMOVED
        # Fields not named in the second write are kept
        assert second.marketplace_listing_id == "E1"

    @pytest.mark.asyncio
    async def test_new_record_starts_not_listed(self) -> None:
        registry = InMemoryListingRegistry()
        record = await registry.upsert(inventory_item_id="i1", marketplace="etsy")
        assert record.status == MarketplaceListingStatus.NOT_LISTED

    @pytest.mark.asyncio
    async def test_returns_copies(self) -> None:
        registry = InMemoryListingRegistry()
        record = await registry.upsert(inventory_item_id="i1", marketplace="ebay")
        record.status = MarketplaceListingStatus.SOLD

        stored = await registry.get("i1")
        assert stored[0].status == MarketplaceListingStatus.NOT_LISTED


class TestQueries:
    @pytest.mark.asyncio
    async def test_get_returns_every_status_for_item(self) -> None:
        registry = InMemoryListingRegistry()
        await registry.upsert(inventory_item_id="i1", marketplace="ebay", status="active")
        await registry.upsert(inventory_item_id="i1", marketplace="mercari", status="removed")
        await registry.upsert(inventory_item_id="i2", marketplace="ebay", status="active")

        records = await registry.get("i1")

        assert sorted(r.marketplace for r in records) == ["ebay", "mercari"]

    @pytest.mark.asyncio
    async def test_get_unknown_item_is_empty(self) -> None:
        assert await InMemoryListingRegistry().get("missing") == []

    @pytest.mark.asyncio
    async def test_remove_deletes_only_that_pair(self) -> None:
        registry = InMemoryListingRegistry()
        await registry.upsert(inventory_item_id="i1", marketplace="ebay")
        await registry.upsert(inventory_item_id="i1", marketplace="mercari")

        await registry.remove("i1", "ebay")
        await registry.remove("i1", "ebay")

        assert [r.marketplace for r in await registry.get("i1")] == ["mercari"]

    @pytest.mark.asyncio
    async def test_find_by_marketplace_listing_id_respects_marketplace(self) -> None:
        registry = InMemoryListingRegistry()
        await registry.upsert(inventory_item_id="i1", marketplace="ebay", marketplace_listing_id="X1")
        await registry.upsert(inventory_item_id="i2", marketplace="mercari", marketplace_listing_id="X1")

        found = await registry.find_by_marketplace_listing_id("X1", "mercari")

        assert found is not None
        assert found.inventory_item_id == "i2"
        assert await registry.find_by_marketplace_listing_id("X1", "etsy") is None
        assert await registry.find_by_marketplace_listing_id("nope") is None
