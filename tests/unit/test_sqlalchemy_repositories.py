"""Unit tests for the SQLAlchemy repositories sharing one request session. The session is mocked."""
import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.domain.enums.listing_status import MarketplaceListingStatus
from src.infrastructure.database.connection import session_lock
from src.infrastructure.database.repositories.inventory_repository import SqlAlchemyInventoryRepository
from src.infrastructure.database.repositories.listing_registry import SqlAlchemyListingRegistry


class _OverlapTrackingSession:
    """Stands in for an AsyncSession and records how many operations ran at once."""

    def __init__(self) -> None:
        self.info: dict[str, Any] = {}
        self.current = 0
        self.peak = 0
        self.add = MagicMock()

    async def _enter(self) -> None:
        self.current += 1
        self.peak = max(self.peak, self.current)
        await asyncio.sleep(0.01)
        self.current -= 1

    async def execute(self, statement: Any) -> MagicMock:
        await self._enter()
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        return result

    async def flush(self) -> None:
        await self._enter()

    async def get(self, model: Any, key: str) -> None:
        await self._enter()
        return None


class TestSessionLock:
    def test_one_lock_per_session(self) -> None:
        session = MagicMock()
        session.info = {}

        assert session_lock(session) is session_lock(session)

    def test_repositories_share_the_session_lock(self) -> None:
        session = _OverlapTrackingSession()

        registry = SqlAlchemyListingRegistry(session)  # type: ignore[arg-type]
        inventory = SqlAlchemyInventoryRepository(session)  # type: ignore[arg-type]

        assert registry._lock is inventory._lock


class TestConcurrentUse:
    @pytest.mark.asyncio
    async def test_concurrent_upserts_never_overlap_on_the_session(self) -> None:
        session = _OverlapTrackingSession()
        registry = SqlAlchemyListingRegistry(session)  # type: ignore[arg-type]

        listings = await asyncio.gather(
            *(
                registry.upsert(inventory_item_id="i1", marketplace=marketplace, status=MarketplaceListingStatus.ACTIVE)
                for marketplace in ("ebay", "mercari", "etsy")
            )
        )

        assert session.peak == 1
        assert [listing.marketplace for listing in listings] == ["ebay", "mercari", "etsy"]
        assert session.add.call_count == 3

    @pytest.mark.asyncio
    async def test_registry_and_inventory_calls_are_serialised_together(self) -> None:
        session = _OverlapTrackingSession()
        registry = SqlAlchemyListingRegistry(session)  # type: ignore[arg-type]
        inventory = SqlAlchemyInventoryRepository(session)  # type: ignore[arg-type]

        await asyncio.gather(
            registry.upsert(inventory_item_id="i1", marketplace="ebay", status=MarketplaceListingStatus.ACTIVE),
            inventory.get("i1"),
            registry.find_by_marketplace_listing_id("E1", "ebay"),
        )

        assert session.peak == 1

    @pytest.mark.asyncio
    async def test_unknown_inventory_field_rejected_before_touching_session(self) -> None:
        session = _OverlapTrackingSession()
        session.get = AsyncMock()  # type: ignore[method-assign]
        inventory = SqlAlchemyInventoryRepository(session)  # type: ignore[arg-type]

        with pytest.raises(ValueError):
            await inventory.update("i1", colour="red")
        session.get.assert_not_awaited()
