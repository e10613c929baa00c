from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from src.domain.entities.credential import Credential


class AdapterError(Exception):
    """A marketplace's own API call failed. Recoverable and local to that marketplace."""

    def __init__(self, marketplace: str, message: str) -> None:
        self.marketplace = marketplace
        super().__init__(message)


@dataclass
class AdapterListingResult:
    listing_id: str
    listing_url: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class SoldListing:
    """One sale reported back by a marketplace."""

    listing_id: str
    raw: dict[str, Any] = field(default_factory=dict)


class MarketplaceAdapter(ABC):
    """Port for one marketplace's native listing API."""

    marketplace: str

    @abstractmethod
    async def list_item(
        self, payload: dict[str, Any], credentials: Credential
    ) -> AdapterListingResult:
        ...

    @abstractmethod
    async def delist_item(self, listing_id: str, credentials: Credential) -> dict[str, Any]:
        """Returns the marketplace acknowledgement."""
        ...

    @abstractmethod
    async def sync_sold_items(self, credentials: Credential) -> list[SoldListing]:
        ...
