"""HTTP adapter for per-marketplace listing proxy services."""

from typing import Any

import httpx
import structlog

from src.application.interfaces.marketplace_adapter import (
    AdapterError,
    AdapterListingResult,
    MarketplaceAdapter,
    SoldListing,
)
from src.config import settings
from src.domain.entities.credential import Credential

logger = structlog.get_logger(__name__)


class HttpMarketplaceAdapter(MarketplaceAdapter):
    """
    Thin HTTP wrapper around one marketplace proxy.

    Proxy contract:
      POST   /listings              {"item": {...}} -> {"listingId", "listingUrl", ...}
      DELETE /listings/{listing_id}                 -> acknowledgement object
      GET    /sold                                  -> {"items": [{"listingId", ...}]}
    """

    def __init__(
        self,
        marketplace: str,
        base_url: str,
        timeout: float = settings.marketplace_api_timeout_seconds,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.marketplace = marketplace
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _headers(self, credentials: Credential) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {credentials.access_token}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, credentials: Credential, **kwargs: Any) -> Any:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.request(
                    method,
                    f"{self._base_url}{path}",
                    headers=self._headers(credentials),
                    **kwargs,
                )
                response.raise_for_status()
                return response.json() if response.content else {}
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "marketplace_request_failed",
                    marketplace=self.marketplace,
                    method=method,
                    path=path,
                    status_code=exc.response.status_code,
                    response=exc.response.text,
                )
                raise AdapterError(
                    self.marketplace,
                    f"{self.marketplace} returned {exc.response.status_code}: {exc.response.text}",
                ) from exc
            except httpx.RequestError as exc:
                logger.error("marketplace_connection_failed", marketplace=self.marketplace, error=str(exc))
                raise AdapterError(self.marketplace, f"Failed to reach {self.marketplace}: {exc}") from exc

    async def list_item(self, payload: dict[str, Any], credentials: Credential) -> AdapterListingResult:
        data = await self._request("POST", "/listings", credentials, json={"item": payload})
        listing_id = data.get("listingId") or data.get("listing_id")
        if not listing_id:
            raise AdapterError(self.marketplace, f"{self.marketplace} response did not include a listing id")

        logger.info("marketplace_listing_created", marketplace=self.marketplace, listing_id=listing_id)
        return AdapterListingResult(
            listing_id=str(listing_id),
            listing_url=data.get("listingUrl") or data.get("listing_url"),
            raw=data,
        )

    async def delist_item(self, listing_id: str, credentials: Credential) -> dict[str, Any]:
        return await self._request("DELETE", f"/listings/{listing_id}", credentials)

    async def sync_sold_items(self, credentials: Credential) -> list[SoldListing]:
        data = await self._request("GET", "/sold", credentials)
        sold = []
        for entry in data.get("items", []):
            listing_id = entry.get("listingId") or entry.get("listing_id")
            if listing_id:
                sold.append(SoldListing(listing_id=str(listing_id), raw=entry))
        return sold


def build_http_adapters(
    base_urls: dict[str, str] = settings.marketplace_api_urls,
) -> dict[str, HttpMarketplaceAdapter]:
    return {
        marketplace: HttpMarketplaceAdapter(marketplace, url)
        for marketplace, url in base_urls.items()
    }
