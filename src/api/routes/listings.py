from fastapi import APIRouter, Depends, HTTPException, status

from src.api.dependencies import (
    get_credentials,
    get_inventory_repo,
    get_listing_registry,
    get_orchestrator,
)
from src.api.schemas.crosslist import (
    CrosslistRequest,
    CrosslistResponse,
    MarketplaceListingResponse,
    MarketplaceOutcomeResponse,
)
from src.application.interfaces.inventory_repository import InventoryRepository
from src.application.interfaces.listing_registry import ListingRegistry
from src.application.orchestrator.crosslisting_orchestrator import (
    CrosslistingOrchestrator,
    MarketplaceNotConnectedError,
)
from src.domain.entities.credential import Credential, is_connected

router = APIRouter(tags=["listings"])


async def _require_item(inventory: InventoryRepository, item_id: str) -> None:
    if await inventory.get(item_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Inventory item not found.")


@router.get("/items/{item_id}/listings", response_model=list[MarketplaceListingResponse])
async def get_item_listings(
    item_id: str,
    registry: ListingRegistry = Depends(get_listing_registry),
) -> list[MarketplaceListingResponse]:
    listings = await registry.get(item_id)
    return [MarketplaceListingResponse.model_validate(listing) for listing in listings]


@router.post("/items/{item_id}/crosslist", response_model=CrosslistResponse)
async def crosslist_item(
    item_id: str,
    body: CrosslistRequest,
    orchestrator: CrosslistingOrchestrator = Depends(get_orchestrator),
    inventory: InventoryRepository = Depends(get_inventory_repo),
    credentials: dict[str, Credential] = Depends(get_credentials),
) -> CrosslistResponse:
    """List one item on every requested marketplace; per-marketplace failures come back as data."""
    await _require_item(inventory, item_id)
    result = await orchestrator.crosslist(
        item_id, body.marketplaces, credentials, body.options.to_listing_options()
    )
    return CrosslistResponse.model_validate(result, from_attributes=True)


@router.post("/items/{item_id}/delist", response_model=CrosslistResponse)
async def delist_item_everywhere(
    item_id: str,
    orchestrator: CrosslistingOrchestrator = Depends(get_orchestrator),
    inventory: InventoryRepository = Depends(get_inventory_repo),
    credentials: dict[str, Credential] = Depends(get_credentials),
) -> CrosslistResponse:
    await _require_item(inventory, item_id)
    result = await orchestrator.delist_everywhere(item_id, credentials)
    return CrosslistResponse.model_validate(result, from_attributes=True)


@router.post("/items/{item_id}/relist", response_model=CrosslistResponse)
async def relist_item(
    item_id: str,
    body: CrosslistRequest,
    orchestrator: CrosslistingOrchestrator = Depends(get_orchestrator),
    inventory: InventoryRepository = Depends(get_inventory_repo),
    credentials: dict[str, Credential] = Depends(get_credentials),
) -> CrosslistResponse:
    """Delist everywhere, then list again. Not atomic."""
    await _require_item(inventory, item_id)
    result = await orchestrator.relist_item(
        item_id, body.marketplaces, credentials, body.options.to_listing_options()
    )
    return CrosslistResponse.model_validate(result, from_attributes=True)


@router.post(
    "/listings/{marketplace}/{listing_id}/delist",
    response_model=MarketplaceOutcomeResponse,
)
async def delist_single_listing(
    marketplace: str,
    listing_id: str,
    orchestrator: CrosslistingOrchestrator = Depends(get_orchestrator),
    credentials: dict[str, Credential] = Depends(get_credentials),
) -> MarketplaceOutcomeResponse:
    credential = credentials.get(marketplace)
    if not is_connected(credential):
        raise MarketplaceNotConnectedError(marketplace)
    outcome = await orchestrator.delist_from_marketplace(listing_id, marketplace, credential)
    return MarketplaceOutcomeResponse.model_validate(outcome, from_attributes=True)
