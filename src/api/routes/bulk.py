from fastapi import APIRouter, Depends, HTTPException, status

from src.api.dependencies import get_credentials, get_orchestrator
from src.api.schemas.crosslist import BulkRequest, BulkResponse
from src.application.orchestrator.crosslisting_orchestrator import CrosslistingOrchestrator
from src.domain.entities.credential import Credential

router = APIRouter(prefix="/bulk", tags=["bulk"])


def _require_marketplaces(body: BulkRequest) -> None:
    if not body.marketplaces:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="At least one marketplace is required.",
        )


@router.post("/list", response_model=BulkResponse)
async def bulk_list(
    body: BulkRequest,
    orchestrator: CrosslistingOrchestrator = Depends(get_orchestrator),
    credentials: dict[str, Credential] = Depends(get_credentials),
) -> BulkResponse:
    _require_marketplaces(body)
    result = await orchestrator.bulk_list_items(
        body.item_ids, body.marketplaces, credentials, body.options.to_listing_options()
    )
    return BulkResponse.model_validate(result, from_attributes=True)


@router.post("/delist", response_model=BulkResponse)
async def bulk_delist(
    body: BulkRequest,
    orchestrator: CrosslistingOrchestrator = Depends(get_orchestrator),
    credentials: dict[str, Credential] = Depends(get_credentials),
) -> BulkResponse:
    """Delist items from the given marketplaces, or from every marketplace when none are given."""
    result = await orchestrator.bulk_delist_items(
        body.item_ids, body.marketplaces, credentials, body.options.to_listing_options()
    )
    return BulkResponse.model_validate(result, from_attributes=True)


@router.post("/relist", response_model=BulkResponse)
async def bulk_relist(
    body: BulkRequest,
    orchestrator: CrosslistingOrchestrator = Depends(get_orchestrator),
    credentials: dict[str, Credential] = Depends(get_credentials),
) -> BulkResponse:
    _require_marketplaces(body)
    result = await orchestrator.bulk_relist_items(
        body.item_ids, body.marketplaces, credentials, body.options.to_listing_options()
    )
    return BulkResponse.model_validate(result, from_attributes=True)
