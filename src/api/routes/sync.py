import structlog
from fastapi import APIRouter, Depends

from src.api.dependencies import get_credentials, get_orchestrator
from src.api.schemas.crosslist import SyncResponse
from src.application.orchestrator.crosslisting_orchestrator import CrosslistingOrchestrator
from src.domain.entities.credential import Credential

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("/sold", response_model=SyncResponse)
async def sync_sold(
    orchestrator: CrosslistingOrchestrator = Depends(get_orchestrator),
    credentials: dict[str, Credential] = Depends(get_credentials),
) -> SyncResponse:
    """Pull sales from every connected marketplace and close out the sold items."""
    logger.info("sold_sync_requested", marketplaces=sorted(credentials))
    result = await orchestrator.sync_sold_items(credentials)
    return SyncResponse.model_validate(result, from_attributes=True)
