import pika
from fastapi import APIRouter
from sqlalchemy import text

from src.config import settings
from src.domain.entities.credential import Credential, is_connected
from src.infrastructure.database.connection import AsyncSessionLocal
from src.infrastructure.database.repositories.credential_store import SqlAlchemyCredentialStore

router = APIRouter(tags=["health"])


async def _database_status() -> tuple[str, dict[str, Credential]]:
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
            credentials = await SqlAlchemyCredentialStore(session).get_all()
    except Exception as exc:
        return f"error: {exc}", {}
    return "connected", credentials


def _rabbitmq_status() -> str:
    if not settings.event_publishing_enabled:
        return "disabled"
    try:
        connection = pika.BlockingConnection(pika.URLParameters(settings.rabbitmq_url))
        connection.close()
    except Exception as exc:
        return f"error: {exc}"
    return "connected"


@router.get("/health")
async def health_check() -> dict:  # type: ignore[type-arg]
    """Dependency health plus which marketplace accounts hold a usable token."""
    db_status, credentials = await _database_status()
    rabbitmq_status = _rabbitmq_status()

    healthy = db_status == "connected" and rabbitmq_status in ("connected", "disabled")
    return {
        "status": "healthy" if healthy else "degraded",
        "database": db_status,
        "rabbitmq": rabbitmq_status,
        "marketplaces": {
            marketplace: "connected" if is_connected(credentials.get(marketplace)) else "not_connected"
            for marketplace in sorted(settings.marketplace_api_urls)
        },
    }
