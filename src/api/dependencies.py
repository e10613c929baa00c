"""
FastAPI dependency injection wiring.

Each dependency returns a fully-constructed object with its collaborators injected,
keeping the route handlers thin. Tests swap any of them via app.dependency_overrides.
"""
from collections.abc import AsyncGenerator
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.application.interfaces.credential_store import CredentialStore
from src.application.interfaces.event_publisher import EventPublisher
from src.application.interfaces.fill_oracle import FillOracle
from src.application.interfaces.inventory_repository import InventoryRepository
from src.application.interfaces.listing_registry import ListingRegistry
from src.application.interfaces.marketplace_adapter import MarketplaceAdapter
from src.application.orchestrator.crosslisting_orchestrator import CrosslistingOrchestrator
from src.application.preflight.preflight_validator import PreflightValidator
from src.config import settings
from src.domain.entities.credential import Credential
from src.infrastructure.database.connection import get_db_session
from src.infrastructure.database.repositories.credential_store import SqlAlchemyCredentialStore
from src.infrastructure.database.repositories.inventory_repository import SqlAlchemyInventoryRepository
from src.infrastructure.database.repositories.listing_registry import SqlAlchemyListingRegistry
from src.infrastructure.external_services.http_fill_oracle import HttpFillOracle
from src.infrastructure.external_services.http_marketplace_adapter import build_http_adapters
from src.infrastructure.messaging.noop_publisher import NoOpEventPublisher
from src.infrastructure.messaging.rabbitmq_publisher import RabbitMQPublisher


# ---- Low-level dependencies ------------------------------------------------

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_db_session():
        yield session


def get_listing_registry(session: AsyncSession = Depends(get_session)) -> ListingRegistry:
    return SqlAlchemyListingRegistry(session)


def get_inventory_repo(session: AsyncSession = Depends(get_session)) -> InventoryRepository:
    return SqlAlchemyInventoryRepository(session)


def get_credential_store(session: AsyncSession = Depends(get_session)) -> CredentialStore:
    return SqlAlchemyCredentialStore(session)


async def get_credentials(
    store: CredentialStore = Depends(get_credential_store),
) -> dict[str, Credential]:
    return await store.get_all()


def get_event_publisher() -> EventPublisher:
    if settings.event_publishing_enabled:
        return RabbitMQPublisher()
    return NoOpEventPublisher()


@lru_cache
def get_adapters() -> dict[str, MarketplaceAdapter]:
    return dict(build_http_adapters(settings.marketplace_api_urls))


def get_fill_oracle() -> FillOracle | None:
    if settings.fill_oracle_url:
        return HttpFillOracle(settings.fill_oracle_url)
    return None


# ---- Application services --------------------------------------------------

def get_orchestrator(
    adapters: dict[str, MarketplaceAdapter] = Depends(get_adapters),
    registry: ListingRegistry = Depends(get_listing_registry),
    inventory: InventoryRepository = Depends(get_inventory_repo),
    event_publisher: EventPublisher = Depends(get_event_publisher),
) -> CrosslistingOrchestrator:
    return CrosslistingOrchestrator(adapters, registry, inventory, event_publisher)


def get_preflight_validator(
    fill_oracle: FillOracle | None = Depends(get_fill_oracle),
) -> PreflightValidator:
    return PreflightValidator(fill_oracle=fill_oracle)
