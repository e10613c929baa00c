from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.application.interfaces.credential_store import CredentialStore
from src.domain.entities.credential import Credential
from src.infrastructure.database.connection import session_lock
from src.infrastructure.database.models import MarketplaceCredentialModel


class SqlAlchemyCredentialStore(CredentialStore):
    """Reads the tokens kept fresh by the OAuth refresh job; never writes them."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._lock = session_lock(session)

    async def get_all(self) -> dict[str, Credential]:
        async with self._lock:
            result = await self._session.execute(select(MarketplaceCredentialModel))
        return {
            model.marketplace: Credential(
                marketplace=model.marketplace,
                access_token=model.access_token,
                refresh_token=model.refresh_token,
                expires_at=model.expires_at,
            )
            for model in result.scalars().all()
        }
