from abc import ABC, abstractmethod

from src.domain.entities.credential import Credential


class CredentialStore(ABC):
    """Port for per-marketplace account tokens. Read-only to the orchestrator."""

    @abstractmethod
    async def get_all(self) -> dict[str, Credential]:
        """Return credentials keyed by marketplace, expired ones included."""
        ...
