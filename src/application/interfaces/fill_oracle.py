from abc import ABC, abstractmethod
from typing import Any

from src.domain.entities.validation import FieldSuggestion


class FillOracle(ABC):
    """Port for an AI or rule-based source of suggested field values."""

    @abstractmethod
    async def suggest(
        self,
        marketplace: str,
        missing_fields: list[str],
        item_context: dict[str, Any],
    ) -> dict[str, FieldSuggestion]:
        ...
