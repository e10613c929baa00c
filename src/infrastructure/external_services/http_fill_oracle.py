"""HTTP client for the field auto-fill service."""

from typing import Any

import httpx
import structlog

from src.application.interfaces.fill_oracle import FillOracle
from src.config import settings
from src.domain.entities.validation import FieldOption, FieldSuggestion

logger = structlog.get_logger(__name__)


class FillOracleError(Exception):
    pass


def _parse_value(value: Any) -> Any:
    if isinstance(value, dict) and "id" in value and "label" in value:
        return FieldOption(id=str(value["id"]), label=str(value["label"]))
    return value


class HttpFillOracle(FillOracle):
    """
    POST /suggest {"marketplace", "missingFields", "itemContext"}
      -> {"suggestions": {field: {"value", "confidence", "reasoning"}}}
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = settings.fill_oracle_timeout_seconds,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def suggest(
        self,
        marketplace: str,
        missing_fields: list[str],
        item_context: dict[str, Any],
    ) -> dict[str, FieldSuggestion]:
        payload = {
            "marketplace": marketplace,
            "missingFields": missing_fields,
            "itemContext": item_context,
        }
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.post(f"{self._base_url}/suggest", json=payload)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as exc:
                raise FillOracleError(f"Fill oracle returned {exc.response.status_code}") from exc
            except httpx.RequestError as exc:
                raise FillOracleError(f"Failed to reach fill oracle: {exc}") from exc

        suggestions = {}
        for field_name, raw in (data.get("suggestions") or {}).items():
            if field_name not in missing_fields or not isinstance(raw, dict) or raw.get("value") is None:
                continue
            suggestions[field_name] = FieldSuggestion(
                value=_parse_value(raw["value"]),
                confidence=float(raw.get("confidence", 0.0)),
                reasoning=str(raw.get("reasoning", "")),
            )

        logger.info(
            "fill_oracle_suggested",
            marketplace=marketplace,
            requested=len(missing_fields),
            suggested=len(suggestions),
        )
        return suggestions
