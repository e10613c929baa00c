"""Azure Functions entry point for the Crosslist Orchestrator."""
import json
import logging

import azure.functions as func
import pika
from sqlalchemy import text

from src.application.orchestrator.crosslisting_orchestrator import CrosslistingOrchestrator
from src.application.orchestrator.results import SyncResult
from src.config import settings
from src.infrastructure.database.connection import AsyncSessionLocal
from src.infrastructure.database.repositories.credential_store import SqlAlchemyCredentialStore
from src.infrastructure.database.repositories.inventory_repository import SqlAlchemyInventoryRepository
from src.infrastructure.database.repositories.listing_registry import SqlAlchemyListingRegistry
from src.infrastructure.external_services.http_marketplace_adapter import build_http_adapters
from src.infrastructure.messaging.noop_publisher import NoOpEventPublisher
from src.infrastructure.messaging.rabbitmq_publisher import RabbitMQPublisher

app = func.FunctionApp(http_auth_level=func.AuthLevel.FUNCTION)

adapters = build_http_adapters(settings.marketplace_api_urls)


async def run_sold_sync() -> SyncResult:
    """One sold-item sync pass in its own session; committed only if the pass completes."""
    publisher = RabbitMQPublisher() if settings.event_publishing_enabled else NoOpEventPublisher()

    async with AsyncSessionLocal() as session:
        credentials = await SqlAlchemyCredentialStore(session).get_all()
        orchestrator = CrosslistingOrchestrator(
            adapters,
            SqlAlchemyListingRegistry(session),
            SqlAlchemyInventoryRepository(session),
            publisher,
        )
        result = await orchestrator.sync_sold_items(credentials)
        await session.commit()

    logging.info(
        f"Sold sync: {len(result.sold_items)} reported, {len(result.matched)} matched, "
        f"{len(result.errors)} errors"
    )
    for failure in result.errors:
        logging.warning(f"Sold sync error on {failure.marketplace}: {failure.error}")
    return result


# ============================================================================
# Health Check
# ============================================================================

@app.route(route="health", methods=["GET"])
async def health(req: func.HttpRequest) -> func.HttpResponse:
    """Health check endpoint."""
    db_status = "connected"
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        db_status = f"error: {exc}"

    rabbitmq_status = "disabled"
    if settings.event_publishing_enabled:
        try:
            connection = pika.BlockingConnection(pika.URLParameters(settings.rabbitmq_url))
            connection.close()
            rabbitmq_status = "connected"
        except Exception as exc:
            rabbitmq_status = f"error: {exc}"

    healthy = db_status == "connected" and rabbitmq_status in ("connected", "disabled")

    return func.HttpResponse(
        json.dumps({
            "status": "healthy" if healthy else "degraded",
            "database": db_status,
            "rabbitmq": rabbitmq_status,
        }),
        mimetype="application/json",
    )


# ============================================================================
# Sold-item sync
# ============================================================================

@app.route(route="sync/sold", methods=["POST"])
async def trigger_sold_sync(req: func.HttpRequest) -> func.HttpResponse:
    """Run a sold-item sync now instead of waiting for the timer."""
    try:
        result = await run_sold_sync()
    except Exception as exc:
        logging.exception("Sold sync failed")
        return func.HttpResponse(
            json.dumps({"error": str(exc)}),
            mimetype="application/json",
            status_code=500,
        )

    return func.HttpResponse(
        json.dumps({
            "sold_items": [
                {
                    "marketplace": item.marketplace,
                    "listing_id": item.listing_id,
                    "inventory_item_id": item.inventory_item_id,
                    "auto_delisted": item.auto_delisted,
                }
                for item in result.sold_items
            ],
            "errors": [{"marketplace": f.marketplace, "error": f.error} for f in result.errors],
        }),
        mimetype="application/json",
    )


@app.schedule(schedule="0 */15 * * * *", arg_name="timer", run_on_startup=False)
async def scheduled_sold_sync(timer: func.TimerRequest) -> None:
    """Every 15 minutes: mark sold items and auto-delist their sibling listings."""
    if timer.past_due:
        logging.warning("Sold sync timer is past due")

    try:
        await run_sold_sync()
    except Exception:
        logging.exception("Scheduled sold sync failed")
