"""FastAPI application entry point."""
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.routes import bulk, health, listings, preflight, sync
from src.application.interfaces.inventory_repository import InventoryItemNotFoundError
from src.application.interfaces.marketplace_adapter import AdapterError
from src.application.orchestrator.crosslisting_orchestrator import (
    MarketplaceNotConnectedError,
    UnknownMarketplaceError,
)
from src.config import settings
from src.infrastructure.database.connection import dispose_engine

logger = structlog.get_logger(__name__)


def configure_logging(level: str = settings.log_level) -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level.upper())),
        cache_logger_on_first_use=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("crosslist_orchestrator_starting", marketplaces=sorted(settings.marketplace_api_urls))
    yield
    await dispose_engine()
    logger.info("crosslist_orchestrator_stopping")


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(InventoryItemNotFoundError)
    async def _item_not_found(request: Request, exc: InventoryItemNotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(UnknownMarketplaceError)
    async def _unknown_marketplace(request: Request, exc: UnknownMarketplaceError) -> JSONResponse:
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))

    @app.exception_handler(MarketplaceNotConnectedError)
    async def _not_connected(request: Request, exc: MarketplaceNotConnectedError) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, f"{exc.marketplace}: {exc}")

    @app.exception_handler(AdapterError)
    async def _adapter_failed(request: Request, exc: AdapterError) -> JSONResponse:
        logger.warning("adapter_error_response", marketplace=exc.marketplace, error=str(exc))
        return _error(status.HTTP_502_BAD_GATEWAY, str(exc))


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="Crosslist Orchestrator",
        description="Lists, delists and syncs one inventory across many marketplaces.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(listings.router)
    app.include_router(bulk.router)
    app.include_router(sync.router)
    app.include_router(preflight.router)

    return app


app = create_app()
