"""
Conduit - Resilient connectors and verified webhook intake

FastAPI application entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request

from conduit import __version__
from conduit.app.api import webhooks_router
from conduit.app.dependencies import build_registry, build_webhook_manager, get_settings
from conduit.config.schemas import AppSettings
from conduit.connectors import ConnectorStatus, IntegrationRegistry
from conduit.webhooks import WebhookHandlerManager

logger = logging.getLogger(__name__)


def configure_logging(settings: AppSettings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(
    manager: WebhookHandlerManager | None = None,
    registry: IntegrationRegistry | None = None,
    settings: AppSettings | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        manager: Webhook manager with handlers registered; built from
            settings (secrets only, no handlers) when omitted
        registry: Integration registry; built from settings when omitted
        settings: Defaults to get_settings()
    """
    settings = settings or get_settings()
    configure_logging(settings)

    webhook_manager = manager if manager is not None else build_webhook_manager(settings)
    integration_registry = registry if registry is not None else build_registry(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.service_name} ({settings.environment})...")
        yield
        logger.info(f"Shutting down {settings.service_name}...")
        try:
            await integration_registry.shutdown()
        except Exception as e:
            logger.error(f"Error during shutdown: {e}", exc_info=True)

    app = FastAPI(
        title="Conduit",
        description="Resilient third-party connectors and verified webhook intake",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.webhook_manager = webhook_manager
    app.state.registry = integration_registry

    app.include_router(webhooks_router, prefix="/api/v1")

    @app.get("/health", tags=["health"])
    async def health_check(request: Request) -> dict[str, Any]:
        """Service status with installation counts per connector status."""
        reg: IntegrationRegistry = request.app.state.registry
        installations: dict[str, int] = {}
        for status in ConnectorStatus:
            count = len(reg.installations_by_status(status))
            if count:
                installations[status.value] = count
        return {
            "status": "healthy",
            "service": settings.service_name,
            "version": __version__,
            "webhook_sources": request.app.state.webhook_manager.sources,
            "installations": installations,
        }

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "conduit.app.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
    )
