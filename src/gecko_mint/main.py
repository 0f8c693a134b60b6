# src/gecko_mint/main.py
"""Main entry point for the Gecko Mint service."""

from __future__ import annotations

import logging

from fastapi import FastAPI

from gecko_mint.api.v1 import events_router
from gecko_mint.core.context import MintContext, build_context
from gecko_mint.core.logging import configure_logging
from gecko_mint.core.settings import Settings
from gecko_mint.db.session import create_tables
from gecko_mint.services.issuance import IssuanceOrchestrator

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    context: MintContext | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Configuration to run with; read from the environment when omitted.
        context: Prebuilt runtime context; built from ``settings`` at startup when omitted.
    """
    settings = settings or (context.settings if context else Settings())

    app = FastAPI(
        title=settings.app_name,
        description="Issues a generated NFT to every new community member",
        version=settings.app_version,
    )
    app.state.settings = settings
    app.state.orchestrator = None

    app.include_router(events_router, prefix="/api/v1")

    @app.on_event("startup")
    async def on_startup() -> None:
        configure_logging(settings.log_level)
        runtime = context or build_context(settings)
        if runtime.engine.dialect.name == "sqlite":
            # Postgres deployments are migrated with Alembic instead.
            create_tables(runtime.engine)

        orchestrator = IssuanceOrchestrator(runtime)
        await orchestrator.start()
        app.state.context = runtime
        app.state.orchestrator = orchestrator
        logger.info("%s %s started", settings.app_name, settings.app_version)

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        orchestrator: IssuanceOrchestrator | None = app.state.orchestrator
        if orchestrator:
            await orchestrator.stop()
            app.state.orchestrator = None
        runtime: MintContext | None = getattr(app.state, "context", None)
        if runtime is not None and context is None:
            await runtime.aclose()

    @app.get("/health")
    async def health_check() -> dict[str, object]:
        """Health check endpoint to verify the service is running."""
        orchestrator: IssuanceOrchestrator | None = app.state.orchestrator
        return {
            "status": "ok" if orchestrator and orchestrator.running else "starting",
            "queued": orchestrator.queued if orchestrator else 0,
        }

    return app


if __name__ == "__main__":
    import uvicorn

    _settings = Settings()
    uvicorn.run(
        "gecko_mint.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=_settings.debug,
    )
