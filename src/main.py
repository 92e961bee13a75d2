"""Main application entry point for the chat service."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.core.config import settings
from src.core.domain.chat import utc_now
from src.interfaces.api import conversations, memory
from src.interfaces.api.dependencies import ChatServices, build_services
from src.interfaces.api.errors import register_exception_handlers

VERSION = "1.0.0"

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build, start and finally release the application's services."""
    startup_time = datetime.now()

    logger.info("===== CHAT SERVICE STARTUP =====")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug mode: {settings.debug}")
    logger.info(f"Message store: {settings.message_store_backend}")
    logger.info(f"Completion provider: {settings.completion_provider} ({settings.completion_model})")

    services: Optional[ChatServices] = getattr(app.state, "services", None)
    try:
        if services is None:
            services = build_services(settings)
            app.state.services = services
        await services.startup()
    except Exception as e:
        logger.error(f"Chat service startup failed: {e}")
        logger.exception("Startup failure details:")
        raise

    startup_duration = (datetime.now() - startup_time).total_seconds()
    logger.info(f"Chat service startup completed in {startup_duration:.3f}s")

    yield

    logger.info("Shutting down chat service...")
    await services.shutdown()
    logger.info("Chat service shutdown completed")


def create_app(services: Optional[ChatServices] = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        services: Pre-built services; built from settings at startup if omitted
    """
    app = FastAPI(
        title="Chat Service",
        description="Persistent multi-turn chat with long-term memory recall",
        version=VERSION,
        debug=settings.debug,
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    if settings.is_development():
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    register_exception_handlers(app)
    app.include_router(conversations.router)
    app.include_router(conversations.shared_router)
    app.include_router(memory.router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint for health checks."""
        return {
            "message": "Chat Service",
            "status": "operational",
            "version": VERSION,
            "environment": settings.environment,
        }

    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        """Health check with component status."""
        current: Optional[ChatServices] = getattr(app.state, "services", None)
        return {
            "status": "healthy" if current is not None else "starting",
            "timestamp": utc_now().isoformat(),
            "environment": settings.environment,
            "version": VERSION,
            "components": {
                "message_store": settings.message_store_backend,
                "completion_provider": current.provider.provider_name if current else None,
                "memory": "enabled" if current and current.memory else "disabled",
                "pending_memory_commits": current.scheduler.pending if current else 0,
            },
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.fastapi_host,
        port=settings.fastapi_port,
        reload=settings.fastapi_reload and settings.is_development(),
        log_level=settings.log_level.lower(),
    )
