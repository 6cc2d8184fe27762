"""
Photo Discovery API
Main FastAPI application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Optional
import logging

from photo_discovery import __version__
from photo_discovery.config import Settings, settings as default_settings
from photo_discovery.errors import PhotoDiscoveryError
from photo_discovery.logger import setup_logger
from photo_discovery.router.agent import photo_discovery_error_handler, router as agent_router
from photo_discovery.services.discovery_service import PhotoDiscoveryService

logger = logging.getLogger(__name__)


def create_app(service: Optional[PhotoDiscoveryService] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the HTTP adapter around a discovery service

    Args:
        service: Service to serve; a fresh one over an empty library by default
        settings: Configuration for logging and the default service
    """
    settings = settings or (service.settings if service is not None else default_settings)
    setup_logger(settings)

    app = FastAPI(
        title="Photo Discovery",
        description="Natural-language photo search and bulk operations",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.service = service if service is not None else PhotoDiscoveryService(settings=settings)
    app.include_router(agent_router)
    app.add_exception_handler(PhotoDiscoveryError, photo_discovery_error_handler)

    @app.get("/")
    async def root():
        return {
            "service": "Photo Discovery",
            "version": __version__,
            "status": "running",
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"code": "INTERNAL_ERROR", "message": "An error occurred"},
        )

    logger.info(f"Photo Discovery API ready ({app.state.service.state()['photo_count']} photos)")
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "photo_discovery.main:create_app",
        factory=True,
        host=default_settings.host,
        port=default_settings.port,
        log_level=default_settings.log_level.lower(),
    )
