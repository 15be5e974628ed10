"""
FastAPI application entry point.

Configures the application, middleware, and routes.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from avatar_mirror.api.routes import avatar, health, pose
from avatar_mirror.config import get_settings
from avatar_mirror.pipeline import RetargetPipeline


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: Load detector models, open the camera, bind the default avatar
    - Shutdown: Stop the render loop, release detectors and the camera
    """
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")

    pipeline = RetargetPipeline.build(settings)
    await pipeline.start()
    app.state.pipeline = pipeline

    yield

    logger.info("Shutting down...")
    await pipeline.stop()


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Live avatar mirror. Tracks face, hands and body from a camera and "
            "retargets them onto a rigged GLB avatar that can be swapped at runtime."
        ),
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routes
    app.include_router(health.router, prefix=settings.api_prefix, tags=["Health"])
    app.include_router(avatar.router, prefix=settings.api_prefix, tags=["Avatar"])
    app.include_router(pose.router, prefix=settings.api_prefix, tags=["Pose"])

    return app


# Create the application instance
app = create_app()
