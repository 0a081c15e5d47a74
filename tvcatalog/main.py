from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from tvcatalog import __version__
from tvcatalog.config import CatalogSettings, load_settings, setup_logging
from tvcatalog.dependencies import CatalogRuntime, build_runtime
from tvcatalog.routers import main_router


logger = logging.getLogger(__name__)


def create_app(
    settings: CatalogSettings | None = None,
    runtime: CatalogRuntime | None = None
) -> FastAPI:
    """
    Build the FastAPI application

    Settings are loaded from the environment at startup unless given.
    A prebuilt runtime is attached as-is and is not started by the lifespan.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events"""
        if getattr(app.state, "runtime", None) is not None:
            yield
            return

        active_settings = settings or load_settings()
        setup_logging(active_settings.log_level)
        logger.info("Starting TV Catalog Service...")

        active = build_runtime(active_settings)
        app.state.runtime = active
        try:
            await active.start()
        except Exception as e:
            logger.error(f"Failed to start TV Catalog Service: {e}", exc_info=True)
            active.shutdown()
            raise
        logger.info("TV Catalog Service started successfully")

        yield

        logger.info("Shutting down TV Catalog Service...")
        try:
            active.shutdown()
            logger.info("Schedulers stopped")
        except Exception as e:
            logger.error(f"Error during scheduler shutdown: {e}", exc_info=True)
        logger.info("TV Catalog Service stopped")

    app = FastAPI(
        title="TV Catalog Service",
        version=__version__,
        lifespan=lifespan
    )
    if runtime is not None:
        app.state.runtime = runtime
    app.include_router(main_router)
    return app


app = create_app()
