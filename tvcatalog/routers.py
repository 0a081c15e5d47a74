from typing import Annotated
import logging

from fastapi import APIRouter, Depends, HTTPException

from tvcatalog import __version__
from tvcatalog.dependencies import CatalogRuntime, get_runtime
from tvcatalog.errors import ExhaustedRetryError
from tvcatalog.schemas import (
    CatalogRefreshResponse,
    HealthResponse,
    MissingChannel,
    MissingEPGResponse,
)


logger = logging.getLogger(__name__)

main_router = APIRouter()

Runtime = Annotated[CatalogRuntime, Depends(get_runtime)]


def _isoformat(value) -> str | None:
    return value.isoformat() if value else None


@main_router.get("/")
async def root(runtime: Runtime) -> dict:
    """Root endpoint with service information"""
    return {
        "service": "TV Catalog",
        "version": __version__,
        "next_playlist_refresh": _isoformat(runtime.cache_scheduler.get_next_run_time()),
        "next_epg_refresh": _isoformat(runtime.epg_scheduler.get_next_run_time()),
        "endpoints": {
            "refresh": "/refresh - Force a playlist refresh (POST)",
            "epg_refresh": "/epg/refresh - Force an EPG refresh (POST)",
            "epg_missing": "/epg/missing - Channels without guide data",
            "health": "/health - Health check"
        }
    }


@main_router.get("/health", response_model=HealthResponse)
async def health_check(runtime: Runtime) -> HealthResponse:
    """Health check endpoint"""
    snapshot = runtime.store.get_cached_data()
    index = runtime.store.get_epg_index()
    scheduler = runtime.cache_scheduler
    return HealthResponse(
        status="ok" if not snapshot.is_empty else "degraded",
        channels=len(snapshot.channels),
        genres=len(snapshot.genres),
        catalog_fetched_at=_isoformat(snapshot.fetched_at),
        playlist_state=scheduler.state.value,
        playlist_last_error=str(scheduler.last_error) if scheduler.last_error else None,
        next_playlist_refresh=_isoformat(scheduler.get_next_run_time()),
        epg_enabled=runtime.settings.enable_epg,
        epg_channels=len(index.programs),
        epg_programs=index.program_count,
        epg_expires_at=_isoformat(index.expires_at),
        next_epg_refresh=_isoformat(runtime.epg_scheduler.get_next_run_time()),
    )


@main_router.post("/refresh", response_model=CatalogRefreshResponse)
async def trigger_refresh(runtime: Runtime) -> CatalogRefreshResponse:
    """
    Force a playlist refresh

    Joins a refresh already in flight instead of starting a second one.
    """
    logger.info("Manual playlist refresh triggered via API")
    try:
        snapshot = await runtime.cache_scheduler.refresh(force=True)
    except ExhaustedRetryError as exc:
        raise HTTPException(status_code=502, detail=str(exc))

    return CatalogRefreshResponse(
        status="success",
        channels=len(snapshot.channels),
        genres=snapshot.genres,
        epg_urls=list(snapshot.epg_urls),
        skipped_entries=snapshot.skipped_entries,
        fetched_at=_isoformat(snapshot.fetched_at),
    )


@main_router.post("/epg/refresh")
async def trigger_epg_refresh(runtime: Runtime) -> dict:
    """Force an EPG refresh from every registered source"""
    if not runtime.settings.enable_epg:
        raise HTTPException(status_code=409, detail="EPG is disabled")

    logger.info("Manual EPG refresh triggered via API")
    try:
        return await runtime.epg_scheduler.refresh(force=True)
    except ExhaustedRetryError as exc:
        raise HTTPException(status_code=502, detail=str(exc))


@main_router.get("/epg/missing", response_model=MissingEPGResponse)
async def missing_epg(runtime: Runtime) -> MissingEPGResponse:
    """List catalog channels that have no guide data"""
    channels = runtime.store.get_cached_data().channels
    missing = runtime.store.check_missing_epg(channels)
    return MissingEPGResponse(
        channels_checked=len(channels),
        channels_missing=len(missing),
        missing=[
            MissingChannel(id=channel.id, name=channel.name, guide_id=channel.guide_id)
            for channel in missing
        ],
    )
