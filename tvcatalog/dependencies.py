"""
Runtime wiring

Builds the explicitly owned service graph (store plus both schedulers) from
one settings value, and exposes it to FastAPI routes as a dependency.
Tests create independent runtimes with independent timers.
"""
import logging
from dataclasses import dataclass, field

from fastapi import Request

from tvcatalog.config import CatalogSettings, combine_epg_urls, get_base_url, get_manifest_url
from tvcatalog.errors import ExhaustedRetryError
from tvcatalog.services.cache_scheduler import CacheScheduler
from tvcatalog.services.cache_store import CacheStore
from tvcatalog.services.catalog_types import Channel
from tvcatalog.services.epg_scheduler import EPGScheduler


logger = logging.getLogger(__name__)


@dataclass
class CatalogRuntime:
    """Service graph for one running catalog instance."""
    settings: CatalogSettings
    store: CacheStore = field(default_factory=CacheStore)
    cache_scheduler: CacheScheduler | None = None
    epg_scheduler: EPGScheduler | None = None

    def __post_init__(self) -> None:
        if self.cache_scheduler is None:
            self.cache_scheduler = CacheScheduler(self.settings, self.store)
        if self.epg_scheduler is None:
            self.epg_scheduler = EPGScheduler(self.settings, self.store)

    async def start(self) -> None:
        """
        Initial playlist load, EPG initialization and timer start-up.

        A failed first playlist load leaves the catalog empty; the service
        keeps running and the periodic timer retries.
        """
        try:
            await self.cache_scheduler.refresh(force=True)
        except ExhaustedRetryError as exc:
            logger.error("Initial playlist load failed, serving an empty catalog until the next refresh: %s", exc)
        self.cache_scheduler.start()

        snapshot = self.store.get_cached_data()
        logger.info("Catalog ready: %s channels, %s genres", len(snapshot.channels), len(snapshot.genres))
        if snapshot.genres:
            logger.info("Genres: %s", ", ".join(snapshot.genres))

        if self.settings.enable_epg:
            await self._start_epg()
        else:
            logger.info("EPG disabled, skipping initialization")

        logger.info("Service available at: %s", get_base_url(self.settings))
        logger.info("Manifest URL: %s", get_manifest_url(self.settings))

    async def _start_epg(self) -> None:
        urls = combine_epg_urls(self.settings, self.store.get_cached_data())
        if not urls:
            logger.warning("EPG enabled but no guide source available")
            return

        try:
            await self.epg_scheduler.initialize(urls)
        except ExhaustedRetryError as exc:
            logger.error("Initial EPG load failed, catalog served without guide data: %s", exc)

        self.report_missing_epg()

    def report_missing_epg(self) -> list[Channel]:
        channels = self.store.get_cached_data().channels
        missing = self.store.check_missing_epg(channels)
        if missing:
            logger.warning("%s of %s channels have no EPG data", len(missing), len(channels))
        return missing

    def shutdown(self) -> None:
        self.cache_scheduler.shutdown()
        self.epg_scheduler.shutdown()


def build_runtime(settings: CatalogSettings) -> CatalogRuntime:
    return CatalogRuntime(settings=settings)


def get_runtime(request: Request) -> CatalogRuntime:
    """FastAPI dependency returning the runtime attached to the app."""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise RuntimeError("Catalog runtime not initialized. It is created during application startup.")
    return runtime
