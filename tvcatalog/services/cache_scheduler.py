"""
Playlist Cache Scheduler

Fetches, transforms and commits the playlist with retry, single-flight and
a periodic background refresh.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from tvcatalog.config import CatalogSettings
from tvcatalog.errors import ExhaustedRetryError, FetchError
from tvcatalog.services.cache_store import CacheStore
from tvcatalog.services.catalog_types import CatalogSnapshot
from tvcatalog.services.fetch_coordinator import FetchCoordinator
from tvcatalog.services.playlist_transformer import PlaylistTransformer
from tvcatalog.utils.file_operations import fetch_text
from tvcatalog.utils.logging_helpers import log_section_end, log_section_start, sanitize_url
from tvcatalog.utils.retry import retry_async
from tvcatalog.utils.timezone import utc_now


logger = logging.getLogger(__name__)

JOB_ID = "playlist_refresh"

Fetcher = Callable[[str], Awaitable[str]]


class RefreshState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    COMMITTED = "committed"
    FAILED_RETRY = "failed_retry"


class CacheScheduler:
    """Keeps the playlist snapshot in the CacheStore fresh"""

    def __init__(
        self,
        settings: CatalogSettings,
        store: CacheStore,
        *,
        transformer: PlaylistTransformer | None = None,
        fetcher: Fetcher | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings
        self.store = store
        self.transformer = transformer or PlaylistTransformer()
        self._fetcher = fetcher or self._default_fetch
        self._clock = clock
        self._coordinator = FetchCoordinator("Playlist refresh")
        self.scheduler: AsyncIOScheduler | None = None
        self.state = RefreshState.IDLE
        self.last_outcome: RefreshState | None = None
        self.last_error: Exception | None = None
        self.last_attempt_at: datetime | None = None

    async def _default_fetch(self, url: str) -> str:
        return await fetch_text(url, timeout=self.settings.fetch_timeout_sec)

    def get_cached_data(self) -> CatalogSnapshot:
        """Latest committed snapshot, never waits on a refresh."""
        return self.store.get_cached_data()

    def is_fresh(self) -> bool:
        age = self.store.get_cached_data().age(self._clock())
        return age is not None and age < timedelta(seconds=self.settings.max_age_sec)

    async def refresh(self, force: bool = False) -> CatalogSnapshot:
        """
        Refresh the playlist snapshot

        Concurrent calls share a single in-flight refresh. Without `force`,
        a snapshot younger than `max_age_sec` is returned as-is.

        Args:
            force: Fetch even if the current snapshot is still fresh

        Returns:
            The committed snapshot (new or current)

        Raises:
            ExhaustedRetryError: If every attempt failed; the previous
                snapshot stays in the store
        """
        if self._coordinator.is_fetching():
            return await self._coordinator.execute(self._run_refresh)

        if not force and self.is_fresh():
            logger.debug("Playlist snapshot still fresh, skipping fetch")
            return self.store.get_cached_data()

        return await self._coordinator.execute(self._run_refresh)

    async def _run_refresh(self) -> CatalogSnapshot:
        url = self.settings.m3u_url
        self.state = RefreshState.FETCHING
        self.last_attempt_at = self._clock()
        section = log_section_start(logger, f"Playlist refresh from {sanitize_url(url)}")

        try:
            snapshot = await retry_async(
                self._attempt,
                attempts=self.settings.retry_attempts,
                delay=self.settings.retry_delay_sec,
                resource="Playlist",
            )
        except ExhaustedRetryError as exc:
            self._transition(RefreshState.FAILED_RETRY)
            self.last_error = exc
            logger.error(
                "Playlist refresh failed, keeping previous snapshot (%s channels)",
                len(self.store.get_cached_data().channels),
            )
            raise
        else:
            self.store.commit_snapshot(snapshot)
            self._transition(RefreshState.COMMITTED)
            self.last_error = None
            log_section_end(logger, "Playlist refresh", section)
            return snapshot
        finally:
            self.state = RefreshState.IDLE

    def _transition(self, outcome: RefreshState) -> None:
        self.state = outcome
        self.last_outcome = outcome
        logger.debug("Playlist refresh state: %s", outcome.value)

    async def _attempt(self) -> CatalogSnapshot:
        url = self.settings.m3u_url
        timeout = self.settings.fetch_timeout_sec
        try:
            raw_text = await asyncio.wait_for(self._fetcher(url), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise FetchError(sanitize_url(url), f"Timed out after {timeout:.1f}s") from e
        return self.transformer.transform(raw_text, source_url=url, fetched_at=self._clock())

    async def _refresh_job(self) -> None:
        """Background job that runs the periodic refresh"""
        logger.info("Scheduled playlist refresh triggered")
        try:
            await self.refresh(force=False)
        except ExhaustedRetryError as e:
            logger.error(f"Scheduled playlist refresh failed: {e}")
        except Exception as e:
            logger.error(f"Exception in scheduled playlist refresh: {e}", exc_info=True)

    def start(self) -> None:
        """Start the periodic refresh timer"""
        if self.scheduler and self.scheduler.running:
            logger.warning("Playlist scheduler already running")
            return

        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.scheduler.add_job(
            self._refresh_job,
            trigger=IntervalTrigger(seconds=self.settings.update_interval_sec),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        next_time = self.get_next_run_time()
        logger.info(
            "Playlist scheduler started. Next refresh: %s",
            next_time.isoformat() if next_time else "unknown"
        )

    def shutdown(self) -> None:
        """Shutdown the scheduler"""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Playlist scheduler stopped")
        self.scheduler = None

    def get_next_run_time(self) -> datetime | None:
        """Get next scheduled refresh time"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None
