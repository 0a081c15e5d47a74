"""
EPG Scheduler

Coordinates downloading, parsing and committing of guide data from multiple
sources, refreshed on its own expiry timer.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Literal, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from tvcatalog.config import CatalogSettings
from tvcatalog.errors import ExhaustedRetryError, FetchError, ParseError
from tvcatalog.services.cache_store import CacheStore
from tvcatalog.services.epg_ingestor import EPGIngestor, ParsedGuide, parse_xmltv
from tvcatalog.services.fetch_coordinator import FetchCoordinator
from tvcatalog.utils.file_operations import fetch_bytes
from tvcatalog.utils.logging_helpers import (
    log_section_end,
    log_section_start,
    log_source_processing,
    sanitize_url,
)
from tvcatalog.utils.retry import retry_async
from tvcatalog.utils.timezone import utc_now


logger = logging.getLogger(__name__)

JOB_ID = "epg_refresh"

Fetcher = Callable[[str], Awaitable[bytes]]


@dataclass(slots=True)
class SourceSummary:
    index: int
    source_url: str
    started_at: datetime
    completed_at: datetime
    status: Literal["success", "failed"]
    channels_parsed: int = 0
    programs_parsed: int = 0
    programs_skipped: int = 0
    error: str | None = None
    guide: ParsedGuide | None = None

    @property
    def duration_seconds(self) -> float:
        return max(0.0, (self.completed_at - self.started_at).total_seconds())

    def to_dict(self) -> dict:
        payload = {
            "source_index": self.index,
            "source_url": sanitize_url(self.source_url),
            "status": self.status,
            "channels_parsed": self.channels_parsed,
            "programs_parsed": self.programs_parsed,
            "programs_skipped": self.programs_skipped,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration_seconds": self.duration_seconds,
        }
        if self.error:
            payload["error"] = self.error
        return payload


def unique_urls(urls: Sequence[str]) -> list[str]:
    """Drop blanks and duplicates, keeping first-seen order."""
    result: list[str] = []
    for url in urls:
        url = (url or "").strip()
        if url and url not in result:
            result.append(url)
    return result


class EPGScheduler:
    """Keeps the EPG index in the CacheStore fresh"""

    def __init__(
        self,
        settings: CatalogSettings,
        store: CacheStore,
        *,
        ingestor: EPGIngestor | None = None,
        fetcher: Fetcher | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings
        self.store = store
        self.ingestor = ingestor or EPGIngestor(
            max_programs_per_channel=settings.max_programs_per_channel,
            cache_expiry=timedelta(seconds=settings.cache_expiry_sec),
        )
        self._fetcher = fetcher or self._default_fetch
        self._clock = clock
        self._coordinator = FetchCoordinator("EPG refresh")
        self._semaphore = asyncio.Semaphore(settings.epg_max_concurrency)
        self.sources: list[str] = []
        self.scheduler: AsyncIOScheduler | None = None
        self.last_error: Exception | None = None

    async def _default_fetch(self, url: str) -> bytes:
        return await fetch_bytes(url, timeout=self.settings.fetch_timeout_sec)

    async def initialize(self, urls: Sequence[str]) -> dict:
        """
        Register guide sources, fetch them once and start the expiry timer.

        Sources that fail are logged and left out of the index. The timer is
        started even when every source failed so the next tick retries.

        Args:
            urls: Guide source URLs (configured ones plus playlist header ones)

        Returns:
            Refresh result dictionary

        Raises:
            ExhaustedRetryError: If no source could be fetched and parsed
        """
        self.sources = unique_urls(urls)
        logger.info("EPG initialized with %s source(s)", len(self.sources))
        self.start()
        return await self.refresh(force=True)

    async def refresh(self, force: bool = False) -> dict:
        """
        Refresh the EPG index from every registered source

        Args:
            force: Refetch even if the current index has not expired

        Returns:
            Result dictionary with per-source details

        Raises:
            ExhaustedRetryError: If every source failed; the previous index is kept
        """
        if self._coordinator.is_fetching():
            return await self._coordinator.execute(self._run_refresh)

        index = self.store.get_epg_index()
        if not force and not index.is_expired(self._clock()):
            logger.debug("EPG index still valid until %s, skipping fetch", index.expires_at)
            return {
                "status": "skipped",
                "message": "EPG index has not expired yet",
                "expires_at": index.expires_at.isoformat() if index.expires_at else None,
            }

        return await self._coordinator.execute(self._run_refresh)

    async def _run_refresh(self) -> dict:
        if not self.sources:
            logger.warning("No EPG sources configured - skipping refresh")
            return {"status": "skipped", "message": "No EPG sources configured"}

        section = log_section_start(logger, "EPG refresh")
        started_at = self._clock()

        tasks = [
            asyncio.create_task(self._process_source(index, url))
            for index, url in enumerate(self.sources, start=1)
        ]
        summaries = list(await asyncio.gather(*tasks))
        summaries.sort(key=lambda summary: summary.index)

        guides = [summary.guide for summary in summaries if summary.guide is not None]
        if not guides:
            error = ExhaustedRetryError(
                "EPG",
                self.settings.retry_attempts,
                ParseError("; ".join(summary.error or "unknown error" for summary in summaries)),
            )
            self.last_error = error
            logger.error(
                "All %s EPG source(s) failed, keeping previous index (%s channels)",
                len(summaries),
                len(self.store.get_epg_index().programs),
            )
            raise error

        index = self.ingestor.build_index(guides, self._clock())
        self.store.commit_epg_index(index)
        self.last_error = None
        log_section_end(logger, "EPG refresh", section)

        for summary in summaries:
            summary.guide = None

        return self._build_result(started_at, summaries, len(index.programs), index.program_count)

    async def _process_source(self, index: int, url: str) -> SourceSummary:
        total = len(self.sources)
        started_at = self._clock()
        log_source_processing(logger, index, total, url)

        async with self._semaphore:
            try:
                guide = await retry_async(
                    lambda: self._attempt(index, url),
                    attempts=self.settings.retry_attempts,
                    delay=self.settings.retry_delay_sec,
                    resource=f"EPG source {index}",
                )
            except ExhaustedRetryError as exc:
                logger.error("[Source %s] Failed to process %s: %s", index, sanitize_url(url), exc)
                return SourceSummary(
                    index=index,
                    source_url=url,
                    started_at=started_at,
                    completed_at=self._clock(),
                    status="failed",
                    error=str(exc.last_error or exc),
                )

        logger.info(
            "[Source %s/%s] Completed: %s channels, %s programs",
            index,
            total,
            len(guide.channel_names),
            len(guide.programs),
        )
        return SourceSummary(
            index=index,
            source_url=url,
            started_at=started_at,
            completed_at=self._clock(),
            status="success",
            channels_parsed=len(guide.channel_names),
            programs_parsed=len(guide.programs),
            programs_skipped=guide.skipped_programs,
            guide=guide,
        )

    async def _attempt(self, index: int, url: str) -> ParsedGuide:
        timeout = self.settings.fetch_timeout_sec
        try:
            payload = await asyncio.wait_for(self._fetcher(url), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise FetchError(sanitize_url(url), f"Timed out after {timeout:.1f}s") from e

        parse_timeout = self.settings.epg_parse_timeout_sec or None
        loop = asyncio.get_running_loop()
        parse_task = loop.run_in_executor(None, parse_xmltv, payload, f"Source {index}")
        try:
            return await asyncio.wait_for(parse_task, timeout=parse_timeout)
        except asyncio.TimeoutError as e:
            raise ParseError(f"[Source {index}] XML parsing timed out after {parse_timeout}s") from e

    def _build_result(
        self,
        started_at: datetime,
        summaries: list[SourceSummary],
        channels_indexed: int,
        programs_indexed: int,
    ) -> dict:
        successes = sum(1 for summary in summaries if summary.status == "success")
        failures = sum(1 for summary in summaries if summary.status == "failed")

        return {
            "status": "success" if not failures else "partial",
            "timestamp": self._clock().isoformat(),
            "sources_processed": len(summaries),
            "sources_succeeded": successes,
            "sources_failed": failures,
            "channels_indexed": channels_indexed,
            "programs_indexed": programs_indexed,
            "source_details": [summary.to_dict() for summary in summaries],
            "started_at": started_at.isoformat(),
        }

    async def _refresh_job(self) -> None:
        """Background job that runs when the index expires"""
        logger.info("Scheduled EPG refresh triggered")
        try:
            await self.refresh(force=True)
        except ExhaustedRetryError as e:
            logger.error(f"Scheduled EPG refresh failed: {e}")
        except Exception as e:
            logger.error(f"Exception in scheduled EPG refresh: {e}", exc_info=True)

    def start(self) -> None:
        """Start the expiry timer"""
        if self.scheduler and self.scheduler.running:
            logger.warning("EPG scheduler already running")
            return

        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.scheduler.add_job(
            self._refresh_job,
            trigger=IntervalTrigger(seconds=self.settings.cache_expiry_sec),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        next_time = self.get_next_run_time()
        logger.info(
            "EPG scheduler started. Next refresh: %s",
            next_time.isoformat() if next_time else "unknown"
        )

    def shutdown(self) -> None:
        """Shutdown the scheduler"""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("EPG scheduler stopped")
        self.scheduler = None

    def get_next_run_time(self) -> datetime | None:
        """Get next scheduled refresh time"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None
